"""
Typed Exception Hierarchy.

Every failure the workflow engine reports to its caller is one of the
classes below.  Callers catch by type and map ``status_code`` onto their
own response envelope; message wording is for humans only.

    AlumniOfficeError (base)
    |
    +-- ValidationError       400  malformed input, illegal transition
    +-- AuthorizationError    403  role-policy denial
    +-- NotFoundError         404  referenced entity absent
    +-- ConflictError         409  duplicate active request / setting key,
    |                              concurrent modification
    +-- ExternalServiceError  502  payment gateway transport/parse failure

``ExternalServiceError`` never escapes a gateway adapter: adapters degrade
it into a ``success=False`` result model (see ``services/payment``).
"""

from __future__ import annotations

from typing import Optional, Union

DetailValue = Union[str, int, float, bool, None]


class AlumniOfficeError(Exception):
    """Base class for all engine errors."""

    code: str = "ALUMNI_OFFICE_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, DetailValue]] = None,
    ) -> None:
        self.message: str = message
        self.details: dict[str, DetailValue] = details or {}
        super().__init__(self.message)


class ValidationError(AlumniOfficeError):
    """Input or state transition rejected by a workflow rule."""

    code = "VALIDATION_ERROR"
    status_code = 400


class AuthorizationError(AlumniOfficeError):
    """Caller's roles do not satisfy the policy for the operation."""

    code = "AUTHORIZATION_ERROR"
    status_code = 403


class NotFoundError(AlumniOfficeError):
    """A referenced user, request, transaction or setting does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity_type: str, entity_id: str) -> None:
        self.entity_type: str = entity_type
        self.entity_id: str = entity_id
        super().__init__(
            f"{entity_type} not found",
            details={"entity_type": entity_type, "entity_id": entity_id},
        )


class ConflictError(AlumniOfficeError):
    """Uniqueness or optimistic-concurrency conflict."""

    code = "CONFLICT"
    status_code = 409


class ExternalServiceError(AlumniOfficeError):
    """A third-party service could not be reached or returned garbage."""

    code = "EXTERNAL_SERVICE_ERROR"
    status_code = 502

    def __init__(
        self,
        service: str,
        message: str,
        original_error: Optional[Exception] = None,
    ) -> None:
        self.service: str = service
        self.original_error: Optional[Exception] = original_error
        super().__init__(message, details={"service": service})
