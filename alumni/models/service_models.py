"""
Service Layer Data Transfer Objects.

Return envelope shared by the notification layer and any collaborator
whose failures are reported rather than raised.
"""

from __future__ import annotations

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")

__all__ = ["ServiceResult"]


class ServiceResult(BaseModel, Generic[T]):
    """
    Standard service return envelope.

    Generic over ``T`` so callers can annotate return types precisely
    (e.g. ``ServiceResult[str]``).  Bare ``ServiceResult(...)`` is still
    valid; Pydantic treats it as ``ServiceResult[Any]`` at runtime.
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    status_code: int = 200
