"""
User Service.

Provisioning and profile management for alumni accounts.

Architectural notes:
    - Accounts are created on first login from identity-provider claims
      (just-in-time provisioning).  Roles and the membership id are owned
      by this system and never taken from claims.
    - Users are never hard-deleted; ``deactivate`` clears ``is_active``.
    - Local-auth accounts (self-registered users and the system admin bot)
      store a PBKDF2-HMAC-SHA256 password hash with a random 32-byte salt.
      A self-registered account cannot log in until its email is verified
      through the emailed token, which is valid for 24 hours and stored
      only as a SHA-256 digest.
"""

from __future__ import annotations

import hashlib
import hmac
import os
import secrets
import uuid
from datetime import timedelta
from typing import Optional

from alumni.config import AppConfig
from alumni.database import DatabaseManager
from alumni.exceptions import (
    AlumniOfficeError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from alumni.logger import StructuredLogger
from alumni.models.auth_models import IdentityClaims
from alumni.models.enums import UserRole
from alumni.models.user import RegisterInput, UpdateProfileInput, User
from alumni.repositories.user_repository import UserRepository
from alumni.services.base_service import BaseService
from alumni.services.email_service import EmailService
from alumni.utils.audit import SYSTEM_ACTOR

PBKDF2_ITERATIONS: int = 600_000
VERIFICATION_TOKEN_TTL: timedelta = timedelta(hours=24)


def hash_password(password: str) -> tuple[str, str]:
    """Return a ``(hex_hash, hex_salt)`` pair for *password*."""
    salt = os.urandom(32)
    pw_hash = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt, iterations=PBKDF2_ITERATIONS,
    ).hex()
    return pw_hash, salt.hex()


def verify_password(password: str, pw_hash: str, salt_hex: str) -> bool:
    computed = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        bytes.fromhex(salt_hex),
        iterations=PBKDF2_ITERATIONS,
    ).hex()
    return hmac.compare_digest(computed, pw_hash)


def token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class UserService(BaseService):
    """Service layer for user accounts."""

    def __init__(
        self,
        repo: UserRepository,
        config: AppConfig,
        logger: StructuredLogger,
        db: Optional[DatabaseManager] = None,
        email: Optional[EmailService] = None,
    ) -> None:
        super().__init__(logger, db)
        self._repo = repo
        self._config = config
        self._email = email

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    def sync_from_claims(self, claims: IdentityClaims) -> User:
        """Find the user for *claims*, creating the account on first login.

        Returning users get their name, picture, verification flag and
        last-login time refreshed from the claims.
        """
        first_name, last_name = claims.split_name()
        now = self._now()

        user = self._repo.get_by_auth0_id(claims.sub)
        if user is None:
            roles = (
                [UserRole.SYSTEM_ADMIN]
                if claims.email == self._config.OFFICIAL_ADMIN_EMAIL.lower()
                else [UserRole.GUEST]
            )
            user = User(
                id=str(uuid.uuid4()),
                auth0_id=claims.sub,
                email=claims.email,
                first_name=first_name,
                last_name=last_name,
                picture=claims.picture,
                email_verified=claims.email_verified,
                roles=roles,
                last_login_at=now,
                created_at=now,
                updated_at=now,
            )
            self._repo.create(user)
            self._audit(
                "USER_CREATE", "User", user.id, user.id,
                details={"email": user.email, "roles": ",".join(user.roles)},
            )
            return user

        user = self._repo.save(
            user.model_copy(update={
                "first_name": first_name or user.first_name,
                "last_name": last_name or user.last_name,
                "picture": claims.picture or user.picture,
                "email_verified": claims.email_verified,
                "last_login_at": now,
                "updated_at": now,
            })
        )
        self._audit("USER_SYNC", "User", user.id, user.id)
        return user

    def ensure_system_admin(
        self,
        email: str,
        password: str,
        first_name: str = "System",
        last_name: str = "Administrator",
    ) -> Optional[User]:
        """Create or refresh the local-auth system admin bot.

        Skipped (returns ``None``) when credentials are missing.  Failures
        are logged and reported as ``None`` so startup never aborts here.
        """
        if not email or not password:
            self._logger.warning(
                "System admin credentials not configured. "
                "Skipping system admin initialization."
            )
            return None

        try:
            pw_hash, salt = hash_password(password)
            now = self._now()
            existing = self._repo.get_by_email(email)
            if existing is None:
                admin = User(
                    id=str(uuid.uuid4()),
                    email=email,
                    first_name=first_name,
                    last_name=last_name,
                    roles=[UserRole.SYSTEM_ADMIN],
                    email_verified=True,
                    is_system_bot=True,
                    password_hash=pw_hash,
                    password_salt=salt,
                    created_at=now,
                    updated_at=now,
                )
                self._repo.create(admin)
                self._audit("USER_CREATE", "User", admin.id, SYSTEM_ACTOR,
                            details={"email": admin.email, "system_bot": True})
            else:
                roles = existing.roles
                if UserRole.SYSTEM_ADMIN not in roles:
                    roles = [*roles, UserRole.SYSTEM_ADMIN]
                admin = self._repo.save(
                    existing.model_copy(update={
                        "roles": roles,
                        "is_system_bot": True,
                        "is_active": True,
                        "email_verified": True,
                        "password_hash": pw_hash,
                        "password_salt": salt,
                        "updated_at": now,
                    })
                )
                self._audit("USER_SYNC", "User", admin.id, SYSTEM_ACTOR,
                            details={"system_bot": True})
        except AlumniOfficeError as exc:
            self._logger.error("Failed to initialize system admin bot user: %s", exc.message)
            return None

        self._logger.info("System admin bot user initialized: %s", admin.email)
        return admin

    def authenticate_local(self, email: str, password: str) -> Optional[User]:
        """Check a local-auth login.

        Returns ``None`` for an unknown email or a wrong password.

        Raises:
            ValidationError: The account signs in through the identity provider.
            AuthorizationError: Right password, but the email is unverified
                or the account is deactivated.
        """
        user = self._repo.get_by_email(email)
        if user is None:
            return None
        if user.password_hash is None or user.password_salt is None:
            raise ValidationError(
                "This account uses single sign-on. Please sign in with your identity provider."
            )
        if not verify_password(password, user.password_hash, user.password_salt):
            self._logger.warning("Local login failed for %s", user.email)
            return None
        if not user.email_verified:
            raise AuthorizationError("Please verify your email before logging in")
        if not user.is_active:
            raise AuthorizationError("Your account has been deactivated")
        return user

    # ------------------------------------------------------------------
    # Self-service registration
    # ------------------------------------------------------------------

    def register(self, data: RegisterInput) -> User:
        """Create an unverified local-auth guest and email the sign-up link.

        Raises:
            ConflictError: The email already has an account.
        """
        if self._repo.get_by_email(data.email) is not None:
            raise ConflictError(
                "User with this email already exists", details={"email": data.email},
            )

        pw_hash, salt = hash_password(data.password)
        token = secrets.token_hex(32)
        now = self._now()
        user = User(
            id=str(uuid.uuid4()),
            email=data.email,
            first_name=data.first_name,
            last_name=data.last_name,
            roles=[UserRole.GUEST],
            email_verified=False,
            email_verification_token=token_digest(token),
            email_verification_expires=now + VERIFICATION_TOKEN_TTL,
            password_hash=pw_hash,
            password_salt=salt,
            created_at=now,
            updated_at=now,
        )
        self._repo.create(user)
        self._audit("USER_REGISTER", "User", user.id, user.id, details={"email": user.email})
        self._send_verification(user, token)
        return user

    def verify_email(self, token: str) -> User:
        """Mark the account holding *token* verified and send the welcome email.

        Raises:
            ValidationError: No account holds *token*, or it has expired.
        """
        user = self._repo.get_by_verification_token(token_digest(token))
        now = self._now()
        if (
            user is None
            or user.email_verification_expires is None
            or user.email_verification_expires < now
        ):
            raise ValidationError("Invalid or expired verification token")

        verified = self._repo.save(
            user.model_copy(update={
                "email_verified": True,
                "email_verification_token": None,
                "email_verification_expires": None,
                "updated_at": now,
            })
        )
        self._audit("USER_VERIFY_EMAIL", "User", user.id, user.id)
        if self._email is not None:
            result = self._email.send_welcome_email(verified.email, verified.first_name)
            if not result.success:
                self._logger.warning(
                    "Welcome email to %s failed: %s", verified.email, result.error,
                )
        return verified

    def resend_verification(self, email: str) -> None:
        """Issue a fresh sign-up token; the previous one stops working.

        Raises:
            ValidationError: Unknown email, or the email is already verified.
        """
        user = self._repo.get_by_email(email)
        if user is None:
            raise ValidationError("User not found")
        if user.email_verified:
            raise ValidationError("Email is already verified")

        token = secrets.token_hex(32)
        now = self._now()
        user = self._repo.save(
            user.model_copy(update={
                "email_verification_token": token_digest(token),
                "email_verification_expires": now + VERIFICATION_TOKEN_TTL,
                "updated_at": now,
            })
        )
        self._audit("USER_RESEND_VERIFICATION", "User", user.id, user.id)
        self._send_verification(user, token)

    def _send_verification(self, user: User, token: str) -> None:
        if self._email is None:
            self._logger.warning("No email service; verification link for %s not sent", user.email)
            return
        result = self._email.send_verification_email(user.email, user.first_name, token)
        if not result.success:
            # The user can ask for the link again.
            self._logger.warning(
                "Verification email to %s failed: %s", user.email, result.error,
            )

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def get_user(self, user_id: str) -> User:
        user = self._repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def update_profile(self, user_id: str, patch: UpdateProfileInput) -> User:
        """Merge editable profile fields.

        Raises:
            NotFoundError: Unknown user.
            ConflictError: The new email belongs to another account.
        """
        user = self.get_user(user_id)
        changes = patch.changes()
        if not changes:
            return user

        new_email = changes.get("email")
        if new_email is None:
            changes.pop("email", None)
        elif new_email != user.email:
            other = self._repo.get_by_email(str(new_email))
            if other is not None and other.id != user_id:
                raise ConflictError(
                    "Email is already in use by another account",
                    details={"email": str(new_email)},
                )

        updated = self._repo.save(
            user.model_copy(update={**changes, "updated_at": self._now()})
        )
        self._audit(
            "USER_UPDATE", "User", user_id, user_id,
            details={"fields": ",".join(sorted(changes))},
        )
        return updated

    def list_users(
        self,
        batch: Optional[str] = None,
        passing_year: Optional[int] = None,
        roles: Optional[list[UserRole]] = None,
    ) -> list[User]:
        return self._repo.list_active(batch=batch, passing_year=passing_year, roles=roles)

    def search(self, term: str) -> list[User]:
        """At most 20 active users whose name or email contains *term*."""
        return self._repo.search(term, limit=20)

    def deactivate(self, user_id: str, actor_id: str = SYSTEM_ACTOR) -> User:
        user = self.get_user(user_id)
        if not user.is_active:
            return user
        updated = self._repo.save(
            user.model_copy(update={"is_active": False, "updated_at": self._now()})
        )
        self._audit("USER_DEACTIVATE", "User", user_id, actor_id)
        return updated
