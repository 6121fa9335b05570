"""Error taxonomy for the auth core.

Learn: Services raise these instead of HTTPException so that the core
never knows about HTTP. Each error carries a stable machine-readable
`kind`; the API layer maps kinds to status codes in one place
(schoolgate.api.errors). Messages are safe to show to users — they never
contain hashes, tokens or raw store errors.
"""

from typing import Optional


class SchoolGateError(Exception):
    """Base class. Subclasses set `kind` and a default message."""

    kind = "error"
    message = "Request failed"
    retryable = False

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


# ─── Authentication ─────────────────────────────────────


class InvalidCredentials(SchoolGateError):
    # Same response for unknown email and wrong password (no enumeration).
    kind = "invalid_credentials"
    message = "Invalid credentials"


class InactiveAccount(SchoolGateError):
    kind = "inactive_account"
    message = "Account is deactivated"


class EmailTaken(SchoolGateError):
    kind = "email_taken"
    message = "Email already registered"


class NoIdentity(SchoolGateError):
    kind = "no_identity"
    message = "Authentication required"


class IdentityGone(SchoolGateError):
    kind = "identity_gone"
    message = "Account no longer exists or is deactivated"


# ─── Tokens ─────────────────────────────────────────────


class TokenError(SchoolGateError):
    """Raised when token verification fails."""

    kind = "token_invalid"
    message = "Invalid token"


class TokenExpired(TokenError):
    kind = "token_expired"
    message = "Token has expired"


class TokenMalformed(TokenError):
    kind = "token_malformed"
    message = "Invalid token"


class StaleRefreshToken(TokenError):
    """The presented refresh token is no longer the stored one.

    Treated as a forced logout, not a transient failure.
    """

    kind = "stale_refresh_token"
    message = "Refresh token is no longer valid, please log in again"


# ─── Authorization ──────────────────────────────────────


class WrongTenant(SchoolGateError):
    kind = "wrong_tenant"
    message = "Access denied. You can only access your own school data."


class RoleInsufficient(SchoolGateError):
    kind = "role_insufficient"
    message = "Access denied. Insufficient privileges."


# ─── Resources / input ──────────────────────────────────


class TenantAlreadyAssigned(SchoolGateError):
    kind = "tenant_already_assigned"
    message = "Onboarding already completed for this account"


class NotFound(SchoolGateError):
    kind = "not_found"
    message = "Not found"


class ValidationFailed(SchoolGateError):
    kind = "validation_failed"
    message = "Validation failed"

    def __init__(self, message: Optional[str] = None, fields: Optional[list[dict]] = None):
        super().__init__(message)
        self.fields = fields or []

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["fields"] = self.fields
        return body


# ─── Store ──────────────────────────────────────────────


class StoreUnavailable(SchoolGateError):
    """Transient store failure (timeout, lost connection). Safe to retry."""

    kind = "store_unavailable"
    message = "Identity store temporarily unavailable, please retry"
    retryable = True
