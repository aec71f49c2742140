"""
NaiyakSetu - Domain Errors

Every failure the core can report to a caller. Each error carries the HTTP
status it maps to; the API layer turns them into the standard envelope.
"""
from typing import Any, Dict, Optional


class PortalError(Exception):
    """Base class for all recoverable domain errors."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details: Dict[str, Any] = details
        super().__init__(self.message)


# =============================================================================
# INPUT / LOOKUP
# =============================================================================

class ValidationError(PortalError):
    status_code = 400
    default_message = "Invalid request"


class NotFound(PortalError):
    status_code = 404
    default_message = "Not found"


class Conflict(PortalError):
    status_code = 409
    default_message = "Resource already exists"


# =============================================================================
# ONE-TIME CODES
# =============================================================================

class Expired(PortalError):
    status_code = 400
    default_message = "OTP has expired. Please request a new one."


class AttemptsExhausted(PortalError):
    status_code = 429
    default_message = "Too many invalid attempts. Please request a new OTP."


class InvalidCredential(PortalError):
    status_code = 401
    default_message = "Invalid credentials"


class InvalidCode(InvalidCredential):
    """Mismatched OTP; reports how many tries are left."""

    def __init__(self, remaining_attempts: int):
        noun = "attempt" if remaining_attempts == 1 else "attempts"
        super().__init__(
            f"Invalid OTP. {remaining_attempts} {noun} remaining.",
            remainingAttempts=remaining_attempts,
        )
        self.remaining_attempts = remaining_attempts


class DeliveryFailed(PortalError):
    status_code = 502
    default_message = "Failed to send OTP"


# =============================================================================
# SESSION TOKENS / AUTHORIZATION
# =============================================================================

class Unauthorized(PortalError):
    status_code = 401
    default_message = "Access token required"


class InvalidSignature(Unauthorized):
    default_message = "Invalid token"


class TokenExpired(Unauthorized):
    default_message = "Token has expired"


class MalformedToken(Unauthorized):
    default_message = "Invalid token format"


class AccountNotFound(Unauthorized):
    default_message = "User not found"


class Forbidden(PortalError):
    status_code = 403
    default_message = "Insufficient permissions"


# =============================================================================
# COMPLAINT LIFECYCLE
# =============================================================================

class InvalidTransition(PortalError):
    status_code = 409
    default_message = "Invalid status transition"


# =============================================================================
# INFRASTRUCTURE
# =============================================================================

class StoreUnavailable(PortalError):
    """Persistence failure. The message never carries store internals."""

    status_code = 503
    default_message = "Service temporarily unavailable"
