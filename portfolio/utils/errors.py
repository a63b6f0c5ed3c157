"""Error handling utilities."""

from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError


class PortfolioError(Exception):
    """Base exception for the portfolio backend.

    Every subclass carries a stable ``code``, the HTTP status an API handler
    should answer with, and a ``user_message`` that is safe to show to end users.
    The exception text itself is internal detail and is only logged.
    """
    code = "UNKNOWN_ERROR"
    http_status = 500
    user_message = "An unexpected error occurred. Please try again or contact support if the problem persists."

    def __init__(self, message: Optional[str] = None, user_message: Optional[str] = None):
        super().__init__(message or self.user_message)
        if user_message:
            self.user_message = user_message


class PermissionDenied(PortfolioError):
    """Capability or scope check failed."""
    code = "PERMISSION_DENIED"
    http_status = 403
    user_message = "You do not have permission to perform this action."


class NotFound(PortfolioError):
    """Entity absent or outside the caller's agency (deliberately indistinguishable)."""
    code = "NOT_FOUND"
    http_status = 404
    user_message = "The requested record could not be found."


class AlreadyUsed(PortfolioError):
    """Invitation token was already redeemed."""
    code = "INVITATION_ALREADY_USED"
    http_status = 410
    user_message = "This invitation has already been used."


class Expired(PortfolioError):
    """Invitation token is past its expiry."""
    code = "INVITATION_EXPIRED"
    http_status = 410
    user_message = "This invitation has expired. Please ask your administrator for a new one."


class EmailMismatch(PortfolioError):
    """Redeeming identity's email differs from the invited email."""
    code = "INVITATION_EMAIL_MISMATCH"
    http_status = 403
    user_message = "Email must match the invitation."


class ValidationError(PortfolioError):
    """Malformed input, field-level."""
    code = "VALIDATION_ERROR"
    http_status = 400
    user_message = "Some of the submitted values are invalid."

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None,
                 user_message: Optional[str] = None):
        if field and not user_message:
            user_message = f"{field.replace('_', ' ').capitalize()} is invalid."
        super().__init__(message, user_message)
        self.field = field


class Conflict(PortfolioError):
    """Uniqueness violation or state conflict."""
    code = "DUPLICATE_ENTRY"
    http_status = 409
    user_message = "This record already exists. Please use different values."


class PendingInvitationExists(Conflict):
    """An unused, unexpired invitation already exists for this agency and email."""
    user_message = "An invitation is already pending for this email address."


class SeatLimitReached(Conflict):
    """Agency already has ``max_users`` profiles."""
    user_message = "This agency has reached its user limit."


class Unavailable(PortfolioError):
    """Backing store unreachable or timed out."""
    code = "SERVICE_UNAVAILABLE"
    http_status = 503
    user_message = "The service is temporarily unavailable. Please try again."


def validation_error_from(error: PydanticValidationError) -> ValidationError:
    """Convert the first pydantic error into a field-level ValidationError."""
    details = error.errors()
    if not details:
        return ValidationError(str(error))
    first = details[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "__root__") or None
    return ValidationError(f"{field}: {first.get('msg')}", field=field)


def extract_error_code(error: Exception) -> Optional[str]:
    """Pull a backend error code (PostgREST / Postgres) off an exception, if any."""
    code = getattr(error, "code", None)
    if code:
        return str(code)
    if error.args and isinstance(error.args[0], dict):
        code = error.args[0].get("code")
        return str(code) if code else None
    return None


def extract_error_message(error: Exception) -> str:
    """Safely extract readable details from Supabase client errors."""
    message = getattr(error, "message", None)
    if message:
        return str(message)
    if error.args:
        first = error.args[0]
        if isinstance(first, dict):
            return str(first.get("message") or first)
        return str(first)
    return str(error) or error.__class__.__name__


def translate_storage_error(error: Exception, operation: str) -> PortfolioError:
    """Map a database error onto the error taxonomy."""
    if isinstance(error, PortfolioError):
        return error

    code = extract_error_code(error)
    message = extract_error_message(error)
    lowered = message.lower()
    detail = f"{operation}: {message}"

    if code == "23505" or "duplicate key" in lowered:
        return Conflict(detail)
    if code == "PGRST116":
        return NotFound(detail)
    if code == "42501" or "row-level security" in lowered:
        return PermissionDenied(detail)
    if code in ("23503", "23514", "22P02"):
        return ValidationError(detail, user_message="This operation would create invalid data relationships.")
    if "timeout" in lowered or "timed out" in lowered:
        return Unavailable(detail)
    return PortfolioError(detail, user_message="A database error occurred. Please try again or contact support.")


def translate_auth_error(error: Exception, operation: str) -> PortfolioError:
    """Map an identity-provider error onto the error taxonomy."""
    if isinstance(error, PortfolioError):
        return error

    message = extract_error_message(error)
    lowered = message.lower()
    detail = f"{operation}: {message}"

    if "invalid login credentials" in lowered:
        return PermissionDenied(
            detail,
            user_message="Invalid email or password. Please check your credentials and try again.",
        )
    if "already registered" in lowered or "already been registered" in lowered:
        return Conflict(
            detail,
            user_message="An account with this email address already exists. Please sign in instead.",
        )
    if "email not confirmed" in lowered:
        return PermissionDenied(
            detail,
            user_message="Please confirm your email address before signing in.",
        )
    if "invalid email" in lowered:
        return ValidationError(detail, field="email", user_message="Please enter a valid email address.")
    if "password" in lowered:
        return ValidationError(detail, field="password", user_message="Password must be at least 6 characters long.")
    if "timeout" in lowered or "timed out" in lowered:
        return Unavailable(detail)
    return PortfolioError(detail, user_message="Authentication failed. Please try again.")


def to_response(error: Exception) -> tuple[int, dict[str, Any]]:
    """Map any exception to an HTTP status and a body that only exposes the user message."""
    if not isinstance(error, PortfolioError):
        return PortfolioError.http_status, {
            "error": PortfolioError.code,
            "message": PortfolioError.user_message,
        }

    body: dict[str, Any] = {"error": error.code, "message": error.user_message}
    if isinstance(error, ValidationError) and error.field:
        body["field"] = error.field
    return error.http_status, body
