# =============================================================================
# core/errors.py - Exception hierarchy
# =============================================================================

from typing import Optional

from core.models import ErrorTag


class SignInToolError(Exception):
    """Base class for all tool errors"""


class ValidationError(SignInToolError):
    """Bad input shape - raised before any API call is made"""


class SchemaError(ValidationError):
    """Input file has no recognised identifier column"""


class AuthError(SignInToolError):
    """Authenticated session could not be established"""


class InteractiveAuthUnavailable(AuthError):
    """Interactive browser sign-in cannot run here (headless, no browser)"""


class WriteError(SignInToolError):
    """Report could not be written to the primary or the fallback location"""

    def __init__(self, message: str, original_error: Optional[str] = None,
                 fallback_error: Optional[str] = None):
        super().__init__(message)
        self.original_error = original_error
        self.fallback_error = fallback_error


class GraphApiError(SignInToolError):
    """Error returned by (or while talking to) Microsoft Graph"""

    retryable = False
    default_tag = ErrorTag.UNKNOWN

    def __init__(self, message: str, tag: Optional[ErrorTag] = None,
                 status_code: Optional[int] = None, retry_after: Optional[float] = None):
        super().__init__(message)
        self.tag = tag or self.default_tag
        self.status_code = status_code
        self.retry_after = retry_after
        self.attempts = 1


class NotFound(GraphApiError):
    default_tag = ErrorTag.USER_NOT_FOUND


class Forbidden(GraphApiError):
    default_tag = ErrorTag.INSUFFICIENT_PERMISSIONS


class Unauthorized(GraphApiError):
    default_tag = ErrorTag.UNAUTHORIZED


class Throttled(GraphApiError):
    retryable = True
    default_tag = ErrorTag.THROTTLED


class Transient(GraphApiError):
    retryable = True
    default_tag = ErrorTag.TRANSIENT
