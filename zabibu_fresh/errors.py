"""
Error taxonomy for the Zabibu Fresh client core.

Every error names the action that failed so the UI can show a notification
for it. ``status_code`` mirrors the HTTP status the backend would use for the
same condition.
"""
from typing import Optional


class ZabibuError(Exception):
    status_code = 500
    default_detail = "Something went wrong"

    def __init__(self, detail: Optional[str] = None, action: Optional[str] = None):
        self.detail = detail or self.default_detail
        self.action = action
        super().__init__(self.detail)

    def __repr__(self):
        return f"{type(self).__name__}(action={self.action!r}, detail={self.detail!r})"


class Unauthenticated(ZabibuError):
    """No active session where one is required"""
    status_code = 401
    default_detail = "Authentication required"


class Unauthorized(ZabibuError):
    """Role-gated or ownership-gated action attempted by the wrong user"""
    status_code = 403
    default_detail = "You are not allowed to perform this action"


class NotFound(ZabibuError):
    status_code = 404
    default_detail = "Not found"


class ValidationFailed(ZabibuError):
    """Client-side input check failed; nothing was sent to the backend"""
    status_code = 422
    default_detail = "Invalid input"

    def __init__(self, detail: Optional[str] = None, action: Optional[str] = None, errors: Optional[list] = None):
        super().__init__(detail, action)
        self.errors = errors or []


class RemoteFetchFailed(ZabibuError):
    status_code = 502
    default_detail = "Could not load data"


class WriteFailed(ZabibuError):
    status_code = 502
    default_detail = "Could not save changes"


class SendFailed(WriteFailed):
    default_detail = "Could not send message"


class ProfileIncomplete(WriteFailed):
    """Auth sign-up succeeded but the profile row could not be created"""
    default_detail = "Your account was created but your profile could not be saved. Please try again or contact support."

    def __init__(self, detail: Optional[str] = None, action: Optional[str] = None, user_id: Optional[str] = None):
        super().__init__(detail, action)
        self.user_id = user_id


def validation_failed_from(exc, action: Optional[str] = None) -> ValidationFailed:
    """Turn a pydantic ValidationError into ValidationFailed with a readable first message"""
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "__root__")
        message = first.get("msg", "Invalid input")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        detail = f"{field}: {message}" if field else message
    else:
        detail = None
    return ValidationFailed(detail, action=action, errors=errors)
