class PortalError(Exception):
    """Base class for errors that carry a message safe to show to staff."""

    status_code = 500
    default_message = "Something went wrong."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(PortalError):
    status_code = 400
    default_message = "Invalid input."


class NotFound(PortalError):
    status_code = 404
    default_message = "Not found."


class PermissionDenied(PortalError):
    status_code = 403
    default_message = "You do not have access to this page."


class DirectoryError(PortalError):
    status_code = 400
    default_message = "Unable to update admin accounts."


class BackendError(PortalError):
    """The hosted backend answered, but with an error status."""

    status_code = 502
    default_message = "The storage service rejected the request."

    def __init__(self, message: str | None = None, status: int | None = None):
        super().__init__(message)
        self.status = status


class BackendUnavailable(PortalError):
    """Transport failure or timeout talking to the hosted backend."""

    status_code = 503
    default_message = "The service is temporarily unavailable. Please try again."


class LedgerError(PortalError):
    status_code = 503
    default_message = "Login protection is temporarily unavailable."


class LedgerUnavailable(LedgerError):
    pass


class LedgerCorrupted(LedgerError):
    pass
