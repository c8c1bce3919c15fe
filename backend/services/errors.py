"""Error types raised by the report services and mapped to HTTP by the API."""


class ReportError(Exception):
    """Base class for errors that carry an HTTP status code."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ReportError):
    status_code = 400


class AuthenticationError(ReportError):
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class AuthorizationError(ReportError):
    status_code = 403

    def __init__(self, message: str = "You do not have permission to access this resource"):
        super().__init__(message)


class NotFoundError(ReportError):
    status_code = 404

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")
