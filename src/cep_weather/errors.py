"""Error taxonomy shared by the gateway and lookup services.

Every error maps to exactly one HTTP status and one public message. Internal
details (upstream status codes, transport exceptions) are kept on the
exception for logging and never rendered to callers.
"""

from typing import Optional


class ServiceError(Exception):
    status_code: int = 500
    message: str = "internal server error"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.message)
        self.detail = detail


class ClientError(ServiceError):
    """Request body could not be decoded."""

    status_code = 400
    message = "invalid request body"


class ValidationError(ServiceError):
    """Postal code is not exactly 8 digits."""

    status_code = 422
    message = "invalid zipcode"


class NotFoundError(ServiceError):
    """Directory reports that the postal code does not exist."""

    status_code = 404
    message = "can not find zipcode"


class UpstreamError(ServiceError):
    """Any dependency or transport failure."""

    status_code = 500
    message = "internal server error"
