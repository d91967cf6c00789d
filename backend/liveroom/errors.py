from __future__ import annotations


class ServiceError(Exception):
    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self, message: str | None = None):
        self.message = str(message or self.default_message)
        super().__init__(self.message)


class ValidationFailed(ServiceError):
    status_code = 400
    default_message = "Validation failed"


class MissingField(ValidationFailed):
    default_message = "Missing required fields"


class InvalidSignal(ValidationFailed):
    default_message = "Invalid signal format"


class Unauthorized(ServiceError):
    status_code = 401
    default_message = "Unauthorized signaling attempt"


class NotFound(ServiceError):
    status_code = 404
    default_message = "Not found"


class InvalidTransition(ServiceError):
    status_code = 409
    default_message = "Invalid session state transition"


class UpstreamUnavailable(ServiceError):
    status_code = 503
    default_message = "Service Unavailable"
