"""
Domain exceptions raised by services and translated to HTTP statuses by the endpoints.
"""


class HealthTrackError(Exception):
    """Base class for service-level errors"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidUserError(HealthTrackError):
    status_code = 401

    def __init__(self, message: str = "Invalid user ID"):
        super().__init__(message)


class NotFoundError(HealthTrackError):
    status_code = 404


class ConflictError(HealthTrackError):
    status_code = 409


class InvalidReferenceError(HealthTrackError):
    status_code = 400


class ValidationFailure(HealthTrackError):
    status_code = 422
