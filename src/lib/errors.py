"""
Application errors.
Each error carries the HTTP status it maps to; the API renders them as
{"error": message}.
"""


class AppError(Exception):
    """Base error with an HTTP status code."""

    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AppError):
    status_code = 400


class NotAuthenticatedError(AppError):
    status_code = 401

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class ForbiddenError(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class RateLimitedError(AppError):
    status_code = 429

    def __init__(self, message: str = "Too many requests"):
        super().__init__(message)


class ConfigurationError(AppError):
    """A required secret or setting is missing."""

    status_code = 500


class UpstreamError(AppError):
    """An external service (billing, voice-AI, geocoding, telephony) failed."""

    status_code = 502
