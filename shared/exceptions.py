"""
shared/exceptions.py
Domain error taxonomy. Operations raise these; main.py maps every one
of them to the {"success": false, "message": ...} envelope.
"""

from fastapi import status


class AppError(Exception):
    """Base class for errors that carry their own HTTP status."""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal Server Error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidRequest(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class Unauthenticated(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Please login first to continue"


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You are not authorized to perform this action"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class MediaUploadError(AppError):
    """The external media store rejected or failed an upload/delete."""
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Media upload failed"
