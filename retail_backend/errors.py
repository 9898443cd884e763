# retail_backend/errors.py
"""Typed request errors. Each carries the HTTP status it maps to."""


class ApiError(Exception):
    status = 500

    def __init__(self, message, status=None):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status


class ValidationError(ApiError):
    status = 400


class PermissionDenied(ApiError):
    """401 when there is no usable session, 403 when the role lacks the permission."""
    status = 403


class NotFound(ApiError):
    status = 404


class Conflict(ApiError):
    status = 409
