"""
Error taxonomy shared by services and routes.

Every error is an HTTPException whose detail already has the API error shape
{"error": {"code": ..., "message": ..., "details": ...}}, so services can raise
them directly and the global handler in main.py renders them unchanged.
"""

from typing import Any, Optional

from fastapi import HTTPException, status


class AppError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Any = None,
        headers: Optional[dict] = None,
    ):
        self.message = message
        if code:
            self.code = code
        error = {"code": self.code, "message": message}
        if details is not None:
            error["details"] = details
        super().__init__(
            status_code=type(self).status_code,
            detail={"error": error},
            headers=headers,
        )


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "AUTH_TOKEN_INVALID"

    def __init__(self, message: str = "Invalid or expired token", **kwargs):
        kwargs.setdefault("headers", {"WWW-Authenticate": "Bearer"})
        super().__init__(message, **kwargs)


class AuthorizationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "INSUFFICIENT_PERMISSIONS"


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class StateError(AppError):
    """Operation is not valid for the entity's current lifecycle state."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_STATE"

    def __init__(self, message: str, current_state: Optional[str] = None, **kwargs):
        self.current_state = current_state
        if current_state is not None:
            kwargs.setdefault("details", {"current_state": current_state})
        super().__init__(message, **kwargs)


class DependencyError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "DEPENDENCY_ERROR"
