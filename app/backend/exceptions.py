"""Domain-specific exceptions and error payload helpers."""
from __future__ import annotations

from typing import Dict

from fastapi import HTTPException, status


def build_error_payload(error_code: str, message: str, hint: str | None = None) -> Dict[str, str]:
    """Return a standardized error payload."""

    payload: Dict[str, str] = {"error_code": error_code, "message": message}
    if hint:
        payload["hint"] = hint
    return payload


class ChatError(HTTPException):
    """Base error with standardized payload."""

    def __init__(
        self,
        *,
        status_code: int,
        error_code: str,
        message: str,
        hint: str | None = None,
        headers: Dict[str, str] | None = None,
    ) -> None:
        self.error_code = error_code
        self.message = message
        self.hint = hint
        super().__init__(
            status_code=status_code,
            detail=build_error_payload(error_code=error_code, message=message, hint=hint),
            headers=headers,
        )

    def to_payload(self) -> Dict[str, str]:
        """Return the serialized payload for the error."""

        return build_error_payload(self.error_code, self.message, self.hint)


def email_in_use(message: str = "Email already in use") -> ChatError:
    return ChatError(status_code=status.HTTP_400_BAD_REQUEST, error_code="EMAIL_IN_USE", message=message)


def username_in_use(message: str = "Username already in use") -> ChatError:
    return ChatError(status_code=status.HTTP_400_BAD_REQUEST, error_code="USERNAME_IN_USE", message=message)


def invalid_credentials(message: str = "Invalid username or password.") -> ChatError:
    return ChatError(
        status_code=status.HTTP_401_UNAUTHORIZED,
        error_code="INVALID_CREDENTIALS",
        message=message,
        headers={"WWW-Authenticate": "Bearer"},
    )


def invalid_token(message: str = "Missing, invalid or expired access token.") -> ChatError:
    return ChatError(
        status_code=status.HTTP_401_UNAUTHORIZED,
        error_code="INVALID_TOKEN",
        message=message,
        headers={"WWW-Authenticate": "Bearer"},
    )


def forbidden(message: str = "You are not allowed to modify this resource.") -> ChatError:
    return ChatError(status_code=status.HTTP_403_FORBIDDEN, error_code="FORBIDDEN", message=message)


def user_not_found(message: str = "User not found.") -> ChatError:
    return ChatError(status_code=status.HTTP_404_NOT_FOUND, error_code="USER_NOT_FOUND", message=message)


def store_unavailable(message: str = "The record store could not be written. Please retry.") -> ChatError:
    return ChatError(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, error_code="STORE_UNAVAILABLE", message=message)


def internal_error(message: str = "Unexpected server error. Please retry or contact support.") -> ChatError:
    return ChatError(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, error_code="INTERNAL_ERROR", message=message)


def invalid_request(
    message: str = "The request payload is invalid.",
    *,
    hint: str | None = None,
) -> ChatError:
    return ChatError(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        error_code="INVALID_REQUEST",
        message=message,
        hint=hint,
    )


def http_error(
    message: str = "An HTTP error occurred while processing the request.",
    *,
    status_code: int = status.HTTP_400_BAD_REQUEST,
    hint: str | None = None,
) -> ChatError:
    return ChatError(status_code=status_code, error_code="HTTP_ERROR", message=message, hint=hint)


def resource_not_found(message: str = "The requested resource was not found.") -> ChatError:
    return ChatError(status_code=status.HTTP_404_NOT_FOUND, error_code="RESOURCE_NOT_FOUND", message=message)


__all__ = [
    "ChatError",
    "email_in_use",
    "username_in_use",
    "invalid_credentials",
    "invalid_token",
    "forbidden",
    "user_not_found",
    "store_unavailable",
    "internal_error",
    "invalid_request",
    "http_error",
    "resource_not_found",
    "build_error_payload",
]
