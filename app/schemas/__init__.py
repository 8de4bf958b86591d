"""Pydantic request/response schemas."""

from app.schemas.auth import (
    AccountView,
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    LoginUser,
    LogoutResponse,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UsersListResponse,
)

__all__ = [
    "AccountView",
    "ErrorResponse",
    "LoginRequest",
    "LoginResponse",
    "LoginUser",
    "LogoutResponse",
    "RefreshRequest",
    "RegisterRequest",
    "TokenResponse",
    "UsersListResponse",
]
