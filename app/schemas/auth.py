"""Request/response schemas for auth endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models.user import Role


class RegisterRequest(BaseModel):
    """New account details. role defaults to USER; ADMIN is rejected."""

    name: str = Field(..., min_length=1, max_length=255, description="Display name")
    username: str = Field(..., min_length=1, max_length=255, description="Username")
    email: str = Field(..., min_length=3, max_length=320, description="Email address")
    password: str = Field(..., min_length=8, max_length=128, description="Password")
    role: Role | None = Field(default=None, description="USER or ARTIST")


class LoginRequest(BaseModel):
    """Credentials for login: email or username, plus password."""

    email: str | None = Field(default=None, max_length=320, description="Email address")
    username: str | None = Field(default=None, max_length=255, description="Username")
    password: str = Field(..., min_length=1, max_length=128, description="Password")


class RefreshRequest(BaseModel):
    """Refresh token in the body; the refreshToken cookie takes precedence."""

    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str | None = Field(default=None, alias="refreshToken")


class TokenResponse(BaseModel):
    """JWT access/refresh pair. Also set as httpOnly cookies."""

    access_token: str = Field(..., description="JWT access token")
    refresh_token: str = Field(..., description="JWT refresh token")
    token_type: str = Field(default="bearer", description="Token type")


class LoginUser(BaseModel):
    """Minimal account view returned on login."""

    id: int
    username: str
    role: Role


class LoginResponse(TokenResponse):
    user: LoginUser


class AccountView(BaseModel):
    """Sanitized account: never includes password hash or refresh token."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    username: str
    email: str
    role: Role
    is_active: bool
    is_blocked: bool
    last_login_at: datetime | None = None
    created_at: datetime | None = None


class LogoutResponse(BaseModel):
    username: str


class UsersListResponse(BaseModel):
    """Response for GET /admin/users (admin only)."""

    users: list[AccountView]


class ErrorResponse(BaseModel):
    """Error envelope produced by the API exception handlers."""

    kind: str = Field(..., description="Stable machine-readable error kind")
    detail: str = Field(..., description="Human-readable message")
    errors: list | dict | None = None
