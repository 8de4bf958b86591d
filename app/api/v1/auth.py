"""Auth endpoints: register, login, logout, refresh-token and me."""

from typing import Annotated

from fastapi import APIRouter, Cookie, Depends, Response, status
from sqlalchemy.orm import Session

from app.api.deps import ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE, get_current_user
from app.core.config import settings
from app.core.database import get_db
from app.core.security import TokenPair
from app.models.user import Role
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
)
from app.services import sessions

router = APIRouter(
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
    }
)


def _set_auth_cookies(response: Response, tokens: TokenPair) -> None:
    common = {
        "httponly": True,
        "secure": settings.COOKIE_SECURE,
        "samesite": settings.COOKIE_SAMESITE,
    }
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        tokens.access_token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        **common,
    )
    response.set_cookie(
        REFRESH_TOKEN_COOKIE,
        tokens.refresh_token,
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
        **common,
    )


def _clear_auth_cookies(response: Response) -> None:
    for name in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
        response.delete_cookie(
            name,
            httponly=True,
            secure=settings.COOKIE_SECURE,
            samesite=settings.COOKIE_SAMESITE,
        )


@router.post(
    "/register",
    response_model=AccountView,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
)
def register(
    body: RegisterRequest,
    db: Annotated[Session, Depends(get_db)],
) -> AccountView:
    """Create a USER or ARTIST account. Returns the sanitized account."""
    user = sessions.register(
        db,
        name=body.name,
        username=body.username,
        email=body.email,
        password=body.password,
        role=body.role or Role.USER,
    )
    return AccountView.model_validate(user)


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def login(
    body: LoginRequest,
    response: Response,
    db: Annotated[Session, Depends(get_db)],
) -> LoginResponse:
    """
    Authenticate with username or email and password.
    Tokens are returned in the body and set as httpOnly cookies; the access token
    can also be sent as: Authorization: Bearer <access_token>
    """
    result = sessions.login(
        db,
        password=body.password,
        username=body.username,
        email=body.email,
    )
    _set_auth_cookies(response, result.tokens)
    return LoginResponse(
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        user=LoginUser(id=result.user_id, username=result.username, role=result.role),
    )


@router.post("/logout", response_model=LogoutResponse)
def logout(
    response: Response,
    current_user: Annotated[AccountView, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
) -> LogoutResponse:
    """Invalidate the stored refresh token and clear auth cookies."""
    sessions.logout(db, current_user.id)
    _clear_auth_cookies(response)
    return LogoutResponse(username=current_user.username)


@router.post("/refresh-token", response_model=TokenResponse)
def refresh_token(
    response: Response,
    db: Annotated[Session, Depends(get_db)],
    body: RefreshRequest | None = None,
    refresh_cookie: Annotated[str | None, Cookie(alias=REFRESH_TOKEN_COOKIE)] = None,
) -> TokenResponse:
    """Exchange a refresh token (cookie, else body) for a new pair. The old token stops working."""
    presented = refresh_cookie or (body.refresh_token if body else None)
    tokens = sessions.refresh(db, presented)
    _set_auth_cookies(response, tokens)
    return TokenResponse(access_token=tokens.access_token, refresh_token=tokens.refresh_token)


@router.get("/me", response_model=AccountView, responses={403: {"model": ErrorResponse}})
def me(
    current_user: Annotated[AccountView, Depends(get_current_user)],
) -> AccountView:
    """Return the authenticated account."""
    return current_user
