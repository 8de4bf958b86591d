"""Admin-only endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import require_admin
from app.core.database import get_db
from app.schemas.auth import AccountView, ErrorResponse, UsersListResponse
from app.services.accounts import list_accounts_for_admin

router = APIRouter(
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
    }
)


@router.get("/users", response_model=UsersListResponse)
def list_users(
    admin: Annotated[AccountView, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
) -> UsersListResponse:
    """List USER and ARTIST accounts, newest first (admin only)."""
    users = list_accounts_for_admin(db, exclude_user_id=admin.id)
    return UsersListResponse(users=[AccountView.model_validate(u) for u in users])
