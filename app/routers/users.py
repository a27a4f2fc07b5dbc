from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import Permission, SessionUser, get_current_user, require_permission
from app.schemas.user import MessageResponse, ProfileResponse
from app.services import credentials

router = APIRouter()


@router.get("/profile", response_model=ProfileResponse)
async def profile(current_user: SessionUser = Depends(get_current_user)):
    return {"message": "User profile", "user": current_user.model_dump()}


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(require_permission(Permission.MANAGE_USERS)),
):
    await credentials.delete_user(user_id, db)
    return {"message": "User deleted"}
