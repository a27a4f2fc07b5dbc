from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import Permission, SessionUser, require_permission
from app.schemas.cloud import (CloudMessageCreate, CloudMessageListResult,
                               CloudMessageOut, CloudMessageResult,
                               DeletedMessageResult)
from app.services import cloud as cloud_service

router = APIRouter()

cloud_user = require_permission(Permission.USE_CLOUD)


@router.get("", response_model=CloudMessageListResult)
async def list_messages(
    id_card: str = "", db: AsyncSession = Depends(get_db), current_user: SessionUser = Depends(cloud_user)
):
    messages = await cloud_service.list_messages(db, current_user.userId, id_card)
    return {"result": [CloudMessageOut.model_validate(m) for m in messages]}


@router.delete("/{message_id}", response_model=DeletedMessageResult)
async def delete_message(
    message_id: str, db: AsyncSession = Depends(get_db), current_user: SessionUser = Depends(cloud_user)
):
    deleted = await cloud_service.delete_message(db, current_user.userId, message_id)
    return {"result": {"id": deleted}}


@router.post("", response_model=CloudMessageResult, status_code=status.HTTP_201_CREATED)
async def create_message(
    data: CloudMessageCreate,
    db: AsyncSession = Depends(get_db),
    _: SessionUser = Depends(require_permission(Permission.MANAGE_CONTENT)),
):
    message = await cloud_service.create_message(db, data)
    return {"result": CloudMessageOut.model_validate(message)}
