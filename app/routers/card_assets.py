from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import Permission, SessionUser, require_permission
from app.core.storage import BucketStorage, get_storage
from app.schemas.card import (CardOut, CardResult, FileConfirmRequest,
                              FileDeleteRequest, FilePatchRequest,
                              FileReorderRequest, FileSignRequest,
                              SignedUploadResult, UploadResult,
                              VideoAddRequest, VideoIndexRequest,
                              VideoPatchRequest)
from app.services import assets
from app.services import cards as card_service
from app.services.compensation import run_compensations

router = APIRouter()

admin_only = require_permission(Permission.MANAGE_CONTENT)


def upload_result(card, file_name: str, public_url: str):
    return {"result": CardOut.model_validate(card), "fileName": file_name, "publicUrl": public_url}


@router.post("/{card_id}/bg/upload", response_model=UploadResult)
async def upload_background(
    card_id: str,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    storage: BucketStorage = Depends(get_storage),
    _: SessionUser = Depends(admin_only),
):
    data = await file.read()
    card, name, url, cleanup = await assets.upload_background(
        db, storage, card_id, file.filename, data, file.content_type
    )
    await run_compensations(storage, cleanup)
    return upload_result(card, name, url)


@router.post("/{card_id}/files/sign", response_model=SignedUploadResult)
async def sign_file_upload(
    card_id: str,
    data: FileSignRequest,
    db: AsyncSession = Depends(get_db),
    storage: BucketStorage = Depends(get_storage),
    _: SessionUser = Depends(admin_only),
):
    signed = await assets.sign_upload(db, storage, card_id, data.name, data.type, data.size)
    return {"result": signed}


@router.post("/{card_id}/files/confirm", response_model=UploadResult)
async def confirm_file_upload(
    card_id: str,
    data: FileConfirmRequest,
    db: AsyncSession = Depends(get_db),
    storage: BucketStorage = Depends(get_storage),
    _: SessionUser = Depends(admin_only),
):
    card, name, url = await assets.confirm_upload(
        db, storage, card_id, data.file_name, data.description, data.hover, data.position
    )
    return upload_result(card, name, url)


@router.post("/{card_id}/files", response_model=UploadResult)
async def upload_file(
    card_id: str,
    file: UploadFile = File(...),
    description: str = Form(""),
    txt: str = Form(""),
    hover: str = Form(""),
    position: Optional[str] = Form(None),
    db: AsyncSession = Depends(get_db),
    storage: BucketStorage = Depends(get_storage),
    _: SessionUser = Depends(admin_only),
):
    data = await file.read()
    card, name, url = await assets.upload_file(
        db, storage, card_id, file.filename, data, file.content_type, description or txt, hover, position
    )
    return upload_result(card, name, url)


@router.delete("/{card_id}/files", response_model=CardResult)
async def delete_file(
    card_id: str,
    data: FileDeleteRequest,
    db: AsyncSession = Depends(get_db),
    storage: BucketStorage = Depends(get_storage),
    _: SessionUser = Depends(admin_only),
):
    card, cleanup = await card_service.remove_file(db, card_id, data.href)
    await run_compensations(storage, cleanup)
    return {"result": CardOut.model_validate(card)}


@router.patch("/{card_id}/files", response_model=CardResult)
async def patch_file(
    card_id: str, data: FilePatchRequest, db: AsyncSession = Depends(get_db), _: SessionUser = Depends(admin_only)
):
    card = await card_service.patch_file(db, card_id, data.href, data.txt, data.visible, data.hover)
    return {"result": CardOut.model_validate(card)}


@router.patch("/{card_id}/files/reorder", response_model=CardResult)
async def reorder_files(
    card_id: str, data: FileReorderRequest, db: AsyncSession = Depends(get_db), _: SessionUser = Depends(admin_only)
):
    card = await card_service.reorder_files(db, card_id, data.hrefs)
    return {"result": CardOut.model_validate(card)}


@router.post("/{card_id}/video", response_model=CardResult)
async def add_video(
    card_id: str, data: VideoAddRequest, db: AsyncSession = Depends(get_db), _: SessionUser = Depends(admin_only)
):
    card = await card_service.add_video(db, card_id, data.position)
    return {"result": CardOut.model_validate(card)}


@router.patch("/{card_id}/video", response_model=CardResult)
async def patch_video(
    card_id: str, data: VideoPatchRequest, db: AsyncSession = Depends(get_db), _: SessionUser = Depends(admin_only)
):
    card = await card_service.patch_video(db, card_id, data.index, data.txt, data.href)
    return {"result": CardOut.model_validate(card)}


@router.delete("/{card_id}/video", response_model=CardResult)
async def delete_video(
    card_id: str, data: VideoIndexRequest, db: AsyncSession = Depends(get_db), _: SessionUser = Depends(admin_only)
):
    card = await card_service.remove_video(db, card_id, data.index)
    return {"result": CardOut.model_validate(card)}
