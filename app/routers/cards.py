from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import Permission, SessionUser, require_permission
from app.core.storage import BucketStorage, get_storage
from app.schemas.card import (BackgroundRequest, CardListResult, CardOut,
                              CardResult, CloudFlagRequest, ContentRequest,
                              CreateCardRequest, DeletedCardResult,
                              FlashRequest, MoveRequest, PlanRequest,
                              PresentationRequest, TitleRequest,
                              VisibleRequest)
from app.schemas.quiz import PublicCardListResult
from app.services import cards as card_service
from app.services.compensation import run_compensations

router = APIRouter()

admin_only = require_permission(Permission.MANAGE_CONTENT)


def card_result(card):
    return {"result": CardOut.model_validate(card)}


@router.get("", response_model=PublicCardListResult, response_model_exclude_unset=True)
async def list_cards(repertoire: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    return {"result": await card_service.list_public(db, repertoire)}


@router.get("/admin", response_model=CardListResult)
async def list_cards_admin(db: AsyncSession = Depends(get_db), _: SessionUser = Depends(admin_only)):
    cards = await card_service.list_admin(db)
    return {"result": [CardOut.model_validate(c) for c in cards]}


@router.post("/admin", response_model=CardResult, status_code=status.HTTP_201_CREATED)
async def create_card(
    data: CreateCardRequest, db: AsyncSession = Depends(get_db), _: SessionUser = Depends(admin_only)
):
    return card_result(await card_service.create_card(db, data.repertoire))


@router.patch("/{card_id}/title", response_model=CardResult)
async def set_title(
    card_id: str, data: TitleRequest, db: AsyncSession = Depends(get_db), _: SessionUser = Depends(admin_only)
):
    return card_result(await card_service.update_fields(db, card_id, titre=data.titre))


@router.patch("/{card_id}/visible", response_model=CardResult)
async def set_visible(
    card_id: str, data: VisibleRequest, db: AsyncSession = Depends(get_db), _: SessionUser = Depends(admin_only)
):
    return card_result(await card_service.update_fields(db, card_id, visible=data.visible))


@router.patch("/{card_id}/cloud", response_model=CardResult)
async def set_cloud(
    card_id: str, data: CloudFlagRequest, db: AsyncSession = Depends(get_db), _: SessionUser = Depends(admin_only)
):
    return card_result(await card_service.update_fields(db, card_id, cloud=data.cloud))


@router.patch("/{card_id}/presentation", response_model=CardResult)
async def set_presentation(
    card_id: str, data: PresentationRequest, db: AsyncSession = Depends(get_db), _: SessionUser = Depends(admin_only)
):
    return card_result(await card_service.update_fields(db, card_id, presentation=data.presentation))


@router.patch("/{card_id}/plan", response_model=CardResult)
async def set_plan(
    card_id: str, data: PlanRequest, db: AsyncSession = Depends(get_db), _: SessionUser = Depends(admin_only)
):
    return card_result(await card_service.update_fields(db, card_id, plan=data.plan))


@router.patch("/{card_id}/bg", response_model=CardResult)
async def set_background(
    card_id: str, data: BackgroundRequest, db: AsyncSession = Depends(get_db), _: SessionUser = Depends(admin_only)
):
    return card_result(await card_service.update_fields(db, card_id, bg=data.bg))


@router.patch("/{card_id}/content", response_model=CardResult)
async def set_content(
    card_id: str, data: ContentRequest, db: AsyncSession = Depends(get_db), _: SessionUser = Depends(admin_only)
):
    values = {"content": data.content}
    if data.content_version is not None:
        values["content_version"] = data.content_version
    return card_result(await card_service.update_fields(db, card_id, **values))


@router.patch("/{card_id}/flash", response_model=CardResult)
async def set_flash(
    card_id: str, data: FlashRequest, db: AsyncSession = Depends(get_db), _: SessionUser = Depends(admin_only)
):
    flash = [f.model_dump() for f in data.flash]
    return card_result(await card_service.update_fields(db, card_id, flash=flash))


@router.patch("/{card_id}/move", response_model=CardListResult)
async def move_card(
    card_id: str, data: MoveRequest, db: AsyncSession = Depends(get_db), _: SessionUser = Depends(admin_only)
):
    cards = await card_service.move_card(db, card_id, data.direction)
    return {"result": [CardOut.model_validate(c) for c in cards]}


@router.delete("/{card_id}", response_model=DeletedCardResult)
async def delete_card(
    card_id: str,
    db: AsyncSession = Depends(get_db),
    storage: BucketStorage = Depends(get_storage),
    _: SessionUser = Depends(admin_only),
):
    card, cleanup = await card_service.delete_card(db, card_id)
    await run_compensations(storage, cleanup)
    return {"result": {"id": card.id, "num": card.num, "repertoire": card.repertoire}}
