"""Uploads into the card's storage prefix.

Objects are written first and the card is updated afterwards. When the card
update fails the freshly written objects are removed; objects the card no
longer references come back to the caller as cleanup actions.
"""
import logging
from typing import Any, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import Conflict, NotFound, ValidationError
from app.core.images import make_blur_preview
from app.models.card import Card
from app.services import cards as card_service
from app.services import quizzes as quiz_service
from app.services.compensation import DeleteObject, run_compensations
from app.services.storage_paths import (BG_EXTENSIONS, FILE_EXTENSIONS,
                                        QUIZ_IMAGE_EXTENSIONS, blur_name,
                                        card_object_key, extension_of,
                                        is_safe_filename, unique_name)

logger = logging.getLogger(__name__)

MAX_FILE_LABEL = "100 MB"


def _check_size(size: Any, limit: int):
    if size is None or size <= 0:
        raise ValidationError("Invalid file size.")
    if size > limit:
        raise ValidationError(f"File too large ({MAX_FILE_LABEL} max).")


def _check_extension(extension: str, allowed) -> str:
    if not extension or extension not in allowed:
        raise ValidationError("File extension not allowed.")
    return extension


async def _store(storage, key: str, data: bytes, content_type: Optional[str]):
    await storage.upload(key, data, content_type)
    await storage.make_public(key)


async def upload_background(
    db: AsyncSession, storage, card_id: str, filename: str, data: bytes, content_type: Optional[str]
) -> Tuple[Card, str, str, List[DeleteObject]]:
    card = await card_service.get_card(db, card_id)
    if not data:
        raise ValidationError("Invalid upload.")
    _check_size(len(data), settings.MAX_FILE_BYTES)
    extension = _check_extension(extension_of(filename), BG_EXTENSIONS)

    _, name = unique_name(filename, extension, "background")
    key = card_object_key(card.repertoire, card.num, name)
    blur_key = card_object_key(card.repertoire, card.num, blur_name(name))

    await _store(storage, key, data, content_type)
    written = [DeleteObject(key)]
    preview = await make_blur_preview(data, extension)
    if preview:
        await _store(storage, blur_key, preview, content_type)
        written.append(DeleteObject(blur_key))

    previous = card.bg
    try:
        card = await card_service.update_fields(db, card_id, bg=name)
    except NotFound:
        await run_compensations(storage, written)
        raise

    cleanup = []
    if previous and previous != name and is_safe_filename(previous):
        cleanup.append(DeleteObject(card_object_key(card.repertoire, card.num, previous)))
        cleanup.append(DeleteObject(card_object_key(card.repertoire, card.num, blur_name(previous))))
    logger.info("Background of card %s replaced by %s", card.id, name)
    return card, name, storage.public_url(key), cleanup


async def upload_file(
    db: AsyncSession,
    storage,
    card_id: str,
    filename: str,
    data: bytes,
    content_type: Optional[str],
    description: str,
    hover: str = "",
    position: Any = None,
) -> Tuple[Card, str, str]:
    description = (description or "").strip()
    if not description:
        raise ValidationError("The description is required.")
    _check_size(len(data or b""), settings.MAX_FILE_BYTES)
    extension = _check_extension(extension_of(filename), FILE_EXTENSIONS)

    card = await card_service.get_card(db, card_id)
    _, name = unique_name(filename, extension)
    key = card_object_key(card.repertoire, card.num, name)
    await _store(storage, key, data, content_type)

    entry = {"txt": description, "href": name, "visible": True, "hover": (hover or "").strip()}
    try:
        card = await card_service.append_file(db, card_id, entry, position)
    except NotFound:
        await run_compensations(storage, [DeleteObject(key)])
        raise
    logger.info("File %s added to card %s", name, card.id)
    return card, name, storage.public_url(key)


async def sign_upload(
    db: AsyncSession, storage, card_id: str, raw_name: str, content_type: str, size: Any
) -> dict:
    if not raw_name:
        raise ValidationError("File name is missing.")
    _check_size(size, settings.MAX_FILE_BYTES)
    card = await card_service.get_card(db, card_id)
    extension = _check_extension(extension_of(raw_name), FILE_EXTENSIONS)

    _, name = unique_name(raw_name, extension)
    key = card_object_key(card.repertoire, card.num, name)
    content_type = content_type or "application/octet-stream"
    url = await storage.signed_upload_url(key, content_type, settings.SIGNED_URL_MINUTES)
    return {
        "url": url,
        "fileName": name,
        "objectPath": key,
        "contentType": content_type,
        "publicUrl": storage.public_url(key),
    }


async def confirm_upload(
    db: AsyncSession,
    storage,
    card_id: str,
    file_name: str,
    description: str,
    hover: str = "",
    position: Any = None,
) -> Tuple[Card, str, str]:
    """Register an object the client put through a signed URL."""
    if not description:
        raise ValidationError("The description is required.")
    card_service.check_href(file_name)
    _check_extension(extension_of(file_name), FILE_EXTENSIONS)

    card = await card_service.get_card(db, card_id)
    if any(f.get("href") == file_name for f in card.fichiers or []):
        raise Conflict("This file is already attached to the card.")

    key = card_object_key(card.repertoire, card.num, file_name)
    if not await storage.exists(key):
        raise NotFound("File not found in storage.")
    size = await storage.size(key)
    if size is not None and size > settings.MAX_FILE_BYTES:
        await run_compensations(storage, [DeleteObject(key)])
        raise ValidationError(f"File too large ({MAX_FILE_LABEL} max).")
    await storage.make_public(key)

    entry = {"txt": description, "href": file_name, "visible": True, "hover": hover or ""}
    try:
        card = await card_service.append_file(db, card_id, entry, position)
    except NotFound:
        await run_compensations(storage, [DeleteObject(key)])
        raise
    logger.info("Signed upload %s confirmed for card %s", file_name, card.id)
    return card, file_name, storage.public_url(key)


async def upload_quiz_image(
    db: AsyncSession,
    storage,
    card_id: str,
    question_id: str,
    filename: str,
    data: bytes,
    content_type: Optional[str],
) -> Tuple[Card, str, str, List[DeleteObject]]:
    if not question_id:
        raise ValidationError("questionId is required.")
    if not data:
        raise ValidationError("Invalid upload.")
    _check_size(len(data), settings.MAX_FILE_BYTES)
    extension = _check_extension(extension_of(filename), QUIZ_IMAGE_EXTENSIONS)
    card = await quiz_service.find_question(db, card_id, question_id)

    _, name = unique_name(filename, extension, "image")
    key = card_object_key(card.repertoire, card.num, name, quiz_image=True)
    await _store(storage, key, data, content_type)
    try:
        card, cleanup = await quiz_service.set_question_image(db, card_id, question_id, name)
    except NotFound:
        await run_compensations(storage, [DeleteObject(key)])
        raise
    return card, name, storage.public_url(key), cleanup
