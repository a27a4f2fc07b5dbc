"""Cloud messages and the learners' personal upload folders.

Learner files live at ``<parent>/<repertoire>/<NomPrenom>___<file>``; a user
only ever sees and touches the files carrying their own prefix.
"""
import io
import logging
import re
import zipfile
from typing import List, Optional, Sequence, Tuple

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import Forbidden, NotFound, ValidationError
from app.core.security import SessionUser
from app.core.utils import generate_uuid, utcnow
from app.models.card import Card
from app.models.cloud_message import CloudMessage
from app.models.user import User
from app.schemas.cloud import CloudMessageCreate
from app.services.storage_paths import extension_of

logger = logging.getLogger(__name__)

PATH_COMPONENT_RE = re.compile(r"^[A-Za-z0-9_-]+$")
FILE_NAME_RE = re.compile(r"^[A-Za-z0-9._\- ]+$")
PATH_COMPONENT_MAX = 50
FILE_NAME_MAX = 100
OWNER_SEPARATOR = "___"

CLOUD_EXTENSIONS = frozenset({
    ".jpg", ".jpeg", ".png", ".pdf", ".doc", ".docx", ".xls", ".xlsx",
    ".txt", ".py", ".html", ".css", ".js",
})


# ====== Messages ======
async def list_messages(db: AsyncSession, user_id: str, card_id: str) -> List[CloudMessage]:
    card_id = (card_id or "").strip()
    if not card_id:
        raise ValidationError("Card id is missing.")
    res = await db.execute(
        select(CloudMessage)
        .where(CloudMessage.card_id == card_id, CloudMessage.user_id == user_id)
        .order_by(CloudMessage.date.desc())
    )
    return list(res.scalars().all())


async def delete_message(db: AsyncSession, user_id: str, message_id: str) -> str:
    res = await db.execute(
        select(CloudMessage).where(CloudMessage.id == message_id, CloudMessage.user_id == user_id)
    )
    message = res.scalars().first()
    if not message:
        raise NotFound("Message not found.")
    await db.delete(message)
    await db.commit()
    return message.id


async def create_message(db: AsyncSession, data: CloudMessageCreate) -> CloudMessage:
    res = await db.execute(
        select(User).where(User.nom == data.nom.upper(), User.prenom == data.prenom.lower())
    )
    user = res.scalars().first()
    if not user:
        raise NotFound("User not found.")
    card = await db.get(Card, data.id_card)
    if not card:
        raise NotFound("Card not found.")

    message = CloudMessage(
        id=generate_uuid(),
        user_id=user.id,
        card_id=card.id,
        date=utcnow(),
        filename=data.filename,
        message=data.message,
    )
    db.add(message)
    await db.commit()
    await db.refresh(message)
    logger.info("Cloud message for %s on card %s", user.email, card.id)
    return message


# ====== Learner folders ======
def validate_path_component(value: Optional[str], label: str) -> str:
    cleaned = value.strip() if isinstance(value, str) else ""
    if not cleaned:
        raise ValidationError(f"{label} is missing.")
    if len(cleaned) > PATH_COMPONENT_MAX:
        raise ValidationError(f"{label} is too long.")
    if not PATH_COMPONENT_RE.match(cleaned):
        raise ValidationError(f'{label} is invalid: only letters, digits, "-" and "_" are allowed.')
    return cleaned


def validate_file_name(value: Optional[str], label: str = "File name") -> str:
    cleaned = value.strip() if isinstance(value, str) else ""
    if not cleaned:
        raise ValidationError(f"{label} is missing.")
    if len(cleaned) > FILE_NAME_MAX:
        raise ValidationError(f"{label} is invalid: wrong length.")
    if not FILE_NAME_RE.match(cleaned) or ".." in cleaned:
        raise ValidationError(f'{label} is invalid: only letters, digits, ".", "-" and "_" are allowed.')
    return cleaned


def owner_prefix(user: SessionUser) -> str:
    return re.sub(r"\s+", "", user.nom) + re.sub(r"\s+", "", user.prenom) + OWNER_SEPARATOR


def folder(parent: str, repertoire: str) -> str:
    parent = validate_path_component(parent, "Parent folder")
    repertoire = validate_path_component(repertoire, "Directory name")
    if parent not in settings.CLOUD_PARENTS:
        raise Forbidden("Parent folder not allowed.")
    return f"{parent}/{repertoire}/"


async def list_files(storage, parent: str, repertoire: str, user: Optional[SessionUser] = None) -> List[dict]:
    """Files directly under the folder; only the caller's own when ``user`` is given."""
    prefix = folder(parent, repertoire)
    names = await storage.list(prefix, delimiter="/")
    files = []
    for name in names:
        base = name.rsplit("/", 1)[-1]
        if not base:
            continue
        if user is not None and not base.startswith(owner_prefix(user)):
            continue
        files.append({"name": name, "url": storage.public_url(name)})
    return files


async def upload_files(
    storage, user: SessionUser, parent: str, repertoire: str, files: Sequence[Tuple[str, bytes, Optional[str]]]
) -> List[dict]:
    prefix = folder(parent, repertoire)
    if not files:
        raise ValidationError("No file received.")

    checked = []
    for raw_name, data, content_type in files:
        original = validate_file_name(re.split(r"[\\/]", raw_name or "")[-1])
        if extension_of(original) not in CLOUD_EXTENSIONS:
            raise ValidationError(f"Invalid extension for: {original}")
        if len(data) > settings.CLOUD_MAX_FILE_BYTES:
            raise ValidationError(f"Invalid file size: {original}")
        checked.append((original, data, content_type))

    stored = []
    for original, data, content_type in checked:
        key = f"{prefix}{owner_prefix(user)}{original}"
        await storage.upload(key, data, content_type)
        stored.append({"name": original, "url": storage.public_url(key)})
    logger.info("%d cloud file(s) uploaded by %s to %s", len(stored), user.email, prefix)
    return stored


def _check_owner(user: SessionUser, file_name: str, as_admin: bool):
    if not as_admin and not file_name.startswith(owner_prefix(user)):
        raise Forbidden("Access denied")


async def delete_file(storage, user: SessionUser, parent: str, repertoire: str, file: str, as_admin: bool = False):
    prefix = folder(parent, repertoire)
    file = validate_file_name(file)
    _check_owner(user, file, as_admin)
    key = f"{prefix}{file}"
    if not await storage.exists(key):
        raise NotFound("File not found.")
    await storage.delete(key)
    logger.info("Cloud file %s deleted by %s", key, user.email)


async def rename_file(
    storage, user: SessionUser, parent: str, repertoire: str, old_name: str, new_name: str, as_admin: bool = False
):
    """Keep the owner part of ``old_name`` and replace the rest with ``new_name``."""
    prefix = folder(parent, repertoire)
    old_name = validate_file_name(old_name, "Old name")
    new_name = validate_file_name(new_name, "New name")
    _check_owner(user, old_name, as_admin)
    if extension_of(new_name) not in CLOUD_EXTENSIONS:
        raise ValidationError("Extension not allowed.")

    owner = old_name.split(OWNER_SEPARATOR)[0]
    old_key = f"{prefix}{old_name}"
    new_key = f"{prefix}{owner}{OWNER_SEPARATOR}{new_name}"
    if not await storage.exists(old_key):
        raise NotFound("File not found.")
    await storage.copy(old_key, new_key)
    await storage.delete(old_key)
    logger.info("Cloud file %s renamed to %s", old_key, new_key)


def _zip(entries: List[Tuple[str, bytes]]) -> bytes:
    out = io.BytesIO()
    with zipfile.ZipFile(out, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
        for name, data in entries:
            archive.writestr(name, data)
    return out.getvalue()


async def folder_archive(storage, parent: str, repertoire: str) -> Tuple[bytes, str]:
    prefix = folder(parent, repertoire)
    names = [n for n in await storage.list(prefix, delimiter="/") if n and not n.endswith("/")]
    if not names:
        raise NotFound("No file to archive in this folder.")
    entries = []
    for name in names:
        entries.append((name[len(prefix):] or name.rsplit("/", 1)[-1], await storage.read(name)))
    archive_name = re.sub(r"[^A-Za-z0-9._-]", "_", f"{repertoire.strip()}.zip")
    return await run_in_threadpool(_zip, entries), archive_name
