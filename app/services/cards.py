"""Card aggregate: listing, creation, ordering and the embedded file/video lists."""
import logging
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Tuple, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import Conflict, NotFound, ValidationError
from app.core.utils import generate_uuid
from app.models.card import Card
from app.models.cloud_message import CloudMessage
from app.models.quiz_submission import QuizSubmission
from app.services.compensation import DeleteObject, DeletePrefix
from app.services.storage_paths import (card_object_key, card_prefix,
                                        is_safe_filename, resolve_insert_index,
                                        sanitize_segment)

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def get_card(db: AsyncSession, card_id: str, for_update: bool = False) -> Card:
    stmt = select(Card).where(Card.id == card_id)
    if for_update:
        stmt = stmt.with_for_update()
    res = await db.execute(stmt.execution_options(populate_existing=True))
    card = res.scalars().first()
    if not card:
        raise NotFound("Card not found.")
    return card


# ====== Listing ======
def public_view(card: Card) -> dict:
    """Learner-facing projection: hidden files dropped, answers only for practice quizzes."""
    questions = []
    for q in card.quizz or []:
        item = {
            "id": q.get("id", ""),
            "question": q.get("question") or "",
            "image": q.get("image") or "",
            "options": q.get("options") if isinstance(q.get("options"), list) else [],
        }
        if card.eval_quizz == "non":
            item["correct"] = q.get("correct")
        questions.append(item)
    return {
        "id": card.id,
        "num": card.num,
        "repertoire": card.repertoire,
        "order": card.order,
        "titre": card.titre,
        "bg": card.bg,
        "cloud": card.cloud,
        "visible": card.visible,
        "presentation": card.presentation or [],
        "plan": card.plan or [],
        "content": card.content or [],
        "contentVersion": card.content_version,
        "fichiers": [f for f in card.fichiers or [] if f and f.get("visible") is True],
        "video": card.video or [],
        "quizz": questions,
        "flash": card.flash or [],
        "evalQuizz": card.eval_quizz,
        "resultatQuizz": card.resultat_quizz,
    }


async def list_public(db: AsyncSession, repertoire: Optional[str] = None) -> List[dict]:
    stmt = select(Card).where(Card.visible.is_(True))
    if repertoire:
        stmt = stmt.where(Card.repertoire == repertoire)
    res = await db.execute(stmt.order_by(Card.order.desc(), Card.num.desc()))
    cards = res.scalars().all()
    if not cards:
        raise NotFound("No card found.")
    return [public_view(card) for card in cards]


async def list_admin(db: AsyncSession) -> List[Card]:
    res = await db.execute(select(Card).order_by(Card.order.desc(), Card.num.desc()))
    cards = res.scalars().all()
    if not cards:
        raise NotFound("No card found.")
    return list(cards)


# ====== Creation ======
async def retry_on_conflict(
    db: AsyncSession,
    attempt: Callable[[], Awaitable[T]],
    budget: int,
    conflict_detail: str,
) -> T:
    """Run ``attempt`` until it stops hitting a uniqueness violation.

    ``attempt`` must recompute whatever it allocates on each call; after
    ``budget`` retries the conflict is surfaced to the caller.
    """
    for tries in range(budget + 1):
        try:
            return await attempt()
        except IntegrityError:
            await db.rollback()
            if tries >= budget:
                raise Conflict(conflict_detail)
            logger.info("Uniqueness conflict, retrying (%d/%d)", tries + 1, budget)
    raise Conflict(conflict_detail)


async def next_positions(db: AsyncSession, repertoire: str) -> Tuple[int, int]:
    res = await db.execute(
        select(func.max(Card.num), func.max(Card.order)).where(Card.repertoire == repertoire)
    )
    max_num, max_order = res.one()
    next_num = int(max_num) + 1 if max_num is not None else 1
    next_order = int(max_order) + 1 if max_order is not None else 1
    return next_num, next_order


async def create_card(db: AsyncSession, repertoire: str, budget: Optional[int] = None) -> Card:
    repertoire = sanitize_segment(repertoire, "Directory")
    if not repertoire:
        raise ValidationError("Directory is missing.")

    async def attempt() -> Card:
        num, order = await next_positions(db, repertoire)
        card = Card(
            id=generate_uuid(),
            num=num,
            order=order,
            repertoire=repertoire,
            cloud=False,
            bg="",
            titre="",
            presentation=[],
            plan=[],
            content=[],
            content_version=1,
            fichiers=[],
            video=[],
            quizz=[],
            flash=[],
            eval_quizz="non",
            resultat_quizz=False,
            visible=False,
        )
        db.add(card)
        await db.commit()
        return card

    card = await retry_on_conflict(
        db,
        attempt,
        settings.CARD_CREATE_RETRIES if budget is None else budget,
        "A card with this number or order already exists.",
    )
    logger.info("Card %s created in %s (num=%s, order=%s)", card.id, repertoire, card.num, card.order)
    return card


# ====== Field mutators ======
async def update_fields(db: AsyncSession, card_id: str, **values: Any) -> Card:
    card = await get_card(db, card_id)
    for name, value in values.items():
        setattr(card, name, value)
    await db.commit()
    await db.refresh(card)
    return card


# ====== Ordering ======
async def list_directory(db: AsyncSession, repertoire: str) -> List[Card]:
    res = await db.execute(
        select(Card)
        .where(Card.repertoire == repertoire)
        .order_by(Card.order.desc(), Card.num.desc())
        .execution_options(populate_existing=True)
    )
    return list(res.scalars().all())


async def move_card(db: AsyncSession, card_id: str, direction: str) -> List[Card]:
    """Swap ``order`` with the neighbour; ``up`` goes toward the highest order."""
    current = await get_card(db, card_id)
    siblings = await list_directory(db, current.repertoire)
    index = next((i for i, c in enumerate(siblings) if c.id == current.id), None)
    if index is None:
        raise NotFound("Card not found.")

    neighbor_index = index - 1 if direction == "up" else index + 1
    if neighbor_index < 0 or neighbor_index >= len(siblings):
        raise ValidationError("Card already at the top." if direction == "up" else "Card already at the bottom.")

    neighbor = siblings[neighbor_index]
    current_order = current.order or 0
    neighbor_order = neighbor.order or 0
    # park the moving card on an unused value so the unique index holds at each step
    parking = min(c.order or 0 for c in siblings) - 1

    for target, value in ((current, parking), (neighbor, current_order), (current, neighbor_order)):
        await db.execute(
            update(Card)
            .where(Card.id == target.id)
            .values(order=value)
            .execution_options(synchronize_session=False)
        )
    await db.commit()
    logger.info("Card %s moved %s in %s", card_id, direction, current.repertoire)
    return await list_directory(db, current.repertoire)


# ====== Deletion ======
async def delete_card(db: AsyncSession, card_id: str) -> Tuple[Card, List]:
    card = await get_card(db, card_id)
    await db.execute(delete(QuizSubmission).where(QuizSubmission.card_id == card.id))
    await db.execute(delete(CloudMessage).where(CloudMessage.card_id == card.id))
    await db.delete(card)
    await db.commit()
    logger.info("Card %s deleted (%s/tag%s)", card.id, card.repertoire, card.num)

    cleanup = []
    try:
        cleanup.append(DeletePrefix(card_prefix(card.repertoire, card.num)))
    except ValidationError:
        logger.warning("Card %s has no usable storage prefix", card.id)
    return card, cleanup


# ====== Embedded lists ======
async def write_parts(db: AsyncSession, card: Card, **values: Any) -> Card:
    """Guarded single-row update on ``(id, repertoire, num)``."""
    res = await db.execute(
        update(Card)
        .where(Card.id == card.id, Card.repertoire == card.repertoire, Card.num == card.num)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        await db.rollback()
        raise NotFound("Card not found after update.")
    await db.commit()
    return await get_card(db, card.id)


def check_href(href: str) -> str:
    if not href:
        raise ValidationError("File name is missing.")
    if not is_safe_filename(href):
        raise ValidationError("Invalid file name.")
    return href


async def append_file(db: AsyncSession, card_id: str, entry: dict, position: Any = None) -> Card:
    card = await get_card(db, card_id, for_update=True)
    files = list(card.fichiers or [])
    if any(f.get("href") == entry["href"] for f in files):
        await db.rollback()
        raise Conflict("This file is already attached to the card.")
    files.insert(resolve_insert_index(len(files), position), entry)
    return await write_parts(db, card, fichiers=files)


async def remove_file(db: AsyncSession, card_id: str, href: str) -> Tuple[Card, List]:
    check_href(href)
    card = await get_card(db, card_id, for_update=True)
    key = card_object_key(card.repertoire, card.num, href)
    files = list(card.fichiers or [])
    if not any(f.get("href") == href for f in files):
        await db.rollback()
        raise NotFound("File not found in the card.")
    card = await write_parts(db, card, fichiers=[f for f in files if f.get("href") != href])
    return card, [DeleteObject(key)]


async def patch_file(
    db: AsyncSession,
    card_id: str,
    href: str,
    txt: Optional[str] = None,
    visible: Optional[bool] = None,
    hover: Optional[str] = None,
) -> Card:
    check_href(href)
    if txt is None and visible is None and hover is None:
        raise ValidationError("No change provided.")
    if txt is not None and not txt:
        raise ValidationError("The description is required.")

    card = await get_card(db, card_id, for_update=True)
    files = [dict(f) for f in card.fichiers or []]
    target = next((f for f in files if f.get("href") == href), None)
    if target is None:
        await db.rollback()
        raise NotFound("File not found in the card.")
    if txt is not None:
        target["txt"] = txt
    if visible is not None:
        target["visible"] = visible
    if hover is not None:
        target["hover"] = hover
    return await write_parts(db, card, fichiers=files)


def check_permutation(current: Iterable[str], proposed: List[str]) -> List[str]:
    """``proposed`` must list every current href exactly once, nothing else."""
    cleaned = []
    for href in proposed:
        href = href.strip() if isinstance(href, str) else ""
        if not href:
            raise ValidationError("Invalid file name in the given order.")
        if not is_safe_filename(href):
            raise ValidationError(f"Invalid file name: {href}.")
        cleaned.append(href)
    if len(set(cleaned)) != len(cleaned):
        raise ValidationError("Duplicate entry in the given order.")

    current = list(current)
    if not current:
        raise ValidationError("No file to reorder.")
    if len(cleaned) != len(current):
        raise ValidationError("Incomplete or invalid order.")
    if set(current) - set(cleaned):
        raise ValidationError("Every file must appear in the given order.")
    if set(cleaned) - set(current):
        raise ValidationError("Unknown file in the given order.")
    return cleaned


async def reorder_files(db: AsyncSession, card_id: str, hrefs: List[str]) -> Card:
    card = await get_card(db, card_id, for_update=True)
    files = [f for f in card.fichiers or [] if f and isinstance(f.get("href"), str)]
    try:
        order = check_permutation([f["href"] for f in files], hrefs)
    except ValidationError:
        await db.rollback()
        raise
    by_href = {f["href"]: f for f in files}
    return await write_parts(db, card, fichiers=[by_href[h] for h in order])


def clean_videos(videos: Any) -> List[dict]:
    if not isinstance(videos, list):
        return []
    return [
        {
            "txt": (v.get("txt") or "").strip() if isinstance(v, dict) else "",
            "href": (v.get("href") or "").strip() if isinstance(v, dict) else "",
        }
        for v in videos
    ]


async def add_video(db: AsyncSession, card_id: str, position: Any = None) -> Card:
    card = await get_card(db, card_id, for_update=True)
    videos = clean_videos(card.video)
    videos.insert(resolve_insert_index(len(videos), position), {"txt": "", "href": ""})
    return await write_parts(db, card, video=videos)


async def patch_video(
    db: AsyncSession, card_id: str, index: int, txt: Optional[str] = None, href: Optional[str] = None
) -> Card:
    if txt is None and href is None:
        raise ValidationError("No change provided.")
    card = await get_card(db, card_id, for_update=True)
    videos = clean_videos(card.video)
    if index >= len(videos):
        await db.rollback()
        raise NotFound("Video not found.")
    if txt is not None:
        videos[index]["txt"] = txt.strip()
    if href is not None:
        videos[index]["href"] = href.strip()
    return await write_parts(db, card, video=videos)


async def remove_video(db: AsyncSession, card_id: str, index: int) -> Card:
    card = await get_card(db, card_id, for_update=True)
    videos = list(card.video or [])
    if index >= len(videos):
        await db.rollback()
        raise NotFound("Video not found.")
    del videos[index]
    return await write_parts(db, card, video=videos)
