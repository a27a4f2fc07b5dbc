"""Quiz submissions, statistics and the admin side of the question list."""
import logging
from typing import Any, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.errors import Forbidden, NotFound, ValidationError
from app.core.utils import generate_uuid, utcnow
from app.models.card import Card
from app.models.quiz_submission import QuizSubmission
from app.services import scoring
from app.services.cards import get_card
from app.services.compensation import DeleteObject
from app.services.storage_paths import card_object_key, is_safe_filename

logger = logging.getLogger(__name__)


def sanitize_quizz(value: Any) -> Optional[List[dict]]:
    if not isinstance(value, list):
        return None
    questions = []
    for idx, q in enumerate(value):
        q = q if isinstance(q, dict) else {}
        options = q.get("options") if isinstance(q.get("options"), list) else []
        correct = q.get("correct")
        questions.append({
            "id": q.get("id") or f"q{idx + 1}",
            "question": q.get("question") if isinstance(q.get("question"), str) else "",
            "image": q.get("image") if isinstance(q.get("image"), str) else "",
            "options": ["" if o is None else o if isinstance(o, str) else f"{o}" for o in options],
            "correct": correct if isinstance(correct, int) and not isinstance(correct, bool) else None,
        })
    return questions


def reindex(questions: List[dict]) -> List[dict]:
    return [{**q, "id": f"q{idx + 1}"} for idx, q in enumerate(questions)]


def quiz_image_keys(card: Card, images) -> List[DeleteObject]:
    actions = []
    for image in images:
        if image and is_safe_filename(image):
            try:
                actions.append(DeleteObject(card_object_key(card.repertoire, card.num, image, quiz_image=True)))
            except ValidationError:
                logger.warning("Card %s has no usable storage prefix", card.id)
                return []
    return actions


# ====== Learner side ======
async def _find_submission(db: AsyncSession, user_id: str, card_id: str) -> Optional[QuizSubmission]:
    res = await db.execute(
        select(QuizSubmission).where(QuizSubmission.user_id == user_id, QuizSubmission.card_id == card_id)
    )
    return res.scalars().first()


def _already_done(existing: QuizSubmission, show_score: bool) -> Tuple[dict, bool]:
    body = {
        "message": "This quiz has already been recorded for this user.",
        "date": existing.date,
        "alreadyDone": True,
        **scoring.summarize(existing.reponses, show_score),
    }
    return body, False


async def submit(db: AsyncSession, user_id: str, card_id: str, answers: List[Any]) -> Tuple[dict, bool]:
    """Score and record one attempt; returns (body, created)."""
    card = await db.get(Card, card_id)
    if not card:
        raise NotFound("Unknown card.")
    if card.eval_quizz == "attente":
        raise Forbidden("Quiz not available.")
    if card.eval_quizz != "oui":
        raise Forbidden("This quiz is not tied to accounts.")

    show_score = bool(card.resultat_quizz)
    questions = card.quizz or []
    if len(questions) != len(answers):
        raise ValidationError("The number of answers does not match the quiz.")

    existing = await _find_submission(db, user_id, card_id)
    if existing:
        return _already_done(existing, show_score)

    scored = scoring.score_answers(questions, answers)
    submission = QuizSubmission(
        id=generate_uuid(), user_id=user_id, card_id=card_id, date=utcnow(), reponses=scored
    )
    db.add(submission)
    try:
        await db.commit()
    except IntegrityError:
        # a concurrent request recorded it first
        await db.rollback()
        existing = await _find_submission(db, user_id, card_id)
        if existing is None:
            raise
        return _already_done(existing, show_score)

    logger.info("Quiz %s submitted by %s", card_id, user_id)
    body = {
        "message": "Answers recorded.",
        "date": submission.date,
        "alreadyDone": False,
        **scoring.summarize(scored, show_score),
    }
    return body, True


async def history(db: AsyncSession, user_id: str, card_id: str) -> dict:
    card = await db.get(Card, card_id)
    if not card or card.eval_quizz != "oui":
        raise NotFound("Quiz not available.")
    existing = await _find_submission(db, user_id, card_id)
    if not existing:
        return {"alreadyDone": False}
    return {
        "alreadyDone": True,
        "date": existing.date,
        **scoring.summarize(existing.reponses, card.resultat_quizz),
    }


# ====== Admin side ======
async def _submissions(db: AsyncSession, card_id: str) -> List[QuizSubmission]:
    res = await db.execute(
        select(QuizSubmission)
        .where(QuizSubmission.card_id == card_id)
        .options(selectinload(QuizSubmission.user))
        .order_by(QuizSubmission.date)
    )
    return list(res.scalars().all())


async def results(db: AsyncSession, card_id: str) -> dict:
    card = await get_card(db, card_id)
    submissions = await _submissions(db, card_id)
    return scoring.aggregate_results(len(card.quizz or []), (s.reponses for s in submissions))


async def export_csv(db: AsyncSession, card_id: str) -> Tuple[str, str]:
    card = await get_card(db, card_id)
    total = len(card.quizz or [])
    rows = []
    for s in await _submissions(db, card_id):
        user = s.user
        rows.append((
            user.prenom if user else "",
            user.nom if user else "",
            scoring.correct_count(s.reponses),
            total or len(s.reponses or []),
        ))
    body = scoring.build_csv(card.titre or f"quizz_{card.id}", card.num, card.repertoire, rows)
    return body, scoring.export_filename(card.id, card.num, card.repertoire)


async def update_quiz(
    db: AsyncSession,
    card_id: str,
    quizz: List[Any],
    eval_quizz: Optional[str] = None,
    resultat_quizz: Optional[bool] = None,
) -> Tuple[Card, List[DeleteObject]]:
    card = await get_card(db, card_id)
    questions = sanitize_quizz(quizz)
    if questions is None:
        raise ValidationError("The quiz must be a list.")
    questions = reindex(questions)

    previous = {q["image"] for q in sanitize_quizz(card.quizz or []) or [] if q["image"]}
    kept = {q["image"] for q in questions if q["image"]}
    cleanup = quiz_image_keys(card, sorted(previous - kept))

    card.quizz = questions
    if eval_quizz is not None:
        card.eval_quizz = eval_quizz
    if resultat_quizz is not None:
        card.resultat_quizz = resultat_quizz
    await db.commit()
    await db.refresh(card)
    return card, cleanup


async def set_question_image(
    db: AsyncSession, card_id: str, question_id: str, filename: str
) -> Tuple[Card, List[DeleteObject]]:
    """Point ``question_id`` at ``filename``; the replaced image becomes cleanup."""
    card = await get_card(db, card_id)
    questions = sanitize_quizz(card.quizz or []) or []
    target = next((q for q in questions if q["id"] == question_id), None)
    if target is None:
        raise NotFound("Question not found.")
    cleanup = quiz_image_keys(card, [target["image"]]) if target["image"] != filename else []
    target["image"] = filename
    card.quizz = reindex(questions)
    await db.commit()
    await db.refresh(card)
    return card, cleanup


async def find_question(db: AsyncSession, card_id: str, question_id: str) -> Card:
    card = await get_card(db, card_id)
    questions = sanitize_quizz(card.quizz or []) or []
    if not any(q["id"] == question_id for q in questions):
        raise NotFound("Question not found.")
    return card


async def delete_question_image(
    db: AsyncSession, card_id: str, question_id: str, image: str
) -> Tuple[Card, List[DeleteObject]]:
    if not is_safe_filename(image):
        raise ValidationError("Invalid file name.")
    card = await get_card(db, card_id)
    questions = sanitize_quizz(card.quizz or []) or []
    target = next((q for q in questions if q["id"] == question_id and q["image"] == image), None)
    if target is None:
        raise NotFound("Image not found in the quiz.")
    cleanup = quiz_image_keys(card, [image])
    target["image"] = ""
    card.quizz = reindex(questions)
    await db.commit()
    await db.refresh(card)
    return card, cleanup
