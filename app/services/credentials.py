"""Account lifecycle: signup, email verification, login/refresh, password reset.

A user moves ``unverified -> verified`` once, by presenting the emailed code
before it expires. A verified user can ask for a reset code; the code simply
goes stale if unused.
"""
import logging
import secrets
from datetime import timedelta
from typing import Optional, Tuple

from jose import JWTError
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import (Conflict, InternalError, NotFound,
                             Unauthenticated, ValidationError)
from app.core.mailer import Mailer
from app.core.security import (create_access_token, create_refresh_token,
                               decode_refresh_token, get_user_by_email,
                               hash_code, hash_password, session_claims,
                               verify_code, verify_password)
from app.core.utils import as_aware, generate_uuid, utcnow
from app.models.cloud_message import CloudMessage
from app.models.quiz_submission import QuizSubmission
from app.models.user import User
from app.schemas.user import SignupRequest

logger = logging.getLogger(__name__)

CODE_ALPHABET = "ABCDEFGHIJKLMNPQRSTUVWXYZ123456789"


def generate_code(length: Optional[int] = None) -> str:
    length = length or settings.CODE_LENGTH
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def _code_expiry():
    return utcnow() + timedelta(minutes=settings.CODE_TTL_MINUTES)


def code_mail(prenom: Optional[str], code: str) -> Tuple[str, str]:
    greeting = f"Hello {prenom}," if prenom else "Hello,"
    text = (
        f"{greeting}\n\nYour verification code is: {code}\n"
        "The code is case sensitive.\n"
        f"It expires in {settings.CODE_TTL_MINUTES} minutes."
    )
    html = (
        '<div style="font-family: Arial, sans-serif; font-size:16px; line-height:1.6;">'
        f"<p>{greeting}</p><p>Your verification code is:</p>"
        f'<div style="font-size:28px; font-weight:bold; letter-spacing:3px;">{code}</div>'
        "<p>The code is case sensitive.</p>"
        f"<p>It expires in {settings.CODE_TTL_MINUTES} minutes.</p></div>"
    )
    return text, html


async def _send_code(mailer: Mailer, email: str, prenom: Optional[str], code: str, subject: str):
    text, html = code_mail(prenom, code)
    await mailer.send(email, subject, text, html)


async def _require_user(email: str, db: AsyncSession) -> User:
    user = await get_user_by_email(email, db)
    if not user:
        raise ValidationError("No account found for this email.")
    return user


def _check_code(user: User, code: str):
    if not user.confirm_expires or as_aware(user.confirm_expires) < utcnow():
        raise ValidationError("The code has expired. Please request a new one.")
    if not verify_code(code, user.confirm):
        raise ValidationError("Incorrect code.")


# ====== Signup ======
async def signup(data: SignupRequest, db: AsyncSession, mailer: Mailer) -> User:
    if await get_user_by_email(data.email, db):
        raise Conflict("This email is already in use")
    # names must stay distinct once spaces are removed (cloud folder prefix)
    res = await db.execute(
        select(User).where(
            func.replace(User.nom, " ", "") == data.nom.replace(" ", ""),
            func.replace(User.prenom, " ", "") == data.prenom.replace(" ", ""),
        )
    )
    if res.scalars().first():
        raise Conflict(f"User {data.nom} {data.prenom} is already registered")

    code = generate_code()
    user = User(
        id=generate_uuid(),
        nom=data.nom,
        prenom=data.prenom,
        email=data.email,
        password=hash_password(data.password),
        confirm=hash_code(code),
        confirm_expires=_code_expiry(),
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("This email is already in use")
    await db.refresh(user)

    try:
        await _send_code(mailer, user.email, user.prenom, code, "MathsApp sign up - email verification")
    except InternalError:
        await db.delete(user)
        await db.commit()
        logger.warning("Signup of %s rolled back, code could not be sent", user.email)
        raise
    logger.info("User %s signed up", user.email)
    return user


async def verify_email(email: str, code: str, db: AsyncSession):
    user = await _require_user(email, db)
    if user.is_verified:
        raise ValidationError("This account is already verified.")
    _check_code(user, code)
    user.is_verified = True
    user.confirm = None
    user.confirm_expires = None
    await db.commit()
    logger.info("User %s verified", email)


async def _reissue_code(user: User, db: AsyncSession, mailer: Mailer, subject: str):
    code = generate_code()
    user.confirm = hash_code(code)
    user.confirm_expires = _code_expiry()
    await db.commit()
    await _send_code(mailer, user.email, user.prenom, code, subject)


async def resend_code(email: str, db: AsyncSession, mailer: Mailer):
    user = await _require_user(email, db)
    if user.is_verified:
        raise ValidationError("This account is already verified.")
    await _reissue_code(user, db, mailer, "MathsApp sign up - email verification")


# ====== Password reset ======
async def forgot_password(email: str, db: AsyncSession, mailer: Mailer):
    user = await _require_user(email, db)
    if not user.is_verified:
        raise ValidationError("This account has not been verified yet.")
    await _reissue_code(user, db, mailer, "MathsApp - password reset")


async def resend_forgot_code(email: str, db: AsyncSession, mailer: Mailer):
    await forgot_password(email, db, mailer)


async def reset_password(email: str, code: str, new_password: str, db: AsyncSession):
    user = await _require_user(email, db)
    _check_code(user, code)
    user.password = hash_password(new_password)
    user.confirm = None
    user.confirm_expires = None
    await db.commit()
    logger.info("Password reset for %s", email)


# ====== Sessions ======
async def login(email: str, password: str, db: AsyncSession) -> Tuple[User, str, str]:
    user = await get_user_by_email(email, db)
    if not user or not verify_password(password, user.password) or not user.is_verified:
        raise Unauthenticated("Account not found or not verified")
    claims = session_claims(user)
    access = create_access_token(claims, timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    refresh = create_refresh_token({"sub": user.id, "userId": user.id})
    user.refresh_token = refresh
    await db.commit()
    logger.info("User %s logged in", email)
    return user, access, refresh


async def refresh_session(refresh_token: Optional[str], db: AsyncSession) -> str:
    """New access token, or Unauthenticated after revoking the stored token."""
    if not refresh_token:
        raise Unauthenticated("Missing refresh token")
    res = await db.execute(select(User).where(User.refresh_token == refresh_token))
    user = res.scalars().first()
    if not user:
        raise Unauthenticated("Session expired")
    try:
        payload = decode_refresh_token(refresh_token)
        if payload.get("userId") != user.id:
            raise JWTError("subject mismatch")
    except JWTError:
        user.refresh_token = None
        await db.commit()
        logger.info("Refresh token rejected for %s", user.email)
        raise Unauthenticated("Session expired")
    return create_access_token(
        session_claims(user), timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )


async def logout(refresh_token: Optional[str], db: AsyncSession):
    if not refresh_token:
        return
    await db.execute(
        update(User).where(User.refresh_token == refresh_token).values(refresh_token=None)
    )
    await db.commit()


# ====== Admin ======
async def delete_user(user_id: str, db: AsyncSession):
    user = await db.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    await db.execute(delete(QuizSubmission).where(QuizSubmission.user_id == user_id))
    await db.execute(delete(CloudMessage).where(CloudMessage.user_id == user_id))
    await db.delete(user)
    await db.commit()
    logger.info("User %s deleted", user.email)
