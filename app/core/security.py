import enum
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Response
from fastapi.security import APIKeyCookie
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.config import settings
from app.core.errors import Forbidden, Unauthenticated
from app.models.user import User

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "jwt"
REFRESH_COOKIE = "refreshToken"

pwd_context = CryptContext(
    schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS
)
cookie_scheme = APIKeyCookie(name=ACCESS_COOKIE, auto_error=False)


class Role(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class Permission(str, enum.Enum):
    SUBMIT_QUIZ = "submit_quiz"
    USE_CLOUD = "use_cloud"
    MANAGE_CONTENT = "manage_content"
    VIEW_RESULTS = "view_results"
    MANAGE_USERS = "manage_users"


_LEARNER = {Permission.SUBMIT_QUIZ, Permission.USE_CLOUD}
_STAFF = _LEARNER | {Permission.MANAGE_CONTENT, Permission.VIEW_RESULTS, Permission.MANAGE_USERS}

ROLE_PERMISSIONS = {
    Role.USER: frozenset(_LEARNER),
    Role.ADMIN: frozenset(_STAFF),
    Role.SUPERADMIN: frozenset(_STAFF),
}


def permissions_for(role: str) -> frozenset:
    try:
        return ROLE_PERMISSIONS[Role(role)]
    except ValueError:
        return frozenset()


class SessionUser(BaseModel):
    userId: str
    email: str
    nom: str
    prenom: str
    role: str = Role.USER.value

    def can(self, permission: Permission) -> bool:
        return permission in permissions_for(self.role)


# ====== Hashing ======
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(plain, hashed)


# one-time codes share the password hashing scheme
hash_code = hash_password
verify_code = verify_password


# ====== Tokens ======
def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=15))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_refresh_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.REFRESH_SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_refresh_token(token: str) -> dict:
    return jwt.decode(token, settings.REFRESH_SECRET_KEY, algorithms=[settings.ALGORITHM])


def session_claims(user: User) -> dict:
    return {
        "sub": user.id,
        "userId": user.id,
        "email": user.email,
        "nom": user.nom,
        "prenom": user.prenom,
        "role": user.role,
    }


def _cookie_options() -> dict:
    return {
        "httponly": True,
        "secure": settings.is_production,
        "samesite": "none" if settings.is_production else "lax",
    }


def set_access_cookie(response: Response, token: str):
    # no max_age: the session cookie dies with the browser tab
    response.set_cookie(ACCESS_COOKIE, token, **_cookie_options())


def set_refresh_cookie(response: Response, token: str):
    response.set_cookie(
        REFRESH_COOKIE,
        token,
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 3600,
        **_cookie_options(),
    )


def clear_auth_cookies(response: Response):
    options = _cookie_options()
    response.delete_cookie(ACCESS_COOKIE, **options)
    response.delete_cookie(REFRESH_COOKIE, **options)


# ====== Lookups ======
async def get_user_by_email(email: str, db: AsyncSession):
    result = await db.execute(select(User).where(User.email == email))
    return result.scalars().first()


async def get_current_user(token: Optional[str] = Depends(cookie_scheme)) -> SessionUser:
    if not token:
        raise Unauthenticated("Missing session token")
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError:
        raise Unauthenticated("Session expired")
    except JWTError:
        raise Unauthenticated("Invalid session token")
    try:
        return SessionUser(**payload)
    except ValueError:
        raise Unauthenticated("Invalid session token")


def require_permission(permission: Permission):
    async def checker(current_user: SessionUser = Depends(get_current_user)) -> SessionUser:
        if not current_user.can(permission):
            logger.info("Denied %s to %s (role=%s)", permission.value, current_user.email, current_user.role)
            raise Forbidden("Access denied")
        return current_user

    return checker
