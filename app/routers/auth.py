from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.errors import Unauthenticated
from app.core.mailer import Mailer, get_mailer
from app.core.security import (REFRESH_COOKIE, SessionUser, clear_auth_cookies,
                               get_current_user, set_access_cookie,
                               set_refresh_cookie)
from app.schemas.user import (CodeRequest, EmailRequest, LoginRequest,
                              LoginResponse, MeResponse, MessageResponse,
                              ResetPasswordRequest, SignupRequest,
                              SignupResponse)
from app.services import credentials

router = APIRouter()


@router.post("/signup", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    data: SignupRequest, db: AsyncSession = Depends(get_db), mailer: Mailer = Depends(get_mailer)
):
    user = await credentials.signup(data, db, mailer)
    return {"sendMail": True, "email": user.email}


@router.post("/verifmail", response_model=MessageResponse)
async def verify_email(data: CodeRequest, db: AsyncSession = Depends(get_db)):
    await credentials.verify_email(data.email, data.code, db)
    return {"message": "Email verified. You can now log in.", "success": True}


@router.post("/resend-code", response_model=MessageResponse)
async def resend_code(
    data: EmailRequest, db: AsyncSession = Depends(get_db), mailer: Mailer = Depends(get_mailer)
):
    await credentials.resend_code(data.email, db, mailer)
    return {"message": "A new code has been sent.", "success": True}


@router.post("/login", response_model=LoginResponse)
async def login(data: LoginRequest, response: Response, db: AsyncSession = Depends(get_db)):
    user, access, refresh = await credentials.login(data.email, data.password, db)
    set_access_cookie(response, access)
    set_refresh_cookie(response, refresh)
    return {
        "message": "Logged in",
        "email": user.email,
        "nom": user.nom,
        "prenom": user.prenom,
        "role": user.role,
    }


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    refresh_token: Optional[str] = Cookie(default=None, alias=REFRESH_COOKIE),
    db: AsyncSession = Depends(get_db),
):
    await credentials.logout(refresh_token, db)
    clear_auth_cookies(response)
    return {"message": "Logged out"}


@router.post("/refresh", response_model=MessageResponse)
async def refresh(
    response: Response,
    refresh_token: Optional[str] = Cookie(default=None, alias=REFRESH_COOKIE),
    db: AsyncSession = Depends(get_db),
):
    try:
        access = await credentials.refresh_session(refresh_token, db)
    except Unauthenticated as exc:
        # a raised exception would drop the cookie deletion
        rejected = JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
        clear_auth_cookies(rejected)
        return rejected
    set_access_cookie(response, access)
    return {"message": "Session refreshed"}


@router.post("/forgot", response_model=MessageResponse)
async def forgot_password(
    data: EmailRequest, db: AsyncSession = Depends(get_db), mailer: Mailer = Depends(get_mailer)
):
    await credentials.forgot_password(data.email, db, mailer)
    return {"message": "A reset code has been sent.", "success": True}


@router.post("/resend-forgot", response_model=MessageResponse)
async def resend_forgot_code(
    data: EmailRequest, db: AsyncSession = Depends(get_db), mailer: Mailer = Depends(get_mailer)
):
    await credentials.resend_forgot_code(data.email, db, mailer)
    return {"message": "A new reset code has been sent.", "success": True}


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(data: ResetPasswordRequest, db: AsyncSession = Depends(get_db)):
    await credentials.reset_password(data.email, data.code, data.new_password, db)
    return {"message": "Password updated.", "success": True}


@router.get("/me", response_model=MeResponse)
async def me(current_user: SessionUser = Depends(get_current_user)):
    return {"user": current_user.model_dump()}
