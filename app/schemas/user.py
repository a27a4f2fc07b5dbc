import re
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, ValidationInfo, field_validator

NAME_RE = re.compile(r"^(?:[^\W\d_]|[\s_-])+$")


def check_password_strength(value: str) -> str:
    if len(value) < 8:
        raise ValueError("At least 8 characters")
    if not re.search(r"[A-Z]", value):
        raise ValueError("An uppercase letter is required")
    if not re.search(r"[a-z]", value):
        raise ValueError("A lowercase letter is required")
    if not re.search(r"[0-9]", value):
        raise ValueError("A digit is required")
    if not re.search(r"[^A-Za-z0-9]", value):
        raise ValueError("A special character is required")
    return value


class EmailRequest(BaseModel):
    email: EmailStr

    @field_validator("email", mode="after")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.strip().lower()


class SignupRequest(EmailRequest):
    nom: str
    prenom: str
    password: str
    confirm_password: str = Field(alias="confirmPassword")

    @field_validator("nom", "prenom")
    @classmethod
    def check_name(cls, v: str, info: ValidationInfo) -> str:
        v = re.sub(r"\s+", " ", v).strip()
        if len(v) < 2:
            raise ValueError("At least 2 characters")
        if not NAME_RE.match(v):
            raise ValueError("Letters, spaces, - or _ only")
        return v.upper() if info.field_name == "nom" else v.lower()

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return check_password_strength(v)

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, v: str, info: ValidationInfo) -> str:
        if "password" in info.data and v != info.data["password"]:
            raise ValueError("Passwords do not match")
        return v


class CodeRequest(EmailRequest):
    code: str = Field(min_length=1)


class LoginRequest(EmailRequest):
    password: str = Field(min_length=1)


class ResetPasswordRequest(CodeRequest):
    new_password: str = Field(alias="newPassword")

    @field_validator("new_password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return check_password_strength(v)


class UserResponse(BaseModel):
    email: str
    nom: str
    prenom: str
    role: str


class LoginResponse(UserResponse):
    message: str


class SignupResponse(BaseModel):
    sendMail: bool
    email: str


class MessageResponse(BaseModel):
    message: str
    success: Optional[bool] = None


class MeResponse(BaseModel):
    user: UserResponse


class ProfileResponse(BaseModel):
    message: str
    user: dict
