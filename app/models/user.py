from sqlalchemy import Boolean, Column, DateTime, String

from app.core.database import Base
from app.core.utils import generate_uuid, utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=generate_uuid)
    nom = Column(String, nullable=False)
    prenom = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False)
    password = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    is_verified = Column(Boolean, nullable=False, default=False)
    # hashed one-time code, used for both email verification and password reset
    confirm = Column(String, nullable=True)
    confirm_expires = Column(DateTime(timezone=True), nullable=True)
    refresh_token = Column(String, nullable=True)
    role = Column(String, nullable=False, default="user")
