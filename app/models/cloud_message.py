from sqlalchemy import Column, DateTime, ForeignKey, String, Text

from app.core.database import Base
from app.core.utils import generate_uuid, utcnow


class CloudMessage(Base):
    __tablename__ = "cloud_messages"

    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    card_id = Column(String, ForeignKey("cards.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(DateTime(timezone=True), default=utcnow)
    filename = Column(String, nullable=False)
    message = Column(Text, nullable=False)
