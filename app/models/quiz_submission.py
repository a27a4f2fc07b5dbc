from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.core.utils import generate_uuid, utcnow


class QuizSubmission(Base):
    __tablename__ = "quiz_submissions"
    __table_args__ = (
        UniqueConstraint("user_id", "card_id", name="uq_quiz_submissions_user_card"),
    )

    id = Column(String, primary_key=True, default=generate_uuid)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    card_id = Column(String, ForeignKey("cards.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(DateTime(timezone=True), default=utcnow)
    # one 0/1 entry per question
    reponses = Column(JSON, nullable=False, default=list)

    user = relationship("User")
