from sqlalchemy import JSON, Boolean, Column, Integer, String, UniqueConstraint

from app.core.database import Base
from app.core.utils import generate_uuid

EVAL_MODES = ("oui", "non", "attente")


class Card(Base):
    __tablename__ = "cards"
    __table_args__ = (
        UniqueConstraint("repertoire", "num", name="uq_cards_repertoire_num"),
        UniqueConstraint("repertoire", "order", name="uq_cards_repertoire_order"),
    )

    id = Column(String, primary_key=True, default=generate_uuid)
    num = Column(Integer, nullable=False)
    repertoire = Column(String, nullable=False, index=True)
    order = Column("order", Integer, nullable=False)

    titre = Column(String, nullable=False, default="")
    bg = Column(String, nullable=False, default="")
    cloud = Column(Boolean, nullable=False, default=False)
    visible = Column(Boolean, nullable=False, default=False)

    presentation = Column(JSON, nullable=False, default=list)
    plan = Column(JSON, nullable=False, default=list)
    content = Column(JSON, nullable=False, default=list)
    content_version = Column(Integer, nullable=False, default=1)

    # embedded parts owned by the card
    fichiers = Column(JSON, nullable=False, default=list)
    video = Column(JSON, nullable=False, default=list)
    quizz = Column(JSON, nullable=False, default=list)
    flash = Column(JSON, nullable=False, default=list)

    eval_quizz = Column(String, nullable=False, default="non")
    resultat_quizz = Column(Boolean, nullable=False, default=False)
