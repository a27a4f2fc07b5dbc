from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from app.schemas.card import FileRef, Flashcard, VideoRef


class QuizUpdateRequest(BaseModel):
    quizz: List[Any]
    eval_quizz: Optional[Literal["oui", "non", "attente"]] = Field(
        default=None, validation_alias=AliasChoices("evalQuizz", "eval_quizz")
    )
    resultat_quizz: Optional[bool] = Field(
        default=None, validation_alias=AliasChoices("resultatQuizz", "resultat_quizz")
    )

    @field_validator("eval_quizz", mode="before")
    @classmethod
    def strip(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


class QuizImageDeleteRequest(BaseModel):
    question_id: str = Field(validation_alias=AliasChoices("questionId", "question_id"), min_length=1)
    image: str = Field(min_length=1)


class SubmitRequest(BaseModel):
    card_id: str = Field(validation_alias=AliasChoices("cardId", "card_id"))
    reponses: List[Any] = Field(min_length=1)

    @field_validator("card_id")
    @classmethod
    def required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("cardId is required")
        return v


class SubmitResponse(BaseModel):
    message: str
    date: datetime
    alreadyDone: bool = False
    correctCount: Optional[int] = None
    totalQuestions: Optional[int] = None


class HistoryResponse(BaseModel):
    alreadyDone: bool
    date: Optional[datetime] = None
    correctCount: Optional[int] = None
    totalQuestions: Optional[int] = None


class QuizResults(BaseModel):
    totalSubmissions: int
    correctCounts: List[int]


# ====== Public card projection ======
class PublicQuizQuestion(BaseModel):
    id: str
    question: str = ""
    image: str = ""
    options: List[str] = []
    correct: Optional[int] = None


class PublicCardOut(BaseModel):
    id: str
    num: int
    repertoire: str
    order: int
    titre: str
    bg: str
    cloud: bool
    visible: bool
    presentation: List[str]
    plan: List[str]
    content: List[Any]
    contentVersion: int
    fichiers: List[FileRef]
    video: List[VideoRef]
    quizz: List[PublicQuizQuestion]
    flash: List[Flashcard]
    evalQuizz: str
    resultatQuizz: bool


class PublicCardListResult(BaseModel):
    result: List[PublicCardOut]
