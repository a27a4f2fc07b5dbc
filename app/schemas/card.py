from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import (AliasChoices, BaseModel, BeforeValidator, ConfigDict,
                      Field, field_validator)


def parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError("Expected true or false")


Flag = Annotated[bool, BeforeValidator(parse_flag)]
Position = Union[Literal["start", "end"], int, None]


def camel(name: str, alias: str):
    return Field(
        validation_alias=AliasChoices(name, alias),
        serialization_alias=alias,
    )


# ====== Embedded parts ======
class FileRef(BaseModel):
    txt: str = ""
    href: str = ""
    hover: str = ""
    visible: bool = True


class VideoRef(BaseModel):
    txt: str = ""
    href: str = ""


class QuizQuestion(BaseModel):
    id: str
    question: str = ""
    image: str = ""
    options: List[str] = []
    correct: Optional[int] = None


class Flashcard(BaseModel):
    id: str = ""
    question: str = ""
    imquestion: str = ""
    reponse: str = ""
    imreponse: str = ""


# ====== Responses ======
class CardOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    num: int
    repertoire: str
    order: int
    titre: str = ""
    bg: str = ""
    cloud: bool = False
    visible: bool = False
    presentation: List[str] = []
    plan: List[str] = []
    content: List[Any] = []
    content_version: int = camel("content_version", "contentVersion")
    fichiers: List[FileRef] = []
    video: List[VideoRef] = []
    quizz: List[QuizQuestion] = []
    flash: List[Flashcard] = []
    eval_quizz: str = camel("eval_quizz", "evalQuizz")
    resultat_quizz: bool = camel("resultat_quizz", "resultatQuizz")


class CardResult(BaseModel):
    result: CardOut


class CardListResult(BaseModel):
    result: List[CardOut]


class UploadResult(CardResult):
    fileName: str
    publicUrl: str


class DeletedCard(BaseModel):
    id: str
    num: int
    repertoire: str


class DeletedCardResult(BaseModel):
    result: DeletedCard


class SignedUpload(BaseModel):
    url: str
    fileName: str
    objectPath: str
    contentType: str
    publicUrl: str


class SignedUploadResult(BaseModel):
    result: SignedUpload


# ====== Requests ======
class CreateCardRequest(BaseModel):
    repertoire: str

    @field_validator("repertoire")
    @classmethod
    def strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Directory is required")
        return v


class TitleRequest(BaseModel):
    titre: str

    @field_validator("titre")
    @classmethod
    def required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title is required")
        return v


class BackgroundRequest(BaseModel):
    bg: str

    @field_validator("bg")
    @classmethod
    def required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("bg is required")
        return v


class VisibleRequest(BaseModel):
    visible: Flag


class CloudFlagRequest(BaseModel):
    cloud: Flag


def clean_string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        raise ValueError("Must be a list of strings")
    cleaned = []
    for item in value:
        if isinstance(item, bool):
            continue
        if isinstance(item, (int, float)):
            item = f"{item}"
        if isinstance(item, str) and item.strip():
            cleaned.append(item.strip())
    return cleaned


StringList = Annotated[List[str], BeforeValidator(clean_string_list)]


class PresentationRequest(BaseModel):
    presentation: StringList


class PlanRequest(BaseModel):
    plan: StringList


class ContentRequest(BaseModel):
    content: List[Any]
    content_version: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("content_version", "contentVersion"), ge=1
    )


class FlashRequest(BaseModel):
    flash: List[Flashcard]


class MoveRequest(BaseModel):
    direction: Literal["up", "down"]

    @field_validator("direction", mode="before")
    @classmethod
    def lower(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class FileDeleteRequest(BaseModel):
    href: str

    @field_validator("href")
    @classmethod
    def strip(cls, v: str) -> str:
        return v.strip()


class FilePatchRequest(FileDeleteRequest):
    txt: Optional[str] = None
    visible: Optional[Flag] = None
    hover: Optional[str] = None

    @field_validator("txt", "hover")
    @classmethod
    def strip_text(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if isinstance(v, str) else v


class FileReorderRequest(BaseModel):
    hrefs: List[str] = Field(validation_alias=AliasChoices("hrefs", "order"))


class FileSignRequest(BaseModel):
    name: str
    type: str = ""
    size: float

    @field_validator("name", "type")
    @classmethod
    def strip(cls, v: str) -> str:
        return v.strip()


class FileConfirmRequest(BaseModel):
    file_name: str = Field(validation_alias=AliasChoices("fileName", "file_name"))
    description: str = Field(default="", validation_alias=AliasChoices("description", "txt"))
    hover: str = ""
    position: Position = None

    @field_validator("file_name", "description", "hover")
    @classmethod
    def strip(cls, v: str) -> str:
        return v.strip()


class VideoAddRequest(BaseModel):
    position: Position = None


class VideoIndexRequest(BaseModel):
    index: int = Field(ge=0)


class VideoPatchRequest(VideoIndexRequest):
    txt: Optional[str] = None
    href: Optional[str] = None
