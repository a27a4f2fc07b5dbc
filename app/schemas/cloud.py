from datetime import datetime
from typing import List

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class CloudMessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    id_user: str = Field(validation_alias=AliasChoices("user_id", "id_user"))
    id_card: str = Field(validation_alias=AliasChoices("card_id", "id_card"))
    date: datetime
    filename: str
    message: str


class CloudMessageResult(BaseModel):
    result: CloudMessageOut


class CloudMessageListResult(BaseModel):
    result: List[CloudMessageOut]


class CloudMessageCreate(BaseModel):
    id_card: str
    nom: str
    prenom: str
    message: str
    filename: str

    @field_validator("id_card", "nom", "prenom", "message", "filename")
    @classmethod
    def required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Field is required")
        return v


# ====== Learner cloud files ======
class FolderRequest(BaseModel):
    parent: str
    repertoire: str


class FileActionRequest(FolderRequest):
    file: str


class RenameRequest(FolderRequest):
    oldName: str
    newName: str


class StoredFile(BaseModel):
    name: str
    url: str


class UploadedFiles(BaseModel):
    result: bool
    files: List[StoredFile]


class ActionResult(BaseModel):
    success: bool
    message: str


class DeletedMessage(BaseModel):
    id: str


class DeletedMessageResult(BaseModel):
    result: DeletedMessage
