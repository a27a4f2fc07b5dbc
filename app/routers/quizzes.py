from fastapi import APIRouter, Depends, File, Form, Response, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import Permission, SessionUser, require_permission
from app.core.storage import BucketStorage, get_storage
from app.schemas.card import CardOut, CardResult, UploadResult
from app.schemas.quiz import (HistoryResponse, QuizImageDeleteRequest,
                              QuizResults, QuizUpdateRequest, SubmitRequest,
                              SubmitResponse)
from app.services import assets
from app.services import quizzes as quiz_service
from app.services.compensation import run_compensations

router = APIRouter()

learner = require_permission(Permission.SUBMIT_QUIZ)
admin_only = require_permission(Permission.MANAGE_CONTENT)
results_reader = require_permission(Permission.VIEW_RESULTS)


@router.get("/historique", response_model=HistoryResponse, response_model_exclude_none=True)
async def history(cardId: str, db: AsyncSession = Depends(get_db), current_user: SessionUser = Depends(learner)):
    return await quiz_service.history(db, current_user.userId, cardId.strip())


@router.get("/{card_id}/results", response_model=QuizResults)
async def results(card_id: str, db: AsyncSession = Depends(get_db), _: SessionUser = Depends(results_reader)):
    return await quiz_service.results(db, card_id)


@router.get("/{card_id}/results/export")
async def export_results(card_id: str, db: AsyncSession = Depends(get_db), _: SessionUser = Depends(results_reader)):
    body, filename = await quiz_service.export_csv(db, card_id)
    return Response(
        content=body,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("", response_model=SubmitResponse, response_model_exclude_none=True)
async def submit(data: SubmitRequest, db: AsyncSession = Depends(get_db), current_user: SessionUser = Depends(learner)):
    body, created = await quiz_service.submit(db, current_user.userId, data.card_id, data.reponses)
    if created:
        payload = SubmitResponse(**body).model_dump(mode="json", exclude_none=True)
        return JSONResponse(status_code=201, content=payload)
    return body


@router.patch("/{card_id}", response_model=CardResult)
async def update_quiz(
    card_id: str,
    data: QuizUpdateRequest,
    db: AsyncSession = Depends(get_db),
    storage: BucketStorage = Depends(get_storage),
    _: SessionUser = Depends(admin_only),
):
    card, cleanup = await quiz_service.update_quiz(db, card_id, data.quizz, data.eval_quizz, data.resultat_quizz)
    await run_compensations(storage, cleanup)
    return {"result": CardOut.model_validate(card)}


@router.post("/{card_id}/image", response_model=UploadResult)
async def upload_question_image(
    card_id: str,
    questionId: str = Form(""),
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    storage: BucketStorage = Depends(get_storage),
    _: SessionUser = Depends(admin_only),
):
    data = await file.read()
    card, name, url, cleanup = await assets.upload_quiz_image(
        db, storage, card_id, questionId.strip(), file.filename, data, file.content_type
    )
    await run_compensations(storage, cleanup)
    return {"result": CardOut.model_validate(card), "fileName": name, "publicUrl": url}


@router.delete("/{card_id}/image", response_model=CardResult)
async def delete_question_image(
    card_id: str,
    data: QuizImageDeleteRequest,
    db: AsyncSession = Depends(get_db),
    storage: BucketStorage = Depends(get_storage),
    _: SessionUser = Depends(admin_only),
):
    card, cleanup = await quiz_service.delete_question_image(db, card_id, data.question_id, data.image)
    await run_compensations(storage, cleanup)
    return {"result": CardOut.model_validate(card)}
