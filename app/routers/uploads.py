from typing import List

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile

from app.core.security import Permission, SessionUser, require_permission
from app.core.storage import BucketStorage, get_storage
from app.schemas.cloud import (ActionResult, FileActionRequest, FolderRequest,
                               RenameRequest, StoredFile, UploadedFiles)
from app.services import cloud as cloud_service

router = APIRouter()

cloud_user = require_permission(Permission.USE_CLOUD)
admin_only = require_permission(Permission.MANAGE_CONTENT)


@router.post("", response_model=UploadedFiles)
async def upload_files(
    parent: str = Form(""),
    repertoire: str = Form(""),
    fichiers: List[UploadFile] = File(...),
    storage: BucketStorage = Depends(get_storage),
    current_user: SessionUser = Depends(cloud_user),
):
    files = [(f.filename, await f.read(), f.content_type) for f in fichiers]
    stored = await cloud_service.upload_files(storage, current_user, parent, repertoire, files)
    return {"result": True, "files": stored}


@router.post("/recup", response_model=List[StoredFile])
async def list_own_files(
    data: FolderRequest,
    storage: BucketStorage = Depends(get_storage),
    current_user: SessionUser = Depends(cloud_user),
):
    return await cloud_service.list_files(storage, data.parent, data.repertoire, current_user)


@router.post("/recupA", response_model=List[StoredFile])
async def list_all_files(
    data: FolderRequest, storage: BucketStorage = Depends(get_storage), _: SessionUser = Depends(admin_only)
):
    return await cloud_service.list_files(storage, data.parent, data.repertoire)


@router.post("/delete", response_model=ActionResult)
async def delete_own_file(
    data: FileActionRequest,
    storage: BucketStorage = Depends(get_storage),
    current_user: SessionUser = Depends(cloud_user),
):
    await cloud_service.delete_file(storage, current_user, data.parent, data.repertoire, data.file)
    return {"success": True, "message": "File deleted"}


@router.post("/deleteA", response_model=ActionResult)
async def delete_any_file(
    data: FileActionRequest,
    storage: BucketStorage = Depends(get_storage),
    current_user: SessionUser = Depends(admin_only),
):
    await cloud_service.delete_file(storage, current_user, data.parent, data.repertoire, data.file, as_admin=True)
    return {"success": True, "message": "File deleted"}


@router.post("/rename", response_model=ActionResult)
async def rename_own_file(
    data: RenameRequest,
    storage: BucketStorage = Depends(get_storage),
    current_user: SessionUser = Depends(cloud_user),
):
    await cloud_service.rename_file(
        storage, current_user, data.parent, data.repertoire, data.oldName, data.newName
    )
    return {"success": True, "message": "File renamed"}


@router.post("/renameA", response_model=ActionResult)
async def rename_any_file(
    data: RenameRequest,
    storage: BucketStorage = Depends(get_storage),
    current_user: SessionUser = Depends(admin_only),
):
    await cloud_service.rename_file(
        storage, current_user, data.parent, data.repertoire, data.oldName, data.newName, as_admin=True
    )
    return {"success": True, "message": "File renamed"}


@router.post("/downloadZipA")
async def download_folder(
    data: FolderRequest, storage: BucketStorage = Depends(get_storage), _: SessionUser = Depends(admin_only)
):
    archive, name = await cloud_service.folder_archive(storage, data.parent, data.repertoire)
    return Response(
        content=archive,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{name}"'},
    )
