"""
Routes/endpoints for the Files API

HTTP   URI                              Action
----   ---                              ------
POST   /api/v1/upload                   Upload a file
GET    /api/v1/files/[id]               Retrieve a file's metadata
PUT    /api/v1/files/[id]               Replace a file's content
DELETE /api/v1/files/[id]               Delete a file
GET    /api/v1/files/[id]/download      Get a time-limited download URL
GET    /api/v1/health/storage           Check object store and database
"""

import os
import uuid
from fastapi import APIRouter, File, UploadFile, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from api.files.models import (
    FileRecordPublic,
    FileUrlResponse,
    HealthResponse,
    IncomingFile,
)
from api.files import services
from core.db import ping
from core.deps import (
    FileRepositoryDep,
    ObjectStoreDep,
    ReplaceValidatorDep,
    SessionDep,
    SettingsDep,
    UploadValidatorDep,
)
from core.exceptions import InvalidFileId, PayloadTooLarge
from core.logger import logger
from core.models import ErrorResponse
from core.storage import ObjectStoreError

router = APIRouter(tags=["File Endpoints"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def _parse_file_id(file_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(file_id)
    except ValueError as exc:
        raise InvalidFileId(f"Invalid file id {file_id!r}") from exc


def _incoming(file: UploadFile, max_size: int) -> IncomingFile:
    """Describe the uploaded part, enforcing the size ceiling"""
    size = file.size
    if size is None:
        file.file.seek(0, os.SEEK_END)
        size = file.file.tell()
        file.file.seek(0)
    if size > max_size:
        raise PayloadTooLarge(f"Upload of {size} bytes exceeds {max_size}")
    return IncomingFile(
        filename=file.filename or "",
        content_type=file.content_type,
        size=size,
        stream=file.file,
    )


@router.post(
    "/upload",
    response_model=FileUrlResponse,
    responses={**ERROR_RESPONSES, 413: {"model": ErrorResponse}},
)
def upload_file(
    settings: SettingsDep,
    object_store: ObjectStoreDep,
    repository: FileRepositoryDep,
    validator: UploadValidatorDep,
    file: UploadFile = File(..., description="File to upload"),
) -> FileUrlResponse:
    """
    Upload an image or video file.

    The content is checked against the allowed extensions and its sniffed
    type before anything is stored. Returns the file's access URL.
    """
    try:
        url = services.upload_file(
            object_store=object_store,
            repository=repository,
            validator=validator,
            incoming=_incoming(file, settings.MAX_UPLOAD_SIZE),
            staging_max_memory=settings.STAGING_MAX_MEMORY,
        )
    finally:
        file.file.close()
    return FileUrlResponse(url=url)


@router.get(
    "/files/{file_id}",
    response_model=FileRecordPublic,
    responses=ERROR_RESPONSES,
)
def get_file(repository: FileRepositoryDep, file_id: str) -> FileRecordPublic:
    """
    Retrieve the metadata record of a file.
    """
    return services.get_file(repository, _parse_file_id(file_id))


@router.put(
    "/files/{file_id}",
    response_model=FileUrlResponse,
    responses={**ERROR_RESPONSES, 413: {"model": ErrorResponse}},
)
def replace_file(
    settings: SettingsDep,
    object_store: ObjectStoreDep,
    repository: FileRepositoryDep,
    validator: ReplaceValidatorDep,
    file_id: str,
    file: UploadFile = File(..., description="New file content"),
) -> FileUrlResponse:
    """
    Replace the content of an existing file, keeping its id.

    The extension may change; the old object is removed and the new one
    stored under the id plus the new extension.
    """
    try:
        url = services.replace_file(
            object_store=object_store,
            repository=repository,
            validator=validator,
            file_id=_parse_file_id(file_id),
            incoming=_incoming(file, settings.MAX_UPLOAD_SIZE),
            staging_max_memory=settings.STAGING_MAX_MEMORY,
        )
    finally:
        file.file.close()
    return FileUrlResponse(url=url)


@router.delete(
    "/files/{file_id}",
    response_model=FileUrlResponse,
    responses=ERROR_RESPONSES,
)
def delete_file(
    object_store: ObjectStoreDep,
    repository: FileRepositoryDep,
    file_id: str,
) -> FileUrlResponse:
    """
    Delete a file's content and metadata.
    """
    parsed_id = _parse_file_id(file_id)
    services.delete_file(object_store, repository, parsed_id)
    return FileUrlResponse(url=f"File {parsed_id} deleted")


@router.get(
    "/files/{file_id}/download",
    response_model=FileUrlResponse,
    responses=ERROR_RESPONSES,
)
def get_download_url(
    object_store: ObjectStoreDep,
    repository: FileRepositoryDep,
    file_id: str,
) -> FileUrlResponse:
    """
    Get a presigned URL for downloading a file.
    """
    url = services.get_download_url(object_store, repository, _parse_file_id(file_id))
    return FileUrlResponse(url=url)


@router.get(
    "/health/storage",
    response_model=HealthResponse,
    tags=["health"],
    responses={503: {"model": HealthResponse}},
)
def storage_health(object_store: ObjectStoreDep, session: SessionDep):
    """
    Check that the object store and the database are reachable.
    """
    checks = {"object_store": "ok", "database": "ok"}
    try:
        object_store.healthcheck()
    except ObjectStoreError as exc:
        logger.error("Object store health check failed: %s", exc)
        checks["object_store"] = "unavailable"
    try:
        ping(session)
    except SQLAlchemyError as exc:
        logger.error("Database health check failed: %s", exc)
        checks["database"] = "unavailable"

    if all(value == "ok" for value in checks.values()):
        return HealthResponse(status="ok", checks=checks)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=HealthResponse(status="unavailable", checks=checks).model_dump(),
    )
