"""
Define functions/aliases for dependency injection
"""
from collections.abc import Generator
from typing import Annotated, TypeAlias
from sqlmodel import Session
from fastapi import Depends

from core.config import Settings, get_settings
from core.db import get_session
from core.storage import ObjectStore, get_s3_client as build_s3_client
from api.files.repository import FileRecordRepository
from api.files.validation import ContentValidator

_s3_client = None


# Define db dependency
def get_db() -> Generator[Session, None, None]:
  yield from get_session()

def get_s3_client():
  """Shared boto3 client; boto3 clients are thread-safe"""
  global _s3_client
  if _s3_client is None:
    _s3_client = build_s3_client(get_settings())
  return _s3_client

def get_object_store(
  settings: Annotated[Settings, Depends(get_settings)],
  s3_client=Depends(get_s3_client),
) -> ObjectStore:
  return ObjectStore.from_settings(settings, s3_client=s3_client)

def get_file_repository(session: Annotated[Session, Depends(get_db)]) -> FileRecordRepository:
  return FileRecordRepository(session)

def get_upload_validator(
  settings: Annotated[Settings, Depends(get_settings)],
) -> ContentValidator:
  return ContentValidator(settings.UPLOAD_ALLOWED_TYPES)

def get_replace_validator(
  settings: Annotated[Settings, Depends(get_settings)],
) -> ContentValidator:
  return ContentValidator(settings.REPLACE_ALLOWED_TYPES)

SettingsDep: TypeAlias = Annotated[Settings, Depends(get_settings)]
SessionDep: TypeAlias = Annotated[Session, Depends(get_db)]
ObjectStoreDep: TypeAlias = Annotated[ObjectStore, Depends(get_object_store)]
FileRepositoryDep: TypeAlias = Annotated[FileRecordRepository, Depends(get_file_repository)]
UploadValidatorDep: TypeAlias = Annotated[ContentValidator, Depends(get_upload_validator)]
ReplaceValidatorDep: TypeAlias = Annotated[ContentValidator, Depends(get_replace_validator)]
