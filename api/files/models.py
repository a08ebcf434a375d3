"""
Models for the Files API
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import BinaryIO
from sqlmodel import SQLModel, Field
from pydantic import ConfigDict


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FileRecord(SQLModel, table=True):
    """
    Metadata record for one stored file.

    Exactly one blob lives in the object store at (bucket, object_key) for
    every row. The id is assigned once at upload and survives replaces.
    """
    __tablename__ = "filerecord"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    original_name: str = Field(max_length=255)  # Filename without extension
    size: int = Field(ge=0)  # Size in bytes
    content_type: str = Field(max_length=100)  # Sniffed and validated
    declared_content_type: str | None = Field(default=None, max_length=255)  # As sent by the client
    bucket: str = Field(max_length=255)
    object_key: str = Field(max_length=1024)  # id + extension
    uploaded_at: datetime = Field(default_factory=utcnow)
    url: str = Field(max_length=2048)

    model_config = ConfigDict(from_attributes=True)

    @staticmethod
    def build_object_key(file_id: uuid.UUID, extension: str) -> str:
        """Object key for a file id and its extension"""
        return f"{file_id}{extension}"


class FileRecordPublic(SQLModel):
    """Public representation of a file record"""

    id: uuid.UUID
    original_name: str
    size: int
    content_type: str
    declared_content_type: str | None = None
    bucket: str
    object_key: str
    uploaded_at: datetime
    url: str


class FileUrlResponse(SQLModel):
    """Response for upload, replace and delete"""

    url: str


class HealthResponse(SQLModel):
    """Health check response"""

    status: str
    checks: dict[str, str] | None = None


@dataclass
class IncomingFile:
    """An uploaded file as handed over by the ingress layer"""

    filename: str
    content_type: str | None
    size: int
    stream: BinaryIO
