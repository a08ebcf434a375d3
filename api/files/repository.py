"""
Metadata store for file records
"""

import logging
import uuid
from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from api.files.models import FileRecord
from core.exceptions import RecordNotFound

log = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    "original_name",
    "size",
    "content_type",
    "declared_content_type",
    "bucket",
    "object_key",
    "uploaded_at",
    "url",
}


class MetadataStoreError(Exception):
    """A metadata store call failed"""


class FileRecordRepository:
    """One row per stored file, keyed by file id"""

    def __init__(self, session: Session):
        self.session = session

    def insert(self, record: FileRecord) -> FileRecord:
        try:
            self.session.add(record)
            self.session.commit()
            self.session.refresh(record)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise MetadataStoreError(f"Insert of {record.id} failed: {exc}") from exc
        log.debug("Inserted file record %s", record.id)
        return record

    def find_by_id(self, file_id: uuid.UUID) -> FileRecord:
        """
        Fetch a record.

        Raises:
            RecordNotFound: If no record has this id
            MetadataStoreError: On any other failure
        """
        try:
            record = self.session.get(FileRecord, file_id)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise MetadataStoreError(f"Lookup of {file_id} failed: {exc}") from exc
        if record is None:
            raise RecordNotFound(file_id)
        return record

    def update(self, file_id: uuid.UUID, **fields) -> None:
        """
        Overwrite fields of an existing record in one statement.

        Raises:
            RecordNotFound: If no record has this id
            MetadataStoreError: On any other failure
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")
        try:
            result = self.session.execute(
                update(FileRecord).where(FileRecord.id == file_id).values(**fields)
            )
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise MetadataStoreError(f"Update of {file_id} failed: {exc}") from exc
        if result.rowcount == 0:
            raise RecordNotFound(file_id)
        log.debug("Updated file record %s", file_id)

    def delete(self, file_id: uuid.UUID) -> None:
        """
        Remove a record in one statement.

        Raises:
            RecordNotFound: If no record had this id when the delete ran
            MetadataStoreError: On any other failure
        """
        try:
            result = self.session.execute(
                delete(FileRecord).where(FileRecord.id == file_id)
            )
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise MetadataStoreError(f"Delete of {file_id} failed: {exc}") from exc
        if result.rowcount == 0:
            raise RecordNotFound(file_id)
        log.debug("Deleted file record %s", file_id)
