"""
Services for the Files API

Coordinates the content validator, the object store and the metadata
store. There is no transaction spanning the two stores: writes are
ordered (blob before metadata) and a failed metadata write is undone by
deleting the blob that was just written. Compensating deletes run once;
if one fails the orphaned key is logged and the original error stands.
"""

import logging
import os
import shutil
import tempfile
import uuid
from contextlib import contextmanager
from typing import BinaryIO, Iterator

from api.files.models import (
    FileRecord,
    FileRecordPublic,
    IncomingFile,
    utcnow,
)
from api.files.repository import FileRecordRepository, MetadataStoreError
from api.files.validation import Admission, ContentValidator
from core.exceptions import (
    CompensationFailed,
    MetadataDeleteFailed,
    MetadataReadFailed,
    MetadataUpdateFailed,
    MetadataWriteFailed,
    RecordNotFound,
    StorageDeleteFailed,
    StorageReadFailed,
    StorageWriteFailed,
)
from core.storage import ObjectNotFoundError, ObjectStore, ObjectStoreError

logger = logging.getLogger(__name__)

DEFAULT_STAGING_MAX_MEMORY = 16 << 20


def split_filename(filename: str) -> tuple[str, str]:
    """Split a client filename into (stem, extension), dropping any directories"""
    name = os.path.basename((filename or "").replace("\\", "/"))
    return os.path.splitext(name)


@contextmanager
def _staged(stream: BinaryIO, max_memory: int) -> Iterator[BinaryIO]:
    """
    Present the upload as a seekable stream positioned at its start.

    Seekable streams are used in place. Anything else is spooled to a
    temporary file that is closed when the block exits, however it exits.
    """
    if stream.seekable():
        stream.seek(0)
        yield stream
        return
    with tempfile.SpooledTemporaryFile(max_size=max_memory) as spool:
        shutil.copyfileobj(stream, spool)
        spool.seek(0)
        yield spool


def _find(repository: FileRecordRepository, file_id: uuid.UUID) -> FileRecord:
    try:
        return repository.find_by_id(file_id)
    except MetadataStoreError as exc:
        raise MetadataReadFailed(str(exc)) from exc


def _compensate(object_store: ObjectStore, object_key: str) -> None:
    """Best-effort removal of a blob whose metadata write failed"""
    try:
        object_store.delete(object_key)
    except ObjectNotFoundError:
        logger.warning("Compensating delete: %s already absent", object_key)
        return
    except ObjectStoreError as exc:
        failure = CompensationFailed(
            f"Could not remove {object_store.bucket}/{object_key}: {exc}"
        )
        logger.error("Orphaned blob left behind. %s", failure)
        return
    logger.info("Compensating delete removed %s", object_key)


def _record_fields(
    incoming: IncomingFile,
    admission: Admission,
    object_store: ObjectStore,
    object_key: str,
    url: str,
) -> dict:
    stem, _ = split_filename(incoming.filename)
    declared = incoming.content_type or None
    if declared and declared.split(";")[0].strip().lower() != admission.content_type:
        logger.info(
            "Declared type %s for %r differs from sniffed %s; blob stored as sniffed",
            declared,
            incoming.filename,
            admission.content_type,
        )
    return {
        "original_name": stem,
        "size": incoming.size,
        "content_type": admission.content_type,
        "declared_content_type": declared[:255] if declared else None,
        "bucket": object_store.bucket,
        "object_key": object_key,
        "uploaded_at": utcnow(),
        "url": url,
    }


def upload_file(
    object_store: ObjectStore,
    repository: FileRecordRepository,
    validator: ContentValidator,
    incoming: IncomingFile,
    staging_max_memory: int = DEFAULT_STAGING_MAX_MEMORY,
) -> str:
    """
    Store a new file and return its access URL.

    Raises:
        ValidationFailed: The file was refused; nothing was stored
        StorageWriteFailed: The blob write failed; no metadata was written
        MetadataWriteFailed: The metadata insert failed; the blob was
            removed again (best effort)
    """
    logger.info(
        "Upload attempt: filename=%s size=%d declared=%s",
        incoming.filename,
        incoming.size,
        incoming.content_type,
    )
    admission = validator.validate(incoming.filename, incoming.stream)

    file_id = uuid.uuid4()
    _, extension = split_filename(incoming.filename)
    object_key = FileRecord.build_object_key(file_id, extension)

    with _staged(incoming.stream, staging_max_memory) as staged:
        try:
            url = object_store.put(object_key, staged, admission.content_type)
        except ObjectStoreError as exc:
            raise StorageWriteFailed(str(exc)) from exc

        record = FileRecord(
            id=file_id,
            **_record_fields(incoming, admission, object_store, object_key, url),
        )
        try:
            repository.insert(record)
        except MetadataStoreError as exc:
            logger.error("Metadata insert for %s failed: %s", file_id, exc)
            _compensate(object_store, object_key)
            raise MetadataWriteFailed(str(exc)) from exc

    logger.info("File uploaded successfully: %s -> %s", file_id, url)
    return url


def replace_file(
    object_store: ObjectStore,
    repository: FileRecordRepository,
    validator: ContentValidator,
    file_id: uuid.UUID,
    incoming: IncomingFile,
    staging_max_memory: int = DEFAULT_STAGING_MAX_MEMORY,
) -> str:
    """
    Swap the blob behind an existing id and update its record in place.

    The old blob is removed before the new one is written, since the new
    key differs whenever the extension changes.

    Raises:
        ValidationFailed: The new file was refused; nothing was touched
        RecordNotFound: The id is unknown, or the record vanished before
            the update (the new blob is removed again)
        StorageDeleteFailed: The old blob could not be removed; nothing
            else was attempted
        StorageWriteFailed: The new blob write failed after the old blob
            was removed; the record still points at the removed key
        MetadataUpdateFailed: The update failed; the new blob was removed
            again (best effort)
    """
    logger.info(
        "Replace attempt: id=%s filename=%s size=%d",
        file_id,
        incoming.filename,
        incoming.size,
    )
    admission = validator.validate(incoming.filename, incoming.stream)
    old_key = _find(repository, file_id).object_key

    _, extension = split_filename(incoming.filename)
    new_key = FileRecord.build_object_key(file_id, extension)

    with _staged(incoming.stream, staging_max_memory) as staged:
        try:
            object_store.delete(old_key)
        except ObjectNotFoundError:
            logger.warning("Old blob %s already absent", old_key)
        except ObjectStoreError as exc:
            raise StorageDeleteFailed(str(exc)) from exc

        try:
            url = object_store.put(new_key, staged, admission.content_type)
        except ObjectStoreError as exc:
            logger.error(
                "Replacement blob for %s failed after %s was removed; "
                "record points at a missing object",
                file_id,
                old_key,
            )
            raise StorageWriteFailed(str(exc)) from exc

        fields = _record_fields(incoming, admission, object_store, new_key, url)
        try:
            repository.update(file_id, **fields)
        except RecordNotFound:
            logger.warning("Record %s removed during replace", file_id)
            _compensate(object_store, new_key)
            raise
        except MetadataStoreError as exc:
            logger.error("Metadata update for %s failed: %s", file_id, exc)
            _compensate(object_store, new_key)
            raise MetadataUpdateFailed(str(exc)) from exc

    logger.info("File replaced successfully: %s -> %s", file_id, url)
    return url


def delete_file(
    object_store: ObjectStore,
    repository: FileRecordRepository,
    file_id: uuid.UUID,
) -> None:
    """
    Remove a file's blob and then its record.

    A blob that is already gone is not an error. A record that disappears
    between lookup and delete (another delete won) is RecordNotFound.
    """
    record = _find(repository, file_id)

    try:
        object_store.delete(record.object_key)
    except ObjectNotFoundError:
        logger.warning("Blob %s already absent; removing record", record.object_key)
    except ObjectStoreError as exc:
        raise StorageDeleteFailed(str(exc)) from exc

    try:
        repository.delete(file_id)
    except MetadataStoreError as exc:
        raise MetadataDeleteFailed(str(exc)) from exc

    logger.info("File %s deleted", file_id)


def get_file(repository: FileRecordRepository, file_id: uuid.UUID) -> FileRecordPublic:
    """Return a file's metadata record"""
    record = _find(repository, file_id)
    return FileRecordPublic(**record.model_dump())


def get_download_url(
    object_store: ObjectStore,
    repository: FileRecordRepository,
    file_id: uuid.UUID,
    expires: int | None = None,
) -> str:
    """Issue a fresh time-limited URL for an existing file"""
    record = _find(repository, file_id)
    try:
        return object_store.presigned_url(record.object_key, expires)
    except ObjectStoreError as exc:
        raise StorageReadFailed(str(exc)) from exc
