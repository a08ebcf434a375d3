"""
Exception types for the file storage service.

Every error the file API can report derives from FileStorageError. Each
class carries the HTTP status it maps to and a fixed public message; the
message handed to the constructor is for logs only and never reaches the
client.
"""

from fastapi import status


class FileStorageError(Exception):
    """
    Base exception for all file storage errors.

    Attributes:
        message: Internal, log-only description of the failure
        status_code: HTTP status the ingress layer responds with
        public_message: Short reason string returned to the client
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.public_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        """Convert exception to the error body returned by the API."""
        return {"error": self.public_message}


# ============================================================================
# Client errors
# ============================================================================


class ValidationFailed(FileStorageError):
    """The uploaded file was refused by the content validator."""

    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Invalid file"


class UnsupportedExtension(ValidationFailed):
    """The filename extension is missing or outside the allow-list."""

    public_message = "Unsupported file extension"


class UnsupportedContentType(ValidationFailed):
    """The sniffed content does not match a permitted type for the extension."""

    public_message = "Unsupported file type"


class InvalidFileId(ValidationFailed):
    """The path identifier is not a well-formed file id."""

    public_message = "Invalid file ID format"


class RecordNotFound(FileStorageError):
    """No metadata record exists for the identifier."""

    status_code = status.HTTP_404_NOT_FOUND
    public_message = "File not found"

    def __init__(self, file_id=None, message: str | None = None):
        self.file_id = file_id
        super().__init__(message or f"File {file_id} not found")


class PayloadTooLarge(FileStorageError):
    """The request body exceeds the configured upload ceiling."""

    status_code = status.HTTP_413_CONTENT_TOO_LARGE
    public_message = "File too large"


# ============================================================================
# Server errors
# ============================================================================


class StorageWriteFailed(FileStorageError):
    """Writing a blob to the object store failed."""

    public_message = "Failed to store file"


class StorageDeleteFailed(FileStorageError):
    """Removing a blob from the object store failed."""

    public_message = "Failed to delete file"


class StorageReadFailed(FileStorageError):
    """Generating an access URL for a blob failed."""

    public_message = "Failed to get file URL"


class MetadataReadFailed(FileStorageError):
    """Reading a metadata record failed for a reason other than absence."""

    public_message = "Failed to get file metadata"


class MetadataWriteFailed(FileStorageError):
    """Inserting a metadata record failed."""

    public_message = "Failed to save file metadata"


class MetadataUpdateFailed(FileStorageError):
    """Updating a metadata record in place failed."""

    public_message = "Failed to update file metadata"


class MetadataDeleteFailed(FileStorageError):
    """Removing a metadata record failed."""

    public_message = "Failed to delete file metadata"


class CompensationFailed(FileStorageError):
    """
    A rollback step failed.

    Only ever logged; the caller still sees the error that triggered the
    rollback.
    """

    public_message = "Failed to roll back partial write"
