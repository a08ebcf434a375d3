"""
Object store client

Thin wrapper around a boto3 S3 client bound to one bucket. Works against
AWS S3 and S3-compatible servers such as MinIO (set S3_ENDPOINT_URL).
"""

import logging
from typing import BinaryIO

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from core.config import Settings

log = logging.getLogger(__name__)

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
MISSING_BUCKET_CODES = {"404", "NoSuchBucket", "NotFound"}


class ObjectStoreError(Exception):
    """An object store call failed"""


class ObjectNotFoundError(ObjectStoreError):
    """The requested object does not exist"""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Object not found in storage: {key}")


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def get_s3_client(settings: Settings):
    """
    Build a boto3 S3 client from settings.

    Every call is bounded by the configured connect/read timeouts and
    botocore's own retries are disabled; retry policy belongs to callers.
    """
    config = Config(
        connect_timeout=settings.STORAGE_CONNECT_TIMEOUT,
        read_timeout=settings.STORAGE_READ_TIMEOUT,
        retries={"total_max_attempts": 1, "mode": "standard"},
        signature_version="s3v4",
    )
    return boto3.client(
        "s3",
        endpoint_url=settings.S3_ENDPOINT_URL,
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
        region_name=settings.AWS_REGION,
        config=config,
    )


class ObjectStore:
    """Blob storage keyed by object name within a single bucket"""

    def __init__(
        self,
        s3_client,
        bucket: str,
        endpoint_url: str | None = None,
        public_urls: bool = True,
        url_expiry: int = 7 * 24 * 60 * 60,
        region: str | None = None,
    ):
        self.client = s3_client
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.public_urls = public_urls
        self.url_expiry = url_expiry

    @classmethod
    def from_settings(cls, settings: Settings, s3_client=None) -> "ObjectStore":
        if s3_client is None:
            s3_client = get_s3_client(settings)
        return cls(
            s3_client,
            bucket=settings.STORAGE_BUCKET,
            endpoint_url=settings.S3_ENDPOINT_URL,
            public_urls=settings.STORAGE_PUBLIC_URLS,
            url_expiry=settings.PRESIGNED_URL_EXPIRY,
            region=settings.AWS_REGION,
        )

    def put(self, key: str, stream: BinaryIO, content_type: str) -> str:
        """
        Stream an object into the bucket and return its access URL.

        Raises:
            ObjectStoreError: If the upload fails
        """
        try:
            self.client.upload_fileobj(
                stream,
                self.bucket,
                key,
                ExtraArgs={"ContentType": content_type},
            )
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStoreError(f"Upload of {key} failed: {exc}") from exc
        log.info("Stored object %s/%s", self.bucket, key)
        return self.access_url(key)

    def exists(self, key: str) -> bool:
        """Check whether an object exists"""
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in NOT_FOUND_CODES:
                return False
            raise ObjectStoreError(f"Lookup of {key} failed: {exc}") from exc
        except BotoCoreError as exc:
            raise ObjectStoreError(f"Lookup of {key} failed: {exc}") from exc
        return True

    def delete(self, key: str) -> None:
        """
        Remove an object.

        S3 deletes succeed silently for missing keys, so the object is
        checked first to report absence.

        Raises:
            ObjectNotFoundError: If the object does not exist
            ObjectStoreError: On any other failure
        """
        if not self.exists(key):
            raise ObjectNotFoundError(key)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStoreError(f"Delete of {key} failed: {exc}") from exc
        log.info("Deleted object %s/%s", self.bucket, key)

    def presigned_url(self, key: str, expires: int | None = None) -> str:
        """Generate a GET URL valid for a bounded time"""
        if expires is None or expires <= 0:
            expires = self.url_expiry
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires,
            )
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStoreError(f"URL generation for {key} failed: {exc}") from exc

    def public_url(self, key: str) -> str:
        endpoint = (self.endpoint_url or "https://s3.amazonaws.com").rstrip("/")
        return f"{endpoint}/{self.bucket}/{key}"

    def access_url(self, key: str) -> str:
        """URL handed back to clients after a write"""
        if self.public_urls:
            return self.public_url(key)
        return self.presigned_url(key)

    def healthcheck(self) -> None:
        """
        Verify the bucket is reachable.

        Raises:
            ObjectStoreError: If the store cannot be reached
        """
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStoreError(f"Bucket {self.bucket} unreachable: {exc}") from exc

    def ensure_bucket(self) -> None:
        """Create the bucket if it does not exist yet"""
        try:
            self.client.head_bucket(Bucket=self.bucket)
            return
        except ClientError as exc:
            if _error_code(exc) not in MISSING_BUCKET_CODES:
                raise ObjectStoreError(f"Bucket check failed: {exc}") from exc
        except BotoCoreError as exc:
            raise ObjectStoreError(f"Bucket check failed: {exc}") from exc

        try:
            kwargs = {"Bucket": self.bucket}
            if self.region and self.region != "us-east-1":
                kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
            self.client.create_bucket(**kwargs)
        except ClientError as exc:
            if _error_code(exc) not in {"BucketAlreadyOwnedByYou", "BucketAlreadyExists"}:
                raise ObjectStoreError(f"Bucket creation failed: {exc}") from exc
        except BotoCoreError as exc:
            raise ObjectStoreError(f"Bucket creation failed: {exc}") from exc
        log.info("Created bucket %s", self.bucket)
