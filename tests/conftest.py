import io

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient
from sqlmodel import Session, create_engine, SQLModel
from sqlmodel.pool import StaticPool

from api.files.repository import FileRecordRepository
from api.files.validation import ContentValidator
from core.config import (
    DEFAULT_REPLACE_ALLOWED_TYPES,
    DEFAULT_UPLOAD_ALLOWED_TYPES,
    Settings,
    get_settings,
)
from core.deps import get_db, get_s3_client
from core.storage import ObjectStore
from main import app

API_KEY = "test-api-key"
BUCKET = "test-bucket"
ENDPOINT = "http://minio.test:9000"

# Minimal byte prefixes the magic database recognises
JPEG_BYTES = (
    b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
    + b"\x00" * 600
    + b"\xff\xd9"
)
PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR" + b"\x00" * 600
TEXT_BYTES = b"This is plain text, not an image.\n" * 30


class MockS3Client:
    """In-memory stand-in for the boto3 S3 calls the object store makes"""

    def __init__(self):
        self.buckets = {}  # {bucket_name: {key: {"Body": bytes, "ContentType": str}}}
        self.failures = {}  # {operation: error code}
        self.calls = []  # [(operation, key)]

    def setup_bucket(self, bucket: str, objects: dict | None = None):
        """
        Create a bucket, optionally pre-populated

        Args:
            bucket: S3 bucket name
            objects: {key: bytes}
        """
        self.buckets.setdefault(bucket, {})
        for key, body in (objects or {}).items():
            self.buckets[bucket][key] = {
                "Body": body,
                "ContentType": "application/octet-stream",
            }

    def simulate_error(self, operation: str, code: str = "InternalError"):
        """
        Make an operation raise ClientError

        Args:
            operation: boto3 method name, e.g. "upload_fileobj"
            code: S3 error code to report
        """
        self.failures[operation] = code

    def clear_errors(self):
        self.failures.clear()

    def _maybe_fail(self, operation: str):
        code = self.failures.get(operation)
        if code:
            raise ClientError(
                {"Error": {"Code": code, "Message": f"Simulated {code}"}},
                operation,
            )

    def _bucket(self, bucket: str, operation: str) -> dict:
        if bucket not in self.buckets:
            raise ClientError(
                {"Error": {"Code": "NoSuchBucket", "Message": "The specified bucket does not exist"}},
                operation,
            )
        return self.buckets[bucket]

    def objects(self, bucket: str = BUCKET) -> dict:
        return self.buckets.get(bucket, {})

    def upload_fileobj(self, Fileobj, Bucket: str, Key: str, ExtraArgs=None):
        self.calls.append(("upload_fileobj", Key))
        self._maybe_fail("upload_fileobj")
        objects = self._bucket(Bucket, "PutObject")
        objects[Key] = {
            "Body": Fileobj.read(),
            "ContentType": (ExtraArgs or {}).get("ContentType"),
        }

    def put_object(self, Bucket: str, Key: str, Body: bytes, ContentType: str = "binary/octet-stream"):
        self.calls.append(("put_object", Key))
        self._maybe_fail("put_object")
        self._bucket(Bucket, "PutObject")[Key] = {"Body": Body, "ContentType": ContentType}
        return {}

    def get_object(self, Bucket: str, Key: str):
        self.calls.append(("get_object", Key))
        self._maybe_fail("get_object")
        objects = self._bucket(Bucket, "GetObject")
        if Key not in objects:
            raise ClientError(
                {"Error": {"Code": "NoSuchKey", "Message": "The specified key does not exist."}},
                "GetObject",
            )
        obj = objects[Key]
        return {"Body": io.BytesIO(obj["Body"]), "ContentType": obj["ContentType"]}

    def head_object(self, Bucket: str, Key: str):
        self.calls.append(("head_object", Key))
        self._maybe_fail("head_object")
        objects = self._bucket(Bucket, "HeadObject")
        if Key not in objects:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        obj = objects[Key]
        return {"ContentLength": len(obj["Body"]), "ContentType": obj["ContentType"]}

    def delete_object(self, Bucket: str, Key: str):
        self.calls.append(("delete_object", Key))
        self._maybe_fail("delete_object")
        self._bucket(Bucket, "DeleteObject").pop(Key, None)
        return {}

    def head_bucket(self, Bucket: str):
        self._maybe_fail("head_bucket")
        if Bucket not in self.buckets:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadBucket")
        return {}

    def create_bucket(self, Bucket: str, **kwargs):
        self._maybe_fail("create_bucket")
        self.buckets.setdefault(Bucket, {})
        return {"Location": f"/{Bucket}"}

    def generate_presigned_url(self, ClientMethod: str, Params: dict, ExpiresIn: int = 3600):
        self._maybe_fail("generate_presigned_url")
        return (
            f"{ENDPOINT}/{Params['Bucket']}/{Params['Key']}"
            f"?X-Amz-Expires={ExpiresIn}&X-Amz-Signature=test"
        )


@pytest.fixture(name="test_settings")
def test_settings_fixture(monkeypatch):
    """Settings pointing at the mock bucket with a known API key"""
    monkeypatch.setenv("API_KEY", API_KEY)
    monkeypatch.delenv("ENV_SECRETS", raising=False)
    return Settings(
        STORAGE_BUCKET=BUCKET,
        S3_ENDPOINT_URL=ENDPOINT,
        STORAGE_PUBLIC_URLS=True,
        UPLOAD_ALLOWED_TYPES=DEFAULT_UPLOAD_ALLOWED_TYPES,
        REPLACE_ALLOWED_TYPES=DEFAULT_REPLACE_ALLOWED_TYPES,
    )


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(name="mock_s3_client")
def mock_s3_client_fixture():
    """Provide a mock S3 client with the test bucket created"""
    client = MockS3Client()
    client.setup_bucket(BUCKET)
    return client


@pytest.fixture(name="object_store")
def object_store_fixture(mock_s3_client: MockS3Client, test_settings: Settings):
    return ObjectStore.from_settings(test_settings, s3_client=mock_s3_client)


@pytest.fixture(name="repository")
def repository_fixture(session: Session):
    return FileRecordRepository(session)


@pytest.fixture(name="upload_validator")
def upload_validator_fixture(test_settings: Settings):
    return ContentValidator(test_settings.UPLOAD_ALLOWED_TYPES)


@pytest.fixture(name="replace_validator")
def replace_validator_fixture(test_settings: Settings):
    return ContentValidator(test_settings.REPLACE_ALLOWED_TYPES)


@pytest.fixture(name="auth_headers")
def auth_headers_fixture():
    return {"Authorization": API_KEY}


@pytest.fixture(name="client")
def client_fixture(
    session: Session,
    mock_s3_client: MockS3Client,
    test_settings: Settings,
):
    def get_db_override():
        return session

    def get_s3_client_override():
        return mock_s3_client

    def get_settings_override():
        return test_settings

    app.dependency_overrides[get_db] = get_db_override
    app.dependency_overrides[get_s3_client] = get_s3_client_override
    app.dependency_overrides[get_settings] = get_settings_override

    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
