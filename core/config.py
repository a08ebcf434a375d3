"""
Application Configuration
Add constants, secrets, env variables here
"""

from functools import lru_cache
import os
import json
import logging
from pathlib import Path
from pydantic import computed_field, PrivateAttr
from pydantic_settings import BaseSettings, SettingsConfigDict
import boto3
from botocore.exceptions import BotoCoreError, ClientError
from dotenv import load_dotenv

# Load .env file into os.environ so os.getenv() works correctly
# This must happen before Settings class is instantiated
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

log = logging.getLogger(__name__)

# Extension -> MIME types the sniffer may report for that extension
DEFAULT_UPLOAD_ALLOWED_TYPES: dict[str, list[str]] = {
    ".jpg": ["image/jpeg"],
    ".jpeg": ["image/jpeg"],
    ".png": ["image/png"],
    ".mp4": ["video/mp4"],
    ".mov": ["video/quicktime"],
    ".avi": ["video/x-msvideo", "video/avi"],
    ".mkv": ["video/x-matroska"],
}

DEFAULT_REPLACE_ALLOWED_TYPES: dict[str, list[str]] = {
    ".jpg": ["image/jpeg"],
    ".jpeg": ["image/jpeg"],
    ".png": ["image/png"],
    ".mp4": ["video/mp4"],
}


def get_secret(secret_name: str, region_name: str) -> dict:
    """
    Retrieve secrets from AWS Secrets Manager

    Args:
        secret_name: Name of the secret in Secrets Manager
        region_name: AWS region where secret is stored

    Returns:
        dict: Parsed secret value

    Raises:
        ClientError: If secret cannot be retrieved
    """
    session = boto3.session.Session()
    client = session.client(
        service_name='secretsmanager',
        region_name=region_name
    )
    get_secret_value_response = client.get_secret_value(
        SecretId=secret_name
    )
    # Parse and return the secret
    secret = get_secret_value_response['SecretString']
    return json.loads(
        secret.replace('\n', '')
    )


# Define settings class for univeral access
class Settings(BaseSettings):
    # Computed or constant values
    client_origin: str | None = os.getenv("client_origin")
    LOG_LEVEL: str = "INFO"

    # Cache for AWS Secrets Manager to avoid multiple API calls
    # Note: Must use PrivateAttr for Pydantic v2 private attributes
    _secret_cache: dict | None = PrivateAttr(default=None)

    def _get_config_value(
        self,
        env_var_name: str,
        secret_key_name: str | None = None,
        default: str | None = None
    ) -> str | None:
        """
        Get configuration value from environment variable or AWS Secrets Manager (with caching).

        Args:
            env_var_name: Environment variable name to check first
            secret_key_name: Key name in AWS Secrets (defaults to env_var_name if not provided)
            default: Default value to return if not found in env or secrets

        Returns:
            Configuration value, or default value if not found
        """
        # 1. Check environment variable first
        env_value = os.getenv(env_var_name)
        if env_value:
            return env_value

        # 2. Try AWS Secrets Manager, only when a secret is configured
        env_secret = os.getenv("ENV_SECRETS")
        if env_secret:
            if secret_key_name is None:
                secret_key_name = env_var_name
            if self._secret_cache is None:
                try:
                    self._secret_cache = get_secret(
                        env_secret, os.getenv("AWS_REGION", "us-east-1")
                    )
                except (BotoCoreError, ClientError, ValueError) as exc:
                    log.warning("Could not read secret %s: %s", env_secret, exc)
                    self._secret_cache = {}

            secret_value = self._secret_cache.get(secret_key_name)
            if secret_value is not None:
                return secret_value

        # 3. Return default value if provided
        return default

    # Shared secret expected in the Authorization header
    @computed_field
    @property
    def API_KEY(self) -> str | None:
        """Get the API key from env or secrets"""
        return self._get_config_value("API_KEY")

    # SQLAlchemy - Create db connection string
    @computed_field
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        """Build database URI from env or secrets, defaults to sqlite://"""
        return self._get_config_value("SQLALCHEMY_DATABASE_URI", default="sqlite://")

    # Object store credentials
    AWS_ACCESS_KEY_ID: str | None = os.getenv("AWS_ACCESS_KEY_ID")
    AWS_REGION: str = os.getenv("AWS_REGION", "us-east-1")

    @computed_field
    @property
    def AWS_SECRET_ACCESS_KEY(self) -> str | None:
        """Get the object store secret key from env or secrets"""
        return self._get_config_value("AWS_SECRET_ACCESS_KEY")

    # Object store location
    S3_ENDPOINT_URL: str | None = None
    STORAGE_BUCKET: str = "user-uploads"
    STORAGE_PUBLIC_URLS: bool = True
    PRESIGNED_URL_EXPIRY: int = 7 * 24 * 60 * 60
    STORAGE_CONNECT_TIMEOUT: float = 5.0
    STORAGE_READ_TIMEOUT: float = 60.0

    # Upload limits
    MAX_UPLOAD_SIZE: int = 1024 << 20  # 1 GiB
    STAGING_MAX_MEMORY: int = 16 << 20

    # Content validation allow-lists
    UPLOAD_ALLOWED_TYPES: dict[str, list[str]] = DEFAULT_UPLOAD_ALLOWED_TYPES
    REPLACE_ALLOWED_TYPES: dict[str, list[str]] = DEFAULT_REPLACE_ALLOWED_TYPES

    # Read environment variables from .env file, if it exists
    # extra='ignore' prevents validation errors from extra env vars
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Export settings
@lru_cache
def get_settings() -> Settings:
    """
    Get settings instance, cached for performance
    """
    return Settings()
