"""
Define application startup and shutdown procedures
"""

import re
from contextlib import asynccontextmanager
from fastapi import FastAPI
from core.config import get_settings
from core.db import create_db_and_tables
from core.deps import get_s3_client
from core.logger import logger
from core.storage import ObjectStore

SENSITIVE_MARKERS = ("PASSWORD", "SECRET", "KEY_ID", "API_KEY")


def _log_setting(key: str, value):
    """Log a setting, masking sensitive values like passwords and secrets"""
    if any(marker in key.upper() for marker in SENSITIVE_MARKERS) and value is not None:
        logger.info("  %s: %s", key, "*****")
    elif "SQLALCHEMY_DATABASE_URI" in key and value is not None:
        # Mask password in database URI if present
        masked_value = re.sub(r"://(.*?):(.*?)@", r"://\1:*****@", value)
        logger.info("  %s: %s", key, masked_value)
    else:
        logger.info("  %s: %s", key, value)


# Handle startup/shutdown tasks
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("In lifespan...starting up")

    settings = get_settings()

    # Print configuration settings (mask sensitive info)
    logger.info("Configuration Settings:")
    for key, value in settings.model_dump().items():
        _log_setting(key, value)

    if not settings.API_KEY:
        logger.warning("API_KEY is not set; all protected endpoints will answer 401")

    logger.info("Initializing database...")
    create_db_and_tables()

    logger.info("Ensuring bucket %s exists...", settings.STORAGE_BUCKET)
    ObjectStore.from_settings(settings, s3_client=get_s3_client()).ensure_bucket()

    logger.info("In lifespan...yield")
    try:
        yield
    finally:
        # Shutdown
        logger.info("In lifespan...shutting down")
