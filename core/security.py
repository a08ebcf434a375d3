"""
Shared-secret check for protected endpoints
"""
import logging
import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from core.config import Settings, get_settings

log = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="Authorization", auto_error=False)


def extract_api_key(header_value: str | None) -> str | None:
    """
    Pull the key out of an Authorization header.

    Accepts the bare key or "Bearer <key>".
    """
    if not header_value:
        return None
    scheme, _, token = header_value.strip().partition(" ")
    if token and scheme.lower() == "bearer":
        return token.strip()
    return header_value.strip()


def verify_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    authorization: Annotated[str | None, Security(api_key_header)] = None,
) -> None:
    """
    Reject the request unless it carries the configured API key.

    Raises:
        HTTPException: 401 if the key is missing, wrong, or none is configured
    """
    expected = settings.API_KEY
    supplied = extract_api_key(authorization)
    if not expected:
        log.error("API_KEY is not configured; rejecting request")
    if (
        not expected
        or supplied is None
        or not secrets.compare_digest(supplied.encode(), expected.encode())
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
