"""FastAPI authentication dependencies for LIFT API."""
import logging
import os
import secrets
from typing import Annotated

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader


API_KEY_HEADER = "X-LIFT-API-KEY"

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "API-Key"},
    )


async def require_api_key(
    api_key: Annotated[str | None, Security(api_key_header)] = None
) -> str:
    """Validate the caller's LIFT API key.

    Raises:
        RuntimeError: If LIFT_API_KEY is not configured
        HTTPException: 401 if the header is missing or does not match
    """
    expected_key = os.getenv("LIFT_API_KEY")

    if not expected_key:
        raise RuntimeError("LIFT_API_KEY environment variable not configured")

    if not api_key:
        logger.warning("Rejected request without %s header", API_KEY_HEADER)
        raise _unauthorized(f"Missing {API_KEY_HEADER} header")

    if not secrets.compare_digest(api_key.encode(), expected_key.encode()):
        logger.warning("Rejected request with invalid API key")
        raise _unauthorized("Invalid API key")

    return api_key
