"""
Authentication module for API access control.

Provides:
- API key authentication (X-API-Key); disabled when AUTH_API_KEY is unset
- Caller identity from the X-User-Id header
- Cron secret verification (Authorization: Bearer <CRON_SECRET>)
- Transcription webhook token verification
"""

import logging
import secrets

from fastapi import Header, HTTPException, Query, Security, status
from fastapi.security import APIKeyHeader

from .config import config

logger = logging.getLogger(__name__)

# Header name for the API key
API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)


def verify_api_key(api_key: str | None = Security(API_KEY_HEADER)) -> str:
    """
    Verify the API key from request headers.

    If AUTH_API_KEY is not configured in the environment, authentication
    is disabled and all requests are allowed (for local development).

    Returns:
        The validated API key

    Raises:
        HTTPException: If authentication is enabled and the key is missing or invalid
    """
    configured_key = config.AUTH_API_KEY

    # If no auth key is configured, skip authentication (local dev mode)
    if not configured_key:
        return ""

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide X-API-Key header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    # Use constant-time comparison to prevent timing attacks
    if not secrets.compare_digest(api_key, configured_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    return api_key


def get_current_user(x_user_id: str | None = Header(default=None)) -> int:
    """
    Caller's user ID from the X-User-Id header.

    Raises:
        HTTPException: 401 if the header is missing or not an integer
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    try:
        return int(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-User-Id header",
        )


def verify_cron_secret(authorization: str | None = Header(default=None)) -> None:
    """
    Verify a scheduled job call carries ``Bearer <CRON_SECRET>``.

    Raises:
        HTTPException: 500 if CRON_SECRET is not configured, 401 on mismatch
    """
    cron_secret = config.CRON_SECRET
    if not cron_secret:
        logger.error("CRON_SECRET not configured")
        raise HTTPException(status_code=500, detail="Server misconfigured")

    expected = f"Bearer {cron_secret}"
    if not secrets.compare_digest((authorization or "").encode(), expected.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def verify_webhook_token(token: str | None = Query(default=None)) -> None:
    """
    Verify the transcription webhook's shared token query parameter.

    Raises:
        HTTPException: 500 if ASSEMBLYAI_WEBHOOK_TOKEN is unset, 401 on mismatch
    """
    expected = config.ASSEMBLYAI_WEBHOOK_TOKEN
    if not expected:
        logger.error("ASSEMBLYAI_WEBHOOK_TOKEN not configured")
        raise HTTPException(status_code=500, detail="Server misconfigured")
    if not token or not secrets.compare_digest(token.encode(), expected.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook token")


def generate_api_key() -> str:
    """Generate a secure random API key."""
    return secrets.token_urlsafe(32)
