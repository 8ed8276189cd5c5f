"""
Shared-secret protection for the job trigger endpoints
"""

import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from repricer.core.config import Settings, get_settings


def verify_cron_secret(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Require `Authorization: Bearer <CRON_SECRET>` when a secret is configured.
    With no secret set the trigger endpoints are open (local development).
    """
    expected = settings.CRON_SECRET
    if not expected:
        return

    supplied = authorization or ""
    if not secrets.compare_digest(supplied.encode("utf8"), f"Bearer {expected}".encode("utf8")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


def require_cron_secret():
    """
    Dependency to require the cron secret
    Usage: @router.get("/", dependencies=[require_cron_secret()])
    """
    return Depends(verify_cron_secret)
