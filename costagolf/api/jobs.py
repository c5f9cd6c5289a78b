"""
Scheduled job endpoints for Cloud Scheduler integration.

The hold and price sweeps normally run on in-process timers. On platforms
that idle the container between requests those timers may not fire, so the
same sweeps can be triggered from Cloud Scheduler. Calls are secured with an
OIDC token (preferred) or a legacy API key.
"""

import logging
from datetime import datetime

import pytz
from fastapi import APIRouter, Depends, Header, HTTPException
from google.auth import exceptions as google_auth_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token
from pydantic import BaseModel

from costagolf.api.deps import get_services
from costagolf.config import settings
from costagolf.services.container import Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


class SweepResult(BaseModel):
    executed_at: datetime
    expired_holds: int
    purged_holds: int
    expired_prices: int


def verify_oidc_token(authorization: str) -> bool:
    """
    Verify an OIDC bearer token from Cloud Scheduler.

    Returns True if the token is valid and, when a scheduler service account
    is configured, was issued to that account.
    """
    if not authorization.startswith("Bearer "):
        return False

    token = authorization[len("Bearer ") :]

    try:
        claims = id_token.verify_oauth2_token(token, google_requests.Request())  # type: ignore[no-untyped-call]
    except google_auth_exceptions.GoogleAuthError as e:
        logger.warning(f"OIDC token verification failed: {e}")
        return False
    except ValueError as e:
        logger.warning(f"OIDC token validation error: {e}")
        return False

    email = claims.get("email", "")
    if settings.scheduler_service_account and email != settings.scheduler_service_account:
        logger.warning(
            f"OIDC token email mismatch: expected {settings.scheduler_service_account}, got {email}"
        )
        return False

    logger.info(f"OIDC token verified for service account: {email}")
    return True


def verify_scheduler_auth(
    authorization: str | None = Header(None, description="Bearer token for OIDC authentication"),
    x_scheduler_api_key: str | None = Header(
        None, description="Legacy API key for scheduler authentication"
    ),
) -> None:
    """Accept an OIDC token first, then fall back to the X-Scheduler-API-Key header."""
    if authorization and verify_oidc_token(authorization):
        return

    if x_scheduler_api_key:
        if settings.scheduler_api_key and x_scheduler_api_key == settings.scheduler_api_key:
            return
        raise HTTPException(status_code=401, detail="Invalid scheduler API key")

    raise HTTPException(
        status_code=401,
        detail="Authentication required. Provide OIDC token or X-Scheduler-API-Key header.",
    )


@router.post("/sweep", response_model=SweepResult)
async def run_sweeps(
    _: None = Depends(verify_scheduler_auth),
    services: Services = Depends(get_services),
) -> SweepResult:
    """Expire overdue holds, purge old terminal holds and drop stale prices."""
    counts = services.run_sweeps()
    logger.info(f"Scheduled sweep: {counts}")
    return SweepResult(
        executed_at=datetime.now(pytz.timezone(settings.timezone)),
        expired_holds=counts["expiredHolds"],
        purged_holds=counts["purgedHolds"],
        expired_prices=counts["expiredPrices"],
    )
