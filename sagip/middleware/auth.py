"""Caller identity dependencies for protected endpoints.

Moderators authenticate with the shared ``X-Moderator-Key`` header
(compared in constant time against ``SAGIP_MODERATOR_API_KEY``) and
identify themselves with ``X-Moderator-Id``; the id is what the audit
trail records.  Submitters are identified by ``X-User-Id``, which the
upstream auth gateway sets after verifying the session.
"""

from __future__ import annotations

import hmac

import structlog
from fastapi import Header, HTTPException, Request, Security
from fastapi.security import APIKeyHeader

from config.settings import settings

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_moderator_key_header = APIKeyHeader(name="X-Moderator-Key", auto_error=False)


async def require_moderator(
    request: Request,
    api_key: str | None = Security(_moderator_key_header),
    moderator_id: str | None = Header(default=None, alias="X-Moderator-Id"),
) -> str:
    """FastAPI dependency returning the authenticated moderator's id.

    Raises 401/403 on bad credentials and 503 when production has no
    key configured.

    Usage::

        @router.post("/{candidate_id}/approve")
        async def approve(moderator_id: str = Depends(require_moderator)): ...
    """
    configured_key = settings.moderator_api_key
    client_ip = request.client.host if request.client else "unknown"

    if not configured_key:
        if settings.is_production:
            logger.error("auth.moderator_key_not_configured_production")
            raise HTTPException(
                status_code=503,
                detail="Moderator authentication is not configured.",
            )
        logger.warning(
            "auth.moderator_key_not_configured",
            note="Moderator API key not set; allowing request in development mode",
        )
    else:
        if not api_key:
            logger.warning("auth.missing_moderator_key", path=request.url.path, client_ip=client_ip)
            raise HTTPException(
                status_code=401,
                detail="Missing X-Moderator-Key header.",
                headers={"WWW-Authenticate": "ApiKey"},
            )
        if not hmac.compare_digest(api_key.encode(), configured_key.encode()):
            logger.warning("auth.invalid_moderator_key", path=request.url.path, client_ip=client_ip)
            raise HTTPException(status_code=403, detail="Invalid moderator key.")

    if not moderator_id or not moderator_id.strip():
        raise HTTPException(
            status_code=401,
            detail="Missing X-Moderator-Id header.",
        )

    return moderator_id.strip()


async def require_submitter(
    user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> str:
    """FastAPI dependency returning the submitting account id."""
    if not user_id or not user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header.")
    return user_id.strip()
