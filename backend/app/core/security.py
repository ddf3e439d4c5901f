"""
Authorization gate for the trigger and admin endpoints.

Accepted, in order: the trusted invoker header (when TRUSTED_CRON_HEADER is set and the request
carries it), then the shared secret via Authorization: Bearer, X-Cron-Secret or ?key=.
"""
import hmac
import logging

from fastapi import HTTPException, Request

from app.config import settings

logger = logging.getLogger(__name__)


def _presented_secret(request: Request) -> str:
    auth = request.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return (request.headers.get("x-cron-secret") or request.query_params.get("key") or "").strip()


def require_trigger_auth(request: Request) -> None:
    """FastAPI dependency: 401 unless the caller is a trusted invoker or knows CRON_SECRET."""
    header = settings.trusted_cron_header
    if header and request.headers.get(header) is not None:
        return
    secret = settings.cron_secret
    presented = _presented_secret(request)
    if secret and presented and hmac.compare_digest(presented.encode(), secret.encode()):
        return
    logger.warning("Rejected trigger call to %s (missing or bad secret)", request.url.path)
    raise HTTPException(status_code=401, detail="Unauthorized")
