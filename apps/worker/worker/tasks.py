import logging
import os

import httpx

from worker.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task
def refresh_family_roster():
    base = os.environ.get("FAMILYSYNC_API_BASE_URL", "http://api:8000/v1").rstrip("/")
    token = os.environ.get("FAMILYSYNC_INTERNAL_ADMIN_TOKEN", "")
    if not token:
        return {"job": "family_roster_refresh", "status": "skipped", "reason": "missing FAMILYSYNC_INTERNAL_ADMIN_TOKEN"}

    try:
        resp = httpx.post(f"{base}/admin/sync", headers={"X-Internal-Admin-Token": token}, timeout=60.0)
        resp.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("roster refresh failed: %s", exc)
        return {"job": "family_roster_refresh", "status": "error", "error": str(exc)}

    body = resp.json()
    if body.get("last_error"):
        logger.warning("roster refresh reported: %s", body["last_error"])
    return {
        "job": "family_roster_refresh",
        "status": "ok",
        "members": body.get("members", 0),
        "pending": body.get("pending", 0),
        "last_error": body.get("last_error"),
    }
