from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException

from familysync.core.config import settings
from familysync.core.runtime import get_family_sync
from familysync.services.family_sync import FamilyDirectorySync

router = APIRouter(prefix="/v1/admin", tags=["admin"])


def _require_internal_token(x_internal_admin_token: str | None) -> None:
    if not x_internal_admin_token or x_internal_admin_token != settings.internal_admin_token:
        raise HTTPException(status_code=401, detail="invalid internal admin token")


@router.post("/sync")
async def sync_roster(
    sync: FamilyDirectorySync = Depends(get_family_sync),
    x_internal_admin_token: str | None = Header(default=None, alias="X-Internal-Admin-Token"),
):
    _require_internal_token(x_internal_admin_token)

    sync.fetch_roster()
    await sync.settle()

    return {
        "members": len(sync.members),
        "pending": sum(1 for m in sync.members if m.is_pending),
        "last_synced_at": sync.last_synced_at.isoformat() if sync.last_synced_at else None,
        "last_error": str(sync.last_error) if sync.last_error else None,
    }
