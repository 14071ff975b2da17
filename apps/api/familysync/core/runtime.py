from __future__ import annotations

from fastapi import Request

from familysync.core.config import Settings
from familysync.services.directory import DirectoryService, InMemoryDirectoryService
from familysync.services.directory_http import HttpDirectoryService
from familysync.services.family_sync import FamilyDirectorySync


def build_directory(settings: Settings) -> DirectoryService:
    if settings.directory_mode == "http":
        return HttpDirectoryService(settings)
    if settings.directory_mode == "memory":
        return InMemoryDirectoryService(account_id="local-account", account_fields={"displayName": "Local User"})
    raise RuntimeError(f"unknown FAMILYSYNC_DIRECTORY_MODE: {settings.directory_mode}")


def build_family_sync(settings: Settings, directory: DirectoryService | None = None) -> FamilyDirectorySync:
    return FamilyDirectorySync(
        directory or build_directory(settings),
        record_type=settings.member_record_type,
        default_member_name=settings.default_member_name,
        invite_base_url=settings.invite_base_url,
    )


def get_family_sync(request: Request) -> FamilyDirectorySync:
    """FastAPI dependency: the instance created in the application lifespan."""
    return request.app.state.family_sync
