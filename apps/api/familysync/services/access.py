from __future__ import annotations

from fastapi import HTTPException

from familysync.models.member import Member
from familysync.services.family_sync import FamilyDirectorySync


def require_identity(sync: FamilyDirectorySync) -> str:
    if not sync.user_id:
        raise HTTPException(status_code=409, detail="account identity not resolved")
    return sync.user_id


def require_registered(sync: FamilyDirectorySync) -> Member:
    member = sync.current_member
    if member is None:
        raise HTTPException(status_code=403, detail="not a member of this family")
    return member


def require_can_add_members(sync: FamilyDirectorySync) -> Member:
    member = require_registered(sync)
    if not member.permissions.can_add_members:
        raise HTTPException(status_code=403, detail="role cannot add members")
    return member


def require_can_remove_members(sync: FamilyDirectorySync) -> Member:
    member = require_registered(sync)
    if not member.permissions.can_remove_members:
        raise HTTPException(status_code=403, detail="role cannot remove members")
    return member
