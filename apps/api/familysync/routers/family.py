from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Query

from familysync.core.errors import MissingIdentity, NotRegistered
from familysync.core.runtime import get_family_sync
from familysync.models.member import RoleEnum
from familysync.schemas.family import (
    InviteCreate,
    InviteResponse,
    MemberListResponse,
    MemberResponse,
    RegisterSelfRequest,
    SyncStateResponse,
)
from familysync.services.access import require_can_add_members, require_can_remove_members
from familysync.services.family_sync import FamilyDirectorySync

router = APIRouter(prefix="/v1/family", tags=["family"])


async def _maybe_settle(sync: FamilyDirectorySync, task: asyncio.Task[None] | None, wait: bool) -> None:
    """When asked to wait and a task was scheduled, settle all in-flight work, chained calls included."""
    if wait and task is not None:
        await sync.settle()


@router.get("/state", response_model=SyncStateResponse)
async def get_state(sync: FamilyDirectorySync = Depends(get_family_sync)):
    return SyncStateResponse.from_snapshot(sync.snapshot())


@router.get("/members", response_model=MemberListResponse)
async def list_members(sync: FamilyDirectorySync = Depends(get_family_sync)):
    return MemberListResponse(items=[MemberResponse.from_member(m) for m in sync.members])


@router.post("/account/check", response_model=SyncStateResponse, status_code=202)
async def check_account(
    wait: bool = Query(default=False),
    sync: FamilyDirectorySync = Depends(get_family_sync),
):
    task = sync.check_account_status()
    await _maybe_settle(sync, task, wait)
    return SyncStateResponse.from_snapshot(sync.snapshot())


@router.post("/members/refresh", response_model=MemberListResponse, status_code=202)
async def refresh_members(
    wait: bool = Query(default=False),
    sync: FamilyDirectorySync = Depends(get_family_sync),
):
    task = sync.fetch_roster()
    await _maybe_settle(sync, task, wait)
    return MemberListResponse(items=[MemberResponse.from_member(m) for m in sync.members])


@router.post("/members/self", response_model=MemberResponse, status_code=202)
async def register_self(
    payload: RegisterSelfRequest,
    wait: bool = Query(default=False),
    sync: FamilyDirectorySync = Depends(get_family_sync),
):
    try:
        task = sync.register_self(RoleEnum(payload.role))
    except MissingIdentity as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from None
    await _maybe_settle(sync, task, wait)

    member = sync.current_member
    if member is None:
        # Only reachable if the member was removed while the write was in flight.
        raise HTTPException(status_code=409, detail="registration did not complete")
    return MemberResponse.from_member(member)


@router.delete("/members/{member_id}", status_code=204)
async def remove_member(
    member_id: str,
    wait: bool = Query(default=False),
    sync: FamilyDirectorySync = Depends(get_family_sync),
):
    require_can_remove_members(sync)
    task = sync.remove_member(member_id)
    await _maybe_settle(sync, task, wait)


@router.post("/invites", response_model=InviteResponse, status_code=201)
async def create_invite(
    payload: InviteCreate,
    sync: FamilyDirectorySync = Depends(get_family_sync),
):
    require_can_add_members(sync)
    try:
        invitation = sync.invite(payload.name, RoleEnum(payload.role))
    except NotRegistered as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from None
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from None
    return InviteResponse.from_invitation(invitation)
