from datetime import datetime

from pydantic import BaseModel, Field

from familysync.models.member import Invitation, Member
from familysync.services.family_sync import SyncSnapshot

ROLE_PATTERN = "^(Owner|Admin|Member|Viewer)$"


class PermissionsResponse(BaseModel):
    can_add_car: bool
    can_edit_car: bool
    can_delete_car: bool
    can_add_members: bool
    can_remove_members: bool


class MemberResponse(BaseModel):
    id: str
    name: str
    role: str
    device_id: str
    is_active: bool
    is_pending: bool
    date_added: datetime
    permissions: PermissionsResponse

    @classmethod
    def from_member(cls, member: Member) -> "MemberResponse":
        perms = member.permissions
        return cls(
            id=member.id,
            name=member.name,
            role=member.role.value,
            device_id=member.device_id,
            is_active=member.is_active,
            is_pending=member.is_pending,
            date_added=member.date_added,
            permissions=PermissionsResponse(
                can_add_car=perms.can_add_car,
                can_edit_car=perms.can_edit_car,
                can_delete_car=perms.can_delete_car,
                can_add_members=perms.can_add_members,
                can_remove_members=perms.can_remove_members,
            ),
        )


class MemberListResponse(BaseModel):
    items: list[MemberResponse]


class SyncStateResponse(BaseModel):
    is_signed_in: bool
    loading: bool
    user_id: str
    user_name: str
    last_error: str | None
    last_synced_at: datetime | None
    is_current_user_member: bool
    members: list[MemberResponse]

    @classmethod
    def from_snapshot(cls, snap: SyncSnapshot) -> "SyncStateResponse":
        return cls(
            is_signed_in=snap.is_signed_in,
            loading=snap.loading,
            user_id=snap.user_id,
            user_name=snap.user_name,
            last_error=str(snap.last_error) if snap.last_error else None,
            last_synced_at=snap.last_synced_at,
            is_current_user_member=any(m.device_id == snap.user_id for m in snap.members) if snap.user_id else False,
            members=[MemberResponse.from_member(m) for m in snap.members],
        )


class RegisterSelfRequest(BaseModel):
    role: str = Field(default="Owner", pattern=ROLE_PATTERN)


class InviteCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    role: str = Field(default="Member", pattern=ROLE_PATTERN)


class InviteResponse(BaseModel):
    token: str
    name: str
    role: str
    url: str
    created_at: datetime

    @classmethod
    def from_invitation(cls, invitation: Invitation) -> "InviteResponse":
        return cls(
            token=invitation.token,
            name=invitation.name,
            role=invitation.role.value,
            url=invitation.url,
            created_at=invitation.created_at,
        )
