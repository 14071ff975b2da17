from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

PLACEHOLDER_PREFIX = "local-"


@dataclass(frozen=True)
class Permissions:
    can_add_car: bool
    can_edit_car: bool
    can_delete_car: bool
    can_add_members: bool
    can_remove_members: bool


class RoleEnum(str, Enum):
    owner = "Owner"
    admin = "Admin"
    member = "Member"
    viewer = "Viewer"

    @property
    def permissions(self) -> Permissions:
        return _ROLE_PERMISSIONS[self]


_ROLE_PERMISSIONS: dict[RoleEnum, Permissions] = {
    RoleEnum.owner: Permissions(
        can_add_car=True, can_edit_car=True, can_delete_car=True, can_add_members=True, can_remove_members=True
    ),
    RoleEnum.admin: Permissions(
        can_add_car=True, can_edit_car=True, can_delete_car=True, can_add_members=True, can_remove_members=False
    ),
    RoleEnum.member: Permissions(
        can_add_car=True, can_edit_car=True, can_delete_car=False, can_add_members=False, can_remove_members=False
    ),
    RoleEnum.viewer: Permissions(
        can_add_car=False, can_edit_car=False, can_delete_car=False, can_add_members=False, can_remove_members=False
    ),
}


class AccountStatus(str, Enum):
    could_not_determine = "could_not_determine"
    available = "available"
    restricted = "restricted"
    no_account = "no_account"
    temporarily_unavailable = "temporarily_unavailable"

    @property
    def code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES: dict[AccountStatus, int] = {
    AccountStatus.could_not_determine: 0,
    AccountStatus.available: 1,
    AccountStatus.restricted: 2,
    AccountStatus.no_account: 3,
    AccountStatus.temporarily_unavailable: 4,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def placeholder_id() -> str:
    return f"{PLACEHOLDER_PREFIX}{uuid.uuid4()}"


@dataclass(frozen=True)
class Member:
    id: str
    name: str
    role: RoleEnum
    device_id: str
    is_active: bool = True
    date_added: datetime = field(default_factory=_utcnow)

    @property
    def is_pending(self) -> bool:
        return self.id.startswith(PLACEHOLDER_PREFIX)

    @property
    def permissions(self) -> Permissions:
        return self.role.permissions

    def confirmed(self, record_id: str) -> Member:
        return replace(self, id=record_id)


@dataclass(frozen=True)
class DirectoryRecord:
    id: str
    record_type: str
    fields: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Invitation:
    token: str
    name: str
    role: RoleEnum
    url: str
    created_at: datetime = field(default_factory=_utcnow)


def parse_role(value: Any) -> RoleEnum:
    """Map a stored role string onto RoleEnum; unknown or missing values fall back to Member."""
    if isinstance(value, RoleEnum):
        return value
    if isinstance(value, str):
        for role in RoleEnum:
            if role.value.lower() == value.strip().lower():
                return role
    return RoleEnum.member


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return _utcnow()
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return _utcnow()


def member_from_record(record: DirectoryRecord) -> Member:
    fields = record.fields
    return Member(
        id=record.id,
        name=fields.get("name") or "Unknown",
        role=parse_role(fields.get("role")),
        device_id=fields.get("deviceID") or "",
        is_active=bool(fields.get("isActive", True)),
        date_added=parse_timestamp(fields.get("dateAdded")),
    )


def member_record_fields(member: Member) -> dict[str, Any]:
    return {
        "name": member.name,
        "role": member.role.value,
        "deviceID": member.device_id,
        "dateAdded": member.date_added.isoformat(),
    }
