from __future__ import annotations

import uuid
from urllib.parse import urlencode

from familysync.models.member import Invitation, RoleEnum


def build_invitation(base_url: str, name: str, role: RoleEnum) -> Invitation:
    name = name.strip()
    if not name:
        raise ValueError("invitee name is required")
    token = str(uuid.uuid4())
    query = urlencode({"code": token, "name": name, "role": role.value})
    return Invitation(token=token, name=name, role=role, url=f"{base_url.rstrip('/')}?{query}")
