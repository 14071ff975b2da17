from __future__ import annotations

import re
from typing import Any

_DEVICE_OWNER = re.compile(r"^(?P<owner>.+?)['’]s\s+\S")


def _text(fields: dict[str, Any], key: str) -> str:
    value = fields.get(key)
    return value.strip() if isinstance(value, str) else ""


def _name_from_email(email: str) -> str:
    local = email.split("@", 1)[0]
    parts = [p for p in re.split(r"[._+\-]+", local) if p]
    return " ".join(p.capitalize() for p in parts)


def _name_from_device(device_name: str) -> str:
    match = _DEVICE_OWNER.match(device_name)
    if match:
        return match.group("owner").strip()
    return device_name


def resolve_display_name(fields: dict[str, Any] | None, default: str = "Family Member") -> str:
    """
    Pick a human-readable name from an account record.

    Priority: first + last name, display name, email, device name, default.
    """
    fields = fields or {}
    first = _text(fields, "firstName")
    last = _text(fields, "lastName")
    if first or last:
        return f"{first} {last}".strip()

    display = _text(fields, "displayName")
    if display:
        return display

    email = _text(fields, "email")
    if email:
        name = _name_from_email(email)
        if name:
            return name

    device_name = _text(fields, "deviceName")
    if device_name:
        return _name_from_device(device_name)

    return default
