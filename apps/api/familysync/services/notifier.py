from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from familysync.models.member import Member

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    roster_replaced = "roster_replaced"
    member_added = "member_added"
    member_confirmed = "member_confirmed"
    member_present = "member_present"
    member_removed = "member_removed"
    member_restored = "member_restored"
    identity_resolved = "identity_resolved"
    account_status_changed = "account_status_changed"
    error_recorded = "error_recorded"


@dataclass(frozen=True)
class ChangeEvent:
    kind: ChangeKind
    members: tuple[Member, ...]
    member: Member | None = None


Subscriber = Callable[[ChangeEvent], None]


class ChangeNotifier:
    """Fan-out of roster change events to subscribed callables."""

    def __init__(self):
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def notify(self, event: ChangeEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("change subscriber failed for %s", event.kind.value)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
