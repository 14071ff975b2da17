from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, TypeVar

from familysync.core.errors import (
    AccountUnavailable,
    FamilySyncError,
    MissingIdentity,
    NotRegistered,
    RecordNotFound,
    TransportFailure,
)
from familysync.models.member import (
    AccountStatus,
    DirectoryRecord,
    Invitation,
    Member,
    RoleEnum,
    member_from_record,
    member_record_fields,
    placeholder_id,
)
from familysync.services.directory import DirectoryService
from familysync.services.identity import resolve_display_name
from familysync.services.invites import build_invitation
from familysync.services.notifier import ChangeEvent, ChangeKind, ChangeNotifier, Subscriber

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class SyncSnapshot:
    is_signed_in: bool
    loading: bool
    user_id: str
    user_name: str
    last_error: FamilySyncError | None
    last_synced_at: datetime | None
    members: tuple[Member, ...]


class FamilyDirectorySync:
    """
    Local roster of family members reconciled against a remote directory.

    Every command runs on the event loop that owns the instance. Commands check
    their preconditions and apply optimistic roster changes synchronously, then
    schedule the remote call as a task and return it (or None when nothing was
    scheduled). Remote completions are applied on the same loop, one at a time
    under an asyncio.Lock, in the order they arrive.
    """

    def __init__(
        self,
        directory: DirectoryService,
        *,
        record_type: str = "FamilyMember",
        default_member_name: str = "Family Member",
        invite_base_url: str = "https://familycar.app/invite",
        notifier: ChangeNotifier | None = None,
    ):
        self._directory = directory
        self._record_type = record_type
        self._default_member_name = default_member_name
        self._invite_base_url = invite_base_url
        self._notifier = notifier or ChangeNotifier()

        self.user_id = ""
        self.user_name = ""
        self.is_signed_in = False
        self.last_error: FamilySyncError | None = None
        self.last_synced_at: datetime | None = None

        self._members: list[Member] = []
        # device_id -> placeholder for registrations whose remote write is in flight
        self._registering: dict[str, Member] = {}
        self._in_flight = 0
        self._tasks: set[asyncio.Task[None]] = set()
        self._loop: asyncio.AbstractEventLoop | None = None
        # serializes remote completions touching the roster
        self._guard = asyncio.Lock()

    # -- observable state -------------------------------------------------

    @property
    def members(self) -> tuple[Member, ...]:
        return tuple(self._members)

    @property
    def loading(self) -> bool:
        return self._in_flight > 0

    @property
    def current_member(self) -> Member | None:
        if not self.user_id:
            return None
        return self._find_by_device(self.user_id)

    @property
    def is_current_user_member(self) -> bool:
        return self.current_member is not None

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        return self._notifier.subscribe(callback)

    def snapshot(self) -> SyncSnapshot:
        return SyncSnapshot(
            is_signed_in=self.is_signed_in,
            loading=self.loading,
            user_id=self.user_id,
            user_name=self.user_name,
            last_error=self.last_error,
            last_synced_at=self.last_synced_at,
            members=self.members,
        )

    # -- commands ---------------------------------------------------------

    def check_account_status(self) -> asyncio.Task[None]:
        self._bind_loop()
        self.last_error = None
        return self._spawn(self._check_account_status())

    def handle_account_changed(self) -> asyncio.Task[None]:
        logger.info("account changed; re-checking status")
        return self.check_account_status()

    def fetch_user_identity(self) -> asyncio.Task[None]:
        self._bind_loop()
        return self._spawn(self._fetch_user_identity())

    def fetch_roster(self) -> asyncio.Task[None]:
        self._bind_loop()
        return self._spawn(self._fetch_roster())

    def register_self(self, role: RoleEnum = RoleEnum.owner) -> asyncio.Task[None] | None:
        if not self.user_id:
            raise MissingIdentity()
        self._bind_loop()

        existing = self._find_by_device(self.user_id)
        if existing is not None:
            self._notify(ChangeKind.member_present, existing)
            return None

        placeholder = Member(
            id=placeholder_id(),
            name=self.user_name or self._default_member_name,
            role=role,
            device_id=self.user_id,
        )
        self._members.append(placeholder)
        self._registering[placeholder.device_id] = placeholder
        self._notify(ChangeKind.member_added, placeholder)
        return self._spawn(self._save_member(placeholder))

    def remove_member(self, member_id: str) -> asyncio.Task[None] | None:
        index = self._index_by_id(member_id)
        if index is None:
            logger.debug("remove ignored; member %s not in roster", member_id)
            return None
        self._bind_loop()

        member = self._members.pop(index)
        if self._registering.get(member.device_id) is member:
            del self._registering[member.device_id]
        self._notify(ChangeKind.member_removed, member)
        return self._spawn(self._delete_member(member, index))

    def invite(self, name: str, role: RoleEnum = RoleEnum.member) -> Invitation:
        if not self.is_current_user_member:
            raise NotRegistered()
        invitation = build_invitation(self._invite_base_url, name, role)
        logger.info("invitation %s created for role %s", invitation.token, role.value)
        return invitation

    async def settle(self) -> None:
        """Wait until no remote operation is in flight, including chained ones."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def aclose(self) -> None:
        await self.settle()
        close = getattr(self._directory, "aclose", None)
        if close is not None:
            await close()

    # -- flows ------------------------------------------------------------

    async def _check_account_status(self) -> None:
        try:
            status = await self._remote(self._directory.get_account_status)
        except FamilySyncError as exc:
            async with self._guard:
                self.is_signed_in = False
                self._record_error(exc)
                self._notify(ChangeKind.account_status_changed)
            return

        async with self._guard:
            self.is_signed_in = status is AccountStatus.available
            if not self.is_signed_in:
                self._record_error(AccountUnavailable(status))
            logger.info("account status: %s", status.value)
            self._notify(ChangeKind.account_status_changed)

        if self.is_signed_in:
            await self._fetch_user_identity()

    async def _fetch_user_identity(self) -> None:
        try:
            account_id = await self._remote(self._directory.get_current_account_id)
        except FamilySyncError as exc:
            async with self._guard:
                self._record_error(exc)
            return
        async with self._guard:
            if not account_id:
                self._record_error(MissingIdentity("directory returned an empty account id"))
                return
            self.user_id = account_id

        fields: dict[str, Any] | None = None
        try:
            record = await self._remote(self._directory.get_account_record, account_id)
            fields = record.fields
        except FamilySyncError as exc:
            logger.warning("account record %s unreadable, using default name: %s", account_id, exc)

        async with self._guard:
            self.user_name = resolve_display_name(fields, self._default_member_name)
            self._notify(ChangeKind.identity_resolved, self.current_member)

        await self._fetch_roster()

    async def _fetch_roster(self) -> None:
        try:
            records = await self._remote(self._directory.query_records, self._record_type)
        except FamilySyncError as exc:
            async with self._guard:
                self._record_error(exc)
                if not self._members and self.user_id:
                    logger.info("roster unavailable; registering %s locally", self.user_id)
                    self.register_self(RoleEnum.owner)
            return

        async with self._guard:
            self._replace_roster(records)

    def _replace_roster(self, records: list[DirectoryRecord]) -> None:
        fetched: list[Member] = []
        seen: set[str] = set()
        for record in records:
            member = member_from_record(record)
            if member.device_id and member.device_id in seen:
                logger.warning("duplicate directory record %s for device %s skipped", member.id, member.device_id)
                continue
            seen.add(member.device_id)
            fetched.append(member)
        for device_id, placeholder in self._registering.items():
            if device_id not in seen:
                fetched.append(placeholder)

        self._members = fetched
        self.last_synced_at = datetime.now(timezone.utc)
        self._notify(ChangeKind.roster_replaced)

        if self.user_id and self.user_id not in seen:
            logger.info("current account %s missing from roster; registering as owner", self.user_id)
            self.register_self(RoleEnum.owner)

    async def _save_member(self, placeholder: Member) -> None:
        try:
            record = await self._remote(
                self._directory.save_record, self._record_type, member_record_fields(placeholder)
            )
        except FamilySyncError as exc:
            async with self._guard:
                self._registering.pop(placeholder.device_id, None)
                # The optimistic entry stays so the account keeps local standing.
                self._record_error(exc)
            return

        async with self._guard:
            self._registering.pop(placeholder.device_id, None)
            confirmed = placeholder.confirmed(record.id)
            index = self._index_by_device(placeholder.device_id)
            if index is None:
                self._members.append(confirmed)
            else:
                self._members[index] = confirmed
            self._notify(ChangeKind.member_confirmed, confirmed)

    async def _delete_member(self, member: Member, index: int) -> None:
        try:
            await self._remote(self._directory.delete_record, member.id)
        except RecordNotFound:
            logger.info("member %s already absent from directory", member.id)
        except FamilySyncError as exc:
            async with self._guard:
                came_back = self._index_by_id(member.id) is not None or (
                    bool(member.device_id) and self._index_by_device(member.device_id) is not None
                )
                if not came_back:
                    self._members.insert(min(index, len(self._members)), member)
                self._record_error(exc)
                self._notify(ChangeKind.member_restored, member)

    # -- helpers ----------------------------------------------------------

    async def _remote(self, call: Callable[..., Awaitable[T]], *args: Any) -> T:
        self._in_flight += 1
        try:
            return await call(*args)
        except FamilySyncError:
            raise
        except Exception as exc:
            raise TransportFailure(str(exc) or exc.__class__.__name__, cause=exc) from exc
        finally:
            self._in_flight -= 1

    def _bind_loop(self) -> asyncio.AbstractEventLoop:
        loop = asyncio.get_running_loop()
        if self._loop is None or self._loop.is_closed():
            self._loop = loop
        elif self._loop is not loop:
            raise RuntimeError("FamilyDirectorySync is bound to another event loop")
        return loop

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = self._bind_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _record_error(self, error: FamilySyncError) -> None:
        logger.warning("directory sync error: %s", error)
        self.last_error = error
        self._notify(ChangeKind.error_recorded)

    def _notify(self, kind: ChangeKind, member: Member | None = None) -> None:
        self._notifier.notify(ChangeEvent(kind=kind, members=self.members, member=member))

    def _find_by_device(self, device_id: str) -> Member | None:
        index = self._index_by_device(device_id)
        return None if index is None else self._members[index]

    def _index_by_device(self, device_id: str) -> int | None:
        for i, member in enumerate(self._members):
            if member.device_id == device_id:
                return i
        return None

    def _index_by_id(self, member_id: str) -> int | None:
        for i, member in enumerate(self._members):
            if member.id == member_id:
                return i
        return None
