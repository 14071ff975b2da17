from __future__ import annotations

import asyncio
import uuid
from typing import Any, Protocol

from familysync.core.errors import RecordNotFound
from familysync.models.member import AccountStatus, DirectoryRecord


class DirectoryService(Protocol):
    """Remote store of family-member records plus the signed-in account it serves."""

    async def get_account_status(self) -> AccountStatus: ...

    async def get_current_account_id(self) -> str: ...

    async def get_account_record(self, record_id: str) -> DirectoryRecord: ...

    async def query_records(self, record_type: str) -> list[DirectoryRecord]: ...

    async def save_record(self, record_type: str, fields: dict[str, Any]) -> DirectoryRecord: ...

    async def delete_record(self, record_id: str) -> None: ...


class InMemoryDirectoryService:
    """Process-local directory used in development (directory_mode=memory) and tests."""

    def __init__(
        self,
        *,
        account_id: str = "",
        account_fields: dict[str, Any] | None = None,
        status: AccountStatus = AccountStatus.available,
    ):
        self.account_id = account_id
        self.status = status
        self._records: dict[str, DirectoryRecord] = {}
        self._lock = asyncio.Lock()
        if account_id:
            self._records[account_id] = DirectoryRecord(
                id=account_id, record_type="Users", fields=dict(account_fields or {})
            )

    def seed(self, record_type: str, fields: dict[str, Any], record_id: str | None = None) -> DirectoryRecord:
        record = DirectoryRecord(id=record_id or str(uuid.uuid4()), record_type=record_type, fields=dict(fields))
        self._records[record.id] = record
        return record

    def records_of(self, record_type: str) -> list[DirectoryRecord]:
        return [r for r in self._records.values() if r.record_type == record_type]

    async def get_account_status(self) -> AccountStatus:
        return self.status

    async def get_current_account_id(self) -> str:
        return self.account_id

    async def get_account_record(self, record_id: str) -> DirectoryRecord:
        record = self._records.get(record_id)
        if record is None:
            raise RecordNotFound(record_id)
        return record

    async def query_records(self, record_type: str) -> list[DirectoryRecord]:
        async with self._lock:
            return self.records_of(record_type)

    async def save_record(self, record_type: str, fields: dict[str, Any]) -> DirectoryRecord:
        async with self._lock:
            return self.seed(record_type, fields)

    async def delete_record(self, record_id: str) -> None:
        async with self._lock:
            if self._records.pop(record_id, None) is None:
                raise RecordNotFound(record_id)
