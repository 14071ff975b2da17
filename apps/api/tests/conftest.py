import asyncio

import pytest
from fastapi.testclient import TestClient

from familysync.core.runtime import get_family_sync
from familysync.main import app
from familysync.models.member import AccountStatus
from familysync.services.directory import InMemoryDirectoryService
from familysync.services.family_sync import FamilyDirectorySync


class ScriptedDirectory(InMemoryDirectoryService):
    """In-memory directory that records calls and can delay or fail any of them."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.calls: list[str] = []
        self.delays: dict[str, float] = {}
        self.failures: dict[str, Exception] = {}

    async def _step(self, name: str) -> None:
        self.calls.append(name)
        delay = self.delays.get(name)
        if delay:
            await asyncio.sleep(delay)
        failure = self.failures.get(name)
        if failure is not None:
            raise failure

    async def get_account_status(self):
        await self._step("get_account_status")
        return await super().get_account_status()

    async def get_current_account_id(self):
        await self._step("get_current_account_id")
        return await super().get_current_account_id()

    async def get_account_record(self, record_id):
        await self._step("get_account_record")
        return await super().get_account_record(record_id)

    async def query_records(self, record_type):
        await self._step("query_records")
        return await super().query_records(record_type)

    async def save_record(self, record_type, fields):
        await self._step("save_record")
        return await super().save_record(record_type, fields)

    async def delete_record(self, record_id):
        await self._step("delete_record")
        return await super().delete_record(record_id)


@pytest.fixture
def directory():
    return ScriptedDirectory(
        account_id="u2",
        account_fields={"firstName": "Sam", "lastName": "Smith"},
        status=AccountStatus.available,
    )


@pytest.fixture
def family_sync(directory):
    return FamilyDirectorySync(directory)


@pytest.fixture
def events(family_sync):
    received = []
    family_sync.subscribe(received.append)
    return received


@pytest.fixture
def client(family_sync):
    app.dependency_overrides[get_family_sync] = lambda: family_sync
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.pop(get_family_sync, None)
