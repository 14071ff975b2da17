import asyncio

import pytest

from familysync.core.errors import (
    AccountUnavailable,
    MissingIdentity,
    NotRegistered,
    RecordNotFound,
    TransportFailure,
)
from familysync.models.member import AccountStatus, RoleEnum
from familysync.services.family_sync import FamilyDirectorySync
from familysync.services.notifier import ChangeKind, ChangeNotifier


def _seed_family(directory):
    directory.seed("FamilyMember", {"name": "Jane", "role": "Admin", "deviceID": "u1"}, record_id="r1")
    directory.seed("FamilyMember", {"name": "Sam", "role": "Owner", "deviceID": "u2"}, record_id="r2")


def _by_device(sync, device_id):
    return [m for m in sync.members if m.device_id == device_id]


def test_fetch_roster_maps_directory_records(family_sync, directory):
    directory.seed("FamilyMember", {"name": "Jane", "role": "Admin", "deviceID": "u1"}, record_id="r1")

    async def scenario():
        family_sync.fetch_roster()
        await family_sync.settle()

    asyncio.run(scenario())

    jane = _by_device(family_sync, "u1")
    assert len(jane) == 1
    assert jane[0].id == "r1"
    assert jane[0].role is RoleEnum.admin
    assert jane[0].name == "Jane"
    assert family_sync.last_synced_at is not None
    assert family_sync.last_error is None


def test_fetch_roster_is_idempotent(family_sync, directory):
    _seed_family(directory)
    family_sync.user_id = "u2"

    async def scenario():
        family_sync.fetch_roster()
        await family_sync.settle()
        first = {m.device_id for m in family_sync.members}
        family_sync.fetch_roster()
        await family_sync.settle()
        return first

    first = asyncio.run(scenario())
    assert {m.device_id for m in family_sync.members} == first == {"u1", "u2"}
    assert "save_record" not in directory.calls


def test_fetch_roster_skips_duplicate_devices(family_sync, directory):
    directory.seed("FamilyMember", {"name": "Jane", "deviceID": "u1"}, record_id="r1")
    directory.seed("FamilyMember", {"name": "Jane again", "deviceID": "u1"}, record_id="r1b")

    async def scenario():
        family_sync.fetch_roster()
        await family_sync.settle()

    asyncio.run(scenario())
    assert [m.id for m in _by_device(family_sync, "u1")] == ["r1"]


def test_fetch_roster_self_heals_missing_current_account(family_sync, directory):
    directory.seed("FamilyMember", {"name": "Jane", "role": "Admin", "deviceID": "u1"}, record_id="r1")
    family_sync.user_id = "u2"
    family_sync.user_name = "Sam Smith"

    async def scenario():
        family_sync.fetch_roster()
        await family_sync.settle()

    asyncio.run(scenario())

    me = _by_device(family_sync, "u2")
    assert len(me) == 1
    assert me[0].role is RoleEnum.owner
    assert me[0].name == "Sam Smith"
    assert not me[0].is_pending
    saved = [r for r in directory.records_of("FamilyMember") if r.fields["deviceID"] == "u2"]
    assert [r.id for r in saved] == [me[0].id]


def test_fetch_failure_registers_self_when_roster_empty(family_sync, directory):
    directory.failures["query_records"] = TransportFailure("offline")
    family_sync.user_id = "u2"

    async def scenario():
        family_sync.fetch_roster()
        await family_sync.settle()

    asyncio.run(scenario())

    me = _by_device(family_sync, "u2")
    assert len(me) == 1
    assert me[0].role is RoleEnum.owner
    assert isinstance(family_sync.last_error, TransportFailure)


def test_fetch_failure_keeps_existing_roster(family_sync, directory):
    _seed_family(directory)
    family_sync.user_id = "u2"

    async def scenario():
        family_sync.fetch_roster()
        await family_sync.settle()
        before = family_sync.members
        directory.failures["query_records"] = TransportFailure("offline")
        family_sync.fetch_roster()
        await family_sync.settle()
        return before

    before = asyncio.run(scenario())
    assert family_sync.members == before
    assert "save_record" not in directory.calls
    assert isinstance(family_sync.last_error, TransportFailure)


def test_unexpected_directory_error_is_wrapped(family_sync, directory):
    directory.failures["query_records"] = RuntimeError("boom")

    async def scenario():
        family_sync.fetch_roster()
        await family_sync.settle()

    asyncio.run(scenario())
    assert isinstance(family_sync.last_error, TransportFailure)
    assert isinstance(family_sync.last_error.cause, RuntimeError)


def test_repeated_register_self_keeps_one_member(family_sync, directory):
    family_sync.user_id = "u2"

    async def scenario():
        family_sync.register_self()
        family_sync.register_self()
        await family_sync.settle()
        assert family_sync.register_self(RoleEnum.admin) is None
        await family_sync.settle()

    asyncio.run(scenario())

    me = _by_device(family_sync, "u2")
    assert len(me) == 1
    assert not me[0].is_pending
    assert directory.calls.count("save_record") == 1


def test_register_self_during_concurrent_fetches_writes_once(family_sync, directory):
    directory.delays["save_record"] = 0.02
    family_sync.user_id = "u2"

    async def scenario():
        family_sync.fetch_roster()
        family_sync.fetch_roster()
        family_sync.register_self()
        await family_sync.settle()

    asyncio.run(scenario())

    assert len(_by_device(family_sync, "u2")) == 1
    assert directory.calls.count("save_record") == 1
    assert len(directory.records_of("FamilyMember")) == 1


def test_register_self_is_optimistic(family_sync, directory, events):
    directory.delays["save_record"] = 0.02
    family_sync.user_id = "u2"
    family_sync.user_name = "Sam Smith"

    async def scenario():
        task = family_sync.register_self()
        # Before the event loop gets a chance to run the remote write.
        assert task is not None
        assert [m.device_id for m in family_sync.members] == ["u2"]
        assert family_sync.members[0].is_pending
        assert events[-1].kind is ChangeKind.member_added
        assert directory.calls == []
        assert directory.records_of("FamilyMember") == []
        await family_sync.settle()

    asyncio.run(scenario())

    kinds = [e.kind for e in events]
    assert kinds.index(ChangeKind.member_added) < kinds.index(ChangeKind.member_confirmed)
    confirmed = events[kinds.index(ChangeKind.member_confirmed)].member
    assert confirmed.id == directory.records_of("FamilyMember")[0].id
    assert family_sync.members == (confirmed,)


def test_register_self_failure_keeps_local_member(family_sync, directory):
    directory.failures["save_record"] = TransportFailure("quota exceeded")
    family_sync.user_id = "u2"

    async def scenario():
        family_sync.register_self(RoleEnum.owner)
        await family_sync.settle()

    asyncio.run(scenario())

    me = _by_device(family_sync, "u2")
    assert len(me) == 1
    assert me[0].is_pending
    assert isinstance(family_sync.last_error, TransportFailure)


def test_register_self_requires_identity(family_sync, directory):
    with pytest.raises(MissingIdentity):
        family_sync.register_self()
    assert family_sync.members == ()
    assert directory.calls == []


def test_register_self_when_present_notifies(family_sync, directory, events):
    _seed_family(directory)
    family_sync.user_id = "u2"

    async def scenario():
        family_sync.fetch_roster()
        await family_sync.settle()
        return family_sync.register_self()

    assert asyncio.run(scenario()) is None
    assert events[-1].kind is ChangeKind.member_present
    assert events[-1].member.id == "r2"


def test_remove_member_rolls_back_on_failure(family_sync, directory, events):
    _seed_family(directory)
    family_sync.user_id = "u2"
    directory.failures["delete_record"] = TransportFailure("offline")

    async def scenario():
        family_sync.fetch_roster()
        await family_sync.settle()
        before = {m.id for m in family_sync.members}
        family_sync.remove_member("r1")
        assert "r1" not in {m.id for m in family_sync.members}
        await family_sync.settle()
        return before

    before = asyncio.run(scenario())
    assert {m.id for m in family_sync.members} == before
    assert [m.id for m in family_sync.members] == ["r1", "r2"]
    assert isinstance(family_sync.last_error, TransportFailure)
    assert events[-1].kind is ChangeKind.member_restored


def test_remove_member_success(family_sync, directory):
    _seed_family(directory)
    family_sync.user_id = "u2"

    async def scenario():
        family_sync.fetch_roster()
        await family_sync.settle()
        family_sync.remove_member("r1")
        await family_sync.settle()

    asyncio.run(scenario())
    assert [m.id for m in family_sync.members] == ["r2"]
    assert [r.id for r in directory.records_of("FamilyMember")] == ["r2"]
    assert family_sync.last_error is None


def test_remove_member_already_gone_remotely(family_sync, directory):
    _seed_family(directory)
    family_sync.user_id = "u2"
    directory.failures["delete_record"] = RecordNotFound("r1")

    async def scenario():
        family_sync.fetch_roster()
        await family_sync.settle()
        family_sync.remove_member("r1")
        await family_sync.settle()

    asyncio.run(scenario())
    assert [m.id for m in family_sync.members] == ["r2"]
    assert family_sync.last_error is None


def test_remove_unknown_member_is_noop(family_sync, directory):
    assert family_sync.remove_member("nope") is None
    assert directory.calls == []
    assert family_sync.last_error is None


def test_invite_requires_registration(family_sync, directory):
    family_sync.user_id = "u2"
    with pytest.raises(NotRegistered):
        family_sync.invite("Alex", RoleEnum.member)
    assert directory.calls == []


def test_invite_for_registered_member(family_sync, directory):
    _seed_family(directory)
    family_sync.user_id = "u2"

    async def scenario():
        family_sync.fetch_roster()
        await family_sync.settle()

    asyncio.run(scenario())
    calls_before = list(directory.calls)

    invitation = family_sync.invite("Alex", RoleEnum.viewer)
    assert invitation.role is RoleEnum.viewer
    assert f"code={invitation.token}" in invitation.url
    assert "role=Viewer" in invitation.url
    assert directory.calls == calls_before
    assert {m.device_id for m in family_sync.members} == {"u1", "u2"}


def test_check_account_status_runs_full_chain(family_sync, directory, events):
    async def scenario():
        family_sync.check_account_status()
        await family_sync.settle()

    asyncio.run(scenario())

    assert family_sync.is_signed_in is True
    assert family_sync.user_id == "u2"
    assert family_sync.user_name == "Sam Smith"
    assert family_sync.loading is False
    assert directory.calls[:4] == [
        "get_account_status",
        "get_current_account_id",
        "get_account_record",
        "query_records",
    ]
    me = family_sync.current_member
    assert me is not None and me.role is RoleEnum.owner and me.name == "Sam Smith"
    assert ChangeKind.identity_resolved in [e.kind for e in events]


def test_check_account_status_unavailable(family_sync, directory):
    directory.status = AccountStatus.no_account

    async def scenario():
        family_sync.check_account_status()
        await family_sync.settle()

    asyncio.run(scenario())

    assert family_sync.is_signed_in is False
    assert isinstance(family_sync.last_error, AccountUnavailable)
    assert family_sync.last_error.code == 3
    assert directory.calls == ["get_account_status"]


def test_check_account_status_transport_failure(family_sync, directory):
    directory.failures["get_account_status"] = TransportFailure("offline")
    family_sync.is_signed_in = True

    async def scenario():
        family_sync.check_account_status()
        await family_sync.settle()

    asyncio.run(scenario())
    assert family_sync.is_signed_in is False
    assert isinstance(family_sync.last_error, TransportFailure)


def test_check_account_status_clears_previous_error(family_sync, directory):
    family_sync.last_error = TransportFailure("stale")

    async def scenario():
        family_sync.check_account_status()
        assert family_sync.last_error is None
        await family_sync.settle()

    asyncio.run(scenario())
    assert family_sync.last_error is None


def test_account_record_failure_uses_default_name(family_sync, directory):
    directory.failures["get_account_record"] = TransportFailure("forbidden")

    async def scenario():
        family_sync.check_account_status()
        await family_sync.settle()

    asyncio.run(scenario())
    assert family_sync.user_name == "Family Member"
    assert "query_records" in directory.calls
    assert family_sync.last_error is None


def test_account_id_failure_stops_chain(family_sync, directory):
    directory.failures["get_current_account_id"] = TransportFailure("offline")

    async def scenario():
        family_sync.check_account_status()
        await family_sync.settle()

    asyncio.run(scenario())
    assert family_sync.is_signed_in is True
    assert family_sync.user_id == ""
    assert "query_records" not in directory.calls
    assert isinstance(family_sync.last_error, TransportFailure)


def test_handle_account_changed_rechecks_status(family_sync, directory):
    async def scenario():
        family_sync.handle_account_changed()
        await family_sync.settle()

    asyncio.run(scenario())
    assert directory.calls[0] == "get_account_status"
    assert family_sync.is_signed_in is True


def test_loading_flag_tracks_in_flight_calls(family_sync, directory):
    directory.delays["query_records"] = 0.02

    async def scenario():
        family_sync.fetch_roster()
        await asyncio.sleep(0)
        in_flight = family_sync.loading
        await family_sync.settle()
        return in_flight

    assert asyncio.run(scenario()) is True
    assert family_sync.loading is False


def test_failing_subscriber_does_not_block_others(family_sync, events):
    def broken(event):
        raise RuntimeError("listener bug")

    family_sync.subscribe(broken)
    family_sync.user_id = "u2"

    async def scenario():
        family_sync.register_self()
        await family_sync.settle()

    asyncio.run(scenario())
    assert [e.kind for e in events][:1] == [ChangeKind.member_added]


def test_unsubscribe_stops_events(directory):
    notifier = ChangeNotifier()
    family_sync = FamilyDirectorySync(directory, notifier=notifier)
    received = []
    unsubscribe = family_sync.subscribe(received.append)
    assert notifier.subscriber_count == 1
    unsubscribe()
    assert notifier.subscriber_count == 0
    family_sync.user_id = "u2"

    async def scenario():
        family_sync.register_self()
        await family_sync.settle()

    asyncio.run(scenario())
    assert received == []


def test_remove_rollback_with_several_deviceless_members(family_sync, directory):
    directory.seed("FamilyMember", {"name": "Grandma"}, record_id="a")
    directory.seed("FamilyMember", {"name": "Grandpa"}, record_id="b")
    directory.failures["delete_record"] = TransportFailure("offline")

    async def scenario():
        family_sync.fetch_roster()
        await family_sync.settle()
        before = [m.id for m in family_sync.members]
        family_sync.remove_member("a")
        await family_sync.settle()
        return before

    before = asyncio.run(scenario())
    assert before == ["a", "b"]
    assert [m.id for m in family_sync.members] == ["a", "b"]
    assert isinstance(family_sync.last_error, TransportFailure)


def test_remote_completions_apply_under_the_guard(family_sync, directory):
    _seed_family(directory)
    directory.failures["delete_record"] = TransportFailure("offline")
    family_sync.user_id = "u3"
    held = {}

    def record_guard(event):
        held[event.kind] = family_sync._guard.locked()

    family_sync.subscribe(record_guard)

    async def scenario():
        family_sync.fetch_roster()
        await family_sync.settle()
        family_sync.remove_member("r1")
        await family_sync.settle()

    asyncio.run(scenario())
    assert held[ChangeKind.roster_replaced] is True
    assert held[ChangeKind.member_confirmed] is True
    assert held[ChangeKind.member_restored] is True
    # Optimistic changes happen synchronously in the command itself.
    assert held[ChangeKind.member_added] is True
    assert held[ChangeKind.member_removed] is False
    assert family_sync._guard.locked() is False
