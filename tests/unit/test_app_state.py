# =============================================================================
# tests/unit/test_app_state.py
# Unit Tests for AppStateMachine
# =============================================================================

import asyncio

import pytest

from savvi_core.auth.session_manager import ConnectionStatus
from savvi_core.data.models import DataSnapshot
from savvi_core.offline.offline_cache import OfflineCache
from savvi_core.state.app_state import NO_OFFLINE_DATA, AppScreen, AppStateMachine

SCHEMA_MISSING = 'relation "public.money_buckets" does not exist'


@pytest.fixture
def offline_cache(storage):
    return OfflineCache(storage)


@pytest.fixture
def machine(fake_remote, offline_cache, fast_timeouts):
    return AppStateMachine(fake_remote, offline_cache, timeouts=fast_timeouts)


@pytest.fixture
def cached_snapshot(offline_cache, sample_rows):
    snapshot = DataSnapshot.from_dict({
        "buckets": sample_rows["money_buckets"],
        "goals": sample_rows["goals"],
    })
    offline_cache.save("user-1", snapshot)
    return snapshot


class TestAppStateEntry:
    """Test the entry sequence for each connection status"""

    def test_starts_loading(self, machine):
        assert machine.state == AppScreen.LOADING
        assert machine.snapshot.is_empty()

    def test_disconnected_with_cache_goes_offline(self, machine, fake_remote, make_user, cached_snapshot):
        """Disconnected start with a cached snapshot never touches the remote"""
        asyncio.run(machine.on_session_change(make_user(), ConnectionStatus.DISCONNECTED))

        assert machine.state == AppScreen.OFFLINE_MODE
        assert machine.snapshot == cached_snapshot
        assert fake_remote.calls == []

    def test_disconnected_without_cache_shows_connection_error(self, machine, fake_remote, make_user):
        asyncio.run(machine.on_session_change(make_user(), ConnectionStatus.DISCONNECTED))

        assert machine.state == AppScreen.CONNECTION_ERROR
        assert fake_remote.calls == []

    def test_checking_is_ignored(self, machine, fake_remote, make_user):
        ran = asyncio.run(machine.on_session_change(make_user(), ConnectionStatus.CHECKING))

        assert not ran
        assert machine.state == AppScreen.LOADING
        assert fake_remote.calls == []

    def test_connected_loads_snapshot(self, machine, seeded_remote, offline_cache, make_user):
        """Connected start probes, loads all collections and caches them"""
        asyncio.run(machine.on_session_change(make_user(), ConnectionStatus.CONNECTED))

        assert machine.state == AppScreen.READY
        assert machine.error is None
        assert machine.snapshot.counts() == {"buckets": 2, "transactions": 2, "goals": 1, "debts": 1}
        assert offline_cache.load("user-1") == machine.snapshot
        assert seeded_remote.count("probe") == 1

    def test_schema_missing_needs_setup(self, machine, fake_remote, make_user):
        """A missing relation routes to the setup screen"""
        fake_remote.fail("probe", SCHEMA_MISSING, code="42P01")

        asyncio.run(machine.on_session_change(make_user(), ConnectionStatus.CONNECTED))

        assert machine.state == AppScreen.NEEDS_SETUP
        assert not any(call.startswith("select:") for call in fake_remote.calls)

    def test_schema_cache_code_needs_setup(self, machine, fake_remote, make_user):
        fake_remote.fail("probe", "Could not find the table", code="PGRST205")

        asyncio.run(machine.on_session_change(make_user(), ConnectionStatus.CONNECTED))

        assert machine.state == AppScreen.NEEDS_SETUP

    def test_probe_failure_with_cache_goes_offline(self, machine, fake_remote, make_user, cached_snapshot):
        fake_remote.fail("probe", "All connection attempts failed", kind="network")

        asyncio.run(machine.on_session_change(make_user(), ConnectionStatus.CONNECTED))

        assert machine.state == AppScreen.OFFLINE_MODE
        assert machine.snapshot == cached_snapshot

    def test_probe_failure_without_cache_shows_connection_error(self, machine, fake_remote, make_user):
        fake_remote.fail("probe", "All connection attempts failed", kind="network")

        asyncio.run(machine.on_session_change(make_user(), ConnectionStatus.CONNECTED))

        assert machine.state == AppScreen.CONNECTION_ERROR
        assert machine.error == "All connection attempts failed"

    def test_probe_timeout(self, machine, fake_remote, make_user):
        """A hung probe fails after its budget"""
        fake_remote.hang("probe")

        asyncio.run(machine.on_session_change(make_user(), ConnectionStatus.CONNECTED))

        assert machine.state == AppScreen.CONNECTION_ERROR
        assert machine.error == "Database connection timeout"


class TestAppStateEntryGuard:
    """Test that the entry sequence runs once per (user id, status)"""

    def test_same_pair_runs_once(self, machine, seeded_remote, make_user):
        async def run():
            assert await machine.on_session_change(make_user(), ConnectionStatus.CONNECTED)
            assert not await machine.on_session_change(make_user(), ConnectionStatus.CONNECTED)

        asyncio.run(run())

        assert seeded_remote.count("probe") == 1

    def test_status_change_reruns(self, machine, seeded_remote, make_user, cached_snapshot):
        async def run():
            await machine.on_session_change(make_user(), ConnectionStatus.DISCONNECTED)
            assert machine.state == AppScreen.OFFLINE_MODE
            await machine.on_session_change(make_user(), ConnectionStatus.CONNECTED)

        asyncio.run(run())

        assert machine.state == AppScreen.READY
        assert seeded_remote.count("probe") == 1

    def test_user_change_clears_snapshot(self, machine, seeded_remote, make_user):
        """A different user never sees the previous user's data"""
        async def run():
            await machine.on_session_change(make_user(), ConnectionStatus.CONNECTED)
            assert not machine.snapshot.is_empty()
            await machine.on_session_change(make_user("user-2"), ConnectionStatus.DISCONNECTED)

        asyncio.run(run())

        assert machine.state == AppScreen.CONNECTION_ERROR
        assert machine.snapshot.is_empty()

    def test_signed_out_resets(self, machine, seeded_remote, make_user):
        async def run():
            await machine.on_session_change(make_user(), ConnectionStatus.CONNECTED)
            await machine.on_session_change(None, ConnectionStatus.DISCONNECTED)

        asyncio.run(run())

        assert machine.state == AppScreen.LOADING
        assert machine.user is None
        assert machine.snapshot.is_empty()


class TestAppStatePartialLoad:
    """Test all-settle loading of the four collections"""

    def test_failed_collection_is_empty(self, machine, seeded_remote, make_user):
        """One failed query still reaches ready with that collection empty"""
        seeded_remote.fail("select:goals", "permission denied for table goals")

        asyncio.run(machine.on_session_change(make_user(), ConnectionStatus.CONNECTED))

        assert machine.state == AppScreen.READY
        assert machine.snapshot.goals == []
        assert len(machine.snapshot.buckets) == 2
        assert machine.failed_collections == ("goals",)

    def test_collection_timeout_is_empty(self, machine, seeded_remote, make_user):
        seeded_remote.hang("select:debts")

        asyncio.run(machine.on_session_change(make_user(), ConnectionStatus.CONNECTED))

        assert machine.state == AppScreen.READY
        assert machine.snapshot.debts == []
        assert machine.failed_collections == ("debts",)

    def test_all_collections_failing_still_ready(self, machine, fake_remote, offline_cache, make_user, cached_snapshot):
        """Probe ok and four failed queries: ready, empty snapshot, empty cache"""
        for table in ("money_buckets", "transactions", "goals", "debts"):
            fake_remote.fail(f"select:{table}", "All connection attempts failed", kind="network")

        asyncio.run(machine.on_session_change(make_user(), ConnectionStatus.CONNECTED))

        assert machine.state == AppScreen.READY
        assert machine.snapshot.is_empty()
        assert set(machine.failed_collections) == {"buckets", "transactions", "goals", "debts"}
        assert offline_cache.load("user-1").is_empty()

    def test_partial_load_overwrites_cache(self, machine, seeded_remote, offline_cache, make_user, cached_snapshot):
        """By default the cache mirrors the latest fetch, empty collections included"""
        seeded_remote.fail("select:goals", "permission denied for table goals")

        asyncio.run(machine.on_session_change(make_user(), ConnectionStatus.CONNECTED))

        assert offline_cache.load("user-1").goals == []

    def test_partial_load_merges_when_enabled(self, fake_remote, offline_cache, fast_timeouts, sample_rows, make_user, cached_snapshot):
        """With merging on, failed collections keep their cached rows"""
        for table, rows in sample_rows.items():
            fake_remote.tables[table] = [dict(r) for r in rows]
        fake_remote.fail("select:goals", "permission denied for table goals")
        machine = AppStateMachine(fake_remote, offline_cache, timeouts=fast_timeouts, merge_partial_cache=True)

        asyncio.run(machine.on_session_change(make_user(), ConnectionStatus.CONNECTED))

        assert machine.snapshot.goals == cached_snapshot.goals
        assert len(machine.snapshot.transactions) == 2
        assert offline_cache.load("user-1").goals == cached_snapshot.goals


class TestAppStateUserActions:
    """Test retry, setup complete, continue offline and refresh"""

    def test_retry_counts_and_probes_again(self, machine, fake_remote, make_user):
        fake_remote.fail("probe", "All connection attempts failed", kind="network")

        async def run():
            await machine.on_session_change(make_user(), ConnectionStatus.CONNECTED)
            await machine.retry()
            await machine.retry()

        asyncio.run(run())

        assert machine.retry_count == 2
        assert fake_remote.count("probe") == 3
        assert machine.state == AppScreen.CONNECTION_ERROR

    def test_retry_recovers(self, machine, seeded_remote, make_user):
        seeded_remote.fail("probe", "All connection attempts failed", kind="network")

        async def run():
            await machine.on_session_change(make_user(), ConnectionStatus.CONNECTED)
            del seeded_remote.errors["probe"]
            return await machine.retry()

        assert asyncio.run(run()) == AppScreen.READY
        assert not machine.snapshot.is_empty()

    def test_retry_from_disconnected_probes(self, machine, seeded_remote, make_user):
        """A manual retry probes even if the session is disconnected"""
        async def run():
            await machine.on_session_change(make_user(), ConnectionStatus.DISCONNECTED)
            await machine.retry()
            # Guard re-armed to the current pair: no second entry run
            assert not await machine.on_session_change(make_user(), ConnectionStatus.DISCONNECTED)

        asyncio.run(run())

        assert machine.state == AppScreen.READY
        assert seeded_remote.count("probe") == 1

    def test_offline_option_after_retries(self, machine, fake_remote, make_user):
        """Continue Offline is offered once retries exceed the threshold"""
        fake_remote.fail("probe", "All connection attempts failed", kind="network")

        async def run():
            await machine.on_session_change(make_user(), ConnectionStatus.CONNECTED)
            for _ in range(2):
                await machine.retry()
            assert not machine.can_continue_offline
            await machine.retry()

        asyncio.run(run())

        assert machine.can_continue_offline

    def test_offline_option_after_retries_while_disconnected(self, machine, fake_remote, make_user):
        fake_remote.fail("probe", "All connection attempts failed", kind="network")

        async def run():
            await machine.on_session_change(make_user(), ConnectionStatus.DISCONNECTED)
            for _ in range(3):
                await machine.retry()

        asyncio.run(run())

        assert machine.retry_count == 3
        assert machine.state == AppScreen.CONNECTION_ERROR
        assert machine.can_continue_offline

    def test_retry_schema_missing_while_disconnected(self, machine, fake_remote, make_user):
        """A missing relation wins regardless of the session's status"""
        fake_remote.fail("probe", SCHEMA_MISSING, code="42P01")

        async def run():
            await machine.on_session_change(make_user(), ConnectionStatus.DISCONNECTED)
            await machine.retry()

        asyncio.run(run())

        assert machine.state == AppScreen.NEEDS_SETUP

    def test_setup_complete_rechecks(self, machine, seeded_remote, make_user):
        seeded_remote.fail("probe", SCHEMA_MISSING, code="42P01")

        async def run():
            await machine.on_session_change(make_user(), ConnectionStatus.CONNECTED)
            assert machine.state == AppScreen.NEEDS_SETUP
            del seeded_remote.errors["probe"]
            return await machine.setup_complete()

        assert asyncio.run(run()) == AppScreen.READY

    def test_enter_offline_mode_with_cache(self, machine, fake_remote, make_user, cached_snapshot):
        fake_remote.fail("probe", "All connection attempts failed", kind="network")

        async def run():
            await machine.on_session_change(make_user(), ConnectionStatus.CONNECTED)
            return machine.enter_offline_mode()

        assert asyncio.run(run()) == AppScreen.OFFLINE_MODE
        assert machine.view().is_offline

    def test_enter_offline_mode_without_cache_errors(self, machine, fake_remote, make_user):
        fake_remote.fail("probe", "All connection attempts failed", kind="network")

        async def run():
            await machine.on_session_change(make_user(), ConnectionStatus.CONNECTED)
            return machine.enter_offline_mode()

        assert asyncio.run(run()) == AppScreen.ERROR
        assert machine.error == NO_OFFLINE_DATA
        assert machine.can_continue_offline

    def test_refresh_ignored_outside_ready(self, machine, fake_remote):
        assert not asyncio.run(machine.refresh_data())
        assert fake_remote.calls == []

    def test_refresh_from_offline_reaches_ready(self, machine, seeded_remote, make_user, cached_snapshot):
        async def run():
            await machine.on_session_change(make_user(), ConnectionStatus.DISCONNECTED)
            return await machine.refresh_data()

        assert asyncio.run(run())
        assert machine.state == AppScreen.READY
        assert len(machine.snapshot.transactions) == 2

    def test_repeated_refresh_is_stable(self, machine, seeded_remote, make_user):
        """Two refreshes against an unchanged backend give the same snapshot"""
        async def run():
            await machine.on_session_change(make_user(), ConnectionStatus.CONNECTED)
            assert await machine.refresh_data()
            first = machine.snapshot
            assert await machine.refresh_data()
            return first

        first = asyncio.run(run())

        assert machine.snapshot == first
        assert machine.state == AppScreen.READY

    def test_refresh_failure_keeps_state(self, machine, make_user, cached_snapshot, monkeypatch):
        """A failed refresh is logged and the current screen stays"""
        async def broken(user_id):
            raise RuntimeError("boom")

        async def run():
            await machine.on_session_change(make_user(), ConnectionStatus.DISCONNECTED)
            monkeypatch.setattr(machine, "fetch_snapshot", broken)
            return await machine.refresh_data()

        assert not asyncio.run(run())
        assert machine.state == AppScreen.OFFLINE_MODE
        assert machine.snapshot == cached_snapshot


class TestAppStateTeardown:
    """Test that results after teardown are discarded"""

    def test_late_results_discarded(self, machine, seeded_remote, make_user):
        seeded_remote.delays["probe"] = 0.05
        changes = []
        machine.register_callback(changes.append)

        async def run():
            task = asyncio.ensure_future(
                machine.on_session_change(make_user(), ConnectionStatus.CONNECTED)
            )
            await asyncio.sleep(0.01)
            machine.teardown()
            await task

        asyncio.run(run())

        assert machine.snapshot.is_empty()
        assert machine.state == AppScreen.LOADING
        assert [c.state for c in changes] == [AppScreen.LOADING]

    def test_listeners_receive_views(self, machine, seeded_remote, make_user):
        changes = []
        machine.register_callback(changes.append)

        asyncio.run(machine.on_session_change(make_user(), ConnectionStatus.CONNECTED))

        assert [c.state for c in changes] == [AppScreen.LOADING, AppScreen.READY]
        assert changes[-1].data.counts()["buckets"] == 2
