# =============================================================================
# tests/integration/test_startup_flow.py
# Integration Tests for the session -> screen -> snapshot startup flow
# =============================================================================
"""
These tests wire SessionManager and AppStateMachine through an AppContext the
way the Streamlit entry point does, against the in-memory remote.
"""

import asyncio

import pytest

from savvi_core.auth.session_manager import ConnectionStatus
from savvi_core.context import AppContext
from savvi_core.offline.local_storage import LocalStorage
from savvi_core.state.app_state import AppScreen
from savvi_core.utils.async_utils import LoopRunner


async def start(context: AppContext):
    """Initialize the session then run the machine's entry sequence."""
    session = context.create_session_manager()
    machine = context.create_state_machine()
    await session.initialize()
    await machine.on_session_change(session.user, session.connection_status)
    return session, machine


class TestStartupFlow:
    """Test cold and warm starts end to end"""

    def test_online_start_reaches_ready(self, config, seeded_remote, make_user):
        seeded_remote.session_user = make_user()
        context = AppContext(config, remote=seeded_remote)

        session, machine = asyncio.run(start(context))

        assert session.connection_status == ConnectionStatus.CONNECTED
        assert machine.state == AppScreen.READY
        assert context.offline_cache.has("user-1")

    def test_offline_restart_uses_cache(self, config, seeded_remote, fake_remote, make_user):
        """
        A second run with the network down shows the first run's data:
        cached user from the session layer, cached snapshot from the machine.
        """
        seeded_remote.session_user = make_user()
        first = AppContext(config, remote=seeded_remote)
        _, online = asyncio.run(start(first))

        seeded_remote.fail("get_session", "All connection attempts failed", kind="network")
        second = AppContext(config, storage=LocalStorage(config.storage_dir), remote=seeded_remote)
        session, machine = asyncio.run(start(second))

        assert session.connection_status == ConnectionStatus.DISCONNECTED
        assert session.user.id == "user-1"
        assert machine.state == AppScreen.OFFLINE_MODE
        assert machine.snapshot == online.snapshot

    def test_cold_offline_start_shows_connection_error(self, config, fake_remote):
        """Network down and nothing cached: no user, nothing to show"""
        fake_remote.fail("get_session", "All connection attempts failed", kind="network")
        context = AppContext(config, remote=fake_remote)

        session, machine = asyncio.run(start(context))

        assert session.user is None
        assert session.connection_status == ConnectionStatus.DISCONNECTED
        assert machine.state == AppScreen.LOADING

    def test_sign_in_then_sign_out(self, config, seeded_remote, make_user):
        seeded_remote.sign_in_user = make_user()
        context = AppContext(config, remote=seeded_remote)

        async def run():
            session, machine = await start(context)
            assert machine.state == AppScreen.LOADING

            await session.sign_in("user@example.com", "secret1")
            await machine.on_session_change(session.user, session.connection_status)
            assert machine.state == AppScreen.READY

            await session.sign_out()
            await machine.on_session_change(session.user, session.connection_status)
            return machine

        machine = asyncio.run(run())

        assert machine.state == AppScreen.LOADING
        assert machine.snapshot.is_empty()
        # Cached snapshot stays for the next offline start
        assert context.offline_cache.has("user-1")

    def test_session_listener_drives_machine(self, config, seeded_remote, make_user):
        """An auth event from the provider re-runs the entry sequence"""
        context = AppContext(config, remote=seeded_remote)

        async def run():
            session, machine = await start(context)
            pending = []
            session.register_callback(
                lambda state: pending.append(
                    asyncio.ensure_future(
                        machine.on_session_change(state.user, state.connection_status)
                    )
                )
            )
            seeded_remote.emit("SIGNED_IN", make_user())
            await asyncio.sleep(0.1)
            await asyncio.gather(*pending)
            return machine

        machine = asyncio.run(run())

        assert machine.state == AppScreen.READY
        assert machine.user.id == "user-1"


class TestLoopRunner:
    """Test driving the core from a non-async thread"""

    def test_run_from_script_thread(self, config, seeded_remote, make_user):
        seeded_remote.session_user = make_user()
        context = AppContext(config, remote=seeded_remote)
        runner = LoopRunner().start()

        try:
            session, machine = runner.run(start(context), timeout=5)
            # Debounce timers fire on the runner's loop, not the caller's
            seeded_remote.session_user = None
            runner.call_soon(seeded_remote.emit, "SIGNED_OUT", None)
            runner.run(asyncio.sleep(0.1), timeout=5)
        finally:
            runner.stop()

        assert machine.state == AppScreen.READY
        assert session.user is None
        assert not runner.is_running

    def test_run_propagates_errors(self):
        runner = LoopRunner().start()

        async def broken():
            raise ValueError("bad")

        try:
            with pytest.raises(ValueError):
                runner.run(broken(), timeout=5)
        finally:
            runner.stop()


class TestPerClientStorage:
    """Test that browser sessions on one server keep separate local storage"""

    def test_clients_do_not_share_cached_users_or_snapshots(self, config, seeded_remote, make_user):
        async def sign_in_and_load(context, user):
            seeded_remote.sign_in_user = user
            session, machine = await start(context)
            await session.sign_in(user.email, "secret1")
            await machine.on_session_change(session.user, session.connection_status)
            return machine

        ana = AppContext(config, remote=seeded_remote, client_id="browser-ana")
        budi = AppContext(config, remote=seeded_remote, client_id="browser-budi")
        asyncio.run(sign_in_and_load(ana, make_user()))
        machine = asyncio.run(sign_in_and_load(budi, make_user("user-2", "budi@example.com", "Budi")))

        assert machine.state == AppScreen.READY
        assert ana.offline_cache.has("user-1")
        assert not budi.offline_cache.has("user-1")
        assert LocalStorage(config.storage_dir, client_id="browser-ana").get_json("savvi-user")["id"] == "user-1"

        # A new browser with the network down inherits nobody's identity
        seeded_remote.fail("get_session", "Failed to fetch", kind="network")
        visitor = AppContext(config, remote=seeded_remote, client_id="browser-new")
        session, machine = asyncio.run(start(visitor))

        assert session.user is None
        assert machine.state == AppScreen.LOADING
