"""Tests for the SQLite session store and the session manager running on it."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import timedelta
from uuid import UUID, uuid4

from sessionlock.results import ErrorKind
from sessionlock.sessions import (
    DeviceMetadata,
    ReconcileAction,
    SessionState,
    SessionUpdate,
    SQLiteSessionStore,
)
from sessionlock.testing import FakeClock
from tests.conftest import skip_if_no_aiosqlite
from tests.sqlite.conftest import SQLiteProcess

pytestmark = [skip_if_no_aiosqlite]


class TestSessionManagerOnSQLite:
    async def test_one_active_session_across_devices(
        self,
        process: SQLiteProcess,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
        android_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        """Test create, supersede and reactivate-in-place on SQLite."""
        sessions = process.sessions
        s1 = await sessions.get_or_create_session(user_id, "iphone-A", ios_metadata)
        clock.advance(10.0)
        s2 = await sessions.get_or_create_session(user_id, "android-B", android_metadata)
        clock.advance(10.0)
        third = await sessions.reconcile(user_id, "iphone-A", ios_metadata)

        assert third.action == ReconcileAction.REACTIVATED
        assert third.session.id == s1.id
        assert third.terminated_session_ids == [s2.id]
        stored_s2 = (await sessions.get_session(s2.id)).unwrap()
        assert stored_s2.state == SessionState.TERMINATED
        assert stored_s2.termination_reason == "new_session_on_different_device"
        active = await sessions.get_user_sessions(user_id)
        assert [s.id for s in active] == [s1.id]
        assert (await sessions.get_active_session(user_id)).unwrap().id == s1.id

    async def test_stored_session_matches_returned(
        self,
        process: SQLiteProcess,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
    ) -> None:
        session = await process.sessions.get_or_create_session(
            user_id, "iphone-A", ios_metadata, idempotency_key="login-1"
        )

        assert (await process.sessions.get_session(session.id)).unwrap() == session

    async def test_logins_from_two_processes(
        self,
        open_process: Callable[[], Awaitable[SQLiteProcess]],
        user_id: UUID,
        ios_metadata: DeviceMetadata,
        android_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        process_a = await open_process()
        process_b = await open_process()

        await process_a.sessions.get_or_create_session(user_id, "iphone-A", ios_metadata)
        clock.advance(1.0)
        s2 = await process_b.sessions.get_or_create_session(user_id, "android-B", android_metadata)

        active = await process_a.sessions.get_user_sessions(user_id)
        assert [s.id for s in active] == [s2.id]

    async def test_expiry_and_termination(
        self,
        process: SQLiteProcess,
        ios_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        sessions = process.sessions
        short = await sessions.get_or_create_session(
            uuid4(), "iphone-A", ios_metadata, expires_in_days=1
        )
        other_user = uuid4()
        long = await sessions.get_or_create_session(
            other_user, "iphone-B", ios_metadata, expires_in_days=10
        )
        clock.advance(days=2)

        expired = await sessions.expire_sessions()
        summary = await sessions.terminate_all_user_sessions(other_user)

        assert expired.session_ids == [short.id]
        assert summary.session_ids == [long.id]
        assert (await sessions.get_session(short.id)).unwrap().termination_reason == "expired"
        assert (await sessions.get_session(long.id)).unwrap().termination_reason == (
            "user_logout_all"
        )

    async def test_terminate_only_affects_active(
        self,
        process: SQLiteProcess,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        session = await process.sessions.get_or_create_session(user_id, "iphone-A", ios_metadata)
        first = (await process.sessions.terminate_session(session.id)).unwrap()
        clock.advance(5.0)

        second = (await process.sessions.terminate_session(session.id, "admin")).unwrap()

        assert second.termination_reason == first.termination_reason == "user_logout"
        assert second.terminated_at == first.terminated_at

    async def test_updates(
        self,
        process: SQLiteProcess,
        user_id: UUID,
        android_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        sessions = process.sessions
        session = await sessions.get_or_create_session(user_id, "android-B", android_metadata)
        clock.advance(60.0)

        updated = (
            await sessions.update_session(session.id, SessionUpdate(os_version="15"))
        ).unwrap()
        pushed = (await sessions.update_push_token(session.id, "fcm-1")).unwrap()
        extended = (await sessions.extend_session(session.id, additional_days=5)).unwrap()

        assert updated.os_version == "15"
        assert updated.last_activity_at == clock()
        assert pushed.push_token == "fcm-1"
        assert pushed.push_token_updated_at == clock()
        assert extended.expires_at == session.expires_at + timedelta(days=5)
        assert extended.push_token == "fcm-1"
        assert (await sessions.update_activity(uuid4())).error == ErrorKind.NOT_FOUND

    async def test_store_find_for_device(
        self,
        process: SQLiteProcess,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
    ) -> None:
        session = await process.sessions.get_or_create_session(user_id, "iphone-A", ios_metadata)
        store = SQLiteSessionStore(process.db)

        async with store.transaction() as tx:
            found = await tx.find_for_device(user_id, "iphone-A")
            missing = await tx.find_for_device(user_id, "iphone-Z")

        assert found == session
        assert missing is None
