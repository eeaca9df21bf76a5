"""
Unit tests for SessionManager.

Tests cover:
- Reconciliation: create, reactivate and supersede across devices
- The at-most-one-Active-session invariant under concurrent logins
- Expiry on read and in bulk
- Metadata updates, extension, termination and statistics
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from uuid import UUID, uuid4

import pytest

from sessionlock.config import LockOptions, SessionPolicy
from sessionlock.exceptions import LockAcquisitionError
from sessionlock.locks import session_lock_key
from sessionlock.results import ErrorKind
from sessionlock.sessions import (
    DeviceMetadata,
    Platform,
    ReconcileAction,
    SessionManager,
    SessionState,
    SessionUpdate,
    TerminationReason,
)
from sessionlock.testing import FakeClock, InMemoryTestHarness


async def active_ids(sessions: SessionManager, user_id: UUID) -> list[UUID]:
    return [s.id for s in await sessions.get_user_sessions(user_id)]


class TestReconcile:
    """Tests for get_or_create_session and reconcile."""

    async def test_first_login_creates_active_session(
        self,
        session_manager: SessionManager,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        result = await session_manager.reconcile(user_id, "iphone-A", ios_metadata)

        session = result.session
        assert result.action == ReconcileAction.CREATED
        assert result.terminated_session_ids == []
        assert session.state == SessionState.ACTIVE
        assert session.platform == Platform.IOS
        assert session.device_name == "Ada's iPhone"
        assert session.push_token == "apns-token-1"
        assert session.push_token_updated_at == clock()
        assert session.created_at == clock()
        assert session.expires_at == clock() + timedelta(days=30)

    async def test_login_on_other_device_supersedes(
        self,
        session_manager: SessionManager,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
        android_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        """
        Test that the user keeps one Active session as they move between devices.

        iphone-A creates S1; android-B creates S2 and terminates S1; iphone-A
        again reactivates S1 under the same id and terminates S2.
        """
        s1 = await session_manager.get_or_create_session(user_id, "iphone-A", ios_metadata)
        clock.advance(60.0)
        second = await session_manager.reconcile(user_id, "android-B", android_metadata)
        s2 = second.session

        assert second.action == ReconcileAction.CREATED
        assert second.terminated_session_ids == [s1.id]
        s1_after = (await session_manager.get_session(s1.id)).unwrap()
        assert s1_after.state == SessionState.TERMINATED
        assert s1_after.termination_reason == "new_session_on_different_device"
        assert s1_after.terminated_at == clock()

        clock.advance(60.0)
        third = await session_manager.reconcile(user_id, "iphone-A", ios_metadata)

        assert third.action == ReconcileAction.REACTIVATED
        assert third.session.id == s1.id
        assert third.session.state == SessionState.ACTIVE
        assert third.session.terminated_at is None
        assert third.session.termination_reason is None
        assert third.terminated_session_ids == [s2.id]
        s2_after = (await session_manager.get_session(s2.id)).unwrap()
        assert s2_after.termination_reason == "new_session_on_different_device"
        assert await active_ids(session_manager, user_id) == [s1.id]

    async def test_repeat_login_on_same_device_reuses_row(
        self,
        session_manager: SessionManager,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        """Test that logging in twice from one device returns the same row, still Active."""
        first = await session_manager.get_or_create_session(user_id, "iphone-A", ios_metadata)
        clock.advance(3600.0)

        again = await session_manager.reconcile(user_id, "iphone-A", ios_metadata)

        assert again.action == ReconcileAction.REACTIVATED
        assert again.session.id == first.id
        assert again.terminated_session_ids == []
        assert again.session.created_at == first.created_at
        assert again.session.last_activity_at == clock()
        assert again.session.expires_at == clock() + timedelta(days=30)
        assert len(await session_manager.get_user_sessions(user_id, include_inactive=True)) == 1

    async def test_reactivation_merges_supplied_metadata(
        self,
        session_manager: SessionManager,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        """Test that unsupplied fields keep stored values and supplied ones overwrite."""
        first = await session_manager.get_or_create_session(user_id, "iphone-A", ios_metadata)
        clock.advance(60.0)

        again = await session_manager.get_or_create_session(
            user_id,
            "iphone-A",
            DeviceMetadata(platform=Platform.IOS, os_version="18.0"),
            idempotency_key="login-2",
        )

        assert again.os_version == "18.0"
        assert again.device_name == "Ada's iPhone"
        assert again.push_token == "apns-token-1"
        assert again.push_token_updated_at == first.push_token_updated_at
        assert again.idempotency_key == "login-2"

    async def test_sessions_of_other_users_are_untouched(
        self,
        session_manager: SessionManager,
        ios_metadata: DeviceMetadata,
    ) -> None:
        ada, bob = uuid4(), uuid4()
        ada_session = await session_manager.get_or_create_session(ada, "iphone-A", ios_metadata)

        await session_manager.get_or_create_session(bob, "iphone-B", ios_metadata)

        assert (await session_manager.get_session(ada_session.id)).unwrap().is_active

    async def test_custom_expiry_days(
        self,
        session_manager: SessionManager,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        session = await session_manager.get_or_create_session(
            user_id, "iphone-A", ios_metadata, expires_in_days=7
        )

        assert session.expires_at == clock() + timedelta(days=7)

    async def test_non_positive_expiry_is_rejected(
        self,
        session_manager: SessionManager,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
    ) -> None:
        with pytest.raises(ValueError, match="expires_in_days"):
            await session_manager.get_or_create_session(
                user_id, "iphone-A", ios_metadata, expires_in_days=0
            )

    async def test_policy_expiry_default(
        self,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        harness = InMemoryTestHarness(
            session_policy=SessionPolicy(default_expiry_days=14), clock=clock
        )

        session = await harness.sessions.get_or_create_session(user_id, "iphone-A", ios_metadata)

        assert session.expires_at == clock() + timedelta(days=14)

    async def test_concurrent_logins_leave_one_active_session(
        self,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
        android_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        """Test that racing logins from several devices end with exactly one Active row."""
        harness = InMemoryTestHarness(
            session_policy=SessionPolicy(
                lock_options=LockOptions(timeout=60.0, retries=20, retry_delay=0.01)
            ),
            clock=clock,
        )
        logins = [
            harness.sessions.get_or_create_session(user_id, "iphone-A", ios_metadata),
            harness.sessions.get_or_create_session(user_id, "iphone-A", ios_metadata),
            harness.sessions.get_or_create_session(user_id, "android-B", android_metadata),
            harness.sessions.get_or_create_session(user_id, "android-C", android_metadata),
        ]

        await asyncio.gather(*logins)

        all_sessions = await harness.sessions.get_user_sessions(user_id, include_inactive=True)
        assert len(all_sessions) == 3
        assert len([s for s in all_sessions if s.is_active]) == 1
        assert len(harness.lock_store) == 0

    async def test_held_device_lock_raises(
        self,
        harness: InMemoryTestHarness,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
    ) -> None:
        other_process = harness.new_lock_manager()
        await other_process.acquire(
            session_lock_key(user_id, "iphone-A"), LockOptions(timeout=600.0)
        )

        with pytest.raises(LockAcquisitionError):
            await harness.sessions.get_or_create_session(user_id, "iphone-A", ios_metadata)

        assert await harness.sessions.get_user_sessions(user_id, include_inactive=True) == []


class TestActiveSessionAndExpiry:
    """Tests for get_active_session and expire_sessions."""

    async def test_get_active_session(
        self,
        session_manager: SessionManager,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
    ) -> None:
        session = await session_manager.get_or_create_session(user_id, "iphone-A", ios_metadata)

        assert (await session_manager.get_active_session(user_id)).unwrap().id == session.id

    async def test_no_active_session(self, session_manager: SessionManager) -> None:
        result = await session_manager.get_active_session(uuid4())

        assert result.error == ErrorKind.NOT_FOUND

    async def test_expired_session_is_terminated_on_read(
        self,
        session_manager: SessionManager,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        """Test that reading an expired Active session terminates it as expired."""
        session = await session_manager.get_or_create_session(
            user_id, "iphone-A", ios_metadata, expires_in_days=1
        )
        clock.advance(days=2)

        result = await session_manager.get_active_session(user_id)

        assert result.error == ErrorKind.NOT_FOUND
        stored = (await session_manager.get_session(session.id)).unwrap()
        assert stored.is_active is False
        assert stored.termination_reason == "expired"

    async def test_expire_sessions_only_touches_due_rows(
        self,
        session_manager: SessionManager,
        ios_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        short = await session_manager.get_or_create_session(
            uuid4(), "iphone-A", ios_metadata, expires_in_days=1
        )
        long = await session_manager.get_or_create_session(
            uuid4(), "iphone-B", ios_metadata, expires_in_days=10
        )
        clock.advance(days=2)

        summary = await session_manager.expire_sessions()

        assert summary.count == 1
        assert summary.session_ids == [short.id]
        assert (await session_manager.get_session(long.id)).unwrap().is_active

    async def test_expired_session_can_be_reactivated(
        self,
        session_manager: SessionManager,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        session = await session_manager.get_or_create_session(
            user_id, "iphone-A", ios_metadata, expires_in_days=1
        )
        clock.advance(days=2)
        await session_manager.expire_sessions()

        again = await session_manager.get_or_create_session(user_id, "iphone-A", ios_metadata)

        assert again.id == session.id
        assert again.is_active


class TestUpdates:
    """Tests for metadata updates and extension."""

    async def test_update_session_merges_metadata(
        self,
        session_manager: SessionManager,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        session = await session_manager.get_or_create_session(user_id, "iphone-A", ios_metadata)
        clock.advance(30.0)

        updated = (
            await session_manager.update_session(session.id, SessionUpdate(app_version="2.4.0"))
        ).unwrap()

        assert updated.app_version == "2.4.0"
        assert updated.device_name == "Ada's iPhone"
        assert updated.last_activity_at == clock()

    async def test_update_activity(
        self,
        session_manager: SessionManager,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        session = await session_manager.get_or_create_session(user_id, "iphone-A", ios_metadata)
        clock.advance(30.0)

        updated = (await session_manager.update_activity(session.id)).unwrap()

        assert updated.last_activity_at == clock()
        assert updated.expires_at == session.expires_at

    async def test_update_push_token(
        self,
        session_manager: SessionManager,
        user_id: UUID,
        android_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        session = await session_manager.get_or_create_session(
            user_id, "android-B", android_metadata
        )
        assert session.push_token is None
        clock.advance(30.0)

        updated = (await session_manager.update_push_token(session.id, "fcm-token")).unwrap()

        assert updated.push_token == "fcm-token"
        assert updated.push_token_updated_at == clock()

    async def test_updates_on_unknown_session(self, session_manager: SessionManager) -> None:
        missing = uuid4()

        assert (await session_manager.update_activity(missing)).error == ErrorKind.NOT_FOUND
        assert (await session_manager.update_push_token(missing, "t")).error == (
            ErrorKind.NOT_FOUND
        )
        assert (await session_manager.extend_session(missing)).error == ErrorKind.NOT_FOUND

    async def test_extend_session_from_current_expiry(
        self,
        session_manager: SessionManager,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        session = await session_manager.get_or_create_session(
            user_id, "iphone-A", ios_metadata, expires_in_days=5
        )
        clock.advance(3 * 3600)

        extended = (await session_manager.extend_session(session.id, additional_days=10)).unwrap()

        assert extended.expires_at == session.expires_at + timedelta(days=10)
        assert extended.last_activity_at == clock()
        assert extended.last_activity_at > session.last_activity_at

    async def test_extend_rejects_non_positive_days(self, session_manager: SessionManager) -> None:
        with pytest.raises(ValueError):
            await session_manager.extend_session(uuid4(), additional_days=0)


class TestTermination:
    """Tests for terminate_session, terminate_all_user_sessions and stats."""

    async def test_logout(
        self,
        session_manager: SessionManager,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        session = await session_manager.get_or_create_session(user_id, "iphone-A", ios_metadata)

        ended = (await session_manager.terminate_session(session.id)).unwrap()

        assert ended.state == SessionState.TERMINATED
        assert ended.termination_reason == TerminationReason.USER_LOGOUT.value
        assert ended.terminated_at == clock()
        assert (await session_manager.get_active_session(user_id)).error == ErrorKind.NOT_FOUND

    async def test_terminating_twice_keeps_first_reason(
        self,
        session_manager: SessionManager,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        session = await session_manager.get_or_create_session(user_id, "iphone-A", ios_metadata)
        first = (await session_manager.terminate_session(session.id)).unwrap()
        clock.advance(10.0)

        second = (await session_manager.terminate_session(session.id, "admin_revoked")).unwrap()

        assert second.termination_reason == "user_logout"
        assert second.terminated_at == first.terminated_at

    async def test_free_form_reason(
        self,
        session_manager: SessionManager,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
    ) -> None:
        session = await session_manager.get_or_create_session(user_id, "iphone-A", ios_metadata)

        ended = (await session_manager.terminate_session(session.id, "admin_revoked")).unwrap()

        assert ended.termination_reason == "admin_revoked"

    async def test_terminate_unknown_session(self, session_manager: SessionManager) -> None:
        assert (await session_manager.terminate_session(uuid4())).error == ErrorKind.NOT_FOUND

    async def test_terminate_all(
        self,
        session_manager: SessionManager,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
    ) -> None:
        session = await session_manager.get_or_create_session(user_id, "iphone-A", ios_metadata)

        summary = await session_manager.terminate_all_user_sessions(user_id)
        again = await session_manager.terminate_all_user_sessions(user_id)

        assert summary.count == 1
        assert summary.session_ids == [session.id]
        assert again.count == 0
        stored = (await session_manager.get_session(session.id)).unwrap()
        assert stored.termination_reason == "user_logout_all"

    async def test_session_stats(
        self,
        session_manager: SessionManager,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
        android_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        await session_manager.get_or_create_session(user_id, "iphone-A", ios_metadata)
        clock.advance(1.0)
        await session_manager.get_or_create_session(user_id, "android-B", android_metadata)
        clock.advance(1.0)
        await session_manager.get_or_create_session(user_id, "android-C", android_metadata)

        stats = await session_manager.get_session_stats(user_id)

        assert stats.total_sessions == 3
        assert stats.active_sessions == 1
        assert stats.platform_breakdown == {"ios": 1, "android": 2}

    async def test_user_sessions_newest_activity_first(
        self,
        session_manager: SessionManager,
        user_id: UUID,
        ios_metadata: DeviceMetadata,
        android_metadata: DeviceMetadata,
        clock: FakeClock,
    ) -> None:
        first = await session_manager.get_or_create_session(user_id, "iphone-A", ios_metadata)
        clock.advance(1.0)
        second = await session_manager.get_or_create_session(
            user_id, "android-B", android_metadata
        )

        listed = await session_manager.get_user_sessions(user_id, include_inactive=True)

        assert [s.id for s in listed] == [second.id, first.id]
