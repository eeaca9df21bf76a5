"""
Transitions of a session row.

States per (user, device) row are Active and Terminated. These functions
compute the next row from the current one and never touch storage; the
session manager runs them under the reconciliation lock and persists the
result in one transaction.

    (none) --open--> Active
    Active | Terminated --reactivate--> Active
    Active --terminate(reason)--> Terminated
"""

from datetime import datetime
from uuid import UUID

from sessionlock.sessions.models import (
    DeviceMetadata,
    Session,
    TerminationReason,
    reason_value,
)


def open_session(
    session_id: UUID,
    user_id: UUID,
    device_id: str,
    metadata: DeviceMetadata,
    now: datetime,
    expires_at: datetime,
    idempotency_key: str | None = None,
) -> Session:
    """First login from a device: a new Active row."""
    fields = metadata.supplied()
    if "push_token" in fields:
        fields["push_token_updated_at"] = now
    return Session(
        id=session_id,
        user_id=user_id,
        device_id=device_id,
        is_active=True,
        idempotency_key=idempotency_key,
        created_at=now,
        last_activity_at=now,
        expires_at=expires_at,
        **fields,
    )


def reactivate_session(
    session: Session,
    metadata: DeviceMetadata,
    now: datetime,
    expires_at: datetime,
    idempotency_key: str | None = None,
) -> Session:
    """
    Login from a device that already has a row, in either state.

    Supplied metadata is merged over the stored values, except ``platform``,
    which stays as recorded at the first login. ``created_at`` is kept, so it
    always records the first login from the device.
    """
    update = metadata.supplied()
    update.pop("platform", None)
    if "push_token" in update:
        update["push_token_updated_at"] = now
    if idempotency_key is not None:
        update["idempotency_key"] = idempotency_key
    update.update(
        is_active=True,
        terminated_at=None,
        termination_reason=None,
        last_activity_at=now,
        expires_at=expires_at,
    )
    return session.model_copy(update=update)


def terminate_session(
    session: Session,
    reason: TerminationReason | str,
    now: datetime,
) -> Session:
    """
    Active to Terminated. A Terminated row is returned unchanged, keeping
    its original reason and timestamp.
    """
    if not session.is_active:
        return session
    return session.model_copy(
        update={
            "is_active": False,
            "terminated_at": now,
            "termination_reason": reason_value(reason),
        }
    )


__all__ = ["open_session", "reactivate_session", "terminate_session"]
