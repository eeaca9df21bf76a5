"""Translation of storage-engine constraint errors into domain errors."""

from collections.abc import Iterable
from typing import Any

from sessionlock.exceptions import UniquenessViolationError


def uniqueness_violation(
    error: Exception,
    fields: Iterable[str],
    values: dict[str, Any],
) -> UniquenessViolationError:
    """
    Build a UniquenessViolationError naming the column a driver complained about.

    SQLite reports ``UNIQUE constraint failed: users.wallet_address`` and
    PostgreSQL names the constraint ``users_wallet_address_key``; both carry
    the column name.

    Args:
        error: The driver's integrity error
        fields: Unique columns of the table other than the primary key
        values: Values that were being written, by column
    """
    message = str(error)
    for name in fields:
        if name in message:
            return UniquenessViolationError(name, values.get(name))
    # The primary key is the only other unique constraint
    return UniquenessViolationError("id", values.get("id"))


__all__ = ["uniqueness_violation"]
