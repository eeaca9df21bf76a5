"""
Versioned user records.

Example:
    >>> from sessionlock.users import NewUser, UserPatch, UserService
    >>>
    >>> users = UserService(lock_manager, InMemoryUserStore())
    >>> created = (await users.create_user(NewUser(privy_id="did:privy:abc"))).unwrap()
    >>> result = await users.update_with_version(created.id, UserPatch(email="a@b.c"), 0)
    >>> result.value.version
    1
"""

from sessionlock.users.in_memory import InMemoryUserStore
from sessionlock.users.interface import UserStore, UserTransaction
from sessionlock.users.models import NewUser, User, UserPage, UserPatch, UserStatus
from sessionlock.users.postgresql import PostgreSQLUserStore
from sessionlock.users.service import UserService
from sessionlock.users.sqlite import SQLiteUserStore

__all__ = [
    "NewUser",
    "User",
    "UserPage",
    "UserPatch",
    "UserStatus",
    "UserStore",
    "UserTransaction",
    "InMemoryUserStore",
    "SQLiteUserStore",
    "PostgreSQLUserStore",
    "UserService",
]
