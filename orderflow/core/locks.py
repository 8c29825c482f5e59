"""
Transaction-scoped, non-blocking advisory locks.

PostgreSQL: pg_try_advisory_xact_lock, released by the database at commit or
rollback. Other dialects (SQLite for local runs and tests): an in-process
registry whose locks are released when the owning session's outermost
transaction ends. Either way there is no explicit unlock call.

Locks are re-entrant within the same session, like PostgreSQL advisory locks.
"""
import hashlib
import logging
import threading
import uuid
from typing import Iterable

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session


logger = logging.getLogger(__name__)

_HELD_KEYS = "advisory_lock_keys"
_OWNER = "advisory_lock_owner"


def lock_key_for(value: str) -> int:
    """Deterministic signed 64-bit lock key (first 8 bytes of the MD5 digest)."""
    digest = hashlib.md5(value.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


class InProcessLockRegistry:
    """Map of lock key -> owning session token."""

    def __init__(self):
        self._mutex = threading.Lock()
        self._held: dict[int, uuid.UUID] = {}

    def try_acquire(self, key: int, owner: uuid.UUID) -> bool:
        with self._mutex:
            holder = self._held.get(key)
            if holder is None:
                self._held[key] = owner
                return True
            return holder == owner

    def release(self, keys: Iterable[int], owner: uuid.UUID) -> None:
        with self._mutex:
            for key in keys:
                if self._held.get(key) == owner:
                    del self._held[key]

    def is_held(self, key: int) -> bool:
        with self._mutex:
            return key in self._held


registry = InProcessLockRegistry()


async def try_advisory_xact_lock(db: AsyncSession, value: str) -> bool:
    """
    Try to take the lock for `value` for the rest of the current transaction.

    Returns False immediately when another transaction holds it.
    """
    key = lock_key_for(value)
    conn = await db.connection()

    if conn.dialect.name == "postgresql":
        result = await conn.execute(
            text("SELECT pg_try_advisory_xact_lock(:key)"),
            {"key": key}
        )
        return bool(result.scalar())

    session = db.sync_session
    owner = session.info.setdefault(_OWNER, uuid.uuid4())
    if not registry.try_acquire(key, owner):
        return False
    session.info.setdefault(_HELD_KEYS, set()).add(key)
    return True


@event.listens_for(Session, "after_transaction_end")
def _release_in_process_locks(session, transaction):
    if transaction.parent is not None:
        return  # savepoint
    keys = session.info.pop(_HELD_KEYS, None)
    if keys:
        registry.release(keys, session.info[_OWNER])
        logger.debug(f"Released {len(keys)} in-process advisory lock(s)")
