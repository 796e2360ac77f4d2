"""
db/locks.py
-----------
Transaction-scoped serialisation for compliance-critical sequences.

Two sequences must not interleave:
  - appending to a dispensary's hash-chained compliance log
    (read tail → compute hash → insert)
  - checking a customer's daily quota and recording the order that consumes it
    (sum → compare → insert)

Both kinds of lock are held until the surrounding transaction ends, so a
second writer only reads once the first writer's rows are committed.

On PostgreSQL both take pg_advisory_xact_lock on a 64-bit key derived from
the lock name. The lock is released when the transaction commits or rolls
back, and is re-entrant within one transaction, so a request may append
several entries to the same chain.

Other dialects (SQLite for local development and tests) have no advisory
locks. An asyncio.Lock per name is acquired instead and recorded on the
session; it is released by the session's after_transaction_end event, and
re-entering the same name on the same session does not wait. These locks
only serialise writers within one process.
"""

import asyncio
import hashlib
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict
from weakref import WeakValueDictionary

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, SessionTransaction

from compliance_api.core.logging import get_logger

logger = get_logger(__name__)

_local_locks: "WeakValueDictionary[str, asyncio.Lock]" = WeakValueDictionary()

# Session.info key holding the local locks a session owns.
_HELD = "compliance_api.local_locks"


def advisory_key(name: str) -> int:
    """Stable signed 64-bit integer for a lock name."""
    digest = hashlib.sha256(name.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


def _local_lock(name: str) -> asyncio.Lock:
    lock = _local_locks.get(name)
    if lock is None:
        lock = asyncio.Lock()
        _local_locks[name] = lock
    return lock


def held_locks(session: Session) -> Dict[str, asyncio.Lock]:
    """Local locks currently owned by ``session``."""
    return session.info.setdefault(_HELD, {})


def release_local_locks(session: Session) -> None:
    held = session.info.pop(_HELD, None)
    if not held:
        return
    for name, lock in held.items():
        lock.release()
        logger.debug("Local lock released", lock=name)


@event.listens_for(Session, "after_transaction_end")
def _release_on_transaction_end(session: Session, transaction: SessionTransaction) -> None:
    if transaction.parent is None:
        release_local_locks(session)


@asynccontextmanager
async def serialized(db: AsyncSession, name: str) -> AsyncIterator[None]:
    """
    Run the enclosed block exclusively for ``name`` and keep the lock until
    the session's transaction commits or rolls back.
    """
    if db.bind.dialect.name == "postgresql":
        await db.execute(
            text("SELECT pg_advisory_xact_lock(:key)"), {"key": advisory_key(name)}
        )
        logger.debug("Advisory lock acquired", lock=name)
        yield
        return

    held = held_locks(db.sync_session)
    if name not in held:
        lock = _local_lock(name)
        await lock.acquire()
        held[name] = lock
        logger.debug("Local lock acquired", lock=name)
    try:
        yield
    finally:
        # No transaction was ever begun, so no transaction end will release it.
        if not db.in_transaction():
            release_local_locks(db.sync_session)
