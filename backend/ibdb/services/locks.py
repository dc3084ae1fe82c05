"""PostgreSQL advisory lock helpers for serialising duplicate scans.

Two concurrent scans race on the check-then-insert that persists similarity
edges (a duplicate edge at worst).  Holding a session-level advisory lock for
the whole scan removes the race for every caller going through
run_scan_locked().

Advisory locks are session-level: they survive COMMIT/ROLLBACK inside the
critical section and are released when the connection is closed or explicitly
unlocked.  We hold them on a *dedicated* AsyncConnection (not a pooled
session) so the lock lifetime is exactly the critical section.

Usage pattern
-------------
    async with engine.connect() as lock_conn:
        acquired = await try_acquire_named_lock(lock_conn, "author-duplicate-scan")
        if not acquired:
            raise ScanInProgressError(...)
        try:
            # ... entire critical section using a separate AsyncSession ...
        finally:
            await release_named_lock(lock_conn, "author-duplicate-scan")

Other backends have no advisory locks; there acquisition always succeeds.
"""
import hashlib

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

SCAN_LOCK_NAME = "author-duplicate-scan"


def derive_lock_key(name: str) -> int:
    """Return a stable positive int64 lock key for a lock name.

    Uses the first 8 bytes of the name's SHA-256 digest, masked to 63 bits so
    it fits a PostgreSQL int8 / bigint.
    """
    digest = hashlib.sha256(name.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") & 0x7FFFFFFFFFFFFFFF


def _supports_advisory_locks(conn: AsyncConnection) -> bool:
    return conn.dialect.name == "postgresql"


async def try_acquire_named_lock(conn: AsyncConnection, name: str) -> bool:
    """Attempt to acquire a session-level advisory lock; return True if acquired.

    Uses pg_try_advisory_lock which returns immediately (non-blocking).
    If another session holds the lock this returns False without waiting.
    """
    if not _supports_advisory_locks(conn):
        return True
    result = await conn.execute(
        text("SELECT pg_try_advisory_lock(:k)"), {"k": derive_lock_key(name)}
    )
    return bool(result.scalar_one())


async def release_named_lock(conn: AsyncConnection, name: str) -> None:
    """Release the session-level advisory lock for the given name."""
    if not _supports_advisory_locks(conn):
        return
    await conn.execute(text("SELECT pg_advisory_unlock(:k)"), {"k": derive_lock_key(name)})
