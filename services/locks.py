"""
Identifier locks for serializing reconciliations
Two submissions that share a normalized email or phone number must not
run their read-decide-write sequences at the same time, and neither may
two that touch the same identity group. Identifier keys are taken first,
group keys second, each batch in sorted order, inside the process with asyncio
and across processes with PostgreSQL transaction-scoped advisory locks.
"""

import asyncio
import hashlib
import logging
import re
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, List, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def normalize_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    return email.strip().lower() or None


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    if not phone:
        return None
    return re.sub(r"[^\d+]", "", phone) or None


def lock_keys(email: Optional[str], phone: Optional[str]) -> List[str]:
    """Sorted lock keys for a submission, the global acquisition order"""
    keys = set()
    normalized_email = normalize_email(email)
    normalized_phone = normalize_phone(phone)
    if normalized_email:
        keys.add(f"email:{normalized_email}")
    if normalized_phone:
        keys.add(f"phone:{normalized_phone}")
    return sorted(keys)


def group_lock_keys(primary_ids: Iterable[int]) -> List[str]:
    """Lock keys for the identity groups anchored at primary_ids"""
    return sorted({f"group:{primary_id}" for primary_id in primary_ids})


def advisory_lock_id(key: str) -> int:
    """Stable signed 64-bit id for pg_advisory_xact_lock"""
    digest = hashlib.blake2b(key.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.holders = 0


class IdentifierLocks:
    """
    Keyed asyncio locks with reference counting, so the table only holds
    identifiers that are in flight
    """

    def __init__(self):
        self._entries: Dict[str, _Entry] = {}

    def __len__(self):
        return len(self._entries)

    def _checkout(self, key: str) -> _Entry:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.holders += 1
        return entry

    def _release(self, key: str, entry: _Entry):
        entry.holders -= 1
        if entry.holders == 0:
            del self._entries[key]

    @asynccontextmanager
    async def hold(self, keys: List[str]) -> AsyncIterator[None]:
        """Acquire every key in sorted order; release them all on exit"""
        ordered = sorted(set(keys))
        acquired = []
        try:
            for key in ordered:
                entry = self._checkout(key)
                try:
                    await entry.lock.acquire()
                except BaseException:
                    self._release(key, entry)
                    raise
                acquired.append((key, entry))
            logger.debug(f"Holding identifier locks {ordered}")
            yield
        finally:
            for key, entry in reversed(acquired):
                entry.lock.release()
                self._release(key, entry)


async def acquire_advisory_locks(session: AsyncSession, keys: List[str]):
    """
    Take PostgreSQL advisory locks scoped to the session's current
    transaction; commit or rollback releases them. No-op on other databases.
    """
    if session.bind is None or session.bind.dialect.name != "postgresql":
        return
    for key in sorted(set(keys)):
        await session.execute(
            text("SELECT pg_advisory_xact_lock(:lock_id)"),
            {"lock_id": advisory_lock_id(key)}
        )
