"""Per-recipient notification state.

Locking is sharded by recipient so unrelated recipients never contend. Sends
reserve a slot under the recipient lock, deliver with no lock held, then
commit or release the reservation.
"""

from __future__ import annotations

import asyncio
import weakref
from collections import Counter
from datetime import datetime, timedelta

from pugbot.logging_config import get_logger
from pugbot.notifications.models import Notification

logger = get_logger(__name__)


class NotificationStore:
    """Owns every Recipient Notification Set; at most one entry per (recipient, type)."""

    def __init__(self) -> None:
        self._sets: dict[str, dict[str, Notification]] = {}
        self._reservations: dict[str, Counter[str]] = {}
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, recipient_id: str) -> asyncio.Lock:
        lock = self._locks.get(recipient_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[recipient_id] = lock
        return lock

    def _occupied(self, recipient_id: str) -> set[str]:
        occupied = set(self._sets.get(recipient_id, ()))
        occupied.update(+self._reservations.get(recipient_id, Counter()))
        return occupied

    def _drop_empty(self, recipient_id: str) -> None:
        if not self._sets.get(recipient_id, True):
            del self._sets[recipient_id]
        if recipient_id in self._reservations and not +self._reservations[recipient_id]:
            del self._reservations[recipient_id]

    async def reserve(self, recipient_id: str, type: str, max_pending: int) -> bool:
        """Claim a slot for ``type``. Re-sending an outstanding type needs no new slot."""
        async with self._lock_for(recipient_id):
            occupied = self._occupied(recipient_id)
            if type not in occupied and len(occupied) >= max_pending:
                return False
            self._reservations.setdefault(recipient_id, Counter())[type] += 1
            return True

    async def release(self, recipient_id: str, type: str) -> None:
        async with self._lock_for(recipient_id):
            self._unreserve(recipient_id, type)
            self._drop_empty(recipient_id)

    def _unreserve(self, recipient_id: str, type: str) -> None:
        counter = self._reservations.get(recipient_id)
        if counter and counter[type] > 0:
            counter[type] -= 1
            if not counter[type]:
                del counter[type]

    async def commit(self, notification: Notification) -> Notification | None:
        """Store ``notification`` against its reservation. Returns the overwritten entry."""
        recipient_id = notification.recipient_id
        async with self._lock_for(recipient_id):
            self._unreserve(recipient_id, notification.type)
            previous = self._sets.setdefault(recipient_id, {}).get(notification.type)
            self._sets[recipient_id][notification.type] = notification
            self._drop_empty(recipient_id)
        if previous is not None:
            logger.debug("notification overwritten", recipient_id=recipient_id, type=notification.type)
        return previous

    async def get(self, recipient_id: str, type: str) -> Notification | None:
        async with self._lock_for(recipient_id):
            found = self._sets.get(recipient_id, {}).get(type)
            return found.copy() if found else None

    async def snapshot(self, recipient_id: str) -> dict[str, Notification]:
        """Copy of the recipient's notifications in insertion order."""
        async with self._lock_for(recipient_id):
            return {type: n.copy() for type, n in self._sets.get(recipient_id, {}).items()}

    async def count(self, recipient_id: str) -> int:
        async with self._lock_for(recipient_id):
            return len(self._sets.get(recipient_id, ()))

    def recipients(self) -> list[str]:
        return list(self._sets.keys())

    def has_recipient(self, recipient_id: str) -> bool:
        return recipient_id in self._sets

    async def all_notifications(self) -> list[Notification]:
        result: list[Notification] = []
        for recipient_id in self.recipients():
            result.extend((await self.snapshot(recipient_id)).values())
        return result

    async def remove(self, recipient_id: str, type: str) -> Notification | None:
        async with self._lock_for(recipient_id):
            removed = self._sets.get(recipient_id, {}).pop(type, None)
            self._drop_empty(recipient_id)
            return removed

    async def remove_all(self, recipient_id: str) -> list[Notification]:
        async with self._lock_for(recipient_id):
            removed = list(self._sets.pop(recipient_id, {}).values())
            self._drop_empty(recipient_id)
            return removed

    async def extend(self, recipient_id: str, type: str, seconds: float, *, now: datetime | None = None) -> bool:
        """Push the expiry of an expiring notification out by ``seconds``.

        The extension is measured from the later of the current expiry and
        ``now``. Notifications that never expire are left alone.
        """
        async with self._lock_for(recipient_id):
            notification = self._sets.get(recipient_id, {}).get(type)
            if notification is None or notification.expires_at is None:
                return False
            base = notification.expires_at if now is None else max(notification.expires_at, now)
            notification.expires_at = base + timedelta(seconds=seconds)
            notification.extensions += 1
            return True

    async def pop_expired(self, now: datetime, exclude: frozenset[tuple[str, str]] = frozenset()) -> list[Notification]:
        """Remove and return every notification expired at ``now`` not listed in ``exclude``."""
        expired: list[Notification] = []
        for recipient_id in self.recipients():
            async with self._lock_for(recipient_id):
                entries = self._sets.get(recipient_id, {})
                for type, notification in list(entries.items()):
                    if (recipient_id, type) in exclude or not notification.is_expired(now):
                        continue
                    expired.append(entries.pop(type))
                self._drop_empty(recipient_id)
        return expired
