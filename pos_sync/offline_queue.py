# Offline Queue - persistent sync queue for SimplePOS Sync Agent
# The whole queue is one JSON blob under a single state key

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Dict, Any

from .transaction_buffer import TransactionBuffer


logger = logging.getLogger(__name__)

QUEUE_STATE_KEY = 'sync_queue'

PENDING = 'pending'
COMPLETED = 'completed'
FAILED = 'failed'
STATUSES = (PENDING, COMPLETED, FAILED)


@dataclass
class SyncQueueItem:
    """One transaction awaiting delivery to the sales endpoint"""
    id: str
    data: Dict[str, Any]
    status: str = PENDING
    attempts: int = 0
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    last_attempt_at: Optional[str] = None
    synced_at: Optional[str] = None
    last_error: Optional[str] = None
    server_response: Any = None

    def __post_init__(self):
        if self.status not in STATUSES:
            raise ValueError(f"Invalid sync status {self.status!r} for item {self.id}")
        if self.attempts < 0:
            raise ValueError(f"Negative attempt count for item {self.id}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'data': self.data,
            'status': self.status,
            'attempts': self.attempts,
            'createdAt': self.created_at,
            'lastAttemptAt': self.last_attempt_at,
            'syncedAt': self.synced_at,
            'lastError': self.last_error,
            'serverResponse': self.server_response,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'SyncQueueItem':
        return cls(
            id=str(raw['id']),
            data=raw.get('data') or {},
            status=raw.get('status', PENDING),
            attempts=int(raw.get('attempts', 0)),
            created_at=raw.get('createdAt') or datetime.now().isoformat(),
            last_attempt_at=raw.get('lastAttemptAt'),
            synced_at=raw.get('syncedAt'),
            last_error=raw.get('lastError'),
            server_response=raw.get('serverResponse'),
        )


class OfflineQueue:
    """Ordered, bounded list of SyncQueueItems persisted across restarts.

    There is no per-item addressing in storage: every mutation loads the
    whole list, changes it and writes the whole list back. ``lock`` is held
    across each read-modify-write so retry timer threads and drain passes do
    not lose each other's updates.
    """

    def __init__(self, buffer: TransactionBuffer):
        self.buffer = buffer
        self.lock = threading.RLock()

    def load(self) -> List[SyncQueueItem]:
        with self.lock:
            raw = self.buffer.load_state(QUEUE_STATE_KEY, [])
        if not isinstance(raw, list):
            logger.error("Sync queue blob is not a list, treating queue as empty")
            return []

        items = []
        for entry in raw:
            try:
                items.append(SyncQueueItem.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.error("Dropping unreadable sync queue entry %r: %s", entry, e)
        return items

    def save(self, items: List[SyncQueueItem]):
        with self.lock:
            self.buffer.save_state(QUEUE_STATE_KEY, [item.to_dict() for item in items])

    def append(self, item: SyncQueueItem, max_length: int) -> List[SyncQueueItem]:
        """Add to the end, evicting oldest entries past max_length. Returns evicted items."""
        with self.lock:
            items = self.load()
            items.append(item)
            evicted = []
            while len(items) > max(max_length, 0):
                evicted.append(items.pop(0))
            self.save(items)

        for old in evicted:
            logger.warning(
                "Sync queue full (max %d), evicted oldest item %s (status=%s, attempts=%d)",
                max_length, old.id, old.status, old.attempts
            )
        return evicted

    def get(self, item_id: str) -> Optional[SyncQueueItem]:
        for item in self.load():
            if item.id == item_id:
                return item
        return None

    def update(self, updated: SyncQueueItem) -> bool:
        """Replace the stored item with the same id. False if it is no longer queued."""
        with self.lock:
            items = self.load()
            for index, item in enumerate(items):
                if item.id == updated.id:
                    items[index] = updated
                    self.save(items)
                    return True
        return False

    def remove_completed(self) -> int:
        with self.lock:
            items = self.load()
            remaining = [item for item in items if item.status != COMPLETED]
            removed = len(items) - len(remaining)
            if removed:
                self.save(remaining)
        return removed

    def reset_failed(self) -> int:
        """Move every failed item back to pending with attempts reset to 0"""
        with self.lock:
            items = self.load()
            count = 0
            for item in items:
                if item.status == FAILED:
                    item.status = PENDING
                    item.attempts = 0
                    item.last_error = None
                    count += 1
            if count:
                self.save(items)
        return count

    def clear(self):
        with self.lock:
            self.buffer.delete_state(QUEUE_STATE_KEY)

    def counts(self) -> Dict[str, int]:
        items = self.load()
        counts = {status: 0 for status in STATUSES}
        for item in items:
            counts[item.status] += 1
        counts['total'] = len(items)
        return counts
