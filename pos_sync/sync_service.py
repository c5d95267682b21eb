# Sync Service - offline queue processor for SimplePOS Sync Agent
# Queues recorded sales, drains them to the server and retries failures

import logging
import threading
import time
from datetime import datetime
from typing import Dict, Any, Optional

from .api_config import ApiConfigService
from .offline_queue import OfflineQueue, SyncQueueItem, PENDING, COMPLETED, FAILED
from .retry_scheduler import RetryScheduler


logger = logging.getLogger(__name__)


class SyncService:
    """Drains the offline queue through a sync client.

    Per item: pending -> completed on success; pending stays pending with one
    scheduled retry while attempts < sync_retry_attempts; pending -> failed
    once the limit is reached. Failed items only return to pending through
    retry_failed().
    """

    def __init__(self, queue: OfflineQueue, client, config_service: ApiConfigService,
                 scheduler: RetryScheduler = None):
        self.queue = queue
        self.client = client
        self.config_service = config_service
        self.scheduler = scheduler or RetryScheduler()
        self.syncing = False
        self._state_lock = threading.Lock()
        # Serializes delivery attempts between drain passes and retry timers
        self._attempt_lock = threading.Lock()

    def queue_for_sync(self, transaction_data: Dict[str, Any]) -> Optional[SyncQueueItem]:
        """Add a recorded transaction to the queue. None when sync is disabled."""
        config = self.config_service.get_config()
        if not config.sync_enabled:
            logger.info("Sync disabled, skipping queue")
            return None

        item_id = transaction_data.get('transactionId')
        item = SyncQueueItem(
            id=str(item_id) if item_id is not None else str(int(time.time() * 1000)),
            data=transaction_data,
        )
        self.queue.append(item, config.max_offline_transactions)
        logger.info(f"Transaction {item.id} queued for sync")
        return item

    def drain(self) -> bool:
        """Attempt every pending item once, in queue order. False if a pass is already running."""
        with self._state_lock:
            if self.syncing:
                logger.info("Sync already in progress")
                return False
            self.syncing = True

        try:
            pending = [item for item in self.queue.load() if item.status == PENDING]
            logger.info(f"Processing {len(pending)} pending sync items")

            for item in pending:
                self.sync_item(item.id)

            # Sales queued or reset while the pass ran got a no-op drain of
            # their own; pick them up before the guard is released
            while True:
                late = [item for item in self.queue.load()
                        if item.status == PENDING and not self.scheduler.has_pending(item.id)]
                if not late:
                    break
                logger.info(f"Processing {len(late)} items queued during the pass")
                for item in late:
                    self.sync_item(item.id)

            removed = self.queue.remove_completed()
            if removed:
                logger.info(f"Removed {removed} completed items from sync queue")
        finally:
            with self._state_lock:
                self.syncing = False
        return True

    def drain_in_background(self) -> threading.Thread:
        """Start a drain pass without waiting for it"""
        thread = threading.Thread(target=self._drain_logged, name='sync-drain', daemon=True)
        thread.start()
        return thread

    def _drain_logged(self):
        try:
            self.drain()
        except Exception:
            logger.exception("Error processing sync queue")

    def sync_item(self, item_id: str) -> Optional[SyncQueueItem]:
        """Make one delivery attempt for a pending item and persist the outcome"""
        with self._attempt_lock:
            item = self.queue.get(item_id)
            if item is None or item.status != PENDING:
                return item

            # This attempt supersedes any retry already waiting for the item
            self.scheduler.cancel(item_id)

            config = self.config_service.get_config()
            result = self.client.attempt(item, config)
            now = datetime.now().isoformat()

            if result.success:
                item.status = COMPLETED
                item.synced_at = now
                item.server_response = result.response
            else:
                item.attempts += 1
                item.last_error = result.error
                item.last_attempt_at = now
                logger.warning(
                    f"Failed to sync transaction {item_id} "
                    f"(attempt {item.attempts}/{config.sync_retry_attempts}): {result.error}"
                )

                if item.attempts >= config.sync_retry_attempts:
                    item.status = FAILED
                    logger.error(
                        f"Transaction {item_id} exceeded {config.sync_retry_attempts} "
                        f"sync attempts, marking as failed: {result.error}",
                        extra={'transaction_id': item_id, 'sync_error': result.error},
                    )

            if not self.queue.update(item):
                # Cleared or evicted while the request was in flight
                logger.info(f"Transaction {item_id} left the sync queue during its attempt")
                return item

            if item.status == PENDING:
                self.scheduler.schedule(item_id, config.retry_delay_seconds, self._retry)
            return item

    def _retry(self, item_id: str):
        item = self.sync_item(item_id)
        if item is not None and item.status == COMPLETED:
            self.queue.remove_completed()

    def status(self) -> Dict[str, Any]:
        counts = self.queue.counts()
        return {
            'pending': counts[PENDING],
            'failed': counts[FAILED],
            'completed': counts[COMPLETED],
            'total': counts['total'],
            'syncing': self.syncing,
            'scheduled_retries': len(self.scheduler.pending_ids()),
        }

    def sync_now(self) -> bool:
        logger.info("Manual sync triggered")
        return self.drain()

    def retry_failed(self) -> int:
        """Reset failed items to pending with zero attempts, then drain"""
        self.scheduler.cancel_all()
        count = self.queue.reset_failed()
        logger.info(f"Retrying {count} failed transactions")
        self.drain()
        return count

    def clear_queue(self):
        """Drop every queued item regardless of status"""
        self.scheduler.cancel_all()
        self.queue.clear()
        logger.warning("Sync queue cleared")

    def test_sync(self) -> Optional[SyncQueueItem]:
        """Queue a sample sale and drain it"""
        now = datetime.now()
        item = self.queue_for_sync({
            'transactionId': f"TEST-{int(now.timestamp() * 1000)}",
            'timestamp': now.isoformat(),
            'paymentMethod': 'cash',
            'total': 100.00,
            'received': 100.00,
            'change': 0.00,
            'cart': [
                {'name': 'Test Item', 'category': 'Test', 'quantity': 1, 'price': 100.00}
            ],
        })
        if item is not None:
            self.drain()
        return item

    def check_connection(self) -> Dict[str, Any]:
        return self.client.check_health(self.config_service.get_config())

    def shutdown(self) -> int:
        return self.scheduler.cancel_all()
