# Recovery Manager - restart handling for SimplePOS Sync Agent
# Retry timers die with the process, so pending queue items are drained on startup

import logging
from datetime import datetime
from typing import Dict, Any

from .sync_service import SyncService
from .transaction_buffer import TransactionBuffer


logger = logging.getLogger(__name__)


class RecoveryManager:
    """Manages startup recovery and shutdown bookkeeping"""

    def __init__(self, buffer: TransactionBuffer, sync_service: SyncService):
        self.buffer = buffer
        self.sync_service = sync_service
        self.last_shutdown_time = None
        self.downtime_logged = False
        self.startup_drain = None

    def on_startup(self) -> Dict[str, Any]:
        """Run recovery process on startup"""
        recovery_report = {
            'started_at': datetime.now().isoformat(),
            'pending_found': 0,
            'failed_found': 0,
            'drain_started': False,
            'downtime_logged': False,
        }

        self.last_shutdown_time = self.buffer.load_state('last_shutdown_time', None)
        if self.last_shutdown_time:
            logger.info(f"Last shutdown was at {self.last_shutdown_time}")
            self._log_downtime()
            recovery_report['downtime_logged'] = True

        status = self.sync_service.status()
        recovery_report['pending_found'] = status['pending']
        recovery_report['failed_found'] = status['failed']

        # Replay runs off the caller's thread so a slow or unreachable server
        # cannot hold up the status UI
        if status['pending']:
            logger.info(f"Found {status['pending']} pending sync items to replay")
            self.startup_drain = self.sync_service.drain_in_background()
            recovery_report['drain_started'] = True

        if status['failed']:
            logger.warning(
                f"{status['failed']} transactions failed to sync before restart; "
                "use retry failed to resend them"
            )

        recovery_report['completed_at'] = datetime.now().isoformat()
        self.buffer.save_state('last_recovery', recovery_report)

        return recovery_report

    def _log_downtime(self):
        """Log downtime window"""
        downtime_info = {
            'last_shutdown': self.last_shutdown_time,
            'restart_at': datetime.now().isoformat(),
        }
        self.buffer.save_state('downtime_log', downtime_info)
        self.downtime_logged = True

        logger.warning(
            f"DOWNTIME: Agent offline since {self.last_shutdown_time}. "
            "Queued sales were not synced during this period."
        )

    def on_shutdown(self):
        """Cancel retry timers and save state before shutdown"""
        cancelled = self.sync_service.shutdown()
        pending = self.sync_service.status()['pending']

        self.buffer.save_state('last_shutdown_time', datetime.now().isoformat())
        self.buffer.save_state('pending_on_shutdown', pending)

        logger.info(f"Shutdown: {pending} transactions pending sync, {cancelled} retries cancelled")

    def get_recovery_status(self) -> Dict:
        return {
            'last_shutdown_time': self.last_shutdown_time,
            'downtime_logged': self.downtime_logged,
            'last_recovery': self.buffer.load_state('last_recovery'),
            'sync': self.sync_service.status(),
            'buffer_stats': self.buffer.get_stats(),
        }
