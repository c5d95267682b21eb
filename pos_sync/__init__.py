# SimplePOS Sync Agent
# Local sales recording with an offline, retrying sync queue

__version__ = '0.1.0'

from .api_config import ApiConfig, ApiConfigService
from .logging_config import AlertLog, SyncAlertHandler, attach_alert_handler, setup_logging
from .offline_queue import OfflineQueue, SyncQueueItem, PENDING, COMPLETED, FAILED
from .receipt_printer import ReceiptPrinter, build_receipt
from .recovery_manager import RecoveryManager
from .retry_scheduler import RetryScheduler
from .sync_client import SyncClient, StubSyncClient, SyncResult, transform_for_api
from .sync_service import SyncService
from .transaction_buffer import TransactionBuffer
from .transaction_service import (
    TransactionService, RecordOutcome, TransactionRecordError, InvalidSaleError, normalize_cart,
)

__all__ = [
    'ApiConfig',
    'ApiConfigService',
    'AlertLog',
    'SyncAlertHandler',
    'attach_alert_handler',
    'setup_logging',
    'OfflineQueue',
    'SyncQueueItem',
    'PENDING',
    'COMPLETED',
    'FAILED',
    'ReceiptPrinter',
    'build_receipt',
    'RecoveryManager',
    'RetryScheduler',
    'SyncClient',
    'StubSyncClient',
    'SyncResult',
    'transform_for_api',
    'SyncService',
    'TransactionBuffer',
    'TransactionService',
    'RecordOutcome',
    'TransactionRecordError',
    'InvalidSaleError',
    'normalize_cart',
]
