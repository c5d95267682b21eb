# Logging configuration - rotating file log, console output, sync failure alerts

import logging
import sys
import threading
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

# Default log directory (project root / logs)
LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
LOG_FILE = LOG_DIR / "simplepos_sync.log"
LOG_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
LOG_BACKUP_COUNT = 5

ALERT_STATE_KEY = 'sync_alerts'
ALERT_LIMIT = 20


class SyncAlertHandler(logging.Handler):
    """Turns terminal sync failure records into alert dicts for a sink.

    Only ERROR records logged with a ``transaction_id`` extra are alerts;
    every other record is left to the file and console handlers.
    """

    def __init__(self, sink: Callable[[Dict[str, Any]], None]):
        super().__init__(level=logging.ERROR)
        self.sink = sink

    def emit(self, record: logging.LogRecord):
        transaction_id = getattr(record, 'transaction_id', None)
        if transaction_id is None:
            return
        try:
            self.sink({
                'transaction_id': str(transaction_id),
                'error': getattr(record, 'sync_error', None),
                'message': record.getMessage(),
                'logged_at': datetime.fromtimestamp(record.created).isoformat(),
            })
        except Exception:
            self.handleError(record)


class AlertLog:
    """Most recent sync alerts, kept in the state table so they survive a restart"""

    def __init__(self, buffer, key: str = ALERT_STATE_KEY, limit: int = ALERT_LIMIT):
        self.buffer = buffer
        self.key = key
        self.limit = limit
        self.lock = threading.Lock()

    def record(self, alert: Dict[str, Any]):
        with self.lock:
            alerts = self.recent()
            alerts.append(alert)
            self.buffer.save_state(self.key, alerts[-self.limit:])

    def recent(self) -> List[Dict[str, Any]]:
        alerts = self.buffer.load_state(self.key, [])
        return alerts if isinstance(alerts, list) else []

    def clear(self):
        with self.lock:
            self.buffer.delete_state(self.key)


def attach_alert_handler(sink: Callable[[Dict[str, Any]], None],
                         logger_name: str = 'pos_sync') -> SyncAlertHandler:
    handler = SyncAlertHandler(sink)
    logging.getLogger(logger_name).addHandler(handler)
    return handler


def detach_alert_handler(handler: SyncAlertHandler, logger_name: str = 'pos_sync'):
    logging.getLogger(logger_name).removeHandler(handler)
    handler.close()


def setup_logging(
    log_path: Optional[Path] = None,
    max_bytes: int = LOG_MAX_BYTES,
    backup_count: int = LOG_BACKUP_COUNT,
    console: bool = True,
    level: int = logging.INFO,
) -> None:
    """
    Configure the root logger with a rotating sync log and optional console.
    Safe to call more than once; previous root handlers are replaced.
    """
    log_path = Path(log_path or LOG_FILE)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    # urllib3 logs every retry/connection at DEBUG; keep it out of the sync log
    logging.getLogger("urllib3").setLevel(logging.WARNING)
