# API Config - remote sync settings for SimplePOS Sync Agent
# Defaults, config.json values and operator overrides persisted in the state table

import logging
from dataclasses import dataclass, asdict, fields
from typing import Dict, Any, Optional

from .transaction_buffer import TransactionBuffer


logger = logging.getLogger(__name__)

CONFIG_STATE_KEY = 'api_config'

# camelCase names used by the mobile app's stored config
_ALIASES = {
    'baseUrl': 'base_url',
    'storeId': 'store_id',
    'syncEnabled': 'sync_enabled',
    'syncRetryAttempts': 'sync_retry_attempts',
    'syncRetryDelay': 'sync_retry_delay',
    'maxOfflineTransactions': 'max_offline_transactions',
    'requestTimeout': 'request_timeout',
}


@dataclass
class ApiConfig:
    """Effective sync configuration. Delays and timeouts are milliseconds."""
    base_url: str = 'http://localhost:3000/api'
    store_id: str = '1'
    sync_enabled: bool = True
    sync_retry_attempts: int = 3
    sync_retry_delay: int = 5000
    max_offline_transactions: int = 100
    request_timeout: int = 30000

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ApiConfig':
        """Build from a dict, ignoring unknown keys"""
        return cls().merged(data or {})

    def merged(self, overrides: Dict[str, Any]) -> 'ApiConfig':
        known = {f.name for f in fields(self)}
        values = asdict(self)
        for key, value in overrides.items():
            key = _ALIASES.get(key, key)
            if key not in known or value is None:
                continue
            values[key] = _coerce(key, value)
        return ApiConfig(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @property
    def retry_delay_seconds(self) -> float:
        return self.sync_retry_delay / 1000.0

    @property
    def timeout_seconds(self) -> float:
        return self.request_timeout / 1000.0

    def build_url(self, endpoint: str) -> str:
        """Join base URL and endpoint, substituting {storeId}"""
        return f"{self.base_url.rstrip('/')}{endpoint.replace('{storeId}', str(self.store_id))}"

    def health_url(self) -> str:
        """Health check lives beside the API root: .../api -> .../health"""
        base = self.base_url.rstrip('/')
        if base.endswith('/api'):
            base = base[:-len('/api')]
        return base + '/health'


def _coerce(key: str, value: Any) -> Any:
    if key == 'sync_enabled':
        if isinstance(value, str):
            return value.strip().lower() in ('1', 'true', 'yes', 'on')
        return bool(value)
    if key in ('sync_retry_attempts', 'sync_retry_delay',
               'max_offline_transactions', 'request_timeout'):
        value = int(value)
        if value < 0:
            raise ValueError(f"{key} must be non-negative, got {value}")
        if key == 'sync_retry_attempts' and value < 1:
            raise ValueError(f"{key} must be at least 1, got {value}")
        return value
    return str(value)


class ApiConfigService:
    """Reads and updates the effective ApiConfig"""

    def __init__(self, buffer: TransactionBuffer, file_config: Optional[Dict[str, Any]] = None):
        self.buffer = buffer
        self.defaults = ApiConfig.from_dict(file_config)

    def get_config(self) -> ApiConfig:
        stored = self.buffer.load_state(CONFIG_STATE_KEY, {})
        if not isinstance(stored, dict):
            logger.warning("Ignoring malformed stored api config: %r", stored)
            stored = {}
        try:
            return self.defaults.merged(stored)
        except (TypeError, ValueError) as e:
            logger.error("Invalid stored api config, using defaults: %s", e)
            return self.defaults

    def update_config(self, **changes) -> ApiConfig:
        """Persist overrides; validates before anything is written"""
        updated = self.get_config().merged(changes)
        stored = self.buffer.load_state(CONFIG_STATE_KEY, {})
        if not isinstance(stored, dict):
            stored = {}
        for key, value in changes.items():
            key = _ALIASES.get(key, key)
            if hasattr(updated, key):
                stored[key] = getattr(updated, key)
        self.buffer.save_state(CONFIG_STATE_KEY, stored)
        logger.info("API config updated: %s", sorted(stored))
        return updated

    def reset_config(self) -> ApiConfig:
        self.buffer.delete_state(CONFIG_STATE_KEY)
        logger.info("API config reset to defaults")
        return self.defaults
