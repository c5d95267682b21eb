# Sync Client - REST API client for SimplePOS Sync Agent
# Delivers one queued sale to the remote sales endpoint per call

import requests
import logging
from dataclasses import dataclass
from typing import Dict, Any, Optional, List

from .api_config import ApiConfig
from .offline_queue import SyncQueueItem


logger = logging.getLogger(__name__)

SALES_ENDPOINT = '/stores/{storeId}/sales'
HEALTH_TIMEOUT = 10  # seconds


@dataclass
class SyncResult:
    """Outcome of a single delivery attempt"""
    success: bool
    status_code: int = 0
    response: Any = None
    error: Optional[str] = None


def _number(value, default=0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return float(default)


def transform_item(item: Dict) -> Dict:
    quantity = _number(item.get('quantity') or 1, 1)
    unit_price = _number(item.get('price') or item.get('unit_price') or 0)
    return {
        'item_name': item.get('name') or item.get('item_name') or 'Unknown Item',
        'category': item.get('category') or 'General',
        'quantity': quantity,
        'unit_price': unit_price,
        'total_price': unit_price * quantity,
        'item_code': item.get('code') or item.get('item_code'),
        'notes': item.get('notes'),
    }


def transform_for_api(data: Dict, device_id: str = 'simplepos-agent') -> Dict:
    """Map a recorded transaction snapshot to the sales endpoint body"""
    items: List[Dict] = [transform_item(i) for i in (data.get('cart') or [])]
    total = _number(data.get('total') or 0)
    method = data.get('paymentMethod') or data.get('method') or 'cash'

    return {
        'transaction_id': data.get('transactionId'),
        'transaction_datetime': data.get('timestamp'),
        'payment_method': str(method).lower(),
        'subtotal': total,
        'total_amount': total,
        'amount_received': _number(data.get('received') or total),
        'change_amount': _number(data.get('change') or 0),
        'payment_reference': data.get('reference') or data.get('paymentReference'),
        'cashier_name': data.get('cashier') or 'POS User',
        'pos_device_id': data.get('deviceId') or device_id,
        'receipt_number': data.get('receiptNumber'),
        'notes': data.get('notes'),
        'items': items,
    }


class SyncClient:
    """REST API client for syncing sales to the store server"""

    def __init__(self, api_key: str = None, device_id: str = 'simplepos-agent',
                 session: requests.Session = None):
        self.device_id = device_id
        self.session = session or requests.Session()

        if api_key:
            self.session.headers.update({'Authorization': f'Bearer {api_key}'})

        self.session.headers.update({
            'Content-Type': 'application/json',
            'User-Agent': 'SimplePOS-Sync-Agent/1.0'
        })

    def attempt(self, item: SyncQueueItem, config: ApiConfig) -> SyncResult:
        """One POST to the sales endpoint. Never retries or sleeps."""
        endpoint = config.build_url(SALES_ENDPOINT)
        body = transform_for_api(item.data, self.device_id)

        logger.info(f"Syncing transaction {item.id} to {endpoint}")
        try:
            response = self.session.post(
                endpoint,
                json=body,
                timeout=config.timeout_seconds
            )
        except requests.exceptions.Timeout:
            return SyncResult(False, error=f"Timeout after {config.timeout_seconds:g}s")
        except requests.exceptions.ConnectionError as e:
            return SyncResult(False, error=f"Connection error: {e}")
        except requests.exceptions.RequestException as e:
            return SyncResult(False, error=f"Request failed: {e}")

        if not response.ok:
            return SyncResult(
                False,
                status_code=response.status_code,
                error=f"HTTP {response.status_code}: {response.reason}"
            )

        try:
            result = response.json()
        except ValueError:
            return SyncResult(
                False,
                status_code=response.status_code,
                error=f"HTTP {response.status_code}: response body is not JSON"
            )

        logger.info(f"Transaction {item.id} synced successfully")
        return SyncResult(True, status_code=response.status_code, response=result)

    def check_health(self, config: ApiConfig) -> Dict[str, Any]:
        """Check if the server and its database are reachable"""
        try:
            response = self.session.get(config.health_url(), timeout=HEALTH_TIMEOUT)
        except requests.exceptions.RequestException as e:
            return {'success': False, 'error': str(e) or 'Connection failed'}

        if not response.ok:
            return {
                'success': False,
                'error': f"HTTP {response.status_code}: {response.reason}"
            }
        try:
            data = response.json()
        except ValueError:
            return {'success': False, 'error': 'Health response is not JSON'}
        return {
            'success': True,
            'status': data.get('status'),
            'database': data.get('database'),
        }


# Stub implementation for running without a server
class StubSyncClient:
    """Stub client that accepts every sale"""

    def __init__(self, *args, **kwargs):
        self.sync_count = 0
        self.sent: List[Dict] = []

    def attempt(self, item: SyncQueueItem, config: ApiConfig) -> SyncResult:
        self.sync_count += 1
        self.sent.append(transform_for_api(item.data))
        logger.info(f"[STUB] Synced transaction {item.id}")
        return SyncResult(True, status_code=200, response={'id': self.sync_count})

    def check_health(self, config: ApiConfig) -> Dict[str, Any]:
        return {'success': True, 'status': 'stub', 'database': 'stub'}
