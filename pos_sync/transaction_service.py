# Transaction Service - records sales for SimplePOS Sync Agent
# Local write first, then hand the sale to the sync queue

import logging
import math
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Dict, Any, Optional

from .sync_service import SyncService
from .transaction_buffer import TransactionBuffer


logger = logging.getLogger(__name__)


class TransactionRecordError(Exception):
    """The sale could not be written to the local database"""


class InvalidSaleError(ValueError):
    """The cart or payment amounts are malformed; nothing was recorded"""


@dataclass
class RecordOutcome:
    """Result of recording a sale: the local id and whether sync was queued"""
    transaction_id: int
    queued: bool
    data: Dict[str, Any] = field(default_factory=dict)


def _amount(value, label: str) -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise InvalidSaleError(f"{label} is not a number: {value!r}")
    if math.isnan(amount) or math.isinf(amount) or amount < 0:
        raise InvalidSaleError(f"{label} must be a non-negative amount, got {value!r}")
    return amount


def normalize_cart(cart) -> List[Dict]:
    """Copy of the cart with numeric price and whole, positive quantity on every line"""
    if not isinstance(cart, list) or not cart:
        raise InvalidSaleError("cart must be a non-empty list of items")

    lines = []
    for index, item in enumerate(cart):
        if not isinstance(item, dict):
            raise InvalidSaleError(f"cart line {index} is not an item: {item!r}")
        line = dict(item)
        line['price'] = _amount(item.get('price', item.get('unit_price', 0)),
                                f"cart line {index} price")
        quantity = _amount(item.get('quantity', 1), f"cart line {index} quantity")
        if quantity < 1 or quantity != int(quantity):
            raise InvalidSaleError(
                f"cart line {index} quantity must be a whole number of at least 1, "
                f"got {item.get('quantity')!r}"
            )
        line['quantity'] = int(quantity)
        lines.append(line)
    return lines


def cart_total(cart: List[Dict]) -> float:
    return sum(float(i.get('price', 0)) * float(i.get('quantity', 1)) for i in cart)


class TransactionService:
    """Records sales locally and queues them for sync"""

    def __init__(self, buffer: TransactionBuffer, sync_service: SyncService,
                 background_sync: bool = True):
        self.buffer = buffer
        self.sync_service = sync_service
        self.background_sync = background_sync

    def record_and_queue(self, cart: List[Dict], payment_method: str,
                         payment_details: Optional[Dict[str, Any]] = None) -> RecordOutcome:
        """Persist the sale, build its sync payload and queue it.

        Raises InvalidSaleError before touching the database if the cart or
        total is malformed, and TransactionRecordError if the local write
        fails; in either case nothing is queued and the payment must not be
        confirmed. Problems while queueing or syncing are logged and
        reported through ``RecordOutcome.queued``, never raised.
        """
        cart = normalize_cart(cart)
        if payment_details is not None and not isinstance(payment_details, dict):
            raise InvalidSaleError(f"payment details must be an object, got {payment_details!r}")
        payment_details = dict(payment_details or {})
        status = payment_details.pop('status', None) or 'COMPLETED'
        total = payment_details.get('total')
        if total is None:
            total = cart_total(cart)
        total = _amount(total, 'total')
        payment_details['total'] = total

        try:
            transaction_id = self.buffer.add_transaction(cart, payment_method, status, float(total))
        except sqlite3.Error as e:
            logger.error(f"Failed to record {payment_method} transaction: {e}")
            raise TransactionRecordError(str(e)) from e

        now = datetime.now()
        data = {
            'transactionId': transaction_id,
            'cart': cart,
            'paymentMethod': payment_method,
            'total': float(total),
            'timestamp': now.isoformat(),
            'date': now.strftime('%Y-%m-%d'),
            'time': now.strftime('%H:%M:%S'),
            'status': 'success' if status == 'COMPLETED' else status.lower(),
            'dbStatus': status,
        }
        data.update(payment_details)
        data['total'] = float(total)
        logger.info(f"Transaction {transaction_id} recorded locally: {payment_method} {float(total):.2f}")

        queued = False
        try:
            queued = self.sync_service.queue_for_sync(data) is not None
        except Exception:
            logger.exception(f"Error queuing transaction {transaction_id} for sync")

        if queued and self.background_sync:
            self.sync_service.drain_in_background()

        return RecordOutcome(transaction_id, queued, data)

    # Name used by the payment screens
    process_transaction = record_and_queue

    def process_cash_transaction(self, cart: List[Dict], total, received, change) -> RecordOutcome:
        return self.record_and_queue(cart, 'cash', {
            'total': float(total),
            'received': float(received),
            'change': float(change),
            'method': 'Cash',
        })

    def process_digital_payment(self, cart: List[Dict], total, method: str,
                                **additional) -> RecordOutcome:
        """GCash, BPI, QR and similar non-cash payments"""
        details = {'total': float(total), 'method': method}
        details.update(additional)
        return self.record_and_queue(cart, method.lower(), details)

    def process_internal_consumption(self, cart: List[Dict],
                                     consumption_type: str = 'HOUSE') -> RecordOutcome:
        return self.record_and_queue(cart, consumption_type.lower(), {
            'total': cart_total(normalize_cart(cart)),
            'method': consumption_type,
            'status': 'HOUSE',
        })

    def create_receipt_data(self, outcome: RecordOutcome, cart: List[Dict] = None) -> Dict[str, Any]:
        """Summary used for printing a receipt"""
        data = outcome.data
        now = datetime.now()
        return {
            'transactionId': outcome.transaction_id,
            'method': data.get('method') or data.get('paymentMethod') or 'Unknown',
            'total': data.get('total', 0),
            'received': data.get('received'),
            'change': data.get('change'),
            'date': data.get('date') or now.strftime('%Y-%m-%d'),
            'time': data.get('time') or now.strftime('%H:%M:%S'),
            'timestamp': data.get('timestamp') or now.isoformat(),
            'cart': cart if cart is not None else data.get('cart', []),
            'status': data.get('status', 'success'),
        }

    def get_transactions(self) -> List[Dict]:
        return self.buffer.get_transactions()

    def get_transaction_by_id(self, tx_id: int) -> Optional[Dict]:
        return self.buffer.get_transaction_by_id(tx_id)

    def get_transactions_by_date(self, date: str) -> List[Dict]:
        return self.buffer.get_transactions_by_date(date)

    def get_daily_summary(self, date: str) -> Dict:
        return self.buffer.get_daily_summary(date)

    def delete_transaction(self, tx_id: int):
        self.buffer.delete_transaction(tx_id)

    def void_transaction(self, tx_id: int) -> bool:
        return self.buffer.void_transaction(tx_id)

    def update_transaction_status(self, tx_id: int, status: str) -> bool:
        return self.buffer.update_transaction_status(tx_id, status.upper())

    def get_sync_status(self) -> Dict[str, Any]:
        return self.sync_service.status()
