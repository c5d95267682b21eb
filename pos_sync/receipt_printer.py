# Receipt Printer - ESC/POS output for SimplePOS Sync Agent
# Sends receipt bytes to a thermal printer over TCP/IP or a serial port

import socket
import threading
import logging
from datetime import datetime
from typing import Dict, List, Optional
import serial


logger = logging.getLogger(__name__)

ESC = b'\x1b'
GS = b'\x1d'
CMD_INITIALIZE = ESC + b'@'
CMD_ALIGN_CENTER = ESC + b'a\x01'
CMD_ALIGN_LEFT = ESC + b'a\x00'
CMD_CUT = GS + b'V\x00'


def _money(value) -> str:
    try:
        return f"P{float(value):.2f}"
    except (TypeError, ValueError):
        return "P0.00"


def build_receipt(receipt: Dict, cart: Optional[List[Dict]] = None) -> bytes:
    """Render a receipt dict (see TransactionService.create_receipt_data)"""
    cart = cart if cart is not None else receipt.get('cart') or []
    now = datetime.now()
    lines = []

    out = CMD_INITIALIZE + CMD_ALIGN_CENTER
    lines.append(f"ORDER RECEIPT #{receipt.get('transactionId') or 'N/A'}")
    lines.append(receipt.get('date') or now.strftime('%m/%d/%Y'))
    lines.append(receipt.get('time') or now.strftime('%I:%M %p'))
    out += ('\n'.join(lines) + '\n').encode('ascii', 'replace') + CMD_ALIGN_LEFT + b'\n'

    body = []
    if cart:
        for item in cart:
            body.append(f"{item.get('quantity', 1)}x {item.get('name', 'Item')} {_money(item.get('price'))}")
        body.append(f"{sum(int(i.get('quantity', 1)) for i in cart)} items")
        body.append('')

    body.append(f"TOTAL: {_money(receipt.get('total'))}")
    body.append('')
    body.append(f"Payment Method: {receipt.get('method', 'Unknown')}")
    if str(receipt.get('method', '')).lower() == 'cash':
        body.append(f"Amount Received: {_money(receipt.get('received'))}")
        body.append(f"Change: {_money(receipt.get('change'))}")

    out += ('\n'.join(body) + '\n\n\n\n').encode('ascii', 'replace')
    return out + CMD_CUT


class ReceiptPrinter:
    """Writes raw ESC/POS bytes to one configured printer"""

    def __init__(self, host: str = None, port: int = 9100,
                 serial_port: str = None, baudrate: int = 9600, timeout: float = 5):
        self.host = host
        self.port = port
        self.serial_port = serial_port
        self.baudrate = baudrate
        self.timeout = timeout
        self.is_printing = False
        self._lock = threading.Lock()

    @property
    def mode(self) -> Optional[str]:
        if self.host:
            return 'network'
        if self.serial_port:
            return 'serial'
        return None

    def is_available(self) -> bool:
        return self.mode is not None

    def send(self, data: bytes) -> Dict:
        """Send bytes; failures are returned, never raised"""
        if not self.is_available():
            return {'success': False, 'error': 'No printer configured'}
        if not self._lock.acquire(blocking=False):
            return {'success': False, 'error': 'Printer busy'}

        self.is_printing = True
        try:
            if self.mode == 'network':
                with socket.create_connection((self.host, self.port), timeout=self.timeout) as conn:
                    conn.sendall(data)
            else:
                with serial.Serial(self.serial_port, self.baudrate, timeout=self.timeout) as ser:
                    ser.write(data)
                    ser.flush()
            logger.info(f"Sent {len(data)} bytes to {self.mode} printer")
            return {'success': True}
        except (OSError, serial.SerialException) as e:
            logger.error(f"Printing failed: {e}")
            return {'success': False, 'error': str(e)}
        finally:
            self.is_printing = False
            self._lock.release()

    def print_receipt(self, receipt: Dict, cart: Optional[List[Dict]] = None) -> Dict:
        return self.send(build_receipt(receipt, cart))

    def print_test_receipt(self) -> Dict:
        now = datetime.now()
        return self.print_receipt({
            'transactionId': f"TEST-{int(now.timestamp() * 1000)}",
            'method': 'Test',
            'total': 0,
        }, [])

    def get_status(self) -> dict:
        return {
            'mode': self.mode,
            'host': self.host,
            'port': self.port,
            'serial_port': self.serial_port,
            'printing': self.is_printing,
        }
