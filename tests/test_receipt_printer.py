# Tests for receipt rendering and printer output

import socket
import threading

from pos_sync.receipt_printer import ReceiptPrinter, build_receipt, CMD_INITIALIZE, CMD_CUT


RECEIPT = {
    'transactionId': 12,
    'method': 'Cash',
    'total': 325.0,
    'received': 400.0,
    'change': 75.0,
    'date': '10/19/2026',
    'time': '9:30 AM',
}

CART = [
    {'name': 'Iced Latte', 'quantity': 2, 'price': 120.0},
    {'name': 'Croissant', 'quantity': 1, 'price': 85.0},
]


class TestBuildReceipt:

    def test_layout(self):
        data = build_receipt(RECEIPT, CART)

        assert data.startswith(CMD_INITIALIZE)
        assert data.endswith(CMD_CUT)
        assert b'ORDER RECEIPT #12' in data
        assert b'2x Iced Latte P120.00' in data
        assert b'3 items' in data
        assert b'TOTAL: P325.00' in data
        assert b'Amount Received: P400.00' in data
        assert b'Change: P75.00' in data

    def test_non_cash_has_no_change_lines(self):
        data = build_receipt(dict(RECEIPT, method='GCash'), CART)

        assert b'Payment Method: GCash' in data
        assert b'Change:' not in data


class TestReceiptPrinter:

    def test_unconfigured_printer(self):
        result = ReceiptPrinter().send(b'hello')

        assert result == {'success': False, 'error': 'No printer configured'}

    def test_network_send(self):
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.bind(('127.0.0.1', 0))
        server.listen(1)
        port = server.getsockname()[1]
        received = []

        def accept():
            conn, _ = server.accept()
            with conn:
                chunks = []
                while True:
                    data = conn.recv(4096)
                    if not data:
                        break
                    chunks.append(data)
                received.append(b''.join(chunks))

        thread = threading.Thread(target=accept, daemon=True)
        thread.start()

        result = ReceiptPrinter(host='127.0.0.1', port=port).print_receipt(RECEIPT, CART)
        thread.join(5)
        server.close()

        assert result == {'success': True}
        assert received[0] == build_receipt(RECEIPT, CART)

    def test_unreachable_printer_returns_error(self):
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.bind(('127.0.0.1', 0))
        port = server.getsockname()[1]
        server.close()

        result = ReceiptPrinter(host='127.0.0.1', port=port, timeout=1).send(b'x')

        assert result['success'] is False
        assert result['error']
