#!/usr/bin/env python3
"""
SimplePOS Sync Agent - local sales recorder with offline sync and a status web UI
"""

import json
import logging
from http.server import ThreadingHTTPServer, BaseHTTPRequestHandler
from pathlib import Path

from pos_sync.logging_config import setup_logging, AlertLog, attach_alert_handler, detach_alert_handler
from pos_sync.transaction_buffer import TransactionBuffer
from pos_sync.api_config import ApiConfigService
from pos_sync.offline_queue import OfflineQueue
from pos_sync.retry_scheduler import RetryScheduler
from pos_sync.sync_client import SyncClient, StubSyncClient
from pos_sync.sync_service import SyncService
from pos_sync.transaction_service import TransactionService, TransactionRecordError, InvalidSaleError
from pos_sync.recovery_manager import RecoveryManager
from pos_sync.receipt_printer import ReceiptPrinter


logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).parent / 'config.json'


def load_config(path: Path = CONFIG_PATH) -> dict:
    if path.exists():
        with open(path) as f:
            return json.load(f)
    return {}


class POSAgent:
    """Composition root: builds every service once and owns their lifecycle"""

    def __init__(self, config: dict = None):
        config = config if config is not None else load_config()
        self.config = config
        self.buffer = TransactionBuffer(config.get('db_path', 'simplepos.db'))
        self.api_config = ApiConfigService(self.buffer, config)

        # Without a server URL sales are accepted locally by a stub
        if config.get('base_url') or config.get('baseUrl'):
            self.sync_client = SyncClient(
                api_key=config.get('api_key'),
                device_id=config.get('pos_device_id', 'simplepos-agent'),
            )
        else:
            self.sync_client = StubSyncClient()

        self.sync_service = SyncService(
            OfflineQueue(self.buffer), self.sync_client, self.api_config, RetryScheduler()
        )
        self.transactions = TransactionService(self.buffer, self.sync_service)
        self.recovery = RecoveryManager(self.buffer, self.sync_service)
        self.printer = ReceiptPrinter(
            host=config.get('printer_host'),
            port=config.get('printer_port', 9100),
            serial_port=config.get('printer_serial_port'),
        )
        # Transactions that exhausted their sync retries, for the status page
        self.alerts = AlertLog(self.buffer)
        self.alert_handler = None
        self.ui_port = config.get('ui_port', 8080)
        self.running = False

    def start(self):
        logger.info("SimplePOS Sync Agent starting...")
        self.alert_handler = attach_alert_handler(self.alerts.record)
        report = self.recovery.on_startup()
        logger.info(f"Startup recovery: {report['pending_found']} pending, "
                    f"{report['failed_found']} failed")
        self.running = True

    def stop(self):
        if self.running:
            self.recovery.on_shutdown()
            self.running = False
        if self.alert_handler is not None:
            detach_alert_handler(self.alert_handler)
            self.alert_handler = None

    def record_sale(self, cart, payment_method, payment_details=None, print_receipt=False) -> dict:
        outcome = self.transactions.record_and_queue(cart, payment_method, payment_details)
        result = {
            'transaction_id': outcome.transaction_id,
            'queued': outcome.queued,
        }
        if print_receipt:
            receipt = self.transactions.create_receipt_data(outcome, cart)
            result['printed'] = self.printer.print_receipt(receipt, cart)
        return result

    def get_status(self):
        config = self.api_config.get_config()
        return {
            'sync': self.sync_service.status(),
            'config': config.to_dict(),
            'buffer': self.buffer.get_stats(),
            'printer': self.printer.get_status(),
            'alerts': self.alerts.recent(),
            'running': self.running,
        }


HTML = """
<!DOCTYPE html>
<html>
<head>
    <title>SimplePOS Sync Agent</title>
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <style>
        body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
               max-width: 800px; margin: 0 auto; padding: 20px; background: #f5f5f5; }
        h1 { color: #333; }
        .card { background: white; padding: 20px; border-radius: 10px; margin-bottom: 20px; box-shadow: 0 2px 5px rgba(0,0,0,0.1); }
        .status { display: flex; gap: 10px; flex-wrap: wrap; align-items: center; }
        .badge { padding: 8px 16px; border-radius: 20px; font-weight: bold; }
        .green { background: #d4edda; color: #155724; }
        .yellow { background: #fff3cd; color: #856404; }
        .red { background: #f8d7da; color: #721c24; }
        button { background: #007bff; color: white; border: none; padding: 12px 24px;
                 border-radius: 5px; cursor: pointer; font-size: 16px; margin: 5px; }
        button:hover { background: #0056b3; }
        button.test { background: #28a745; }
        button.danger { background: #dc3545; }
    </style>
</head>
<body>
    <h1>SimplePOS Sync Agent</h1>

    <div class="card">
        <h2>Sync Queue</h2>
        <div class="status">
            <div class="badge yellow">Pending: <span id="pending">-</span></div>
            <div class="badge red">Failed: <span id="failed">-</span></div>
            <div class="badge green">Completed: <span id="completed">-</span></div>
            <div class="badge">Total: <span id="total">-</span></div>
            <div class="badge" id="syncing"></div>
        </div>
    </div>

    <div class="card">
        <h2>Sync Alerts</h2>
        <ul id="alerts"></ul>
    </div>

    <div class="card">
        <h2>Actions</h2>
        <button onclick="act('/sync-now')">Sync Now</button>
        <button onclick="act('/retry-failed')">Retry Failed</button>
        <button class="test" onclick="act('/test-sync')">Send Test Sale</button>
        <button class="test" onclick="act('/test-connection')">Test Connection</button>
        <button class="danger" onclick="if (confirm('Discard every queued sale?')) act('/clear-queue')">Clear Queue</button>
        <p id="result"></p>
    </div>

    <script>
        function act(path) {
            fetch(path, {method: 'POST'}).then(r => r.json()).then(d => {
                document.getElementById('result').innerText = JSON.stringify(d);
                loadStatus();
            });
        }

        function loadStatus() {
            fetch('/status').then(r => r.json()).then(d => {
                ['pending', 'failed', 'completed', 'total'].forEach(k => {
                    document.getElementById(k).innerText = d.sync[k];
                });
                document.getElementById('syncing').innerText = d.sync.syncing ? 'Syncing...' : 'Idle';
                const alerts = document.getElementById('alerts');
                alerts.innerHTML = '';
                d.alerts.forEach(a => {
                    const li = document.createElement('li');
                    li.innerText = `${a.logged_at} transaction ${a.transaction_id}: ${a.error}`;
                    alerts.appendChild(li);
                });
            });
        }

        loadStatus();
        setInterval(loadStatus, 5000);
    </script>
</body>
</html>
"""


class Handler(BaseHTTPRequestHandler):
    """Status page and queue management endpoints; agent is server.agent"""

    @property
    def agent(self) -> POSAgent:
        return self.server.agent

    def _send_json(self, payload, code=200):
        body = json.dumps(payload, default=str).encode()
        self.send_response(code)
        self.send_header('Content-type', 'application/json')
        self.send_header('Content-Length', str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _read_json(self) -> dict:
        length = int(self.headers.get('Content-Length') or 0)
        if not length:
            return {}
        return json.loads(self.rfile.read(length))

    def do_GET(self):
        if self.path == '/':
            body = HTML.encode()
            self.send_response(200)
            self.send_header('Content-type', 'text/html')
            self.send_header('Content-Length', str(len(body)))
            self.end_headers()
            self.wfile.write(body)
        elif self.path == '/status':
            self._send_json(self.agent.get_status())
        elif self.path == '/transactions':
            self._send_json(self.agent.transactions.get_transactions())
        else:
            self.send_error(404)

    def do_POST(self):
        sync = self.agent.sync_service
        if self.path == '/sync-now':
            self._send_json({'ran': sync.sync_now(), 'status': sync.status()})
        elif self.path == '/retry-failed':
            self.agent.alerts.clear()
            self._send_json({'retried': sync.retry_failed(), 'status': sync.status()})
        elif self.path == '/clear-queue':
            sync.clear_queue()
            self.agent.alerts.clear()
            self._send_json({'status': sync.status()})
        elif self.path == '/test-sync':
            item = sync.test_sync()
            self._send_json({'queued': item is not None, 'status': sync.status()})
        elif self.path == '/test-connection':
            self._send_json(sync.check_connection())
        elif self.path == '/transactions':
            self._record_sale()
        else:
            self.send_error(404)

    def _record_sale(self):
        try:
            body = self._read_json()
            cart = body['cart']
            method = body.get('payment_method', 'cash')
        except (KeyError, TypeError, ValueError) as e:
            self._send_json({'error': f"Invalid sale: {e}"}, 400)
            return
        try:
            result = self.agent.record_sale(
                cart, method, body.get('payment_details'), bool(body.get('print_receipt'))
            )
        except InvalidSaleError as e:
            self._send_json({'error': f"Invalid sale: {e}"}, 400)
            return
        except TransactionRecordError as e:
            self._send_json({'error': f"Sale not recorded: {e}"}, 500)
            return
        self._send_json(result, 201)

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)


def main():
    setup_logging()
    agent = POSAgent()
    agent.start()

    server = ThreadingHTTPServer(('', agent.ui_port), Handler)
    server.agent = agent

    print("=" * 50)
    print("  SimplePOS Sync Agent")
    print("=" * 50)
    print(f"Web UI: http://localhost:{agent.ui_port}")
    print("Logs: logs/simplepos_sync.log")
    print("=" * 50)
    print("Press Ctrl+C to stop")

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\nStopping...")
    finally:
        server.server_close()
        agent.stop()


if __name__ == '__main__':
    main()
