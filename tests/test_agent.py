# Tests for the agent composition root and its management endpoints

import threading
from http.server import ThreadingHTTPServer

import pytest
import requests

from main import POSAgent, Handler
from pos_sync.sync_client import StubSyncClient, SyncClient
from conftest import ScriptedClient, server_error


@pytest.fixture
def agent(tmp_path):
    agent = POSAgent({'db_path': str(tmp_path / 'agent.db')})
    agent.transactions.background_sync = False
    agent.start()
    yield agent
    agent.stop()


@pytest.fixture
def base_url(agent):
    server = ThreadingHTTPServer(('127.0.0.1', 0), Handler)
    server.agent = agent
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


class TestPOSAgent:

    def test_stub_client_without_server_url(self, agent):
        assert isinstance(agent.sync_client, StubSyncClient)

    def test_real_client_with_server_url(self, tmp_path):
        agent = POSAgent({'db_path': str(tmp_path / 'a.db'), 'base_url': 'http://pos.local/api'})

        assert isinstance(agent.sync_client, SyncClient)
        assert agent.api_config.get_config().base_url == 'http://pos.local/api'

    def test_record_sale(self, agent):
        result = agent.record_sale([{'name': 'Tea', 'quantity': 1, 'price': 50}], 'cash')

        assert result['queued'] is True
        assert agent.get_status()['sync']['pending'] == 1

    def test_record_sale_without_printer_reports_print_error(self, agent):
        result = agent.record_sale([{'name': 'Tea', 'quantity': 1, 'price': 50}], 'cash',
                                   print_receipt=True)

        assert result['printed']['success'] is False

    def test_start_attaches_alert_handler_and_stop_detaches(self, agent):
        agent.sync_service.client = ScriptedClient([server_error()])
        agent.api_config.update_config(sync_retry_attempts=1)
        agent.record_sale([{'name': 'Tea', 'quantity': 1, 'price': 50}], 'cash')
        agent.sync_service.drain()

        assert [a['transaction_id'] for a in agent.get_status()['alerts']] == ['1']

        agent.stop()
        assert agent.alert_handler is None


class TestHandler:

    def test_status(self, base_url):
        response = requests.get(f"{base_url}/status", timeout=5)

        assert response.status_code == 200
        assert response.json()['sync']['total'] == 0

    def test_record_then_sync_now(self, base_url, agent):
        sale = {'cart': [{'name': 'Tea', 'quantity': 2, 'price': 50}], 'payment_method': 'cash'}

        created = requests.post(f"{base_url}/transactions", json=sale, timeout=5)
        assert created.status_code == 201
        assert created.json()['queued'] is True

        synced = requests.post(f"{base_url}/sync-now", timeout=5).json()
        assert synced['ran'] is True
        assert synced['status']['total'] == 0
        assert agent.sync_client.sync_count == 1

    def test_invalid_sale_rejected(self, base_url):
        response = requests.post(f"{base_url}/transactions", json={'payment_method': 'cash'}, timeout=5)

        assert response.status_code == 400

    def test_clear_queue(self, base_url, agent):
        agent.record_sale([{'name': 'Tea', 'quantity': 1, 'price': 50}], 'cash')

        response = requests.post(f"{base_url}/clear-queue", timeout=5)

        assert response.json()['status']['total'] == 0

    def test_test_connection(self, base_url):
        assert requests.post(f"{base_url}/test-connection", timeout=5).json()['success'] is True

    def test_unknown_path(self, base_url):
        assert requests.get(f"{base_url}/nope", timeout=5).status_code == 404

    @pytest.mark.parametrize('sale', [
        {'cart': [{'name': 'x', 'price': 'abc', 'quantity': 1}]},
        {'cart': [{'name': 'x', 'price': 10, 'quantity': -1}]},
        {'cart': 'Tea'},
        {'cart': [{'name': 'x', 'price': 10}], 'payment_details': 'paid'},
    ])
    def test_malformed_sale_gets_400(self, base_url, agent, sale):
        response = requests.post(f"{base_url}/transactions", json=sale, timeout=5)

        assert response.status_code == 400
        assert response.json()['error'].startswith('Invalid sale')
        assert agent.transactions.get_transactions() == []

    def test_failed_sync_alert_shown_then_cleared_by_retry(self, base_url, agent):
        agent.sync_service.client = ScriptedClient([server_error()])
        agent.api_config.update_config(sync_retry_attempts=1)
        agent.record_sale([{'name': 'Tea', 'quantity': 1, 'price': 50}], 'cash')
        agent.sync_service.drain()

        status = requests.get(f"{base_url}/status", timeout=5).json()
        assert status['sync']['failed'] == 1
        assert [a['transaction_id'] for a in status['alerts']] == ['1']

        retried = requests.post(f"{base_url}/retry-failed", timeout=5).json()
        assert retried['retried'] == 1
        assert requests.get(f"{base_url}/status", timeout=5).json()['alerts'] == []
