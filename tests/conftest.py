# Shared fixtures: temp database, manual retry timers, scripted sync clients

import pytest

from pos_sync.api_config import ApiConfigService
from pos_sync.offline_queue import OfflineQueue
from pos_sync.retry_scheduler import RetryScheduler
from pos_sync.sync_client import SyncResult
from pos_sync.sync_service import SyncService
from pos_sync.transaction_buffer import TransactionBuffer


class ManualTimer:
    """Timer that only fires when the test says so"""

    def __init__(self, delay, fn):
        self.delay = delay
        self.fn = fn
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if self.started and not self.cancelled and not self.fired:
            self.fired = True
            self.fn()


class ManualTimers:
    """Timer factory for RetryScheduler that records every timer it creates"""

    def __init__(self):
        self.created = []

    def __call__(self, delay, fn):
        timer = ManualTimer(delay, fn)
        self.created.append(timer)
        return timer

    @property
    def live(self):
        return [t for t in self.created if t.started and not t.cancelled and not t.fired]

    def fire_next(self):
        timer = self.live[0]
        timer.fire()
        return timer


class ScriptedClient:
    """Returns queued SyncResults in order, then succeeds"""

    def __init__(self, results=()):
        self.results = list(results)
        self.calls = []

    def attempt(self, item, config):
        self.calls.append(item.id)
        if self.results:
            return self.results.pop(0)
        return SyncResult(True, status_code=200, response={'ok': True})

    def check_health(self, config):
        return {'success': True, 'status': 'ok', 'database': 'connected'}


def server_error():
    return SyncResult(False, status_code=500, error='HTTP 500: Internal Server Error')


@pytest.fixture
def buffer(tmp_path):
    return TransactionBuffer(str(tmp_path / 'pos.db'))


@pytest.fixture
def timers():
    return ManualTimers()


@pytest.fixture
def make_service(buffer, timers):
    def factory(client=None, **config):
        config_service = ApiConfigService(buffer, config)
        return SyncService(
            OfflineQueue(buffer),
            client or ScriptedClient(),
            config_service,
            RetryScheduler(timers),
        )
    return factory
