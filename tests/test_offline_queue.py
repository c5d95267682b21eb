# Tests for the persistent offline queue

import pytest

from pos_sync.offline_queue import (
    OfflineQueue, SyncQueueItem, QUEUE_STATE_KEY, PENDING, COMPLETED, FAILED
)
from pos_sync.transaction_buffer import TransactionBuffer


def item(item_id, status=PENDING, attempts=0):
    return SyncQueueItem(id=str(item_id), data={'transactionId': item_id},
                         status=status, attempts=attempts)


class TestSyncQueueItem:

    def test_rejects_unknown_status(self):
        with pytest.raises(ValueError):
            SyncQueueItem(id='1', data={}, status='syncing')

    def test_rejects_negative_attempts(self):
        with pytest.raises(ValueError):
            SyncQueueItem(id='1', data={}, attempts=-1)

    def test_stored_keys_are_camel_case(self):
        original = item(1, attempts=2)
        stored = original.to_dict()

        assert set(stored) == {
            'id', 'data', 'status', 'attempts', 'createdAt',
            'lastAttemptAt', 'syncedAt', 'lastError', 'serverResponse'
        }
        assert SyncQueueItem.from_dict(stored) == original


class TestOfflineQueue:

    def make_queue(self, tmp_path):
        return OfflineQueue(TransactionBuffer(str(tmp_path / 'queue.db')))

    def test_empty_queue_loads_empty_list(self, tmp_path):
        assert self.make_queue(tmp_path).load() == []

    def test_survives_restart(self, tmp_path):
        queue = self.make_queue(tmp_path)
        queue.append(item(1), 10)
        queue.append(item(2, status=FAILED, attempts=3), 10)

        reopened = self.make_queue(tmp_path)
        loaded = reopened.load()

        assert [i.id for i in loaded] == ['1', '2']
        assert loaded[1].status == FAILED
        assert loaded[1].attempts == 3

    def test_append_evicts_oldest_first(self, tmp_path):
        queue = self.make_queue(tmp_path)
        for i in range(3):
            queue.append(item(i), 3)

        evicted = queue.append(item(3), 3)

        assert [i.id for i in evicted] == ['0']
        assert [i.id for i in queue.load()] == ['1', '2', '3']

    def test_length_never_exceeds_max(self, tmp_path):
        queue = self.make_queue(tmp_path)
        for i in range(12):
            queue.append(item(i), 5)
            assert len(queue.load()) <= 5

    def test_eviction_logged(self, tmp_path, caplog):
        queue = self.make_queue(tmp_path)
        queue.append(item('old'), 1)

        with caplog.at_level('WARNING'):
            queue.append(item('new'), 1)

        assert 'evicted oldest item old' in caplog.text

    def test_update_replaces_by_id(self, tmp_path):
        queue = self.make_queue(tmp_path)
        queue.append(item(1), 10)
        changed = queue.get('1')
        changed.attempts = 1
        changed.last_error = 'HTTP 502: Bad Gateway'

        assert queue.update(changed) is True
        assert queue.get('1').last_error == 'HTTP 502: Bad Gateway'

    def test_update_missing_item_is_noop(self, tmp_path):
        queue = self.make_queue(tmp_path)

        assert queue.update(item('gone')) is False
        assert queue.load() == []

    def test_remove_completed(self, tmp_path):
        queue = self.make_queue(tmp_path)
        queue.save([item(1, COMPLETED), item(2), item(3, FAILED, 3), item(4, COMPLETED)])

        assert queue.remove_completed() == 2
        assert [i.id for i in queue.load()] == ['2', '3']

    def test_reset_failed(self, tmp_path):
        queue = self.make_queue(tmp_path)
        failed = item(1, FAILED, 3)
        failed.last_error = 'timeout'
        queue.save([failed, item(2, PENDING, 1)])

        assert queue.reset_failed() == 1

        first, second = queue.load()
        assert (first.status, first.attempts, first.last_error) == (PENDING, 0, None)
        assert second.attempts == 1

    def test_clear(self, tmp_path):
        queue = self.make_queue(tmp_path)
        queue.append(item(1), 10)

        queue.clear()

        assert queue.load() == []
        assert queue.buffer.load_state(QUEUE_STATE_KEY) is None

    def test_corrupt_entries_dropped(self, tmp_path):
        queue = self.make_queue(tmp_path)
        queue.buffer.save_state(QUEUE_STATE_KEY, [
            {'id': '1', 'data': {}, 'status': 'pending', 'attempts': 0},
            {'id': '2', 'data': {}, 'status': 'bogus'},
            {'data': {}},
        ])

        assert [i.id for i in queue.load()] == ['1']

    def test_counts(self, tmp_path):
        queue = self.make_queue(tmp_path)
        queue.save([item(1, COMPLETED), item(2), item(3), item(4, FAILED, 3)])

        assert queue.counts() == {'pending': 2, 'completed': 1, 'failed': 1, 'total': 4}
