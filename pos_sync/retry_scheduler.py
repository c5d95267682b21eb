# Retry Scheduler - delayed re-attempts for SimplePOS Sync Agent
# One timer per queue item id; scheduling again replaces the old timer

import logging
import threading
from typing import Callable, Dict, List


logger = logging.getLogger(__name__)


def _daemon_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    return timer


class RetryScheduler:
    """Flat-delay retry timers keyed by queue item id.

    A timer that has been cancelled never runs its callback. A callback that
    is already running is not interrupted by cancel(); it finishes normally.
    """

    def __init__(self, timer_factory: Callable = _daemon_timer):
        self.timer_factory = timer_factory
        self.timers: Dict[str, threading.Timer] = {}
        self.lock = threading.Lock()

    def schedule(self, item_id: str, delay: float, callback: Callable[[str], None]):
        """Run callback(item_id) after delay seconds, superseding any earlier timer"""
        def fire():
            with self.lock:
                # A superseded timer may still fire if cancel lost the race
                if self.timers.get(item_id) is not timer:
                    return
                del self.timers[item_id]
            try:
                callback(item_id)
            except Exception:
                logger.exception(f"Scheduled retry for {item_id} failed")

        timer = self.timer_factory(delay, fire)
        with self.lock:
            previous = self.timers.pop(item_id, None)
            if previous is not None:
                previous.cancel()
                logger.debug(f"Replaced pending retry timer for {item_id}")
            self.timers[item_id] = timer
        timer.start()
        logger.info(f"Scheduled retry for transaction {item_id} in {delay:g}s")

    def cancel(self, item_id: str) -> bool:
        with self.lock:
            timer = self.timers.pop(item_id, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def cancel_all(self) -> int:
        with self.lock:
            timers = list(self.timers.values())
            self.timers.clear()
        for timer in timers:
            timer.cancel()
        if timers:
            logger.info(f"Cancelled {len(timers)} scheduled retries")
        return len(timers)

    def has_pending(self, item_id: str) -> bool:
        with self.lock:
            return item_id in self.timers

    def pending_ids(self) -> List[str]:
        with self.lock:
            return list(self.timers)
