"""
Background refresh for the terminal.

A RepeatingTask runs a callable on a daemon thread every `interval` seconds
and immediately whenever trigger() is called. The terminal wires trigger()
to the data_changed signal, so replacing the timers with server push only
means sending that signal from somewhere else.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from ..signals import data_changed
from ..services.stock_service import low_stock_notifications

logger = logging.getLogger(__name__)


class RepeatingTask:
    def __init__(self, func: Callable[[], None], interval: float, *, name: str = "repeating-task"):
        self.func = func
        self.interval = interval
        self.name = name
        self._stop = threading.Event()
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._run_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, *, run_now: bool = True) -> None:
        if self.running:
            return
        self._stop.clear()
        if run_now:
            self._wake.set()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        logger.info("%s started (interval=%ss)", self.name, self.interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        self._wake.set()
        thread, self._thread = self._thread, None
        if thread and thread is not threading.current_thread():
            thread.join(timeout)
        logger.info("%s stopped", self.name)

    def trigger(self) -> None:
        """Run as soon as possible instead of waiting out the interval."""
        self._wake.set()

    def run_once(self) -> None:
        # Serialized: a trigger during a slow run queues one more run, not a parallel one
        with self._run_lock:
            try:
                self.func()
            except Exception:
                logger.exception("%s run failed", self.name)

    def _loop(self) -> None:
        while not self._stop.is_set():
            self._wake.wait(self.interval)
            self._wake.clear()
            if self._stop.is_set():
                break
            self.run_once()


class LowStockMonitor(RepeatingTask):
    """
    Keeps the notification list for the current session.

    Each scan replaces the whole list: a restocked product disappears, a new
    low product appears, nothing is merged.
    """

    def __init__(self, fetch_products: Callable[[], list], get_threshold: Callable[[], int],
                 interval: float = 30.0, on_update: Optional[Callable[[list], None]] = None):
        super().__init__(self.scan, interval, name="low-stock-monitor")
        self.fetch_products = fetch_products
        self.get_threshold = get_threshold
        self.on_update = on_update
        self.notifications: list[dict] = []

    def scan(self) -> list[dict]:
        notifications = low_stock_notifications(self.fetch_products(), self.get_threshold())
        self.notifications = notifications
        if self.on_update:
            self.on_update(notifications)
        return notifications

    def on_data_changed(self, sender, entity: str = "", **kwargs) -> None:
        if entity in ("products", "settings", "sales"):
            self.trigger()


class ProductRefresher(RepeatingTask):
    """Refreshes the checkout product list and the cart's stock snapshot."""

    def __init__(self, fetch_products: Callable[[], list], on_refresh: Callable[[list], None],
                 interval: float = 5.0):
        super().__init__(self.refresh, interval, name="product-refresher")
        self.fetch_products = fetch_products
        self.on_refresh = on_refresh

    def refresh(self) -> None:
        self.on_refresh(self.fetch_products())

    def on_data_changed(self, sender, entity: str = "", **kwargs) -> None:
        if entity in ("products", "sales"):
            self.trigger()


def connect_to_data_changed(task) -> None:
    # weak=False: the session holds the task and disconnects it on logout
    data_changed.connect(task.on_data_changed, weak=False)


def disconnect_from_data_changed(task) -> None:
    data_changed.disconnect(task.on_data_changed)
