from __future__ import annotations

import threading
from typing import Callable

from .models import ItemStatus, MediaItem
from .progress_log import ProgressLogger

StatusObserver = Callable[[MediaItem, ItemStatus], None]
Dispatcher = Callable[[Callable[[], None]], None]


def _call_inline(fn: Callable[[], None]) -> None:
    fn()


class StatusChannel:
    """One-way status feed from the pipeline to any number of observers.

    ``dispatch`` decides on which context observers run; a UI passes its
    thread-safe scheduling hook (for example ``loop.call_soon_threadsafe``).
    """

    def __init__(self, dispatch: Dispatcher | None = None, logger: ProgressLogger | None = None) -> None:
        self._dispatch = dispatch or _call_inline
        self._logger = logger or ProgressLogger()
        self._lock = threading.Lock()
        self._observers: list[StatusObserver] = []

    def subscribe(self, observer: StatusObserver) -> Callable[[], None]:
        with self._lock:
            self._observers.append(observer)

        def _unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return _unsubscribe

    def publish(self, item: MediaItem, status: ItemStatus) -> None:
        item.status = status
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            self._dispatch(self._deliver(observer, item, status))

    def _deliver(self, observer: StatusObserver, item: MediaItem, status: ItemStatus) -> Callable[[], None]:
        def _call() -> None:
            try:
                observer(item, status)
            except Exception as exc:
                # A broken observer must not fail the file being processed.
                self._logger.for_item(item.name).log(f"status observer failed: {exc}")

        return _call
