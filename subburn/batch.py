from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable

from .errors import AppError
from .file_discovery import DiscoveryError
from .models import ItemStatus, MediaItem
from .pipeline import PipelineOrchestrator
from .progress_log import ProgressLogger, format_seconds


class PathCollisionError(AppError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code=8)


@dataclass
class BatchSummary:
    total: int
    counts: dict[ItemStatus, int]
    elapsed_seconds: float
    failures: list[tuple[Path, str]] = field(default_factory=list)

    @property
    def errors(self) -> int:
        return self.counts.get(ItemStatus.ERROR, 0)

    @property
    def abandoned(self) -> int:
        return self.counts.get(ItemStatus.PENDING, 0)

    @property
    def ok(self) -> bool:
        return self.errors == 0 and self.abandoned == 0


class BatchDriver:
    """Owns one batch of items and drives each through the orchestrator.

    ``start`` returns immediately and processes on a background thread;
    ``run`` does the same work on the calling thread.
    """

    def __init__(
        self,
        items: Iterable[MediaItem],
        orchestrator: PipelineOrchestrator,
        workers: int = 1,
        logger: ProgressLogger | None = None,
    ) -> None:
        self.items = list(items)
        self.orchestrator = orchestrator
        self.workers = max(1, int(workers))
        self.logger = logger or orchestrator.logger
        self.completed = threading.Event()
        self._by_source: dict[str, MediaItem] = {}
        for item in self.items:
            key = str(item.source)
            if key in self._by_source:
                raise DiscoveryError(f"Duplicate source in batch: {item.source}")
            self._by_source[key] = item
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._running = False
        self._complete_callbacks: list[Callable[[BatchSummary], None]] = []
        self.summary: BatchSummary | None = None

    @property
    def is_processing(self) -> bool:
        return self._running

    def status_of(self, source: Path) -> ItemStatus:
        return self._by_source[str(source)].status

    def snapshot(self) -> list[tuple[Path, ItemStatus]]:
        return [(item.source, item.status) for item in self.items]

    def on_complete(self, callback: Callable[[BatchSummary], None]) -> None:
        self._complete_callbacks.append(callback)

    def start(self) -> bool:
        with self._lock:
            if self._running:
                return False
            self._claim()
            self._thread = threading.Thread(target=self._run_claimed, name="subburn-batch", daemon=True)
            self._thread.start()
        return True

    def wait(self, timeout: float | None = None) -> bool:
        return self.completed.wait(timeout)

    def stop(self) -> None:
        self._stop.set()
        self.orchestrator.runner.cancel()
        self.logger.log("Stop requested: in-flight tools terminated, remaining files left pending")

    def run(self) -> BatchSummary:
        with self._lock:
            if self._running:
                raise AppError("Batch is already processing", code=1)
            self._claim()
        return self._run_claimed()

    def _claim(self) -> None:
        # A stop from an earlier run (or while idle) must not leak into this one.
        self._running = True
        self._stop.clear()
        self.orchestrator.runner.reset()
        self.completed.clear()

    def _run_claimed(self) -> BatchSummary:
        started = time.perf_counter()
        try:
            self._reset_items()
            runnable = self._reject_collisions()
            total = len(self.items)
            self.logger.log(f"Start batch: files={total} workers={self.workers}")
            if self.workers == 1:
                for idx, item in runnable:
                    if self._stop.is_set():
                        break
                    self._process_one(item, idx, total)
            else:
                with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="subburn") as executor:
                    futures = [executor.submit(self._process_one, item, idx, total) for idx, item in runnable]
                    for future in as_completed(futures):
                        future.result()
            self.summary = self._summarize(time.perf_counter() - started)
            self.logger.log(
                f"Batch finished in {format_seconds(self.summary.elapsed_seconds)}: "
                + ", ".join(f"{status.label}={count}" for status, count in self.summary.counts.items())
            )
            for callback in list(self._complete_callbacks):
                callback(self.summary)
            return self.summary
        finally:
            self._running = False
            self.completed.set()

    def _reset_items(self) -> None:
        # Each run starts from what is on disk, not from the previous run's statuses.
        for item in self.items:
            item.failure = None
            item.failure_reason = None
            if item.status is not ItemStatus.PENDING:
                self.orchestrator.channel.publish(item, ItemStatus.PENDING)

    def _process_one(self, item: MediaItem, idx: int, total: int) -> None:
        if self._stop.is_set():
            return
        self.logger.log(f"[{idx}/{total}] {item.name}")
        try:
            self.orchestrator.process(item)
        except Exception as exc:  # pragma: no cover - defensive, orchestrator handles known failures
            item.failure = exc
            item.failure_reason = f"unexpected: {exc}"
            self.logger.log(f"[{idx}/{total}] {item.name} unexpected error: {exc}")
            self.orchestrator.channel.publish(item, ItemStatus.ERROR)

    def _reject_collisions(self) -> list[tuple[int, MediaItem]]:
        owners: dict[str, MediaItem] = {}
        runnable: list[tuple[int, MediaItem]] = []
        for idx, item in enumerate(self.items, start=1):
            paths = self.orchestrator.paths_for(item)
            keys = [("output", str(paths.output_path)), ("temp", str(paths.temp_dir))]
            clash = next(((label, owners[key]) for label, key in keys if key in owners), None)
            if clash is not None:
                label, owner = clash
                exc = PathCollisionError(
                    f"{label} path of {item.source} collides with {owner.source}; rename one of them"
                )
                item.failure = exc
                item.failure_reason = f"plan: {exc}"
                self.logger.for_item(item.name).log(str(exc))
                self.orchestrator.channel.publish(item, ItemStatus.ERROR)
                continue
            for _, key in keys:
                owners[key] = item
            runnable.append((idx, item))
        return runnable

    def _summarize(self, elapsed: float) -> BatchSummary:
        counts: dict[ItemStatus, int] = {}
        failures: list[tuple[Path, str]] = []
        for item in self.items:
            counts[item.status] = counts.get(item.status, 0) + 1
            if item.status is ItemStatus.ERROR:
                failures.append((item.source, item.failure_reason or "unknown error"))
        return BatchSummary(total=len(self.items), counts=counts, elapsed_seconds=elapsed, failures=failures)
