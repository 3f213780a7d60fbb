from __future__ import annotations

import threading
from datetime import datetime
from pathlib import Path


class ProgressLogger:
    def __init__(self, enabled: bool = True, log_file: Path | None = None) -> None:
        self.enabled = enabled
        self.log_file = log_file
        self._lock = threading.Lock()
        if self.log_file is not None:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            self.log_file.write_text("", encoding="utf-8")

    def log(self, message: str) -> None:
        line = f"[{datetime.now().strftime('%H:%M:%S')}] {message}"
        # Worker threads log concurrently; keep lines whole.
        with self._lock:
            if self.enabled:
                print(line, flush=True)
            if self.log_file is not None:
                with self.log_file.open("a", encoding="utf-8") as f:
                    f.write(line + "\n")

    def for_item(self, name: str) -> ItemLogger:
        return ItemLogger(self, name)


class ItemLogger:
    """Tags every line with the media file it concerns, so interleaved worker output stays readable."""

    def __init__(self, parent: ProgressLogger, name: str) -> None:
        self.parent = parent
        self.name = name

    def log(self, message: str) -> None:
        self.parent.log(f"[{self.name}] {message}")


def format_seconds(sec: float) -> str:
    sec = max(0, int(round(sec)))
    m, s = divmod(sec, 60)
    h, m = divmod(m, 60)
    if h > 0:
        return f"{h:02d}:{m:02d}:{s:02d}"
    return f"{m:02d}:{s:02d}"
