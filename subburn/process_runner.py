from __future__ import annotations

import subprocess
import threading
from pathlib import Path

from .errors import AppError, PipelineCancelled


class ExternalToolError(AppError):
    def __init__(self, stage: str, tool: str, exit_code: int | None, detail: str = "") -> None:
        if exit_code is None:
            message = f"{stage}: failed to start {tool}"
        else:
            message = f"{stage}: {tool} exited with code {exit_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, code=5)
        self.stage = stage
        self.tool = tool
        self.exit_code = exit_code
        self.detail = detail


def _stderr_tail(raw: str | None, max_lines: int = 5) -> str:
    lines = [line.strip() for line in (raw or "").splitlines() if line.strip()]
    return " | ".join(lines[-max_lines:])


class ProcessRunner:
    """Runs one external command to completion on the calling thread.

    Several worker threads may call ``run`` at once; ``cancel`` terminates
    every process that is still in flight.
    """

    def __init__(self, terminate_grace_seconds: float = 5.0) -> None:
        self.terminate_grace_seconds = terminate_grace_seconds
        self._lock = threading.Lock()
        self._active: set[subprocess.Popen[str]] = set()
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def reset(self) -> None:
        self._cancelled.clear()

    def run(self, executable: str, args: list[str], stage: str) -> None:
        if self._cancelled.is_set():
            raise PipelineCancelled(f"{stage}: not started, processing was stopped")

        tool = Path(executable).name
        try:
            proc = subprocess.Popen(
                [executable, *args],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as exc:
            raise ExternalToolError(stage, tool, None, str(exc)) from exc

        with self._lock:
            self._active.add(proc)
        try:
            # cancel() may have fired between the check above and registration.
            if self._cancelled.is_set():
                self._terminate(proc)
            _, stderr = proc.communicate()
        finally:
            with self._lock:
                self._active.discard(proc)

        if proc.returncode == 0:
            return
        if self._cancelled.is_set():
            raise PipelineCancelled(f"{stage}: {tool} was terminated because processing was stopped")
        raise ExternalToolError(stage, tool, proc.returncode, _stderr_tail(stderr))

    def _terminate(self, proc: subprocess.Popen[str]) -> None:
        if proc.poll() is not None:
            return
        proc.terminate()
        try:
            proc.wait(timeout=self.terminate_grace_seconds)
        except subprocess.TimeoutExpired:
            proc.kill()

    def cancel(self) -> None:
        self._cancelled.set()
        with self._lock:
            active = list(self._active)
        for proc in active:
            try:
                self._terminate(proc)
            except OSError:
                # Already reaped by its own worker thread.
                continue
