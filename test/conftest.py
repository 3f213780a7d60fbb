from __future__ import annotations

import threading
import wave
from pathlib import Path

import numpy as np
import pytest

from subburn.commands import STAGE_BURN, STAGE_NORMALIZE, STAGE_TRANSCRIBE, CommandBuilder
from subburn.events import StatusChannel
from subburn.models import QualityConfig, ToolPaths
from subburn.pipeline import PipelineOrchestrator
from subburn.process_runner import ExternalToolError, ProcessRunner

FAKE_SRT = "1\n00:00:00,000 --> 00:00:01,500\nhello there\n"


class FakeRunner(ProcessRunner):
    """Records invocations and writes the artifact each real tool would produce."""

    def __init__(self, fail: dict[tuple[str, str], int] | None = None) -> None:
        super().__init__()
        self.fail = fail or {}
        self.calls: list[tuple[str, str, list[str]]] = []
        self._calls_lock = threading.Lock()

    def run(self, executable: str, args: list[str], stage: str) -> None:
        with self._calls_lock:
            self.calls.append((stage, executable, list(args)))
        for (fail_stage, needle), code in self.fail.items():
            if fail_stage == stage and any(needle in arg for arg in args):
                raise ExternalToolError(stage, Path(executable).name, code, "simulated failure")
        if stage == STAGE_NORMALIZE or stage == STAGE_BURN:
            out = Path(args[-1])
            out.write_bytes(b"media")
        elif stage == STAGE_TRANSCRIBE:
            prefix = Path(args[args.index("-of") + 1])
            prefix.with_name(prefix.name + ".srt").write_text(FAKE_SRT, encoding="utf-8")

    def stages(self) -> list[str]:
        return [stage for stage, _, _ in self.calls]


class StatusRecorder:
    def __init__(self) -> None:
        self.events: dict[str, list] = {}
        self._lock = threading.Lock()

    def __call__(self, item, status) -> None:
        with self._lock:
            self.events.setdefault(item.name, []).append(status)


@pytest.fixture
def tools() -> ToolPaths:
    return ToolPaths(ffmpeg="ffmpeg", ffprobe="ffprobe", whisper="whisper-cli", whisper_model="/models/ggml-small.bin")


@pytest.fixture
def builder(tools: ToolPaths) -> CommandBuilder:
    return CommandBuilder(tools, QualityConfig())


@pytest.fixture
def media_dir(tmp_path: Path) -> Path:
    folder = tmp_path / "media"
    folder.mkdir()
    return folder


@pytest.fixture
def temp_root(tmp_path: Path) -> Path:
    return tmp_path / "tmp"


@pytest.fixture
def recorder() -> StatusRecorder:
    return StatusRecorder()


@pytest.fixture
def make_orchestrator(builder: CommandBuilder, temp_root: Path, recorder: StatusRecorder):
    def _make(runner: ProcessRunner, probe=None, keep_temp: bool = False) -> PipelineOrchestrator:
        channel = StatusChannel()
        channel.subscribe(recorder)
        return PipelineOrchestrator(
            builder=builder,
            runner=runner,
            temp_root=temp_root,
            channel=channel,
            probe_duration=probe or (lambda path: 12.5),
            keep_temp=keep_temp,
        )

    return _make


def write_tone_wav(path: Path, seconds: float, sr: int = 16000) -> Path:
    samples = int(seconds * sr)
    t = np.linspace(0, seconds, samples, endpoint=False)
    pcm = np.clip(0.2 * np.sin(2 * np.pi * 440.0 * t) * 32767.0, -32768, 32767).astype(np.int16)
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sr)
        wf.writeframes(pcm.tobytes())
    return path
