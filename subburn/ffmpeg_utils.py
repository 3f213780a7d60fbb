from __future__ import annotations

import math
import subprocess
import wave
from pathlib import Path

from .errors import AppError

# Characters the subtitles filter treats as option/graph delimiters.
FILTER_SPECIAL_CHARS = {"\\", ":", ",", "[", "]", "'"}


class DurationProbeError(AppError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code=7)


def escape_filter_path(path: Path | str) -> str:
    out: list[str] = []
    for ch in str(path):
        if ch in FILTER_SPECIAL_CHARS:
            out.append("\\" + ch)
        elif ch == " ":
            out.append("\\ ")
        else:
            out.append(ch)
    return "".join(out)


def unescape_filter_path(escaped: str) -> str:
    out: list[str] = []
    chars = iter(escaped)
    for ch in chars:
        if ch == "\\":
            out.append(next(chars, "\\"))
        else:
            out.append(ch)
    return "".join(out)


def round_even(value: float) -> int:
    return max(2, int(math.floor(value / 2.0 + 0.5)) * 2)


def canvas_size(target_height: int) -> tuple[int, int]:
    return round_even(target_height * 16 / 9), target_height


def _wav_duration_seconds(path: Path) -> float | None:
    try:
        with wave.open(str(path), "rb") as wf:
            rate = wf.getframerate()
            frames = wf.getnframes()
    except (wave.Error, EOFError):
        # Non-PCM wav (float, extensible); let ffprobe handle it.
        return None
    except OSError as exc:
        raise DurationProbeError(f"Failed to read wav header for {path}: {exc}") from exc
    if rate <= 0:
        return None
    return frames / float(rate)


def probe_duration_seconds(path: Path, ffprobe: str = "ffprobe") -> float:
    if path.suffix.lower() == ".wav":
        seconds = _wav_duration_seconds(path)
        if seconds is not None and seconds > 0:
            return seconds

    cmd = [
        ffprobe,
        "-v",
        "error",
        "-show_entries",
        "format=duration",
        "-of",
        "default=noprint_wrappers=1:nokey=1",
        str(path),
    ]
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, check=False)
    except OSError as exc:
        raise DurationProbeError(f"Failed to probe duration for {path}: {exc}") from exc
    if proc.returncode != 0:
        raise DurationProbeError(f"ffprobe failed for {path}: {(proc.stderr or proc.stdout or '').strip()}")
    try:
        seconds = float((proc.stdout or "").strip())
    except ValueError as exc:
        raise DurationProbeError(f"Unable to parse duration from ffprobe for {path}") from exc
    if not math.isfinite(seconds) or seconds <= 0:
        raise DurationProbeError(f"ffprobe reported no usable duration for {path}: {seconds}")
    return seconds
