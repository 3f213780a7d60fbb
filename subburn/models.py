from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class MediaKind(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"


class ItemStatus(str, Enum):
    PENDING = "pending"
    CONVERTING = "converting"
    TRANSCRIBING = "transcribing"
    BURNING_SUBTITLES = "burning_subtitles"
    DONE = "done"
    SKIPPED_ALREADY_DONE = "skipped_already_done"
    ERROR = "error"

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


_STATUS_LABELS = {
    ItemStatus.PENDING: "Pending",
    ItemStatus.CONVERTING: "Converting audio",
    ItemStatus.TRANSCRIBING: "Transcribing",
    ItemStatus.BURNING_SUBTITLES: "Burning subtitles",
    ItemStatus.DONE: "Done → res/",
    ItemStatus.SKIPPED_ALREADY_DONE: "Skipped (already done)",
    ItemStatus.ERROR: "Error",
}

TERMINAL_STATUSES = frozenset({ItemStatus.DONE, ItemStatus.SKIPPED_ALREADY_DONE, ItemStatus.ERROR})


@dataclass
class MediaItem:
    source: Path
    kind: MediaKind
    status: ItemStatus = ItemStatus.PENDING
    failure: Exception | None = field(default=None, repr=False)
    failure_reason: str | None = None

    @property
    def name(self) -> str:
        return self.source.name


@dataclass(frozen=True)
class DerivedPaths:
    source: Path
    temp_dir: Path
    waveform_path: Path
    transcript_prefix: Path
    subtitle_path: Path
    output_dir: Path
    output_path: Path

    @property
    def base_name(self) -> str:
        return self.source.stem

    @property
    def temp_transcript_path(self) -> Path:
        return self.transcript_prefix.with_name(f"{self.transcript_prefix.name}.srt")

    @property
    def partial_output_path(self) -> Path:
        return self.output_dir / f".{self.base_name}_subbed.partial.mp4"

    @property
    def needs_waveform_conversion(self) -> bool:
        return self.waveform_path != self.source


@dataclass(frozen=True)
class StagePlan:
    skip: bool
    needs_normalize: bool = False
    needs_transcribe: bool = False

    @property
    def needs_burn(self) -> bool:
        return not self.skip


@dataclass(frozen=True)
class QualityConfig:
    crf: int = 24
    preset: str = "slow"
    target_height: int = 720


@dataclass(frozen=True)
class BurnStyle:
    font_size: int = 24
    primary_colour: str = "&H00FFFFFF"
    canvas_color: str = "black"
    video_codec: str = "libx264"
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"


@dataclass(frozen=True)
class ToolPaths:
    ffmpeg: str = "ffmpeg"
    ffprobe: str = "ffprobe"
    whisper: str = "whisper"
    whisper_model: str = "ggml-small.bin"
