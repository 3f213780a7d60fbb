from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .ffmpeg_utils import canvas_size, escape_filter_path
from .models import BurnStyle, DerivedPaths, MediaItem, MediaKind, QualityConfig, ToolPaths

STAGE_NORMALIZE = "normalize"
STAGE_TRANSCRIBE = "transcribe"
STAGE_BURN = "burn"

WAVEFORM_SAMPLE_RATE = 16000


@dataclass(frozen=True)
class ToolCommand:
    stage: str
    executable: str
    args: list[str]

    @property
    def argv(self) -> list[str]:
        return [self.executable, *self.args]


class CommandBuilder:
    """Builds the exact argument lists for the three external invocations of one file."""

    def __init__(
        self,
        tools: ToolPaths,
        quality: QualityConfig,
        style: BurnStyle | None = None,
    ) -> None:
        self.tools = tools
        self.quality = quality
        self.style = style or BurnStyle()

    def normalize(self, source: Path, waveform_path: Path) -> ToolCommand:
        return ToolCommand(
            stage=STAGE_NORMALIZE,
            executable=self.tools.ffmpeg,
            args=[
                "-y",
                "-i",
                str(source),
                "-ar",
                str(WAVEFORM_SAMPLE_RATE),
                "-ac",
                "1",
                "-c:a",
                "pcm_s16le",
                str(waveform_path),
            ],
        )

    def transcribe(self, waveform_path: Path, transcript_prefix: Path) -> ToolCommand:
        # The engine appends ".srt" to the -of prefix itself.
        return ToolCommand(
            stage=STAGE_TRANSCRIBE,
            executable=self.tools.whisper,
            args=[
                "-m",
                self.tools.whisper_model,
                "-f",
                str(waveform_path),
                "-osrt",
                "-l",
                "auto",
                "-of",
                str(transcript_prefix),
            ],
        )

    def _encode_args(self) -> list[str]:
        return [
            "-c:v",
            self.style.video_codec,
            "-preset",
            self.quality.preset,
            "-crf",
            str(self.quality.crf),
            "-c:a",
            self.style.audio_codec,
            "-b:a",
            self.style.audio_bitrate,
        ]

    def _force_style(self) -> str:
        return f"force_style='Fontsize={self.style.font_size},PrimaryColour={self.style.primary_colour}'"

    def video_filter(self, subtitle_path: Path) -> str:
        escaped = escape_filter_path(subtitle_path)
        return f"subtitles='{escaped}',scale=-2:{self.quality.target_height}"

    def audio_filter(self, subtitle_path: Path) -> str:
        escaped = escape_filter_path(subtitle_path)
        return f"subtitles='{escaped}':{self._force_style()}"

    def canvas_source(self, duration_seconds: float) -> str:
        width, height = canvas_size(self.quality.target_height)
        return f"color=size={width}x{height}:color={self.style.canvas_color}:duration={duration_seconds:.3f}"

    def burn_video(self, source: Path, subtitle_path: Path, output_path: Path) -> ToolCommand:
        return ToolCommand(
            stage=STAGE_BURN,
            executable=self.tools.ffmpeg,
            args=[
                "-y",
                "-i",
                str(source),
                "-vf",
                self.video_filter(subtitle_path),
                *self._encode_args(),
                str(output_path),
            ],
        )

    def burn_audio(
        self,
        source: Path,
        subtitle_path: Path,
        output_path: Path,
        duration_seconds: float,
    ) -> ToolCommand:
        return ToolCommand(
            stage=STAGE_BURN,
            executable=self.tools.ffmpeg,
            args=[
                "-y",
                "-f",
                "lavfi",
                "-i",
                self.canvas_source(duration_seconds),
                "-i",
                str(source),
                "-vf",
                self.audio_filter(subtitle_path),
                "-map",
                "0:v:0",
                "-map",
                "1:a:0",
                "-shortest",
                *self._encode_args(),
                str(output_path),
            ],
        )

    def burn(
        self,
        item: MediaItem,
        paths: DerivedPaths,
        output_path: Path,
        duration_seconds: float | None = None,
    ) -> ToolCommand:
        if item.kind is MediaKind.AUDIO:
            if duration_seconds is None:
                raise ValueError(f"Audio input {item.name} needs a probed duration to build the canvas")
            return self.burn_audio(paths.source, paths.subtitle_path, output_path, duration_seconds)
        return self.burn_video(paths.source, paths.subtitle_path, output_path)
