from __future__ import annotations

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any

from .errors import AppError
from .models import QualityConfig, ToolPaths

X264_PRESETS = (
    "ultrafast",
    "superfast",
    "veryfast",
    "faster",
    "fast",
    "medium",
    "slow",
    "slower",
    "veryslow",
    "placebo",
)
DEFAULT_MODEL_NAME = "ggml-small.bin"
TOOL_ENV_VARS = {
    "ffmpeg": "SUBBURN_FFMPEG",
    "ffprobe": "SUBBURN_FFPROBE",
    "whisper": "SUBBURN_WHISPER",
    "whisper_model": "SUBBURN_WHISPER_MODEL",
}


class ConfigError(AppError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code=3)


def read_json_config(config_path: Path) -> dict:
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8-sig"))
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Invalid JSON config: {config_path} | {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Config root must be object: {config_path}")
    return raw


def validate_quality(cfg: QualityConfig) -> QualityConfig:
    if not 0 <= cfg.crf <= 51:
        raise ConfigError(f"crf must be between 0 and 51, got {cfg.crf}")
    if cfg.preset not in X264_PRESETS:
        raise ConfigError(f"Unknown encoder preset {cfg.preset!r}; expected one of {', '.join(X264_PRESETS)}")
    if cfg.target_height <= 0 or cfg.target_height % 2:
        raise ConfigError(f"Target height must be a positive even number, got {cfg.target_height}")
    return cfg


def load_quality_config(config_path: Path | None = None, **overrides: Any) -> QualityConfig:
    defaults = QualityConfig()
    section: dict = {}
    if config_path is not None:
        raw = read_json_config(config_path)
        section = raw.get("quality", raw)
        if not isinstance(section, dict):
            raise ConfigError(f"Invalid quality config object: {config_path}")

    merged = {
        "crf": section.get("crf", defaults.crf),
        "preset": section.get("preset", defaults.preset),
        "target_height": section.get("target_height", defaults.target_height),
    }
    for key, value in overrides.items():
        if key not in merged:
            raise ConfigError(f"Unknown quality setting: {key}")
        if value is not None:
            merged[key] = value

    try:
        cfg = QualityConfig(
            crf=int(merged["crf"]),
            preset=str(merged["preset"]).strip().lower(),
            target_height=int(merged["target_height"]),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid quality settings {merged}: {exc}") from exc
    return validate_quality(cfg)


def _resolve_executable(explicit: str | None, env_var: str, tools_dir: Path | None, name: str) -> str:
    if explicit:
        return explicit
    from_env = os.getenv(env_var, "").strip()
    if from_env:
        return from_env
    if tools_dir is not None:
        bundled = tools_dir / name
        if bundled.is_file() and os.access(bundled, os.X_OK):
            return str(bundled.resolve())
    return shutil.which(name) or name


def resolve_tool_paths(
    tools_dir: Path | None = None,
    ffmpeg: str | None = None,
    ffprobe: str | None = None,
    whisper: str | None = None,
    whisper_model: str | None = None,
) -> ToolPaths:
    model = whisper_model or os.getenv(TOOL_ENV_VARS["whisper_model"], "").strip()
    if not model:
        bundled_model = tools_dir / DEFAULT_MODEL_NAME if tools_dir is not None else None
        model = str(bundled_model.resolve()) if bundled_model is not None and bundled_model.exists() else DEFAULT_MODEL_NAME
    return ToolPaths(
        ffmpeg=_resolve_executable(ffmpeg, TOOL_ENV_VARS["ffmpeg"], tools_dir, "ffmpeg"),
        ffprobe=_resolve_executable(ffprobe, TOOL_ENV_VARS["ffprobe"], tools_dir, "ffprobe"),
        whisper=_resolve_executable(whisper, TOOL_ENV_VARS["whisper"], tools_dir, "whisper"),
        whisper_model=model,
    )


def default_temp_root() -> Path:
    return Path(tempfile.gettempdir()) / "subburn"
