from __future__ import annotations

from pathlib import Path
from typing import Iterable

from .errors import AppError
from .models import MediaItem, MediaKind

SUPPORTED_AUDIO_EXTS = {".wav", ".mp3", ".m4a", ".flac", ".aac", ".ogg", ".opus"}
SUPPORTED_VIDEO_EXTS = {".mp4", ".mov", ".mkv", ".avi"}
SUPPORTED_MEDIA_EXTS = SUPPORTED_AUDIO_EXTS | SUPPORTED_VIDEO_EXTS
WAVEFORM_EXT = ".wav"
OUTPUT_DIR_NAME = "res"


class DiscoveryError(AppError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code=2)


def is_supported_media(path: Path) -> bool:
    return path.suffix.lower() in SUPPORTED_MEDIA_EXTS


def media_kind_for(path: Path) -> MediaKind:
    ext = path.suffix.lower()
    if ext in SUPPORTED_VIDEO_EXTS:
        return MediaKind.VIDEO
    if ext in SUPPORTED_AUDIO_EXTS:
        return MediaKind.AUDIO
    raise DiscoveryError(f"Unsupported media extension: {path.name}")


def _dedupe_keep_order(paths: Iterable[Path]) -> list[Path]:
    seen: set[str] = set()
    out: list[Path] = []
    for path in paths:
        key = str(path.resolve()).lower()
        if key not in seen:
            seen.add(key)
            out.append(path.resolve())
    return out


def _is_candidate(path: Path, root: Path) -> bool:
    rel_parts = path.relative_to(root).parts
    if any(part.startswith(".") for part in rel_parts) or not path.is_file():
        return False
    # Never pick up our own burned outputs.
    if OUTPUT_DIR_NAME in rel_parts[:-1]:
        return False
    return is_supported_media(path)


def collect_media_files(folder: Path, recursive: bool = False) -> list[Path]:
    root = folder.resolve()
    if not root.exists() or not root.is_dir():
        raise DiscoveryError(f"Input folder not found: {root}")

    candidates = root.rglob("*") if recursive else root.iterdir()
    found = [item for item in candidates if _is_candidate(item, root)]
    return _dedupe_keep_order(sorted(found, key=lambda p: str(p).lower()))


def build_items(paths: Iterable[Path]) -> list[MediaItem]:
    return [MediaItem(source=path.resolve(), kind=media_kind_for(path)) for path in paths]
