from __future__ import annotations

import os
from pathlib import Path

from .errors import FilesystemError
from .models import DerivedPaths, StagePlan


def path_exists(path: Path) -> bool:
    """True/False only when existence is certain; anything else is a FilesystemError."""
    try:
        os.stat(path)
    except (FileNotFoundError, NotADirectoryError):
        return False
    except OSError as exc:
        raise FilesystemError(f"Cannot determine whether {path} exists: {exc}") from exc
    return True


def plan_stages(paths: DerivedPaths) -> StagePlan:
    if path_exists(paths.output_path):
        return StagePlan(skip=True)
    if path_exists(paths.subtitle_path):
        return StagePlan(skip=False, needs_normalize=False, needs_transcribe=False)
    return StagePlan(
        skip=False,
        needs_normalize=paths.needs_waveform_conversion,
        needs_transcribe=True,
    )
