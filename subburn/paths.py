from __future__ import annotations

import hashlib
from pathlib import Path

from .file_discovery import OUTPUT_DIR_NAME, WAVEFORM_EXT
from .models import DerivedPaths


def temp_namespace(source: Path) -> str:
    """Stable per-source directory name so same-named files from different folders never share temp artifacts."""
    return hashlib.sha1(str(source.absolute()).encode("utf-8")).hexdigest()[:12]


def resolve_paths(source: Path, temp_root: Path) -> DerivedPaths:
    base = source.stem
    temp_dir = temp_root / temp_namespace(source)
    if source.suffix.lower() == WAVEFORM_EXT:
        waveform_path = source
    else:
        waveform_path = temp_dir / f"{base}{WAVEFORM_EXT}"
    output_dir = source.parent / OUTPUT_DIR_NAME
    return DerivedPaths(
        source=source,
        temp_dir=temp_dir,
        waveform_path=waveform_path,
        transcript_prefix=temp_dir / base,
        subtitle_path=source.with_suffix(".srt"),
        output_dir=output_dir,
        output_path=output_dir / f"{base}_subbed.mp4",
    )
