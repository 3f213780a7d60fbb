from __future__ import annotations

import argparse
import signal
import threading
from pathlib import Path

from .batch import BatchDriver
from .commands import CommandBuilder
from .config import default_temp_root, load_quality_config, resolve_tool_paths
from .errors import AppError
from .events import StatusChannel
from .file_discovery import DiscoveryError, build_items, collect_media_files
from .models import ItemStatus, MediaItem
from .pipeline import PipelineOrchestrator
from .process_runner import ProcessRunner
from .progress_log import ProgressLogger


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Transcribe media files and burn the subtitles into res/<name>_subbed.mp4")
    p.add_argument("folder", help="Folder with video/audio files")
    p.add_argument("--recursive", action="store_true", help="Also scan subfolders (res/ output folders are ignored)")
    p.add_argument("--workers", type=int, default=1, help="Files processed in parallel (default: 1)")
    p.add_argument("--config", help="JSON config with a 'quality' object (crf, preset, target_height)")
    p.add_argument("--crf", type=int, help="x264 rate factor, lower = better quality (default: 24)")
    p.add_argument("--preset", help="x264 preset (default: slow)")
    p.add_argument("--height", type=int, dest="target_height", help="Output video height (default: 720)")
    p.add_argument("--tools-dir", help="Folder holding bundled ffmpeg/ffprobe/whisper and the model")
    p.add_argument("--ffmpeg", help="ffmpeg executable (env: SUBBURN_FFMPEG)")
    p.add_argument("--ffprobe", help="ffprobe executable (env: SUBBURN_FFPROBE)")
    p.add_argument("--whisper", help="whisper.cpp CLI executable (env: SUBBURN_WHISPER)")
    p.add_argument("--model", help="whisper model file (env: SUBBURN_WHISPER_MODEL)")
    p.add_argument("--temp-dir", help="Directory for intermediate wav/srt files")
    p.add_argument("--keep-temp", action="store_true", help="Keep intermediate files after each file finishes")
    p.add_argument("--log_file", help="Progress log file path")
    p.add_argument("--quiet", action="store_true", help="Disable stdout progress logs (file logs still enabled)")
    return p


def _status_printer(progress: ProgressLogger):
    def _print(item: MediaItem, status: ItemStatus) -> None:
        line = f"{item.name}: {status.label}"
        if status is ItemStatus.ERROR and item.failure_reason:
            line = f"{line} ({item.failure_reason})"
        progress.log(line)

    return _print


def build_driver(args: argparse.Namespace, progress: ProgressLogger) -> BatchDriver:
    folder = Path(args.folder).resolve()
    quality = load_quality_config(
        Path(args.config).resolve() if args.config else None,
        crf=args.crf,
        preset=args.preset,
        target_height=args.target_height,
    )
    tools = resolve_tool_paths(
        tools_dir=Path(args.tools_dir).resolve() if args.tools_dir else None,
        ffmpeg=args.ffmpeg,
        ffprobe=args.ffprobe,
        whisper=args.whisper,
        whisper_model=args.model,
    )
    temp_root = Path(args.temp_dir).resolve() if args.temp_dir else default_temp_root()
    items = build_items(collect_media_files(folder, recursive=args.recursive))
    if not items:
        raise DiscoveryError(f"No supported media files found in {folder}")

    progress.log(
        f"Found {len(items)} file(s) in {folder} crf={quality.crf} preset={quality.preset} "
        f"height={quality.target_height} whisper={tools.whisper} model={tools.whisper_model}"
    )
    channel = StatusChannel(logger=progress)
    channel.subscribe(_status_printer(progress))
    orchestrator = PipelineOrchestrator(
        builder=CommandBuilder(tools, quality),
        runner=ProcessRunner(),
        temp_root=temp_root,
        channel=channel,
        logger=progress,
        keep_temp=args.keep_temp,
    )
    return BatchDriver(items, orchestrator, workers=args.workers, logger=progress)


def install_stop_handler(driver: BatchDriver):
    """Route Ctrl-C to ``driver.stop()``; returns the previous handler, or None if not installed."""
    if threading.current_thread() is not threading.main_thread():
        return None

    def _on_sigint(signum, frame) -> None:
        driver.stop()

    return signal.signal(signal.SIGINT, _on_sigint)


def run_pipeline(args: argparse.Namespace) -> int:
    log_file = Path(args.log_file).resolve() if args.log_file else None
    progress = ProgressLogger(enabled=not args.quiet, log_file=log_file)
    try:
        driver = build_driver(args, progress)
    except AppError as exc:
        progress.log(str(exc))
        raise SystemExit(exc.code) from exc

    previous = install_stop_handler(driver)
    try:
        driver.start()
        while not driver.wait(0.5):
            pass
    finally:
        if previous is not None:
            signal.signal(signal.SIGINT, previous)

    summary = driver.summary
    if summary is None:
        return 1
    for source, reason in summary.failures:
        progress.log(f"FAILED {source.name}: {reason}")
    if summary.abandoned:
        progress.log(f"{summary.abandoned} file(s) not started; run again to resume")
    return 0 if summary.ok else 1


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    return run_pipeline(args)


if __name__ == "__main__":
    raise SystemExit(main())
