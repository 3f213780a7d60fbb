from __future__ import annotations

import os
import shutil
from functools import partial
from pathlib import Path
from typing import Callable

from .commands import STAGE_BURN, STAGE_NORMALIZE, STAGE_TRANSCRIBE, CommandBuilder, ToolCommand
from .errors import AppError, FilesystemError
from .events import StatusChannel
from .ffmpeg_utils import probe_duration_seconds
from .models import DerivedPaths, ItemStatus, MediaItem, MediaKind
from .paths import resolve_paths
from .process_runner import ProcessRunner
from .progress_log import ProgressLogger
from .stage_planner import path_exists, plan_stages

STAGE_PLAN = "plan"

DurationProbe = Callable[[Path], float]


class PipelineOrchestrator:
    """Runs normalize -> transcribe -> burn for one file, skipping what is already on disk.

    Every failure is turned into the ERROR status of that file; ``process``
    itself does not raise for per-file problems.
    """

    def __init__(
        self,
        builder: CommandBuilder,
        runner: ProcessRunner,
        temp_root: Path,
        channel: StatusChannel | None = None,
        logger: ProgressLogger | None = None,
        probe_duration: DurationProbe | None = None,
        keep_temp: bool = False,
    ) -> None:
        self.builder = builder
        self.runner = runner
        self.temp_root = temp_root
        self.channel = channel or StatusChannel()
        self.logger = logger or ProgressLogger(enabled=False)
        self.probe_duration = probe_duration or partial(probe_duration_seconds, ffprobe=builder.tools.ffprobe)
        self.keep_temp = keep_temp

    def paths_for(self, item: MediaItem) -> DerivedPaths:
        return resolve_paths(item.source, self.temp_root)

    def process(self, item: MediaItem) -> ItemStatus:
        paths = self.paths_for(item)
        stage = STAGE_PLAN
        try:
            plan = plan_stages(paths)
            if plan.skip:
                self.logger.for_item(item.name).log(f"output exists, skipping: {paths.output_path}")
                self.channel.publish(item, ItemStatus.SKIPPED_ALREADY_DONE)
                return item.status

            if plan.needs_normalize:
                stage = STAGE_NORMALIZE
                self.channel.publish(item, ItemStatus.CONVERTING)
                self._make_dir(paths.temp_dir)
                self._run(self.builder.normalize(paths.source, paths.waveform_path), item)
                self._expect_artifact(paths.waveform_path, stage)

            if plan.needs_transcribe:
                stage = STAGE_TRANSCRIBE
                self.channel.publish(item, ItemStatus.TRANSCRIBING)
                self._make_dir(paths.temp_dir)
                self._run(self.builder.transcribe(paths.waveform_path, paths.transcript_prefix), item)
                self._expect_artifact(paths.temp_transcript_path, stage)
                self._replace_subtitle(paths)
            else:
                self.logger.for_item(item.name).log(f"reusing subtitle {paths.subtitle_path.name}")

            stage = STAGE_BURN
            self.channel.publish(item, ItemStatus.BURNING_SUBTITLES)
            self._burn(item, paths)
        except (AppError, OSError) as exc:
            self._fail(item, paths, stage, exc)
            return item.status
        finally:
            self._cleanup_temp(paths)

        self.logger.for_item(item.name).log(f"done -> {paths.output_path}")
        self.channel.publish(item, ItemStatus.DONE)
        return item.status

    def _run(self, command: ToolCommand, item: MediaItem) -> None:
        self.logger.for_item(item.name).log(f"{command.stage}: {Path(command.executable).name}")
        self.runner.run(command.executable, command.args, command.stage)

    def _burn(self, item: MediaItem, paths: DerivedPaths) -> None:
        self._make_dir(paths.output_dir)
        duration = None
        if item.kind is MediaKind.AUDIO:
            duration = self.probe_duration(paths.source)
            self.logger.for_item(item.name).log(f"audio duration {duration:.3f}s, rendering canvas")
        partial_out = paths.partial_output_path
        partial_out.unlink(missing_ok=True)
        self._run(self.builder.burn(item, paths, partial_out, duration_seconds=duration), item)
        self._expect_artifact(partial_out, STAGE_BURN)
        os.replace(partial_out, paths.output_path)

    def _replace_subtitle(self, paths: DerivedPaths) -> None:
        target = paths.subtitle_path
        staged = target.with_name(f"{target.name}.part")
        staged.unlink(missing_ok=True)
        # Stale subtitle goes first so a concurrent resume never sees a half-written file.
        target.unlink(missing_ok=True)
        shutil.move(str(paths.temp_transcript_path), str(staged))
        os.replace(staged, target)

    @staticmethod
    def _make_dir(path: Path) -> None:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FilesystemError(f"Cannot create directory {path}: {exc}") from exc

    @staticmethod
    def _expect_artifact(path: Path, stage: str) -> None:
        if not path_exists(path):
            raise FilesystemError(f"{stage}: expected output was not produced: {path}")

    def _fail(self, item: MediaItem, paths: DerivedPaths, stage: str, exc: Exception) -> None:
        reason = str(exc)
        if not reason.startswith(f"{stage}:"):
            reason = f"{stage}: {reason}"
        item.failure = exc
        item.failure_reason = reason
        try:
            paths.partial_output_path.unlink(missing_ok=True)
        except OSError as cleanup_exc:
            self.logger.for_item(item.name).log(f"could not remove partial output: {cleanup_exc}")
        self.logger.for_item(item.name).log(f"failed: {reason}")
        self.channel.publish(item, ItemStatus.ERROR)

    def _cleanup_temp(self, paths: DerivedPaths) -> None:
        if self.keep_temp or not paths.temp_dir.exists():
            return
        shutil.rmtree(paths.temp_dir, ignore_errors=True)
