import threading
from pathlib import Path

import pytest

from conftest import FakeRunner
from subburn.batch import BatchDriver, PathCollisionError
from subburn.commands import STAGE_BURN, STAGE_TRANSCRIBE
from subburn.errors import PipelineCancelled
from subburn.file_discovery import DiscoveryError, build_items
from subburn.models import ItemStatus, MediaItem, MediaKind

S = ItemStatus


def _files(folder: Path, *names: str) -> list[MediaItem]:
    paths = []
    for name in names:
        path = folder / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"source")
        paths.append(path)
    return build_items(paths)


class BlockingRunner(FakeRunner):
    """Blocks every invocation until released or cancelled."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def run(self, executable, args, stage):
        if self.cancelled:
            raise PipelineCancelled(f"{stage}: not started")
        self.entered.set()
        while not self.release.wait(0.01):
            if self.cancelled:
                raise PipelineCancelled(f"{stage}: terminated")
        super().run(executable, args, stage)


def test_one_failure_does_not_affect_others(media_dir, make_orchestrator):
    items = _files(media_dir, "a.mp4", "b.mp4", "c.wav")
    runner = FakeRunner(fail={(STAGE_TRANSCRIBE, "b.wav"): 1})
    driver = BatchDriver(items, make_orchestrator(runner))

    summary = driver.run()

    assert driver.status_of(items[0].source) is S.DONE
    assert driver.status_of(items[1].source) is S.ERROR
    assert driver.status_of(items[2].source) is S.DONE
    assert summary.errors == 1
    assert summary.failures[0][0] == items[1].source
    assert "transcribe" in summary.failures[0][1]
    assert not summary.ok
    assert driver.completed.is_set()


def test_parallel_workers_process_everything(media_dir, make_orchestrator, recorder):
    names = [f"clip{i}.mp4" for i in range(6)]
    items = _files(media_dir, *names)
    runner = FakeRunner()
    driver = BatchDriver(items, make_orchestrator(runner), workers=3)

    summary = driver.run()

    assert summary.ok
    assert summary.counts == {S.DONE: 6}
    for name in names:
        assert recorder.events[name] == [S.CONVERTING, S.TRANSCRIBING, S.BURNING_SUBTITLES, S.DONE]
        assert (media_dir / "res" / name.replace(".mp4", "_subbed.mp4")).exists()
    assert runner.stages().count(STAGE_BURN) == 6


def test_same_output_path_is_rejected_up_front(media_dir, make_orchestrator):
    items = _files(media_dir, "talk.mov", "talk.mp4")
    runner = FakeRunner()
    driver = BatchDriver(items, make_orchestrator(runner), workers=2)

    summary = driver.run()

    assert items[0].status is S.DONE
    assert items[1].status is S.ERROR
    assert isinstance(items[1].failure, PathCollisionError)
    assert summary.counts == {S.DONE: 1, S.ERROR: 1}
    assert all(str(items[1].source) not in " ".join(args) for _, _, args in runner.calls)


def test_same_basename_in_subfolders_is_fine(media_dir, make_orchestrator):
    items = _files(media_dir, "a/intro.mp4", "b/intro.mp4")
    summary = BatchDriver(items, make_orchestrator(FakeRunner()), workers=2).run()
    assert summary.counts == {S.DONE: 2}
    assert (media_dir / "a" / "res" / "intro_subbed.mp4").exists()
    assert (media_dir / "b" / "res" / "intro_subbed.mp4").exists()


def test_duplicate_sources_are_rejected(media_dir, make_orchestrator):
    items = _files(media_dir, "a.mp4")
    with pytest.raises(DiscoveryError):
        BatchDriver([items[0], MediaItem(source=items[0].source, kind=MediaKind.VIDEO)], make_orchestrator(FakeRunner()))


def test_start_returns_immediately_and_signals_completion(media_dir, make_orchestrator):
    items = _files(media_dir, "a.mp4", "b.mp3")
    runner = BlockingRunner()
    driver = BatchDriver(items, make_orchestrator(runner))
    summaries = []
    driver.on_complete(summaries.append)

    assert driver.start()
    assert runner.entered.wait(5)
    assert driver.is_processing
    assert not driver.start()
    assert driver.status_of(items[0].source) is S.CONVERTING
    assert driver.status_of(items[1].source) is S.PENDING

    runner.release.set()
    assert driver.wait(10)
    assert not driver.is_processing
    assert [status for _, status in driver.snapshot()] == [S.DONE, S.DONE]
    assert len(summaries) == 1 and summaries[0].ok


def test_stop_terminates_current_file_and_abandons_the_rest(media_dir, make_orchestrator):
    items = _files(media_dir, "a.mp4", "b.mp4", "c.mp4")
    runner = BlockingRunner()
    driver = BatchDriver(items, make_orchestrator(runner))

    driver.start()
    assert runner.entered.wait(5)
    driver.stop()
    assert driver.wait(10)

    assert items[0].status is S.ERROR
    assert isinstance(items[0].failure, PipelineCancelled)
    assert items[1].status is S.PENDING
    assert items[2].status is S.PENDING
    assert driver.summary.abandoned == 2
    assert not (media_dir / "res" / "a_subbed.mp4").exists()


def test_rerun_resumes_from_disk(media_dir, make_orchestrator):
    items = _files(media_dir, "a.mp4", "b.mp4")
    driver = BatchDriver(items, make_orchestrator(FakeRunner(fail={(STAGE_BURN, "b_subbed"): 1})))
    driver.run()
    assert [item.status for item in items] == [S.DONE, S.ERROR]

    runner = FakeRunner()
    second = BatchDriver(items, make_orchestrator(runner))
    second.run()

    assert [item.status for item in items] == [S.SKIPPED_ALREADY_DONE, S.DONE]
    assert items[1].failure is None
    assert runner.stages() == [STAGE_BURN]


def test_stop_while_idle_does_not_block_next_run(media_dir, make_orchestrator):
    items = _files(media_dir, "a.mp4", "b.mp4")
    runner = FakeRunner()
    driver = BatchDriver(items, make_orchestrator(runner))

    driver.stop()
    summary = driver.run()

    assert [item.status for item in items] == [S.DONE, S.DONE]
    assert summary.ok
    assert runner.stages().count(STAGE_BURN) == 2


def test_same_driver_runs_again_after_stop(media_dir, make_orchestrator):
    items = _files(media_dir, "a.mp4", "b.mp4")
    runner = BlockingRunner()
    driver = BatchDriver(items, make_orchestrator(runner))

    driver.start()
    assert runner.entered.wait(5)
    driver.stop()
    assert driver.wait(10)
    assert [item.status for item in items] == [S.ERROR, S.PENDING]

    runner.release.set()
    summary = driver.run()

    assert [item.status for item in items] == [S.DONE, S.DONE]
    assert items[0].failure is None
    assert not runner.cancelled
    assert summary.ok
