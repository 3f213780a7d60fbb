from pathlib import Path

from subburn.paths import resolve_paths, temp_namespace


def test_video_paths(tmp_path: Path):
    source = tmp_path / "talks" / "talk.mp4"
    temp_root = tmp_path / "tmp"
    paths = resolve_paths(source, temp_root)

    assert paths.subtitle_path == tmp_path / "talks" / "talk.srt"
    assert paths.output_dir == tmp_path / "talks" / "res"
    assert paths.output_path == tmp_path / "talks" / "res" / "talk_subbed.mp4"
    assert paths.temp_dir.parent == temp_root
    assert paths.waveform_path == paths.temp_dir / "talk.wav"
    assert paths.temp_transcript_path == paths.temp_dir / "talk.srt"
    assert paths.needs_waveform_conversion
    assert paths.partial_output_path.parent == paths.output_dir
    assert paths.partial_output_path != paths.output_path


def test_wav_source_is_its_own_waveform(tmp_path: Path):
    source = tmp_path / "lecture.WAV"
    paths = resolve_paths(source, tmp_path / "tmp")
    assert paths.waveform_path == source
    assert not paths.needs_waveform_conversion
    assert paths.output_path.name == "lecture_subbed.mp4"


def test_same_basename_in_different_folders_never_share_temp(tmp_path: Path):
    temp_root = tmp_path / "tmp"
    a = resolve_paths(tmp_path / "a" / "intro.mp4", temp_root)
    b = resolve_paths(tmp_path / "b" / "intro.mp4", temp_root)

    assert a.temp_dir != b.temp_dir
    assert a.waveform_path != b.waveform_path
    assert a.temp_transcript_path != b.temp_transcript_path
    assert a.waveform_path.name == b.waveform_path.name == "intro.wav"


def test_namespace_is_stable(tmp_path: Path):
    source = tmp_path / "clip.mov"
    assert temp_namespace(source) == temp_namespace(source)
    assert len(temp_namespace(source)) == 12
