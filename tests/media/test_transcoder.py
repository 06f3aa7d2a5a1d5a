"""转码边界测试：monkeypatch ffmpeg-python，不启动真实进程。"""

from pathlib import Path

import ffmpeg
import pytest

from livecut.core.config import QUALITY_PRESETS
from livecut.core.errors import EncodeError, ProbeError
from livecut.media import FFmpegTranscoder


def test_probe_reads_format_duration(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("livecut.media.transcoder.ffmpeg.probe", lambda _path: {"format": {"duration": "30.5"}})

    assert FFmpegTranscoder().probe("demo.mp4") == 30.5


def test_probe_falls_back_to_video_stream(monkeypatch: pytest.MonkeyPatch) -> None:
    info = {
        "format": {},
        "streams": [{"codec_type": "audio", "duration": "9"}, {"codec_type": "video", "duration": "12.0"}],
    }
    monkeypatch.setattr("livecut.media.transcoder.ffmpeg.probe", lambda _path: info)

    assert FFmpegTranscoder().probe("demo.mkv") == 12.0


@pytest.mark.parametrize("info", [{"format": {}}, {"format": {"duration": "0"}}, {"format": {"duration": "n/a"}}])
def test_probe_rejects_missing_duration(monkeypatch: pytest.MonkeyPatch, info) -> None:
    monkeypatch.setattr("livecut.media.transcoder.ffmpeg.probe", lambda _path: info)

    with pytest.raises(ProbeError):
        FFmpegTranscoder().probe("demo.mp4")


def test_probe_error_carries_stderr(monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(_path):
        raise ffmpeg.Error("ffprobe", b"", b"moov atom not found")

    monkeypatch.setattr("livecut.media.transcoder.ffmpeg.probe", _fail)

    with pytest.raises(ProbeError, match="moov atom not found"):
        FFmpegTranscoder().probe("broken.mp4")


def test_extract_applies_window_and_preset(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    captured = {}

    def _fake_run(stream, description):
        captured["args"] = stream.get_args()

    monkeypatch.setattr(FFmpegTranscoder, "_run", staticmethod(_fake_run))

    FFmpegTranscoder().extract("demo.mp4", 10.0, 5.0, tmp_path / "out.mp4", QUALITY_PRESETS["medium"])

    args = captured["args"]
    assert args[args.index("-ss") + 1] == "10.0"
    assert args[args.index("-t") + 1] == "5.0"
    assert args[args.index("-b:v") + 1] == "1000k"
    assert args[args.index("-b:a") + 1] == "128k"
    assert "+faststart" in args


def test_concatenate_removes_manifest(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    manifests = []

    def _fake_run(stream, description):
        manifest = tmp_path / "merged.mp4.concat.txt"
        manifests.append(manifest.read_text(encoding="utf-8"))
        raise EncodeError("ffmpeg failed")

    monkeypatch.setattr(FFmpegTranscoder, "_run", staticmethod(_fake_run))
    files = [tmp_path / "a.mp4", tmp_path / "b.mp4"]

    with pytest.raises(EncodeError):
        FFmpegTranscoder().concatenate(files, tmp_path / "merged.mp4", QUALITY_PRESETS["low"])

    assert manifests[0].splitlines() == [f"file '{files[0]}'", f"file '{files[1]}'"]
    assert not (tmp_path / "merged.mp4.concat.txt").exists()


def test_concatenate_requires_inputs(tmp_path: Path) -> None:
    with pytest.raises(EncodeError):
        FFmpegTranscoder().concatenate([], tmp_path / "merged.mp4", QUALITY_PRESETS["high"])
