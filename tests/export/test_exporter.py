"""导出流程测试：fake transcoder 记录调用，验证顺序、容错与清理。"""

import threading
from datetime import datetime, timezone
from pathlib import Path

import pytest

from livecut.core import PipelineConfig, SegmentType, VideoAsset
from livecut.core.errors import (
    EncodeError,
    InvalidInputError,
    OperationCancelled,
    SegmentExportError,
    SegmentsNotFoundError,
    VideoNotFoundError,
)
from livecut.export import Exporter
from livecut.store import open_stores


class FakeTranscoder:
    def __init__(self, fail_at=None) -> None:
        self.fail_at = fail_at
        self.cuts = []
        self.concats = []
        self._lock = threading.Lock()

    def extract(self, path, start, duration, output, preset):
        with self._lock:
            self.cuts.append((start, duration, output.suffix, dict(preset)))
        if self.fail_at is not None and start == self.fail_at:
            raise EncodeError("encoder crashed")
        output.write_bytes(b"x" * int(duration * 100))

    def concatenate(self, files, output, preset):
        self.concats.append(list(files))
        output.write_bytes(b"".join(path.read_bytes() for path in files))


@pytest.fixture
def env(tmp_path: Path):
    videos, segments = open_stores(tmp_path / "records", tmp_path / "segments")
    videos.put(
        VideoAsset(
            id="vid",
            filename="vid.mp4",
            original_name="live.mp4",
            mime_type="video/mp4",
            size=100,
            path=str(tmp_path / "vid.mp4"),
            uploaded_at=datetime.now(timezone.utc),
            duration=30.0,
        )
    )
    x = segments.create("vid", 0, 10, SegmentType.PRODUCT_EXPLANATION)
    y = segments.create("vid", 15, 25, SegmentType.PRODUCT_SHOWCASE)
    return videos, segments, x, y, tmp_path / "exports"


def _exporter(env, transcoder) -> Exporter:
    videos, segments, _, _, output_dir = env
    return Exporter(PipelineConfig(), transcoder=transcoder, videos=videos, segments=segments, output_dir=output_dir)


def test_merge_follows_time_order(env) -> None:
    _, _, x, y, output_dir = env
    transcoder = FakeTranscoder()

    result = _exporter(env, transcoder).export("vid", [y.id, x.id], merge_segments=True)

    assert [item.original_segment_id for item in result.segments] == [x.id, y.id]
    assert result.total_duration == 20.0
    assert len(transcoder.concats) == 1
    assert transcoder.concats[0] == [Path(item.path) for item in result.segments]
    merged = Path(result.merged_path)
    assert merged.exists()
    assert merged.parent == output_dir
    assert result.download_url == f"/downloads/{merged.name}"
    assert result.total_size == sum(item.size for item in result.segments)


def test_defaults_use_mp4_and_high_quality(env) -> None:
    _, _, x, _, _ = env
    transcoder = FakeTranscoder()

    result = _exporter(env, transcoder).export("vid", [x.id])

    assert result.format == "mp4"
    assert result.quality == "high"
    assert result.merged_path is None
    assert transcoder.cuts == [(0.0, 10.0, ".mp4", {"video_bitrate": "2000k", "audio_bitrate": "192k"})]
    assert transcoder.concats == []


def test_unknown_ids_are_ignored(env) -> None:
    _, _, x, _, _ = env

    result = _exporter(env, FakeTranscoder()).export("vid", ["nope", x.id], format="MOV", quality="low")

    assert [item.original_segment_id for item in result.segments] == [x.id]
    assert result.segments[0].filename.endswith(".mov")
    assert result.quality == "low"


def test_all_unknown_ids_fail(env) -> None:
    with pytest.raises(SegmentsNotFoundError):
        _exporter(env, FakeTranscoder()).export("vid", ["nope", "missing"])


def test_unknown_video_fails(env) -> None:
    with pytest.raises(VideoNotFoundError):
        _exporter(env, FakeTranscoder()).export("other", ["nope"])


@pytest.mark.parametrize("options", [{"format": "webm"}, {"quality": "ultra"}])
def test_unsupported_options(env, options) -> None:
    _, _, x, _, _ = env

    with pytest.raises(InvalidInputError):
        _exporter(env, FakeTranscoder()).export("vid", [x.id], **options)


def test_failure_removes_partial_outputs(env) -> None:
    _, _, x, y, output_dir = env
    transcoder = FakeTranscoder(fail_at=15.0)

    with pytest.raises(SegmentExportError) as excinfo:
        _exporter(env, transcoder).export("vid", [x.id, y.id], merge_segments=True)

    assert excinfo.value.segment_id == y.id
    assert list(output_dir.glob("*")) == []
    assert transcoder.concats == []


def test_cancelled_export_leaves_nothing(env) -> None:
    _, _, x, y, output_dir = env
    cancel_event = threading.Event()
    cancel_event.set()

    with pytest.raises(OperationCancelled):
        _exporter(env, FakeTranscoder()).export("vid", [x.id, y.id], cancel_event=cancel_event)

    assert list(output_dir.glob("*")) == []
