"""片段与视频记录存储。"""

from __future__ import annotations

from pathlib import Path
from typing import Tuple

from .records import JsonVideoRecordStore, VideoRecordStore
from .segment_store import SegmentStore


def open_stores(records_dir: Path, segments_dir: Path) -> Tuple[JsonVideoRecordStore, SegmentStore]:
    """按工作区目录打开视频记录与片段存储。"""

    videos = JsonVideoRecordStore(records_dir)
    return videos, SegmentStore(videos, snapshot_dir=segments_dir)


__all__ = ["JsonVideoRecordStore", "SegmentStore", "VideoRecordStore", "open_stores"]
