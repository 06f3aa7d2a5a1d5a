"""片段存储：按视频维护有序且互不重叠的片段列表。

每个视频同一时刻只有一个写者（按视频加锁）。写操作先构造新列表并校验，
再原子写入 JSON 快照，最后替换内存中的引用；任一步失败都不会改动已提交状态。
读操作直接拿当前列表引用，不需要等锁。
"""

from __future__ import annotations

import json
import math
import threading
import uuid
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from livecut.core import ProductTag, Segment, SegmentType
from livecut.core.datamodels import utcnow
from livecut.core.errors import (
    InvalidInputError,
    InvalidRangeError,
    OverlapConflictError,
    SegmentNotFoundError,
    StorageError,
    VideoNotFoundError,
)
from livecut.core.logging_utils import get_logger
from livecut.segment.types import SegmentDraft

from .records import VideoRecordStore, atomic_write_json

logger = get_logger("livecut.store")

UPDATABLE_FIELDS = frozenset({"start_time", "end_time", "type", "products", "notes"})


def validate_range(start_time: float, end_time: float) -> None:
    # NaN 与任何值比较都为 False，必须先排除非有限值
    if not math.isfinite(start_time) or not math.isfinite(end_time):
        raise InvalidRangeError(start_time, end_time)
    if start_time < 0 or end_time <= start_time:
        raise InvalidRangeError(start_time, end_time)


def overlaps(a_start: float, a_end: float, b_start: float, b_end: float) -> bool:
    """半开区间重叠判断，首尾相接不算重叠。"""

    return a_start < b_end and b_start < a_end


def _coerce_type(value: Any) -> SegmentType:
    try:
        return SegmentType(value)
    except ValueError as exc:
        raise InvalidInputError(f"unknown segment type: {value!r}") from exc


def _coerce_products(items: Iterable[Any] | None) -> tuple[ProductTag, ...]:
    products: List[ProductTag] = []
    for item in items or ():
        if isinstance(item, ProductTag):
            products.append(item)
        elif isinstance(item, Mapping):
            products.append(ProductTag.from_dict(dict(item)))
        else:
            raise InvalidInputError(f"invalid product entry: {item!r}")
    return tuple(products)


class SegmentStore:
    def __init__(self, videos: VideoRecordStore, snapshot_dir: Path | None = None) -> None:
        self._videos = videos
        self._snapshot_dir = Path(snapshot_dir) if snapshot_dir is not None else None
        self._segments: Dict[str, List[Segment]] = {}
        self._index: Dict[str, str] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()
        self._load_snapshots()

    # ------------------------------------------------------------------ reads

    def list_by_video(self, video_id: str) -> List[Segment]:
        self._require_video(video_id)
        return list(self._segments.get(video_id, []))

    def get_by_id(self, segment_id: str) -> Optional[Segment]:
        video_id = self._index.get(segment_id)
        if video_id is None:
            return None
        for segment in self._segments.get(video_id, []):
            if segment.id == segment_id:
                return segment
        return None

    # ----------------------------------------------------------------- writes

    def create(
        self,
        video_id: str,
        start_time: float,
        end_time: float,
        type: SegmentType | str,
        products: Iterable[Any] | None = None,
        notes: Optional[str] = None,
    ) -> Segment:
        self._require_video(video_id)
        validate_range(start_time, end_time)
        now = utcnow()
        segment = Segment(
            id=str(uuid.uuid4()),
            video_id=video_id,
            start_time=float(start_time),
            end_time=float(end_time),
            type=_coerce_type(type),
            products=_coerce_products(products),
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        with self._lock_for(video_id):
            current = self._segments.get(video_id, [])
            self._check_overlap(segment, current)
            self._commit(video_id, current + [segment])
        logger.info("created segment %s on %s [%.2f, %.2f)", segment.id, video_id, segment.start_time, segment.end_time)
        return segment

    def update(self, segment_id: str, changes: Mapping[str, Any]) -> Segment:
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidInputError(f"fields cannot be updated: {sorted(unknown)}")
        video_id = self._index.get(segment_id)
        if video_id is None:
            raise SegmentNotFoundError(segment_id)

        with self._lock_for(video_id):
            current = self._segments.get(video_id, [])
            existing = next((s for s in current if s.id == segment_id), None)
            if existing is None:
                raise SegmentNotFoundError(segment_id)

            fields: Dict[str, Any] = {}
            if "start_time" in changes:
                fields["start_time"] = float(changes["start_time"])
            if "end_time" in changes:
                fields["end_time"] = float(changes["end_time"])
            if "type" in changes:
                fields["type"] = _coerce_type(changes["type"])
            if "products" in changes:
                fields["products"] = _coerce_products(changes["products"])
            if "notes" in changes:
                fields["notes"] = changes["notes"]
            updated = replace(existing, updated_at=utcnow(), **fields)

            validate_range(updated.start_time, updated.end_time)
            others = [s for s in current if s.id != segment_id]
            self._check_overlap(updated, others)
            self._commit(video_id, others + [updated])
        return updated

    def delete(self, segment_id: str) -> None:
        video_id = self._index.get(segment_id)
        if video_id is None:
            raise SegmentNotFoundError(segment_id)
        with self._lock_for(video_id):
            current = self._segments.get(video_id, [])
            remaining = [s for s in current if s.id != segment_id]
            if len(remaining) == len(current):
                raise SegmentNotFoundError(segment_id)
            self._commit(video_id, remaining)
        logger.info("deleted segment %s from %s", segment_id, video_id)

    def replace_for_video(self, video_id: str, drafts: Sequence[SegmentDraft]) -> List[Segment]:
        """用分析结果整体替换某个视频的片段列表。"""

        self._require_video(video_id)
        now = utcnow()
        segments: List[Segment] = []
        for draft in sorted(drafts, key=lambda d: d.start_time):
            validate_range(draft.start_time, draft.end_time)
            segment = Segment(
                id=str(uuid.uuid4()),
                video_id=video_id,
                start_time=draft.start_time,
                end_time=draft.end_time,
                type=draft.type,
                products=tuple(draft.products()),
                created_at=now,
                updated_at=now,
            )
            self._check_overlap(segment, segments)
            segments.append(segment)
        with self._lock_for(video_id):
            self._commit(video_id, segments)
        return list(segments)

    def drop_video(self, video_id: str) -> None:
        with self._lock_for(video_id):
            self._commit(video_id, [])

    # --------------------------------------------------------------- helpers

    def _require_video(self, video_id: str) -> None:
        if self._videos.get(video_id) is None:
            raise VideoNotFoundError(video_id)

    def _lock_for(self, video_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(video_id)
            if lock is None:
                lock = self._locks[video_id] = threading.Lock()
            return lock

    @staticmethod
    def _check_overlap(candidate: Segment, others: Iterable[Segment]) -> None:
        for other in others:
            if overlaps(candidate.start_time, candidate.end_time, other.start_time, other.end_time):
                raise OverlapConflictError(candidate.start_time, candidate.end_time, other.id)

    def _commit(self, video_id: str, segments: List[Segment]) -> None:
        ordered = sorted(segments, key=lambda s: s.start_time)
        previous = self._segments.get(video_id, [])
        if self._snapshot_dir is not None:
            atomic_write_json(self._snapshot_path(video_id), [s.to_dict() for s in ordered])
        self._segments[video_id] = ordered
        with self._guard:
            for segment in previous:
                self._index.pop(segment.id, None)
            for segment in ordered:
                self._index[segment.id] = video_id

    def _snapshot_path(self, video_id: str) -> Path:
        assert self._snapshot_dir is not None
        return self._snapshot_dir / f"{Path(video_id).name}.json"

    def _load_snapshots(self) -> None:
        if self._snapshot_dir is None:
            return
        self._snapshot_dir.mkdir(parents=True, exist_ok=True)
        for path in sorted(self._snapshot_dir.glob("*.json")):
            try:
                payload = json.loads(path.read_text(encoding="utf-8"))
            except json.JSONDecodeError:
                logger.warning("skipping unreadable segment snapshot %s", path)
                continue
            except OSError as exc:
                raise StorageError(f"cannot read {path}: {exc}") from exc
            segments = sorted((Segment.from_dict(item) for item in payload), key=lambda s: s.start_time)
            if not segments:
                continue
            video_id = segments[0].video_id
            self._segments[video_id] = segments
            for segment in segments:
                self._index[segment.id] = video_id
