from __future__ import annotations

# 本模块负责把已存储的片段导出为独立文件：
# 1) 解析视频与片段（未知 id 静默丢弃，全部未知才报错）
# 2) 每个片段独立裁剪并按质量预设重编码，线程池限制并发
# 3) 任一片段失败即中止整体导出，并删除已产出的文件
# 4) 需要合并时按时间升序拼接为一个文件

import threading
import uuid
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from livecut.core import ExportedSegment, ExportResult, PipelineConfig, Segment
from livecut.core.config import EXPORT_FORMATS, QUALITY_PRESETS
from livecut.core.errors import (
    InvalidInputError,
    LivecutError,
    OperationCancelled,
    ResourceError,
    SegmentExportError,
    SegmentsNotFoundError,
    VideoNotFoundError,
)
from livecut.core.logging_utils import get_logger
from livecut.core.scratch import remove_files
from livecut.media.transcoder import Transcoder
from livecut.store import SegmentStore, VideoRecordStore

logger = get_logger("livecut.export")

DOWNLOAD_PREFIX = "/downloads"


class Exporter:
    """导出器：负责把选中的片段转为独立文件，并可合并为一个文件。

    依赖配置 `PipelineConfig.export`：默认格式/质量与转码并发数。
    """

    def __init__(
        self,
        cfg: PipelineConfig,
        *,
        transcoder: Transcoder,
        videos: VideoRecordStore,
        segments: SegmentStore,
        output_dir: Path,
    ) -> None:
        self.cfg = cfg
        self.transcoder = transcoder
        self.videos = videos
        self.segments = segments
        self.output_dir = Path(output_dir)

    def export(
        self,
        video_id: str,
        segment_ids: Sequence[str],
        *,
        format: Optional[str] = None,
        quality: Optional[str] = None,
        merge_segments: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> ExportResult:
        """执行导出，返回逐片段记录与汇总信息。"""

        fmt = (format or self.cfg.export.default_format).lower()
        quality_key = (quality or self.cfg.export.default_quality).lower()
        if fmt not in EXPORT_FORMATS:
            raise InvalidInputError(f"unsupported export format: {fmt}")
        if quality_key not in QUALITY_PRESETS:
            raise InvalidInputError(f"unsupported export quality: {quality_key}")
        preset = QUALITY_PRESETS[quality_key]
        cancel_event = cancel_event or threading.Event()

        video = self.videos.get(video_id)
        if video is None:
            raise VideoNotFoundError(video_id)
        wanted = set(segment_ids)
        # store 中的列表已按开始时间升序，后续合并顺序与请求顺序无关
        selected = [segment for segment in self.segments.list_by_video(video_id) if segment.id in wanted]
        if not selected:
            raise SegmentsNotFoundError(f"none of the requested segments exist on video {video_id}")
        skipped = len(wanted) - len(selected)
        if skipped:
            logger.info("export of %s: ignoring %d unknown segment ids", video_id, skipped)

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ResourceError(f"cannot create export directory {self.output_dir}: {exc}") from exc

        exported = self._export_all(Path(video.path), selected, fmt, preset, cancel_event)

        total_size = sum(item.size for item in exported)
        total_duration = sum(item.duration for item in exported)
        download_url: Optional[str] = None
        merged_path: Optional[Path] = None
        if merge_segments and len(exported) > 1:
            merged_path = self._merge(exported, fmt, preset, cancel_event)
            download_url = f"{DOWNLOAD_PREFIX}/{merged_path.name}"

        logger.info(
            "exported %d segments of %s (%s/%s), %.2fs total",
            len(exported),
            video_id,
            fmt,
            quality_key,
            total_duration,
        )
        return ExportResult(
            video_id=video_id,
            segments=exported,
            total_size=total_size,
            total_duration=total_duration,
            format=fmt,
            quality=quality_key,
            download_url=download_url,
            merged_path=str(merged_path) if merged_path else None,
        )

    def _export_all(
        self,
        source: Path,
        segments: List[Segment],
        fmt: str,
        preset: Dict[str, str],
        cancel_event: threading.Event,
    ) -> List[ExportedSegment]:
        outputs = {segment.id: self.output_dir / f"segment-{uuid.uuid4()}.{fmt}" for segment in segments}
        executor = ThreadPoolExecutor(max_workers=self.cfg.export.max_workers, thread_name_prefix="livecut-export")
        futures: Dict[Future[ExportedSegment], Segment] = {}
        abort = threading.Event()
        try:
            for segment in segments:
                future = executor.submit(
                    self._export_one, source, segment, outputs[segment.id], preset, (cancel_event, abort)
                )
                futures[future] = segment
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            for future in pending:
                future.cancel()
            failure = self._first_failure(done, futures)
            if failure is not None:
                abort.set()
                raise failure
        except BaseException:
            executor.shutdown(wait=True, cancel_futures=True)
            remove_files(outputs.values())
            raise
        executor.shutdown(wait=True)
        results = {futures[f].id: f.result() for f in futures}
        return [results[segment.id] for segment in segments]

    @staticmethod
    def _first_failure(done, futures: Dict[Future[ExportedSegment], Segment]) -> Optional[BaseException]:
        cancelled: Optional[BaseException] = None
        for future in sorted(done, key=lambda f: futures[f].start_time):
            if future.cancelled():
                continue
            exc = future.exception()
            if exc is None:
                continue
            if isinstance(exc, OperationCancelled):
                cancelled = cancelled or exc
                continue
            if isinstance(exc, (LivecutError, OSError)):
                return SegmentExportError(futures[future].id, str(exc))
            return exc
        return cancelled

    def _export_one(
        self,
        source: Path,
        segment: Segment,
        output: Path,
        preset: Dict[str, str],
        stop_events: tuple[threading.Event, ...],
    ) -> ExportedSegment:
        if any(event.is_set() for event in stop_events):
            raise OperationCancelled("export cancelled")
        duration = segment.end_time - segment.start_time
        self.transcoder.extract(source, segment.start_time, duration, output, preset)
        return ExportedSegment(
            id=str(uuid.uuid4()),
            original_segment_id=segment.id,
            filename=output.name,
            path=str(output),
            size=output.stat().st_size,
            duration=duration,
        )

    def _merge(
        self,
        exported: List[ExportedSegment],
        fmt: str,
        preset: Dict[str, str],
        cancel_event: threading.Event,
    ) -> Path:
        if cancel_event.is_set():
            remove_files(Path(item.path) for item in exported)
            raise OperationCancelled("export cancelled")
        merged = self.output_dir / f"merged-{uuid.uuid4()}.{fmt}"
        try:
            self.transcoder.concatenate([Path(item.path) for item in exported], merged, preset)
        except BaseException:
            remove_files([merged, *(Path(item.path) for item in exported)])
            raise
        return merged
