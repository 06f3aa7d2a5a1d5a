"""分析编排：抽帧 -> 分批并发分类 -> 片段状态机。"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from livecut.core import PipelineConfig
from livecut.core.errors import ExternalServiceError, OperationCancelled
from livecut.core.logging_utils import get_logger
from livecut.media.transcoder import Transcoder

from .builder import build_segments
from .classifier import FrameClassifier
from .loader import effective_interval, sample_frames
from .types import ClassificationResult, Frame, SegmentDraft

logger = get_logger("livecut.segment")


@dataclass(slots=True)
class AnalysisResult:
    """单个视频的分析结果，便于后续统计。"""

    video_id: str
    duration: float
    step: float
    segments: List[SegmentDraft]
    frames_total: int
    frames_failed: int


def analyze_video(
    video_id: str,
    video_path: str | Path,
    config: PipelineConfig,
    *,
    classifier: FrameClassifier,
    transcoder: Transcoder,
    cancel_event: threading.Event | None = None,
    progress_callback: Callable[[float], None] | None = None,
) -> AnalysisResult:
    """主入口：读取视频 -> 抽帧 -> 分类 -> 片段草稿。

    分类按 batch_size 分批提交到线程池，每批最多等待 timeout_seconds；
    超时或失败的帧记为 gap。批与批之间暂停 batch_pause_seconds，
    暂停期间可被 cancel_event 打断。
    """

    cancel_event = cancel_event or threading.Event()
    sample_cfg = config.sample
    cls_cfg = config.classifier

    duration = transcoder.probe(video_path)
    step = effective_interval(duration, sample_cfg.interval_seconds, sample_cfg.max_frames)
    expected = max(1, min(sample_cfg.max_frames, int(duration / step) + 1))

    results: List[Optional[ClassificationResult]] = []
    failed = 0
    batch: List[Frame] = []

    frames = sample_frames(
        video_path,
        sample_cfg.interval_seconds,
        sample_cfg.max_frames,
        transcoder=transcoder,
        video_id=video_id,
        duration=duration,
    )
    executor = ThreadPoolExecutor(max_workers=cls_cfg.batch_size, thread_name_prefix="livecut-classify")
    try:
        with closing(frames):
            for frame in frames:
                batch.append(frame)
                if len(batch) < cls_cfg.batch_size:
                    continue
                failed += _run_batch(batch, classifier, executor, cls_cfg.timeout_seconds, results)
                batch = []
                _report(progress_callback, len(results), expected)
                _pause(cancel_event, cls_cfg.batch_pause_seconds, video_id)
            if batch:
                failed += _run_batch(batch, classifier, executor, cls_cfg.timeout_seconds, results)
                _report(progress_callback, len(results), expected)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    if cancel_event.is_set():
        raise OperationCancelled(f"analysis of {video_id} cancelled")

    segments = build_segments(
        results,
        duration=duration,
        step=step,
        merge_threshold=config.segment.merge_threshold_seconds,
    )
    logger.info(
        "video %s: %d frames, %d gaps, %d segments",
        video_id,
        len(results),
        failed,
        len(segments),
    )
    if progress_callback is not None:
        progress_callback(1.0)
    return AnalysisResult(
        video_id=video_id,
        duration=duration,
        step=step,
        segments=segments,
        frames_total=len(results),
        frames_failed=failed,
    )


def _run_batch(
    batch: List[Frame],
    classifier: FrameClassifier,
    executor: ThreadPoolExecutor,
    timeout: float,
    results: List[Optional[ClassificationResult]],
) -> int:
    futures: List[Future[ClassificationResult]] = [executor.submit(classifier.classify, frame) for frame in batch]
    wait(futures, timeout=timeout)
    failed = 0
    for frame, future in zip(batch, futures):
        if not future.done():
            future.cancel()
            logger.warning("frame %.2fs of %s timed out, treating as gap", frame.timestamp, frame.video_id)
            results.append(None)
            failed += 1
            continue
        try:
            results.append(future.result())
        except OperationCancelled:
            raise
        except ExternalServiceError as exc:
            logger.warning("frame %.2fs of %s failed, treating as gap: %s", frame.timestamp, frame.video_id, exc)
            results.append(None)
            failed += 1
        except Exception as exc:
            # 单帧的意外异常同样只影响该帧
            logger.warning(
                "frame %.2fs of %s raised %s, treating as gap: %s",
                frame.timestamp,
                frame.video_id,
                type(exc).__name__,
                exc,
            )
            results.append(None)
            failed += 1
    return failed


def _pause(cancel_event: threading.Event, seconds: float, video_id: str) -> None:
    # Event.wait 既是批间退避，也是取消检查点
    if cancel_event.wait(seconds):
        raise OperationCancelled(f"analysis of {video_id} cancelled")


def _report(callback: Callable[[float], None] | None, done: int, expected: int) -> None:
    if callback is not None:
        callback(min(done / expected, 0.99))
