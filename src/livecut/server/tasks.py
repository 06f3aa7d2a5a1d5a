"""Background analysis queue."""

from __future__ import annotations

from collections import deque
import threading
import time
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional

from livecut.core import PipelineConfig, VideoStatus
from livecut.core.errors import LivecutError, OperationCancelled
from livecut.core.logging_utils import get_logger
from livecut.media.transcoder import Transcoder
from livecut.segment import FrameClassifier, analyze_video
from livecut.store import SegmentStore, VideoRecordStore

logger = get_logger("livecut.server.tasks")


class AnalysisTaskManager:
    """Single-worker queue for video analysis tasks.

    The worker thread starts on the first enqueue. Each task runs the
    analysis pipeline, replaces the video's segments in one commit and
    records the final status on the video record.
    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        videos: VideoRecordStore,
        segments: SegmentStore,
        transcoder: Transcoder,
        classifier_factory: Callable[[], FrameClassifier],
        autostart: bool = True,
    ) -> None:
        self._lock = threading.Lock()
        self._queue: Deque[str] = deque()
        self._active: Optional[str] = None
        self._cancel_events: Dict[str, threading.Event] = {}
        self._config = config
        self._videos = videos
        self._segments = segments
        self._transcoder = transcoder
        self._classifier_factory = classifier_factory
        self._autostart = autostart
        self._worker: Optional[threading.Thread] = None

    def enqueue(self, video_ids: Iterable[str]) -> Dict[str, Any]:
        queued: List[str] = []
        skipped: List[str] = []
        with self._lock:
            for video_id in video_ids:
                if self._videos.get(video_id) is None:
                    skipped.append(video_id)
                    continue
                if video_id == self._active or video_id in self._queue:
                    skipped.append(video_id)
                    continue
                # Persist pending before queueing so it never overwrites the worker's status.
                self._set_status(video_id, VideoStatus.PENDING)
                self._queue.append(video_id)
                self._cancel_events[video_id] = threading.Event()
                queued.append(video_id)
            if self._autostart and queued:
                self._ensure_worker()
        return {"queued": queued, "skipped": skipped, **self.snapshot()}

    def cancel(self, video_id: str) -> bool:
        """Abort a queued or running analysis. Returns False if nothing was pending."""

        with self._lock:
            if video_id in self._queue:
                self._queue.remove(video_id)
                self._cancel_events.pop(video_id, None)
                cancelled_queued = True
            elif video_id == self._active:
                self._cancel_events[video_id].set()
                return True
            else:
                return False
        if cancelled_queued:
            self._set_status(video_id, VideoStatus.FAILED, error="analysis cancelled")
        return True

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {"pending": list(self._queue), "active": self._active}

    def run_pending(self) -> None:
        """Drain the queue on the calling thread."""

        while self._run_next():
            pass

    def _ensure_worker(self) -> None:
        if self._worker is None or not self._worker.is_alive():
            self._worker = threading.Thread(target=self._worker_loop, daemon=True, name="livecut-analysis")
            self._worker.start()

    def _worker_loop(self) -> None:
        while True:
            if not self._run_next():
                time.sleep(0.5)

    def _run_next(self) -> bool:
        with self._lock:
            if self._active or not self._queue:
                return False
            video_id = self._queue.popleft()
            self._active = video_id
            cancel_event = self._cancel_events.setdefault(video_id, threading.Event())
        try:
            self._run_task(video_id, cancel_event)
        finally:
            with self._lock:
                self._active = None
                self._cancel_events.pop(video_id, None)
        return True

    def _run_task(self, video_id: str, cancel_event: threading.Event) -> None:
        record = self._videos.get(video_id)
        if record is None:
            logger.warning("video %s disappeared before analysis", video_id)
            return
        self._set_status(video_id, VideoStatus.PROCESSING)
        try:
            result = analyze_video(
                video_id,
                record.path,
                self._config,
                classifier=self._classifier_factory(),
                transcoder=self._transcoder,
                cancel_event=cancel_event,
            )
            self._segments.replace_for_video(video_id, result.segments)
        except OperationCancelled:
            logger.info("analysis of %s cancelled", video_id)
            self._set_status(video_id, VideoStatus.FAILED, error="analysis cancelled")
            return
        except LivecutError as exc:
            logger.error("analysis of %s failed: %s", video_id, exc)
            self._set_status(video_id, VideoStatus.FAILED, error=str(exc))
            return
        except Exception as exc:
            logger.exception("analysis of %s crashed", video_id)
            self._set_status(video_id, VideoStatus.FAILED, error=str(exc))
            return
        self._set_status(
            video_id,
            VideoStatus.COMPLETED,
            duration=result.duration,
            frames_analyzed=result.frames_total,
            frames_failed=result.frames_failed,
        )

    def _set_status(self, video_id: str, status: VideoStatus, *, error: Optional[str] = None, **fields: Any) -> None:
        record = self._videos.get(video_id)
        if record is None:
            return
        record.status = status
        record.error = error
        for name, value in fields.items():
            setattr(record, name, value)
        self._videos.put(record)
