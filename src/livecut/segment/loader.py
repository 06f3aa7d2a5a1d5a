"""视频抽帧。"""

from __future__ import annotations

from pathlib import Path
from typing import Generator

from livecut.core.errors import InvalidInputError
from livecut.core.scratch import scratch_dir
from livecut.media.transcoder import Transcoder

from .types import Frame


def effective_interval(duration: float, interval: float, max_frames: int) -> float:
    """实际抽帧间隔：保证长视频的帧数也不超过 max_frames。"""

    return max(interval, duration / max_frames)


def sample_frames(
    video_path: str | Path,
    interval: float,
    max_frames: int,
    *,
    transcoder: Transcoder,
    video_id: str = "",
    duration: float | None = None,
) -> Generator[Frame, None, None]:
    """按有效间隔抽帧，时间戳从 0 开始严格递增。

    帧先落到临时目录，生成器结束、抛错或被提前 close 时目录都会被删除。
    每次调用都会重新抽帧。调用方已知时长时传入 duration，可省去一次 probe。
    """

    if interval <= 0:
        raise InvalidInputError("interval must be positive")
    if max_frames <= 0:
        raise InvalidInputError("max_frames must be positive")

    path = Path(video_path)
    if duration is None:
        duration = transcoder.probe(path)
    step = effective_interval(duration, interval, max_frames)

    with scratch_dir(prefix="livecut_frames_") as workdir:
        files = transcoder.extract_frames(path, step, workdir)
        for index, frame_path in enumerate(files[:max_frames]):
            yield Frame(
                video_id=video_id,
                index=index,
                timestamp=index * step,
                data=frame_path.read_bytes(),
            )
