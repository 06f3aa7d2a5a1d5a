from __future__ import annotations

# 本模块封装 ffmpeg-python，提供核心流程依赖的转码边界：
# 1) probe：读取视频时长
# 2) extract_frames：按固定间隔抽取 JPEG 帧
# 3) extract：裁剪 [start, start+duration) 并按质量预设重编码
# 4) concatenate：用 concat demuxer 按顺序拼接，并按同一预设重编码

from pathlib import Path
from typing import List, Mapping, Protocol, Sequence

import ffmpeg

from livecut.core.errors import EncodeError, ExtractionError, ProbeError
from livecut.core.logging_utils import get_logger

logger = get_logger("livecut.media")

FRAME_PATTERN = "frame-%05d.jpg"


class Transcoder(Protocol):
    """转码器协议，便于在测试中注入假实现。"""

    def probe(self, path: str | Path) -> float:
        """返回视频时长（秒）。"""

    def extract_frames(self, path: str | Path, interval: float, output_dir: Path) -> List[Path]:
        """每 interval 秒抽一帧到 output_dir，按时间顺序返回文件列表。"""

    def extract(
        self,
        path: str | Path,
        start: float,
        duration: float,
        output: Path,
        preset: Mapping[str, str],
    ) -> None:
        ...

    def concatenate(self, files: Sequence[Path], output: Path, preset: Mapping[str, str]) -> None:
        ...


def _stderr_text(exc: ffmpeg.Error) -> str:
    if getattr(exc, "stderr", None):
        return exc.stderr.decode("utf-8", errors="replace")
    return ""


class FFmpegTranscoder:
    """基于 ffmpeg-python 的转码实现。"""

    def __init__(self, *, video_codec: str = "libx264", audio_codec: str = "aac") -> None:
        self.video_codec = video_codec
        self.audio_codec = audio_codec

    def probe(self, path: str | Path) -> float:
        try:
            info = ffmpeg.probe(str(path))
        except ffmpeg.Error as exc:
            raise ProbeError(f"ffprobe failed for {path}: {_stderr_text(exc)}") from exc
        except OSError as exc:
            raise ProbeError(f"ffprobe unavailable: {exc}") from exc

        raw = (info.get("format") or {}).get("duration")
        if raw is None:
            # 部分容器只在视频流上记录时长
            for stream in info.get("streams", []):
                if stream.get("codec_type") == "video" and stream.get("duration"):
                    raw = stream["duration"]
                    break
        try:
            duration = float(raw)
        except (TypeError, ValueError) as exc:
            raise ProbeError(f"cannot determine duration of {path}") from exc
        if duration <= 0:
            raise ProbeError(f"non-positive duration for {path}: {duration}")
        return duration

    def extract_frames(self, path: str | Path, interval: float, output_dir: Path) -> List[Path]:
        output_dir.mkdir(parents=True, exist_ok=True)
        stream = (
            ffmpeg.input(str(path))
            .filter("fps", fps=1.0 / interval)
            .output(str(output_dir / FRAME_PATTERN), **{"q:v": 2})
        )
        stream = ffmpeg.overwrite_output(stream)
        try:
            stream.run(quiet=True, capture_stdout=True, capture_stderr=True)
        except ffmpeg.Error as exc:
            raise ExtractionError(f"frame extraction failed for {path}:\n{_stderr_text(exc)}") from exc
        except OSError as exc:
            raise ExtractionError(f"ffmpeg unavailable: {exc}") from exc
        return sorted(output_dir.glob("frame-*.jpg"))

    def extract(
        self,
        path: str | Path,
        start: float,
        duration: float,
        output: Path,
        preset: Mapping[str, str],
    ) -> None:
        # 使用 -ss/-t 限定解码窗口，减轻资源占用
        segment_input = ffmpeg.input(str(path), ss=start, t=duration)
        out = ffmpeg.output(
            segment_input,
            str(output),
            vcodec=self.video_codec,
            acodec=self.audio_codec,
            video_bitrate=preset["video_bitrate"],
            audio_bitrate=preset["audio_bitrate"],
            **self._container_options(output),
        )
        self._run(ffmpeg.overwrite_output(out), f"cut {start:.3f}+{duration:.3f}s of {path}")

    def concatenate(self, files: Sequence[Path], output: Path, preset: Mapping[str, str]) -> None:
        if not files:
            raise EncodeError("nothing to concatenate")
        manifest = output.with_name(output.name + ".concat.txt")
        try:
            manifest.write_text("\n".join(f"file '{path}'" for path in files), encoding="utf-8")
        except OSError as exc:
            raise EncodeError(f"cannot write concat manifest {manifest}: {exc}") from exc
        try:
            merged = ffmpeg.input(str(manifest), format="concat", safe=0)
            out = ffmpeg.output(
                merged,
                str(output),
                vcodec=self.video_codec,
                acodec=self.audio_codec,
                video_bitrate=preset["video_bitrate"],
                audio_bitrate=preset["audio_bitrate"],
                **self._container_options(output),
            )
            self._run(ffmpeg.overwrite_output(out), f"concat {len(files)} files")
        finally:
            try:
                manifest.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("failed to remove concat manifest %s: %s", manifest, exc)

    @staticmethod
    def _container_options(output: Path) -> dict:
        if output.suffix.lower() in {".mp4", ".mov"}:
            return {"movflags": "+faststart"}
        return {}

    @staticmethod
    def _run(stream, description: str) -> None:
        try:
            stream.run(quiet=True, capture_stdout=True, capture_stderr=True)
        except ffmpeg.Error as exc:
            raise EncodeError(f"ffmpeg failed ({description}):\n{_stderr_text(exc)}") from exc
        except OSError as exc:
            raise EncodeError(f"ffmpeg unavailable: {exc}") from exc
