"""转码边界：ffprobe/ffmpeg 封装。"""

from .transcoder import FFmpegTranscoder, Transcoder

__all__ = ["FFmpegTranscoder", "Transcoder"]
