"""配置加载工具，集中管理仓内/环境参数。"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, MutableMapping, Sequence, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field

CONFIG_ENV_KEY = "LIVECUT_CONFIG_PATH"

# 导出质量预设：视频/音频码率
QUALITY_PRESETS: Dict[str, Dict[str, str]] = {
    "high": {"video_bitrate": "2000k", "audio_bitrate": "192k"},
    "medium": {"video_bitrate": "1000k", "audio_bitrate": "128k"},
    "low": {"video_bitrate": "500k", "audio_bitrate": "96k"},
}
EXPORT_FORMATS = ("mp4", "mov", "avi")


class SampleConfig(BaseModel):
    """抽帧参数：请求间隔与单视频最大帧数。"""

    interval_seconds: float = Field(1.0, gt=0)
    max_frames: int = Field(100, gt=0)


class ClassifierConfig(BaseModel):
    """视觉模型分类参数，API key 只从环境变量读取。"""

    backend: str = "vision_llm"
    api_url: str = "https://api.openai.com/v1/chat/completions"
    model: str = "gpt-4o-mini"
    timeout_seconds: float = Field(30.0, gt=0)
    batch_size: int = Field(5, gt=0)
    batch_pause_seconds: float = Field(1.0, ge=0)
    cache_size: int = Field(256, ge=0)
    temperature: float = 0.4
    max_tokens: int = 2048


class SegmentConfig(BaseModel):
    """片段合并参数。"""

    merge_threshold_seconds: float = Field(2.0, ge=0)


class ExportConfig(BaseModel):
    """导出阶段参数：默认格式/质量与转码并发。"""

    default_format: str = "mp4"
    default_quality: str = "high"
    max_workers: int = Field(2, gt=0)
    video_codec: str = "libx264"
    audio_codec: str = "aac"


class UploadConfig(BaseModel):
    """上传校验参数。"""

    max_video_bytes: int = 100 * 1024 * 1024
    supported_extensions: List[str] = Field(default_factory=lambda: [".mp4", ".mov", ".avi", ".mkv"])


class PipelineConfig(BaseModel):
    """聚合各阶段配置。"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    sample: SampleConfig = Field(default_factory=SampleConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    segment: SegmentConfig = Field(default_factory=SegmentConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
    upload: UploadConfig = Field(default_factory=UploadConfig)
    raw: Dict[str, Any] = Field(default_factory=dict, description="原始配置字典，便于调试。")

    def model_post_init(self, __context: Any) -> None:  # type: ignore[override]
        # 保留原始配置便于后续 diff/日志输出
        if not self.raw:
            self.raw = self.to_raw_dict()

    def to_raw_dict(self) -> Dict[str, Any]:
        """导出基础 dict，供日志输出使用。"""

        return {
            "sample": self.sample.model_dump(),
            "classifier": self.classifier.model_dump(),
            "segment": self.segment.model_dump(),
            "export": self.export.model_dump(),
            "upload": self.upload.model_dump(),
        }


def _default_config_path() -> Path:
    return Path(__file__).resolve().parents[3] / "configs" / "baseline.yaml"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
        if not isinstance(data, dict):
            raise ValueError(f"配置文件 {path} 内容需为字典")
        return data


ENV_OVERRIDE_MAP: Dict[str, Tuple[Sequence[str], Callable[[str], Any]]] = {
    "LIVECUT_SAMPLE_INTERVAL": (("sample", "interval_seconds"), float),
    "LIVECUT_MAX_FRAMES": (("sample", "max_frames"), int),
    "LIVECUT_MERGE_THRESHOLD": (("segment", "merge_threshold_seconds"), float),
    "LIVECUT_CLASSIFIER_BATCH": (("classifier", "batch_size"), int),
    "LIVECUT_CLASSIFIER_TIMEOUT": (("classifier", "timeout_seconds"), float),
    "LIVECUT_VISION_MODEL": (("classifier", "model"), str),
    "LIVECUT_EXPORT_WORKERS": (("export", "max_workers"), int),
}


def _apply_env_overrides(data: MutableMapping[str, Any], env: Mapping[str, str]) -> None:
    for env_key, (path, caster) in ENV_OVERRIDE_MAP.items():
        if env_key in env:
            _set_nested_value(data, path, caster(env[env_key]))


def _set_nested_value(target: MutableMapping[str, Any], path: Sequence[str], value: Any) -> None:
    cursor: MutableMapping[str, Any] = target
    *parents, last = path
    for key in parents:
        if key not in cursor or not isinstance(cursor[key], MutableMapping):
            cursor[key] = {}
        cursor = cursor[key]  # type: ignore[assignment]
    cursor[last] = value


def load_config(path: str | Path | None = None, *, env: Mapping[str, str] | None = None) -> PipelineConfig:
    """加载配置：优先显式路径，其次环境变量，最后回退默认 baseline。"""

    env_map = os.environ if env is None else env
    config_path = path or env_map.get(CONFIG_ENV_KEY)
    target_path = Path(config_path).expanduser() if config_path else _default_config_path()
    data = _load_yaml(target_path)
    _apply_env_overrides(data, env_map)

    cfg = PipelineConfig.model_validate({**data, "raw": data})
    return cfg
