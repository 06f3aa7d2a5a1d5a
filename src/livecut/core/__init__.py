"""核心模块入口，聚合数据模型、错误类型与配置加载工具供各步骤复用。"""

from .datamodels import (
    ExportedSegment,
    ExportResult,
    ProductTag,
    Segment,
    SegmentType,
    VideoAsset,
    VideoStatus,
)
from .config import PipelineConfig, load_config
from .logging_utils import get_logger, setup_logging

__all__ = [
    "ExportedSegment",
    "ExportResult",
    "ProductTag",
    "Segment",
    "SegmentType",
    "VideoAsset",
    "VideoStatus",
    "PipelineConfig",
    "load_config",
    "get_logger",
    "setup_logging",
]
