"""片段分析模块，聚合抽帧、单帧分类与片段状态机。"""

from .analyzer import AnalysisResult, analyze_video
from .builder import build_raw_segments, build_segments, merge_adjacent_segments
from .classifier import CachedClassifier, FrameClassifier, VisionLLMClassifier, create_classifier
from .loader import effective_interval, sample_frames
from .types import ClassificationResult, Frame, SegmentDraft

__all__ = [
    "analyze_video",
    "AnalysisResult",
    "build_raw_segments",
    "build_segments",
    "merge_adjacent_segments",
    "CachedClassifier",
    "FrameClassifier",
    "VisionLLMClassifier",
    "create_classifier",
    "effective_interval",
    "sample_frames",
    "ClassificationResult",
    "Frame",
    "SegmentDraft",
]
