"""切分阶段内部使用的结构体。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List

from livecut.core import ProductTag, SegmentType


@dataclass(slots=True)
class Frame:
    """抽帧结果，只在分析过程中存在，不做持久化。"""

    video_id: str
    index: int
    timestamp: float
    data: bytes
    mime_type: str = "image/jpeg"


@dataclass(slots=True, frozen=True)
class ClassificationResult:
    """单帧分类结果。"""

    timestamp: float
    category: SegmentType
    tags: FrozenSet[str] = frozenset()
    confidence: float = 0.0


@dataclass(slots=True)
class SegmentDraft:
    """状态机产出的片段草稿：还没有 id，也没有写入 store。

    tags 保持首次出现的顺序，值为出现该标签的帧中的最高置信度。
    """

    type: SegmentType
    start_time: float
    end_time: float
    tags: Dict[str, float] = field(default_factory=dict)
    confidence: float = 0.0

    def absorb_tags(self, tags: Dict[str, float]) -> None:
        for name, score in tags.items():
            self.tags[name] = max(score, self.tags.get(name, score))

    def products(self) -> List[ProductTag]:
        return [ProductTag(name=name, confidence=score) for name, score in self.tags.items()]

    def to_dict(self) -> Dict[str, object]:
        return {
            "type": self.type.value,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "products": [product.to_dict() for product in self.products()],
            "confidence": self.confidence,
        }
