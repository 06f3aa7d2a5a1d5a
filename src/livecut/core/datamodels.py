"""核心数据结构定义，覆盖视频、片段与导出记录。"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class VideoStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SegmentType(str, Enum):
    """片段内容类别，与视觉模型的 sceneType 一一对应。"""

    PRODUCT_EXPLANATION = "product_explanation"
    PRODUCT_SHOWCASE = "product_showcase"
    MATERIAL_SHOWCASE = "material_showcase"
    OTHER = "other"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class VideoAsset:
    """上传视频的记录；上传后只有状态/分析摘要/错误/时长会变化。"""

    id: str
    filename: str
    original_name: str
    mime_type: str
    size: int
    path: str
    uploaded_at: datetime
    status: VideoStatus = VideoStatus.PENDING
    duration: float = 0.0
    error: Optional[str] = None
    frames_analyzed: Optional[int] = None
    frames_failed: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """辅助序列化：方便写入 JSON 或返回给 API。"""

        payload = asdict(self)
        payload["uploaded_at"] = self.uploaded_at.isoformat()
        payload["status"] = self.status.value
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VideoAsset":
        """反序列化，默认接受 ISO8601 时间串。"""

        return cls(
            id=str(data["id"]),
            filename=str(data["filename"]),
            original_name=str(data.get("original_name", data["filename"])),
            mime_type=str(data.get("mime_type", "")),
            size=int(data.get("size", 0)),
            path=str(data["path"]),
            uploaded_at=datetime.fromisoformat(data["uploaded_at"]),
            status=VideoStatus(data.get("status", VideoStatus.PENDING.value)),
            duration=float(data.get("duration", 0.0)),
            error=data.get("error"),
            frames_analyzed=data.get("frames_analyzed"),
            frames_failed=data.get("frames_failed"),
        )


@dataclass(slots=True, frozen=True)
class ProductTag:
    name: str
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "confidence": self.confidence}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductTag":
        return cls(name=str(data["name"]), confidence=float(data.get("confidence", 0.0)))


@dataclass(slots=True, frozen=True)
class Segment:
    """视频中带标签的时间区间 [start_time, end_time)。

    Segment 不可变，修改通过 `dataclasses.replace` 生成新对象，
    这样未提交的修改不会污染 store 中已提交的列表。
    """

    id: str
    video_id: str
    start_time: float
    end_time: float
    type: SegmentType
    products: tuple[ProductTag, ...] = ()
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "video_id": self.video_id,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "type": self.type.value,
            "products": [product.to_dict() for product in self.products],
            "notes": self.notes,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Segment":
        return cls(
            id=str(data["id"]),
            video_id=str(data["video_id"]),
            start_time=float(data["start_time"]),
            end_time=float(data["end_time"]),
            type=SegmentType(data["type"]),
            products=tuple(ProductTag.from_dict(item) for item in data.get("products", [])),
            notes=data.get("notes"),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )


@dataclass(slots=True)
class ExportedSegment:
    id: str
    original_segment_id: str
    filename: str
    path: str
    size: int
    duration: float
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["created_at"] = self.created_at.isoformat()
        return payload


@dataclass(slots=True)
class ExportResult:
    """一次导出的汇总结果，不做持久化。"""

    video_id: str
    segments: List[ExportedSegment]
    total_size: int
    total_duration: float
    format: str
    quality: str
    download_url: Optional[str] = None
    merged_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "video_id": self.video_id,
            "segments": [segment.to_dict() for segment in self.segments],
            "total_size": self.total_size,
            "total_duration": self.total_duration,
            "format": self.format,
            "quality": self.quality,
            "download_url": self.download_url,
            "merged_path": self.merged_path,
        }
