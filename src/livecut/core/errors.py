"""错误分类：NotFound / InvalidInput / Conflict / ExternalService / Resource。"""

from __future__ import annotations


class LivecutError(Exception):
    """所有业务异常的基类，server 层据此映射 HTTP 状态码。"""


class NotFoundError(LivecutError):
    pass


class VideoNotFoundError(NotFoundError):
    def __init__(self, video_id: str) -> None:
        super().__init__(f"video not found: {video_id}")
        self.video_id = video_id


class SegmentNotFoundError(NotFoundError):
    def __init__(self, segment_id: str) -> None:
        super().__init__(f"segment not found: {segment_id}")
        self.segment_id = segment_id


class SegmentsNotFoundError(NotFoundError):
    """导出请求中的片段 id 全部无法解析。"""


class InvalidInputError(LivecutError):
    pass


class InvalidRangeError(InvalidInputError):
    def __init__(self, start_time: float, end_time: float) -> None:
        super().__init__(f"invalid time range: [{start_time}, {end_time})")
        self.start_time = start_time
        self.end_time = end_time


class ConflictError(LivecutError):
    pass


class OverlapConflictError(ConflictError):
    def __init__(self, start_time: float, end_time: float, existing_id: str) -> None:
        super().__init__(f"segment [{start_time}, {end_time}) overlaps segment {existing_id}")
        self.existing_id = existing_id


class ExternalServiceError(LivecutError):
    """外部依赖（视觉模型、ffmpeg）失败。"""


class ProbeError(ExternalServiceError):
    pass


class ExtractionError(ExternalServiceError):
    pass


class EncodeError(ExternalServiceError):
    pass


class SegmentExportError(EncodeError):
    """单个片段导出失败，携带片段 id 便于调用方定位。"""

    def __init__(self, segment_id: str, message: str) -> None:
        super().__init__(f"export failed for segment {segment_id}: {message}")
        self.segment_id = segment_id


class ClassificationError(ExternalServiceError):
    pass


class ParseError(ExternalServiceError):
    """模型返回内容不符合结构化 schema。"""


class ResourceError(LivecutError):
    pass


class StorageError(ResourceError):
    pass


class OperationCancelled(LivecutError):
    pass
