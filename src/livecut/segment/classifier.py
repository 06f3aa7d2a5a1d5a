"""单帧分类：视觉大模型后端 + 严格 schema 解码 + 结果缓存。"""

from __future__ import annotations

import base64
import hashlib
import json
import os
import re
import threading
from collections import OrderedDict
from dataclasses import replace
from typing import Any, List, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from livecut.core import SegmentType
from livecut.core.config import ClassifierConfig
from livecut.core.errors import ClassificationError, ParseError

from .types import ClassificationResult, Frame

API_KEY_ENV = "LIVECUT_VISION_API_KEY"
_CODE_BLOCK_PATTERN = re.compile(r"^```(?:json)?\s*(?P<body>.+?)\s*```$", re.DOTALL)

CLASSIFY_PROMPT = (
    "你是直播带货视频的画面分析助手。请判断这一帧属于哪类场景并识别画面中的商品。"
    "sceneType 只能是 product_explanation（主播讲解商品）、product_showcase（近景展示商品）、"
    "material_showcase（展示材质/细节）或 other。"
    "仅输出 JSON，格式："
    '{"sceneType": "...", "confidence": 0.0, '
    '"objects": [{"label": "商品名", "confidence": 0.0}], '
    '"actions": [{"label": "动作", "confidence": 0.0}]}。'
    "confidence 取值 0-1，没有识别到的内容返回空数组。"
)


class FrameClassifier(Protocol):
    """分类后端协议：可由云端模型、mock 或缓存实现。"""

    backend_name: str

    def classify(self, frame: Frame) -> ClassificationResult:
        ...


class _Detection(BaseModel):
    model_config = ConfigDict(extra="ignore")

    label: str = Field(..., min_length=1)
    confidence: float = Field(..., ge=0.0, le=1.0)


class FramePayload(BaseModel):
    """模型输出的结构化 schema，字段缺失或越界一律视为解析失败。"""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    scene_type: SegmentType = Field(..., alias="sceneType")
    confidence: float = Field(..., ge=0.0, le=1.0)
    objects: List[_Detection] = Field(default_factory=list)
    actions: List[_Detection] = Field(default_factory=list)


def decode_classification(content: str, timestamp: float) -> ClassificationResult:
    """把模型文本解码为 ClassificationResult，失败抛 ParseError，不做猜测。"""

    text = (content or "").strip()
    match = _CODE_BLOCK_PATTERN.match(text)
    if match:
        text = match.group("body").strip()
    if not text:
        raise ParseError("empty model response")
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"model response is not JSON: {exc}") from exc
    try:
        payload = FramePayload.model_validate(raw)
    except ValidationError as exc:
        raise ParseError(f"model response does not match schema: {exc}") from exc

    tags = frozenset(obj.label.strip() for obj in payload.objects if obj.label.strip())
    return ClassificationResult(
        timestamp=timestamp,
        category=payload.scene_type,
        tags=tags,
        confidence=payload.confidence,
    )


class _Message(BaseModel):
    model_config = ConfigDict(extra="ignore")

    content: str = Field(..., min_length=1)


class _Choice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: _Message


class ChatEnvelope(BaseModel):
    """chat/completions 外层响应，只取第一个 choice 的文本。"""

    model_config = ConfigDict(extra="ignore")

    choices: List[_Choice] = Field(..., min_length=1)


def _extract_content(data: Any) -> str:
    try:
        envelope = ChatEnvelope.model_validate(data)
    except ValidationError as exc:
        raise ParseError(f"model response envelope does not match schema: {exc}") from exc
    content = envelope.choices[0].message.content
    if not content.strip():
        raise ParseError("model response has empty content")
    return content


class VisionLLMClassifier:
    """调用 OpenAI 兼容的 chat/completions 接口做单帧分类。"""

    backend_name = "vision_llm"

    def __init__(self, config: ClassifierConfig, *, api_key: str) -> None:
        self.config = config
        self._api_key = api_key

    def classify(self, frame: Frame) -> ClassificationResult:
        encoded = base64.b64encode(frame.data).decode("ascii")
        payload = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": "You label livestream shopping video frames."},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": CLASSIFY_PROMPT},
                        {"type": "image_url", "image_url": {"url": f"data:{frame.mime_type};base64,{encoded}"}},
                    ],
                },
            ],
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "response_format": {"type": "json_object"},
        }
        try:
            with httpx.Client(timeout=self.config.timeout_seconds) as client:
                resp = client.post(
                    self.config.api_url,
                    headers={"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"},
                    json=payload,
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPError as exc:
            raise ClassificationError(f"vision model request failed at t={frame.timestamp:.2f}s: {exc}") from exc
        except ValueError as exc:
            raise ParseError(f"vision model returned invalid JSON envelope: {exc}") from exc

        return decode_classification(_extract_content(data), frame.timestamp)


class CachedClassifier:
    """按帧内容哈希缓存分类结果，容量满后淘汰最早写入的条目。"""

    def __init__(self, inner: FrameClassifier, *, max_items: int = 256) -> None:
        self.inner = inner
        self.max_items = max_items
        self.backend_name = f"cached::{inner.backend_name}"
        self._items: OrderedDict[str, ClassificationResult] = OrderedDict()
        self._lock = threading.Lock()

    def classify(self, frame: Frame) -> ClassificationResult:
        key = hashlib.sha1(frame.data).hexdigest()
        with self._lock:
            cached = self._items.get(key)
        if cached is not None:
            return replace(cached, timestamp=frame.timestamp)

        result = self.inner.classify(frame)
        if self.max_items > 0:
            with self._lock:
                if len(self._items) >= self.max_items:
                    self._items.popitem(last=False)
                self._items[key] = result
        return result


def create_classifier(config: ClassifierConfig) -> FrameClassifier:
    """根据配置创建分类器；未配置 API key 时直接失败。"""

    backend = config.backend.lower()
    if backend != "vision_llm":
        raise ValueError(f"未知 classifier backend: {config.backend}")
    api_key = os.getenv(API_KEY_ENV)
    if not api_key:
        raise ClassificationError(f"{API_KEY_ENV} is not set")
    classifier: FrameClassifier = VisionLLMClassifier(config, api_key=api_key)
    if config.cache_size > 0:
        classifier = CachedClassifier(classifier, max_items=config.cache_size)
    return classifier
