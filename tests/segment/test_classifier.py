"""单帧分类测试：schema 解码、HTTP 后端（dummy client）与缓存。"""

import json

import httpx
import pytest

from livecut.core import SegmentType
from livecut.core.config import ClassifierConfig
from livecut.core.errors import ClassificationError, ParseError
from livecut.segment import CachedClassifier, VisionLLMClassifier, create_classifier
from livecut.segment.classifier import API_KEY_ENV, decode_classification
from livecut.segment.types import ClassificationResult, Frame


def _content(**overrides):
    payload = {
        "sceneType": "product_showcase",
        "confidence": 0.85,
        "objects": [{"label": " 口红 ", "confidence": 0.9}, {"label": "粉底", "confidence": 0.7}],
        "actions": [{"label": "试色", "confidence": 0.6}],
    }
    payload.update(overrides)
    return json.dumps(payload, ensure_ascii=False)


def test_decode_valid_payload() -> None:
    result = decode_classification(_content(), timestamp=3.0)

    assert result.timestamp == 3.0
    assert result.category is SegmentType.PRODUCT_SHOWCASE
    assert result.tags == frozenset({"口红", "粉底"})
    assert result.confidence == 0.85


def test_decode_strips_code_fence() -> None:
    fenced = f"```json\n{_content(sceneType='other')}\n```"

    result = decode_classification(fenced, timestamp=0.0)

    assert result.category is SegmentType.OTHER


@pytest.mark.parametrize(
    "content",
    [
        "",
        "not json at all",
        _content(sceneType="cooking_show"),
        _content(confidence=1.5),
        json.dumps({"confidence": 0.5}),
    ],
)
def test_decode_rejects_bad_payloads(content: str) -> None:
    with pytest.raises(ParseError):
        decode_classification(content, timestamp=0.0)


class DummyResponse:
    def __init__(self, data, status_code: int = 200) -> None:
        self._data = data
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            request = httpx.Request("POST", "https://vision.test")
            raise httpx.HTTPStatusError("server error", request=request, response=httpx.Response(self.status_code))

    def json(self):
        if isinstance(self._data, str):
            raise json.JSONDecodeError("bad envelope", self._data, 0)
        return self._data


class DummyClient:
    calls = []
    response = None

    def __init__(self, timeout=None) -> None:
        self.timeout = timeout

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        return None

    def post(self, url, headers=None, json=None):
        DummyClient.calls.append({"url": url, "headers": headers, "json": json, "timeout": self.timeout})
        if isinstance(DummyClient.response, Exception):
            raise DummyClient.response
        return DummyClient.response


@pytest.fixture
def dummy_client(monkeypatch: pytest.MonkeyPatch):
    DummyClient.calls = []
    DummyClient.response = None
    monkeypatch.setattr("livecut.segment.classifier.httpx.Client", DummyClient)
    return DummyClient


def _frame(data: bytes = b"jpeg-bytes", timestamp: float = 2.0) -> Frame:
    return Frame(video_id="vid", index=0, timestamp=timestamp, data=data)


def test_vision_classifier_posts_frame(dummy_client) -> None:
    dummy_client.response = DummyResponse({"choices": [{"message": {"content": _content()}}]})
    classifier = VisionLLMClassifier(ClassifierConfig(model="vision-test", timeout_seconds=7), api_key="secret")

    result = classifier.classify(_frame())

    assert result.category is SegmentType.PRODUCT_SHOWCASE
    assert result.timestamp == 2.0
    call = dummy_client.calls[0]
    assert call["timeout"] == 7
    assert call["headers"]["Authorization"] == "Bearer secret"
    assert call["json"]["model"] == "vision-test"
    image = call["json"]["messages"][1]["content"][1]["image_url"]["url"]
    assert image.startswith("data:image/jpeg;base64,")


def test_vision_classifier_maps_transport_errors(dummy_client) -> None:
    dummy_client.response = httpx.ConnectError("connection refused")
    classifier = VisionLLMClassifier(ClassifierConfig(), api_key="secret")

    with pytest.raises(ClassificationError):
        classifier.classify(_frame())


def test_vision_classifier_maps_status_errors(dummy_client) -> None:
    dummy_client.response = DummyResponse({}, status_code=503)
    classifier = VisionLLMClassifier(ClassifierConfig(), api_key="secret")

    with pytest.raises(ClassificationError):
        classifier.classify(_frame())


@pytest.mark.parametrize(
    "data",
    [
        "<html>",
        [],
        {"choices": []},
        {"choices": ["oops"]},
        {"choices": [{"message": "oops"}]},
        {"choices": [{"message": {"content": 5}}]},
        {"choices": [{"message": {"content": ""}}]},
        {"choices": [{"message": {"content": "   "}}]},
    ],
)
def test_vision_classifier_rejects_bad_envelopes(dummy_client, data) -> None:
    dummy_client.response = DummyResponse(data)
    classifier = VisionLLMClassifier(ClassifierConfig(), api_key="secret")

    with pytest.raises(ParseError):
        classifier.classify(_frame())


class CountingClassifier:
    backend_name = "counting"

    def __init__(self) -> None:
        self.calls = 0

    def classify(self, frame: Frame) -> ClassificationResult:
        self.calls += 1
        return ClassificationResult(timestamp=frame.timestamp, category=SegmentType.OTHER, confidence=0.5)


def test_cache_reuses_results_by_content() -> None:
    inner = CountingClassifier()
    cached = CachedClassifier(inner, max_items=4)

    first = cached.classify(_frame(timestamp=1.0))
    second = cached.classify(_frame(timestamp=5.0))

    assert inner.calls == 1
    assert first.timestamp == 1.0
    assert second.timestamp == 5.0
    assert cached.backend_name == "cached::counting"


def test_cache_evicts_oldest_entry() -> None:
    inner = CountingClassifier()
    cached = CachedClassifier(inner, max_items=1)

    cached.classify(_frame(b"a"))
    cached.classify(_frame(b"b"))
    cached.classify(_frame(b"a"))

    assert inner.calls == 3


def test_create_classifier_requires_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(API_KEY_ENV, raising=False)

    with pytest.raises(ClassificationError):
        create_classifier(ClassifierConfig())


def test_create_classifier_wraps_cache(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(API_KEY_ENV, "secret")

    assert isinstance(create_classifier(ClassifierConfig()), CachedClassifier)
    assert isinstance(create_classifier(ClassifierConfig(cache_size=0)), VisionLLMClassifier)
    with pytest.raises(ValueError):
        create_classifier(ClassifierConfig(backend="unknown"))
