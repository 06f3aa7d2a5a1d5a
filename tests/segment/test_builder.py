"""片段状态机与合并逻辑测试。"""

import pytest

from livecut.core import SegmentType
from livecut.segment import build_raw_segments, build_segments, merge_adjacent_segments
from livecut.segment.types import ClassificationResult, SegmentDraft

PE = SegmentType.PRODUCT_EXPLANATION
PS = SegmentType.PRODUCT_SHOWCASE
MS = SegmentType.MATERIAL_SHOWCASE


def _result(ts, category, tags=(), confidence=0.9):
    return ClassificationResult(timestamp=float(ts), category=category, tags=frozenset(tags), confidence=confidence)


def _spans(drafts):
    return [(d.type, d.start_time, d.end_time) for d in drafts]


def test_type_changes_close_runs() -> None:
    results = [_result(0, PE), _result(1, PE), _result(2, PS), _result(3, PS), _result(4, PE)]

    drafts = build_segments(results, duration=5.0, step=1.0)

    assert _spans(drafts) == [(PE, 0.0, 2.0), (PS, 2.0, 4.0), (PE, 4.0, 5.0)]


def test_sandwiched_run_is_kept() -> None:
    results = [_result(0, PE), _result(1, MS), _result(2, PE)]

    drafts = build_segments(results, duration=3.0, step=1.0, merge_threshold=10.0)

    assert [d.type for d in drafts] == [PE, MS, PE]


def test_gap_neither_closes_nor_extends() -> None:
    results = [_result(0, PE), None, _result(2, PE)]

    drafts = build_raw_segments(results, step=1.0)

    assert _spans(drafts) == [(PE, 0.0, 3.0)]


def test_gap_before_type_change_keeps_covered_end() -> None:
    results = [_result(0, PE), None, _result(2, PS)]

    drafts = build_raw_segments(results, step=1.0)

    assert _spans(drafts) == [(PE, 0.0, 1.0), (PS, 2.0, 3.0)]


def test_output_is_ordered_and_non_overlapping() -> None:
    categories = [PE, PE, PS, MS, MS, PE, SegmentType.OTHER, PS, PS, PE]
    results = [_result(ts, cat) for ts, cat in reversed(list(enumerate(categories)))]

    drafts = build_segments(results, duration=10.0, step=1.0)

    for draft in drafts:
        assert draft.end_time > draft.start_time
    for previous, current in zip(drafts, drafts[1:]):
        assert previous.start_time < current.start_time
        assert previous.end_time <= current.start_time


def test_repeated_runs_are_identical() -> None:
    results = [
        _result(0, PS, tags={"口红", "粉底"}, confidence=0.6),
        _result(1, PS, tags={"粉底", "眼影"}, confidence=0.8),
        _result(2, PE, tags={"口红"}),
    ]

    first = build_segments(results, duration=3.0, step=1.0)
    second = build_segments(results, duration=3.0, step=1.0)

    assert first == second
    assert list(first[0].tags) == ["口红", "粉底", "眼影"]
    assert first[0].tags["粉底"] == 0.8
    assert first[0].confidence == 0.8


def test_end_is_clamped_to_duration() -> None:
    results = [_result(0, PE), _result(9, PE)]

    drafts = build_segments(results, duration=9.5, step=1.0)

    assert _spans(drafts) == [(PE, 0.0, 9.5)]


def test_empty_stream_yields_nothing() -> None:
    assert build_segments([], duration=10.0, step=1.0) == []
    assert build_segments([None, None], duration=10.0, step=1.0) == []


def test_non_positive_step_is_rejected() -> None:
    with pytest.raises(ValueError):
        build_raw_segments([_result(0, PE)], step=0)


def test_merge_coalesces_close_same_type_drafts() -> None:
    drafts = [
        SegmentDraft(type=PE, start_time=0.0, end_time=2.0, tags={"口红": 0.5}, confidence=0.5),
        SegmentDraft(type=PE, start_time=3.5, end_time=5.0, tags={"口红": 0.9}, confidence=0.9),
        SegmentDraft(type=PE, start_time=8.0, end_time=9.0),
    ]

    merged = merge_adjacent_segments(drafts, threshold=2.0)

    assert _spans(merged) == [(PE, 0.0, 5.0), (PE, 8.0, 9.0)]
    assert merged[0].tags == {"口红": 0.9}
    assert merged[0].confidence == 0.9
    assert drafts[0].end_time == 2.0  # 输入不被修改


def test_merge_does_not_cross_other_types() -> None:
    drafts = [
        SegmentDraft(type=PE, start_time=0.0, end_time=1.0),
        SegmentDraft(type=PS, start_time=1.0, end_time=2.0),
        SegmentDraft(type=PE, start_time=2.0, end_time=3.0),
    ]

    merged = merge_adjacent_segments(drafts, threshold=5.0)

    assert _spans(merged) == _spans(drafts)
