"""把逐帧分类流收敛为片段：状态机 + 同类相邻合并，均为纯函数。"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence

from .types import ClassificationResult, SegmentDraft

DEFAULT_MERGE_THRESHOLD = 2.0


def _frame_tags(result: ClassificationResult) -> Dict[str, float]:
    # 排序后折叠，保证同一输入流得到完全一致的标签顺序
    return {name: result.confidence for name in sorted(result.tags)}


def build_raw_segments(
    results: Iterable[Optional[ClassificationResult]],
    *,
    step: float,
) -> List[SegmentDraft]:
    """状态机：按时间顺序消费分类结果。

    - None 表示该帧没有可用结果（gap），既不结束也不延长当前片段；
    - 类型相同：end_time 延长到该帧时间 + step，合并标签，置信度取最大；
    - 类型变化：当前片段结束于 min(已覆盖终点, 新帧时间)，开启新片段。
      若类型变化前有 gap，片段停在最后一个已分类帧的 timestamp + step，
      不会延伸到新帧起点；gap 区间不归入任何片段。
    """

    if step <= 0:
        raise ValueError("step must be positive")

    ordered = sorted((r for r in results if r is not None), key=lambda r: r.timestamp)
    drafts: List[SegmentDraft] = []
    current: Optional[SegmentDraft] = None

    for result in ordered:
        if current is None:
            current = _open(result, step)
            continue
        if result.category == current.type:
            current.end_time = result.timestamp + step
            current.absorb_tags(_frame_tags(result))
            current.confidence = max(current.confidence, result.confidence)
            continue
        current.end_time = min(current.end_time, result.timestamp)
        drafts.append(current)
        current = _open(result, step)

    if current is not None:
        drafts.append(current)
    return drafts


def _open(result: ClassificationResult, step: float) -> SegmentDraft:
    return SegmentDraft(
        type=result.category,
        start_time=result.timestamp,
        end_time=result.timestamp + step,
        tags=_frame_tags(result),
        confidence=result.confidence,
    )


def merge_adjacent_segments(
    drafts: Sequence[SegmentDraft],
    *,
    threshold: float = DEFAULT_MERGE_THRESHOLD,
) -> List[SegmentDraft]:
    """合并相邻且同类型、间隔不超过 threshold 的片段。

    只比较列表中紧挨着的两个片段，夹在中间的异类片段不会被吞掉。
    """

    merged: List[SegmentDraft] = []
    for draft in drafts:
        previous = merged[-1] if merged else None
        if (
            previous is not None
            and previous.type == draft.type
            and draft.start_time - previous.end_time <= threshold
        ):
            previous.end_time = max(previous.end_time, draft.end_time)
            previous.absorb_tags(draft.tags)
            previous.confidence = max(previous.confidence, draft.confidence)
            continue
        merged.append(
            SegmentDraft(
                type=draft.type,
                start_time=draft.start_time,
                end_time=draft.end_time,
                tags=dict(draft.tags),
                confidence=draft.confidence,
            )
        )
    return merged


def build_segments(
    results: Iterable[Optional[ClassificationResult]],
    *,
    duration: float,
    step: float,
    merge_threshold: float = DEFAULT_MERGE_THRESHOLD,
) -> List[SegmentDraft]:
    """完整流程：状态机 -> 合并 -> 按视频时长裁剪终点。"""

    raw = build_raw_segments(results, step=step)
    merged = merge_adjacent_segments(raw, threshold=merge_threshold)
    clamped: List[SegmentDraft] = []
    for draft in merged:
        draft.end_time = min(draft.end_time, duration)
        if draft.end_time > draft.start_time:
            clamped.append(draft)
    return clamped
