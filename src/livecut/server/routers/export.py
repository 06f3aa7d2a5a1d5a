"""Export endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..state import ServerState, get_state

router = APIRouter(prefix="/api", tags=["export"])


class ExportSegmentsRequest(BaseModel):
    video_id: str = Field(..., min_length=1)
    segment_ids: List[str] = Field(..., min_length=1)
    format: Optional[str] = None
    quality: Optional[str] = None
    merge_segments: bool = False


@router.post("/export-segments")
def export_segments(request: ExportSegmentsRequest, state: ServerState = Depends(get_state)) -> Dict[str, Any]:
    """Cut the requested segments into files, optionally merged into one download."""

    result = state.exporter.export(
        request.video_id,
        request.segment_ids,
        format=request.format,
        quality=request.quality,
        merge_segments=request.merge_segments,
    )
    return result.to_dict()
