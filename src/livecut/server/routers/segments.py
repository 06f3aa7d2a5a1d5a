"""Segment CRUD endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, ConfigDict, Field

from livecut.core import SegmentType
from livecut.core.errors import SegmentNotFoundError

from ..state import ServerState, get_state

router = APIRouter(prefix="/api", tags=["segments"])


class ProductTagModel(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    name: str = Field(..., min_length=1)
    confidence: float = Field(0.0, ge=0.0, le=1.0)


class CreateSegmentRequest(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    video_id: str = Field(..., min_length=1)
    start_time: float
    end_time: float
    type: SegmentType
    products: List[ProductTagModel] = Field(default_factory=list)
    notes: Optional[str] = None


class UpdateSegmentRequest(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    start_time: Optional[float] = None
    end_time: Optional[float] = None
    type: Optional[SegmentType] = None
    products: Optional[List[ProductTagModel]] = None
    notes: Optional[str] = None


@router.post("/segments", status_code=201)
def create_segment(request: CreateSegmentRequest, state: ServerState = Depends(get_state)) -> Dict[str, Any]:
    segment = state.segments.create(
        request.video_id,
        request.start_time,
        request.end_time,
        request.type,
        products=[product.model_dump() for product in request.products],
        notes=request.notes,
    )
    return segment.to_dict()


@router.get("/segments/{segment_id}")
def get_segment(segment_id: str, state: ServerState = Depends(get_state)) -> Dict[str, Any]:
    segment = state.segments.get_by_id(segment_id)
    if segment is None:
        raise SegmentNotFoundError(segment_id)
    return segment.to_dict()


@router.put("/segments/{segment_id}")
def update_segment(
    segment_id: str,
    request: UpdateSegmentRequest,
    state: ServerState = Depends(get_state),
) -> Dict[str, Any]:
    """Apply only the fields present in the request body; null clears notes only."""

    changes = {
        name: value
        for name, value in request.model_dump(exclude_unset=True).items()
        if value is not None or name == "notes"
    }
    segment = state.segments.update(segment_id, changes)
    return segment.to_dict()


@router.delete("/segments/{segment_id}", status_code=204)
def delete_segment(segment_id: str, state: ServerState = Depends(get_state)) -> Response:
    state.segments.delete(segment_id)
    return Response(status_code=204)
