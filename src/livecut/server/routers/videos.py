"""Video upload, listing and analysis endpoints."""

from __future__ import annotations

import math
import mimetypes
import uuid
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile

from livecut.core import Segment, VideoAsset, VideoStatus
from livecut.core.datamodels import utcnow
from livecut.core.errors import InvalidInputError, ResourceError, VideoNotFoundError
from livecut.core.logging_utils import get_logger
from livecut.core.scratch import remove_files

from ..state import ServerState, get_state

router = APIRouter(prefix="/api", tags=["videos"])
logger = get_logger("livecut.server.videos")

CHUNK_SIZE = 1024 * 1024


def _safe_filename(name: str | None) -> str:
    if not name:
        return ""
    return Path(name).name


def _store_upload(upload: UploadFile, destination: Path, max_bytes: int) -> int:
    """Copy the upload in chunks and reject it once it exceeds ``max_bytes``."""

    written = 0
    try:
        with destination.open("wb") as handle:
            while True:
                chunk = upload.file.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise InvalidInputError(f"video exceeds the {max_bytes} byte upload limit")
                handle.write(chunk)
    except InvalidInputError:
        remove_files([destination])
        raise
    except OSError as exc:
        remove_files([destination])
        raise ResourceError(f"cannot store upload: {exc}") from exc
    finally:
        upload.file.close()
    return written


def _require_video(state: ServerState, video_id: str) -> VideoAsset:
    record = state.videos.get(video_id)
    if record is None:
        raise VideoNotFoundError(video_id)
    return record


@router.post("/upload")
def upload_video(video: UploadFile = File(...), state: ServerState = Depends(get_state)) -> Dict[str, Any]:
    """Store an uploaded video and queue it for analysis."""

    original_name = _safe_filename(video.filename)
    if not original_name:
        raise InvalidInputError("a video file is required")
    extension = Path(original_name).suffix.lower()
    supported = [ext.lower() for ext in state.config.upload.supported_extensions]
    if extension not in supported:
        raise InvalidInputError(f"unsupported video type {extension or '(none)'}; expected one of {supported}")

    video_id = str(uuid.uuid4())
    filename = f"{video_id}{extension}"
    destination = state.workspace.uploads_dir / filename
    size = _store_upload(video, destination, state.config.upload.max_video_bytes)
    if size == 0:
        remove_files([destination])
        raise InvalidInputError("uploaded video is empty")

    record = VideoAsset(
        id=video_id,
        filename=filename,
        original_name=original_name,
        mime_type=video.content_type or mimetypes.guess_type(original_name)[0] or "application/octet-stream",
        size=size,
        path=str(destination),
        uploaded_at=utcnow(),
    )
    state.videos.put(record)
    logger.info("stored upload %s as %s (%d bytes)", original_name, video_id, size)
    state.tasks.enqueue([video_id])
    return _require_video(state, video_id).to_dict()


@router.get("/videos")
def list_videos(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[VideoStatus] = None,
    sort: Literal["uploaded_at", "size"] = "uploaded_at",
    state: ServerState = Depends(get_state),
) -> Dict[str, Any]:
    """Return uploaded videos, newest (or largest) first."""

    videos: List[VideoAsset] = state.videos.list()
    if status is not None:
        videos = [video for video in videos if video.status == status]
    if sort == "size":
        videos.sort(key=lambda video: video.size, reverse=True)
    else:
        videos.sort(key=lambda video: video.uploaded_at, reverse=True)
    start = (page - 1) * limit
    return {
        "videos": [video.to_dict() for video in videos[start : start + limit]],
        "pagination": {
            "total": len(videos),
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(len(videos) / limit),
        },
    }


@router.get("/videos/{video_id}")
def get_video(video_id: str, state: ServerState = Depends(get_state)) -> Dict[str, Any]:
    return _require_video(state, video_id).to_dict()


@router.get("/videos/{video_id}/segments")
def list_video_segments(video_id: str, state: ServerState = Depends(get_state)) -> List[Dict[str, Any]]:
    """Segments of one video in ascending start order."""

    segments: List[Segment] = state.segments.list_by_video(video_id)
    return [segment.to_dict() for segment in segments]


@router.post("/videos/{video_id}/analyze")
def analyze_video(video_id: str, state: ServerState = Depends(get_state)) -> Dict[str, Any]:
    """Queue (or re-queue) analysis for one video."""

    _require_video(state, video_id)
    return state.tasks.enqueue([video_id])


@router.post("/videos/{video_id}/cancel")
def cancel_analysis(video_id: str, state: ServerState = Depends(get_state)) -> Dict[str, Any]:
    _require_video(state, video_id)
    cancelled = state.tasks.cancel(video_id)
    return {"video_id": video_id, "cancelled": cancelled, **state.tasks.snapshot()}
