"""Shared runtime state for the server."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Request

from livecut.core import PipelineConfig
from livecut.export import Exporter
from livecut.media import FFmpegTranscoder, Transcoder
from livecut.segment import FrameClassifier, create_classifier
from livecut.store import JsonVideoRecordStore, SegmentStore, open_stores

from .tasks import AnalysisTaskManager
from .workspace import Workspace


@dataclass
class ServerState:
    workspace: Workspace
    config: PipelineConfig
    videos: JsonVideoRecordStore
    segments: SegmentStore
    transcoder: Transcoder
    exporter: Exporter
    tasks: AnalysisTaskManager


def build_state(
    workspace: Workspace,
    config: PipelineConfig,
    *,
    transcoder: Optional[Transcoder] = None,
    classifier_factory: Optional[Callable[[], FrameClassifier]] = None,
    autostart: bool = True,
) -> ServerState:
    """Wire stores, transcoder, exporter and the analysis queue for one workspace."""

    videos, segments = open_stores(workspace.records_dir, workspace.segments_dir)
    if transcoder is None:
        transcoder = FFmpegTranscoder(
            video_codec=config.export.video_codec,
            audio_codec=config.export.audio_codec,
        )
    if classifier_factory is None:

        def classifier_factory() -> FrameClassifier:
            return create_classifier(config.classifier)

    exporter = Exporter(
        config,
        transcoder=transcoder,
        videos=videos,
        segments=segments,
        output_dir=workspace.exports_dir,
    )
    tasks = AnalysisTaskManager(
        config,
        videos=videos,
        segments=segments,
        transcoder=transcoder,
        classifier_factory=classifier_factory,
        autostart=autostart,
    )
    return ServerState(
        workspace=workspace,
        config=config,
        videos=videos,
        segments=segments,
        transcoder=transcoder,
        exporter=exporter,
        tasks=tasks,
    )


def get_state(request: Request) -> ServerState:
    return request.app.state.livecut
