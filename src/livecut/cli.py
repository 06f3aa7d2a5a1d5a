"""Livecut Typer CLI，便于在命令行触发分析、查询与导出。"""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer

from livecut.core import PipelineConfig, load_config, setup_logging
from livecut.core.errors import LivecutError
from livecut.export import Exporter
from livecut.media import FFmpegTranscoder
from livecut.segment import analyze_video, create_classifier
from livecut.server.workspace import open_workspace
from livecut.store import open_stores

app = typer.Typer(help="Livecut 开发 CLI")


@app.callback()
def main() -> None:
    """Livecut 顶层 CLI，用于展示子命令列表。"""

    return None


def _resolve_config(config_path: Optional[Path]) -> PipelineConfig:
    return load_config(config_path) if config_path else load_config()


def _transcoder(cfg: PipelineConfig) -> FFmpegTranscoder:
    return FFmpegTranscoder(video_codec=cfg.export.video_codec, audio_codec=cfg.export.audio_codec)


def _fail(exc: LivecutError) -> typer.Exit:
    typer.echo(f"{type(exc).__name__}: {exc}", err=True)
    return typer.Exit(code=1)


@app.command("analyze-video")
def analyze_video_cmd(
    video: Path = typer.Argument(..., exists=True, resolve_path=True, help="待分析视频路径"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="片段 JSON 输出路径"),
    video_id: Optional[str] = typer.Option(None, "--video-id", help="视频 ID，默认取文件名"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="自定义配置文件"),
    log_level: str = typer.Option("INFO", "--log-level", help="日志级别"),
) -> None:
    """抽帧 + 视觉分类 + 片段构建，输出片段草稿 JSON（不写入 store）。"""

    setup_logging(log_level)
    cfg = _resolve_config(config_path)
    target_video_id = video_id or video.stem
    try:
        result = analyze_video(
            target_video_id,
            video,
            cfg,
            classifier=create_classifier(cfg.classifier),
            transcoder=_transcoder(cfg),
        )
    except LivecutError as exc:
        raise _fail(exc) from exc

    output = output or Path(f"segments_{video.stem}.json")
    output.parent.mkdir(parents=True, exist_ok=True)
    payload = [draft.to_dict() for draft in result.segments]
    output.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    typer.echo(
        f"生成 {len(payload)} 个片段（{result.frames_total} 帧，失败 {result.frames_failed}），输出到 {output}"
    )


@app.command("list-segments")
def list_segments_cmd(
    video_id: str = typer.Argument(..., help="视频 ID"),
    workspace_root: Optional[Path] = typer.Option(None, "--workspace", help="工作区目录，默认读取 LIVECUT_WORKSPACE_ROOT"),
    as_json: bool = typer.Option(False, "--json", help="以 JSON 输出"),
    log_level: str = typer.Option("WARNING", "--log-level", help="日志级别"),
) -> None:
    """列出某个视频已存储的片段（按开始时间升序）。"""

    setup_logging(log_level)
    workspace = open_workspace(workspace_root)
    _, segments = open_stores(workspace.records_dir, workspace.segments_dir)
    try:
        items = segments.list_by_video(video_id)
    except LivecutError as exc:
        raise _fail(exc) from exc

    if as_json:
        typer.echo(json.dumps([item.to_dict() for item in items], ensure_ascii=False, indent=2))
        return
    if not items:
        typer.echo("暂无片段")
        return
    for item in items:
        typer.echo(f"{item.id}  {item.start_time:8.2f} - {item.end_time:8.2f}  {item.type.value}")


@app.command("export-segments")
def export_segments_cmd(
    video_id: str = typer.Argument(..., help="视频 ID"),
    segment_ids: List[str] = typer.Option(..., "--segment", "-s", help="待导出的片段 ID，可重复"),
    export_format: Optional[str] = typer.Option(None, "--format", help="输出格式：mp4/mov/avi"),
    quality: Optional[str] = typer.Option(None, "--quality", help="质量预设：high/medium/low"),
    merge: bool = typer.Option(False, "--merge", help="按时间顺序合并为单个文件"),
    workspace_root: Optional[Path] = typer.Option(None, "--workspace", help="工作区目录，默认读取 LIVECUT_WORKSPACE_ROOT"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="自定义配置文件"),
    log_level: str = typer.Option("INFO", "--log-level", help="日志级别"),
) -> None:
    """把已存储的片段导出为独立文件，可选合并。"""

    setup_logging(log_level)
    cfg = _resolve_config(config_path)
    workspace = open_workspace(workspace_root)
    videos, segments = open_stores(workspace.records_dir, workspace.segments_dir)
    exporter = Exporter(
        cfg,
        transcoder=_transcoder(cfg),
        videos=videos,
        segments=segments,
        output_dir=workspace.exports_dir,
    )
    try:
        result = exporter.export(
            video_id,
            segment_ids,
            format=export_format,
            quality=quality,
            merge_segments=merge,
        )
    except LivecutError as exc:
        raise _fail(exc) from exc

    for item in result.segments:
        typer.echo(f" - {item.original_segment_id} -> {item.path} ({item.duration:.2f}s)")
    typer.echo(f"导出完成：{len(result.segments)} 个片段，共 {result.total_duration:.2f}s")
    if result.merged_path:
        typer.echo(f"合并文件：{result.merged_path}")


if __name__ == "__main__":  # pragma: no cover
    app()
