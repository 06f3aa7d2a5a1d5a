"""配置加载器测试，覆盖默认、YAML 文件及环境变量覆盖场景。"""

from pathlib import Path

import pytest

from livecut.core import PipelineConfig, load_config
from livecut.core.config import QUALITY_PRESETS


def test_load_config_defaults() -> None:
    cfg = load_config(env={})

    assert isinstance(cfg, PipelineConfig)
    assert cfg.sample.interval_seconds == 1.0
    assert cfg.sample.max_frames == 100
    assert cfg.segment.merge_threshold_seconds == 2.0
    assert cfg.classifier.batch_size == 5
    assert cfg.export.default_format == "mp4"
    assert cfg.export.default_quality == "high"
    assert cfg.upload.max_video_bytes == 100 * 1024 * 1024


def test_missing_file_falls_back_to_defaults(tmp_path: Path) -> None:
    cfg = load_config(tmp_path / "absent.yaml", env={})

    assert cfg.classifier.timeout_seconds == 30.0
    assert cfg.export.max_workers == 2


def test_load_config_with_env_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    custom_cfg = tmp_path / "custom.yaml"
    custom_cfg.write_text(
        """
sample:
  interval_seconds: 2.0
segment:
  merge_threshold_seconds: 5
        """.strip()
    )

    monkeypatch.setenv("LIVECUT_SAMPLE_INTERVAL", "0.5")
    monkeypatch.setenv("LIVECUT_EXPORT_WORKERS", "4")

    cfg = load_config(custom_cfg)

    assert cfg.sample.interval_seconds == 0.5  # 环境变量覆盖文件值
    assert cfg.segment.merge_threshold_seconds == 5.0
    assert cfg.export.max_workers == 4


def test_config_path_from_env(tmp_path: Path) -> None:
    custom_cfg = tmp_path / "env.yaml"
    custom_cfg.write_text("classifier:\n  model: local-vision\n")

    cfg = load_config(env={"LIVECUT_CONFIG_PATH": str(custom_cfg)})

    assert cfg.classifier.model == "local-vision"


def test_non_mapping_config_is_rejected(tmp_path: Path) -> None:
    broken = tmp_path / "broken.yaml"
    broken.write_text("- just\n- a list\n")

    with pytest.raises(ValueError):
        load_config(broken, env={})


def test_quality_presets() -> None:
    assert QUALITY_PRESETS["high"] == {"video_bitrate": "2000k", "audio_bitrate": "192k"}
    assert QUALITY_PRESETS["medium"] == {"video_bitrate": "1000k", "audio_bitrate": "128k"}
    assert QUALITY_PRESETS["low"] == {"video_bitrate": "500k", "audio_bitrate": "96k"}
