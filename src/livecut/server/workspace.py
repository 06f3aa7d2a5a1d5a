"""Workspace paths and initialization helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

WORKSPACE_ENV_KEY = "LIVECUT_WORKSPACE_ROOT"


def resolve_workspace_root() -> Path:
    env_value = os.getenv(WORKSPACE_ENV_KEY)
    if env_value:
        return Path(env_value).expanduser().resolve()
    return Path(__file__).resolve().parents[3] / "workspace"


@dataclass(frozen=True)
class Workspace:
    root: Path

    @property
    def uploads_dir(self) -> Path:
        return self.root / "uploads"

    @property
    def exports_dir(self) -> Path:
        return self.root / "exports"

    @property
    def records_dir(self) -> Path:
        return self.root / "records"

    @property
    def segments_dir(self) -> Path:
        return self.root / "segments"

    def ensure_layout(self) -> None:
        """Ensure workspace directories exist."""

        for path in (
            self.root,
            self.uploads_dir,
            self.exports_dir,
            self.records_dir,
            self.segments_dir,
        ):
            path.mkdir(parents=True, exist_ok=True)


def open_workspace(root: Path | None = None) -> Workspace:
    workspace = Workspace(Path(root) if root is not None else resolve_workspace_root())
    workspace.ensure_layout()
    return workspace
