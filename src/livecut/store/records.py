"""视频记录的持久化边界：简单的键值存储，每个视频一个 JSON 文件。"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, List, Optional, Protocol

from livecut.core import VideoAsset
from livecut.core.errors import StorageError


class VideoRecordStore(Protocol):
    def get(self, video_id: str) -> Optional[VideoAsset]:
        ...

    def put(self, record: VideoAsset) -> None:
        ...

    def list(self) -> List[VideoAsset]:
        ...


def atomic_write_json(path: Path, payload: Any) -> None:
    """先写 .tmp 再 replace，避免进程中断留下半截文件。"""

    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp_path.replace(path)
    except OSError as exc:
        raise StorageError(f"cannot write {path}: {exc}") from exc


class JsonVideoRecordStore:
    """目录下每个视频一个 `<id>.json`。"""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, video_id: str) -> Path:
        return self.root / f"{Path(video_id).name}.json"

    def get(self, video_id: str) -> Optional[VideoAsset]:
        path = self._path(video_id)
        if not path.exists():
            return None
        return self._read(path)

    def put(self, record: VideoAsset) -> None:
        with self._lock:
            atomic_write_json(self._path(record.id), record.to_dict())

    def list(self) -> List[VideoAsset]:
        records: List[VideoAsset] = []
        for path in sorted(self.root.glob("*.json")):
            record = self._read(path)
            if record is not None:
                records.append(record)
        return records

    @staticmethod
    def _read(path: Path) -> Optional[VideoAsset]:
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return None
        except OSError as exc:
            raise StorageError(f"cannot read {path}: {exc}") from exc
        return VideoAsset.from_dict(payload)
