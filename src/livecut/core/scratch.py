"""临时目录/文件的作用域管理：无论成功失败都清理，清理失败只记日志。"""

from __future__ import annotations

import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator

from .errors import ResourceError
from .logging_utils import get_logger

logger = get_logger("livecut.scratch")


@contextmanager
def scratch_dir(prefix: str = "livecut_") -> Iterator[Path]:
    try:
        path = Path(tempfile.mkdtemp(prefix=prefix))
    except OSError as exc:
        raise ResourceError(f"cannot create scratch directory: {exc}") from exc
    try:
        yield path
    finally:
        try:
            shutil.rmtree(path)
        except OSError as exc:
            logger.warning("failed to remove scratch directory %s: %s", path, exc)


def remove_files(paths: Iterable[Path]) -> None:
    for path in paths:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("failed to remove %s: %s", path, exc)
