"""导出模块：片段裁剪、重编码与合并。"""

from .exporter import Exporter

__all__ = ["Exporter"]
