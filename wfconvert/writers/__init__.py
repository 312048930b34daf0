from .base import BaseWriter
from .cwl import CwlWriter
from .wdl import WdlWriter

__all__ = ["BaseWriter", "CwlWriter", "WdlWriter"]
