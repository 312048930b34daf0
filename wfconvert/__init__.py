"""wfconvert: converts WDL workflows to CWL through a shared IR."""

from loguru import logger

__version__ = "0.1.0"

from .config import Settings
from .converter import BatchFailure, BatchResult, BatchSuccess, ConversionResult, Converter
from .diagnostics import Category, Diagnostic, Level, Location
from .errors import (
    CircularImportError,
    ConfigError,
    ConversionCancelled,
    ConversionError,
    CycleError,
    ImportNotFoundError,
    ParseError,
    UndeclaredReferenceError,
    UnsupportedConstructError,
    UnsupportedTypeError,
    ValidationError,
    WdlTypeError,
)
from .graph_engine import DependencyGraph, build_graph
from .imports import CancelToken, ImportCache, resolve
from .ir import Input, Output, Runtime, Task, Workflow, WorkflowCall
from .parser import WdlParser
from .semantic import Validator, validate
from .types import Kind, TypeSpec, parse_type, render_type
from .writers import CwlWriter, WdlWriter

logger.disable("wfconvert")

__all__ = [
    "__version__",
    "BatchFailure", "BatchResult", "BatchSuccess", "CancelToken", "Category", "CircularImportError",
    "ConfigError", "ConversionCancelled", "ConversionError", "ConversionResult", "Converter",
    "CwlWriter", "CycleError", "DependencyGraph", "Diagnostic", "ImportCache", "ImportNotFoundError",
    "Input", "Kind", "Level", "Location", "Output", "ParseError", "Runtime", "Settings", "Task",
    "TypeSpec", "UndeclaredReferenceError", "UnsupportedConstructError", "UnsupportedTypeError",
    "ValidationError", "Validator", "WdlParser", "WdlTypeError", "WdlWriter", "Workflow",
    "WorkflowCall", "build_graph", "parse_type", "render_type", "resolve", "validate",
]
