"""Registry of source parsers and target writers, keyed by format name.

Adding a language means adding a parser or writer variant and one
``register`` call; nothing else dispatches on the format.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Tuple, Union

from .diagnostics import Diagnostic
from .errors import ConfigError
from .ir import Workflow
from .parser import WdlParser
from .writers import CwlWriter, WdlWriter


class SourceParser(Protocol):
    name: str

    def parse_text(self, content: str, origin: Optional[str] = None) -> Tuple[Workflow, List[Diagnostic]]:
        ...

    def parse_file(self, path: Union[str, Path]) -> Tuple[Workflow, List[Diagnostic]]:
        ...


class TargetWriter(Protocol):
    name: str
    diagnostics: List[Diagnostic]

    def write(self, workflow: Workflow) -> str:
        ...


@dataclass(frozen=True)
class FormatSpec:
    name: str
    suffixes: Tuple[str, ...] = ()
    parser: Optional[Callable[..., SourceParser]] = None
    writer: Optional[Callable[..., TargetWriter]] = None
    description: str = field(default="", compare=False)


_REGISTRY: Dict[str, FormatSpec] = {}


def register(spec: FormatSpec) -> None:
    _REGISTRY[spec.name] = spec


def get_format(name: str) -> FormatSpec:
    try:
        return _REGISTRY[name]
    except KeyError:
        raise ConfigError(f"unknown format '{name}' (known: {', '.join(available_formats())})") from None


def available_formats() -> List[str]:
    return sorted(_REGISTRY)


def format_for_path(path: Union[str, Path], default: Optional[str] = None) -> Optional[str]:
    """Format whose suffix matches ``path``; ``default`` when none does."""
    suffix = Path(path).suffix.lower()
    for spec in _REGISTRY.values():
        if suffix in spec.suffixes:
            return spec.name
    return default


def make_parser(name: str, strict: bool = False) -> SourceParser:
    spec = get_format(name)
    if spec.parser is None:
        raise ConfigError(f"format '{name}' cannot be read")
    return spec.parser(strict=strict)


def make_writer(name: str, best_effort: bool = False, allow_degraded: bool = False) -> TargetWriter:
    spec = get_format(name)
    if spec.writer is None:
        raise ConfigError(f"format '{name}' cannot be written")
    return spec.writer(best_effort=best_effort, allow_degraded=allow_degraded)


register(FormatSpec(
    name="wdl",
    suffixes=(".wdl",),
    parser=lambda strict=False: WdlParser(strict=strict),
    writer=lambda best_effort=False, allow_degraded=False: WdlWriter(best_effort=best_effort),
    description="Workflow Description Language 1.0",
))
register(FormatSpec(
    name="cwl",
    suffixes=(".cwl", ".yaml", ".yml"),
    writer=lambda best_effort=False, allow_degraded=False: CwlWriter(
        best_effort=best_effort, allow_degraded=allow_degraded, style="yaml"),
    description="Common Workflow Language v1.2, YAML",
))
register(FormatSpec(
    name="cwl-json",
    suffixes=(".json",),
    writer=lambda best_effort=False, allow_degraded=False: CwlWriter(
        best_effort=best_effort, allow_degraded=allow_degraded, style="json"),
    description="Common Workflow Language v1.2, JSON",
))
