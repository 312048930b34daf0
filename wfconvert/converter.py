"""
Converter: parse -> resolve imports -> validate -> write.

Single conversions run sequentially on one Workflow. ``convert_dir`` fans
files out over a bounded pool of worker threads driven by asyncio; the
workers share one ImportCache and one CancelToken, and every input file
yields exactly one BatchSuccess or BatchFailure.
"""

from __future__ import annotations
import asyncio
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from loguru import logger
from pydantic import BaseModel, Field

from .cache import FragmentStore
from .config import Settings
from .diagnostics import Diagnostic, first_error
from .errors import ConversionCancelled, ConversionError
from .formats import format_for_path, get_format, make_parser, make_writer
from .graph_engine import build_graph
from .imports import CancelToken, ImportCache, resolve
from .ir import Workflow
from .semantic import validate as validate_workflow

PathLike = Union[str, Path]


class ConversionResult(BaseModel):
    text: str
    workflow: Workflow
    target_format: str
    diagnostics: List[Diagnostic] = Field(default_factory=list)
    output_path: Optional[str] = None

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if not d.is_error]


class BatchSuccess(BaseModel):
    ok: Literal[True] = True
    source: str
    target: str
    diagnostics: List[Diagnostic] = Field(default_factory=list)


class BatchFailure(BaseModel):
    ok: Literal[False] = False
    source: str
    error: str
    category: str
    cancelled: bool = False
    diagnostics: List[Diagnostic] = Field(default_factory=list)


class BatchResult(BaseModel):
    """Ledger of a batch run, one outcome per input file, sorted by source path."""

    outcomes: List[Union[BatchSuccess, BatchFailure]] = Field(default_factory=list)

    @property
    def succeeded(self) -> List[BatchSuccess]:
        return [o for o in self.outcomes if isinstance(o, BatchSuccess)]

    @property
    def failed(self) -> List[BatchFailure]:
        return [o for o in self.outcomes if isinstance(o, BatchFailure)]

    @property
    def cancelled(self) -> List[BatchFailure]:
        return [o for o in self.failed if o.cancelled]

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class Converter:
    def __init__(self, source_format: str = "wdl", target_format: Optional[str] = None,
                 validate: bool = True, best_effort: bool = False, strict: bool = False,
                 allow_degraded: bool = False, cache: Optional[ImportCache] = None,
                 store: Optional[FragmentStore] = None, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.source_format = source_format
        self.target_format = target_format
        if target_format is not None:
            get_format(target_format)
        self.validate = validate
        self.best_effort = best_effort
        self.strict = strict
        self.allow_degraded = allow_degraded
        self.parser = make_parser(source_format, strict=strict)
        self.cache = cache
        if store is None and self.settings.cache_dir:
            store = FragmentStore(self.settings.cache_dir)
        self.store = store

    # ─── Parsing ─────────────────────────────────────────────────

    def _parse_path(self, path: Path) -> Tuple[Workflow, List[Diagnostic]]:
        if self.store is None:
            return self.parser.parse_file(path)
        content = path.read_text(encoding="utf-8")
        origin = str(path)
        hit = self.store.load(origin, content)
        if hit is not None:
            if self.strict:
                self._raise_first(hit[1])
            return hit
        fragment, diagnostics = self.parser.parse_text(content, origin)
        self.store.save(origin, content, fragment, diagnostics)
        return fragment, diagnostics

    def _resolve(self, fragment: Workflow, base_dir: Path, diagnostics: List[Diagnostic],
                 cache: Optional[ImportCache], cancel: Optional[CancelToken]) -> Tuple[Workflow, List[Diagnostic]]:
        workflow, import_diags = resolve(fragment, base_dir, self._parse_path,
                                         cache=cache if cache is not None else self.cache, cancel=cancel)
        diagnostics = list(diagnostics) + import_diags
        if self.strict:
            self._raise_first(diagnostics)
        return workflow, diagnostics

    def load(self, path: PathLike, cancel: Optional[CancelToken] = None,
             cache: Optional[ImportCache] = None) -> Tuple[Workflow, List[Diagnostic]]:
        """Parse ``path`` and resolve its imports."""
        path = Path(path)
        if cancel is not None:
            cancel.check(str(path))
        logger.debug("loading {}", path)
        fragment, diagnostics = self._parse_path(path)
        return self._resolve(fragment, path.parent, diagnostics, cache, cancel)

    # ─── Conversion ──────────────────────────────────────────────

    def _target_for(self, dst: Optional[PathLike]) -> str:
        if self.target_format is not None:
            return self.target_format
        if dst is not None:
            return format_for_path(dst, self.settings.output_format)
        return self.settings.output_format

    def _write(self, workflow: Workflow, diagnostics: List[Diagnostic], target: str) -> ConversionResult:
        diagnostics = list(diagnostics)
        if self.validate:
            _ok, found = validate_workflow(workflow)
            diagnostics.extend(found)
        if not self.best_effort:
            self._raise_first(diagnostics)
        writer = make_writer(target, best_effort=self.best_effort, allow_degraded=self.allow_degraded)
        text = writer.write(workflow)
        diagnostics.extend(writer.diagnostics)
        return ConversionResult(text=text, workflow=workflow, target_format=target, diagnostics=diagnostics)

    def convert_text(self, content: str, origin: Optional[str] = None,
                     base_dir: Optional[PathLike] = None, target_format: Optional[str] = None) -> ConversionResult:
        fragment, diagnostics = self.parser.parse_text(content, origin)
        if base_dir is None:
            base_dir = Path(origin).parent if origin else Path.cwd()
        workflow, diagnostics = self._resolve(fragment, Path(base_dir), diagnostics, None, None)
        return self._write(workflow, diagnostics, target_format or self._target_for(None))

    def convert_file(self, src: PathLike, dst: Optional[PathLike] = None,
                     cancel: Optional[CancelToken] = None, cache: Optional[ImportCache] = None,
                     target_format: Optional[str] = None) -> ConversionResult:
        """Convert one file; the first ERROR diagnostic is raised as its exception."""
        workflow, diagnostics = self.load(src, cancel=cancel, cache=cache)
        result = self._write(workflow, diagnostics, target_format or self._target_for(dst))
        if dst is not None:
            if cancel is not None:
                cancel.check(str(dst))
            out = Path(dst)
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_text(result.text, encoding="utf-8")
            result.output_path = str(out)
            logger.info("wrote {}", out)
        return result

    def analyze(self, path: PathLike) -> Dict[str, Any]:
        """Dependency-graph summary of a workflow file."""
        workflow, diagnostics = self.load(path)
        summary: Dict[str, Any] = {
            "workflow": workflow.name,
            "tasks": sorted(workflow.tasks),
            "subworkflows": sorted(workflow.subworkflows),
        }
        summary.update(build_graph(workflow).to_dict())
        summary["diagnostics"] = [d.model_dump(mode="json") for d in diagnostics]
        return summary

    # ─── Batch ───────────────────────────────────────────────────

    def convert_dir(self, src_dir: PathLike, dst_dir: PathLike, pattern: str = "*.wdl",
                    recursive: bool = True, max_workers: Optional[int] = None,
                    cancel: Optional[CancelToken] = None, target_format: Optional[str] = None) -> BatchResult:
        """Convert every matching file under ``src_dir`` into the mirrored path under ``dst_dir``."""
        src_root, dst_root = Path(src_dir), Path(dst_dir)
        if not src_root.is_dir():
            raise FileNotFoundError(f"source directory not found: {src_root}")
        files = sorted(p for p in (src_root.rglob(pattern) if recursive else src_root.glob(pattern)) if p.is_file())
        target = target_format or self.target_format or self.settings.output_format
        suffix = get_format(target).suffixes[0]
        workers = max_workers or self.settings.max_workers
        cancel = cancel if cancel is not None else CancelToken()
        cache = self.cache if self.cache is not None else ImportCache()
        logger.info("converting {} file(s) from {} with {} worker(s)", len(files), src_root, workers)

        jobs = [(src, (dst_root / src.relative_to(src_root)).with_suffix(suffix)) for src in files]
        outcomes = asyncio.run(self._run_batch(jobs, target, workers, cancel, cache))
        result = BatchResult(outcomes=outcomes)
        logger.info("batch finished: {} converted, {} failed", len(result.succeeded), len(result.failed))
        return result

    async def _run_batch(self, jobs: List[Tuple[Path, Path]], target: str, workers: int,
                         cancel: CancelToken, cache: ImportCache) -> List[Union[BatchSuccess, BatchFailure]]:
        semaphore = asyncio.Semaphore(workers)

        async def run_one(src: Path, dst: Path) -> Union[BatchSuccess, BatchFailure]:
            async with semaphore:
                if cancel.cancelled:
                    return BatchFailure(source=str(src), error="conversion cancelled",
                                        category="cancelled", cancelled=True)
                try:
                    result = await asyncio.to_thread(self.convert_file, src, dst, cancel, cache, target)
                except ConversionCancelled as e:
                    return BatchFailure(source=str(src), error=str(e), category="cancelled", cancelled=True)
                except ConversionError as e:
                    diags = getattr(e, "diagnostics", None) or [e.to_diagnostic()]
                    return BatchFailure(source=str(src), error=str(e), category=e.category, diagnostics=diags)
                except (OSError, UnicodeDecodeError) as e:
                    return BatchFailure(source=str(src), error=str(e), category="io")
                except Exception as e:
                    logger.exception("unexpected failure converting {}", src)
                    return BatchFailure(source=str(src), error=f"{type(e).__name__}: {e}", category="internal")
                return BatchSuccess(source=str(src), target=str(dst), diagnostics=result.diagnostics)

        return list(await asyncio.gather(*(run_one(src, dst) for src, dst in jobs)))

    @staticmethod
    def _raise_first(diagnostics: List[Diagnostic]) -> None:
        diag = first_error(diagnostics)
        if diag is not None:
            raise diag.to_error()
