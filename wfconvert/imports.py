"""Import resolution: recursively parses imported documents and merges their
tasks (and workflows) into the importing fragment.

Precedence on name collisions is fixed: local tasks beat imported ones, and
among imports the first imported wins. The losing definition is never
dropped; it stays reachable under its namespaced key ``alias.task`` and a
WARNING is recorded.
"""

from __future__ import annotations
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from loguru import logger

from .diagnostics import Category, Diagnostic, Location, warning
from .errors import CircularImportError, ConversionCancelled, ImportNotFoundError
from .ir import Workflow

ParseFn = Callable[[Path], Tuple[Workflow, List[Diagnostic]]]


class CancelToken:
    """Cooperative cancellation flag checked between files and import steps."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self, where: str = "") -> None:
        if self._event.is_set():
            raise ConversionCancelled(f"conversion cancelled{' before ' + where if where else ''}")


class ImportCache:
    """Parsed fragments keyed by absolute path, shared by one batch run.

    Each key is populated at most once: concurrent requests for the same path
    wait on a per-key lock while the first one parses. Callers always receive
    deep copies, so resolution can mutate them freely.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._key_locks: Dict[str, threading.Lock] = {}
        self._entries: Dict[str, Tuple[Workflow, List[Diagnostic]]] = {}
        self.hits = 0
        self.misses = 0

    def get_or_load(self, path: Path, loader: ParseFn) -> Tuple[Workflow, List[Diagnostic]]:
        key = str(Path(path).resolve())
        with self._lock:
            key_lock = self._key_locks.setdefault(key, threading.Lock())
        with key_lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                entry = loader(Path(key))
                self._entries[key] = entry
            else:
                self.hits += 1
                logger.debug("import cache hit: {}", key)
        fragment, diags = entry
        return fragment.model_copy(deep=True), list(diags)

    def __contains__(self, path: object) -> bool:
        return str(Path(str(path)).resolve()) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._key_locks.clear()


class ImportResolver:
    def __init__(self, parse_fn: ParseFn, cache: Optional[ImportCache] = None,
                 cancel: Optional[CancelToken] = None):
        self.parse_fn = parse_fn
        self.cache = cache
        self.cancel = cancel

    def _load(self, path: Path) -> Tuple[Workflow, List[Diagnostic]]:
        if self.cache is not None:
            return self.cache.get_or_load(path, self.parse_fn)
        return self.parse_fn(path)

    def resolve(self, fragment: Workflow, base_dir: Union[str, Path],
                _stack: Optional[List[str]] = None) -> Tuple[Workflow, List[Diagnostic]]:
        base_dir = Path(base_dir)
        stack = list(_stack) if _stack is not None else []
        if not stack and fragment.origin:
            stack.append(str(Path(fragment.origin).resolve()))
        diagnostics: List[Diagnostic] = []
        pending, fragment.imports = fragment.imports, []
        qualified: Dict[str, str] = {}

        for ref in pending:
            if self.cancel is not None:
                self.cancel.check(f"import '{ref.path}'")
            loc = Location(file=fragment.origin, line=ref.line)
            path = (base_dir / ref.path).resolve()
            if str(path) in stack:
                chain = " -> ".join(stack[stack.index(str(path)):] + [str(path)])
                diagnostics.append(CircularImportError(f"circular import skipped: {chain}", loc).to_diagnostic())
                continue
            if not path.is_file():
                diagnostics.append(ImportNotFoundError(
                    f"imported file not found: '{ref.path}' (looked for {path})", loc).to_diagnostic())
                continue
            logger.debug("resolving import {} as '{}'", path, ref.namespace)
            child, child_diags = self._load(path)
            diagnostics.extend(child_diags)
            child, nested = self.resolve(child, path.parent, stack + [str(path)])
            diagnostics.extend(nested)
            self._merge(fragment, child, ref.namespace, qualified, loc, diagnostics)

        _rename_callees(fragment, qualified)
        return fragment, diagnostics

    def _merge(self, parent: Workflow, child: Workflow, namespace: str,
               qualified: Dict[str, str], loc: Location, diagnostics: List[Diagnostic]) -> None:
        rename: Dict[str, str] = {}
        for key, task in child.tasks.items():
            qname = f"{namespace}.{key}"
            existing = parent.tasks.get(key)
            if existing is None:
                parent.tasks[key] = task
                rename[key] = key
            elif existing.origin == task.origin and existing == task:
                rename[key] = key
            else:
                parent.tasks[qname] = task.model_copy(update={"name": qname})
                rename[key] = qname
                diagnostics.append(warning(
                    Category.IMPORT,
                    f"task '{key}' from {task.origin or namespace} collides with '{key}' from "
                    f"{existing.origin or 'the importing document'}; first definition kept, "
                    f"imported one available as '{qname}'",
                    loc,
                ))
            qualified[qname] = rename[key]

        incoming: Dict[str, Workflow] = {}
        for key, sub in child.subworkflows.items():
            incoming[f"{namespace}.{key}"] = sub
            rename[key] = f"{namespace}.{key}"
        if child.name is not None:
            sub = child.model_copy(deep=True)
            sub.tasks = {}
            sub.subworkflows = {}
            incoming[f"{namespace}.{child.name}"] = sub

        for target, sub in incoming.items():
            _rename_callees(sub, rename)
            parent.subworkflows.setdefault(target, sub)
            qualified[target] = target


def _rename_callees(workflow: Workflow, mapping: Dict[str, str]) -> None:
    for call in workflow.calls:
        if call.callee in mapping:
            call.callee = mapping[call.callee]


def resolve(fragment: Workflow, base_dir: Union[str, Path], parse_fn: ParseFn,
            cache: Optional[ImportCache] = None,
            cancel: Optional[CancelToken] = None) -> Tuple[Workflow, List[Diagnostic]]:
    """Resolve ``fragment.imports`` relative to ``base_dir``, mutating the fragment in place."""
    return ImportResolver(parse_fn, cache=cache, cancel=cancel).resolve(fragment, base_dir)
