"""Concrete-syntax phase of the WDL parser.

Source text is split into top-level chunks (version, imports, each task, the
workflow) by a brace-aware scanner, and every chunk is parsed on its own so
that a syntax error inside one task only costs that task.
"""

from __future__ import annotations
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple, Union

from lark import Lark, Tree
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken
from loguru import logger

from .diagnostics import Category, Diagnostic, Location, error, first_error
from .errors import ParseError
from .ir import Workflow

GRAMMAR_PATH = Path(__file__).with_name("grammar.lark")

TOP_LEVEL_KEYWORDS = ("version", "import", "task", "workflow", "struct")
_WORD = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


@dataclass
class Chunk:
    kind: str
    name: Optional[str]
    start: int
    end: int
    line: int
    padded: str


def _skip_string(text: str, i: int) -> int:
    """Return the index just past the string literal opening at ``i``."""
    quote = text[i]
    i += 1
    n = len(text)
    while i < n:
        c = text[i]
        if c == "\\":
            i += 2
            continue
        if c in "~$" and i + 1 < n and text[i + 1] == "{":
            close = text.find("}", i)
            i = n if close < 0 else close + 1
            continue
        if c == quote or c == "\n":
            return i + 1
        i += 1
    return n


def _skip_braces(text: str, i: int) -> int:
    """Raw brace matching for ``command { ... }`` bodies (no quote handling)."""
    depth = 0
    n = len(text)
    while i < n:
        if text[i] == "{":
            depth += 1
        elif text[i] == "}":
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return n


def split_chunks(text: str) -> List[Chunk]:
    starts: List[Tuple[int, str, Optional[str]]] = []
    depth = 0
    i = 0
    n = len(text)
    while i < n:
        c = text[i]
        if c == "#":
            nl = text.find("\n", i)
            i = n if nl < 0 else nl
            continue
        if c in "\"'":
            i = _skip_string(text, i)
            continue
        if text.startswith("<<<", i):
            close = text.find(">>>", i + 3)
            i = n if close < 0 else close + 3
            continue
        if c == "{":
            depth += 1
        elif c == "}":
            depth = max(depth - 1, 0)
        elif c.isalpha() or c == "_":
            m = _WORD.match(text, i)
            word = m.group(0)
            prev = text[i - 1] if i > 0 else ""
            if prev and (prev.isalnum() or prev in "_."):
                i = m.end()
                continue
            if depth == 0 and word in TOP_LEVEL_KEYWORDS:
                j = m.end()
                while j < n and text[j] in " \t\r\n":
                    j += 1
                name_match = _WORD.match(text, j)
                name = name_match.group(0) if name_match and word in ("task", "workflow", "struct") else None
                starts.append((i, word, name))
            elif depth == 1 and word == "command":
                j = m.end()
                while j < n and text[j] in " \t\r\n":
                    j += 1
                if j < n and text[j] == "{":
                    i = _skip_braces(text, j)
                    continue
            i = m.end()
            continue
        i += 1

    chunks: List[Chunk] = []
    leading = text[: starts[0][0]] if starts else text
    if _has_code(leading):
        chunks.append(_make_chunk(text, "unknown", None, 0, starts[0][0] if starts else n))
    for idx, (start, kind, name) in enumerate(starts):
        end = starts[idx + 1][0] if idx + 1 < len(starts) else n
        chunks.append(_make_chunk(text, kind, name, start, end))
    return chunks


def _has_code(text: str) -> bool:
    for line in text.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            return True
    return False


def _make_chunk(text: str, kind: str, name: Optional[str], start: int, end: int) -> Chunk:
    line = text.count("\n", 0, start) + 1
    line_start = text.rfind("\n", 0, start) + 1
    # pad so lark reports absolute line numbers and positions
    padded = "\n" * (line - 1) + " " * (start - line_start) + text[start:end]
    return Chunk(kind=kind, name=name, start=start, end=end, line=line, padded=padded)


def _describe(exc: UnexpectedInput) -> str:
    if isinstance(exc, UnexpectedToken):
        if exc.token.type == "$END":
            return "unexpected end of input"
        return f"unexpected token {str(exc.token)!r}"
    if isinstance(exc, UnexpectedCharacters):
        return f"unexpected character {exc.char!r}"
    if isinstance(exc, UnexpectedEOF):
        return "unexpected end of input"
    return str(exc)


class WdlParser:
    """Parses WDL source text into a Workflow fragment plus diagnostics.

    The compiled grammar lives on the instance, so one parser can be shared by
    every conversion of a batch run.
    """

    name = "wdl"

    def __init__(self, strict: bool = False):
        self.strict = strict
        self._lark: Optional[Lark] = None

    def _load_parser(self) -> Lark:
        if self._lark is None:
            grammar = GRAMMAR_PATH.read_text(encoding="utf-8")
            self._lark = Lark(
                grammar,
                start=["document", "expr_start"],
                parser="lalr",
                propagate_positions=True,
            )
        return self._lark

    def parse_tree(self, text: str, origin: Optional[str] = None) -> Tree:
        try:
            return self._load_parser().parse(text, start="document")
        except UnexpectedInput as e:
            loc = Location(file=origin, line=getattr(e, "line", None), column=getattr(e, "column", None))
            raise ParseError(_describe(e), loc) from e

    def parse_expr(self, text: str, origin: Optional[str] = None, line: Optional[int] = None) -> Tree:
        try:
            tree = self._load_parser().parse(text, start="expr_start")
        except UnexpectedInput as e:
            raise ParseError(f"invalid expression {text.strip()!r}: {_describe(e)}",
                             Location(file=origin, line=line)) from e
        return tree.children[0]

    def parse_text(self, content: str, origin: Optional[str] = None) -> Tuple[Workflow, List[Diagnostic]]:
        from .lowering import Lowering

        lowering = Lowering(self, origin)
        for chunk in split_chunks(content):
            if chunk.kind == "struct":
                lowering.diagnostics.append(error(
                    Category.UNSUPPORTED, f"struct '{chunk.name}' is not supported",
                    Location(file=origin, line=chunk.line)))
            else:
                try:
                    tree = self.parse_tree(chunk.padded, origin)
                except ParseError as e:
                    loc = e.location
                    if chunk.kind == "task" and loc is not None:
                        loc = loc.model_copy(update={"task": chunk.name})
                    lowering.diagnostics.append(error(Category.PARSE, e.message, loc))
                    logger.debug("skipping {} '{}' after syntax error", chunk.kind, chunk.name)
                else:
                    lowering.lower_document(tree, chunk.padded)
            if self.strict:
                self._raise_first(lowering.diagnostics)
        fragment = lowering.finish()
        if self.strict:
            self._raise_first(lowering.diagnostics)
        logger.debug("parsed {}: {} task(s), {} call(s), {} import(s)",
                     origin or "<text>", len(fragment.tasks), len(fragment.calls), len(fragment.imports))
        return fragment, lowering.diagnostics

    def parse_file(self, path: Union[str, Path]) -> Tuple[Workflow, List[Diagnostic]]:
        path = Path(path)
        return self.parse_text(path.read_text(encoding="utf-8"), str(path))

    @staticmethod
    def _raise_first(diagnostics: List[Diagnostic]) -> None:
        diag = first_error(diagnostics)
        if diag is not None:
            raise diag.to_error()
