from __future__ import annotations
import re
from typing import Any, Dict, List, Optional, Set, TYPE_CHECKING

from lark import Token, Tree

from .diagnostics import Category, Diagnostic, Location, error
from .errors import ConversionError, ParseError, UndeclaredReferenceError, UnsupportedConstructError
from .ir import (
    Expression, ExprKind, ImportRef, Input, Output, Placeholder, Runtime,
    ScatterSpec, Task, Template, Workflow, WorkflowCall,
)
from .types import TypeSpec, parse_type

if TYPE_CHECKING:
    from .parser import WdlParser

_OPTION = re.compile(r"""\s*(sep|default|true|false)\s*=\s*("(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')""")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", '"': '"', "'": "'", "~": "~", "$": "$"}


def unescape(text: str) -> str:
    out: List[str] = []
    i = 0
    while i < len(text):
        c = text[i]
        if c == "\\" and i + 1 < len(text):
            nxt = text[i + 1]
            out.append(_ESCAPES.get(nxt, "\\" + nxt))
            i += 2
            continue
        out.append(c)
        i += 1
    return "".join(out)


def _find_placeholder_end(text: str, start: int) -> int:
    """Index of the '}' closing the placeholder body that begins at ``start``."""
    depth = 1
    i = start
    while i < len(text):
        c = text[i]
        if c in "\"'":
            j = i + 1
            while j < len(text) and text[j] != c:
                j += 2 if text[j] == "\\" else 1
            i = j + 1
            continue
        if c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


class Lowering:
    """Lowers per-chunk lark trees into one Workflow fragment.

    Failures inside a task are recorded as diagnostics and the task is left
    out of the fragment; lowering of the other chunks continues.
    """

    def __init__(self, parser: "WdlParser", origin: Optional[str] = None):
        self.parser = parser
        self.origin = origin
        self.diagnostics: List[Diagnostic] = []
        self.version: Optional[str] = None
        self.imports: List[ImportRef] = []
        self.tasks: Dict[str, Task] = {}
        self.workflow: Optional[Workflow] = None
        self._text = ""

    # ---------- Documents ----------

    def lower_document(self, tree: Tree, text: str) -> None:
        self._text = text
        for item in tree.children:
            if not isinstance(item, Tree):
                continue
            if item.data == "version":
                self.version = str(item.children[0])
            elif item.data == "import_stmt":
                self.imports.append(self._lower_import(item))
            elif item.data == "task":
                self._add_task(item)
            elif item.data == "workflow":
                self._add_workflow(item)

    def finish(self) -> Workflow:
        wf = self.workflow or Workflow()
        wf.version = self.version
        wf.imports = self.imports
        wf.tasks = self.tasks
        wf.origin = self.origin
        return wf

    def _loc(self, node: Any = None, task: Optional[str] = None, call: Optional[str] = None) -> Location:
        line = None
        if isinstance(node, Token):
            line = node.line
        elif isinstance(node, Tree) and not node.meta.empty:
            line = node.meta.line
        return Location(file=self.origin, line=line, task=task, call=call)

    def _report(self, exc: ConversionError) -> None:
        self.diagnostics.append(exc.to_diagnostic())

    def _lower_import(self, node: Tree) -> ImportRef:
        path = unescape(str(node.children[0])[1:-1])
        alias = None
        for ch in node.children[1:]:
            if isinstance(ch, Tree) and ch.data == "import_as":
                alias = str(ch.children[0])
        return ImportRef(path=path, alias=alias, line=node.meta.line)

    def _add_task(self, node: Tree) -> None:
        name = str(node.children[0])
        try:
            task = self._lower_task(node)
        except ConversionError as e:
            if e.location is None or e.location.task is None:
                base = e.location or self._loc(node)
                e.location = base.model_copy(update={"task": name})
            self._report(e)
            return
        if name in self.tasks:
            self.diagnostics.append(error(
                Category.NAME, f"duplicate task '{name}' (first definition kept)", self._loc(node, task=name)))
            return
        self.tasks[name] = task

    def _add_workflow(self, node: Tree) -> None:
        name = str(node.children[0])
        if self.workflow is not None:
            self.diagnostics.append(error(
                Category.PARSE, f"second workflow '{name}' in one document (only '{self.workflow.name}' kept)",
                self._loc(node)))
            return
        self.workflow = self._lower_workflow(node)

    # ---------- Tasks ----------

    def _lower_task(self, node: Tree) -> Task:
        name = str(node.children[0])
        task = Task(name=name, origin=self.origin, line=node.meta.line)
        for item in node.children[1:]:
            if not isinstance(item, Tree):
                continue
            dt = item.data
            if dt == "input_section":
                for decl in item.children:
                    dname, dtype, default = self._lower_decl(decl, task=name)
                    task.inputs.append(Input(name=dname, type=dtype, default=default))
            elif dt == "output_section":
                for decl in item.children:
                    task.outputs.append(self._lower_output(decl, task=name))
            elif dt == "declaration":
                dname, dtype, default = self._lower_decl(item, task=name)
                task.locals.append(Input(name=dname, type=dtype, default=default))
            elif dt == "command_section":
                tok = item.children[0]
                raw = str(tok)
                if tok.type == "COMMAND_HEREDOC":
                    task.command_style = "heredoc"
                    body, sigils = raw[3:-3], "~"
                else:
                    task.command_style = "brace"
                    body, sigils = raw[1:-1], "~$"
                task.command = self.parse_template(body, sigils, line=tok.line, raw=True)
            elif dt == "runtime_section":
                runtime = Runtime()
                for entry in item.children:
                    runtime.set(str(entry.children[0]), self._lower_expr(entry.children[1]))
                task.runtime = runtime
            elif dt == "meta_section":
                task.meta = self._lower_meta(item.children[0])
            elif dt == "parameter_meta_section":
                task.parameter_meta = self._lower_meta(item.children[0])
        _apply_parameter_meta(task.inputs, task.parameter_meta)
        self._check_task_references(task, node)
        return task

    def _check_task_references(self, task: Task, node: Tree) -> None:
        known: Set[str] = set(task.bindings())
        if task.command is not None:
            for ph in task.command.placeholders():
                for ref in ph.expression.root_names():
                    if ref not in known:
                        raise UndeclaredReferenceError(
                            f"command references undeclared name '{ref}'", self._loc(node, task=task.name))
        if task.runtime is not None:
            exprs = list(task.runtime.recognized().items()) + list(task.runtime.extensions.items())
            for key, expr in exprs:
                for ref in expr.root_names():
                    if ref not in known:
                        raise UndeclaredReferenceError(
                            f"runtime '{key}' references undeclared name '{ref}'", self._loc(node, task=task.name))
        visible = set(known)
        for out in task.outputs:
            for ref in out.expression.root_names():
                if ref not in visible:
                    raise UndeclaredReferenceError(
                        f"output '{out.name}' references undeclared name '{ref}'", self._loc(node, task=task.name))
            visible.add(out.name)

    def _lower_decl(self, node: Tree, task: Optional[str] = None):
        type_node, name_tok = node.children[0], node.children[1]
        type_text = self._slice(type_node)
        try:
            spec = parse_type(type_text)
        except ConversionError as e:
            e.location = self._loc(type_node, task=task)
            raise
        default = self._lower_expr(node.children[2]) if len(node.children) > 2 else None
        return str(name_tok), spec, default

    def _lower_output(self, node: Tree, task: Optional[str] = None) -> Output:
        name, spec, expr = self._lower_decl(node, task=task)
        if expr is None:
            raise ParseError(f"output '{name}' needs an expression", self._loc(node, task=task))
        return Output(name=name, type=spec, expression=expr)

    # ---------- Workflows ----------

    def _lower_workflow(self, node: Tree) -> Workflow:
        wf = Workflow(name=str(node.children[0]), origin=self.origin)
        for item in node.children[1:]:
            if isinstance(item, Tree):
                try:
                    self._lower_workflow_item(wf, item, scatter=None)
                except ConversionError as e:
                    self._report(e)
        _apply_parameter_meta(wf.inputs, wf.parameter_meta)
        return wf

    def _lower_workflow_item(self, wf: Workflow, item: Tree, scatter: Optional[ScatterSpec]) -> None:
        dt = item.data
        if dt == "call":
            wf.calls.append(self._lower_call(item, scatter))
        elif dt == "scatter":
            if scatter is not None:
                raise UnsupportedConstructError("nested scatter blocks are not supported", self._loc(item))
            variable = str(item.children[0])
            spec = ScatterSpec(
                variable=variable,
                expression=self._lower_expr(item.children[1]),
                block=f"scatter_{variable}_{item.meta.line}",
            )
            for inner in item.children[2:]:
                if isinstance(inner, Tree):
                    try:
                        self._lower_workflow_item(wf, inner, spec)
                    except ConversionError as e:
                        self._report(e)
        elif dt == "conditional":
            raise UnsupportedConstructError("conditional sections (if) are not supported", self._loc(item))
        elif dt == "declaration":
            raise UnsupportedConstructError(
                f"workflow-level declaration '{item.children[1]}' is not supported; declare it as an input",
                self._loc(item))
        elif scatter is not None:
            raise UnsupportedConstructError(f"'{dt}' inside a scatter block is not supported", self._loc(item))
        elif dt == "input_section":
            for decl in item.children:
                name, spec, default = self._lower_decl(decl)
                wf.inputs.append(Input(name=name, type=spec, default=default))
        elif dt == "output_section":
            for decl in item.children:
                wf.outputs.append(self._lower_output(decl))
        elif dt == "meta_section":
            wf.meta = self._lower_meta(item.children[0])
        elif dt == "parameter_meta_section":
            wf.parameter_meta = self._lower_meta(item.children[0])

    def _lower_call(self, node: Tree, scatter: Optional[ScatterSpec]) -> WorkflowCall:
        qualified = node.children[0]
        callee = ".".join(str(t) for t in qualified.children)
        call_id = str(qualified.children[-1])
        inputs: Dict[str, Expression] = {}
        for ch in node.children[1:]:
            if not isinstance(ch, Tree):
                continue
            if ch.data == "call_alias":
                call_id = str(ch.children[0])
            elif ch.data == "call_body":
                for ci in ch.children:
                    key = str(ci.children[0])
                    if len(ci.children) > 1:
                        inputs[key] = self._lower_expr(ci.children[1])
                    else:
                        inputs[key] = Expression.identifier(key)
        return WorkflowCall(id=call_id, callee=callee, inputs=inputs, scatter=scatter, line=node.meta.line)

    # ---------- Meta ----------

    def _lower_meta(self, node: Tree) -> Any:
        dt = node.data
        if dt == "meta_object":
            return {str(kv.children[0]): self._lower_meta(kv.children[1]) for kv in node.children}
        if dt == "meta_array":
            return [self._lower_meta(v) for v in node.children]
        if dt == "meta_string":
            return unescape(str(node.children[0])[1:-1])
        if dt == "meta_int":
            return int(str(node.children[0]))
        if dt == "meta_float":
            return float(str(node.children[0]))
        if dt == "meta_true":
            return True
        if dt == "meta_false":
            return False
        return None

    # ---------- Expressions ----------

    def _slice(self, node: Any, text: Optional[str] = None) -> str:
        src = self._text if text is None else text
        if isinstance(node, Token):
            return str(node)
        return src[node.meta.start_pos:node.meta.end_pos]

    def _lower_expr(self, node: Any, text: Optional[str] = None) -> Expression:
        src = self._text if text is None else text
        snippet = self._slice(node, src)
        dt = node.data
        if dt == "ident":
            return Expression.identifier(str(node.children[0]))
        if dt == "int":
            return Expression.literal(int(str(node.children[0])), snippet)
        if dt == "float":
            return Expression.literal(float(str(node.children[0])), snippet)
        if dt == "true":
            return Expression.literal(True, snippet)
        if dt == "false":
            return Expression.literal(False, snippet)
        if dt == "none":
            return Expression.literal(None, snippet)
        if dt == "string":
            tok = node.children[0]
            template = self.parse_template(str(tok)[1:-1], "~$", line=tok.line)
            if template.is_static:
                return Expression.literal("".join(template.parts), snippet)
            return Expression(text=snippet, kind=ExprKind.TEMPLATE, template=template,
                              references=template.references())
        if dt == "member":
            base = self._lower_expr(node.children[0], src)
            attr = str(node.children[1])
            if base.kind is ExprKind.IDENTIFIER:
                return Expression.member_of(base.name, attr).model_copy(update={"text": snippet})
            return Expression(text=snippet, kind=ExprKind.COMPOUND, items=[base], references=list(base.references))
        if dt == "apply":
            args = node.children[1] if len(node.children) > 1 else None
            items = [self._lower_expr(a, src) for a in args.children] if args is not None else []
            return Expression(text=snippet, kind=ExprKind.APPLY, name=str(node.children[0]),
                              items=items, references=_merge_refs(items))
        if dt == "array":
            args = node.children[0] if node.children else None
            items = [self._lower_expr(a, src) for a in args.children] if args is not None else []
            value = None
            if all(i.kind is ExprKind.LITERAL for i in items):
                value = [i.value for i in items]
            return Expression(text=snippet, kind=ExprKind.ARRAY, items=items, value=value,
                              references=_merge_refs(items))
        items = [self._lower_expr(ch, src) for ch in node.children if isinstance(ch, Tree)]
        return Expression(text=snippet, kind=ExprKind.COMPOUND, name=dt, items=items,
                          references=_merge_refs(items))

    def parse_template(self, body: str, sigils: str, line: Optional[int] = None, raw: bool = False) -> Template:
        """Split ``body`` into literal text and ``~{...}`` placeholders.

        ``raw`` keeps literal text untouched (commands); otherwise escapes are
        decoded as in string literals.
        """
        parts: List[Any] = []
        buf: List[str] = []
        i = 0
        while i < len(body):
            c = body[i]
            if not raw and c == "\\" and i + 1 < len(body):
                buf.append(body[i:i + 2])
                i += 2
                continue
            if c in sigils and body.startswith("{", i + 1):
                end = _find_placeholder_end(body, i + 2)
                if end < 0:
                    raise ParseError("unterminated placeholder", Location(file=self.origin, line=line))
                if buf:
                    literal = "".join(buf)
                    parts.append(literal if raw else unescape(literal))
                    buf = []
                parts.append(self._lower_placeholder(body[i + 2:end], c, line))
                i = end + 1
                continue
            buf.append(c)
            i += 1
        if buf:
            literal = "".join(buf)
            parts.append(literal if raw else unescape(literal))
        return Template(text=body, parts=parts)

    def _lower_placeholder(self, inner: str, sigil: str, line: Optional[int]) -> Placeholder:
        options: Dict[str, str] = {}
        pos = 0
        while True:
            m = _OPTION.match(inner, pos)
            if not m:
                break
            options[m.group(1)] = unescape(m.group(2)[1:-1])
            pos = m.end()
        expr_text = inner[pos:]
        tree = self.parser.parse_expr(expr_text, self.origin, line)
        expression = self._lower_expr(tree, expr_text)
        return Placeholder(text=inner, options=options, expression=expression, sigil=sigil)


def _merge_refs(items: List[Expression]) -> List[str]:
    refs: List[str] = []
    for item in items:
        for ref in item.references:
            if ref not in refs:
                refs.append(ref)
    return refs


def _apply_parameter_meta(inputs: List[Input], parameter_meta: Dict[str, Any]) -> None:
    for inp in inputs:
        info = parameter_meta.get(inp.name)
        if isinstance(info, str):
            inp.doc = info
        elif isinstance(info, dict):
            doc = info.get("description") or info.get("help")
            if isinstance(doc, str):
                inp.doc = doc
