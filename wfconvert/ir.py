from __future__ import annotations
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Set, Union

from pydantic import BaseModel, Field

from .types import TypeSpec

# -------- Workflow Intermediate Representation ---------


class ExprKind(str, Enum):
    LITERAL = "literal"
    IDENTIFIER = "identifier"
    MEMBER = "member"
    ARRAY = "array"
    TEMPLATE = "template"
    APPLY = "apply"
    COMPOUND = "compound"


class Expression(BaseModel):
    """A source expression kept as text plus the structure writers need.

    ``references`` lists every name the expression reads, either ``x`` or
    ``call.output``, in order of appearance and without duplicates.
    """

    text: str
    kind: ExprKind
    value: Any = None
    name: Optional[str] = None
    member: Optional[str] = None
    items: List["Expression"] = Field(default_factory=list)
    template: Optional["Template"] = None
    references: List[str] = Field(default_factory=list)

    @property
    def is_reference(self) -> bool:
        return self.kind in (ExprKind.IDENTIFIER, ExprKind.MEMBER)

    def root_names(self) -> Set[str]:
        return {ref.split(".", 1)[0] for ref in self.references}

    @classmethod
    def literal(cls, value: Any, text: Optional[str] = None) -> "Expression":
        if text is None:
            text = _literal_text(value)
        return cls(text=text, kind=ExprKind.LITERAL, value=value)

    @classmethod
    def identifier(cls, name: str) -> "Expression":
        return cls(text=name, kind=ExprKind.IDENTIFIER, name=name, references=[name])

    @classmethod
    def member_of(cls, call_id: str, output: str) -> "Expression":
        ref = f"{call_id}.{output}"
        return cls(text=ref, kind=ExprKind.MEMBER, name=call_id, member=output, references=[ref])


def _literal_text(value: Any) -> str:
    if value is None:
        return "None"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
        return f'"{escaped}"'
    return repr(value)


class Placeholder(BaseModel):
    """One ``~{...}`` interpolation: its options (sep, default, true, false) and expression."""

    text: str
    options: Dict[str, str] = Field(default_factory=dict)
    expression: Expression
    sigil: str = "~"


class Template(BaseModel):
    """A string (or command) split into literal text and placeholders."""

    text: str
    parts: List[Union[Placeholder, str]] = Field(default_factory=list)

    def placeholders(self) -> Iterator[Placeholder]:
        for part in self.parts:
            if isinstance(part, Placeholder):
                yield part

    @property
    def is_static(self) -> bool:
        return all(isinstance(p, str) for p in self.parts)

    def references(self) -> List[str]:
        seen: List[str] = []
        for ph in self.placeholders():
            for ref in ph.expression.references:
                if ref not in seen:
                    seen.append(ref)
        return seen


class Input(BaseModel):
    name: str
    type: TypeSpec
    default: Optional[Expression] = None
    doc: Optional[str] = None

    @property
    def required(self) -> bool:
        return not self.type.optional and self.default is None


class Output(BaseModel):
    name: str
    type: TypeSpec
    expression: Optional[Expression] = None
    doc: Optional[str] = None


class Runtime(BaseModel):
    """Resource and environment requirements of a Task.

    Recognized keys are explicit fields; anything else is kept verbatim in
    ``extensions`` so writers can degrade it predictably.
    """

    container: Optional[Expression] = None
    memory: Optional[Expression] = None
    cpu: Optional[Expression] = None
    disks: Optional[Expression] = None
    gpu: Optional[Expression] = None
    extensions: Dict[str, Expression] = Field(default_factory=dict)

    def set(self, key: str, value: Expression) -> None:
        field = RUNTIME_ALIASES.get(key, key)
        if field in RUNTIME_KEYS:
            setattr(self, field, value)
        else:
            self.extensions[key] = value

    def recognized(self) -> Dict[str, Expression]:
        return {k: getattr(self, k) for k in RUNTIME_KEYS if getattr(self, k) is not None}

    @property
    def is_empty(self) -> bool:
        return not self.recognized() and not self.extensions


RUNTIME_KEYS = ("container", "memory", "cpu", "disks", "gpu")
RUNTIME_ALIASES = {"docker": "container"}


class Task(BaseModel):
    name: str
    command: Optional[Template] = None
    command_style: str = "heredoc"  # heredoc | brace
    inputs: List[Input] = Field(default_factory=list)
    outputs: List[Output] = Field(default_factory=list)
    locals: List[Input] = Field(default_factory=list)
    runtime: Optional[Runtime] = None
    meta: Dict[str, Any] = Field(default_factory=dict)
    parameter_meta: Dict[str, Any] = Field(default_factory=dict)
    origin: Optional[str] = None
    line: Optional[int] = None

    def input_named(self, name: str) -> Optional[Input]:
        return next((i for i in self.inputs if i.name == name), None)

    def output_named(self, name: str) -> Optional[Output]:
        return next((o for o in self.outputs if o.name == name), None)

    def bindings(self) -> Dict[str, Input]:
        """Names visible inside the command: inputs then private declarations."""
        names = {i.name: i for i in self.inputs}
        for decl in self.locals:
            names.setdefault(decl.name, decl)
        return names


class ScatterSpec(BaseModel):
    variable: str
    expression: Expression
    block: str


class WorkflowCall(BaseModel):
    id: str
    callee: str
    inputs: Dict[str, Expression] = Field(default_factory=dict)
    scatter: Optional[ScatterSpec] = None
    line: Optional[int] = None

    def references(self) -> List[str]:
        refs: List[str] = []
        exprs = list(self.inputs.values())
        if self.scatter is not None:
            exprs.append(self.scatter.expression)
        for expr in exprs:
            for ref in expr.references:
                if ref not in refs:
                    refs.append(ref)
        return refs


class ImportRef(BaseModel):
    path: str
    alias: Optional[str] = None
    line: Optional[int] = None

    @property
    def namespace(self) -> str:
        if self.alias:
            return self.alias
        stem = self.path.replace("\\", "/").rsplit("/", 1)[-1]
        return stem[:-4] if stem.endswith(".wdl") else stem


class Workflow(BaseModel):
    """A workflow fragment or a fully resolved workflow.

    ``name`` is None for documents that only declare tasks.
    """

    name: Optional[str] = None
    version: Optional[str] = None
    inputs: List[Input] = Field(default_factory=list)
    outputs: List[Output] = Field(default_factory=list)
    tasks: Dict[str, Task] = Field(default_factory=dict)
    calls: List[WorkflowCall] = Field(default_factory=list)
    imports: List[ImportRef] = Field(default_factory=list)
    subworkflows: Dict[str, "Workflow"] = Field(default_factory=dict)
    meta: Dict[str, Any] = Field(default_factory=dict)
    parameter_meta: Dict[str, Any] = Field(default_factory=dict)
    origin: Optional[str] = None

    def input_named(self, name: str) -> Optional[Input]:
        return next((i for i in self.inputs if i.name == name), None)

    def output_named(self, name: str) -> Optional[Output]:
        return next((o for o in self.outputs if o.name == name), None)

    def call_named(self, call_id: str) -> Optional[WorkflowCall]:
        return next((c for c in self.calls if c.id == call_id), None)

    def callee(self, name: str) -> Optional[Union[Task, "Workflow"]]:
        """Task or sub-workflow a call refers to, if known."""
        if name in self.tasks:
            return self.tasks[name]
        return self.subworkflows.get(name)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Workflow":
        return cls.model_validate(data)


Expression.model_rebuild()
Placeholder.model_rebuild()
Template.model_rebuild()
Workflow.model_rebuild()
