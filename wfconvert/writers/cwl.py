"""
CWL v1.2 writer.

Emits a packed ``$graph`` document: the workflow ``#main`` first, then
sub-workflows, then one CommandLineTool per task, each group sorted by key.
Task commands are staged as ``script.sh`` through InitialWorkDirRequirement
and run with bash; WDL placeholders become CWL parameter references.

Runtime mapping:

    container -> DockerRequirement.dockerPull
    memory    -> ResourceRequirement.ramMin (MiB)
    cpu       -> ResourceRequirement.coresMin
    disks     -> ResourceRequirement.outdirMin (MiB)
    anything else (gpu included) -> hint wfconvert:RuntimeHints, with a WARNING
"""

from __future__ import annotations
import json
import math
import re
import textwrap
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from ..diagnostics import Category, Location
from ..errors import UnsupportedConstructError, UnsupportedTypeError
from ..ir import Expression, ExprKind, Input, Placeholder, Task, Template, Workflow, WorkflowCall
from ..types import CWL, Kind, TypeSpec, degrade_map_type, render_type
from .base import BaseWriter

CWL_VERSION = "v1.2"
HINTS_NAMESPACE = "https://github.com/wfconvert/wfconvert#"
HINTS_CLASS = "wfconvert:RuntimeHints"
SCRIPT_NAME = "script.sh"

# order in which requirement classes are emitted
_REQUIREMENT_ORDER = (
    "InlineJavascriptRequirement",
    "InitialWorkDirRequirement",
    "DockerRequirement",
    "ResourceRequirement",
    "SubworkflowFeatureRequirement",
    "ScatterFeatureRequirement",
    "MultipleInputFeatureRequirement",
)

_READERS = {
    "read_string": "$(self[0].contents.replace(/\\n$/, ''))",
    "read_int": "$(parseInt(self[0].contents))",
    "read_float": "$(parseFloat(self[0].contents))",
    "read_boolean": "$(self[0].contents.trim().toLowerCase() === 'true')",
    "read_lines": "$(self[0].contents.replace(/\\n$/, '').split('\\n'))",
}
_STREAMS = {"stdout": "stdout.txt", "stderr": "stderr.txt"}

_SIZE = re.compile(r"^\s*([0-9]+(?:\.[0-9]+)?)\s*([A-Za-z]*)\s*$")
_UNITS = {
    "": 1, "b": 1,
    "k": 1000, "kb": 1000, "ki": 1024, "kib": 1024,
    "m": 1000 ** 2, "mb": 1000 ** 2, "mi": 1024 ** 2, "mib": 1024 ** 2,
    "g": 1000 ** 3, "gb": 1000 ** 3, "gi": 1024 ** 3, "gib": 1024 ** 3,
    "t": 1000 ** 4, "tb": 1000 ** 4, "ti": 1024 ** 4, "tib": 1024 ** 4,
}
MIB = 1024 ** 2


def parse_size(value: Union[str, int, float]) -> int:
    """Byte count of a WDL size such as ``"4 GB"``, ``"512MiB"`` or a bare number of bytes."""
    if isinstance(value, bool):
        raise ValueError(f"not a size: {value!r}")
    if isinstance(value, (int, float)):
        return int(math.ceil(value))
    m = _SIZE.match(value)
    if not m or m.group(2).lower() not in _UNITS:
        raise ValueError(f"not a size: {value!r}")
    return int(math.ceil(float(m.group(1)) * _UNITS[m.group(2).lower()]))


def to_mebibytes(value: Union[str, int, float]) -> int:
    return int(math.ceil(parse_size(value) / MIB))


def disk_mebibytes(value: Union[str, int, float]) -> int:
    """``local-disk 100 HDD`` style specs count GiB; sized strings are parsed as sizes."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(math.ceil(value * 1024))
    tokens = str(value).split()
    numbers = [t for t in tokens if re.fullmatch(r"[0-9]+(?:\.[0-9]+)?", t)]
    if len(tokens) >= 2 and numbers and tokens[0] != numbers[0]:
        return int(math.ceil(float(numbers[0]) * 1024))
    return to_mebibytes(str(value))


def escape_literal(text: str) -> str:
    return text.replace("\\", "\\\\").replace("$(", "\\$(").replace("${", "\\${")


class _Dumper(yaml.SafeDumper):
    pass


def _str_presenter(dumper: yaml.SafeDumper, data: str):
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


_Dumper.add_representer(str, _str_presenter)


class CwlWriter(BaseWriter):
    name = "cwl"

    def __init__(self, best_effort: bool = False, allow_degraded: bool = False, style: str = "yaml"):
        super().__init__(best_effort=best_effort)
        if style not in ("yaml", "json"):
            raise ValueError(f"unknown CWL output style '{style}'")
        self.allow_degraded = allow_degraded
        self.style = style
        self._uses_hints = False

    # ─── Entry points ────────────────────────────────────────────

    def render(self, workflow: Workflow) -> str:
        return self.dump(self.to_document(workflow))

    def dump(self, document: Dict[str, Any]) -> str:
        if self.style == "json":
            return json.dumps(document, indent=2) + "\n"
        body = yaml.dump(document, Dumper=_Dumper, sort_keys=False, default_flow_style=False,
                         allow_unicode=True, width=1000)
        return "#!/usr/bin/env cwl-runner\n" + body

    def to_document(self, workflow: Workflow) -> Dict[str, Any]:
        """Build the CWL document as plain dicts and lists."""
        self._uses_hints = False
        if workflow.name is None:
            if not workflow.tasks:
                raise UnsupportedConstructError("document declares neither a workflow nor a task",
                                                Location(file=workflow.origin))
            if len(workflow.tasks) == 1:
                task = next(iter(workflow.tasks.values()))
                tool = self._tool(task, key=None)
                return self._wrap(tool)
            graph = [self._tool(workflow.tasks[k], key=k) for k in sorted(workflow.tasks)]
            return self._wrap(None, graph)

        graph = [self._workflow(workflow, "main", workflow)]
        for key in sorted(workflow.subworkflows):
            graph.append(self._workflow(workflow.subworkflows[key], key, workflow))
        for key in sorted(workflow.tasks):
            graph.append(self._tool(workflow.tasks[key], key=key))
        return self._wrap(None, graph)

    def _wrap(self, single: Optional[Dict[str, Any]], graph: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        doc: Dict[str, Any] = {"cwlVersion": CWL_VERSION}
        if self._uses_hints:
            doc["$namespaces"] = {"wfconvert": HINTS_NAMESPACE}
        if single is not None:
            doc.update(single)
        else:
            doc["$graph"] = graph or []
        return doc

    # ─── Types and values ────────────────────────────────────────

    def _type(self, spec: TypeSpec, where: str, location: Optional[Location] = None, top: bool = True) -> Any:
        if spec.kind is Kind.MAP:
            if not self.allow_degraded:
                raise UnsupportedTypeError(
                    f"{where}: CWL has no map type for {spec}; enable degraded output to encode it "
                    f"as key/value records", location)
            self._warn(Category.UNSUPPORTED, f"{where}: {spec} encoded as an array of key/value records", location)
            return degrade_map_type(spec)
        if spec.kind is Kind.ARRAY:
            base: Any = {"type": "array", "items": self._type(spec.item_type, where, location, top=False)}
            return ["null", base] if spec.optional else base
        if spec.optional and not top:
            return ["null", render_type(spec.with_optional(False), CWL)]
        return render_type(spec, CWL)

    @staticmethod
    def _value(value: Any, spec: Optional[TypeSpec]) -> Any:
        """CWL literal for a WDL literal; file paths become File objects."""
        if spec is not None and spec.kind is Kind.FILE and isinstance(value, str):
            return {"class": "File", "location": value}
        if spec is not None and spec.kind is Kind.ARRAY and isinstance(value, list):
            return [CwlWriter._value(v, spec.item_type) for v in value]
        return value

    # ─── CommandLineTool ─────────────────────────────────────────

    def _tool(self, task: Task, key: Optional[str]) -> Dict[str, Any]:
        loc = Location(file=task.origin, line=task.line, task=task.name)
        requirements: Dict[str, Dict[str, Any]] = {}
        hints: Dict[str, Any] = {}
        streams: Dict[str, str] = {}

        inputs: Dict[str, Any] = {}
        for inp in task.inputs:
            entry: Dict[str, Any] = {"type": self._type(inp.type, f"input '{inp.name}'", loc)}
            if inp.default is not None:
                if inp.default.kind in (ExprKind.LITERAL, ExprKind.ARRAY) and inp.default.value is not None:
                    entry["default"] = self._value(inp.default.value, inp.type)
                elif inp.default.kind is not ExprKind.LITERAL:
                    self._warn(Category.UNSUPPORTED,
                               f"default of input '{inp.name}' ({inp.default.text}) is not a literal "
                               f"and is not carried over", loc)
            if inp.doc:
                entry["doc"] = inp.doc
            inputs[inp.name] = entry

        outputs: Dict[str, Any] = {}
        for out in task.outputs:
            entry = {"type": self._type(out.type, f"output '{out.name}'", loc)}
            if out.expression is not None:
                entry["outputBinding"] = self._output_binding(out.expression, out.type, task, streams, loc)
            if out.doc:
                entry["doc"] = out.doc
            outputs[out.name] = entry

        requirements["InlineJavascriptRequirement"] = {"class": "InlineJavascriptRequirement"}
        if task.command is not None:
            requirements["InitialWorkDirRequirement"] = {
                "class": "InitialWorkDirRequirement",
                "listing": [{"entryname": SCRIPT_NAME, "entry": _script(self._interpolate(task.command, task, loc))}],
            }
        if task.runtime is not None:
            self._runtime(task, requirements, hints, loc)

        tool: Dict[str, Any] = {"class": "CommandLineTool"}
        if key is not None:
            tool["id"] = key
        description = task.meta.get("description")
        if isinstance(description, str):
            tool["doc"] = description
        tool["requirements"] = _ordered(requirements)
        if hints:
            self._uses_hints = True
            tool["hints"] = [dict({"class": HINTS_CLASS}, **hints)]
        tool["baseCommand"] = ["bash", SCRIPT_NAME] if task.command is not None else ["true"]
        tool.update(streams)
        tool["inputs"] = inputs
        tool["outputs"] = outputs
        return tool

    def _runtime(self, task: Task, requirements: Dict[str, Dict[str, Any]],
                 hints: Dict[str, Any], loc: Location) -> None:
        rt = task.runtime
        resources: Dict[str, Any] = {}

        if rt.container is not None:
            if rt.container.kind is ExprKind.LITERAL and isinstance(rt.container.value, str):
                requirements["DockerRequirement"] = {"class": "DockerRequirement", "dockerPull": rt.container.value}
            else:
                self._hint(hints, "container", rt.container, loc, "is not a literal image name")
        if rt.cpu is not None:
            value = self._numeric(rt.cpu, task)
            if value is None:
                self._hint(hints, "cpu", rt.cpu, loc, "cannot be expressed as a core count")
            else:
                resources["coresMin"] = value
        for field, target, convert in (("memory", "ramMin", to_mebibytes), ("disks", "outdirMin", disk_mebibytes)):
            expr = getattr(rt, field)
            if expr is None:
                continue
            try:
                if expr.kind is not ExprKind.LITERAL:
                    raise ValueError(expr.text)
                resources[target] = convert(expr.value)
            except ValueError:
                self._hint(hints, field, expr, loc, "is not a literal size")
        if resources:
            requirements["ResourceRequirement"] = dict({"class": "ResourceRequirement"}, **resources)
        if rt.gpu is not None:
            self._hint(hints, "gpu", rt.gpu, loc, "has no CWL v1.2 equivalent")
        for key, expr in rt.extensions.items():
            self._hint(hints, key, expr, loc, "has no CWL equivalent")

    def _hint(self, hints: Dict[str, Any], key: str, expr: Expression, loc: Location, reason: str) -> None:
        hints[key] = expr.value if expr.kind is ExprKind.LITERAL else expr.text
        self._warn(Category.UNSUPPORTED, f"runtime '{key}' {reason}; kept as hint {HINTS_CLASS}", loc)

    def _numeric(self, expr: Expression, task: Task) -> Any:
        if expr.kind is ExprKind.LITERAL:
            if isinstance(expr.value, bool):
                return None
            if isinstance(expr.value, (int, float)):
                return expr.value
            if isinstance(expr.value, str):
                try:
                    return int(expr.value)
                except ValueError:
                    return None
        if expr.kind is ExprKind.IDENTIFIER and task.input_named(expr.name) is not None:
            return f"$(inputs.{expr.name})"
        return None

    def _output_binding(self, expr: Expression, spec: TypeSpec, task: Task,
                        streams: Dict[str, str], loc: Location) -> Dict[str, Any]:
        if expr.kind is ExprKind.APPLY and expr.name in _STREAMS:
            return {"glob": self._stream(expr.name, streams)}
        if expr.kind is ExprKind.APPLY and expr.name in _READERS and len(expr.items) == 1:
            return {
                "glob": self._glob(expr.items[0], task, streams, loc),
                "loadContents": True,
                "outputEval": _READERS[expr.name],
            }
        if expr.kind is ExprKind.APPLY and expr.name == "glob" and len(expr.items) == 1:
            return {"glob": self._glob(expr.items[0], task, streams, loc)}
        if _holds_files(spec) and expr.kind is ExprKind.IDENTIFIER and task.input_named(expr.name) is not None:
            # Input files are passed through.
            return {"outputEval": f"$(inputs.{expr.name})"}
        if _holds_files(spec):
            return {"glob": self._glob(expr, task, streams, loc)}
        return {"outputEval": f"$({self._js(expr, task, loc)})"}

    def _stream(self, name: str, streams: Dict[str, str]) -> str:
        streams[name] = _STREAMS[name]
        return _STREAMS[name]

    def _glob(self, expr: Expression, task: Task, streams: Dict[str, str], loc: Location) -> str:
        if expr.kind is ExprKind.APPLY and expr.name in _STREAMS:
            return self._stream(expr.name, streams)
        if expr.kind is ExprKind.LITERAL and isinstance(expr.value, str):
            return escape_literal(expr.value)
        if expr.kind is ExprKind.TEMPLATE:
            return self._interpolate(expr.template, task, loc)
        value = self._js(expr, task, loc)
        spec = self._expr_type(expr, task)
        if spec is not None and spec.kind is Kind.FILE:
            if spec.optional:
                return f"$({value} === null ? [] : {value}.path)"
            return f"$({value}.path)"
        if spec is not None and spec.kind is Kind.ARRAY and spec.item_type.kind is Kind.FILE:
            return f"$({value}.map(function(f) {{ return f.path; }}))"
        return f"$({value})"

    # ─── Expressions ─────────────────────────────────────────────

    def _interpolate(self, template: Template, task: Task, loc: Location) -> str:
        """Template as a CWL string with ``$(...)`` references.

        CWL interpolates every such string, so literal ``$(``, ``${`` and
        backslashes are escaped even when the template has no placeholders.
        """
        parts: List[str] = []
        for part in template.parts:
            if isinstance(part, Placeholder):
                parts.append(f"$({self._placeholder(part, task, loc)})")
            else:
                parts.append(escape_literal(part))
        return "".join(parts)

    def _placeholder(self, ph: Placeholder, task: Task, loc: Location) -> str:
        expr = ph.expression
        js = self._js(expr, task, loc)
        spec = self._expr_type(expr, task)
        opts = ph.options
        if "true" in opts or "false" in opts:
            return f"({js} ? {json.dumps(opts.get('true', ''))} : {json.dumps(opts.get('false', ''))})"
        if "sep" in opts:
            items = js
            if spec is not None and spec.kind is Kind.ARRAY and spec.item_type.kind is Kind.FILE:
                items = f"{js}.map(function(f) {{ return f.path; }})"
            value = f"{items}.join({json.dumps(opts['sep'])})"
        elif spec is not None and spec.kind is Kind.FILE:
            value = f"{js}.path"
        else:
            value = js
        if "default" in opts or (spec is not None and spec.optional):
            return f"({js} === null ? {json.dumps(opts.get('default', ''))} : {value})"
        return value

    def _expr_type(self, expr: Expression, task: Task) -> Optional[TypeSpec]:
        if expr.kind is ExprKind.IDENTIFIER:
            decl = task.bindings().get(expr.name)
            return decl.type if decl is not None else None
        return None

    def _js(self, expr: Expression, task: Task, loc: Location) -> str:
        """JavaScript rendering of a task-scope expression."""
        kind = expr.kind
        if kind is ExprKind.LITERAL:
            return json.dumps(expr.value)
        if kind is ExprKind.IDENTIFIER:
            if task.input_named(expr.name) is not None:
                return f"inputs.{expr.name}"
            local = next((d for d in task.locals if d.name == expr.name), None)
            if local is not None and local.default is not None:
                return f"({self._js(local.default, task, loc)})"
            raise UnsupportedConstructError(f"'{expr.name}' cannot be referenced from CWL", loc)
        if kind is ExprKind.ARRAY:
            return "[" + ", ".join(self._js(i, task, loc) for i in expr.items) + "]"
        if kind is ExprKind.TEMPLATE:
            pieces = []
            for part in expr.template.parts:
                if isinstance(part, Placeholder):
                    pieces.append(f"String({self._placeholder(part, task, loc)})")
                else:
                    pieces.append(json.dumps(part))
            return "(" + " + ".join(pieces or ['""']) + ")"
        if kind is ExprKind.APPLY:
            return self._apply(expr, task, loc)
        raise UnsupportedConstructError(f"expression '{expr.text}' has no CWL translation", loc)

    def _apply(self, expr: Expression, task: Task, loc: Location) -> str:
        args = [self._js(i, task, loc) for i in expr.items]
        name = expr.name
        if name == "basename" and args:
            spec = self._expr_type(expr.items[0], task)
            base = f"{args[0]}.basename" if spec is not None and spec.kind is Kind.FILE \
                else f"{args[0]}.split('/').pop()"
            if len(args) == 2:
                return (f"(function(b, s) {{ return b.endsWith(s) ? b.slice(0, b.length - s.length) : b; }})"
                        f"({base}, {args[1]})")
            return base
        if name == "defined" and len(args) == 1:
            return f"({args[0]} !== null)"
        if name == "length" and len(args) == 1:
            return f"{args[0]}.length"
        if name == "select_first" and len(args) == 1:
            return f"{args[0]}.find(function(v) {{ return v !== null; }})"
        raise UnsupportedConstructError(f"function '{name}' in '{expr.text}' has no CWL translation", loc)

    # ─── Workflow ────────────────────────────────────────────────

    def _workflow(self, workflow: Workflow, wf_id: str, scope: Workflow) -> Dict[str, Any]:
        loc = Location(file=workflow.origin)
        features: Dict[str, Dict[str, Any]] = {}

        inputs: Dict[str, Any] = {}
        for inp in workflow.inputs:
            inputs[inp.name] = self._workflow_input(inp, loc)

        steps: Dict[str, Any] = {}
        for call in workflow.calls:
            callee = scope.callee(call.callee)
            if isinstance(callee, Workflow):
                features["SubworkflowFeatureRequirement"] = {"class": "SubworkflowFeatureRequirement"}
            steps[call.id] = self._step(workflow, call, callee, inputs, features)

        outputs: Dict[str, Any] = {}
        for out in workflow.outputs:
            outputs[out.name] = self._workflow_output(workflow, out.name, out.type, out.expression, features, loc)

        doc: Dict[str, Any] = {"class": "Workflow", "id": wf_id, "label": workflow.name}
        description = workflow.meta.get("description")
        if isinstance(description, str):
            doc["doc"] = description
        if features:
            doc["requirements"] = _ordered(features)
        doc["inputs"] = inputs
        doc["outputs"] = outputs
        doc["steps"] = steps
        return doc

    def _workflow_input(self, inp: Input, loc: Location) -> Dict[str, Any]:
        entry: Dict[str, Any] = {"type": self._type(inp.type, f"workflow input '{inp.name}'", loc)}
        if inp.default is not None and inp.default.value is not None:
            entry["default"] = self._value(inp.default.value, inp.type)
        elif inp.default is not None and inp.default.kind is not ExprKind.LITERAL:
            self._warn(Category.UNSUPPORTED,
                       f"default of workflow input '{inp.name}' ({inp.default.text}) is not a literal "
                       f"and is not carried over", loc)
        if inp.doc:
            entry["doc"] = inp.doc
        return entry

    def _source(self, expr: Expression, call: Optional[WorkflowCall], loc: Location) -> Optional[str]:
        """Workflow-level source of a reference expression, or None when it is not one."""
        if expr.kind is ExprKind.MEMBER:
            return f"{expr.name}/{expr.member}"
        if expr.kind is ExprKind.IDENTIFIER:
            if call is not None and call.scatter is not None and expr.name == call.scatter.variable:
                src = self._source(call.scatter.expression, None, loc)
                if src is None:
                    raise UnsupportedConstructError(
                        f"scatter over '{call.scatter.expression.text}' needs a workflow input or call output", loc)
                return src
            return expr.name
        return None

    def _step(self, workflow: Workflow, call: WorkflowCall, callee: Any,
              wf_inputs: Dict[str, Any], features: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        loc = Location(file=workflow.origin, line=call.line, call=call.id)
        step_in: Dict[str, Any] = {}
        scattered: List[str] = []
        block = call.scatter.block if call.scatter is not None else None

        names = [i.name for i in callee.inputs] if callee is not None else list(call.inputs)
        for name in names:
            expr = call.inputs.get(name)
            if expr is None:
                decl = callee.input_named(name)
                if decl.required:
                    wf_name = f"{call.id}_{name}"
                    wf_inputs.setdefault(wf_name, {"type": self._type(decl.type, f"input '{name}'", loc)})
                    step_in[name] = {"source": wf_name}
                continue
            decl = callee.input_named(name) if callee is not None else None
            entry, is_scattered = self._step_input(workflow, call, block, name, expr,
                                                   decl.type if decl is not None else None, features, loc)
            step_in[name] = entry
            if is_scattered:
                scattered.append(name)

        step: Dict[str, Any] = {"run": f"#{call.callee}"}
        if call.scatter is not None:
            if not scattered:
                # scatter variable unused by the callee; iterate over it anyway
                var = call.scatter.variable
                step_in[var] = {"source": self._source(Expression.identifier(var), call, loc)}
                scattered.append(var)
            features["ScatterFeatureRequirement"] = {"class": "ScatterFeatureRequirement"}
        step["in"] = step_in
        if scattered:
            step["scatter"] = scattered[0] if len(scattered) == 1 else scattered
            if len(scattered) > 1:
                step["scatterMethod"] = "dotproduct"
        step["out"] = [o.name for o in callee.outputs] if callee is not None else []
        return step

    def _step_input(self, workflow: Workflow, call: WorkflowCall, block: Optional[str], name: str,
                    expr: Expression, target: Optional[TypeSpec], features: Dict[str, Dict[str, Any]],
                    loc: Location) -> Tuple[Dict[str, Any], bool]:
        if expr.is_reference:
            scattered = False
            if call.scatter is not None:
                if expr.kind is ExprKind.IDENTIFIER and expr.name == call.scatter.variable:
                    scattered = True
                elif expr.kind is ExprKind.MEMBER:
                    upstream = workflow.call_named(expr.name)
                    scattered = upstream is not None and upstream.scatter is not None \
                        and upstream.scatter.block == block
            return {"source": self._source(expr, call, loc)}, scattered
        if expr.kind is ExprKind.LITERAL or (expr.kind is ExprKind.ARRAY and expr.value is not None):
            return {"default": self._value(expr.value, target)}, False
        if expr.kind is ExprKind.ARRAY and all(i.is_reference for i in expr.items):
            if call.scatter is not None and call.scatter.variable in expr.root_names():
                raise UnsupportedConstructError(
                    f"input '{name}' mixes the scatter variable into an array", loc)
            features["MultipleInputFeatureRequirement"] = {"class": "MultipleInputFeatureRequirement"}
            return {"source": [self._source(i, call, loc) for i in expr.items], "linkMerge": "merge_nested"}, False
        raise UnsupportedConstructError(f"input '{name}' = '{expr.text}' has no CWL step equivalent", loc)

    def _workflow_output(self, workflow: Workflow, name: str, spec: TypeSpec, expr: Optional[Expression],
                         features: Dict[str, Dict[str, Any]], loc: Location) -> Dict[str, Any]:
        entry: Dict[str, Any] = {"type": self._type(spec, f"workflow output '{name}'", loc)}
        if expr is None:
            return entry
        source = self._source(expr, None, loc)
        if source is not None:
            entry["outputSource"] = source
        elif expr.kind is ExprKind.ARRAY and expr.items and all(i.is_reference for i in expr.items):
            features["MultipleInputFeatureRequirement"] = {"class": "MultipleInputFeatureRequirement"}
            entry["outputSource"] = [self._source(i, None, loc) for i in expr.items]
            entry["linkMerge"] = "merge_nested"
        else:
            raise UnsupportedConstructError(
                f"workflow output '{name}' = '{expr.text}' must reference a call output or input", loc)
        return entry


def _script(text: str) -> str:
    """Command body with common indentation and surrounding blank lines removed."""
    return textwrap.dedent(text).strip("\n") + "\n"


def _holds_files(spec: TypeSpec) -> bool:
    if spec.kind is Kind.FILE:
        return True
    return spec.kind is Kind.ARRAY and _holds_files(spec.item_type)


def _ordered(requirements: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [requirements[name] for name in _REQUIREMENT_ORDER if name in requirements]
