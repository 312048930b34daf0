"""WDL 1.0 writer: tasks sorted by name, then the workflow."""

from __future__ import annotations
import json
from itertools import groupby
from typing import Any, Dict, List

from ..diagnostics import Location
from ..errors import UnsupportedConstructError
from ..ir import Input, Output, Task, Workflow, WorkflowCall
from .base import BaseWriter

INDENT = "  "


class WdlWriter(BaseWriter):
    name = "wdl"

    def __init__(self, best_effort: bool = False, version: str = "1.0"):
        super().__init__(best_effort=best_effort)
        self.version = version

    def render(self, workflow: Workflow) -> str:
        if workflow.subworkflows:
            first = sorted(workflow.subworkflows)[0]
            raise UnsupportedConstructError(
                f"sub-workflow '{first}' cannot be emitted into a single WDL document",
                Location(file=workflow.origin))
        names = self._task_names(workflow)
        blocks = [f"version {self.version}"]
        for key in sorted(workflow.tasks):
            blocks.append(self._task(workflow.tasks[key], names[key]))
        if workflow.name is not None:
            blocks.append(self._workflow(workflow, names))
        return "\n\n".join(blocks) + "\n"

    @staticmethod
    def _task_names(workflow: Workflow) -> Dict[str, str]:
        """Identifier used for each task key; namespaced keys lose their dot."""
        names: Dict[str, str] = {}
        taken = {key for key in workflow.tasks if "." not in key}
        for key in workflow.tasks:
            if "." not in key:
                names[key] = key
                continue
            name = key.replace(".", "_")
            if name in taken:
                raise UnsupportedConstructError(
                    f"task '{key}' cannot be renamed to '{name}': name already used",
                    Location(file=workflow.origin))
            taken.add(name)
            names[key] = name
        return names

    # ─── Tasks ───────────────────────────────────────────────────

    def _task(self, task: Task, name: str) -> str:
        lines = [f"task {name} {{"]
        if task.inputs:
            lines += _section("input", [_decl(i) for i in task.inputs])
        for decl in task.locals:
            lines.append(INDENT + _decl(decl))
        if task.command is not None:
            if task.command_style == "brace":
                lines.append(f"{INDENT}command {{{task.command.text}}}")
            else:
                lines.append(f"{INDENT}command <<<{task.command.text}>>>")
        if task.outputs:
            lines += _section("output", [_output(o) for o in task.outputs])
        if task.runtime is not None and not task.runtime.is_empty:
            entries = []
            rt = task.runtime
            for key, expr in rt.recognized().items():
                entries.append(f"{'docker' if key == 'container' else key}: {expr.text}")
            for key, expr in rt.extensions.items():
                entries.append(f"{key}: {expr.text}")
            lines += _section("runtime", entries)
        if task.meta:
            lines += _section("meta", [f"{k}: {_meta_value(v)}" for k, v in task.meta.items()])
        if task.parameter_meta:
            lines += _section("parameter_meta",
                              [f"{k}: {_meta_value(v)}" for k, v in task.parameter_meta.items()])
        lines.append("}")
        return "\n".join(lines)

    # ─── Workflow ────────────────────────────────────────────────

    def _workflow(self, workflow: Workflow, names: Dict[str, str]) -> str:
        lines = [f"workflow {workflow.name} {{"]
        if workflow.inputs:
            lines += _section("input", [_decl(i) for i in workflow.inputs])
        for block, calls in groupby(workflow.calls, key=lambda c: c.scatter.block if c.scatter else None):
            calls = list(calls)
            if block is None:
                for call in calls:
                    lines += self._call(call, names, INDENT)
                continue
            spec = calls[0].scatter
            lines.append(f"{INDENT}scatter ({spec.variable} in {spec.expression.text}) {{")
            for call in calls:
                lines += self._call(call, names, INDENT * 2)
            lines.append(INDENT + "}")
        if workflow.outputs:
            lines += _section("output", [_output(o) for o in workflow.outputs])
        if workflow.meta:
            lines += _section("meta", [f"{k}: {_meta_value(v)}" for k, v in workflow.meta.items()])
        if workflow.parameter_meta:
            lines += _section("parameter_meta",
                              [f"{k}: {_meta_value(v)}" for k, v in workflow.parameter_meta.items()])
        lines.append("}")
        return "\n".join(lines)

    @staticmethod
    def _call(call: WorkflowCall, names: Dict[str, str], indent: str) -> List[str]:
        callee = names.get(call.callee, call.callee)
        head = f"{indent}call {callee}"
        if call.id != callee:
            head += f" as {call.id}"
        if not call.inputs:
            return [head]
        bindings = [f"{k} = {v.text}" for k, v in call.inputs.items()]
        lines = [head + " {", f"{indent}{INDENT}input:"]
        for i, binding in enumerate(bindings):
            sep = "," if i < len(bindings) - 1 else ""
            lines.append(f"{indent}{INDENT * 2}{binding}{sep}")
        lines.append(indent + "}")
        return lines


def _section(name: str, entries: List[str]) -> List[str]:
    return [f"{INDENT}{name} {{"] + [INDENT * 2 + e for e in entries] + [INDENT + "}"]


def _decl(decl: Input) -> str:
    text = f"{decl.type} {decl.name}"
    if decl.default is not None:
        text += f" = {decl.default.text}"
    return text


def _output(out: Output) -> str:
    expr = out.expression.text if out.expression is not None else "None"
    return f"{out.type} {out.name} = {expr}"


def _meta_value(value: Any) -> str:
    if isinstance(value, dict):
        return "{" + ", ".join(f"{k}: {_meta_value(v)}" for k, v in value.items()) + "}"
    if isinstance(value, list):
        return "[" + ", ".join(_meta_value(v) for v in value) + "]"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    return str(value)
