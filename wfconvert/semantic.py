from __future__ import annotations
from collections import Counter
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .diagnostics import Category, Diagnostic, Location, error, has_errors, warning
from .graph_engine import build_graph
from .ir import Expression, ExprKind, Task, Workflow, WorkflowCall
from .types import Kind, TypeSpec, is_assignable, literal_type

Callee = Union[Task, Workflow]


class Validator:
    """Read-only semantic pass over a resolved Workflow.

    Runs every check category in a fixed order and never stops early:
    - names: task names, input/output names per task and workflow, call ids
    - references: callees, callee inputs, expression references
    - types: call inputs and workflow outputs against declared types
    - scatter: scatter expressions must be arrays
    - structure: the call graph must be acyclic
    """

    def __init__(self, workflow: Workflow, scope: Optional[Workflow] = None):
        self.workflow = workflow
        # tasks and sub-workflows are looked up in the root workflow
        self.scope = scope or workflow
        self.diagnostics: List[Diagnostic] = []

    def validate(self) -> Tuple[bool, List[Diagnostic]]:
        self._check_names()
        self._check_references()
        self._check_types()
        self._check_scatter()
        self._check_structure()
        if self.scope is self.workflow:
            for key, sub in self.workflow.subworkflows.items():
                _ok, sub_diags = Validator(sub, scope=self.workflow).validate()
                self.diagnostics.extend(sub_diags)
        return not has_errors(self.diagnostics), self.diagnostics

    # ---------- helpers ----------

    def _loc(self, call: Optional[WorkflowCall] = None, task: Optional[Task] = None) -> Location:
        if task is not None:
            return Location(file=task.origin or self.workflow.origin, line=task.line, task=task.name)
        if call is not None:
            return Location(file=self.workflow.origin, line=call.line, call=call.id)
        return Location(file=self.workflow.origin)

    def _callee(self, call: WorkflowCall) -> Optional[Callee]:
        return self.scope.callee(call.callee)

    def _emit(self, diag: Diagnostic) -> None:
        self.diagnostics.append(diag)

    # ---------- (1) names ----------

    def _check_names(self) -> None:
        wf = self.workflow
        if self.scope is wf:
            names = Counter(task.name for task in wf.tasks.values())
            for key, task in wf.tasks.items():
                if task.name != key:
                    self._emit(error(Category.NAME, f"task registered as '{key}' is named '{task.name}'",
                                     self._loc(task=task)))
            for name, count in names.items():
                if count > 1:
                    self._emit(error(Category.NAME, f"duplicate task name '{name}'", self._loc()))
            for task in wf.tasks.values():
                decls = [i.name for i in task.inputs] + [d.name for d in task.locals] + [o.name for o in task.outputs]
                for name in _duplicates(decls):
                    self._emit(error(Category.NAME, f"duplicate declaration '{name}'", self._loc(task=task)))

        for name in _duplicates([i.name for i in wf.inputs] + [o.name for o in wf.outputs]):
            self._emit(error(Category.NAME, f"duplicate workflow input/output name '{name}'", self._loc()))
        for name in _duplicates([c.id for c in wf.calls]):
            self._emit(error(Category.NAME, f"duplicate call id '{name}'", self._loc()))
        input_names = {i.name for i in wf.inputs}
        for call in wf.calls:
            if call.id in input_names:
                self._emit(error(Category.NAME, f"call id '{call.id}' shadows a workflow input",
                                 self._loc(call=call)))

    # ---------- (2) references ----------

    def _check_references(self) -> None:
        wf = self.workflow
        for call in wf.calls:
            callee = self._callee(call)
            loc = self._loc(call=call)
            if callee is None:
                self._emit(error(Category.REFERENCE, f"unknown task or workflow '{call.callee}'", loc))
            else:
                for key in call.inputs:
                    if _input_of(callee, key) is None:
                        self._emit(error(Category.REFERENCE,
                                         f"'{call.callee}' has no input named '{key}'", loc))
                for inp in callee.inputs:
                    if inp.required and inp.name not in call.inputs:
                        self._emit(warning(
                            Category.REFERENCE,
                            f"required input '{inp.name}' of '{call.callee}' is not supplied; "
                            f"it becomes workflow input '{call.id}_{inp.name}'", loc))
            for expr in _call_expressions(call):
                for ref in expr.references:
                    problem = self._reference_problem(ref, call)
                    if problem:
                        self._emit(error(Category.REFERENCE, problem, loc))
        for out in wf.outputs:
            if out.expression is None:
                continue
            for ref in out.expression.references:
                problem = self._reference_problem(ref, None)
                if problem:
                    self._emit(error(Category.REFERENCE, f"output '{out.name}': {problem}", self._loc()))

    def _reference_problem(self, ref: str, call: Optional[WorkflowCall]) -> Optional[str]:
        wf = self.workflow
        if "." in ref:
            base, member = ref.split(".", 1)
            member = member.split(".", 1)[0]
            upstream = wf.call_named(base)
            if upstream is None:
                if wf.input_named(base) is not None:
                    return None
                return f"reference to undeclared call '{base}'"
            callee = self._callee(upstream)
            if callee is not None and _output_of(callee, member) is None:
                return f"call '{base}' has no output named '{member}'"
            return None
        if call is not None and call.scatter is not None and ref == call.scatter.variable:
            return None
        if wf.input_named(ref) is not None:
            return None
        if wf.call_named(ref) is not None:
            return f"'{ref}' names a call, not a value; reference one of its outputs"
        return f"reference to undeclared name '{ref}'"

    # ---------- (3) types ----------

    def type_of(self, expr: Expression, call: Optional[WorkflowCall] = None) -> Optional[TypeSpec]:
        """Static type of an expression in the context of ``call`` (None when unknown)."""
        wf = self.workflow
        if expr.kind is ExprKind.IDENTIFIER:
            if call is not None and call.scatter is not None and expr.name == call.scatter.variable:
                array_t = self.type_of(call.scatter.expression, None)
                if array_t is not None and array_t.kind is Kind.ARRAY:
                    return array_t.item_type
                return None
            inp = wf.input_named(expr.name)
            return inp.type if inp is not None else None
        if expr.kind is ExprKind.MEMBER:
            upstream = wf.call_named(expr.name)
            if upstream is None:
                return None
            callee = self._callee(upstream)
            out = _output_of(callee, expr.member) if callee is not None else None
            if out is None:
                return None
            same_block = (call is not None and call.scatter is not None and upstream.scatter is not None
                          and call.scatter.block == upstream.scatter.block)
            if upstream.scatter is not None and not same_block:
                return TypeSpec.array(out.type)
            return out.type
        if expr.kind is ExprKind.LITERAL:
            return literal_type(expr.value)
        if expr.kind is ExprKind.TEMPLATE:
            return TypeSpec.of(Kind.STRING)
        if expr.kind is ExprKind.ARRAY and expr.items:
            item_types = [self.type_of(i, call) for i in expr.items]
            if any(t is None for t in item_types) or len(set(item_types)) != 1:
                return None
            return TypeSpec.array(item_types[0])
        return None

    def _check_types(self) -> None:
        wf = self.workflow
        for call in wf.calls:
            callee = self._callee(call)
            if callee is None:
                continue
            for key, expr in call.inputs.items():
                target = _input_of(callee, key)
                source = self.type_of(expr, call)
                if target is None or source is None:
                    continue
                if not is_assignable(source, target.type):
                    self._emit(error(
                        Category.TYPE,
                        f"input '{key}' of '{call.callee}' expects {target.type} but '{expr.text}' is {source}",
                        self._loc(call=call)))
        for out in wf.outputs:
            if out.expression is None:
                continue
            source = self.type_of(out.expression, None)
            if source is not None and not is_assignable(source, out.type):
                self._emit(error(
                    Category.TYPE,
                    f"workflow output '{out.name}' is declared {out.type} but '{out.expression.text}' is {source}",
                    self._loc()))

    # ---------- (4) scatter ----------

    def _check_scatter(self) -> None:
        seen = set()
        for call in self.workflow.calls:
            spec = call.scatter
            if spec is None or spec.block in seen:
                continue
            seen.add(spec.block)
            t = self.type_of(spec.expression, None)
            if t is None:
                continue
            if t.kind is not Kind.ARRAY:
                self._emit(error(
                    Category.SCATTER,
                    f"scatter over '{spec.expression.text}' of type {t}; an Array is required",
                    self._loc(call=call)))
            elif t.optional:
                self._emit(warning(
                    Category.SCATTER,
                    f"scatter over optional array '{spec.expression.text}'; a missing value scatters over nothing",
                    self._loc(call=call)))

    # ---------- (5) structure ----------

    def _check_structure(self) -> None:
        graph = build_graph(self.workflow)
        if graph.has_cycles():
            cycle = graph.find_cycle() or []
            self._emit(error(
                Category.STRUCTURE,
                f"call dependency cycle: {' -> '.join(cycle + cycle[:1])}",
                self._loc()))


def _duplicates(names: Iterable[str]) -> List[str]:
    return [name for name, count in Counter(names).items() if count > 1]


def _input_of(callee: Callee, name: str):
    return callee.input_named(name)


def _output_of(callee: Callee, name: str):
    return callee.output_named(name)


def _call_expressions(call: WorkflowCall) -> List[Expression]:
    exprs = list(call.inputs.values())
    if call.scatter is not None:
        exprs.append(call.scatter.expression)
    return exprs


def validate(workflow: Workflow) -> Tuple[bool, List[Diagnostic]]:
    return Validator(workflow).validate()
