from __future__ import annotations
from typing import List, Optional

from loguru import logger

from ..diagnostics import Category, Diagnostic, Location, warning
from ..errors import ValidationError
from ..ir import Workflow
from ..semantic import validate


class BaseWriter:
    """Shared pre-flight and warning bookkeeping for every writer."""

    name = "base"

    def __init__(self, best_effort: bool = False):
        self.best_effort = best_effort
        self.diagnostics: List[Diagnostic] = []

    def write(self, workflow: Workflow) -> str:
        self.diagnostics = []
        self._preflight(workflow)
        return self.render(workflow)

    def render(self, workflow: Workflow) -> str:
        raise NotImplementedError

    def _preflight(self, workflow: Workflow) -> None:
        _ok, diags = validate(workflow)
        errors = [d for d in diags if d.is_error]
        if not errors:
            return
        if not self.best_effort:
            raise ValidationError(errors)
        logger.warning("{} writer: emitting best-effort output despite {} error(s)", self.name, len(errors))

    def _warn(self, category: Category, message: str, location: Optional[Location] = None) -> None:
        logger.warning(message)
        self.diagnostics.append(warning(category, message, location))
