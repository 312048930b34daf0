from __future__ import annotations
from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .diagnostics import Diagnostic, Location


class ConversionError(Exception):
    """Base class for every error raised while converting a workflow."""

    category = "parse"

    def __init__(self, message: str, location: Optional["Location"] = None):
        super().__init__(message)
        self.message = message
        self.location = location

    def __str__(self) -> str:
        if self.location is not None and str(self.location):
            return f"{self.location}: {self.message}"
        return self.message

    def to_diagnostic(self) -> "Diagnostic":
        from .diagnostics import Category, Diagnostic, Level
        return Diagnostic(
            level=Level.ERROR,
            category=Category(self.category),
            message=self.message,
            location=self.location,
            error=type(self).__name__,
        )


class ParseError(ConversionError):
    category = "parse"


class UndeclaredReferenceError(ConversionError):
    category = "reference"


class WdlTypeError(ConversionError, TypeError):
    """Raised for a type token outside the supported type system."""
    category = "type"


class UnsupportedTypeError(ConversionError):
    """Raised when a type has no equivalent in the requested dialect."""
    category = "unsupported"


class ImportNotFoundError(ConversionError):
    category = "import"


class CircularImportError(ConversionError):
    category = "import"


class UnsupportedConstructError(ConversionError):
    category = "unsupported"


class CycleError(ConversionError):
    category = "structure"

    def __init__(self, cycle: List[str], location: Optional["Location"] = None):
        super().__init__(f"call dependency cycle: {' -> '.join(cycle + cycle[:1])}", location)
        self.cycle = cycle


class ValidationError(ConversionError):
    """Raised when a workflow carries ERROR-level validator diagnostics."""

    category = "structure"

    def __init__(self, diagnostics: List["Diagnostic"]):
        first = diagnostics[0] if diagnostics else None
        message = first.message if first else "validation failed"
        super().__init__(message, first.location if first else None)
        self.diagnostics = diagnostics
        if first is not None:
            self.category = first.category.value


class ConfigError(ConversionError):
    category = "parse"


class ConversionCancelled(ConversionError):
    category = "import"
