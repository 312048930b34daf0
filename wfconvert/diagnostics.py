"""Structured reports shared by the parser, import resolver, validator and writers."""

from __future__ import annotations
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from . import errors


class Level(str, Enum):
    WARNING = "WARNING"
    ERROR = "ERROR"


class Category(str, Enum):
    PARSE = "parse"
    REFERENCE = "reference"
    TYPE = "type"
    IMPORT = "import"
    UNSUPPORTED = "unsupported"
    NAME = "name"
    SCATTER = "scatter"
    STRUCTURE = "structure"


_ERROR_CLASSES = {
    Category.PARSE: errors.ParseError,
    Category.REFERENCE: errors.UndeclaredReferenceError,
    Category.TYPE: errors.WdlTypeError,
    Category.IMPORT: errors.ImportNotFoundError,
    Category.UNSUPPORTED: errors.UnsupportedConstructError,
}

# Exceptions rebuilt from (message, location) when a diagnostic records its origin.
_RAISED_AS = {
    cls.__name__: cls
    for cls in (errors.ParseError, errors.UndeclaredReferenceError, errors.WdlTypeError,
                errors.UnsupportedTypeError, errors.ImportNotFoundError, errors.CircularImportError,
                errors.UnsupportedConstructError, errors.ConfigError, errors.ConversionCancelled)
}


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    task: Optional[str] = None
    call: Optional[str] = None

    def __str__(self) -> str:
        parts = []
        if self.file:
            pos = self.file
            if self.line is not None:
                pos += f":{self.line}"
                if self.column is not None:
                    pos += f":{self.column}"
            parts.append(pos)
        if self.task:
            parts.append(f"task '{self.task}'")
        if self.call:
            parts.append(f"call '{self.call}'")
        return ", ".join(parts)


class Diagnostic(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: Level
    category: Category
    message: str
    location: Optional[Location] = None
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.level is Level.ERROR

    def __str__(self) -> str:
        where = f"{self.location}: " if self.location is not None and str(self.location) else ""
        return f"[{self.level.value}] {where}{self.message} ({self.category.value})"

    def to_error(self) -> errors.ConversionError:
        """Build the exception this diagnostic came from, else the one matching its category."""
        cls = _RAISED_AS.get(self.error) or _ERROR_CLASSES.get(self.category)
        if cls is None:
            return errors.ValidationError([self])
        return cls(self.message, self.location)


def error(category: Category, message: str, location: Optional[Location] = None) -> Diagnostic:
    return Diagnostic(level=Level.ERROR, category=category, message=message, location=location)


def warning(category: Category, message: str, location: Optional[Location] = None) -> Diagnostic:
    return Diagnostic(level=Level.WARNING, category=category, message=message, location=location)


def has_errors(diagnostics: List[Diagnostic]) -> bool:
    return any(d.is_error for d in diagnostics)


def first_error(diagnostics: List[Diagnostic]) -> Optional[Diagnostic]:
    return next((d for d in diagnostics if d.is_error), None)
