"""Value types shared by every dialect.

A :class:`TypeSpec` is an immutable, structurally compared descriptor. Only
``ARRAY`` carries ``item_type`` and only ``MAP`` carries ``key_type`` and
``value_type``; the model validator rejects anything else.
"""

from __future__ import annotations
import re
from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, model_validator

from .errors import UnsupportedTypeError, WdlTypeError

WDL = "wdl"
CWL = "cwl"
DIALECTS = (WDL, CWL)


class Kind(str, Enum):
    STRING = "STRING"
    INT = "INT"
    FLOAT = "FLOAT"
    BOOLEAN = "BOOLEAN"
    FILE = "FILE"
    ARRAY = "ARRAY"
    MAP = "MAP"


SCALAR_KINDS = frozenset({Kind.STRING, Kind.INT, Kind.FLOAT, Kind.BOOLEAN, Kind.FILE})


class TypeSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Kind
    optional: bool = False
    item_type: Optional["TypeSpec"] = None
    key_type: Optional["TypeSpec"] = None
    value_type: Optional["TypeSpec"] = None

    @model_validator(mode="after")
    def _check_nesting(self) -> "TypeSpec":
        if self.kind is Kind.ARRAY:
            if self.item_type is None or self.key_type is not None or self.value_type is not None:
                raise ValueError("ARRAY requires item_type and nothing else")
        elif self.kind is Kind.MAP:
            if self.key_type is None or self.value_type is None or self.item_type is not None:
                raise ValueError("MAP requires key_type and value_type and nothing else")
        elif self.item_type is not None or self.key_type is not None or self.value_type is not None:
            raise ValueError(f"{self.kind.value} cannot carry nested types")
        return self

    # constructors

    @classmethod
    def of(cls, kind: Kind, optional: bool = False) -> "TypeSpec":
        return cls(kind=kind, optional=optional)

    @classmethod
    def array(cls, item: "TypeSpec", optional: bool = False) -> "TypeSpec":
        return cls(kind=Kind.ARRAY, item_type=item, optional=optional)

    @classmethod
    def map(cls, key: "TypeSpec", value: "TypeSpec", optional: bool = False) -> "TypeSpec":
        return cls(kind=Kind.MAP, key_type=key, value_type=value, optional=optional)

    def with_optional(self, optional: bool = True) -> "TypeSpec":
        return self.model_copy(update={"optional": optional})

    @property
    def is_container(self) -> bool:
        return self.kind in (Kind.ARRAY, Kind.MAP)

    def __str__(self) -> str:
        return render_type(self, WDL)


# ─── WDL dialect ────────────────────────────────────────────────

_WDL_SCALARS = {
    "String": Kind.STRING,
    "Int": Kind.INT,
    "Float": Kind.FLOAT,
    "Boolean": Kind.BOOLEAN,
    "File": Kind.FILE,
}
_WDL_NAMES = {v: k for k, v in _WDL_SCALARS.items()}
_WDL_TOKEN = re.compile(r"\s*([A-Za-z_][A-Za-z0-9_]*|[\[\],+?])")


def _tokenize_wdl(token: str) -> List[str]:
    out: List[str] = []
    pos = 0
    text = token.strip()
    while pos < len(text):
        m = _WDL_TOKEN.match(text, pos)
        if not m:
            raise WdlTypeError(f"unrecognized type '{token}'")
        out.append(m.group(1))
        pos = m.end()
    return out


class _WdlTypeReader:
    def __init__(self, token: str):
        self.token = token
        self.parts = _tokenize_wdl(token)
        self.pos = 0

    def _peek(self) -> Optional[str]:
        return self.parts[self.pos] if self.pos < len(self.parts) else None

    def _take(self, expected: Optional[str] = None) -> str:
        cur = self._peek()
        if cur is None or (expected is not None and cur != expected):
            raise WdlTypeError(f"unrecognized type '{self.token}'")
        self.pos += 1
        return cur

    def read(self) -> TypeSpec:
        spec = self._read_one()
        if self._peek() is not None:
            raise WdlTypeError(f"unrecognized type '{self.token}'")
        return spec

    def _read_one(self) -> TypeSpec:
        name = self._take()
        params: List[TypeSpec] = []
        if self._peek() == "[":
            self._take("[")
            params.append(self._read_one())
            while self._peek() == ",":
                self._take(",")
                params.append(self._read_one())
            self._take("]")
        if name in _WDL_SCALARS:
            if params:
                raise WdlTypeError(f"type '{name}' takes no parameters in '{self.token}'")
            spec = TypeSpec.of(_WDL_SCALARS[name])
        elif name == "Array" and len(params) == 1:
            spec = TypeSpec.array(params[0])
            # non-empty marker has no counterpart in the IR
            if self._peek() == "+":
                self._take("+")
        elif name == "Map" and len(params) == 2:
            spec = TypeSpec.map(params[0], params[1])
        else:
            raise WdlTypeError(f"unrecognized type '{self.token}'")
        if self._peek() == "?":
            self._take("?")
            spec = spec.with_optional(True)
        return spec


def _render_wdl(spec: TypeSpec) -> str:
    if spec.kind is Kind.ARRAY:
        base = f"Array[{_render_wdl(spec.item_type)}]"
    elif spec.kind is Kind.MAP:
        base = f"Map[{_render_wdl(spec.key_type)}, {_render_wdl(spec.value_type)}]"
    else:
        base = _WDL_NAMES[spec.kind]
    return base + ("?" if spec.optional else "")


# ─── CWL dialect ────────────────────────────────────────────────
# Optional scalars at the top level use the "type?" shorthand; every other
# optional is encoded as the two-element union ["null", T].

_CWL_SCALARS = {
    "string": Kind.STRING,
    "int": Kind.INT,
    "long": Kind.INT,
    "float": Kind.FLOAT,
    "double": Kind.FLOAT,
    "boolean": Kind.BOOLEAN,
    "File": Kind.FILE,
}
_CWL_NAMES = {
    Kind.STRING: "string",
    Kind.INT: "int",
    Kind.FLOAT: "float",
    Kind.BOOLEAN: "boolean",
    Kind.FILE: "File",
}


def _render_cwl(spec: TypeSpec, top: bool = True) -> Any:
    if spec.kind is Kind.MAP:
        raise UnsupportedTypeError(f"CWL has no map type for '{_render_wdl(spec)}'")
    if spec.kind is Kind.ARRAY:
        base: Any = {"type": "array", "items": _render_cwl(spec.item_type, top=False)}
    else:
        base = _CWL_NAMES[spec.kind]
    if not spec.optional:
        return base
    if top and isinstance(base, str):
        return base + "?"
    return ["null", base]


def _parse_cwl(token: Any) -> TypeSpec:
    if isinstance(token, str):
        text = token.strip()
        if text.endswith("?"):
            return _parse_cwl(text[:-1]).with_optional(True)
        if text.endswith("[]"):
            return TypeSpec.array(_parse_cwl(text[:-2]))
        if text in _CWL_SCALARS:
            return TypeSpec.of(_CWL_SCALARS[text])
        raise WdlTypeError(f"unrecognized CWL type '{token}'")
    if isinstance(token, list):
        members = [m for m in token if m != "null"]
        if len(members) != 1:
            raise WdlTypeError(f"unsupported CWL union {token!r}")
        inner = _parse_cwl(members[0])
        return inner.with_optional(len(members) != len(token) or inner.optional)
    if isinstance(token, dict) and token.get("type") == "array" and "items" in token:
        return TypeSpec.array(_parse_cwl(token["items"]))
    raise WdlTypeError(f"unrecognized CWL type {token!r}")


def degrade_map_type(spec: TypeSpec) -> Any:
    """Explicit CWL encoding of a MAP as an array of key/value records."""
    if spec.kind is not Kind.MAP:
        raise ValueError("degrade_map_type expects a MAP TypeSpec")
    if spec.key_type.kind is not Kind.STRING:
        raise UnsupportedTypeError(
            f"map key type {_render_wdl(spec.key_type)} cannot be represented in CWL")
    value = spec.value_type
    value_token = degrade_map_type(value) if value.kind is Kind.MAP else _render_cwl(value, top=False)
    base = {
        "type": "array",
        "items": {
            "type": "record",
            "fields": [
                {"name": "key", "type": "string"},
                {"name": "value", "type": value_token},
            ],
        },
    }
    return ["null", base] if spec.optional else base


# ─── Public contract ────────────────────────────────────────────

def parse_type(token: Union[str, Any], dialect: str = WDL) -> TypeSpec:
    """Map a dialect type token to a TypeSpec; raise WdlTypeError when unrecognized."""
    if dialect == WDL:
        if not isinstance(token, str):
            raise WdlTypeError(f"unrecognized type {token!r}")
        return _WdlTypeReader(token).read()
    if dialect == CWL:
        return _parse_cwl(token)
    raise ValueError(f"unknown type dialect '{dialect}'")


def render_type(spec: TypeSpec, dialect: str = WDL) -> Any:
    """Inverse of parse_type; raises UnsupportedTypeError when no equivalent exists."""
    if dialect == WDL:
        return _render_wdl(spec)
    if dialect == CWL:
        return _render_cwl(spec)
    raise ValueError(f"unknown type dialect '{dialect}'")


def is_assignable(source: TypeSpec, target: TypeSpec) -> bool:
    """Same kind, optional-ness only widening, containers compared recursively."""
    if source.kind is not target.kind:
        return False
    if source.optional and not target.optional:
        return False
    if source.kind is Kind.ARRAY:
        return is_assignable(source.item_type, target.item_type)
    if source.kind is Kind.MAP:
        return (is_assignable(source.key_type, target.key_type)
                and is_assignable(source.value_type, target.value_type))
    return True


def literal_type(value: Any) -> Optional[TypeSpec]:
    """Type of a Python literal value produced by lowering, or None when unknown."""
    if isinstance(value, bool):
        return TypeSpec.of(Kind.BOOLEAN)
    if isinstance(value, int):
        return TypeSpec.of(Kind.INT)
    if isinstance(value, float):
        return TypeSpec.of(Kind.FLOAT)
    if isinstance(value, str):
        return TypeSpec.of(Kind.STRING)
    return None
