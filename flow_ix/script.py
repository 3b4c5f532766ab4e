"""
Script value type.

A `Script` is the transaction text plus its declared parameter schema. The
schema is read from the `transaction(name: Type, ...)` header so arguments can
be checked (count, order, type) and named before signing.

Script text may also carry `${name}` template placeholders. They are filled by
`render()` with literals produced by each value's type codec, never by raw
string concatenation, so a `String` value is always quoted and escaped.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Sequence, Tuple

from .types import TypeTag

__all__ = ["Param", "Script", "parse_parameters"]

_HEADER_RE = re.compile(r"\btransaction\s*\(")
_PLACEHOLDER_RE = re.compile(r"\$\{([_a-zA-Z][_a-zA-Z0-9]*)\}")
_WS_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class Param:
    name: str
    type_name: str  # whitespace-free Cadence type string, e.g. "[UFix64]"


def _balanced_parens(text: str, start: int) -> str:
    """Return the text between the '(' just before `start` and its matching ')'."""
    depth = 1
    for i in range(start, len(text)):
        ch = text[i]
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return text[start:i]
    raise ValueError("unbalanced parentheses in transaction header")


def _split_top_level(s: str, sep: str) -> List[str]:
    out: List[str] = []
    depth = 0
    buf: List[str] = []
    for ch in s:
        if ch in "([{<":
            depth += 1
        elif ch in ")]}>":
            depth -= 1
        if ch == sep and depth == 0:
            out.append("".join(buf))
            buf = []
        else:
            buf.append(ch)
    out.append("".join(buf))
    return out


def parse_parameters(text: str) -> Tuple[Param, ...]:
    """
    Read the declared parameters of the first `transaction(...)` header.

    Returns an empty tuple when the text has no header or an empty one.
    Raises ValueError on a malformed declaration.
    """
    m = _HEADER_RE.search(text)
    if not m:
        return ()
    body = _balanced_parens(text, m.end()).strip()
    if not body:
        return ()
    params: List[Param] = []
    for decl in _split_top_level(body, ","):
        parts = _split_top_level(decl, ":")
        if len(parts) < 2 or not parts[0].strip():
            raise ValueError(f"malformed parameter declaration: {decl.strip()!r}")
        name = parts[0].strip().split()[-1]  # tolerate argument labels: `_ name: T`
        type_name = _WS_RE.sub("", ":".join(parts[1:]))
        if not type_name:
            raise ValueError(f"parameter {name!r} has no type")
        params.append(Param(name=name, type_name=type_name))
    return tuple(params)


@dataclass(frozen=True)
class Script:
    text: str
    parameters: Tuple[Param, ...] = ()

    @classmethod
    def parse(cls, text: str) -> "Script":
        if not isinstance(text, str) or not text.strip():
            raise ValueError("script text must be a non-empty string")
        return cls(text=text, parameters=parse_parameters(text))

    @property
    def placeholders(self) -> Tuple[str, ...]:
        seen: List[str] = []
        for name in _PLACEHOLDER_RE.findall(self.text):
            if name not in seen:
                seen.append(name)
        return tuple(seen)

    def render(self, values: Mapping[str, Tuple[Any, TypeTag]]) -> "Script":
        """
        Substitute `${name}` placeholders with type-rendered literals.

        `values` maps placeholder name -> (value, tag). Raises KeyError for a
        placeholder without a value and ValueError when a codec rejects a value.
        """
        if not self.placeholders:
            return self
        literals = {name: tag.to_literal(value) for name, (value, tag) in values.items()}
        missing = [p for p in self.placeholders if p not in literals]
        if missing:
            raise KeyError(", ".join(missing))
        text = _PLACEHOLDER_RE.sub(lambda m: literals[m.group(1)], self.text)
        return Script(text=text, parameters=parse_parameters(text))

    def encode(self) -> bytes:
        return self.text.encode("utf-8")

    def declared_types(self) -> Sequence[str]:
        return [p.type_name for p in self.parameters]
