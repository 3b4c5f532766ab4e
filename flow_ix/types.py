"""
Argument type tags and their codecs.

Every transaction argument is declared with a type tag. A tag knows how to:
- validate and convert a Python value into its JSON-Cadence form
  (`{"type": "String", "value": "hello"}`), which is the canonical wire
  representation of an argument once serialized to compact JSON bytes;
- render a value as a script literal, used when substituting `${name}` template
  parameters into script text (see `flow_ix.script`).

Tags are plain frozen values. Scalars are module-level constants (`String`,
`UInt64`, `UFix64`, ...); composites are built with `Optional(T)`, `Array(T)`
and `Dictionary(K, V)`. `type_tag()` accepts either a tag or its type string
(`"String"`, `"[UInt8]"`, `"Address?"`, `"{String: Int}"`) and raises
`BuildError` for anything it does not recognize.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Mapping, Optional as _Opt, Tuple, Union

from .errors import BuildError
from .utils.bytes import with_prefix

JsonValue = Dict[str, Any]


@dataclass(frozen=True)
class TypeTag:
    """A Cadence-style type with its JSON and literal codecs."""

    name: str
    to_json: Callable[[Any], JsonValue] = field(repr=False, compare=False)
    to_literal: Callable[[Any], str] = field(repr=False, compare=False)

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.name

    def encode(self, value: Any) -> bytes:
        """Canonical argument bytes: compact JSON-Cadence."""
        return json.dumps(self.to_json(value), separators=(",", ":"), ensure_ascii=False).encode("utf-8")


# --- Scalar codecs -------------------------------------------------------------


def _string_value(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"expected str, got {type(value).__name__}")
    return value


def _character_value(value: Any) -> str:
    s = _string_value(value)
    if len(s) != 1:
        raise ValueError(f"Character must be exactly one character, got {len(s)}")
    return s


def _bool_value(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"expected bool, got {type(value).__name__}")
    return value


def _address_value(value: Any) -> str:
    return with_prefix(_string_value(value))


def _cadence_string_literal(s: str) -> str:
    out: List[str] = []
    for ch in s:
        if ch == "\\":
            out.append("\\\\")
        elif ch == '"':
            out.append('\\"')
        elif ch == "\n":
            out.append("\\n")
        elif ch == "\r":
            out.append("\\r")
        elif ch == "\t":
            out.append("\\t")
        elif ch == "\0":
            out.append("\\0")
        elif ord(ch) < 0x20:
            out.append(f"\\u{{{ord(ch):x}}}")
        else:
            out.append(ch)
    return '"' + "".join(out) + '"'


def _simple(name: str, convert: Callable[[Any], Any], literal: Callable[[Any], str]) -> TypeTag:
    return TypeTag(
        name=name,
        to_json=lambda v: {"type": name, "value": convert(v)},
        to_literal=lambda v: literal(convert(v)),
    )


def _int_tag(name: str, lo: _Opt[int], hi: _Opt[int]) -> TypeTag:
    def convert(value: Any) -> str:
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise ValueError(f"{name} expects int, got {type(value).__name__}")
        try:
            n = int(value)
        except ValueError as e:
            raise ValueError(f"{name} expects an integer, got {value!r}") from e
        if lo is not None and n < lo:
            raise ValueError(f"{name} out of range: {n} < {lo}")
        if hi is not None and n > hi:
            raise ValueError(f"{name} out of range: {n} > {hi}")
        return str(n)

    return _simple(name, convert, lambda s: s)


_FIX_SCALE = Decimal("0.00000001")


def _fix_tag(name: str, signed: bool) -> TypeTag:
    raw_max = 2**63 - 1 if signed else 2**64 - 1
    raw_min = -(2**63) if signed else 0

    def convert(value: Any) -> str:
        if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
            raise ValueError(f"{name} expects a decimal, got {type(value).__name__}")
        try:
            d = Decimal(str(value))
            q = d.quantize(_FIX_SCALE)
        except InvalidOperation as e:
            raise ValueError(f"{name} expects a finite decimal, got {value!r}") from e
        if d != q:
            raise ValueError(f"{name} supports at most 8 fractional digits: {value!r}")
        raw = int(q.scaleb(8))
        if raw < raw_min or raw > raw_max:
            raise ValueError(f"{name} out of range: {value!r}")
        return f"{q:f}"

    return _simple(name, convert, lambda s: s)


String = _simple("String", _string_value, _cadence_string_literal)
Character = _simple("Character", _character_value, _cadence_string_literal)
Bool = _simple("Bool", _bool_value, lambda b: "true" if b else "false")
Address = _simple("Address", _address_value, lambda a: a)

Int = _int_tag("Int", None, None)
UInt = _int_tag("UInt", 0, None)
Int8 = _int_tag("Int8", -(2**7), 2**7 - 1)
Int16 = _int_tag("Int16", -(2**15), 2**15 - 1)
Int32 = _int_tag("Int32", -(2**31), 2**31 - 1)
Int64 = _int_tag("Int64", -(2**63), 2**63 - 1)
Int128 = _int_tag("Int128", -(2**127), 2**127 - 1)
Int256 = _int_tag("Int256", -(2**255), 2**255 - 1)
UInt8 = _int_tag("UInt8", 0, 2**8 - 1)
UInt16 = _int_tag("UInt16", 0, 2**16 - 1)
UInt32 = _int_tag("UInt32", 0, 2**32 - 1)
UInt64 = _int_tag("UInt64", 0, 2**64 - 1)
UInt128 = _int_tag("UInt128", 0, 2**128 - 1)
UInt256 = _int_tag("UInt256", 0, 2**256 - 1)
Word8 = _int_tag("Word8", 0, 2**8 - 1)
Word16 = _int_tag("Word16", 0, 2**16 - 1)
Word32 = _int_tag("Word32", 0, 2**32 - 1)
Word64 = _int_tag("Word64", 0, 2**64 - 1)

Fix64 = _fix_tag("Fix64", signed=True)
UFix64 = _fix_tag("UFix64", signed=False)


def _void_json(value: Any) -> JsonValue:
    if value is not None:
        raise ValueError("Void takes no value")
    return {"type": "Void"}


Void = TypeTag(name="Void", to_json=_void_json, to_literal=lambda v: "()")


# --- Composite tags -------------------------------------------------------------


def Optional(inner: Union[TypeTag, str]) -> TypeTag:
    tag = type_tag(inner)

    def to_json(value: Any) -> JsonValue:
        return {"type": "Optional", "value": None if value is None else tag.to_json(value)}

    def to_literal(value: Any) -> str:
        return "nil" if value is None else tag.to_literal(value)

    return TypeTag(name=f"{tag.name}?", to_json=to_json, to_literal=to_literal)


def Array(inner: Union[TypeTag, str]) -> TypeTag:
    tag = type_tag(inner)

    def items(value: Any) -> List[Any]:
        if isinstance(value, (str, bytes, Mapping)) or not hasattr(value, "__iter__"):
            raise ValueError(f"[{tag.name}] expects a sequence, got {type(value).__name__}")
        return list(value)

    def to_json(value: Any) -> JsonValue:
        return {"type": "Array", "value": [tag.to_json(v) for v in items(value)]}

    def to_literal(value: Any) -> str:
        return "[" + ", ".join(tag.to_literal(v) for v in items(value)) + "]"

    return TypeTag(name=f"[{tag.name}]", to_json=to_json, to_literal=to_literal)


def Dictionary(key: Union[TypeTag, str], value: Union[TypeTag, str]) -> TypeTag:
    ktag, vtag = type_tag(key), type_tag(value)

    def pairs(obj: Any) -> List[Tuple[Any, Any]]:
        if isinstance(obj, Mapping):
            return list(obj.items())
        raise ValueError(f"{{{ktag.name}: {vtag.name}}} expects a mapping, got {type(obj).__name__}")

    def to_json(obj: Any) -> JsonValue:
        return {
            "type": "Dictionary",
            "value": [{"key": ktag.to_json(k), "value": vtag.to_json(v)} for k, v in pairs(obj)],
        }

    def to_literal(obj: Any) -> str:
        return "{" + ", ".join(f"{ktag.to_literal(k)}: {vtag.to_literal(v)}" for k, v in pairs(obj)) + "}"

    return TypeTag(name=f"{{{ktag.name}: {vtag.name}}}", to_json=to_json, to_literal=to_literal)


# --- Registry / type-string parsing --------------------------------------------

SCALARS: Dict[str, TypeTag] = {
    t.name: t
    for t in (
        String, Character, Bool, Address, Void,
        Int, UInt, Int8, Int16, Int32, Int64, Int128, Int256,
        UInt8, UInt16, UInt32, UInt64, UInt128, UInt256,
        Word8, Word16, Word32, Word64,
        Fix64, UFix64,
    )
}

_WS_RE = re.compile(r"\s+")


def _split_dict_body(body: str) -> Tuple[str, str]:
    depth = 0
    for i, ch in enumerate(body):
        if ch in "[{":
            depth += 1
        elif ch in "]}":
            depth -= 1
        elif ch == ":" and depth == 0:
            return body[:i], body[i + 1 :]
    raise BuildError(f"malformed dictionary type: {{{body}}}")


def _parse(s: str) -> TypeTag:
    if not s:
        raise BuildError("empty type tag")
    if s.endswith("?"):
        return Optional(_parse(s[:-1]))
    if s.startswith("[") and s.endswith("]"):
        return Array(_parse(s[1:-1]))
    if s.startswith("{") and s.endswith("}"):
        k, v = _split_dict_body(s[1:-1])
        return Dictionary(_parse(k), _parse(v))
    tag = SCALARS.get(s)
    if tag is None:
        raise BuildError(f"unrecognized type tag: {s!r}")
    return tag


def type_tag(tag: Union[TypeTag, str]) -> TypeTag:
    """Return a `TypeTag` for a tag or its type string; `BuildError` if unrecognized."""
    if isinstance(tag, TypeTag):
        return tag
    if isinstance(tag, str):
        return _parse(_WS_RE.sub("", tag))
    raise BuildError(f"type tag must be a TypeTag or type string, got {type(tag).__name__}")


def same_type(a: Union[TypeTag, str], b: Union[TypeTag, str]) -> bool:
    return type_tag(a).name.replace(" ", "") == type_tag(b).name.replace(" ", "")


__all__ = [
    "TypeTag",
    "type_tag",
    "same_type",
    "SCALARS",
    "String", "Character", "Bool", "Address", "Void",
    "Int", "UInt", "Int8", "Int16", "Int32", "Int64", "Int128", "Int256",
    "UInt8", "UInt16", "UInt32", "UInt64", "UInt128", "UInt256",
    "Word8", "Word16", "Word32", "Word64",
    "Fix64", "UFix64",
    "Optional", "Array", "Dictionary",
]
