"""
flow_ix.build
=============

Builder Composition: pure, synchronous functions that each contribute a patch to
an Interaction, and `build()` which applies them in order.

Examples
--------
    from flow_ix import build as b, types as t

    ix = b.build([
        b.transaction("transaction(message: String) { execute { log(message) } }"),
        b.args([b.arg("hello", t.String)]),
        b.proposer(b.authorization("f8d6e0586b0a20c7", signer, 0)),
        b.payer(b.authorization("f8d6e0586b0a20c7", signer, 0)),
        b.authorizations([b.authorization("f8d6e0586b0a20c7", signer, 0)]),
        b.limit(999),
    ])

A builder takes the current Interaction and returns a `Patch` (merged with
`Interaction.merge`) or an Interaction (used as a full replacement). No builder
performs I/O. Malformed input raises `BuildError`; `build()` works on a private
copy, so a failed composition never hands back a partially merged Interaction.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Optional, Sequence, Tuple, Union

from .auth import as_authorization, authorization
from .errors import BuildError, FlowIxError
from .interaction import (Argument, Declaration, Interaction, Patch, Status,
                          TemplateParam, interaction)
from .logging import get_logger
from .script import Script
from .types import TypeTag, type_tag
from .utils.bytes import from_hex

__all__ = [
    "Builder",
    "build",
    "transaction",
    "arg",
    "args",
    "param",
    "params",
    "proposer",
    "payer",
    "authorizations",
    "authorization",
    "limit",
    "ref",
    "validator",
]

log = get_logger(__name__)

Builder = Callable[[Interaction], Union[Interaction, Patch]]


# --- Composition ---------------------------------------------------------------


def _replacement(current: Interaction, out: Interaction) -> Interaction:
    if out is current:
        return current
    if out.status is not Status.BUILDING:
        raise BuildError(f"replacement interaction must be BUILDING, got {out.status.value}")
    if out.payload_signatures or out.envelope_signatures:
        raise BuildError("signatures can only be added by the signature step")
    return out.copy()


def build(builders: Iterable[Builder], ix: Optional[Interaction] = None) -> Interaction:
    """
    Apply `builders` in order to a copy of `ix` (or a fresh Interaction).

    Raises BuildError on malformed input; the caller's Interaction is untouched.
    """
    work = ix.copy() if ix is not None else interaction()
    if work.status is not Status.BUILDING:
        raise BuildError(f"cannot build on a {work.status.value} interaction", ix)

    for i, fn in enumerate(builders):
        if not callable(fn):
            raise BuildError(f"builder #{i} is not callable: {fn!r}")
        try:
            out = fn(work)
        except FlowIxError:
            raise
        except Exception as e:
            raise BuildError(f"builder #{i} failed: {e}") from e
        if isinstance(out, Patch):
            work.merge(out)
        elif isinstance(out, Interaction):
            work = _replacement(work, out)
        else:
            raise BuildError(f"builder #{i} returned {type(out).__name__}, expected Patch or Interaction")

    log.debug("interaction built", extra=work.summary())
    return work


# --- Script / arguments --------------------------------------------------------


def transaction(text: str) -> Builder:
    """Set the transaction script; its `transaction(...)` header declares the parameters."""
    try:
        script = Script.parse(text)
    except ValueError as e:
        raise BuildError(f"invalid transaction script: {e}") from e

    def _builder(ix: Interaction) -> Patch:
        return Patch(script=script)

    return _builder


def arg(value: Any, tag: Union[TypeTag, str]) -> Argument:
    """Declare one argument; an unrecognized type tag raises BuildError immediately."""
    return Argument(name="", value=value, type_tag=type_tag(tag))


ArgLike = Union[Argument, Tuple[Any, Union[TypeTag, str]]]


def _as_argument(item: ArgLike) -> Argument:
    if isinstance(item, Argument):
        return item
    if isinstance(item, tuple) and len(item) == 2:
        return arg(item[0], item[1])
    raise BuildError(f"expected arg(value, type) or (value, type), got {item!r}")


def args(items: Sequence[ArgLike]) -> Builder:
    """Append arguments in declaration order. Unnamed ones get positional names `arg<i>`."""
    declared = [_as_argument(a) for a in items]

    def _builder(ix: Interaction) -> Patch:
        base = len(ix.arguments)
        return Patch(
            arguments=tuple(
                a if a.name else Argument(name=f"arg{base + i}", value=a.value, type_tag=a.type_tag)
                for i, a in enumerate(declared)
            )
        )

    return _builder


def param(name: str, value: Any, tag: Union[TypeTag, str]) -> TemplateParam:
    """A value for the `${name}` placeholder in the script text."""
    if not isinstance(name, str) or not name.isidentifier():
        raise BuildError(f"param name must be an identifier, got {name!r}")
    return TemplateParam(name=name, value=value, type_tag=type_tag(tag))


def params(items: Sequence[TemplateParam]) -> Builder:
    declared = tuple(items)
    for p in declared:
        if not isinstance(p, TemplateParam):
            raise BuildError(f"expected param(name, value, type), got {p!r}")

    def _builder(ix: Interaction) -> Patch:
        return Patch(params=declared)

    return _builder


# --- Roles ---------------------------------------------------------------------


def proposer(authz: Any) -> Builder:
    decl = Declaration(role="proposer", authorization=as_authorization(authz))

    def _builder(ix: Interaction) -> Patch:
        return Patch(proposer_authz=decl)

    return _builder


def payer(authz: Any) -> Builder:
    decl = Declaration(role="payer", authorization=as_authorization(authz))

    def _builder(ix: Interaction) -> Patch:
        return Patch(payer_authz=decl)

    return _builder


def authorizations(authzs: Sequence[Any]) -> Builder:
    decls = tuple(Declaration(role="authorizer", authorization=as_authorization(a)) for a in authzs)

    def _builder(ix: Interaction) -> Patch:
        return Patch(authorizer_authz=decls)

    return _builder


# --- Scalars / validators ------------------------------------------------------


def limit(compute_limit: int) -> Builder:
    if isinstance(compute_limit, bool) or not isinstance(compute_limit, int) or compute_limit <= 0:
        raise BuildError(f"compute limit must be a positive int, got {compute_limit!r}")

    def _builder(ix: Interaction) -> Patch:
        return Patch(compute_limit=compute_limit)

    return _builder


def ref(block_id: str) -> Builder:
    """Pin the reference block instead of resolving the latest sealed one."""
    try:
        raw = from_hex(block_id)
    except (TypeError, ValueError) as e:
        raise BuildError(f"invalid reference block id: {e}") from e
    if not raw:
        raise BuildError("reference block id must not be empty")
    normalized = raw.hex()

    def _builder(ix: Interaction) -> Patch:
        return Patch(reference_block_id=normalized)

    return _builder


def validator(fn: Callable[..., Any]) -> Builder:
    if not callable(fn):
        raise BuildError(f"validator must be callable, got {fn!r}")

    def _builder(ix: Interaction) -> Patch:
        return Patch(validators=(fn,))

    return _builder
