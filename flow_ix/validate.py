"""
flow_ix.validate
================

Validator Chain.

A validator is a callable (sync or async) with one of two shapes:

    def check(ix, Accepted, Rejected): ...
    def check(ix): ...

and returns `Accepted(ix)` or `Rejected(ix, reason)`. Validators run in the
order they were declared; the first rejection invalidates the Interaction and
raises `ValidationError`, and later validators are not called.

Examples
--------
    def one_argument(ix, Accepted, Rejected):
        if len(ix.arguments) > 1:
            return Rejected(ix, "This transaction should only have one argument!")
        return Accepted(ix)
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Union

from .errors import ValidationError
from .interaction import Interaction
from .logging import get_logger

__all__ = ["Accepted", "Rejected", "ValidationResult", "run_validators", "resolve_validators"]

log = get_logger(__name__)


@dataclass(frozen=True)
class Accepted:
    interaction: Interaction


@dataclass(frozen=True)
class Rejected:
    interaction: Interaction
    reason: str


ValidationResult = Union[Accepted, Rejected]


def _wants_constructors(fn: Callable[..., Any]) -> bool:
    try:
        sig = inspect.signature(fn)
    except (TypeError, ValueError):
        return True
    params = list(sig.parameters.values())
    if any(p.kind is inspect.Parameter.VAR_POSITIONAL for p in params):
        return True
    positional = [
        p for p in params
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    ]
    return len(positional) >= 3


async def _call(fn: Callable[..., Any], ix: Interaction) -> Any:
    out = fn(ix, Accepted, Rejected) if _wants_constructors(fn) else fn(ix)
    if inspect.isawaitable(out):
        out = await out
    return out


async def run_validators(ix: Interaction) -> ValidationResult:
    """
    Run every validator against `ix` and return the first `Rejected`, or
    `Accepted(ix)`. Does not change the Interaction.
    """
    for i, fn in enumerate(ix.validators):
        name = getattr(fn, "__name__", f"validator#{i}")
        try:
            out = await _call(fn, ix)
        except ValidationError:
            raise
        except Exception as e:
            raise ValidationError(f"{name} raised: {e}") from e
        if isinstance(out, Rejected):
            log.info("validator rejected interaction", extra={"validator": name, "reason": out.reason})
            return out
        if not isinstance(out, Accepted):
            raise ValidationError(f"{name} returned {type(out).__name__}, expected Accepted or Rejected")
    return Accepted(ix)


async def resolve_validators(ix: Interaction) -> Interaction:
    """
    Resolver form: a rejection invalidates `ix` (reason = the validator's
    reason) and raises `ValidationError`.
    """
    ix.ensure_mutable()
    try:
        result = await run_validators(ix)
    except ValidationError as e:
        raise e.with_context(interaction=ix, stage="validators")
    if isinstance(result, Rejected):
        ix.invalidate(result.reason)
        raise ValidationError(result.reason, ix, "validators")
    return ix
