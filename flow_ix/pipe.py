"""Run an Interaction through a list of steps (sync or async callables)."""

from __future__ import annotations

import inspect
from typing import Any, Callable, Iterable

from .errors import BuildError
from .interaction import Interaction

__all__ = ["pipe"]


async def pipe(ix: Interaction, steps: Iterable[Callable[[Interaction], Any]]) -> Interaction:
    """
    Feed `ix` through `steps` in order; each step gets the previous step's
    result. A step returning None keeps the current Interaction.
    """
    for i, step in enumerate(steps):
        if not callable(step):
            raise BuildError(f"pipe step #{i} is not callable: {step!r}", ix)
        out = step(ix)
        if inspect.isawaitable(out):
            out = await out
        if out is None:
            continue
        if not isinstance(out, Interaction):
            raise BuildError(f"pipe step #{i} returned {type(out).__name__}, expected Interaction", ix)
        ix = out
    return ix
