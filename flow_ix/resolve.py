"""
flow_ix.resolve
===============

Resolver Chain: asynchronous steps that complete an Interaction, and `resolve()`
which runs them as a single pipeline step.

Every resolver is a `Resolver(stage, run, requires)`. `requires` names the
stages that must have completed before this one runs. `resolve()` orders the
resolvers it is given by a stable topological sort over those declarations, so a
caller listing, say, the sequence-number resolver before the accounts resolver
still gets a correct chain. Dependencies on stages that are not part of the
chain are ignored.

Built-in stages and their dependencies:

    ref_block        -
    accounts         -
    params           -
    sequence_number  accounts
    arguments        params
    validators       ref_block, accounts, sequence_number, params, arguments
    signatures       ref_block, accounts, sequence_number, params, arguments, validators

Validators see the fully resolved Interaction before any signing capability is
invoked; a rejected Interaction is never signed. The Interaction becomes VALID
once the whole chain has completed and it carries every required signature;
a chain that leaves it unsigned, or skips its declared validators, marks it
INVALID instead.

Examples
--------
    from flow_ix import resolve as r

    step = r.resolve([
        r.resolve_ref_block_id(node="http://127.0.0.1:8888"),
        r.resolve_proposer_sequence_number(node="http://127.0.0.1:8888"),
        r.resolve_arguments,
        r.resolve_params,
        r.resolve_accounts,
        r.resolve_signatures,
        r.resolve_validators,
    ])
    ix = await step(ix)

Failure handling
----------------
The first failing stage stops the chain. The Interaction is marked INVALID
with `reason = "<stage>: <message>"` (a validator rejection keeps the
validator's own reason) and the typed error is re-raised with the Interaction
and the stage attached. `NodeError` from the access node surfaces as
`ResolutionError`. Nothing is retried here.
"""

from __future__ import annotations

import inspect
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Set, Tuple, Union

from . import auth, sign, validate
from .config import Config, resolve_config
from .errors import (BuildError, FlowIxError, NodeError, ResolutionError,
                     SigningError, ValidationError)
from .interaction import Account, Interaction, Status
from .logging import bind, get_logger, trace_scope
from .rpc.http import NodeClient
from .types import same_type, type_tag

__all__ = [
    "Resolver",
    "order_resolvers",
    "resolve",
    "resolve_ref_block_id",
    "resolve_accounts",
    "resolve_proposer_sequence_number",
    "resolve_params",
    "resolve_arguments",
    "resolve_signatures",
    "resolve_validators",
]

log = get_logger(__name__)

ResolveFn = Callable[[Interaction], Union[Awaitable[Optional[Interaction]], Optional[Interaction]]]


@dataclass(frozen=True)
class Resolver:
    stage: str
    run: ResolveFn = field(repr=False)
    requires: Tuple[str, ...] = ()

    async def __call__(self, ix: Interaction) -> Interaction:
        out = self.run(ix)
        if inspect.isawaitable(out):
            out = await out
        if out is None:
            return ix
        if not isinstance(out, Interaction):
            raise ResolutionError(f"resolver returned {type(out).__name__}, expected Interaction", ix, self.stage)
        return out


def _as_resolver(obj: Any) -> Resolver:
    if isinstance(obj, Resolver):
        return obj
    if callable(obj):
        return Resolver(stage=getattr(obj, "__name__", "custom"), run=obj)
    raise BuildError(f"expected a resolver, got {type(obj).__name__}")


def order_resolvers(resolvers: Iterable[Any]) -> List[Resolver]:
    """
    Stable topological order: at each step the earliest (caller order) resolver
    whose present dependencies have all run is taken next.
    """
    pending = [_as_resolver(r) for r in resolvers]
    total = Counter(r.stage for r in pending)
    done: Counter = Counter()
    ordered: List[Resolver] = []
    while pending:
        for i, r in enumerate(pending):
            if all(done[d] == total[d] for d in r.requires if d in total and d != r.stage):
                ordered.append(r)
                done[r.stage] += 1
                del pending[i]
                break
        else:
            stuck = ", ".join(f"{r.stage} (requires {', '.join(r.requires)})" for r in pending)
            raise BuildError(f"resolver dependencies form a cycle: {stuck}")
    return ordered


def _fail(ix: Interaction, err: FlowIxError) -> None:
    if not ix.frozen:
        ix.invalidate(err.reason)
    log.warning("resolution failed", extra={"error": type(err).__name__, "reason": ix.reason})


def _check_complete(ix: Interaction, stages: Set[str]) -> None:
    """Only a validated, fully signed Interaction may become VALID."""
    err: Optional[FlowIxError] = None
    if ix.validators and "validators" not in stages:
        err = ValidationError("declared validators were not run", ix, "validators")
    else:
        try:
            sign.check_signed(ix)
        except SigningError as e:
            err = e.with_context(interaction=ix, stage="signatures")
    if err is not None:
        _fail(ix, err)
        raise err


def resolve(resolvers: Iterable[Any], config: Optional[Config] = None) -> Callable[[Interaction], Awaitable[Interaction]]:
    """
    Combine `resolvers` into one async step `ix -> ix`.

    The dependency order is computed here, so a cycle among custom resolvers is
    reported before anything runs. `config.compute_limit` fills an unset
    compute limit.
    """
    chain = order_resolvers(resolvers)

    async def _resolve(ix: Interaction) -> Interaction:
        if ix.status is Status.BUILDING:
            ix.advance(Status.RESOLVING)
        elif ix.status is not Status.RESOLVING:
            raise ResolutionError(f"cannot resolve a {ix.status.value} interaction", ix)
        if ix.compute_limit is None:
            ix.resolve_fields(compute_limit=resolve_config(config).compute_limit)

        with trace_scope():
            log.debug("resolving interaction", extra={"stages": [r.stage for r in chain]})
            for r in chain:
                bind(stage=r.stage)
                try:
                    ix = await r(ix)
                except NodeError as e:
                    err = ResolutionError(f"node request failed: {e.message}", ix, r.stage)
                    _fail(ix, err)
                    raise err from e
                except FlowIxError as e:
                    e.with_context(interaction=ix, stage=r.stage)
                    _fail(ix, e)
                    raise
                except Exception as e:
                    err = ResolutionError(f"{type(e).__name__}: {e}", ix, r.stage)
                    _fail(ix, err)
                    raise err from e
                log.debug("stage complete", extra=ix.summary())

            _check_complete(ix, {r.stage for r in chain})

        ix.advance(Status.VALID)
        log.info("interaction resolved", extra=ix.summary())
        return ix

    return _resolve


# --- Network-backed resolvers --------------------------------------------------


async def _with_node(
    ix: Interaction, config: Config, client: Optional[NodeClient], fn: Callable[[NodeClient], Awaitable[Any]]
) -> Any:
    try:
        if client is not None:
            return await fn(client)
        async with NodeClient(config) as node:
            return await fn(node)
    except NodeError as e:
        raise ResolutionError(f"node request failed: {e.message}", ix) from e


def resolve_ref_block_id(
    config: Optional[Config] = None, *, client: Optional[NodeClient] = None, **overrides: Any
) -> Resolver:
    """Fetch the latest sealed block id when no reference block is set."""
    cfg = resolve_config(config, **overrides)

    async def _run(ix: Interaction) -> Interaction:
        if ix.reference_block_id:
            return ix
        block_id = await _with_node(ix, cfg, client, lambda node: node.get_latest_block_id())
        log.debug("reference block resolved", extra={"node": cfg.node, "ref": block_id})
        return ix.resolve_fields(reference_block_id=block_id)

    return Resolver(stage="ref_block", run=_run)


def resolve_proposer_sequence_number(
    config: Optional[Config] = None, *, client: Optional[NodeClient] = None, **overrides: Any
) -> Resolver:
    """Fetch the proposer key's sequence number when it is not known yet."""
    cfg = resolve_config(config, **overrides)

    async def _run(ix: Interaction) -> Interaction:
        pk = ix.proposal_key
        if pk is None:
            raise ResolutionError("proposer is not resolved; accounts must be resolved first", ix)
        if pk.sequence_number is not None:
            return ix
        seq = await _with_node(ix, cfg, client, lambda node: node.get_sequence_number(pk.address, pk.key_id))
        accounts = ix.accounts.copy()
        accounts.merge(Account(address=pk.address, key_id=pk.key_id, sequence_number=seq))
        log.debug("sequence number resolved", extra={"node": cfg.node, "proposer": pk.address, "seq": seq})
        return ix.resolve_fields(proposal_key=replace(pk, sequence_number=seq), accounts=accounts)

    return Resolver(stage="sequence_number", run=_run, requires=("accounts",))


# --- Local resolvers -----------------------------------------------------------


async def _resolve_params(ix: Interaction) -> Interaction:
    """Fill `${name}` placeholders, then check and name arguments against the header."""
    if ix.script is None:
        raise ResolutionError("no transaction script", ix)
    try:
        script = ix.script.render({p.name: (p.value, p.type_tag) for p in ix.params})
    except KeyError as e:
        raise ResolutionError(f"no param for placeholder(s): {e.args[0]}", ix) from e
    except ValueError as e:
        raise ResolutionError(f"invalid param value: {e}", ix) from e

    declared = script.parameters
    if len(declared) != len(ix.arguments):
        raise ResolutionError(
            f"script declares {len(declared)} parameter(s) but {len(ix.arguments)} argument(s) were supplied", ix
        )
    named = []
    for p, a in zip(declared, ix.arguments):
        try:
            expected = type_tag(p.type_name)
        except BuildError:
            expected = None  # composite or resource types are not checked locally
        if expected is not None and not same_type(expected, a.type_tag):
            raise ResolutionError(f"argument {p.name!r} is {a.type_tag.name}, script declares {p.type_name}", ix)
        named.append(replace(a, name=p.name))
    return ix.resolve_fields(script=script, arguments=named)


async def _resolve_arguments(ix: Interaction) -> Interaction:
    encoded = []
    for a in ix.arguments:
        try:
            encoded.append(replace(a, encoded=a.type_tag.encode(a.value)))
        except (TypeError, ValueError) as e:
            raise ResolutionError(f"argument {a.name!r} is not a valid {a.type_tag.name}: {e}", ix) from e
    return ix.resolve_fields(arguments=encoded)


resolve_accounts = Resolver(stage="accounts", run=auth.resolve_accounts)
resolve_params = Resolver(stage="params", run=_resolve_params)
resolve_arguments = Resolver(stage="arguments", run=_resolve_arguments, requires=("params",))
resolve_validators = Resolver(
    stage="validators",
    run=validate.resolve_validators,
    requires=("ref_block", "accounts", "sequence_number", "params", "arguments"),
)
resolve_signatures = Resolver(
    stage="signatures",
    run=sign.resolve_signatures,
    requires=("ref_block", "accounts", "sequence_number", "params", "arguments", "validators"),
)
