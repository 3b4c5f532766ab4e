"""
flow_ix.auth
============

Authorizations and Authorization Resolution.

An authorization is one of two explicit variants:

* `Concrete`   : address, key id and signing function supplied directly
                 (optionally a known sequence number);
* `Resolvable` : an async callable that receives a `RoleContext` and returns a
                 `Concrete` (or a mapping with `address`, `key_id`,
                 `signing_function` and optional `sequence_number`).

`resolve_accounts` turns every proposer/payer/authorizer declaration into
entries of the Interaction's `AccountMap`:

1. Distinct resolvable functions are invoked concurrently, once each, with the
   union of the roles they were declared for.
2. Results are merged one at a time, in declaration order, into a scratch copy
   of the account map (single writer).
3. The scratch map, plus `proposal_key`, `payer` and `authorizers`, replaces the
   Interaction's fields only when every declaration resolved.

Running it again on a resolved Interaction is a no-op apart from filling
fields that were still empty.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from .errors import BuildError, ResolutionError
from .interaction import (Account, AccountMap, Declaration, Interaction,
                          ProposalKey, RoleContext, Roles)
from .logging import get_logger
from .utils.bytes import sans_prefix

__all__ = [
    "Concrete",
    "Resolvable",
    "Authorization",
    "authorization",
    "as_authorization",
    "resolve_accounts",
]

log = get_logger(__name__)

SigningFunction = Callable[..., Any]


@dataclass(frozen=True)
class Concrete:
    address: str
    key_id: int
    signing_function: Optional[SigningFunction] = field(default=None, repr=False)
    sequence_number: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "address", sans_prefix(self.address))
        if isinstance(self.key_id, bool) or not isinstance(self.key_id, int) or self.key_id < 0:
            raise ValueError(f"key_id must be a non-negative int, got {self.key_id!r}")
        if self.sequence_number is not None and int(self.sequence_number) < 0:
            raise ValueError("sequence_number must be non-negative")


@dataclass(frozen=True)
class Resolvable:
    resolve: Callable[[RoleContext], Awaitable[Any]] = field(repr=False)
    label: Optional[str] = None


Authorization = Union[Concrete, Resolvable]


def authorization(
    address: str,
    signing_function: Optional[SigningFunction] = None,
    key_id: int = 0,
    sequence_number: Optional[int] = None,
) -> Concrete:
    """Build a `Concrete` authorization; malformed input raises `BuildError`."""
    try:
        return Concrete(
            address=address,
            key_id=key_id,
            signing_function=signing_function,
            sequence_number=sequence_number,
        )
    except (TypeError, ValueError) as e:
        raise BuildError(f"invalid authorization: {e}") from e


def as_authorization(obj: Any) -> Authorization:
    """
    Accept a `Concrete`, a `Resolvable`, or a bare (async) function wrapped
    into `Resolvable`. Anything else is a `BuildError`.
    """
    if isinstance(obj, (Concrete, Resolvable)):
        return obj
    if callable(obj):
        return Resolvable(resolve=obj, label=getattr(obj, "__name__", None))
    raise BuildError(f"expected an authorization, got {type(obj).__name__}")


# --- Resolution ----------------------------------------------------------------


def _coerce_result(result: Any, where: str) -> Concrete:
    if isinstance(result, Concrete):
        return result
    if isinstance(result, Mapping):
        address = result.get("address")
        key_id = result.get("key_id", result.get("keyId"))
        if not address:
            raise ResolutionError(f"{where} returned no address")
        if key_id is None:
            raise ResolutionError(f"{where} returned no key_id")
        try:
            return Concrete(
                address=address,
                key_id=key_id,
                signing_function=result.get("signing_function"),
                sequence_number=result.get("sequence_number"),
            )
        except (TypeError, ValueError) as e:
            raise ResolutionError(f"{where} returned a malformed authorization: {e}") from e
    raise ResolutionError(f"{where} returned {type(result).__name__}, expected an authorization")


async def _invoke(resolvable: Resolvable, roles: Roles) -> Concrete:
    where = f"authorization {resolvable.label or 'resolvable'}"
    try:
        result = resolvable.resolve(roles)
        if inspect.isawaitable(result):
            result = await result
    except ResolutionError:
        raise
    except Exception as e:
        raise ResolutionError(f"{where} failed: {e}") from e
    return _coerce_result(result, where)


async def _resolve_declarations(decls: List[Declaration]) -> Dict[int, Concrete]:
    """Return declaration order -> Concrete, invoking each Resolvable once."""
    concrete: Dict[int, Concrete] = {}
    # Equal Resolvables (same function) are one group, called once.
    groups: Dict[Resolvable, List[Declaration]] = {}
    for d in decls:
        authz = d.authorization
        if isinstance(authz, Concrete):
            concrete[d.order] = authz
        elif isinstance(authz, Resolvable):
            groups.setdefault(authz, []).append(d)
        else:
            raise ResolutionError(f"unsupported authorization type {type(authz).__name__}")

    keys = list(groups)
    roles = [
        RoleContext(
            proposer=any(d.role == "proposer" for d in groups[k]),
            authorizer=any(d.role == "authorizer" for d in groups[k]),
            payer=any(d.role == "payer" for d in groups[k]),
        )
        for k in keys
    ]
    results = await asyncio.gather(
        *(_invoke(k, r) for k, r in zip(keys, roles)),
        return_exceptions=True,
    )
    # First failure in declaration order wins; nothing from this step is kept.
    for k, res in zip(keys, results):
        if isinstance(res, BaseException):
            raise res
        for d in groups[k]:
            concrete[d.order] = res
    return concrete


def _require_roles(ix: Interaction) -> None:
    if ix.proposer_authz is None:
        raise ResolutionError("no proposer declared", ix)
    if ix.payer_authz is None:
        raise ResolutionError("no payer declared", ix)


async def resolve_accounts(ix: Interaction) -> Interaction:
    """Authorization Resolution: populate `accounts`, `proposal_key`, `payer`, `authorizers`."""
    ix.ensure_mutable()
    _require_roles(ix)
    decls = ix.declarations()
    concrete = await _resolve_declarations(decls)

    scratch: AccountMap = ix.accounts.copy()
    for d in decls:
        c = concrete[d.order]
        scratch.merge(
            Account(
                address=c.address,
                key_id=c.key_id,
                roles=d.roles,
                sequence_number=c.sequence_number,
                signing_function=c.signing_function,
                order=d.order,
            )
        )

    proposer_c = concrete[ix.proposer_authz.order]  # type: ignore[union-attr]
    proposer = scratch.get(proposer_c.address, proposer_c.key_id)
    assert proposer is not None
    seq = proposer.sequence_number
    if seq is None and ix.proposal_key is not None and ix.proposal_key.sequence_number is not None:
        if (sans_prefix(ix.proposal_key.address), ix.proposal_key.key_id) == proposer.key:
            seq = ix.proposal_key.sequence_number

    ix.resolve_fields(
        accounts=scratch,
        proposal_key=ProposalKey(address=proposer.address, key_id=proposer.key_id, sequence_number=seq),
        payer=concrete[ix.payer_authz.order].address,  # type: ignore[union-attr]
        authorizers=[concrete[d.order].address for d in ix.authorizer_authz],
    )
    log.debug(
        "accounts resolved",
        extra={"declarations": len(decls), "accounts": len(scratch)},
    )
    return ix
