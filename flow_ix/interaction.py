"""
flow_ix.interaction
===================

The Interaction aggregate: one in-progress transaction, completed step by step
by builders and resolvers, then validated, signed and sent.

Merge rules
-----------
Interactions are never overwritten destructively. Two merge paths exist:

* `Interaction.merge(patch)`, used by builders:
    - arguments, params, authorizer declarations and validators append in
      encounter order;
    - accounts merge by `(address, key_id)` with role-flag union
      (`AccountMap.merge`);
    - scalars (script, compute limit, reference block, proposer, payer) are
      last-write-wins.
* `Interaction.resolve_fields(...)`, used by resolvers, sets fields and never
  clears them.

Signature lists are only written by `record_signatures`, which the Signature
Engine calls. Status moves strictly forward (see `_TRANSITIONS`); once an
Interaction is VALID, INVALID or SENT every mutator except the final status
transition raises `BuildError`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import (TYPE_CHECKING, Any, Callable, Dict, Iterator, List,
                    Optional, Sequence, Tuple)

from .errors import BuildError
from .script import Script
from .types import TypeTag
from .utils.bytes import sans_prefix

if TYPE_CHECKING:  # pragma: no cover
    from .auth import Authorization

__all__ = [
    "Status",
    "Roles",
    "RoleContext",
    "Argument",
    "TemplateParam",
    "ProposalKey",
    "Signature",
    "Account",
    "AccountKey",
    "AccountMap",
    "Declaration",
    "Patch",
    "Interaction",
    "interaction",
]


class Status(str, Enum):
    BUILDING = "BUILDING"
    RESOLVING = "RESOLVING"
    VALID = "VALID"
    INVALID = "INVALID"
    SENT = "SENT"


_TRANSITIONS: Dict[Status, Tuple[Status, ...]] = {
    Status.BUILDING: (Status.BUILDING, Status.RESOLVING, Status.INVALID),
    Status.RESOLVING: (Status.RESOLVING, Status.VALID, Status.INVALID),
    Status.VALID: (Status.SENT,),
    Status.INVALID: (),
    Status.SENT: (),
}

_FROZEN = (Status.VALID, Status.INVALID, Status.SENT)


# --- Value types ---------------------------------------------------------------


@dataclass(frozen=True)
class Roles:
    proposer: bool = False
    authorizer: bool = False
    payer: bool = False

    def __or__(self, other: "Roles") -> "Roles":
        return Roles(
            proposer=self.proposer or other.proposer,
            authorizer=self.authorizer or other.authorizer,
            payer=self.payer or other.payer,
        )

    @property
    def signs_payload(self) -> bool:
        return self.proposer or self.authorizer

    def to_dict(self) -> Dict[str, bool]:
        return {"proposer": self.proposer, "authorizer": self.authorizer, "payer": self.payer}


# The role context handed to a resolvable authorization is the same shape.
RoleContext = Roles


@dataclass(frozen=True)
class Argument:
    name: str
    value: Any
    type_tag: TypeTag
    encoded: Optional[bytes] = None


@dataclass(frozen=True)
class TemplateParam:
    """A named value substituted into `${name}` placeholders of the script."""

    name: str
    value: Any
    type_tag: TypeTag


@dataclass(frozen=True)
class ProposalKey:
    address: str
    key_id: int
    sequence_number: Optional[int] = None


@dataclass(frozen=True)
class Signature:
    address: str
    key_id: int
    signature: bytes


AccountKey = Tuple[str, int]


@dataclass(frozen=True)
class Account:
    address: str
    key_id: int
    roles: Roles = field(default_factory=Roles)
    sequence_number: Optional[int] = None
    signing_function: Optional[Callable[..., Any]] = field(default=None, repr=False)
    # Introduction ordinal; later merges keep the first one.
    order: int = field(default=0, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "address", sans_prefix(self.address))
        if isinstance(self.key_id, bool) or not isinstance(self.key_id, int) or self.key_id < 0:
            raise ValueError(f"key_id must be a non-negative int, got {self.key_id!r}")

    @property
    def key(self) -> AccountKey:
        return (self.address, self.key_id)

    def merged(self, other: "Account") -> "Account":
        """Union roles; fill sequence number / signing function only when unset."""
        if other.key != self.key:
            raise ValueError(f"cannot merge account {other.key} into {self.key}")
        return replace(
            self,
            roles=self.roles | other.roles,
            sequence_number=(
                self.sequence_number if self.sequence_number is not None else other.sequence_number
            ),
            signing_function=self.signing_function or other.signing_function,
        )


class AccountMap:
    """
    Accounts keyed by `(address, key_id)`.

    `merge` is the only way to add an entry, so duplicates cannot exist.
    Iteration order is introduction order, which is also signing order.
    """

    __slots__ = ("_entries",)

    def __init__(self, accounts: Sequence[Account] = ()) -> None:
        self._entries: Dict[AccountKey, Account] = {}
        for acct in accounts:
            self.merge(acct)

    def merge(self, account: Account) -> Account:
        existing = self._entries.get(account.key)
        merged = account if existing is None else existing.merged(account)
        self._entries[account.key] = merged
        return merged

    def get(self, address: str, key_id: int) -> Optional[Account]:
        return self._entries.get((sans_prefix(address), key_id))

    def copy(self) -> "AccountMap":
        out = AccountMap()
        out._entries = dict(self._entries)
        return out

    def with_role(self, role: str) -> List[Account]:
        return [a for a in self._entries.values() if getattr(a.roles, role)]

    def keys(self) -> List[AccountKey]:
        return list(self._entries)

    def values(self) -> List[Account]:
        return list(self._entries.values())

    def __iter__(self) -> Iterator[Account]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AccountMap):
            return NotImplemented
        return list(self._entries.items()) == list(other._entries.items())

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"AccountMap({self.values()!r})"


@dataclass(frozen=True)
class Declaration:
    """A role declaration recorded by a builder, resolved into accounts later."""

    role: str  # "proposer" | "payer" | "authorizer"
    authorization: "Authorization"
    order: int = field(default=-1, compare=False)

    @property
    def roles(self) -> Roles:
        return Roles(**{self.role: True})


# --- Builder patch -------------------------------------------------------------


@dataclass(frozen=True)
class Patch:
    """
    A partial Interaction returned by a builder. `None` scalars mean "unchanged";
    sequence fields are appended.
    """

    script: Optional[Script] = None
    arguments: Tuple[Argument, ...] = ()
    params: Tuple[TemplateParam, ...] = ()
    compute_limit: Optional[int] = None
    reference_block_id: Optional[str] = None
    proposer_authz: Optional[Declaration] = None
    payer_authz: Optional[Declaration] = None
    authorizer_authz: Tuple[Declaration, ...] = ()
    accounts: Tuple[Account, ...] = ()
    validators: Tuple[Callable[..., Any], ...] = ()


# --- Interaction ---------------------------------------------------------------


@dataclass
class Interaction:
    status: Status = Status.BUILDING
    script: Optional[Script] = None
    arguments: List[Argument] = field(default_factory=list)
    params: List[TemplateParam] = field(default_factory=list)
    reference_block_id: Optional[str] = None
    compute_limit: Optional[int] = None
    proposal_key: Optional[ProposalKey] = None
    payer: Optional[str] = None
    authorizers: List[str] = field(default_factory=list)
    accounts: AccountMap = field(default_factory=AccountMap)
    payload_signatures: List[Signature] = field(default_factory=list)
    envelope_signatures: List[Signature] = field(default_factory=list)
    reason: Optional[str] = None
    # Role declarations (pre-resolution) and validators
    proposer_authz: Optional[Declaration] = None
    payer_authz: Optional[Declaration] = None
    authorizer_authz: List[Declaration] = field(default_factory=list)
    validators: List[Callable[..., Any]] = field(default_factory=list)
    _declared: int = field(default=0, repr=False, compare=False)

    # ---- state checks --------------------------------------------------------

    @property
    def frozen(self) -> bool:
        return self.status in _FROZEN

    def ensure_mutable(self) -> None:
        if self.frozen:
            raise BuildError(f"interaction is {self.status.value} and can no longer change", self)

    def advance(self, status: Status, reason: Optional[str] = None) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise BuildError(f"illegal status transition {self.status.value} -> {status.value}", self)
        self.status = status
        if reason is not None:
            self.reason = reason

    def invalidate(self, reason: str) -> None:
        self.advance(Status.INVALID, reason)

    # ---- copying -------------------------------------------------------------

    def copy(self) -> "Interaction":
        """Independent copy of all containers (values inside are immutable)."""
        return replace(
            self,
            arguments=list(self.arguments),
            params=list(self.params),
            authorizers=list(self.authorizers),
            accounts=self.accounts.copy(),
            payload_signatures=list(self.payload_signatures),
            envelope_signatures=list(self.envelope_signatures),
            authorizer_authz=list(self.authorizer_authz),
            validators=list(self.validators),
        )

    # ---- builder merge -------------------------------------------------------

    def _declare(self, decl: Declaration) -> Declaration:
        out = replace(decl, order=self._declared)
        self._declared += 1
        return out

    def merge(self, patch: Patch) -> "Interaction":
        self.ensure_mutable()
        if patch.script is not None:
            self.script = patch.script
        if patch.compute_limit is not None:
            self.compute_limit = patch.compute_limit
        if patch.reference_block_id is not None:
            self.reference_block_id = patch.reference_block_id
        if patch.proposer_authz is not None:
            self.proposer_authz = self._declare(patch.proposer_authz)
        if patch.payer_authz is not None:
            self.payer_authz = self._declare(patch.payer_authz)
        self.authorizer_authz.extend(self._declare(d) for d in patch.authorizer_authz)
        self.arguments.extend(patch.arguments)
        self.params.extend(patch.params)
        self.validators.extend(patch.validators)
        for acct in patch.accounts:
            self.accounts.merge(acct)
        return self

    def declarations(self) -> List[Declaration]:
        """All role declarations in introduction order."""
        decls = [d for d in (self.proposer_authz, self.payer_authz) if d is not None]
        decls.extend(self.authorizer_authz)
        return sorted(decls, key=lambda d: d.order)

    # ---- resolver merge ------------------------------------------------------

    _RESOLVABLE = frozenset(
        (
            "script", "arguments", "reference_block_id", "compute_limit",
            "proposal_key", "payer", "authorizers", "accounts",
        )
    )

    def resolve_fields(self, **fields: Any) -> "Interaction":
        """
        Set resolved fields. Values may refine but never clear a field, and the
        argument list keeps its length and order.
        """
        self.ensure_mutable()
        for name, value in fields.items():
            if name not in self._RESOLVABLE:
                raise BuildError(f"{name!r} cannot be set by a resolver", self)
            if value is None:
                raise BuildError(f"resolver attempted to clear {name!r}", self)
            if name == "arguments":
                if [a.type_tag for a in value] != [a.type_tag for a in self.arguments]:
                    raise BuildError("argument order is immutable once declared", self)
                value = list(value)
            setattr(self, name, value)
        return self

    # ---- signatures ----------------------------------------------------------

    def record_signatures(
        self,
        *,
        payload: Sequence[Signature] = (),
        envelope: Sequence[Signature] = (),
    ) -> None:
        self.ensure_mutable()
        self.payload_signatures.extend(payload)
        self.envelope_signatures.extend(envelope)

    # ---- convenience ---------------------------------------------------------

    @property
    def proposer(self) -> Optional[Account]:
        if self.proposal_key is None:
            return None
        return self.accounts.get(self.proposal_key.address, self.proposal_key.key_id)

    def summary(self) -> Dict[str, Any]:
        """Small, log-friendly view."""
        return {
            "status": self.status.value,
            "arguments": len(self.arguments),
            "accounts": len(self.accounts),
            "ref": self.reference_block_id,
            "payload_sigs": len(self.payload_signatures),
            "envelope_sigs": len(self.envelope_signatures),
            "reason": self.reason,
        }


def interaction() -> Interaction:
    """A fresh, empty Interaction in BUILDING state."""
    return Interaction()
