"""
flow_ix.sign
============

Signature Engine.

For a fully resolved Interaction:

1. every account with the proposer or authorizer role signs the *payload*
   message once, in account introduction order → `payload_signatures`;
2. the payer account signs the *envelope* message (payload + the complete
   payload signatures) once → `envelope_signatures`.

A signing capability is any callable (sync or async) taking a
`SignableMessage` and returning a `Signature` or a mapping with `address`,
`key_id` and `signature` (bytes or hex). The returned identity must match the
account that was asked to sign.

Signatures are collected on a working copy and recorded on the Interaction only
after every capability succeeded, so a failure never leaves a half-signed
Interaction behind.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, List, Mapping

from .encode import envelope_message, payload_fields, payload_message
from .errors import SigningError
from .interaction import Account, Interaction, Roles, Signature
from .logging import get_logger
from .utils.bytes import from_hex, sans_prefix

__all__ = ["SignableMessage", "resolve_signatures", "check_signed"]

log = get_logger(__name__)


@dataclass(frozen=True)
class SignableMessage:
    message: bytes
    address: str
    key_id: int
    roles: Roles
    interaction: Interaction = field(repr=False, compare=False)


def _coerce_signature(out: Any, account: Account) -> Signature:
    who = f"{account.address}/{account.key_id}"
    if isinstance(out, Signature):
        sig = out
    elif isinstance(out, Mapping):
        raw = out.get("signature")
        key_id = out.get("key_id", out.get("keyId"))
        address = out.get("address") or out.get("addr")
        if raw is None or key_id is None or not address:
            raise SigningError(f"signing function for {who} returned a malformed result: {sorted(out)}")
        try:
            raw_bytes = from_hex(raw) if isinstance(raw, str) else bytes(raw)
            sig = Signature(address=sans_prefix(address), key_id=int(key_id), signature=raw_bytes)
        except (TypeError, ValueError) as e:
            raise SigningError(f"signing function for {who} returned a malformed signature: {e}") from e
    else:
        raise SigningError(f"signing function for {who} returned {type(out).__name__}")

    if not sig.signature:
        raise SigningError(f"signing function for {who} returned an empty signature")
    if (sans_prefix(sig.address), sig.key_id) != account.key:
        raise SigningError(
            f"signing function for {who} returned a signature for {sig.address}/{sig.key_id}"
        )
    return Signature(address=account.address, key_id=account.key_id, signature=bytes(sig.signature))


async def _sign(account: Account, message: bytes, snapshot: Interaction) -> Signature:
    fn = account.signing_function
    if fn is None:
        raise SigningError(f"account {account.address}/{account.key_id} has no signing function")
    request = SignableMessage(
        message=message,
        address=account.address,
        key_id=account.key_id,
        roles=account.roles,
        interaction=snapshot,
    )
    try:
        out = fn(request)
        if inspect.isawaitable(out):
            out = await out
    except SigningError:
        raise
    except Exception as e:
        raise SigningError(f"signing function for {account.address}/{account.key_id} failed: {e}") from e
    return _coerce_signature(out, account)


async def _sign_all(accounts: List[Account], message: bytes, snapshot: Interaction) -> List[Signature]:
    results = await asyncio.gather(
        *(_sign(a, message, snapshot.copy()) for a in accounts),
        return_exceptions=True,
    )
    for res in results:
        if isinstance(res, BaseException):
            raise res
    return list(results)  # type: ignore[arg-type]


async def resolve_signatures(ix: Interaction) -> Interaction:
    """Sign payload and envelope; see module docstring."""
    ix.ensure_mutable()
    if ix.payload_signatures or ix.envelope_signatures:
        raise SigningError("interaction is already signed", ix)

    payers = [a for a in ix.accounts if a.roles.payer]
    if len(payers) != 1:
        raise SigningError(f"expected exactly one payer account, found {len(payers)}", ix)
    payer = payers[0]
    payload_signers = [a for a in ix.accounts if a.roles.signs_payload]

    try:
        work = ix.copy()
        payload_sigs = await _sign_all(payload_signers, payload_message(work), work)
        work.payload_signatures = payload_sigs
        envelope_sigs = await _sign_all([payer], envelope_message(work), work)
    except SigningError as e:
        raise e.with_context(interaction=ix)

    ix.record_signatures(payload=payload_sigs, envelope=envelope_sigs)
    log.debug(
        "interaction signed",
        extra={"payload_sigs": len(payload_sigs), "envelope_sigs": len(envelope_sigs)},
    )
    return ix


def check_signed(ix: Interaction) -> None:
    """
    Raise `SigningError` unless `ix` carries a complete signature set: one
    payload signature per proposer/authorizer account and exactly one
    envelope signature, from the payer.
    """
    payload_fields(ix)  # reference block, sequence number and encoded arguments
    if not ix.payload_signatures and not ix.envelope_signatures:
        raise SigningError("interaction is not signed", ix)

    signed = {(s.address, s.key_id) for s in ix.payload_signatures}
    missing = [f"{a.address}/{a.key_id}" for a in ix.accounts if a.roles.signs_payload and a.key not in signed]
    if missing:
        raise SigningError(f"missing payload signature(s) from {', '.join(missing)}", ix)

    payers = [a.key for a in ix.accounts if a.roles.payer]
    envelope = [(s.address, s.key_id) for s in ix.envelope_signatures]
    if len(payers) != 1 or envelope != payers:
        raise SigningError("interaction needs exactly one envelope signature, from the payer", ix)
