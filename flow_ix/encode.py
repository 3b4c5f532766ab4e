"""
flow_ix.encode
==============

Deterministic encodings of a resolved Interaction.

This module provides:
- `payload_fields(ix)`   → the ordered payload list (what proposer/authorizers sign)
- `payload_message(ix)`  → domain tag + canonical CBOR of the payload
- `envelope_message(ix)` → domain tag + canonical CBOR of [payload, payload signatures]
- `wire_envelope(ix)`    → JSON-friendly wire dict
- `envelope_bytes(ix)`   → canonical CBOR of the wire dict
- `transaction_id(ix)`   → sha3_256 of the signed transaction

Design notes
------------
* Canonical CBOR comes from `cbor2.dumps(..., canonical=True)`: definite
  lengths, minimal integers, sorted map keys. Payload and envelope are CBOR
  *lists*, so field order is fixed by position.
* Every signed message is prefixed with `DOMAIN_TAG` (the UTF-8 tag right-padded
  with zero bytes to 32) so a transaction signature can never be replayed as a
  signature over some other message type.
* Arguments are covered in their encoded form; `resolve_arguments` must have run.
"""

from __future__ import annotations

import hashlib
from typing import Any, Dict, List

import cbor2

from .errors import SigningError
from .interaction import Interaction, Signature
from .utils.bytes import address_bytes, to_hex, with_prefix

__all__ = [
    "DOMAIN_TAG",
    "payload_fields",
    "payload_message",
    "envelope_message",
    "wire_envelope",
    "envelope_bytes",
    "transaction_id",
]

DOMAIN_TAG = b"FLOW-V0.0-transaction".ljust(32, b"\x00")


def _dumps(obj: Any) -> bytes:
    return cbor2.dumps(obj, canonical=True)


def _require(ix: Interaction) -> None:
    """Everything the payload covers must be resolved before anyone signs."""
    missing: List[str] = []
    if ix.script is None:
        missing.append("script")
    if ix.reference_block_id is None:
        missing.append("reference_block_id")
    if ix.compute_limit is None:
        missing.append("compute_limit")
    if ix.proposal_key is None:
        missing.append("proposal_key")
    elif ix.proposal_key.sequence_number is None:
        missing.append("proposal_key.sequence_number")
    if ix.payer is None:
        missing.append("payer")
    if any(a.encoded is None for a in ix.arguments):
        missing.append("encoded arguments")
    if missing:
        raise SigningError(f"interaction not ready for signing, missing: {', '.join(missing)}", ix)


def payload_fields(ix: Interaction) -> List[Any]:
    _require(ix)
    pk = ix.proposal_key
    assert pk is not None and ix.script is not None and ix.payer is not None
    return [
        ix.script.encode(),
        [a.encoded for a in ix.arguments],
        bytes.fromhex(ix.reference_block_id or ""),
        int(ix.compute_limit or 0),
        address_bytes(pk.address),
        int(pk.key_id),
        int(pk.sequence_number or 0),
        address_bytes(ix.payer),
        [address_bytes(a) for a in ix.authorizers],
    ]


def _signature_fields(sigs: List[Signature]) -> List[List[Any]]:
    return [[address_bytes(s.address), int(s.key_id), bytes(s.signature)] for s in sigs]


def payload_message(ix: Interaction) -> bytes:
    return DOMAIN_TAG + _dumps(payload_fields(ix))


def envelope_message(ix: Interaction) -> bytes:
    """Payload plus the (complete) payload signatures; signed by the payer."""
    return DOMAIN_TAG + _dumps([payload_fields(ix), _signature_fields(ix.payload_signatures)])


def _sig_dict(s: Signature) -> Dict[str, Any]:
    return {"address": with_prefix(s.address), "keyId": int(s.key_id), "signature": to_hex(s.signature, prefix=False)}


def wire_envelope(ix: Interaction) -> Dict[str, Any]:
    """
    Wire shape:

        {script, arguments[], referenceBlockId, computeLimit,
         proposalKey: {address, keyId, sequenceNumber}, payer, authorizers[],
         payloadSignatures[{address, keyId, signature}], envelopeSignatures[...]}

    Addresses are 0x-prefixed; block id and signatures are lowercase hex;
    arguments are their JSON-Cadence strings.
    """
    _require(ix)
    pk = ix.proposal_key
    assert pk is not None and ix.script is not None and ix.payer is not None
    return {
        "script": ix.script.text,
        "arguments": [bytes(a.encoded or b"").decode("utf-8") for a in ix.arguments],
        "referenceBlockId": ix.reference_block_id,
        "computeLimit": int(ix.compute_limit or 0),
        "proposalKey": {
            "address": with_prefix(pk.address),
            "keyId": int(pk.key_id),
            "sequenceNumber": int(pk.sequence_number or 0),
        },
        "payer": with_prefix(ix.payer),
        "authorizers": [with_prefix(a) for a in ix.authorizers],
        "payloadSignatures": [_sig_dict(s) for s in ix.payload_signatures],
        "envelopeSignatures": [_sig_dict(s) for s in ix.envelope_signatures],
    }


def envelope_bytes(ix: Interaction) -> bytes:
    return _dumps(wire_envelope(ix))


def transaction_id(ix: Interaction) -> str:
    """sha3_256 over [payload, payload signatures, envelope signatures], hex."""
    body = [
        payload_fields(ix),
        _signature_fields(ix.payload_signatures),
        _signature_fields(ix.envelope_signatures),
    ]
    return hashlib.sha3_256(_dumps(body)).hexdigest()
