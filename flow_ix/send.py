"""
flow_ix.send
============

Transport boundary: submit a VALID Interaction to the access node.

- Only a VALID, fully signed Interaction is sent; anything else raises
  `TransportError` before any I/O happens.
- The request is made exactly once. Retrying a submission is the caller's call.
- On success the Interaction moves to SENT and the node's raw JSON response is
  returned undecoded.

The REST body mirrors the wire envelope (`encode.wire_envelope`) in the access
node's encoding: snake_case keys, base64 script/arguments/signatures, integers
as decimal strings.
"""

from __future__ import annotations

import base64
from typing import Any, Dict, Optional

from .config import Config, resolve_config
from .encode import wire_envelope
from .errors import NodeError, SigningError, TransportError
from .interaction import Interaction, Status
from .logging import get_logger
from .rpc.http import NodeClient
from .sign import check_signed
from .utils.bytes import from_hex, sans_prefix

__all__ = ["transaction_body", "send"]

log = get_logger(__name__)


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _rest_sig(sig: Dict[str, Any]) -> Dict[str, str]:
    return {
        "address": sans_prefix(sig["address"]),
        "key_index": str(sig["keyId"]),
        "signature": _b64(from_hex(sig["signature"])),
    }


def transaction_body(ix: Interaction) -> Dict[str, Any]:
    """`POST /v1/transactions` body for a signed Interaction."""
    env = wire_envelope(ix)
    pk = env["proposalKey"]
    return {
        "script": _b64(env["script"].encode("utf-8")),
        "arguments": [_b64(a.encode("utf-8")) for a in env["arguments"]],
        "reference_block_id": env["referenceBlockId"],
        "gas_limit": str(env["computeLimit"]),
        "payer": sans_prefix(env["payer"]),
        "proposal_key": {
            "address": sans_prefix(pk["address"]),
            "key_index": str(pk["keyId"]),
            "sequence_number": str(pk["sequenceNumber"]),
        },
        "authorizers": [sans_prefix(a) for a in env["authorizers"]],
        "payload_signatures": [_rest_sig(s) for s in env["payloadSignatures"]],
        "envelope_signatures": [_rest_sig(s) for s in env["envelopeSignatures"]],
    }


async def send(
    ix: Interaction,
    config: Optional[Config] = None,
    *,
    client: Optional[NodeClient] = None,
    **overrides: Any,
) -> Any:
    """
    Send `ix` and return the raw response.

    `overrides` (e.g. `node="http://..."`) apply to this call only.
    """
    if ix.status is not Status.VALID:
        raise TransportError(f"only a VALID interaction can be sent, this one is {ix.status.value}", ix, "send")
    try:
        check_signed(ix)
    except SigningError as e:
        raise TransportError(f"refusing to send: {e.message}", ix, "send") from e
    cfg = resolve_config(config, **overrides)
    body = transaction_body(ix)

    try:
        if client is not None:
            response = await client.send_transaction(body)
        else:
            async with NodeClient(cfg) as node:
                response = await node.send_transaction(body)
    except NodeError as e:
        log.warning("send failed", extra={"node": cfg.node, "error": e.message, "http_status": e.http_status})
        raise TransportError(f"send failed: {e.message}", ix, "send") from e

    ix.advance(Status.SENT)
    log.info("interaction sent", extra={"node": cfg.node, "id": response.get("id") if isinstance(response, dict) else None})
    return response
