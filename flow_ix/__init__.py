"""
flow-ix: build, resolve, sign and send blockchain transactions.

    from flow_ix import build as b, resolve as r, types as t
    from flow_ix import pipe, send
    from flow_ix.wallet import InMemorySigner

    signer = InMemorySigner.generate()
    authz = signer.authorization("f8d6e0586b0a20c7", key_id=0)

    ix = b.build([
        b.transaction("transaction(message: String) { execute { log(message) } }"),
        b.args([b.arg("hello", t.String)]),
        b.proposer(authz), b.payer(authz), b.authorizations([authz]),
    ])
    ix = await pipe(ix, [r.resolve([
        r.resolve_ref_block_id(node="http://127.0.0.1:8888"),
        r.resolve_accounts,
        r.resolve_proposer_sequence_number(node="http://127.0.0.1:8888"),
        r.resolve_params,
        r.resolve_arguments,
        r.resolve_validators,
        r.resolve_signatures,
    ])])
    response = await send(ix, node="http://127.0.0.1:8888")
"""

from __future__ import annotations

from .auth import Concrete, Resolvable, authorization
from .config import DEFAULT, Config
from .errors import (BuildError, FlowIxError, NodeError, ResolutionError,
                     SigningError, TransportError, ValidationError)
from .interaction import Interaction, Status, interaction
from .pipe import pipe
from .script import Script
from .send import send
from .validate import Accepted, Rejected
from .version import __version__

__all__ = [
    "__version__",
    "Config",
    "DEFAULT",
    "Interaction",
    "Status",
    "interaction",
    "Script",
    "Concrete",
    "Resolvable",
    "authorization",
    "Accepted",
    "Rejected",
    "pipe",
    "send",
    "FlowIxError",
    "BuildError",
    "ResolutionError",
    "SigningError",
    "ValidationError",
    "TransportError",
    "NodeError",
]
