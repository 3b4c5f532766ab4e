from __future__ import annotations

from typing import Any, List, Optional

from flow_ix import build as b
from flow_ix import resolve as r
from flow_ix.wallet.signer import InMemorySigner

NODE = "http://access.test:8888"

ADDR_A = "f8d6e0586b0a20c7"
ADDR_B = "01cf0e2f2f715450"
ADDR_C = "179b6b1cb6755e31"
ADDR_D = "e03daebed8ca0615"

REF = "7bc42fe85d32ca513769a74f97f7e1a7bad6c9407f0d934c2aa645ef9cf613c7"

HELLO = "transaction(message: String) { prepare(acct: AuthAccount) {} execute { log(message) } }"

# Everything that needs no node: reference block and sequence numbers are supplied by builders.
OFFLINE = [
    r.resolve_accounts,
    r.resolve_params,
    r.resolve_arguments,
    r.resolve_validators,
    r.resolve_signatures,
]


class RecordingSigner:
    """Signing capability that records every request before delegating."""

    def __init__(self, signer: InMemorySigner) -> None:
        self.signer = signer
        self.requests: List[Any] = []
        self._sign = signer.signing_function()

    def __call__(self, request):
        self.requests.append(request)
        return self._sign(request)


def hello_builders(sign_fn, address: str = ADDR_A, seq: Optional[int] = 7) -> list:
    authz = b.authorization(address, sign_fn, 0, sequence_number=seq)
    return [
        b.transaction(HELLO),
        b.args([b.arg("hello", "String")]),
        b.proposer(authz),
        b.payer(authz),
        b.authorizations([authz]),
        b.ref(REF),
        b.limit(999),
    ]
