import pytest

from flow_ix import build as b
from flow_ix import resolve as r
from flow_ix.encode import envelope_message, payload_message
from flow_ix.errors import BuildError, SigningError
from flow_ix.interaction import Roles, Signature, Status
from flow_ix.sign import SignableMessage, resolve_signatures
from flow_ix.wallet.signer import verify_signature

from .helpers import (ADDR_A, ADDR_B, ADDR_C, ADDR_D, HELLO, OFFLINE, REF,
                      hello_builders)


async def _resolved(builders, resolvers=OFFLINE):
    return await r.resolve(resolvers)(b.build(builders))


def _four_signers(sign_fn, order=("proposer", "payer", "authorizers")):
    steps = {
        "proposer": b.proposer(b.authorization(ADDR_A, sign_fn, 0, sequence_number=1)),
        "payer": b.payer(b.authorization(ADDR_B, sign_fn, 0)),
        "authorizers": b.authorizations([
            b.authorization(ADDR_D, sign_fn, 0),
            b.authorization(ADDR_C, sign_fn, 0),
        ]),
    }
    return [b.transaction(HELLO), b.args([b.arg("hi", "String")]), b.ref(REF)] + [steps[k] for k in order]


@pytest.mark.asyncio
async def test_capability_receives_message_identity_roles_and_snapshot(recorder):
    ix = await _resolved(hello_builders(recorder))
    assert len(recorder.requests) == 2
    payload_req, envelope_req = recorder.requests
    assert isinstance(payload_req, SignableMessage)
    assert payload_req.address == ADDR_A and payload_req.key_id == 0
    assert payload_req.roles == Roles(proposer=True, authorizer=True, payer=True)
    assert payload_req.message == payload_message(ix)
    assert envelope_req.message == envelope_message(ix)
    assert payload_req.message != envelope_req.message
    assert payload_req.interaction is not ix


@pytest.mark.asyncio
async def test_signatures_verify_against_the_signed_messages(recorder, signer):
    ix = await _resolved(hello_builders(recorder))
    (ps,) = ix.payload_signatures
    (es,) = ix.envelope_signatures
    assert len(ps.signature) == 64
    assert verify_signature(signer.public_key, payload_message(ix), ps.signature)
    assert verify_signature(signer.public_key, envelope_message(ix), es.signature)
    assert not verify_signature(signer.public_key, payload_message(ix), es.signature)


@pytest.mark.asyncio
async def test_payload_signers_follow_introduction_order(recorder):
    ix = await _resolved(_four_signers(recorder, order=("authorizers", "payer", "proposer")))
    assert [s.address for s in ix.payload_signatures] == [ADDR_D, ADDR_C, ADDR_A]
    assert [s.address for s in ix.envelope_signatures] == [ADDR_B]


@pytest.mark.asyncio
async def test_signature_order_is_deterministic(recorder):
    runs = []
    for _ in range(3):
        ix = await _resolved(_four_signers(recorder))
        runs.append(([(s.address, s.key_id) for s in ix.payload_signatures],
                     [(s.address, s.key_id) for s in ix.envelope_signatures]))
    assert runs[0] == runs[1] == runs[2]
    assert runs[0][0] == [(ADDR_A, 0), (ADDR_D, 0), (ADDR_C, 0)]


@pytest.mark.asyncio
async def test_async_capability_and_mapping_result(signer):
    async def sign(request):
        return {"addr": "0x" + request.address, "keyId": request.key_id, "signature": signer.sign(request.message).hex()}

    ix = await _resolved(hello_builders(sign))
    assert ix.status is Status.VALID
    assert isinstance(ix.payload_signatures[0], Signature)
    assert ix.payload_signatures[0].address == ADDR_A


@pytest.mark.asyncio
async def test_identity_mismatch_is_a_signing_error_and_nothing_is_recorded(signer):
    def impostor(request):
        return Signature(address=ADDR_B, key_id=request.key_id, signature=signer.sign(request.message))

    ix = b.build(hello_builders(impostor))
    with pytest.raises(SigningError) as exc:
        await r.resolve(OFFLINE)(ix)
    assert exc.value.stage == "signatures"
    assert ix.status is Status.INVALID
    assert ix.reason.startswith("signatures: ")
    assert ix.payload_signatures == [] and ix.envelope_signatures == []


@pytest.mark.asyncio
async def test_failing_envelope_signature_discards_payload_signatures(signer):
    calls = []

    def flaky(request):
        calls.append(request)
        if len(calls) == 2:
            raise RuntimeError("device unplugged")
        return Signature(request.address, request.key_id, signer.sign(request.message))

    ix = b.build(hello_builders(flaky))
    with pytest.raises(SigningError, match="device unplugged"):
        await r.resolve(OFFLINE)(ix)
    assert ix.payload_signatures == []


@pytest.mark.asyncio
@pytest.mark.parametrize("bad", [None, {"address": ADDR_A}, {"address": ADDR_A, "keyId": 0, "signature": ""}])
async def test_malformed_results(bad):
    ix = b.build(hello_builders(lambda request: bad))
    with pytest.raises(SigningError):
        await r.resolve(OFFLINE)(ix)


@pytest.mark.asyncio
async def test_missing_sequence_number_is_reported_before_signing(recorder):
    ix = b.build(hello_builders(recorder, seq=None))
    with pytest.raises(SigningError, match="proposal_key.sequence_number"):
        await r.resolve(OFFLINE)(ix)
    assert recorder.requests == []


@pytest.mark.asyncio
async def test_account_without_capability(recorder):
    ix = b.build([
        b.transaction(HELLO),
        b.args([b.arg("hi", "String")]),
        b.ref(REF),
        b.proposer(b.authorization(ADDR_A, recorder, 0, sequence_number=0)),
        b.payer(b.authorization(ADDR_B, None, 0)),
    ])
    with pytest.raises(SigningError, match="no signing function"):
        await r.resolve(OFFLINE)(ix)


@pytest.mark.asyncio
async def test_signing_twice_is_refused(recorder):
    ix = await _resolved(hello_builders(recorder))
    assert ix.status is Status.VALID
    with pytest.raises(BuildError):
        await resolve_signatures(ix)
    assert len(ix.payload_signatures) == 1
    assert len(ix.envelope_signatures) == 1
