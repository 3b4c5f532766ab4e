import pytest

from flow_ix.interaction import Signature
from flow_ix.sign import SignableMessage
from flow_ix.wallet.signer import InMemorySigner, verify_signature

from .helpers import ADDR_A


@pytest.mark.parametrize("curve", ["ECDSA_P256", "ECDSA_secp256k1"])
@pytest.mark.parametrize("hash_name", ["SHA3_256", "SHA2_256"])
def test_sign_and_verify(curve, hash_name):
    signer = InMemorySigner.generate(curve, hash_name)
    sig = signer.sign(b"message")
    assert len(sig) == 64
    assert signer.verify(b"message", sig)
    assert not signer.verify(b"messagf", sig)
    assert len(bytes.fromhex(signer.public_key)) == 64


def test_private_key_round_trips_through_hex(signer):
    again = InMemorySigner.from_hex("0x" + signer.private_key_hex())
    assert again.public_key == signer.public_key
    assert again.info().to_dict() == {"curve": "ECDSA_P256", "hash": "SHA3_256", "public_key": signer.public_key}


def test_verification_is_bound_to_curve_and_hash(signer):
    sig = signer.sign(b"payload")
    assert verify_signature(signer.public_key, b"payload", sig)
    assert not verify_signature(signer.public_key, b"payload", sig, hash="SHA2_256")
    assert not verify_signature(signer.public_key, b"payload", sig[:63])


def test_rejects_bad_keys_and_names():
    with pytest.raises(ValueError, match="32 bytes"):
        InMemorySigner.from_hex("1f" * 31)
    with pytest.raises(ValueError, match="unsupported curve"):
        InMemorySigner.generate("ECDSA_P384")
    with pytest.raises(ValueError, match="unsupported hash"):
        InMemorySigner.generate(hash="MD5")
    k1 = InMemorySigner.generate("ECDSA_secp256k1")
    with pytest.raises(ValueError, match="not ECDSA_P256"):
        InMemorySigner(k1._sk, curve="ECDSA_P256")


def test_signing_function_answers_for_the_requested_key(signer):
    request = SignableMessage(message=b"m", address=ADDR_A, key_id=3, roles=None, interaction=None)
    sig = signer.signing_function()(request)
    assert isinstance(sig, Signature)
    assert (sig.address, sig.key_id) == (ADDR_A, 3)
    assert signer.verify(b"m", sig.signature)


def test_authorization_is_concrete(signer):
    authz = signer.authorization("0x" + ADDR_A, key_id=1, sequence_number=4)
    assert authz.address == ADDR_A
    assert authz.key_id == 1
    assert authz.sequence_number == 4
    assert callable(authz.signing_function)
