"""
flow_ix.wallet.signer
=====================

In-memory ECDSA signer that plugs into the Signature Engine as a signing
capability.

Key features
------------
- Curves: ECDSA_P256 (NIST P-256) and ECDSA_secp256k1
- Hashes: SHA3_256 (default) and SHA2_256
- Signatures are the raw 64-byte `r || s` form (each 32 bytes, big-endian)
- Public keys are the raw 64-byte `x || y` form, hex encoded

Notes
-----
- Keys live in process memory only. Storage, HSMs and remote wallets are out of
  scope; anything with the same `signing_function()` shape can replace this.
- The message handed in by the Signature Engine already carries the
  transaction domain tag; this module only hashes and signs it.

Examples
--------
    signer = InMemorySigner.generate()
    authz = signer.authorization("f8d6e0586b0a20c7", key_id=0)
    ix = build([... , proposer(authz), payer(authz), authorizations([authz])])
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (Prehashed,
                                                             decode_dss_signature,
                                                             encode_dss_signature)

from ..auth import Concrete, authorization
from ..interaction import Signature
from ..utils.bytes import from_hex, to_hex

__all__ = [
    "SignerInfo",
    "InMemorySigner",
    "verify_signature",
]

_CURVES: Dict[str, Callable[[], ec.EllipticCurve]] = {
    "ECDSA_P256": ec.SECP256R1,
    "ECDSA_secp256k1": ec.SECP256K1,
}

_HASHES: Dict[str, Callable[[], hashes.HashAlgorithm]] = {
    "SHA3_256": hashes.SHA3_256,
    "SHA2_256": hashes.SHA256,
}

_COORD = 32


def _curve(name: str) -> ec.EllipticCurve:
    try:
        return _CURVES[name]()
    except KeyError:
        raise ValueError(f"unsupported curve {name!r}; expected one of {sorted(_CURVES)}") from None


def _hash_algo(name: str) -> hashes.HashAlgorithm:
    try:
        return _HASHES[name]()
    except KeyError:
        raise ValueError(f"unsupported hash {name!r}; expected one of {sorted(_HASHES)}") from None


def _digest(name: str, message: bytes) -> bytes:
    h = hashes.Hash(_hash_algo(name))
    h.update(message)
    return h.finalize()


@dataclass(frozen=True)
class SignerInfo:
    curve: str
    hash: str
    public_key: str  # hex, x || y

    def to_dict(self) -> Dict[str, str]:
        return {"curve": self.curve, "hash": self.hash, "public_key": self.public_key}


class InMemorySigner:
    """ECDSA signer holding a private key in memory."""

    def __init__(
        self,
        private_key: ec.EllipticCurvePrivateKey,
        *,
        curve: str = "ECDSA_P256",
        hash: str = "SHA3_256",
    ) -> None:
        if private_key.curve.name != _curve(curve).name:
            raise ValueError(f"private key is on {private_key.curve.name}, not {curve}")
        _hash_algo(hash)
        self._sk = private_key
        self.curve = curve
        self.hash = hash

    # --- construction ---------------------------------------------------------

    @classmethod
    def generate(cls, curve: str = "ECDSA_P256", hash: str = "SHA3_256") -> "InMemorySigner":
        return cls(ec.generate_private_key(_curve(curve)), curve=curve, hash=hash)

    @classmethod
    def from_hex(cls, private_key: str, curve: str = "ECDSA_P256", hash: str = "SHA3_256") -> "InMemorySigner":
        """Load a raw 32-byte private scalar given as hex (0x optional)."""
        raw = from_hex(private_key)
        if len(raw) != _COORD:
            raise ValueError(f"private key must be {_COORD} bytes, got {len(raw)}")
        return cls(
            ec.derive_private_key(int.from_bytes(raw, "big"), _curve(curve)),
            curve=curve,
            hash=hash,
        )

    # --- keys -----------------------------------------------------------------

    @property
    def public_key(self) -> str:
        nums = self._sk.public_key().public_numbers()
        return to_hex(nums.x.to_bytes(_COORD, "big") + nums.y.to_bytes(_COORD, "big"), prefix=False)

    def private_key_hex(self) -> str:
        return to_hex(self._sk.private_numbers().private_value.to_bytes(_COORD, "big"), prefix=False)

    def info(self) -> SignerInfo:
        return SignerInfo(curve=self.curve, hash=self.hash, public_key=self.public_key)

    # --- sign / verify --------------------------------------------------------

    def sign(self, message: bytes) -> bytes:
        """Hash `message` and return the 64-byte `r || s` signature."""
        algo = _hash_algo(self.hash)
        der = self._sk.sign(_digest(self.hash, message), ec.ECDSA(Prehashed(algo)))
        r, s = decode_dss_signature(der)
        return r.to_bytes(_COORD, "big") + s.to_bytes(_COORD, "big")

    def verify(self, message: bytes, signature: bytes) -> bool:
        return verify_signature(self.public_key, message, signature, curve=self.curve, hash=self.hash)

    # --- pipeline integration -------------------------------------------------

    def signing_function(self) -> Callable[..., Signature]:
        """A signing capability: `SignableMessage -> Signature`."""

        def _sign(request) -> Signature:  # noqa: ANN001
            return Signature(address=request.address, key_id=request.key_id, signature=self.sign(request.message))

        return _sign

    def authorization(self, address: str, key_id: int = 0, sequence_number: Optional[int] = None) -> Concrete:
        return authorization(address, self.signing_function(), key_id, sequence_number)


def verify_signature(
    public_key: str,
    message: bytes,
    signature: bytes,
    *,
    curve: str = "ECDSA_P256",
    hash: str = "SHA3_256",
) -> bool:
    """Check a raw `r || s` signature against a hex `x || y` public key."""
    raw = from_hex(public_key)
    if len(raw) != 2 * _COORD or len(signature) != 2 * _COORD:
        return False
    pub = ec.EllipticCurvePublicNumbers(
        int.from_bytes(raw[:_COORD], "big"),
        int.from_bytes(raw[_COORD:], "big"),
        _curve(curve),
    ).public_key()
    der = encode_dss_signature(
        int.from_bytes(signature[:_COORD], "big"),
        int.from_bytes(signature[_COORD:], "big"),
    )
    try:
        pub.verify(der, _digest(hash, message), ec.ECDSA(Prehashed(_hash_algo(hash))))
    except InvalidSignature:
        return False
    return True
