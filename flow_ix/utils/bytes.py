"""
Hex and account-address helpers.

Two address forms are used throughout:
- canonical (in memory, CBOR payloads, REST bodies): 16 lowercase hex chars, no prefix
- wire (JSON envelope): '0x' + canonical
"""

from __future__ import annotations

from typing import Union

# Account addresses are 8 bytes, rendered as 16 hex chars.
ADDRESS_LENGTH = 8


def _strip_0x(s: str) -> str:
    return s[2:] if s[:2] in ("0x", "0X") else s


def to_hex(data: Union[bytes, bytearray, memoryview], prefix: bool = False) -> str:
    s = bytes(data).hex()
    return "0x" + s if prefix else s


def from_hex(s: str) -> bytes:
    """Decode hex (0x optional, any case). Odd length or non-hex input raises ValueError."""
    if not isinstance(s, str):
        raise TypeError(f"expected a hex string, got {type(s).__name__}")
    body = _strip_0x(s.strip())
    if len(body) % 2:
        raise ValueError(f"odd-length hex string: {s!r}")
    try:
        return bytes.fromhex(body)
    except ValueError as e:
        raise ValueError(f"invalid hex string {s!r}: {e}") from e


def sans_prefix(address: str) -> str:
    """
    Canonical address: lowercase, no '0x', left-padded with zeros to 16 chars.

    Raises ValueError when the address is empty, not hex, or longer than
    8 bytes.
    """
    if not isinstance(address, str):
        raise TypeError(f"address must be a string, got {type(address).__name__}")
    s = _strip_0x(address.strip()).lower()
    if not s:
        raise ValueError("address must not be empty")
    if len(s) > ADDRESS_LENGTH * 2:
        raise ValueError(f"address longer than {ADDRESS_LENGTH} bytes: {address!r}")
    try:
        int(s, 16)
    except ValueError as e:
        raise ValueError(f"address is not hex: {address!r}") from e
    return s.rjust(ADDRESS_LENGTH * 2, "0")


def with_prefix(address: str) -> str:
    return "0x" + sans_prefix(address)


def address_bytes(address: str) -> bytes:
    return bytes.fromhex(sans_prefix(address))


__all__ = [
    "ADDRESS_LENGTH",
    "to_hex",
    "from_hex",
    "sans_prefix",
    "with_prefix",
    "address_bytes",
]
