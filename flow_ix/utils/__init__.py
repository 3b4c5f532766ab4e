"""Utility helpers for flow-ix (hex and account-address normalization)."""

from .bytes import address_bytes, from_hex, sans_prefix, to_hex, with_prefix

__all__ = [
    "to_hex",
    "from_hex",
    "sans_prefix",
    "with_prefix",
    "address_bytes",
]
