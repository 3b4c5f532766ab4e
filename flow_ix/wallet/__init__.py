"""Signing capabilities backed by local keys."""

from .signer import InMemorySigner, SignerInfo, verify_signature

__all__ = ["InMemorySigner", "SignerInfo", "verify_signature"]
