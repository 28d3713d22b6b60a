"""Cryptographic hash functions and related classes."""

import hashlib

HASH_LEN = 32


def sha256(x: bytes) -> bytes:
    """Simple wrapper of hashlib sha256."""
    return hashlib.sha256(x).digest()


def double_sha256(x: bytes) -> bytes:
    """SHA-256 of SHA-256, as used extensively in bitcoin."""
    return sha256(sha256(x))


def hash_to_hex_str(x: bytes) -> str:
    """Convert a big-endian binary hash to displayed hex string.

    Display form of a binary hash is reversed and converted to hex.
    """
    return bytes(reversed(x)).hex()
