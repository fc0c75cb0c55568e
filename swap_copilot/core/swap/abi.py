"""Minimal ABI word encoding for the handful of static calls we make."""

from __future__ import annotations

from typing import List


def encode_uint256(value: int) -> str:
    """Encode a uint256 as a 32-byte hex string (without 0x prefix)."""
    if value < 0 or value >= 2**256:
        raise ValueError(f"uint256 out of range: {value}")
    return format(value, "064x")


def encode_address(address: str) -> str:
    """Encode an address as a 32-byte hex string (without 0x prefix)."""
    # Remove 0x prefix and pad to 32 bytes
    addr = address.lower().replace("0x", "")
    if len(addr) != 40:
        raise ValueError(f"Invalid address length: {address}")
    return addr.zfill(64)


def encode_call(selector: str, *words: str) -> str:
    """Join a 4-byte selector with pre-encoded 32-byte words."""
    return selector + "".join(words)


def decode_words(data: str) -> List[int]:
    """Split return data into uint256 words."""
    payload = data[2:] if data.startswith("0x") else data
    if not payload or len(payload) % 64:
        raise ValueError("Malformed ABI return data")
    return [int(payload[i:i + 64], 16) for i in range(0, len(payload), 64)]
