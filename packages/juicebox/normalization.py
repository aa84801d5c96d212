"""Normalization helpers for on-chain identifiers."""

from __future__ import annotations

from typing import Optional, Union


def normalize_hex(value: Optional[Union[str, bytes]]) -> str:
    """Normalize a hex value (address, tx hash, bytes32) to lowercase with 0x prefix.

    Accepts raw bytes as well as strings. Returns empty string when value is
    falsy or only whitespace.
    """
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex() if value else ""
    cleaned = str(value).strip()
    if not cleaned:
        return ""
    lowered = cleaned.lower()
    if lowered.startswith("0x"):
        normalized = lowered[2:]
    else:
        normalized = lowered
    if not normalized:
        return ""
    return f"0x{normalized}"


def normalize_address(value: Optional[Union[str, bytes]]) -> str:
    """Normalize an address to a 20-byte lowercase 0x string.

    Zero-pads short values so ``0x1`` and ``0x0000...0001`` compare equal.
    """
    normalized = normalize_hex(value)
    if not normalized:
        return ""
    return "0x" + normalized[2:].zfill(40)[-40:]


def to_int(value) -> int:
    """Coerce an event parameter (int, decimal string or 0x-hex string) to int."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if value is None:
        raise ValueError("expected an integer, got None")
    text = str(value).strip()
    if text.lower().startswith("0x"):
        return int(text, 16)
    return int(text)


def to_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)
