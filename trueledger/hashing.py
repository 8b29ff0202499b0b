"""Keccak hashing, ABI string-array encoding and address helpers."""

from __future__ import annotations

from Crypto.Hash import keccak as _keccak


def keccak256(data) -> bytes:
    """Return the Keccak-256 digest of the given bytes or text."""
    if isinstance(data, str):
        data = data.encode()
    return _keccak.new(digest_bits=256, data=bytes(data)).digest()


def _word(value: int) -> bytes:
    return value.to_bytes(32, "big")


def _pad(data: bytes) -> bytes:
    return data + b"\x00" * (-len(data) % 32)


def encode_string_array(values) -> bytes:
    """ABI-encode a single ``string[]`` parameter."""
    encoded = [s.encode() for s in values]
    tails = [_word(len(b)) + _pad(b) for b in encoded]
    heads = []
    offset = 32 * len(tails)
    for tail in tails:
        heads.append(_word(offset))
        offset += len(tail)
    return _word(32) + _word(len(tails)) + b"".join(heads) + b"".join(tails)


def to_meta_hash(metadata) -> bytes:
    """Hash a metadata list the way the contract expects."""
    return keccak256(encode_string_array(metadata))


def parse_address(text) -> bytes:
    """Parse a hex address (with or without 0x) into 20 bytes."""
    if not isinstance(text, str):
        raise ValueError("address must be text")
    digits = text[2:] if text[:2] in ("0x", "0X") else text
    if len(digits) != 40:
        raise ValueError(f"invalid address: {text!r}")
    try:
        return bytes.fromhex(digits)
    except ValueError:
        raise ValueError(f"invalid address: {text!r}") from None


def to_checksum_address(address) -> str:
    """Return the mixed-case checksummed form of an address."""
    raw = parse_address(address) if isinstance(address, str) else bytes(address)
    if len(raw) != 20:
        raise ValueError("address must be 20 bytes")
    lower = raw.hex()
    digest = keccak256(lower.encode()).hex()
    chars = (c.upper() if int(h, 16) >= 8 else c for c, h in zip(lower, digest))
    return "0x" + "".join(chars)