"""
Minimal ABI word encoding for the Multicall3 ``aggregate3`` balance read.

Only the shapes the balance reader needs are supported:

* call data of the form ``selector || address`` (one static argument);
* ``aggregate3(Call3[])`` where ``Call3 = (address target, bool allowFailure,
  bytes callData)``;
* the ``Result[]`` return value where ``Result = (bool success, bytes
  returnData)``.

Everything is built from 32-byte words: static values are left-padded,
``bytes`` payloads are length-prefixed and right-padded, and dynamic array
elements are addressed through a head of offsets relative to the first
byte after the array length word.

The decoder is strict about bounds and raises ``AbiDecodeError`` on any
pointer that leaves the buffer; callers are expected to catch it and treat
the whole batch as unreadable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .constants import AGGREGATE3_SELECTOR, WEI_PER_ETH, WORD_BYTES


class AbiDecodeError(ValueError):
    """Raised when an ABI payload is truncated or points outside itself."""


@dataclass(frozen=True)
class Call3:
    """One aggregated call; failures are always allowed."""

    target: str
    call_data: bytes


# ---------------------------------------------------------------------------
# Hex helpers
# ---------------------------------------------------------------------------

def strip_0x(value: str) -> str:
    return value[2:] if value[:2] in ("0x", "0X") else value


def hex_to_bytes(value: str) -> bytes:
    """Decode a (possibly ``0x``-prefixed) hex string; raises ``ValueError``."""
    return bytes.fromhex(strip_0x(value))


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def encode_uint(value: int) -> bytes:
    if value < 0:
        raise ValueError(f"uint cannot be negative: {value}")
    return value.to_bytes(WORD_BYTES, "big")


def encode_address(address: str) -> bytes:
    raw = hex_to_bytes(address.lower())
    if len(raw) != 20:
        raise ValueError(f"not a 20-byte address: {address!r}")
    return raw.rjust(WORD_BYTES, b"\x00")


def encode_bytes(data: bytes) -> bytes:
    """Length word followed by *data* right-padded to a word boundary."""
    padded_len = -(-len(data) // WORD_BYTES) * WORD_BYTES
    return encode_uint(len(data)) + data.ljust(padded_len, b"\x00")


def encode_address_call(selector: str, address: str) -> bytes:
    """Call data for a single-address view function, e.g. ``balances(address)``."""
    return hex_to_bytes(selector) + encode_address(address)


def _encode_call3(call: Call3) -> bytes:
    # (address, bool, bytes): the bytes tail starts after three head words
    return (
        encode_address(call.target)
        + encode_uint(1)
        + encode_uint(3 * WORD_BYTES)
        + encode_bytes(call.call_data)
    )


def encode_aggregate3(calls: list[Call3]) -> str:
    """Full ``aggregate3`` call data as a ``0x`` hex string."""
    elements = [_encode_call3(c) for c in calls]

    offsets: list[bytes] = []
    cursor = len(elements) * WORD_BYTES
    for element in elements:
        offsets.append(encode_uint(cursor))
        cursor += len(element)

    body = (
        encode_uint(WORD_BYTES)  # offset of the array argument
        + encode_uint(len(elements))
        + b"".join(offsets)
        + b"".join(elements)
    )
    return "0x" + AGGREGATE3_SELECTOR + body.hex()


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def _read_word(data: bytes, pos: int) -> int:
    if pos < 0 or pos + WORD_BYTES > len(data):
        raise AbiDecodeError(f"word at {pos} outside {len(data)}-byte payload")
    return int.from_bytes(data[pos:pos + WORD_BYTES], "big")


def decode_aggregate3(result: str) -> list[Optional[bytes]]:
    """Decode ``Result[]`` into per-call return data.

    Failed calls decode to ``None``; successful ones to their raw return
    bytes (possibly empty).
    """
    try:
        data = hex_to_bytes(result)
    except ValueError as exc:
        raise AbiDecodeError(f"result is not hex: {exc}") from exc

    array_pos = _read_word(data, 0)
    length = _read_word(data, array_pos)
    head = array_pos + WORD_BYTES
    if length > (len(data) - head) // WORD_BYTES:
        raise AbiDecodeError(f"array length {length} exceeds payload")

    decoded: list[Optional[bytes]] = []
    for i in range(length):
        element = head + _read_word(data, head + i * WORD_BYTES)
        success = _read_word(data, element) == 1
        if not success:
            decoded.append(None)
            continue
        blob = element + _read_word(data, element + WORD_BYTES)
        size = _read_word(data, blob)
        start = blob + WORD_BYTES
        if start + size > len(data):
            raise AbiDecodeError(f"return data of {size} bytes overruns payload")
        decoded.append(data[start:start + size])
    return decoded


def decode_uint256(data: bytes) -> Optional[int]:
    """First word of *data* as an unsigned int; ``None`` when empty."""
    if not data:
        return None
    return int.from_bytes(data[:WORD_BYTES], "big")


def wei_word_to_eth(data: bytes) -> Optional[float]:
    value = decode_uint256(data)
    return None if value is None else value / WEI_PER_ETH
