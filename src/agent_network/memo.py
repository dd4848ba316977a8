"""
Memo codec.

A memo is any JSON-serialisable value carried in transaction calldata as::

    <abi-encoded call> || <magic marker> || hex(utf8(json(memo)))

Standard ABI decoders stop reading at the end of the statically known
argument layout, so the trailing memo bytes never disturb the call itself.
All functions here fail closed: bad input yields ``None``, never an
exception.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from config import MEMO_MAGIC_PREFIX
from .abi import strip_0x
from .constants import MAX_MEMO_BYTES, MEMO_TEXT_KEYS

logger = logging.getLogger(__name__)


def encode_memo(memo: Any, *, prefix: str = MEMO_MAGIC_PREFIX) -> Optional[str]:
    """Return ``0x<marker><payload>`` for *memo*, or ``None`` if unusable.

    ``None`` and values that do not serialise are rejected, as is any
    payload larger than ``MAX_MEMO_BYTES``.
    """
    if memo is None:
        return None
    try:
        payload = json.dumps(memo, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        logger.warning("Memo is not JSON-serialisable: %s", exc)
        return None

    if not payload:
        return None
    if len(payload) > MAX_MEMO_BYTES:
        logger.warning(
            "Memo too large (%d bytes, max %d) – skipped", len(payload), MAX_MEMO_BYTES
        )
        return None
    return "0x" + prefix.lower() + payload.hex()


def _marker_positions(hex_data: str, marker: str) -> list[int]:
    """Byte-aligned marker offsets in *hex_data*, last first."""
    positions = []
    idx = hex_data.rfind(marker)
    while idx != -1:
        if idx % 2 == 0:
            positions.append(idx)
        idx = hex_data.rfind(marker, 0, idx + len(marker) - 1)
    return positions


def _decode_payload(payload_hex: str) -> Any:
    if not payload_hex or len(payload_hex) % 2:
        raise ValueError("empty or odd-length payload")
    return json.loads(bytes.fromhex(payload_hex).decode("utf-8"))


def decode_memo(calldata: Optional[str], *, prefix: str = MEMO_MAGIC_PREFIX) -> Any:
    """Extract the memo appended to *calldata*, or ``None``.

    The last marker occurrence is tried first since memos are always
    appended at the end.  When that tail does not decode (the marker bytes
    occurred inside the payload itself) earlier occurrences are tried.
    """
    if not calldata or not isinstance(calldata, str):
        return None
    hex_data = strip_0x(calldata).lower()
    marker = prefix.lower()

    for pos in _marker_positions(hex_data, marker):
        try:
            return _decode_payload(hex_data[pos + len(marker):])
        except (ValueError, UnicodeDecodeError):
            continue
    return None


def append_memo_to_calldata(calldata: str, memo_hex: str) -> str:
    """Concatenate an encoded memo onto existing call data."""
    return calldata + strip_0x(memo_hex)


def memo_text(memo: Any) -> Optional[str]:
    """Reduce a decoded memo to the text shown in the swap feed."""
    if isinstance(memo, str):
        return memo or None
    if not isinstance(memo, dict):
        return None
    for key in MEMO_TEXT_KEYS:
        value = memo.get(key)
        if value is not None and value != "":
            return str(value)
    return None
