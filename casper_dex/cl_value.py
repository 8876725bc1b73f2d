"""
Decoder for the node's self-describing CLValue envelope.

A dictionary item comes back as ``{"cl_type": ..., "bytes": "<hex>", "parsed": ...}``.
Only the raw ``bytes`` are trusted; ``parsed`` is informational and differs
between node versions.

Pair records are serialized as

    Key token0 || Key token1 || U256 reserve0 || U256 reserve1

with Key = tag byte (0 account, 1 hash) + 32 bytes, and U256 = one length
byte (0..32) followed by that many little-endian bytes.
"""

import binascii
from typing import Any, Dict

from .exceptions import DecodeError
from .types import DIGEST_LENGTH, Identifier, IdentifierTag, ReserveState

U256_MAX_BYTES = 32

BYTES_LIST_TYPE = {"List": "U8"}


class ByteReader:
    """Sequential reader over a serialized value."""

    def __init__(self, data: bytes, cl_type: Any = None):
        self.data = data
        self.offset = 0
        self.cl_type = cl_type

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def take(self, count: int) -> bytes:
        if count > self.remaining:
            raise DecodeError(
                f"Value truncated: needed {count} bytes at offset {self.offset}, "
                f"{self.remaining} left",
                cl_type=self.cl_type,
            )
        chunk = self.data[self.offset:self.offset + count]
        self.offset += count
        return chunk

    def read_u8(self) -> int:
        return self.take(1)[0]

    def read_u32(self) -> int:
        return int.from_bytes(self.take(4), "little")

    def read_u256(self) -> int:
        length = self.read_u8()
        if length > U256_MAX_BYTES:
            raise DecodeError(
                f"U256 length prefix {length} exceeds {U256_MAX_BYTES}",
                cl_type=self.cl_type,
            )
        return int.from_bytes(self.take(length), "little")

    def read_key(self) -> Identifier:
        tag = self.read_u8()
        try:
            key_tag = IdentifierTag(tag)
        except ValueError:
            raise DecodeError(
                f"Unsupported key tag {tag}, expected account or hash",
                cl_type=self.cl_type,
            ) from None
        return Identifier(tag=key_tag, digest=self.take(DIGEST_LENGTH))

    def expect_end(self) -> None:
        if self.remaining:
            raise DecodeError(
                f"{self.remaining} unexpected trailing bytes",
                cl_type=self.cl_type,
            )


def _payload(envelope: Dict[str, Any]) -> ByteReader:
    """Strip the CLType-specific framing and return a reader over the struct bytes."""
    if not isinstance(envelope, dict):
        raise DecodeError(f"CLValue must be an object, got {type(envelope).__name__}")

    cl_type = envelope.get("cl_type")
    raw_hex = envelope.get("bytes")
    if not isinstance(raw_hex, str):
        raise DecodeError("CLValue has no 'bytes' field", cl_type=cl_type)
    try:
        raw = binascii.unhexlify(raw_hex)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"CLValue bytes are not valid hex: {e}", cl_type=cl_type) from e

    if cl_type == "Any":
        return ByteReader(raw, cl_type)

    if cl_type == BYTES_LIST_TYPE or cl_type == "Bytes":
        outer = ByteReader(raw, cl_type)
        length = outer.read_u32()
        inner = outer.take(length)
        outer.expect_end()
        return ByteReader(inner, cl_type)

    if isinstance(cl_type, dict) and "ByteArray" in cl_type:
        if cl_type["ByteArray"] != len(raw):
            raise DecodeError(
                f"ByteArray declares {cl_type['ByteArray']} bytes, got {len(raw)}",
                cl_type=cl_type,
            )
        return ByteReader(raw, cl_type)

    raise DecodeError(f"Unsupported CLType for a pair record: {cl_type!r}", cl_type=cl_type)


def decode_reserve_state(envelope: Dict[str, Any]) -> ReserveState:
    """
    Decode a pair record envelope into a ReserveState.

    Raises:
        DecodeError: On unsupported CLType, bad hex, truncation or trailing bytes
    """
    reader = _payload(envelope)
    token0 = reader.read_key()
    token1 = reader.read_key()
    reserve0 = reader.read_u256()
    reserve1 = reader.read_u256()
    reader.expect_end()
    return ReserveState(token0=token0, token1=token1, reserve0=reserve0, reserve1=reserve1)


def encode_u256(value: int) -> bytes:
    """Serialize an unsigned integer the way the node does (length-prefixed LE)."""
    if value < 0 or value >= 2 ** (8 * U256_MAX_BYTES):
        raise ValueError(f"Value does not fit in a U256: {value}")
    length = (value.bit_length() + 7) // 8
    return bytes([length]) + value.to_bytes(length, "little")
