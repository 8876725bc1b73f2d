"""
Storage key derivation for Odra-style dictionary-backed contract storage.

A pair record is stored under the blake2b digest of

    u32 big-endian slot index || [variant tag byte] || key(first) || key(second)

where each key is the 33-byte Casper serialization (tag byte + 32-byte hash)
and the two keys are sorted bytewise so that the record is reachable from
either token order.
"""

import hashlib
import re
from typing import Callable, Iterator, Optional, Sequence, Tuple, Union

from .exceptions import MalformedIdentifier
from .types import (
    DIGEST_LENGTH,
    PAIR_KEY_LENGTH,
    TEXT_PREFIXES,
    Identifier,
    IdentifierTag,
    KeyVariant,
    ProbeCandidate,
)

U32_MAX = 2**32 - 1
STORAGE_KEY_DIGEST_SIZE = 32

# Tagged first: it is the layout stock Odra mappings use.
DEFAULT_VARIANTS: Tuple[KeyVariant, ...] = (KeyVariant.tagged(0), KeyVariant.untagged())

_HEX_DIGEST = re.compile(r"[0-9a-fA-F]{%d}" % (2 * DIGEST_LENGTH))

HashFunction = Callable[[bytes], bytes]


def encode_identifier(text: str) -> Identifier:
    """
    Parse a textual identifier into an Identifier.

    Accepts ``account-hash-<64 hex>`` (tag 0), ``hash-<64 hex>`` (tag 1) and,
    like the node tooling, a bare 64-char hex string which defaults to tag 1.

    Raises:
        MalformedIdentifier: If the hex part is not exactly 64 hex characters
    """
    if not isinstance(text, str):
        raise MalformedIdentifier(
            f"Identifier must be a string, got {type(text).__name__}", text=None
        )

    tag = IdentifierTag.HASH
    remainder = text.strip()
    # account-hash- must be checked first, it also ends in "hash-"
    for candidate in (IdentifierTag.ACCOUNT, IdentifierTag.HASH):
        prefix = TEXT_PREFIXES[candidate]
        if remainder.startswith(prefix):
            tag = candidate
            remainder = remainder[len(prefix):]
            break

    if not _HEX_DIGEST.fullmatch(remainder):
        raise MalformedIdentifier(
            f"Identifier must carry exactly {2 * DIGEST_LENGTH} hex characters: {text!r}",
            text=text,
        )

    return Identifier(tag=tag, digest=bytes.fromhex(remainder))


def as_identifier(value: Union[str, Identifier]) -> Identifier:
    """Return value unchanged if it is an Identifier, otherwise parse it."""
    if isinstance(value, Identifier):
        return value
    return encode_identifier(value)


def canonical_bytes(identifier: Identifier) -> bytes:
    """Serialize an identifier to its fixed 33-byte form."""
    return bytes([identifier.tag]) + identifier.digest


def order_pair(a: Identifier, b: Identifier) -> Tuple[Identifier, Identifier]:
    """
    Order two identifiers by their canonical bytes, smaller first.

    Identical identifiers keep their input order.
    """
    if canonical_bytes(b) < canonical_bytes(a):
        return b, a
    return a, b


def pair_key(a: Identifier, b: Identifier) -> bytes:
    """Build the 66-byte order-independent pair key."""
    first, second = order_pair(a, b)
    return canonical_bytes(first) + canonical_bytes(second)


def build_slot_key(pair_key_bytes: bytes, index: int, variant: KeyVariant) -> bytes:
    """
    Concatenate slot index, optional variant tag and pair key.

    Args:
        pair_key_bytes: 66-byte output of pair_key()
        index: Storage slot index, must fit in an unsigned 32-bit integer
        variant: Tagged or untagged layout

    Returns:
        71 bytes for the tagged layout, 70 for the untagged one

    Raises:
        ValueError: If index is out of u32 range or the pair key has the wrong size
    """
    if not 0 <= index <= U32_MAX:
        raise ValueError(f"Slot index must be a u32: {index}")
    if len(pair_key_bytes) != PAIR_KEY_LENGTH:
        raise ValueError(
            f"Pair key must be {PAIR_KEY_LENGTH} bytes, got {len(pair_key_bytes)}"
        )
    return index.to_bytes(4, "big") + variant.prefix + pair_key_bytes


def blake2b_256(data: bytes) -> bytes:
    """blake2b with a 32-byte digest, the hash the Casper runtime uses."""
    return hashlib.blake2b(data, digest_size=STORAGE_KEY_DIGEST_SIZE).digest()


def digest_to_storage_key(
    data: bytes,
    hash_fn: Optional[HashFunction] = None,
    digest_size: int = STORAGE_KEY_DIGEST_SIZE,
) -> str:
    """
    Hash a slot key into the dictionary-item key the node expects.

    Args:
        data: Output of build_slot_key()
        hash_fn: Replacement hash function; defaults to blake2b
        digest_size: blake2b output length, ignored when hash_fn is given

    Returns:
        Lowercase hex digest (64 characters for a 32-byte digest)
    """
    if hash_fn is None:
        digest = hashlib.blake2b(data, digest_size=digest_size).digest()
    else:
        digest = hash_fn(data)
    return digest.hex()


class ProbeSchedule:
    """
    Finite, restartable sequence of (index, variant) trials.

    Iterates indices 0..max_index inclusive in ascending order and, for each
    index, the variants in the given order. Every call to iter() starts over.
    """

    def __init__(self, max_index: int, variants: Sequence[KeyVariant] = DEFAULT_VARIANTS):
        if not 0 <= max_index <= U32_MAX:
            raise ValueError(f"max_index must be a u32: {max_index}")
        if not variants:
            raise ValueError("At least one key variant is required")
        self.max_index = max_index
        self.variants = tuple(variants)

    def __iter__(self) -> Iterator[ProbeCandidate]:
        for index in range(self.max_index + 1):
            for variant in self.variants:
                yield ProbeCandidate(index=index, variant=variant)

    def __len__(self) -> int:
        return (self.max_index + 1) * len(self.variants)


def probe_candidates(
    max_index: int, variants: Sequence[KeyVariant] = DEFAULT_VARIANTS
) -> ProbeSchedule:
    """Return the probe schedule for indices 0..max_index."""
    return ProbeSchedule(max_index, variants)
