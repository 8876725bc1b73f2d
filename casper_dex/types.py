"""
Core data types for locating and pricing Casper DEX pairs.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Optional, Tuple

DIGEST_LENGTH = 32
CANONICAL_LENGTH = 1 + DIGEST_LENGTH
PAIR_KEY_LENGTH = 2 * CANONICAL_LENGTH


class IdentifierTag(IntEnum):
    """Leading tag byte of a serialized Casper key."""

    ACCOUNT = 0
    HASH = 1


TEXT_PREFIXES = {
    IdentifierTag.ACCOUNT: "account-hash-",
    IdentifierTag.HASH: "hash-",
}


@dataclass(frozen=True)
class Identifier:
    """
    Opaque reference to an account or a contract/package hash.

    Attributes:
        tag: IdentifierTag.ACCOUNT or IdentifierTag.HASH
        digest: 32-byte account hash or contract hash
    """

    tag: IdentifierTag
    digest: bytes

    def __post_init__(self):
        if not isinstance(self.digest, bytes):
            raise TypeError(
                f"Identifier digest must be bytes, got {type(self.digest).__name__}"
            )
        if len(self.digest) != DIGEST_LENGTH:
            raise ValueError(
                f"Identifier digest must be {DIGEST_LENGTH} bytes, got {len(self.digest)}"
            )
        object.__setattr__(self, "tag", IdentifierTag(self.tag))

    def __str__(self) -> str:
        return TEXT_PREFIXES[self.tag] + self.digest.hex()


@dataclass(frozen=True)
class KeyVariant:
    """
    Dictionary-item key layout.

    The tagged layout inserts one byte between the slot index and the pair
    key; the untagged layout omits it. Which one a deployed contract uses is
    only discoverable by probing.
    """

    tag: Optional[int] = None

    def __post_init__(self):
        if self.tag is not None and not 0 <= self.tag <= 0xFF:
            raise ValueError(f"Variant tag must fit in one byte: {self.tag}")

    @classmethod
    def tagged(cls, tag: int = 0) -> "KeyVariant":
        return cls(tag=tag)

    @classmethod
    def untagged(cls) -> "KeyVariant":
        return cls(tag=None)

    @property
    def is_tagged(self) -> bool:
        return self.tag is not None

    @property
    def prefix(self) -> bytes:
        return bytes([self.tag]) if self.tag is not None else b""

    def __str__(self) -> str:
        return f"tagged({self.tag})" if self.is_tagged else "untagged"


@dataclass(frozen=True)
class ProbeCandidate:
    """One (slot index, key layout) trial in a pair lookup."""

    index: int
    variant: KeyVariant


@dataclass(frozen=True)
class ReserveState:
    """
    Decoded pair record: both token identifiers and their reserves.

    Reserves are raw on-chain integers (u256), never scaled.
    """

    token0: Identifier
    token1: Identifier
    reserve0: int
    reserve1: int

    def oriented(self, token_in: Identifier) -> Tuple[int, int]:
        """
        Return (reserve_in, reserve_out) for a swap that sells token_in.

        Raises:
            ValueError: If token_in is not one of the pair's tokens
        """
        if token_in == self.token0:
            return self.reserve0, self.reserve1
        if token_in == self.token1:
            return self.reserve1, self.reserve0
        raise ValueError(f"Token {token_in} is not part of this pair")


@dataclass(frozen=True)
class PairLocation:
    """
    Where a pair record was found and what it contained.

    Attributes:
        token_a: Canonically smaller token of the pair
        token_b: Canonically larger token of the pair
        index: Storage slot index the record was found under
        variant: Key layout that produced the hit
        dictionary_key: Hex dictionary-item key that was queried
        state_root_hash: State root the read was performed against
        reserves: Decoded reserve snapshot
    """

    token_a: Identifier
    token_b: Identifier
    index: int
    variant: KeyVariant
    dictionary_key: str
    state_root_hash: str
    reserves: ReserveState


class ImpactSeverity(Enum):
    """Price impact buckets used when presenting a quote."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    SEVERE = "severe"

    @property
    def needs_warning(self) -> bool:
        return self in (ImpactSeverity.HIGH, ImpactSeverity.SEVERE)


@dataclass(frozen=True)
class Quote:
    """
    Swap quote computed from one reserve snapshot.

    Attributes:
        amount_in: Input amount in base units
        amount_out: Expected output in base units (integer-exact)
        price_impact_pct: Price impact as percent (e.g. Decimal("0.3988"))
        minimum_received: Output floor after slippage tolerance (integer-exact)
        fee_bps: Pool fee applied to the input
        slippage_bps: Slippage tolerance used for minimum_received
        impact_severity: Bucket for price_impact_pct
    """

    amount_in: int
    amount_out: int
    price_impact_pct: Decimal
    minimum_received: int
    fee_bps: int
    slippage_bps: int
    impact_severity: ImpactSeverity
