"""
Casper DEX client.

Locates token pair records in an Odra-style contract's dictionary storage by
reproducing the runtime's key serialization and hashing, and prices swaps
against the decoded reserves with integer-exact constant-product math.
"""

from casper_dex.cache import PairCache
from casper_dex.exceptions import (
    CasperDexError,
    ConfigurationError,
    DecodeError,
    InsufficientLiquidity,
    InvalidSlippage,
    MalformedIdentifier,
    NetworkError,
    PairNotFound,
    RpcTimeout,
)
from casper_dex.keys import (
    build_slot_key,
    canonical_bytes,
    digest_to_storage_key,
    encode_identifier,
    order_pair,
    pair_key,
    probe_candidates,
)
from casper_dex.pricing import (
    get_amount_in,
    get_amount_out,
    minimum_received,
    price_impact,
    quote_swap,
)
from casper_dex.quoter import SwapQuote, SwapQuoter
from casper_dex.reader import JsonRpcStateReader, RemoteStateReader
from casper_dex.resolver import StateResolver, TimeoutPolicy
from casper_dex.types import (
    Identifier,
    IdentifierTag,
    ImpactSeverity,
    KeyVariant,
    PairLocation,
    Quote,
    ReserveState,
)
from casper_dex.version import __version__

PROJECT_NAME = "casper-dex-quoter"
VERSION = __version__

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "PairCache",
    "CasperDexError",
    "ConfigurationError",
    "DecodeError",
    "InsufficientLiquidity",
    "InvalidSlippage",
    "MalformedIdentifier",
    "NetworkError",
    "PairNotFound",
    "RpcTimeout",
    "build_slot_key",
    "canonical_bytes",
    "digest_to_storage_key",
    "encode_identifier",
    "order_pair",
    "pair_key",
    "probe_candidates",
    "get_amount_in",
    "get_amount_out",
    "minimum_received",
    "price_impact",
    "quote_swap",
    "SwapQuote",
    "SwapQuoter",
    "JsonRpcStateReader",
    "RemoteStateReader",
    "StateResolver",
    "TimeoutPolicy",
    "Identifier",
    "IdentifierTag",
    "ImpactSeverity",
    "KeyVariant",
    "PairLocation",
    "Quote",
    "ReserveState",
]
