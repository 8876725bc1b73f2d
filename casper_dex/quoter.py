"""
Swap quoting against live pair state.

Ties the resolver to the pricing engine: locate the pair, orient its reserves
to the swap direction, and price the trade.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .keys import as_identifier
from .pricing import DEFAULT_FEE_BPS, DEFAULT_SLIPPAGE_BPS, quote_swap
from .resolver import StateResolver, TokenRef
from .types import Identifier, PairLocation, Quote

logger = logging.getLogger(__name__)

DEFAULT_MAX_PROBE_INDEX = 10


@dataclass(frozen=True)
class SwapQuote:
    """A Quote together with the pair state it was computed from."""

    token_in: Identifier
    token_out: Identifier
    reserve_in: int
    reserve_out: int
    location: PairLocation
    quote: Quote


class SwapQuoter:
    """Quote swaps between two tokens using the resolver's pair state."""

    def __init__(
        self,
        resolver: StateResolver,
        max_index: int = DEFAULT_MAX_PROBE_INDEX,
        fee_bps: int = DEFAULT_FEE_BPS,
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
    ):
        self.resolver = resolver
        self.max_index = max_index
        self.fee_bps = fee_bps
        self.slippage_bps = slippage_bps

    async def quote(
        self,
        token_in: TokenRef,
        token_out: TokenRef,
        amount_in: int,
        slippage_bps: Optional[int] = None,
        fee_bps: Optional[int] = None,
    ) -> SwapQuote:
        """
        Quote selling amount_in of token_in for token_out.

        Raises:
            ValueError: If both tokens are the same
            PairNotFound: If no pool exists for the pair
            InsufficientLiquidity: If the pool has an empty reserve
            InvalidSlippage: If the slippage tolerance is out of range
        """
        token_in_id = as_identifier(token_in)
        token_out_id = as_identifier(token_out)
        if token_in_id == token_out_id:
            raise ValueError(f"Cannot swap a token for itself: {token_in_id}")

        location = await self.resolver.require_pair(token_in_id, token_out_id, self.max_index)
        reserve_in, reserve_out = location.reserves.oriented(token_in_id)

        quote = quote_swap(
            amount_in,
            reserve_in,
            reserve_out,
            fee_bps=self.fee_bps if fee_bps is None else fee_bps,
            slippage_bps=self.slippage_bps if slippage_bps is None else slippage_bps,
        )
        logger.debug(
            f"Quote {amount_in} {token_in_id} -> {quote.amount_out} {token_out_id} "
            f"(impact {quote.price_impact_pct}%, min {quote.minimum_received})"
        )
        return SwapQuote(
            token_in=token_in_id,
            token_out=token_out_id,
            reserve_in=reserve_in,
            reserve_out=reserve_out,
            location=location,
            quote=quote,
        )
