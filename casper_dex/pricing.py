"""
Constant-product (x*y=k) swap pricing with integer-exact settlement math.

Amounts and reserves are raw on-chain integers (u256). Python integers do
not overflow, so the full ``amount_in * reserve_out`` product is exact. Only
price impact, a display value, is expressed as a Decimal percentage.

Formula (fee taken from the input):
    amountInWithFee = amountIn * (10000 - feeBps)
    amountOut = amountInWithFee * reserveOut / (reserveIn * 10000 + amountInWithFee)
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN, localcontext

from .exceptions import InsufficientLiquidity, InvalidSlippage
from .types import ImpactSeverity, Quote

BPS_DENOMINATOR = 10_000
DEFAULT_FEE_BPS = 30
DEFAULT_SLIPPAGE_BPS = 50

IMPACT_PRECISION = Decimal("0.0001")
# Enough significant digits for a u256 * u256 ratio
_DECIMAL_PRECISION = 160

IMPACT_MEDIUM_PCT = Decimal("1")
IMPACT_HIGH_PCT = Decimal("5")
IMPACT_SEVERE_PCT = Decimal("10")


def _check_fee(fee_bps: int) -> None:
    if not 0 <= fee_bps < BPS_DENOMINATOR:
        raise ValueError(f"Fee must be in [0, {BPS_DENOMINATOR}) bps: {fee_bps}")


def get_amount_out(
    amount_in: int, reserve_in: int, reserve_out: int, fee_bps: int = DEFAULT_FEE_BPS
) -> int:
    """
    Calculate output amount for a swap using the constant-product formula.

    Args:
        amount_in: Input amount in base units
        reserve_in: Reserve of the input token
        reserve_out: Reserve of the output token
        fee_bps: Pool fee in basis points (default 30 = 0.3%)

    Returns:
        Output amount in base units, rounded down

    Raises:
        InsufficientLiquidity: If either reserve is zero
        ValueError: If amount_in is negative or fee_bps is out of range
    """
    if amount_in < 0:
        raise ValueError(f"amount_in must not be negative: {amount_in}")
    _check_fee(fee_bps)
    if reserve_in <= 0 or reserve_out <= 0:
        raise InsufficientLiquidity(
            f"Reserves must be positive: in={reserve_in}, out={reserve_out}",
            reserve_in=reserve_in,
            reserve_out=reserve_out,
        )
    if amount_in == 0:
        return 0

    amount_in_with_fee = amount_in * (BPS_DENOMINATOR - fee_bps)
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * BPS_DENOMINATOR + amount_in_with_fee
    return numerator // denominator


def get_amount_in(
    amount_out: int, reserve_in: int, reserve_out: int, fee_bps: int = DEFAULT_FEE_BPS
) -> int:
    """
    Calculate the input needed to receive exactly amount_out (rounded up).

    Raises:
        InsufficientLiquidity: If a reserve is zero or amount_out would drain the pool
        ValueError: If amount_out is negative or fee_bps is out of range
    """
    if amount_out < 0:
        raise ValueError(f"amount_out must not be negative: {amount_out}")
    _check_fee(fee_bps)
    if reserve_in <= 0 or reserve_out <= 0:
        raise InsufficientLiquidity(
            f"Reserves must be positive: in={reserve_in}, out={reserve_out}",
            reserve_in=reserve_in,
            reserve_out=reserve_out,
        )
    if amount_out == 0:
        return 0
    if amount_out >= reserve_out:
        raise InsufficientLiquidity(
            f"Requested output {amount_out} exceeds pool reserve {reserve_out}",
            reserve_in=reserve_in,
            reserve_out=reserve_out,
        )

    numerator = reserve_in * amount_out * BPS_DENOMINATOR
    denominator = (reserve_out - amount_out) * (BPS_DENOMINATOR - fee_bps)
    return numerator // denominator + 1


def price_impact(
    amount_in: int, amount_out: int, reserve_in: int, reserve_out: int
) -> Decimal:
    """
    Percentage by which the execution price falls short of the spot price.

    Computed by cross-multiplication so no intermediate price is rounded:
        impact = (amountIn * reserveOut - amountOut * reserveIn)
                 / (amountIn * reserveOut) * 100

    Returns:
        Impact in percent, quantized to 4 decimal places

    Raises:
        InsufficientLiquidity: If either reserve is zero (spot price undefined)
    """
    if reserve_in <= 0 or reserve_out <= 0:
        raise InsufficientLiquidity(
            "Spot price undefined for an empty pool",
            reserve_in=reserve_in,
            reserve_out=reserve_out,
        )
    if amount_in == 0:
        return Decimal(0).quantize(IMPACT_PRECISION)

    spot_value = amount_in * reserve_out
    shortfall = spot_value - amount_out * reserve_in
    with localcontext() as ctx:
        ctx.prec = _DECIMAL_PRECISION
        pct = Decimal(shortfall) * 100 / Decimal(spot_value)
        return pct.quantize(IMPACT_PRECISION, rounding=ROUND_HALF_EVEN)


def minimum_received(amount_out: int, slippage_bps: int) -> int:
    """
    Apply a slippage tolerance to an expected output.

    Raises:
        InvalidSlippage: If slippage_bps is outside [0, 10000)
    """
    if not 0 <= slippage_bps < BPS_DENOMINATOR:
        raise InvalidSlippage(
            f"Slippage must be in [0, {BPS_DENOMINATOR}) bps: {slippage_bps}",
            slippage_bps=slippage_bps,
        )
    return amount_out * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR


def classify_impact(impact_pct: Decimal) -> ImpactSeverity:
    """Bucket a price impact percentage for presentation."""
    if impact_pct < IMPACT_MEDIUM_PCT:
        return ImpactSeverity.LOW
    if impact_pct < IMPACT_HIGH_PCT:
        return ImpactSeverity.MEDIUM
    if impact_pct < IMPACT_SEVERE_PCT:
        return ImpactSeverity.HIGH
    return ImpactSeverity.SEVERE


def quote_swap(
    amount_in: int,
    reserve_in: int,
    reserve_out: int,
    fee_bps: int = DEFAULT_FEE_BPS,
    slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
) -> Quote:
    """
    Build a full quote (output, impact, minimum received) for one trade.

    Raises:
        InsufficientLiquidity: If either reserve is zero
        InvalidSlippage: If slippage_bps is out of range
    """
    amount_out = get_amount_out(amount_in, reserve_in, reserve_out, fee_bps)
    impact = price_impact(amount_in, amount_out, reserve_in, reserve_out)
    return Quote(
        amount_in=amount_in,
        amount_out=amount_out,
        price_impact_pct=impact,
        minimum_received=minimum_received(amount_out, slippage_bps),
        fee_bps=fee_bps,
        slippage_bps=slippage_bps,
        impact_severity=classify_impact(impact),
    )


# Display helpers


def to_base_units(amount: str, decimals: int) -> int:
    """
    Convert a human-entered amount (e.g. "10.5") to integer base units.

    Raises:
        ValueError: If the amount is not a number, is negative, or has more
            fractional digits than the token supports
    """
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount: {amount!r}") from e
    if not value.is_finite() or value < 0:
        raise ValueError(f"Amount must be a non-negative number: {amount!r}")

    with localcontext() as ctx:
        ctx.prec = _DECIMAL_PRECISION
        scaled = value.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValueError(
                f"Amount {amount!r} has more than {decimals} fractional digits"
            )
        return int(scaled)


def from_base_units(amount: int, decimals: int) -> Decimal:
    """Convert integer base units to a Decimal in whole-token units."""
    with localcontext() as ctx:
        ctx.prec = _DECIMAL_PRECISION
        return Decimal(amount).scaleb(-decimals)
