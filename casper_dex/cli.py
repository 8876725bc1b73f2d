#!/usr/bin/env python3
"""
Command line access to pair lookup and swap quotes.

Usage:
    casper-dex --config configs/casper_dex.yaml find-pair WCSPR ECTO
    casper-dex --config configs/casper_dex.yaml list-pairs
    casper-dex --config configs/casper_dex.yaml quote WCSPR ECTO 10 --slippage-bps 50
"""

import argparse
import asyncio
import itertools
import sys
from typing import List, Optional

from tabulate import tabulate

from . import logging_config
from .cache import PairCache
from .config import QuoterConfig, load_config
from .exceptions import (
    CasperDexError,
    ConfigurationError,
    InsufficientLiquidity,
    NetworkError,
    PairNotFound,
)
from .pricing import from_base_units, to_base_units
from .quoter import SwapQuoter
from .reader import JsonRpcStateReader
from .resolver import StateResolver, TimeoutPolicy
from .version import get_version

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NO_POOL = 2


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="casper-dex",
        description="Locate Casper DEX pairs and quote swaps",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Find where the WCSPR/ECTO pair is stored
  casper-dex find-pair WCSPR ECTO

  # Show every pool between configured tokens
  casper-dex list-pairs

  # Quote selling 10 WCSPR with 1% slippage tolerance
  casper-dex quote WCSPR ECTO 10 --slippage-bps 100
        """,
    )
    parser.add_argument(
        "--config",
        default="configs/casper_dex.yaml",
        help="Path to config YAML file (default: configs/casper_dex.yaml)",
    )
    parser.add_argument("--debug", action="store_true", help="Log every probe")
    parser.add_argument("--version", action="version", version=f"%(prog)s {get_version()}")

    sub = parser.add_subparsers(dest="command", required=True)

    find = sub.add_parser("find-pair", help="Locate a pair's storage slot and reserves")
    find.add_argument("token_a", help="Token symbol from config or hash-/account-hash- identifier")
    find.add_argument("token_b")
    find.add_argument(
        "--max-index", type=int, default=None, help="Highest slot index to probe"
    )

    pairs = sub.add_parser("list-pairs", help="List pools between all configured tokens")
    pairs.add_argument(
        "--max-index", type=int, default=None, help="Highest slot index to search per pair"
    )

    quote = sub.add_parser("quote", help="Quote an exact-input swap")
    quote.add_argument("token_in")
    quote.add_argument("token_out")
    quote.add_argument("amount", help="Input amount in whole tokens (e.g. 10.5)")
    quote.add_argument("--slippage-bps", type=int, default=None)
    quote.add_argument("--fee-bps", type=int, default=None)

    return parser.parse_args(argv)


def build_resolver(config: QuoterConfig, reader, cache: Optional[PairCache] = None) -> StateResolver:
    """Create a resolver from config settings."""
    return StateResolver(
        reader,
        config.state_uref,
        cache=cache,
        timeout=config.rpc_timeout_sec,
        timeout_policy=TimeoutPolicy(config.timeout_policy),
        max_retries=config.max_retries,
        concurrency=config.probe_concurrency,
        cache_max_age=config.cache_max_age_sec,
    )


async def run_find_pair(config: QuoterConfig, args: argparse.Namespace, reader) -> int:
    resolver = build_resolver(config, reader)
    max_index = config.max_probe_index if args.max_index is None else args.max_index
    token_a = config.resolve_token(args.token_a)
    token_b = config.resolve_token(args.token_b)

    location = await resolver.resolve_pair(token_a, token_b, max_index)
    if location is None:
        print(f"{PairNotFound.user_message} (probed indices 0..{max_index})")
        return EXIT_NO_POOL

    reserves = location.reserves
    rows = [
        ["Index", location.index],
        ["Layout", str(location.variant)],
        ["Dictionary key", location.dictionary_key],
        ["State root", location.state_root_hash],
        [str(reserves.token0), from_base_units(reserves.reserve0, config.decimals_for(reserves.token0))],
        [str(reserves.token1), from_base_units(reserves.reserve1, config.decimals_for(reserves.token1))],
    ]
    print(tabulate(rows, tablefmt="grid", disable_numparse=True))
    return EXIT_OK


async def run_list_pairs(config: QuoterConfig, args: argparse.Namespace, reader) -> int:
    resolver = build_resolver(config, reader, cache=PairCache())
    max_index = config.max_probe_index if args.max_index is None else args.max_index

    rows = []
    for (symbol_a, token_a), (symbol_b, token_b) in itertools.combinations(config.tokens.items(), 2):
        location = await resolver.resolve_pair(token_a.identifier, token_b.identifier, max_index)
        if location is None:
            continue
        reserves = location.reserves
        if reserves.token0 == token_a.identifier:
            reserve_a, reserve_b = reserves.reserve0, reserves.reserve1
        else:
            reserve_a, reserve_b = reserves.reserve1, reserves.reserve0
        rows.append([
            f"{symbol_a}/{symbol_b}",
            location.index,
            str(location.variant),
            from_base_units(reserve_a, token_a.decimals),
            from_base_units(reserve_b, token_b.decimals),
        ])

    print(f"Found {len(rows)} pair(s)")
    if not rows:
        print("⚠️  No liquidity pools exist yet!")
        print("Add liquidity for a token pair to create a pool.")
        return EXIT_NO_POOL

    headers = ["Pair", "Index", "Layout", "Reserve A", "Reserve B"]
    print(tabulate(rows, headers=headers, tablefmt="grid", disable_numparse=True))
    return EXIT_OK


async def run_quote(config: QuoterConfig, args: argparse.Namespace, reader) -> int:
    quoter = SwapQuoter(
        build_resolver(config, reader),
        max_index=config.max_probe_index,
        fee_bps=config.fee_bps,
        slippage_bps=config.slippage_bps,
    )
    token_in = config.resolve_token(args.token_in)
    token_out = config.resolve_token(args.token_out)
    decimals_in = config.decimals_for(token_in)
    decimals_out = config.decimals_for(token_out)

    try:
        result = await quoter.quote(
            token_in,
            token_out,
            to_base_units(args.amount, decimals_in),
            slippage_bps=args.slippage_bps,
            fee_bps=args.fee_bps,
        )
    except (PairNotFound, InsufficientLiquidity) as e:
        print(e.user_message)
        return EXIT_NO_POOL

    quote = result.quote
    rows = [
        ["Expected output", from_base_units(quote.amount_out, decimals_out)],
        ["Price impact", f"{quote.price_impact_pct}%"],
        ["Minimum received", from_base_units(quote.minimum_received, decimals_out)],
        ["Slippage tolerance", f"{quote.slippage_bps} bps"],
        ["Pool fee", f"{quote.fee_bps} bps"],
    ]
    print(tabulate(rows, tablefmt="grid", disable_numparse=True))
    if quote.impact_severity.needs_warning:
        print(
            f"⚠️  {quote.impact_severity.value.capitalize()} price impact! "
            "Consider reducing your swap amount."
        )
    return EXIT_OK


async def run(config: QuoterConfig, args: argparse.Namespace) -> int:
    async with JsonRpcStateReader(config.node_url, request_timeout=config.rpc_timeout_sec) as reader:
        if args.command == "find-pair":
            return await run_find_pair(config, args, reader)
        if args.command == "list-pairs":
            return await run_list_pairs(config, args, reader)
        return await run_quote(config, args, reader)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 success, 1 error, 2 no pool / no liquidity)
    """
    args = parse_args(argv)
    if args.debug:
        logging_config.setup_debug()
    else:
        logging_config.setup_minimal()

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        print(f"❌ Config error: {e}", file=sys.stderr)
        return EXIT_ERROR

    try:
        return asyncio.run(run(config, args))
    except KeyboardInterrupt:
        print("\n⏸ Stopped by user")
        return EXIT_OK
    except NetworkError as e:
        print(f"❌ {e.user_message}: {e}", file=sys.stderr)
        return EXIT_ERROR
    except (CasperDexError, ValueError) as e:
        print(f"❌ {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
