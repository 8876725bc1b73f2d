"""
Pair resolution: locate a token pair's record in dictionary storage.

The slot index the contract assigned to its pairs mapping, and whether the
mapping key carries a tag byte, are not known up front. The resolver walks a
bounded probe schedule (index ascending, tagged before untagged) and stops at
the first non-empty read, so a lookup costs at most
``len(variants) * (max_index + 1)`` dictionary reads.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from .cache import PairCache
from .cl_value import decode_reserve_state
from .exceptions import DecodeError, NetworkError, PairNotFound, RpcTimeout
from .keys import (
    DEFAULT_VARIANTS,
    HashFunction,
    as_identifier,
    build_slot_key,
    digest_to_storage_key,
    order_pair,
    pair_key,
    probe_candidates,
)
from .metrics import ProbeMetrics
from .reader import RemoteStateReader
from .types import Identifier, KeyVariant, PairLocation, ProbeCandidate

logger = logging.getLogger(__name__)

TokenRef = Union[str, Identifier]
# (candidate, dictionary key, CLValue envelope)
ProbeHit = Tuple[ProbeCandidate, str, Dict[str, Any]]
# (seed_uref, ordered pair key)
CacheKey = Tuple[str, bytes]


class TimeoutPolicy(Enum):
    """What to do when a remote read fails or times out mid-resolution."""

    RAISE = "raise"
    SERVE_CACHED = "serve_cached"


class StateResolver:
    """
    Locates pair records and decodes their reserves.

    Args:
        reader: Remote state reader
        seed_uref: URef of the contract's state dictionary
        cache: Optional PairCache, shared safely across contracts
        timeout: Per-read timeout in seconds (None = no timeout)
        timeout_policy: RAISE propagates transport failures; SERVE_CACHED
            returns a previously cached location instead, if there is one
        max_retries: Extra attempts per read on NetworkError/RpcTimeout
        concurrency: Reads issued at once; 1 means strictly sequential
        variants: Key layouts to try at each index, in trial order
        hash_fn: Replacement for blake2b-256 when hashing slot keys
        metrics: Optional ProbeMetrics
        cache_max_age: Ignore cache entries older than this many seconds
    """

    def __init__(
        self,
        reader: RemoteStateReader,
        seed_uref: str,
        cache: Optional[PairCache] = None,
        timeout: Optional[float] = None,
        timeout_policy: TimeoutPolicy = TimeoutPolicy.RAISE,
        max_retries: int = 0,
        concurrency: int = 1,
        variants: Sequence[KeyVariant] = DEFAULT_VARIANTS,
        hash_fn: Optional[HashFunction] = None,
        metrics: Optional[ProbeMetrics] = None,
        cache_max_age: Optional[float] = None,
    ):
        if max_retries < 0:
            raise ValueError(f"max_retries must not be negative: {max_retries}")
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1: {concurrency}")
        if timeout is not None and timeout <= 0:
            raise ValueError(f"timeout must be positive: {timeout}")

        self.reader = reader
        self.seed_uref = seed_uref
        self.cache = cache
        self.timeout = timeout
        self.timeout_policy = TimeoutPolicy(timeout_policy)
        self.max_retries = max_retries
        self.concurrency = concurrency
        self.variants = tuple(variants)
        self.hash_fn = hash_fn
        self.metrics = metrics
        self.cache_max_age = cache_max_age

    async def resolve_pair(
        self, token_a: TokenRef, token_b: TokenRef, max_index: int
    ) -> Optional[PairLocation]:
        """
        Find the pair record for two tokens, in either order.

        Returns:
            PairLocation, or None if no (index, variant) in range holds the pair

        Raises:
            MalformedIdentifier: If a token string cannot be parsed
            DecodeError: If a record was found but has an unexpected shape
            NetworkError / RpcTimeout: On transport failure under TimeoutPolicy.RAISE
        """
        first, second = order_pair(as_identifier(token_a), as_identifier(token_b))
        key = pair_key(first, second)
        schedule = probe_candidates(max_index, self.variants)
        cache_key = (self.seed_uref, key)

        if self.cache is not None:
            cached = self._cached(cache_key, max_index, max_age=self.cache_max_age)
            if cached is not None:
                logger.debug(f"Cache hit for pair {first}/{second}")
                if self.metrics:
                    self.metrics.record_cache_hit()
                return cached

        try:
            state_root = await self._read(
                self.reader.get_current_state_root, "chain_get_state_root_hash"
            )
            if self.concurrency == 1:
                hit = await self._search_sequential(key, state_root, schedule)
            else:
                hit = await self._search_windowed(key, state_root, schedule)
        except NetworkError as e:
            return self._fallback(cache_key, max_index, first, second, e)

        if hit is None:
            logger.info(
                f"No pair record for {first}/{second} in indices 0..{max_index} "
                f"({len(schedule)} probes)"
            )
            if self.metrics:
                self.metrics.record_miss()
            return None

        candidate, dictionary_key, envelope = hit
        reserves = decode_reserve_state(envelope)
        if {reserves.token0, reserves.token1} != {first, second}:
            raise DecodeError(
                f"Record at index {candidate.index} ({candidate.variant}) belongs to "
                f"{reserves.token0}/{reserves.token1}, not {first}/{second}",
                cl_type=envelope.get("cl_type"),
            )

        location = PairLocation(
            token_a=first,
            token_b=second,
            index=candidate.index,
            variant=candidate.variant,
            dictionary_key=dictionary_key,
            state_root_hash=state_root,
            reserves=reserves,
        )
        logger.info(
            f"Found pair {first}/{second} at index {candidate.index} "
            f"({candidate.variant}), key {dictionary_key}"
        )
        if self.metrics:
            self.metrics.record_hit()
        if self.cache is not None:
            self.cache.put(cache_key, location)
        return location

    async def require_pair(
        self, token_a: TokenRef, token_b: TokenRef, max_index: int
    ) -> PairLocation:
        """
        Like resolve_pair(), but raises PairNotFound instead of returning None.
        """
        location = await self.resolve_pair(token_a, token_b, max_index)
        if location is None:
            raise PairNotFound(
                f"No pool for {token_a}/{token_b} in slot indices 0..{max_index}",
                token_a=str(token_a),
                token_b=str(token_b),
                max_index=max_index,
            )
        return location

    def _cached(
        self, cache_key: CacheKey, max_index: int, max_age: Optional[float] = None
    ) -> Optional[PairLocation]:
        """Cached location for this contract, if it lies within 0..max_index."""
        cached = self.cache.get(cache_key, max_age=max_age)
        if cached is not None and cached.index > max_index:
            logger.debug(
                f"Ignoring cached location at index {cached.index} beyond max index {max_index}"
            )
            return None
        return cached

    def _fallback(
        self,
        cache_key: CacheKey,
        max_index: int,
        first: Identifier,
        second: Identifier,
        error: NetworkError,
    ) -> Optional[PairLocation]:
        """Apply the timeout policy after a transport failure."""
        if self.timeout_policy is TimeoutPolicy.SERVE_CACHED and self.cache is not None:
            cached = self._cached(cache_key, max_index)
            if cached is not None:
                logger.warning(
                    f"Resolution of {first}/{second} failed ({error}); "
                    f"serving cached location from state root {cached.state_root_hash}"
                )
                return cached
        raise error

    async def _search_sequential(
        self, key: bytes, state_root: str, schedule
    ) -> Optional[ProbeHit]:
        for candidate in schedule:
            hit = await self._probe(key, state_root, candidate)
            if hit is not None:
                return hit
        return None

    async def _search_windowed(
        self, key: bytes, state_root: str, schedule
    ) -> Optional[ProbeHit]:
        """
        Issue reads in ordered windows of `concurrency` candidates.

        Within a window the earliest candidate with data wins regardless of
        completion order, and no further window is started after a hit.
        """
        window: List[ProbeCandidate] = []
        for candidate in schedule:
            window.append(candidate)
            if len(window) == self.concurrency:
                hit = await self._probe_window(key, state_root, window)
                if hit is not None:
                    return hit
                window = []
        if window:
            return await self._probe_window(key, state_root, window)
        return None

    async def _probe_window(
        self, key: bytes, state_root: str, window: List[ProbeCandidate]
    ) -> Optional[ProbeHit]:
        tasks = [
            asyncio.ensure_future(self._probe(key, state_root, candidate))
            for candidate in window
        ]
        try:
            results = await asyncio.gather(*tasks)
        finally:
            # gather() leaves siblings running when one fails; settle them all
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        for hit in results:
            if hit is not None:
                return hit
        return None

    async def _probe(
        self, key: bytes, state_root: str, candidate: ProbeCandidate
    ) -> Optional[ProbeHit]:
        slot_key = build_slot_key(key, candidate.index, candidate.variant)
        dictionary_key = digest_to_storage_key(slot_key, hash_fn=self.hash_fn)

        if self.metrics:
            self.metrics.record_probe("tagged" if candidate.variant.is_tagged else "untagged")

        envelope = await self._read(
            lambda: self.reader.get_dictionary_item(
                state_root, self.seed_uref, dictionary_key
            ),
            "state_get_dictionary_item",
        )
        if not envelope:
            logger.debug(
                f"Index {candidate.index} ({candidate.variant}): not found [{dictionary_key}]"
            )
            return None
        return candidate, dictionary_key, envelope

    async def _read(self, call: Callable[[], Awaitable[Any]], label: str) -> Any:
        """Run one remote read with the configured timeout and retry budget."""
        attempt = 0
        while True:
            try:
                return await self._with_timeout(call(), label)
            except NetworkError as e:
                if attempt >= self.max_retries:
                    raise
                attempt += 1
                logger.warning(f"{label} failed ({e}); retry {attempt}/{self.max_retries}")

    async def _with_timeout(self, awaitable: Awaitable[Any], label: str) -> Any:
        if self.timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError:
            if self.metrics:
                self.metrics.record_timeout()
            raise RpcTimeout(
                f"{label} timed out after {self.timeout}s", timeout=self.timeout
            ) from None
