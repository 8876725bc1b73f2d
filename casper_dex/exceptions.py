"""
Exception hierarchy for the Casper DEX quoting client.

Provides specific exception types for each failure category so callers can
tell "no pool" apart from "transport broke" apart from "bad input".
"""

from typing import Any, Dict, Optional


class CasperDexError(Exception):
    """Base exception for all Casper DEX client errors."""

    user_message = "Unexpected error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ConfigurationError(CasperDexError):
    """Raised when there are configuration-related issues."""

    user_message = "Invalid configuration"


class MalformedIdentifier(CasperDexError, ValueError):
    """Raised when an identifier string has a bad prefix, length or hex content."""

    user_message = "Invalid token identifier"

    def __init__(
        self,
        message: str,
        text: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.text = text


class InsufficientLiquidity(CasperDexError):
    """Raised when a pool reserve is zero (or too small) to quote against."""

    user_message = "No liquidity"

    def __init__(
        self,
        message: str,
        reserve_in: Optional[int] = None,
        reserve_out: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.reserve_in = reserve_in
        self.reserve_out = reserve_out


class InvalidSlippage(CasperDexError, ValueError):
    """Raised when a slippage tolerance is outside [0, 10000) basis points."""

    user_message = "Invalid slippage tolerance"

    def __init__(
        self,
        message: str,
        slippage_bps: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.slippage_bps = slippage_bps


class PairNotFound(CasperDexError):
    """Raised when the probe range was exhausted without locating the pair."""

    user_message = "No pool exists for this pair"

    def __init__(
        self,
        message: str,
        token_a: Optional[str] = None,
        token_b: Optional[str] = None,
        max_index: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.token_a = token_a
        self.token_b = token_b
        self.max_index = max_index


class DecodeError(CasperDexError):
    """Raised when remote data is present but does not have the expected shape."""

    user_message = "Unexpected pool data layout"

    def __init__(
        self,
        message: str,
        cl_type: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.cl_type = cl_type


class NetworkError(CasperDexError):
    """Raised when network or node connectivity issues occur."""

    user_message = "Network error"

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status_code = status_code


class RpcTimeout(NetworkError):
    """Raised when a remote read does not complete within its timeout."""

    user_message = "Node did not respond in time"

    def __init__(
        self,
        message: str,
        timeout: Optional[float] = None,
        endpoint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, endpoint=endpoint, details=details)
        self.timeout = timeout
