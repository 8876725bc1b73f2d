"""
Remote state access for the pair resolver.

``RemoteStateReader`` is the only thing the resolver needs from a node;
``JsonRpcStateReader`` implements it against a Casper node's JSON-RPC API
using aiohttp.
"""

import asyncio
import itertools
import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import aiohttp

from .exceptions import DecodeError, NetworkError, RpcTimeout

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT_SEC = 10.0

# Error codes the node uses when a queried key holds no value
NOT_FOUND_ERROR_CODES = frozenset({-32002, -32003})


@runtime_checkable
class RemoteStateReader(Protocol):
    """Protocol for reading contract dictionary items from global state."""

    async def get_current_state_root(self) -> str:
        """Return the latest state root hash."""
        ...

    async def get_dictionary_item(
        self, state_root_hash: str, seed_uref: str, dictionary_key: str
    ) -> Optional[Dict[str, Any]]:
        """
        Read one dictionary item.

        Returns:
            The CLValue envelope, or None if nothing is stored under the key

        Raises:
            NetworkError: If the node could not be queried
            DecodeError: If the key holds something other than a CLValue
        """
        ...


def rpc_endpoint(node_url: str) -> str:
    """Normalize a node address to its JSON-RPC endpoint."""
    url = node_url.rstrip("/")
    return url if url.endswith("/rpc") else f"{url}/rpc"


def _is_not_found(error: Dict[str, Any]) -> bool:
    if error.get("code") in NOT_FOUND_ERROR_CODES:
        return True
    text = f"{error.get('message', '')} {error.get('data', '')}"
    return "ValueNotFound" in text


class JsonRpcStateReader:
    """
    JSON-RPC 2.0 client for the two state queries the resolver needs.

    Can be used as an async context manager; a session passed in by the
    caller is never closed by the reader.
    """

    def __init__(
        self,
        node_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SEC,
    ):
        self.rpc_url = rpc_endpoint(node_url)
        self.request_timeout = request_timeout
        self._session = session
        self._owns_session = session is None
        self._request_ids = itertools.count(1)

    async def __aenter__(self) -> "JsonRpcStateReader":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _call(self, method: str, params: Any) -> Dict[str, Any]:
        """POST one JSON-RPC request and return the decoded response body."""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params,
        }
        session = self._get_session()
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)

        try:
            async with session.post(self.rpc_url, json=payload, timeout=timeout) as resp:
                if resp.status >= 400:
                    detail = await resp.text()
                    raise NetworkError(
                        f"{method} failed with HTTP {resp.status}: {detail[:200]}",
                        endpoint=self.rpc_url,
                        status_code=resp.status,
                    )
                body = await resp.json(content_type=None)
        except asyncio.TimeoutError:
            raise RpcTimeout(
                f"{method} timed out after {self.request_timeout}s",
                timeout=self.request_timeout,
                endpoint=self.rpc_url,
            ) from None
        except aiohttp.ClientError as e:
            raise NetworkError(
                f"{method} request failed: {e}", endpoint=self.rpc_url
            ) from e
        except ValueError as e:
            raise NetworkError(
                f"{method} returned invalid JSON: {e}", endpoint=self.rpc_url
            ) from e

        if not isinstance(body, dict):
            raise NetworkError(
                f"{method} returned a non-object response", endpoint=self.rpc_url
            )
        return body

    async def get_current_state_root(self) -> str:
        body = await self._call("chain_get_state_root_hash", [])
        if "error" in body:
            raise NetworkError(
                f"chain_get_state_root_hash error: {body['error']}",
                endpoint=self.rpc_url,
                details={"error": body["error"]},
            )
        state_root = (body.get("result") or {}).get("state_root_hash")
        if not state_root:
            raise NetworkError(
                "chain_get_state_root_hash returned no state root",
                endpoint=self.rpc_url,
            )
        return state_root

    async def get_dictionary_item(
        self, state_root_hash: str, seed_uref: str, dictionary_key: str
    ) -> Optional[Dict[str, Any]]:
        params = {
            "state_root_hash": state_root_hash,
            "dictionary_identifier": {
                "URef": {
                    "seed_uref": seed_uref,
                    "dictionary_item_key": dictionary_key,
                }
            },
        }
        body = await self._call("state_get_dictionary_item", params)

        error = body.get("error")
        if error is not None:
            if isinstance(error, dict) and _is_not_found(error):
                logger.debug(f"No dictionary item under {dictionary_key}")
                return None
            raise NetworkError(
                f"state_get_dictionary_item error: {error}",
                endpoint=self.rpc_url,
                details={"error": error},
            )

        stored_value = (body.get("result") or {}).get("stored_value")
        if not stored_value:
            return None
        # Present but not a CLValue (e.g. an Account) is bad data, not absence
        if not isinstance(stored_value, dict) or "CLValue" not in stored_value:
            kind = next(iter(stored_value), None) if isinstance(stored_value, dict) else None
            raise DecodeError(
                f"Dictionary item {dictionary_key} holds {kind or stored_value!r}, not a CLValue",
                cl_type=kind,
            )
        return stored_value["CLValue"]
