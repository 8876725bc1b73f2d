"""
Tests for the JSON-RPC state reader against a local aiohttp server.
"""

import asyncio

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from casper_dex.exceptions import DecodeError, NetworkError, RpcTimeout
from casper_dex.reader import JsonRpcStateReader, RemoteStateReader, rpc_endpoint
from casper_dex.resolver import StateResolver
from tests.fakes import (
    ECTO,
    STATE_ROOT,
    STATE_UREF,
    UNTAGGED,
    WCSPR,
    reserve_envelope,
    storage_key,
)

POOL = reserve_envelope(ECTO, WCSPR, 10**24, 5 * 10**23)


class FakeNode:
    """Minimal Casper node answering the two state queries."""

    def __init__(self, items=None):
        self.items = items or {}
        self.requests = []

    async def handle(self, request):
        body = await request.json()
        self.requests.append(body)
        if body["method"] == "chain_get_state_root_hash":
            return self.result(body, {"api_version": "1.5.6", "state_root_hash": STATE_ROOT})

        key = body["params"]["dictionary_identifier"]["URef"]["dictionary_item_key"]
        if key not in self.items:
            return web.json_response(
                {
                    "jsonrpc": "2.0",
                    "id": body["id"],
                    "error": {"code": -32003, "message": "state query failed: ValueNotFound"},
                }
            )
        return self.result(body, {"stored_value": {"CLValue": self.items[key]}})

    @staticmethod
    def result(body, result):
        return web.json_response({"jsonrpc": "2.0", "id": body["id"], "result": result})


def make_app(handler):
    app = web.Application()
    app.router.add_post("/rpc", handler)
    return app


def test_rpc_endpoint():
    assert rpc_endpoint("http://localhost:7777") == "http://localhost:7777/rpc"
    assert rpc_endpoint("http://localhost:7777/") == "http://localhost:7777/rpc"
    assert rpc_endpoint("http://localhost:7777/rpc") == "http://localhost:7777/rpc"


def test_reader_satisfies_protocol():
    assert isinstance(JsonRpcStateReader("http://localhost:7777"), RemoteStateReader)


class TestJsonRpcStateReader:
    @pytest.mark.asyncio
    async def test_state_root(self):
        node = FakeNode()
        async with TestServer(make_app(node.handle)) as server:
            async with JsonRpcStateReader(str(server.make_url("/"))) as reader:
                assert await reader.get_current_state_root() == STATE_ROOT

        assert node.requests[0]["method"] == "chain_get_state_root_hash"
        assert node.requests[0]["jsonrpc"] == "2.0"

    @pytest.mark.asyncio
    async def test_dictionary_item_found(self):
        key = "aa" * 32
        node = FakeNode(items={key: POOL})
        async with TestServer(make_app(node.handle)) as server:
            async with JsonRpcStateReader(str(server.make_url("/rpc"))) as reader:
                envelope = await reader.get_dictionary_item(STATE_ROOT, STATE_UREF, key)

        assert envelope == POOL
        params = node.requests[0]["params"]
        assert params["state_root_hash"] == STATE_ROOT
        assert params["dictionary_identifier"]["URef"] == {
            "seed_uref": STATE_UREF,
            "dictionary_item_key": key,
        }

    @pytest.mark.asyncio
    async def test_dictionary_item_missing(self):
        node = FakeNode()
        async with TestServer(make_app(node.handle)) as server:
            async with JsonRpcStateReader(str(server.make_url("/rpc"))) as reader:
                assert await reader.get_dictionary_item(STATE_ROOT, STATE_UREF, "bb" * 32) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            {"code": -32002, "message": "Query failed"},
            {"code": -32000, "message": "Failed", "data": "ValueNotFound(\"...\")"},
        ],
    )
    async def test_not_found_variants(self, error):
        async def handler(request):
            body = await request.json()
            return web.json_response({"jsonrpc": "2.0", "id": body["id"], "error": error})

        async with TestServer(make_app(handler)) as server:
            async with JsonRpcStateReader(str(server.make_url("/rpc"))) as reader:
                assert await reader.get_dictionary_item(STATE_ROOT, STATE_UREF, "cc" * 32) is None

    @pytest.mark.asyncio
    async def test_non_clvalue_stored_value_raises(self):
        async def handler(request):
            body = await request.json()
            account = {"Account": {"account_hash": "account-hash-" + "01" * 32, "named_keys": []}}
            return FakeNode.result(body, {"stored_value": account})

        async with TestServer(make_app(handler)) as server:
            async with JsonRpcStateReader(str(server.make_url("/rpc"))) as reader:
                with pytest.raises(DecodeError) as exc_info:
                    await reader.get_dictionary_item(STATE_ROOT, STATE_UREF, "cc" * 32)

        assert exc_info.value.cl_type == "Account"

    @pytest.mark.asyncio
    async def test_result_without_stored_value_is_absent(self):
        async def handler(request):
            body = await request.json()
            return FakeNode.result(body, {"api_version": "1.5.6"})

        async with TestServer(make_app(handler)) as server:
            async with JsonRpcStateReader(str(server.make_url("/rpc"))) as reader:
                assert await reader.get_dictionary_item(STATE_ROOT, STATE_UREF, "cc" * 32) is None

    @pytest.mark.asyncio
    async def test_other_rpc_error_raises(self):
        async def handler(request):
            body = await request.json()
            return web.json_response(
                {"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32602, "message": "Invalid params"}}
            )

        async with TestServer(make_app(handler)) as server:
            async with JsonRpcStateReader(str(server.make_url("/rpc"))) as reader:
                with pytest.raises(NetworkError, match="Invalid params"):
                    await reader.get_dictionary_item(STATE_ROOT, STATE_UREF, "cc" * 32)
                with pytest.raises(NetworkError):
                    await reader.get_current_state_root()

    @pytest.mark.asyncio
    async def test_http_error(self):
        async def handler(request):
            return web.Response(status=500, text="internal error")

        async with TestServer(make_app(handler)) as server:
            async with JsonRpcStateReader(str(server.make_url("/rpc"))) as reader:
                with pytest.raises(NetworkError) as exc_info:
                    await reader.get_current_state_root()

        assert exc_info.value.status_code == 500
        assert exc_info.value.endpoint.endswith("/rpc")

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        async def handler(request):
            return web.Response(text="<html>gateway</html>")

        async with TestServer(make_app(handler)) as server:
            async with JsonRpcStateReader(str(server.make_url("/rpc"))) as reader:
                with pytest.raises(NetworkError, match="invalid JSON"):
                    await reader.get_current_state_root()

    @pytest.mark.asyncio
    async def test_non_object_response(self):
        async def handler(request):
            return web.json_response([1, 2, 3])

        async with TestServer(make_app(handler)) as server:
            async with JsonRpcStateReader(str(server.make_url("/rpc"))) as reader:
                with pytest.raises(NetworkError, match="non-object"):
                    await reader.get_current_state_root()

    @pytest.mark.asyncio
    async def test_request_timeout(self):
        async def handler(request):
            await asyncio.sleep(0.5)
            return web.json_response({})

        async with TestServer(make_app(handler)) as server:
            async with JsonRpcStateReader(
                str(server.make_url("/rpc")), request_timeout=0.05
            ) as reader:
                with pytest.raises(RpcTimeout) as exc_info:
                    await reader.get_current_state_root()

        assert exc_info.value.timeout == 0.05

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        server = TestServer(make_app(FakeNode().handle))
        await server.start_server()
        url = str(server.make_url("/rpc"))
        await server.close()

        async with JsonRpcStateReader(url) as reader:
            with pytest.raises(NetworkError):
                await reader.get_current_state_root()

    @pytest.mark.asyncio
    async def test_caller_session_left_open(self):
        node = FakeNode()
        async with TestServer(make_app(node.handle)) as server:
            async with aiohttp.ClientSession() as session:
                async with JsonRpcStateReader(str(server.make_url("/rpc")), session=session) as reader:
                    await reader.get_current_state_root()
                assert not session.closed


class TestResolverOverRpc:
    @pytest.mark.asyncio
    async def test_resolve_pair_end_to_end(self):
        key = storage_key(WCSPR, ECTO, 1, UNTAGGED)
        node = FakeNode(items={key: POOL})

        async with TestServer(make_app(node.handle)) as server:
            async with JsonRpcStateReader(str(server.make_url("/rpc"))) as reader:
                resolver = StateResolver(reader, STATE_UREF)
                location = await resolver.resolve_pair(ECTO, WCSPR, 10)

        assert location.index == 1
        assert location.dictionary_key == key
        assert location.reserves.reserve0 == 10**24
        # one state root read plus 0T, 0U, 1T, 1U
        assert [r["method"] for r in node.requests] == (
            ["chain_get_state_root_hash"] + ["state_get_dictionary_item"] * 4
        )
