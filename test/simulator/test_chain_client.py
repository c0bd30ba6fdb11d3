"""Tests for the JSON-RPC chain-query client."""

from __future__ import annotations

import json

import httpx
import pytest

from app.exceptions import ChainQueryError
from simulator.core.chain import JsonRpcChainClient

_RPC_URL = "http://rpc.test:8899"


def _client(handler) -> JsonRpcChainClient:
    return JsonRpcChainClient(_RPC_URL, transport=httpx.MockTransport(handler))


def _rpc_handler(results: dict[str, object], seen: list[dict] | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if seen is not None:
            seen.append(body)
        result = results[body["method"]]
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    return handler


class TestJsonRpcChainClient:
    @pytest.mark.asyncio
    async def test_query_anchor(self):
        seen: list[dict] = []
        client = _client(
            _rpc_handler(
                {
                    "getLatestBlockhash": {
                        "context": {"slot": 1},
                        "value": {"blockhash": "EkSnNWid2cvwEVnVx9aBqawnmiCNiDgp3gUdkDPTKN1N", "lastValidBlockHeight": 9},
                    }
                },
                seen,
            )
        )
        try:
            assert await client.query_anchor() == "EkSnNWid2cvwEVnVx9aBqawnmiCNiDgp3gUdkDPTKN1N"
        finally:
            await client.aclose()

        assert seen[0]["jsonrpc"] == "2.0"
        assert seen[0]["method"] == "getLatestBlockhash"
        assert seen[0]["params"] == [{"commitment": "confirmed"}]

    @pytest.mark.asyncio
    async def test_query_height(self):
        seen: list[dict] = []
        client = _client(_rpc_handler({"getSlot": 123456}, seen))
        try:
            assert await client.query_height() == 123456
            assert await client.query_height() == 123456
        finally:
            await client.aclose()

        assert seen[0]["method"] == "getSlot"
        assert seen[0]["id"] != seen[1]["id"]

    @pytest.mark.asyncio
    async def test_rpc_error_member(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32005, "message": "Node is behind"}},
            )

        client = _client(handler)
        try:
            with pytest.raises(ChainQueryError) as exc_info:
                await client.query_height()
        finally:
            await client.aclose()

        assert exc_info.value.code == "CHAIN_RPC_ERROR"
        assert "Node is behind" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        client = _client(lambda request: httpx.Response(503, text="unavailable"))
        try:
            with pytest.raises(ChainQueryError) as exc_info:
                await client.query_anchor()
        finally:
            await client.aclose()

        assert exc_info.value.code == "CHAIN_HTTP_STATUS"
        assert exc_info.value.details["status_code"] == 503

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method,result",
        [
            ("getLatestBlockhash", {"value": {}}),
            ("getLatestBlockhash", {"value": {"blockhash": ""}}),
            ("getLatestBlockhash", None),
            ("getSlot", "123"),
            ("getSlot", True),
        ],
    )
    async def test_malformed_results(self, method: str, result: object):
        client = _client(_rpc_handler({method: result}))
        call = client.query_anchor if method == "getLatestBlockhash" else client.query_height
        try:
            with pytest.raises(ChainQueryError) as exc_info:
                await call()
        finally:
            await client.aclose()

        assert exc_info.value.code == "CHAIN_MALFORMED_RESULT"

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        client = _client(lambda request: httpx.Response(200, text="<html>"))
        try:
            with pytest.raises(ChainQueryError) as exc_info:
                await client.query_height()
        finally:
            await client.aclose()

        assert exc_info.value.code == "CHAIN_MALFORMED_RESULT"

    @pytest.mark.asyncio
    async def test_transport_errors_are_classified(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        def time_out(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        for handler, expected in ((refuse, "CHAIN_CONNECT"), (time_out, "CHAIN_TIMEOUT")):
            client = _client(handler)
            try:
                with pytest.raises(ChainQueryError) as exc_info:
                    await client.query_anchor()
            finally:
                await client.aclose()
            assert exc_info.value.code == expected
