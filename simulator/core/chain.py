from __future__ import annotations

import itertools
from typing import Any, Protocol

import httpx

from app.exceptions import ChainQueryError
from app.logger import Logger, session_logger


class ChainQuery(Protocol):
    """Read-only chain capability consumed by the freshness oracle.

    Implementations raise on failure; the oracle treats any exception as a
    transient query failure.
    """

    async def query_anchor(self) -> str: ...

    async def query_height(self) -> int: ...


class JsonRpcChainClient:
    """Chain-query capability over JSON-RPC 2.0 (``getLatestBlockhash`` / ``getSlot``)."""

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_seconds: float = 10.0,
        commitment: str = "confirmed",
        transport: httpx.AsyncBaseTransport | None = None,
        logger: Logger | None = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._commitment = commitment
        self._logger = logger or session_logger
        self._ids = itertools.count(1)
        self._http = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
            headers={
                "User-Agent": "mm-sim/0.1",
                "Content-Type": "application/json",
            },
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def query_anchor(self) -> str:
        result = await self._call("getLatestBlockhash", [{"commitment": self._commitment}])
        try:
            anchor = result["value"]["blockhash"]
        except (KeyError, TypeError) as exc:
            raise ChainQueryError(
                "getLatestBlockhash result is missing value.blockhash",
                code="CHAIN_MALFORMED_RESULT",
                details={"result": result},
            ) from exc
        if not isinstance(anchor, str) or not anchor:
            raise ChainQueryError(
                "getLatestBlockhash returned an empty blockhash",
                code="CHAIN_MALFORMED_RESULT",
                details={"result": result},
            )
        return anchor

    async def query_height(self) -> int:
        result = await self._call("getSlot", [{"commitment": self._commitment}])
        if isinstance(result, bool) or not isinstance(result, int):
            raise ChainQueryError(
                "getSlot returned a non-integer result",
                code="CHAIN_MALFORMED_RESULT",
                details={"result": result},
            )
        return result

    async def _call(self, method: str, params: list[Any]) -> Any:
        request_id = next(self._ids)
        body = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}

        try:
            response = await self._http.post(self._rpc_url, json=body)
        except httpx.HTTPError as exc:
            raise ChainQueryError(
                f"{method} transport failure: {exc}",
                code=_classify_transport_error(exc),
                details={"rpc_url": self._rpc_url, "method": method},
            ) from exc

        if response.status_code != 200:
            raise ChainQueryError(
                f"{method} returned HTTP {response.status_code}",
                code="CHAIN_HTTP_STATUS",
                details={"rpc_url": self._rpc_url, "method": method, "status_code": response.status_code},
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ChainQueryError(
                f"{method} returned a non-JSON body",
                code="CHAIN_MALFORMED_RESULT",
                details={"rpc_url": self._rpc_url, "method": method},
            ) from exc

        if not isinstance(payload, dict):
            raise ChainQueryError(
                f"{method} returned a non-object payload",
                code="CHAIN_MALFORMED_RESULT",
                details={"method": method},
            )

        error = payload.get("error")
        if error is not None:
            raise ChainQueryError(
                f"{method} failed: {_error_message(error)}",
                code="CHAIN_RPC_ERROR",
                details={"method": method, "error": error},
            )

        if "result" not in payload:
            raise ChainQueryError(
                f"{method} payload has neither result nor error",
                code="CHAIN_MALFORMED_RESULT",
                details={"method": method},
            )

        self._logger.debug("sim.chain_call_ok", method=method, request_id=request_id)
        return payload["result"]


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error.get("code") or error)
    return str(error)


def _classify_transport_error(exc: httpx.HTTPError) -> str:
    """Map an httpx exception to a ChainQueryError code."""
    if isinstance(exc, httpx.TimeoutException):
        return "CHAIN_TIMEOUT"
    if isinstance(exc, httpx.ConnectError):
        return "CHAIN_CONNECT"
    if isinstance(exc, (httpx.RemoteProtocolError, httpx.LocalProtocolError)):
        return "CHAIN_PROTOCOL"
    return "CHAIN_TRANSPORT"
