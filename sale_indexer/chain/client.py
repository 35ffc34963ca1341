"""EVM JSON-RPC client over HTTP.

Covers the handful of calls the indexer needs: head block, factory logs,
block timestamps and the sale contract's holder-balance getter. Failures
raise ChainRpcError so callers decide whether to skip or abort.
"""

import asyncio
from typing import Any

import httpx
from eth_abi import encode
from loguru import logger
from web3 import Web3

from sale_indexer.chain.rate_limiter import RateLimiter
from sale_indexer.core.address import canonicalize_address

MAX_RETRIES = 2
RETRY_DELAYS = [1.0, 3.0]
BLOCK_TS_CACHE_SIZE = 1024


class ChainRpcError(Exception):
    """RPC transport failure, HTTP error, or JSON-RPC error object."""


def function_selector(signature: str) -> str:
    """4-byte selector for e.g. ``balanceOf(address)`` as 0x-hex."""
    return "0x" + bytes(Web3.keccak(text=signature))[:4].hex()


class ChainRpcClient:
    """Async JSON-RPC client (eth_blockNumber / eth_getLogs / eth_getBlockByNumber / eth_call)."""

    def __init__(
        self,
        rpc_url: str,
        *,
        max_rps: float = 10.0,
        balance_function: str = "balanceOf(address)",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._rate_limiter = RateLimiter(max_rps)
        self._client = client or httpx.AsyncClient(timeout=15.0)
        self._balance_selector = function_selector(balance_function)
        self._block_ts_cache: dict[int, int] = {}
        self._request_id = 0

    async def close(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, params: list[Any]) -> Any:
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }

        for attempt in range(MAX_RETRIES + 1):
            try:
                await self._rate_limiter.acquire()
                resp = await self._client.post(self._rpc_url, json=payload)

                if resp.status_code == 429 and attempt < MAX_RETRIES:
                    await asyncio.sleep(RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)])
                    continue
                if resp.status_code != 200:
                    raise ChainRpcError(f"{method}: HTTP {resp.status_code}")

                data = resp.json()
                if "error" in data:
                    raise ChainRpcError(f"{method}: RPC error {data['error']}")
                return data.get("result")

            except (httpx.TimeoutException, httpx.ConnectError) as e:
                if attempt < MAX_RETRIES:
                    await asyncio.sleep(RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)])
                else:
                    raise ChainRpcError(f"{method}: {type(e).__name__}: {e}") from e

        raise ChainRpcError(f"{method}: rate limited after {MAX_RETRIES + 1} attempts")

    async def block_number(self) -> int:
        return int(await self._call("eth_blockNumber", []), 16)

    async def get_logs(
        self,
        address: str,
        from_block: int,
        to_block: int,
        topics: list[Any] | None = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "address": address,
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
        }
        if topics:
            params["topics"] = topics
        return await self._call("eth_getLogs", [params]) or []

    async def get_block_timestamp_ms(self, block_number: int) -> int:
        cached = self._block_ts_cache.get(block_number)
        if cached is not None:
            return cached
        block = await self._call("eth_getBlockByNumber", [hex(block_number), False])
        if not block:
            raise ChainRpcError(f"block {block_number} not found")
        ts_ms = int(block["timestamp"], 16) * 1000
        if len(self._block_ts_cache) >= BLOCK_TS_CACHE_SIZE:
            self._block_ts_cache.pop(next(iter(self._block_ts_cache)))
        self._block_ts_cache[block_number] = ts_ms
        return ts_ms

    async def get_balance(self, contract_address: str, wallet_address: str) -> int:
        """Holder balance of ``wallet_address`` in the sale contract (raw units)."""
        wallet = canonicalize_address(wallet_address)
        data = self._balance_selector + encode(["address"], [wallet]).hex()
        result = await self._call(
            "eth_call",
            [{"to": canonicalize_address(contract_address), "data": data}, "latest"],
        )
        if not result or result == "0x":
            raise ChainRpcError(f"empty eth_call result from {contract_address}")
        balance = int(result, 16)
        logger.debug(f"[CHAIN] balance {wallet} @ {contract_address} = {balance}")
        return balance
