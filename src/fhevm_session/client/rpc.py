"""Short-lived web3 clients for one-off endpoint calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import aiohttp
from web3 import AsyncHTTPProvider, AsyncWeb3, WebSocketProvider
from web3.exceptions import ProviderConnectionError, TimeExhausted, Web3Exception
from web3.providers import PersistentConnectionProvider

from ..exceptions import FhevmError, NetworkError, RpcError, RpcTimeoutError, is_network_error
from .eip1193 import Eip1193AsyncProvider

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


def _rpc_error(method: str, e: Web3Exception) -> RpcError:
    response = getattr(e, "rpc_response", None)
    error = response.get("error") if isinstance(response, dict) else None
    if isinstance(error, dict):
        return RpcError(error.get("code"), str(error.get("message", "")), error.get("data"))
    return RpcError(None, f"{method} failed: {e}")


class RpcClient:
    """One ``AsyncWeb3`` bound to one endpoint.

    Meant to be used as ``async with open_rpc_client(url) as rpc`` so the
    HTTP session or websocket is released after the call. Failures come out
    as ``NetworkError``, ``RpcTimeoutError`` or ``RpcError``; errors raised
    by an EIP-1193 handle itself are passed through.
    """

    def __init__(self, provider: Any, endpoint: str, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.endpoint = endpoint
        self.timeout = timeout
        self.w3 = AsyncWeb3(provider, middleware=[])
        self._connected = False

    @property
    def provider(self) -> Any:
        return self.w3.provider

    @property
    def is_persistent(self) -> bool:
        return isinstance(self.provider, PersistentConnectionProvider)

    async def _connect(self) -> None:
        if self.is_persistent and not self._connected:
            await self.provider.connect()
            self._connected = True

    async def _run(self, method: str, call: Callable[[], Awaitable[Any]], timeout: float | None) -> Any:
        timeout = timeout if timeout is not None else self.timeout

        async def connected_call() -> Any:
            await self._connect()
            return await call()

        logger.debug(f"RPC {method} -> {self.endpoint}")
        try:
            return await asyncio.wait_for(connected_call(), timeout=timeout)
        except (asyncio.TimeoutError, TimeExhausted):
            raise RpcTimeoutError(f"RPC request timeout after {timeout}s: {method}") from None
        except ProviderConnectionError as e:
            raise NetworkError(f"Failed to fetch {self.endpoint}: {e}") from e
        except Web3Exception as e:
            raise _rpc_error(method, e) from e
        except aiohttp.ClientResponseError as e:
            raise RpcError(e.status, f"HTTP {e.status}: {e.message}") from e
        except FhevmError:
            raise
        except Exception as e:
            if not is_network_error(e):
                raise
            raise NetworkError(f"Failed to fetch {self.endpoint}: {e}") from e

    async def chain_id(self, timeout: float | None = None) -> int:
        return await self._run("eth_chainId", lambda: self.w3.eth.chain_id, timeout)

    async def send(self, method: str, params: list[Any] | None = None, timeout: float | None = None) -> Any:
        return await self._run(
            method, lambda: self.w3.manager.coro_request(method, params or []), timeout
        )

    async def close(self) -> None:
        if self.is_persistent:
            if self._connected:
                self._connected = False
                await self.provider.disconnect()
        elif isinstance(self.provider, AsyncHTTPProvider):
            await self.provider.disconnect()

    async def __aenter__(self) -> RpcClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()


def open_rpc_client(provider_or_url: Any, timeout: float = DEFAULT_TIMEOUT) -> RpcClient:
    """Return a throwaway client for an RPC URL (picked by scheme) or an EIP-1193 handle."""
    if not isinstance(provider_or_url, str):
        return RpcClient(
            Eip1193AsyncProvider(provider_or_url), type(provider_or_url).__name__, timeout=timeout
        )
    if provider_or_url.startswith(("ws://", "wss://")):
        provider = WebSocketProvider(provider_or_url, request_timeout=timeout)
    else:
        provider = AsyncHTTPProvider(provider_or_url, request_kwargs={"timeout": timeout})
    return RpcClient(provider, provider_or_url, timeout=timeout)
