"""web3 provider over an EIP-1193 style ``request({"method", "params"})`` object."""

from __future__ import annotations

import asyncio
import inspect
import itertools
from typing import Any

from web3.providers import AsyncBaseProvider
from web3.types import RPCEndpoint, RPCResponse


class Eip1193AsyncProvider(AsyncBaseProvider):
    """Lets ``AsyncWeb3`` talk through a wallet-style provider handle.

    The handle's ``request`` may be sync or async. Errors it raises are
    passed through unchanged.
    """

    def __init__(self, provider: Any, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.provider = provider
        self._ids = itertools.count(1)

    async def _request(self, args: dict[str, Any]) -> Any:
        request = self.provider.request
        if inspect.iscoroutinefunction(request):
            return await request(args)
        result = await asyncio.to_thread(request, args)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def make_request(self, method: RPCEndpoint, params: Any) -> RPCResponse:
        result = await self._request({"method": method, "params": list(params or [])})
        return {"jsonrpc": "2.0", "id": next(self._ids), "result": result}

    async def is_connected(self, show_traceback: bool = False) -> bool:
        return True
