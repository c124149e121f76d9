"""Endpoint resolution: chain id, mock detection and RPC URL."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlparse

from .client.rpc import DEFAULT_TIMEOUT, open_rpc_client
from .config import DEFAULT_MOCK_CHAINS
from .exceptions import ChainIdUnavailable, is_network_error
from .types import ResolutionResult

logger = logging.getLogger(__name__)

LOCAL_HOSTS = ("localhost", "127.0.0.1")


def merge_mock_chains(mock_chains: Mapping[int, str] | None = None) -> dict[int, str]:
    """Built-in 31337 entry, overridden by caller entries."""
    merged = dict(DEFAULT_MOCK_CHAINS)
    if mock_chains:
        merged.update({int(chain_id): url for chain_id, url in mock_chains.items()})
    return merged


def _strip_scheme(url: str) -> str:
    for scheme in ("http://", "https://", "ws://", "wss://"):
        if url.startswith(scheme):
            return url[len(scheme):]
    return url


def _is_local_url(url: str) -> bool:
    return urlparse(url).hostname in LOCAL_HOSTS


def match_mock_url(url: str, mock_chains: Mapping[int, str]) -> int | None:
    """Find the mock chain id whose URL equals ``url`` or whose host part it contains."""
    for chain_id, mock_url in mock_chains.items():
        if url == mock_url or _strip_scheme(mock_url) in url:
            return chain_id
    return None


async def get_chain_id(provider_or_url: Any, timeout: float = DEFAULT_TIMEOUT) -> int:
    """Ask the endpoint for ``eth_chainId``; network failures become ``ChainIdUnavailable``."""
    try:
        async with open_rpc_client(provider_or_url, timeout=timeout) as rpc:
            return await rpc.chain_id(timeout=timeout)
    except Exception as e:
        if not is_network_error(e):
            raise
        raise ChainIdUnavailable() from e


async def resolve(
    provider_or_url: Any,
    mock_chains: Mapping[int, str] | None = None,
    *,
    timeout: float = DEFAULT_TIMEOUT,
) -> ResolutionResult:
    """Resolve a provider handle or RPC URL into a ``ResolutionResult``."""
    chains = merge_mock_chains(mock_chains)
    rpc_url = provider_or_url if isinstance(provider_or_url, str) else None

    try:
        chain_id = await get_chain_id(provider_or_url, timeout=timeout)
    except Exception as e:
        if rpc_url is None or not is_network_error(e):
            raise

        matched = match_mock_url(rpc_url, chains)
        if matched is not None:
            logger.debug(
                f"Using mock chain {matched} for {rpc_url} (chainId fetch failed but URL matches)"
            )
            return ResolutionResult(is_mock=True, chain_id=matched, rpc_url=rpc_url)
        if _is_local_url(rpc_url):
            logger.debug(f"Assuming localhost URL {rpc_url} is mock chain 31337")
            return ResolutionResult(is_mock=True, chain_id=31337, rpc_url=rpc_url)
        raise

    if chain_id in chains:
        return ResolutionResult(is_mock=True, chain_id=chain_id, rpc_url=rpc_url or chains[chain_id])
    return ResolutionResult(is_mock=False, chain_id=chain_id, rpc_url=rpc_url)
