"""Relayer metadata lookup for local Hardhat FHEVM nodes."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from typing import Any

from ..client.rpc import DEFAULT_TIMEOUT, open_rpc_client
from ..exceptions import is_network_error
from ..types import RelayerMetadata

logger = logging.getLogger(__name__)

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")

_METADATA_FIELDS = {
    "ACLAddress": "acl_address",
    "InputVerifierAddress": "input_verifier_address",
    "KMSVerifierAddress": "kms_verifier_address",
}


def is_address(value: Any) -> bool:
    return isinstance(value, str) and ADDRESS_RE.match(value) is not None


async def _rpc_call(
    rpc_url: str,
    method: str,
    timeout: float,
    client_factory: Callable[..., Any],
) -> Any:
    async with client_factory(rpc_url, timeout=timeout) as rpc:
        return await rpc.send(method, [], timeout=timeout)


def parse_relayer_metadata(payload: Any) -> RelayerMetadata | None:
    """Validate an ``fhevm_relayer_metadata`` result."""
    if not isinstance(payload, Mapping):
        return None
    values = {}
    for key, attr in _METADATA_FIELDS.items():
        value = payload.get(key)
        if not is_address(value):
            return None
        values[attr] = value
    return RelayerMetadata(**values)


async def try_fetch_relayer_metadata(
    rpc_url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    marker: str = "hardhat",
    client_factory: Callable[..., Any] | None = None,
) -> RelayerMetadata | None:
    """Return the node's verifying-contract addresses, or None.

    None means "use the production SDK path": the node is not the expected
    development node, is unreachable, or reports incomplete metadata.
    """
    client_factory = client_factory or open_rpc_client
    try:
        version = await _rpc_call(rpc_url, "web3_clientVersion", timeout, client_factory)
    except Exception as e:
        logger.debug(
            f"Could not connect to {rpc_url} - this is normal if using a different network "
            f"or if the node is not running ({e})"
        )
        return None

    if not isinstance(version, str) or marker.lower() not in version.lower():
        logger.debug(f"Node at {rpc_url} is not a {marker} node: {version!r}")
        return None

    try:
        payload = await _rpc_call(rpc_url, "fhevm_relayer_metadata", timeout, client_factory)
    except Exception as e:
        if is_network_error(e):
            logger.debug(f"Could not fetch relayer metadata from {rpc_url} ({e})")
        else:
            logger.debug(f"Relayer metadata not available from {rpc_url} ({e})")
        return None

    metadata = parse_relayer_metadata(payload)
    if metadata is None:
        logger.debug(f"Relayer metadata from {rpc_url} is incomplete: {payload!r}")
    return metadata
