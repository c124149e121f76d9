"""Builds a ready FHEVM instance for a provider or RPC URL."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Mapping
from typing import Any

from .cancellation import CancellationToken
from .config import Settings
from .dev.metadata import is_address, try_fetch_relayer_metadata
from .dev.mock_instance import create_mock_instance
from .exceptions import InvalidAddressError, PublicKeyStorageError, is_network_error
from .resolver import resolve
from .sdk.lifecycle import SdkLifecycle, get_default_lifecycle
from .storage.kv import GenericStringStorage
from .storage.public_key import PublicKeyStorage
from .types import FhevmInstance, PhaseCallback, RelayerPhase, ResolutionResult

logger = logging.getLogger(__name__)


class InstanceBuilder:
    """Resolves the endpoint, bootstraps the SDK and creates the instance.

    Mock endpoints that expose relayer metadata get a ``MockFhevmInstance``
    without touching the SDK or the key cache. Everything else goes
    through the relayer SDK with cached public key material.
    """

    def __init__(
        self,
        lifecycle: SdkLifecycle | None = None,
        key_storage: PublicKeyStorage | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.lifecycle = lifecycle or get_default_lifecycle()
        if key_storage is None:
            key_storage = PublicKeyStorage(GenericStringStorage(self.settings.public_key_storage_key))
        self.key_storage = key_storage

    async def _resolve(self, provider: Any, mock_chains: Mapping[int, str] | None) -> ResolutionResult:
        chains = dict(self.settings.mock_chains)
        chains.update(mock_chains or {})
        try:
            return await resolve(provider, chains, timeout=self.settings.rpc_timeout)
        except Exception as e:
            if not is_network_error(e):
                raise
            # The SDK may still reach the provider even if eth_chainId failed
            logger.info(f"Chain id unavailable ({e}), continuing with the relayer SDK")
            return ResolutionResult(
                is_mock=False,
                chain_id=0,
                rpc_url=provider if isinstance(provider, str) else None,
            )

    async def _load_public_key(self, acl_address: str) -> tuple[bytes | None, bytes | None]:
        try:
            cached = await self.key_storage.get(acl_address)
        except PublicKeyStorageError as e:
            logger.debug(f"Public key cache miss for {acl_address}: {e}")
            return None, None
        return cached.public_key, cached.public_params

    async def build(
        self,
        provider: Any,
        mock_chains: Mapping[int, str] | None = None,
        token: CancellationToken | None = None,
        on_phase: PhaseCallback | None = None,
    ) -> FhevmInstance:
        token = token or CancellationToken()

        def notify(phase: RelayerPhase) -> None:
            if on_phase is not None and not token.cancelled:
                on_phase(phase)

        resolved = await self._resolve(provider, mock_chains)

        if resolved.is_mock and resolved.rpc_url:
            logger.info(
                f"🔧 MOCK: detected mock chain {resolved.chain_id}, "
                f"fetching relayer metadata from {resolved.rpc_url}"
            )
            metadata = await try_fetch_relayer_metadata(
                resolved.rpc_url,
                timeout=self.settings.rpc_timeout,
                marker=self.settings.mock_node_marker,
            )
            if metadata:
                logger.info(f"🔧 MOCK: relayer metadata found, using mock instance: {metadata}")
                token.raise_if_cancelled()
                notify(RelayerPhase.CREATING)
                instance = await create_mock_instance(resolved.rpc_url, resolved.chain_id, metadata)
                token.raise_if_cancelled()
                return instance
            logger.warning(
                f"Relayer metadata not found on {resolved.rpc_url}; falling back to the relayer SDK. "
                f"This may fail if the node does not run with FHEVM support."
            )

        token.raise_if_cancelled()

        if not self.lifecycle.is_loaded:
            notify(RelayerPhase.SDK_LOADING)
            await self.lifecycle.load()
            token.raise_if_cancelled()
            notify(RelayerPhase.SDK_LOADED)

        if not self.lifecycle.initialized:
            notify(RelayerPhase.SDK_INITIALIZING)
            await self.lifecycle.init()
            token.raise_if_cancelled()
            notify(RelayerPhase.SDK_INITIALIZED)

        config = self.lifecycle.production_config()
        acl_address = config.get("acl_contract_address")
        if not is_address(acl_address):
            raise InvalidAddressError(f"Invalid address: {acl_address}")

        public_key, public_params = await self._load_public_key(acl_address)
        token.raise_if_cancelled()

        config.update(network=provider, public_key=public_key, public_params=public_params)

        notify(RelayerPhase.CREATING)
        instance = self.lifecycle.sdk.create_instance(config)
        if inspect.isawaitable(instance):
            instance = await instance
        token.raise_if_cancelled()

        new_key = instance.get_public_key()
        new_params = instance.get_public_params(self.settings.public_params_size)
        if new_key and new_params:
            await self.key_storage.set(acl_address, new_key, new_params)

        token.raise_if_cancelled()
        return instance


async def create_instance(
    provider: Any,
    *,
    mock_chains: Mapping[int, str] | None = None,
    token: CancellationToken | None = None,
    on_phase: PhaseCallback | None = None,
    lifecycle: SdkLifecycle | None = None,
    key_storage: PublicKeyStorage | None = None,
    settings: Settings | None = None,
) -> FhevmInstance:
    """Build an FHEVM instance for ``provider`` (an EIP-1193 provider or RPC URL)."""
    builder = InstanceBuilder(lifecycle=lifecycle, key_storage=key_storage, settings=settings)
    return await builder.build(provider, mock_chains=mock_chains, token=token, on_phase=on_phase)
