"""Tests for the instance builder."""

from unittest.mock import AsyncMock, patch

import pytest

from fhevm_session.builder import InstanceBuilder, create_instance
from fhevm_session.cancellation import CancellationToken
from fhevm_session.dev.mock_instance import MockFhevmInstance
from fhevm_session.exceptions import (
    AbortError,
    ChainIdUnavailable,
    InvalidAddressError,
    NetworkError,
    RpcError,
    SDKInitError,
)
from fhevm_session.sdk.lifecycle import SdkLifecycle
from fhevm_session.storage.kv import GenericStringStorage, MemoryStorageMedium
from fhevm_session.storage.public_key import PublicKeyStorage
from fhevm_session.types import RelayerMetadata, RelayerPhase

from fakes import (
    ACL_ADDRESS,
    INPUT_VERIFIER_ADDRESS,
    KMS_VERIFIER_ADDRESS,
    RELAYER_METADATA,
    FakeInstance,
    FakeProvider,
    FakeRelayerSDK,
    rpc_factory,
)

METADATA = RelayerMetadata(ACL_ADDRESS, INPUT_VERIFIER_ADDRESS, KMS_VERIFIER_ADDRESS)


@pytest.fixture
def sdk():
    return FakeRelayerSDK()


@pytest.fixture
def lifecycle(sdk):
    return SdkLifecycle(loader=lambda: sdk)


@pytest.fixture
def key_storage():
    return PublicKeyStorage(GenericStringStorage("fhevm-public-key-storage", MemoryStorageMedium()))


@pytest.fixture
def builder(lifecycle, key_storage):
    return InstanceBuilder(lifecycle=lifecycle, key_storage=key_storage)


class TestProductionPath:
    """Tests for builds through the relayer SDK."""

    @pytest.mark.asyncio
    async def test_first_build_bootstraps_sdk_and_caches_key(self, builder, sdk, key_storage):
        provider = FakeProvider(chain_id="0xaa36a7")
        phases = []

        instance = await builder.build(provider, on_phase=phases.append)

        assert isinstance(instance, FakeInstance)
        assert phases == [
            RelayerPhase.SDK_LOADING,
            RelayerPhase.SDK_LOADED,
            RelayerPhase.SDK_INITIALIZING,
            RelayerPhase.SDK_INITIALIZED,
            RelayerPhase.CREATING,
        ]
        config = sdk.created_configs[0]
        assert config["network"] is provider
        assert config["acl_contract_address"] == ACL_ADDRESS
        # Nothing cached yet on the first build
        assert config["public_key"] is None
        assert config["public_params"] is None
        assert instance.params_size == 2048

        cached = await key_storage.get(ACL_ADDRESS)
        assert cached.public_key == b"\x01\x02\x03"
        assert cached.public_params == b"\x04\x05\x06\x07"

    @pytest.mark.asyncio
    async def test_second_build_reuses_cache_and_skips_bootstrap(self, builder, sdk, key_storage):
        await key_storage.set(ACL_ADDRESS, b"\xaa", b"\xbb")
        await builder.build(FakeProvider())
        phases = []

        await builder.build(FakeProvider(), on_phase=phases.append)

        assert phases == [RelayerPhase.CREATING]
        assert sdk.init_calls == 1
        assert sdk.created_configs[0]["public_key"] == b"\xaa"
        assert sdk.created_configs[0]["public_params"] == b"\xbb"

    @pytest.mark.asyncio
    async def test_corrupt_cache_entry_is_a_miss(self, builder, sdk, key_storage):
        await key_storage.storage.set(ACL_ADDRESS.lower(), '{"publicKey": [1]}')

        await builder.build(FakeProvider())

        assert sdk.created_configs[0]["public_key"] is None
        # The entry is refreshed from the new instance
        assert (await key_storage.get(ACL_ADDRESS)).public_key == b"\x01\x02\x03"

    @pytest.mark.asyncio
    async def test_invalid_acl_address(self, key_storage):
        lifecycle = SdkLifecycle(loader=lambda: FakeRelayerSDK(acl_address="0xnot-an-address"))
        builder = InstanceBuilder(lifecycle=lifecycle, key_storage=key_storage)

        with pytest.raises(InvalidAddressError):
            await builder.build(FakeProvider())

    @pytest.mark.asyncio
    async def test_init_failure_propagates(self, key_storage):
        lifecycle = SdkLifecycle(loader=lambda: FakeRelayerSDK(init_result=False))
        builder = InstanceBuilder(lifecycle=lifecycle, key_storage=key_storage)

        with pytest.raises(SDKInitError):
            await builder.build(FakeProvider())

    @pytest.mark.asyncio
    async def test_chain_id_failure_downgrades_to_sdk_path(self, builder, sdk):
        """Test a provider failing eth_chainId still gets an SDK instance."""
        provider = FakeProvider(error=NetworkError("Failed to fetch"))

        instance = await builder.build(provider)

        assert isinstance(instance, FakeInstance)
        assert sdk.created_configs[0]["network"] is provider

    @pytest.mark.asyncio
    async def test_unreachable_remote_url_downgrades_to_sdk_path(self, builder, sdk):
        factory, _ = rpc_factory({"eth_chainId": ChainIdUnavailable()})

        with patch("fhevm_session.resolver.open_rpc_client", factory):
            await builder.build("https://rpc.sepolia.example")

        assert sdk.created_configs[0]["network"] == "https://rpc.sepolia.example"

    @pytest.mark.asyncio
    async def test_protocol_error_aborts_build(self, builder, sdk):
        with pytest.raises(RpcError):
            await builder.build(FakeProvider(error=RpcError(4100, "Unauthorized")))
        assert sdk.init_calls == 0


class TestMockPath:
    """Tests for builds against local development nodes."""

    @pytest.mark.asyncio
    async def test_metadata_found_uses_mock_instance(self, builder, lifecycle, key_storage):
        """Test the fast path skips SDK bootstrap and key caching."""
        factory, _ = rpc_factory(
            {
                "eth_chainId": "0x7a69",
                "web3_clientVersion": "HardhatNetwork/2.22.0",
                "fhevm_relayer_metadata": RELAYER_METADATA,
            }
        )
        phases = []

        with patch("fhevm_session.resolver.open_rpc_client", factory), patch(
            "fhevm_session.dev.metadata.open_rpc_client", factory
        ):
            instance = await builder.build("http://localhost:8545", on_phase=phases.append)

        assert isinstance(instance, MockFhevmInstance)
        assert instance.chain_id == 31337
        assert instance.rpc_url == "http://localhost:8545"
        assert instance.metadata == METADATA
        assert phases == [RelayerPhase.CREATING]
        assert not lifecycle.is_loaded
        assert await key_storage.storage.get(ACL_ADDRESS.lower()) is None

    @pytest.mark.asyncio
    async def test_hardhat_chain_with_geth_node_falls_through(self, builder, sdk):
        """Test chain 31337 served by a non-Hardhat node takes the SDK path."""
        provider = FakeProvider(chain_id="0x7a69")
        factory, clients = rpc_factory({"web3_clientVersion": "Geth/v1.13.14-stable"})

        with patch("fhevm_session.dev.metadata.open_rpc_client", factory):
            instance = await builder.build(provider)

        assert isinstance(instance, FakeInstance)
        # Queried the default mapped URL, never asked for metadata
        assert clients[0].url == "http://localhost:8545"
        assert [c.calls for c in clients] == [["web3_clientVersion"]]
        assert sdk.created_configs[0]["network"] is provider

    @pytest.mark.asyncio
    async def test_settings_mock_chains_are_merged(self, lifecycle, key_storage):
        from fhevm_session.config import Settings

        settings = Settings(mock_chains={1337: "http://devbox:7545"})
        builder = InstanceBuilder(lifecycle=lifecycle, key_storage=key_storage, settings=settings)
        fetch_metadata = AsyncMock(return_value=METADATA)

        with patch("fhevm_session.builder.try_fetch_relayer_metadata", fetch_metadata):
            instance = await builder.build(FakeProvider(chain_id="0x539"))

        assert isinstance(instance, MockFhevmInstance)
        assert fetch_metadata.call_args[0][0] == "http://devbox:7545"


class TestCancellation:
    """Tests for cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, builder, lifecycle, key_storage):
        token = CancellationToken()
        token.cancel()
        phases = []

        with pytest.raises(AbortError):
            await builder.build(FakeProvider(), token=token, on_phase=phases.append)

        assert phases == []
        assert not lifecycle.is_loaded
        assert await key_storage.storage.get(ACL_ADDRESS.lower()) is None

    @pytest.mark.asyncio
    async def test_cancelled_during_sdk_load(self, key_storage):
        """Test no phase is emitted and nothing cached after cancellation."""
        token = CancellationToken()
        sdk = FakeRelayerSDK()

        def loader():
            token.cancel()
            return sdk

        builder = InstanceBuilder(lifecycle=SdkLifecycle(loader=loader), key_storage=key_storage)
        phases = []

        with pytest.raises(AbortError):
            await builder.build(FakeProvider(), token=token, on_phase=phases.append)

        assert phases == [RelayerPhase.SDK_LOADING]
        assert sdk.init_calls == 0
        assert await key_storage.storage.get(ACL_ADDRESS.lower()) is None

    @pytest.mark.asyncio
    async def test_cancelled_during_create_skips_cache_write(self, key_storage):
        token = CancellationToken()
        sdk = FakeRelayerSDK()
        real_create = sdk.create_instance

        def create(config):
            token.cancel()
            return real_create(config)

        sdk.create_instance = create
        builder = InstanceBuilder(lifecycle=SdkLifecycle(loader=lambda: sdk), key_storage=key_storage)

        with pytest.raises(AbortError):
            await builder.build(FakeProvider(), token=token)

        assert await key_storage.storage.get(ACL_ADDRESS.lower()) is None

    @pytest.mark.asyncio
    async def test_cancelled_during_mock_creation(self, builder):
        token = CancellationToken()

        async def create_and_cancel(rpc_url, chain_id, metadata):
            token.cancel()
            return object()

        with patch(
            "fhevm_session.builder.try_fetch_relayer_metadata", AsyncMock(return_value=METADATA)
        ), patch("fhevm_session.builder.create_mock_instance", create_and_cancel):
            with pytest.raises(AbortError):
                await builder.build(FakeProvider(chain_id="0x7a69"), token=token)


@pytest.mark.asyncio
async def test_create_instance_helper(lifecycle, key_storage, sdk):
    instance = await create_instance(
        FakeProvider(), lifecycle=lifecycle, key_storage=key_storage
    )

    assert isinstance(instance, FakeInstance)
    assert sdk.init_calls == 1
