"""Type definitions for the FHEVM session engine."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, Union, runtime_checkable


class SessionStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class RelayerPhase(str, Enum):
    """Progress notifications emitted while an instance is being built."""

    SDK_LOADING = "sdk-loading"
    SDK_LOADED = "sdk-loaded"
    SDK_INITIALIZING = "sdk-initializing"
    SDK_INITIALIZED = "sdk-initialized"
    CREATING = "creating"


@dataclass(frozen=True)
class ResolutionResult:
    is_mock: bool
    chain_id: int
    rpc_url: str | None = None

    def __post_init__(self) -> None:
        if self.is_mock and not self.rpc_url:
            raise ValueError("mock resolution requires an rpc_url")


@dataclass(frozen=True)
class RelayerMetadata:
    """Verifying-contract addresses reported by a development node."""

    acl_address: str
    input_verifier_address: str
    kms_verifier_address: str


@dataclass(frozen=True)
class PublicKeyData:
    public_key: bytes
    public_params: bytes


@dataclass(frozen=True)
class EncryptedInput:
    handles: list[bytes]
    input_proof: bytes


@runtime_checkable
class Eip1193Provider(Protocol):
    def request(self, args: dict[str, Any]) -> Any: ...


@runtime_checkable
class FhevmInstance(Protocol):
    """Capability object produced by a successful build."""

    def encrypt(self, contract_address: str, user_address: str, values: Sequence[Any]) -> Any: ...

    def user_decrypt(
        self,
        pairs: Sequence[tuple[Any, str]],
        private_key: str,
        public_key: str,
        signature: str,
        contract_addresses: Sequence[str],
        user_address: str,
        start_timestamp: int,
        duration_days: int,
    ) -> Any: ...

    def get_public_key(self) -> bytes | None: ...

    def get_public_params(self, size: int) -> bytes | None: ...

    def generate_keypair(self) -> dict[str, str]: ...

    def create_eip712(
        self,
        public_key: str,
        contract_addresses: Sequence[str],
        start_timestamp: int,
        duration_days: int,
    ) -> dict[str, Any]: ...


ProviderOrUrl = Union[str, Eip1193Provider]
MockChains = Mapping[int, str]
PhaseCallback = Callable[[RelayerPhase], None]
StatusCallback = Callable[[SessionStatus], None]
