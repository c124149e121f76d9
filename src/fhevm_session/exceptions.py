"""Exception types for the FHEVM session engine."""

from __future__ import annotations

import asyncio
import errno

import aiohttp
from web3.exceptions import ProviderConnectionError
from websockets.exceptions import InvalidHandshake, InvalidURI


class FhevmError(Exception):
    """Base exception for the session engine."""


class NetworkError(FhevmError):
    """Endpoint could not be reached."""


class ChainIdUnavailable(NetworkError):
    """Chain id could not be determined and no URL heuristic matched."""

    def __init__(self, message: str = "CHAIN_ID_UNAVAILABLE") -> None:
        super().__init__(message)


class RpcError(FhevmError):
    """JSON-RPC error object returned by the node."""

    def __init__(self, code: int | None, message: str, data: object = None) -> None:
        super().__init__(f"RPC error {code}: {message}" if code is not None else message)
        self.code = code
        self.rpc_message = message
        self.data = data


class RpcTimeoutError(FhevmError):
    """RPC call exceeded its time box."""


class SDKLoadError(FhevmError):
    """Relayer SDK object never became available."""


class SDKInitError(FhevmError):
    """Relayer SDK one-time initialization failed."""


class InvalidAddressError(FhevmError):
    """Value is not a 0x-prefixed 20-byte hex address."""


class PublicKeyStorageError(FhevmError):
    """Cached public key material is unusable."""


class NotFoundError(PublicKeyStorageError):
    """No cached public key for the ACL address."""


class CorruptDataError(PublicKeyStorageError):
    """Cached public key entry is structurally invalid."""


class AbortError(FhevmError):
    """Operation was cancelled and its result must be discarded."""

    def __init__(self, message: str = "FHEVM operation aborted") -> None:
        super().__init__(message)


class FhevmInitializationError(FhevmError):
    """Session build failure surfaced by the controller.

    ``name`` keeps the class name of the underlying failure.
    """

    def __init__(self, message: str, name: str = "FHEVMInitializationError") -> None:
        super().__init__(message)
        self.name = name


def is_network_error(exc: BaseException) -> bool:
    """Return True when ``exc`` is a transport-level failure rather than a protocol one."""
    if isinstance(exc, (RpcError, RpcTimeoutError, AbortError, asyncio.TimeoutError, TimeoutError)):
        return False
    if isinstance(
        exc,
        (
            NetworkError,
            ProviderConnectionError,
            aiohttp.ClientConnectionError,
            ConnectionError,
            InvalidHandshake,
            InvalidURI,
        ),
    ):
        return True
    if isinstance(exc, OSError) and exc.errno in (
        errno.ECONNREFUSED,
        errno.ECONNRESET,
        errno.EHOSTUNREACH,
        errno.ENETUNREACH,
    ):
        return True
    return "fetch" in str(exc)
