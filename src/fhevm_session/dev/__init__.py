"""Support for local development (mock) FHEVM nodes."""

from .metadata import is_address, parse_relayer_metadata, try_fetch_relayer_metadata
from .mock_instance import MockFhevmInstance, create_mock_instance

__all__ = [
    "is_address",
    "parse_relayer_metadata",
    "try_fetch_relayer_metadata",
    "MockFhevmInstance",
    "create_mock_instance",
]
