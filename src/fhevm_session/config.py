"""Configuration settings for the FHEVM session engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_MOCK_CHAINS: dict[int, str] = {31337: "http://localhost:8545"}
PUBLIC_KEY_STORAGE_KEY = "fhevm-public-key-storage"


def parse_mock_chains(raw: str) -> dict[int, str]:
    """Parse ``"31337=http://localhost:8545,1337=http://127.0.0.1:7545"``."""
    chains: dict[int, str] = {}
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        chain_id, sep, url = item.partition("=")
        if not sep or not url.strip():
            raise ValueError(f"Invalid mock chain entry: {item!r}")
        chains[int(chain_id.strip())] = url.strip()
    return chains


@dataclass
class Settings:
    """Settings for endpoint resolution, SDK bootstrap and key caching.

    Defaults work for a local Hardhat node plus the Sepolia relayer.
    Use ``Settings.from_env()`` to pick up ``FHEVM_*`` overrides.
    """

    rpc_timeout: float = 10.0
    mock_chains: dict[int, str] = field(default_factory=dict)
    public_key_storage_key: str = PUBLIC_KEY_STORAGE_KEY
    storage_url: str | None = None
    sdk_module: str = "fhevm_relayer_sdk"
    sdk_config_name: str = "SEPOLIA_CONFIG"
    public_params_size: int = 2048
    mock_node_marker: str = "hardhat"

    @classmethod
    def from_env(cls) -> Settings:
        settings = cls()
        timeout = os.getenv("FHEVM_RPC_TIMEOUT")
        if timeout:
            settings.rpc_timeout = float(timeout)
        mock_chains = os.getenv("FHEVM_MOCK_CHAINS")
        if mock_chains:
            settings.mock_chains = parse_mock_chains(mock_chains)
        settings.public_key_storage_key = os.getenv(
            "FHEVM_PUBLIC_KEY_STORAGE_KEY", settings.public_key_storage_key
        )
        settings.storage_url = os.getenv("FHEVM_STORAGE_URL") or None
        settings.sdk_module = os.getenv("FHEVM_SDK_MODULE", settings.sdk_module)
        settings.sdk_config_name = os.getenv("FHEVM_SDK_CONFIG", settings.sdk_config_name)
        return settings
