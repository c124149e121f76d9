"""Lightweight FHEVM instance for local development nodes.

The mock never performs homomorphic encryption. It issues handles that
carry the same layout as real ones (hash prefix, index, chain id, type,
version) and keeps the cleartexts in memory so that ``user_decrypt`` can
answer for handles it produced itself.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import time
from collections.abc import Sequence
from typing import Any

from nacl.encoding import HexEncoder
from nacl.public import PrivateKey

from ..exceptions import FhevmError, InvalidAddressError
from ..types import EncryptedInput, RelayerMetadata
from .metadata import is_address

logger = logging.getLogger(__name__)

GATEWAY_CHAIN_ID = 55815
HANDLE_VERSION = 0

# FHE type codes as used in handle byte 30
TYPE_EBOOL = 0
TYPE_EUINT64 = 5
TYPE_EADDRESS = 7
TYPE_EUINT256 = 8

SECONDS_PER_DAY = 86400


def _address_bytes(address: str) -> bytes:
    if not is_address(address):
        raise InvalidAddressError(f"Invalid address: {address}")
    return bytes.fromhex(address[2:])


def _type_code(value: Any) -> int:
    if isinstance(value, bool):
        return TYPE_EBOOL
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"Cannot encrypt negative value {value}")
        return TYPE_EUINT64 if value < 2**64 else TYPE_EUINT256
    if is_address(value):
        return TYPE_EADDRESS
    raise TypeError(f"Unsupported value for encryption: {value!r}")


def _handle_bytes(handle: Any) -> bytes:
    if isinstance(handle, (bytes, bytearray)):
        return bytes(handle)
    if isinstance(handle, str):
        return bytes.fromhex(handle[2:] if handle.startswith("0x") else handle)
    raise TypeError(f"Unsupported handle: {handle!r}")


class MockFhevmInstance:
    def __init__(
        self,
        rpc_url: str,
        chain_id: int,
        metadata: RelayerMetadata,
        gateway_chain_id: int = GATEWAY_CHAIN_ID,
    ) -> None:
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self.metadata = metadata
        self.gateway_chain_id = gateway_chain_id
        self._cleartexts: dict[bytes, Any] = {}

    def encrypt(self, contract_address: str, user_address: str, values: Sequence[Any]) -> EncryptedInput:
        """Issue one handle per value, bound to contract, user and chain."""
        if len(values) > 255:
            raise ValueError("At most 255 values can be encrypted in one input")
        contract = _address_bytes(contract_address)
        user = _address_bytes(user_address)
        acl = _address_bytes(self.metadata.acl_address)
        nonce = secrets.token_bytes(32)

        handles = []
        for index, value in enumerate(values):
            digest = hashlib.sha3_256(
                nonce + acl + contract + user + self.chain_id.to_bytes(32, "big") + bytes([index])
            ).digest()
            handle = (
                digest[:21]
                + bytes([index])
                + self.chain_id.to_bytes(8, "big")
                + bytes([_type_code(value), HANDLE_VERSION])
            )
            self._cleartexts[handle] = value
            handles.append(handle)

        proof = bytes([len(handles)]) + b"".join(handles) + hashlib.sha3_256(nonce).digest()
        return EncryptedInput(handles=handles, input_proof=proof)

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
    ) -> dict[str, Any]:
        _address_bytes(user_address)
        if not signature:
            raise FhevmError("User decryption requires an EIP-712 signature")
        if not private_key or not public_key:
            raise FhevmError("User decryption requires a keypair")

        now = int(time.time())
        if start_timestamp > now:
            raise FhevmError("User decryption request is not valid yet")
        if now >= start_timestamp + duration_days * SECONDS_PER_DAY:
            raise FhevmError("User decryption request has expired")

        allowed = {address.lower() for address in contract_addresses}
        results: dict[str, Any] = {}
        for handle, contract_address in pairs:
            if contract_address.lower() not in allowed:
                raise FhevmError(f"Contract {contract_address} is not part of the signed request")
            raw = _handle_bytes(handle)
            if raw not in self._cleartexts:
                raise FhevmError(f"Unknown handle 0x{raw.hex()}")
            results["0x" + raw.hex()] = self._cleartexts[raw]
        return results

    def get_public_key(self) -> bytes | None:
        return None

    def get_public_params(self, size: int) -> bytes | None:
        return None

    def generate_keypair(self) -> dict[str, str]:
        private_key = PrivateKey.generate()
        return {
            "publicKey": private_key.public_key.encode(encoder=HexEncoder).decode("ascii"),
            "privateKey": private_key.encode(encoder=HexEncoder).decode("ascii"),
        }

    def create_eip712(
        self,
        public_key: str,
        contract_addresses: Sequence[str],
        start_timestamp: int,
        duration_days: int,
    ) -> dict[str, Any]:
        """Typed data the user signs to authorize decryption."""
        for address in contract_addresses:
            _address_bytes(address)
        key = public_key if public_key.startswith("0x") else "0x" + public_key
        return {
            "types": {
                "EIP712Domain": [
                    {"name": "name", "type": "string"},
                    {"name": "version", "type": "string"},
                    {"name": "chainId", "type": "uint256"},
                    {"name": "verifyingContract", "type": "address"},
                ],
                "UserDecryptRequestVerification": [
                    {"name": "publicKey", "type": "bytes"},
                    {"name": "contractAddresses", "type": "address[]"},
                    {"name": "startTimestamp", "type": "uint256"},
                    {"name": "durationDays", "type": "uint256"},
                ],
            },
            "primaryType": "UserDecryptRequestVerification",
            "domain": {
                "name": "Decryption",
                "version": "1",
                "chainId": self.gateway_chain_id,
                "verifyingContract": self.metadata.kms_verifier_address,
            },
            "message": {
                "publicKey": key,
                "contractAddresses": list(contract_addresses),
                "startTimestamp": str(start_timestamp),
                "durationDays": str(duration_days),
            },
        }


async def create_mock_instance(rpc_url: str, chain_id: int, metadata: RelayerMetadata) -> MockFhevmInstance:
    logger.info(f"🔧 MOCK: creating FHEVM mock instance for chain {chain_id} at {rpc_url}")
    return MockFhevmInstance(rpc_url, chain_id, metadata)
