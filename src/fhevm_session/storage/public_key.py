"""Public key cache keyed by ACL contract address."""

from __future__ import annotations

import json
from typing import Any

from ..config import PUBLIC_KEY_STORAGE_KEY
from ..exceptions import CorruptDataError, NotFoundError
from ..types import PublicKeyData
from .kv import GenericStringStorage


def _to_bytes(value: Any) -> bytes:
    # Typed arrays serialize either as a list or as {"0": b0, "1": b1, ...}
    if isinstance(value, dict):
        value = [value[k] for k in sorted(value, key=int)]
    if not isinstance(value, list) or not value:
        raise ValueError("expected a non-empty numeric array")
    return bytes(value)


class PublicKeyStorage:
    """Typed view over the ``fhevm-public-key-storage`` cache namespace."""

    def __init__(self, storage: GenericStringStorage | None = None) -> None:
        self.storage = storage if storage is not None else GenericStringStorage(PUBLIC_KEY_STORAGE_KEY)

    async def get(self, acl_address: str) -> PublicKeyData:
        """Load cached key material.

        Raises:
            NotFoundError: nothing cached for ``acl_address``
            CorruptDataError: the entry exists but cannot be decoded
        """
        stored = await self.storage.get(acl_address.lower())
        if stored is None:
            raise NotFoundError(f"No public key found for ACL {acl_address}")

        try:
            parsed = json.loads(stored)
            if not isinstance(parsed, dict):
                raise ValueError("entry is not an object")
            if not parsed.get("publicKey") or not parsed.get("publicParams"):
                raise ValueError("Invalid stored public key data")
            return PublicKeyData(
                public_key=_to_bytes(parsed["publicKey"]),
                public_params=_to_bytes(parsed["publicParams"]),
            )
        except (ValueError, TypeError, KeyError) as e:
            raise CorruptDataError(
                f"Failed to parse stored public key for ACL {acl_address}: {e}"
            ) from e

    async def set(self, acl_address: str, public_key: bytes, public_params: bytes) -> None:
        if not public_key or not public_params:
            raise ValueError("Public key and public params must be non-empty")
        value = json.dumps(
            {
                "publicKey": list(bytes(public_key)),
                "publicParams": list(bytes(public_params)),
            }
        )
        await self.storage.set(acl_address.lower(), value)


async def public_key_storage_get(
    acl_address: str, storage: GenericStringStorage | None = None
) -> PublicKeyData:
    return await PublicKeyStorage(storage).get(acl_address)


async def public_key_storage_set(
    acl_address: str,
    public_key: bytes,
    public_params: bytes,
    storage: GenericStringStorage | None = None,
) -> None:
    await PublicKeyStorage(storage).set(acl_address, public_key, public_params)
