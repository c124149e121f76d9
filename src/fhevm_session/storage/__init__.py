"""Key-value cache and public key storage."""

from .kv import GenericStringStorage, MemoryStorageMedium, StorageMedium, get_default_medium
from .public_key import PublicKeyStorage, public_key_storage_get, public_key_storage_set
from .sql import SqlStorageMedium

__all__ = [
    "GenericStringStorage",
    "MemoryStorageMedium",
    "StorageMedium",
    "get_default_medium",
    "SqlStorageMedium",
    "PublicKeyStorage",
    "public_key_storage_get",
    "public_key_storage_set",
]
