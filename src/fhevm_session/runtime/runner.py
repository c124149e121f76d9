from __future__ import annotations

import asyncio
import logging
import os
import sys

from ..builder import InstanceBuilder
from ..config import Settings
from ..controller import SessionController
from ..exceptions import FhevmError
from ..resolver import resolve
from ..storage.kv import GenericStringStorage
from ..storage.public_key import PublicKeyStorage
from ..storage.sql import SqlStorageMedium
from ..types import SessionStatus

logger = logging.getLogger(__name__)


async def _run_async(rpc_url: str, settings: Settings) -> SessionStatus:
    """Resolve ``rpc_url`` and build a session for it."""
    medium = None
    if settings.storage_url:
        medium = SqlStorageMedium(settings.storage_url)
        await medium.initialize()

    try:
        try:
            resolved = await resolve(rpc_url, settings.mock_chains, timeout=settings.rpc_timeout)
            print(f"chain_id={resolved.chain_id} mock={resolved.is_mock} rpc_url={resolved.rpc_url}")
        except FhevmError as e:
            print(f"Endpoint resolution failed: {e}")

        key_storage = PublicKeyStorage(GenericStringStorage(settings.public_key_storage_key, medium))
        builder = InstanceBuilder(key_storage=key_storage, settings=settings)
        controller = SessionController(rpc_url, builder=builder)

        @controller.on_status_change()
        def _log_status(status: SessionStatus) -> None:
            logger.info(f"Session status: {status.value}")

        async with controller:
            await controller.wait()
            status = controller.status
            if controller.error is not None:
                print(f"{controller.error.name}: {controller.error}")
            print(f"status={status.value}")
            return status
    finally:
        if medium is not None:
            await medium.close()


def run() -> None:
    """Entry point: ``fhevm-session [RPC_URL]`` (default ``FHEVM_RPC_URL``)."""
    logging.basicConfig(
        level=os.getenv("FHEVM_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = Settings.from_env()
    rpc_url = sys.argv[1] if len(sys.argv) > 1 else os.getenv("FHEVM_RPC_URL", "http://localhost:8545")
    status = asyncio.run(_run_async(rpc_url, settings))
    sys.exit(0 if status is SessionStatus.READY else 1)
