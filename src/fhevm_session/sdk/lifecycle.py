"""Relayer SDK loading and one-time initialization."""

from __future__ import annotations

import asyncio
import importlib
import inspect
import logging
import threading
import weakref
from collections.abc import Callable
from typing import Any

from ..config import Settings
from ..exceptions import SDKInitError, SDKLoadError

logger = logging.getLogger(__name__)

INITIALIZED_SLOT = "__initialized__"
REQUIRED_ATTRIBUTES = ("init_sdk", "create_instance")


def is_relayer_sdk(obj: Any) -> bool:
    return obj is not None and all(callable(getattr(obj, name, None)) for name in REQUIRED_ATTRIBUTES)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class SdkLifecycle:
    """Owns the relayer SDK object and its process-wide "initialized" flag.

    The flag only ever goes from False to True. Concurrent ``init`` calls
    share a single underlying ``init_sdk`` call. The async locks are kept
    per event loop so one lifecycle can serve several ``asyncio.run`` calls.
    """

    def __init__(
        self,
        loader: Callable[[], Any] | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self._loader = loader or self._import_sdk_module
        self._sdk: Any | None = None
        self._initialized = False
        self._flag_lock = threading.Lock()
        self._load_locks: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Lock] = (
            weakref.WeakKeyDictionary()
        )
        self._init_locks: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Lock] = (
            weakref.WeakKeyDictionary()
        )

    def _import_sdk_module(self) -> Any:
        return importlib.import_module(self.settings.sdk_module)

    def _loop_lock(self, locks: weakref.WeakKeyDictionary) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        with self._flag_lock:
            lock = locks.get(loop)
            if lock is None:
                lock = locks[loop] = asyncio.Lock()
            return lock

    @property
    def sdk(self) -> Any | None:
        return self._sdk

    @property
    def is_loaded(self) -> bool:
        return self._sdk is not None

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _set_initialized(self, value: bool) -> None:
        with self._flag_lock:
            if self._initialized:
                return
            self._initialized = value
            if self._sdk is not None:
                try:
                    setattr(self._sdk, INITIALIZED_SLOT, value)
                except (AttributeError, TypeError):
                    logger.debug(f"Relayer SDK object does not accept the {INITIALIZED_SLOT} slot")

    async def load(self) -> Any:
        """Make the relayer SDK object available; no-op once loaded."""
        if self._sdk is not None:
            return self._sdk
        async with self._loop_lock(self._load_locks):
            if self._sdk is not None:
                return self._sdk
            logger.info("Loading relayer SDK...")
            try:
                sdk = await _maybe_await(await asyncio.to_thread(self._loader))
            except Exception as e:
                raise SDKLoadError(f"Relayer SDK could not be loaded: {e}") from e
            if not is_relayer_sdk(sdk):
                raise SDKLoadError("Relayer SDK is not available")
            self._sdk = sdk
            if getattr(sdk, INITIALIZED_SLOT, False) is True:
                self._set_initialized(True)
            logger.info("Relayer SDK loaded")
            return sdk

    async def init(self, options: Any = None) -> bool:
        """Run the SDK's one-time setup; no-op once initialized."""
        if self._initialized:
            return True
        async with self._loop_lock(self._init_locks):
            if self._initialized:
                return True
            if self._sdk is None:
                raise SDKInitError("Relayer SDK is not available")
            logger.info("Initializing relayer SDK...")
            try:
                result = await _maybe_await(self._sdk.init_sdk(options))
            except Exception as e:
                raise SDKInitError(f"Relayer SDK init_sdk failed: {e}") from e
            self._set_initialized(bool(result))
            if not result:
                raise SDKInitError("Relayer SDK init_sdk failed.")
            logger.info("Relayer SDK initialized")
            return True

    def production_config(self) -> dict[str, Any]:
        """Return the SDK's production network configuration as a dict."""
        if self._sdk is None:
            raise SDKLoadError("Relayer SDK is not available")
        config = getattr(self._sdk, self.settings.sdk_config_name, None)
        if config is None:
            raise SDKLoadError(f"Relayer SDK has no {self.settings.sdk_config_name} configuration")
        return dict(config)

    def reset(self) -> None:
        """Forget the loaded SDK and the init flag."""
        with self._flag_lock:
            self._sdk = None
            self._initialized = False
            self._load_locks.clear()
            self._init_locks.clear()


default_lifecycle = SdkLifecycle()


def get_default_lifecycle() -> SdkLifecycle:
    return default_lifecycle
