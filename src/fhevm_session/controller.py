"""Session controller: owns the single live FHEVM instance."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from .builder import InstanceBuilder
from .cancellation import CancellationToken
from .config import Settings
from .exceptions import AbortError, FhevmInitializationError, is_network_error
from .types import FhevmInstance, RelayerPhase, SessionStatus, StatusCallback

logger = logging.getLogger(__name__)


class SessionController:
    """Keeps one FHEVM instance in sync with the current provider.

    At most one build runs at a time. Changing the provider, disabling the
    controller or calling ``refresh()`` cancels the running build, and a
    build's result is only accepted if it still belongs to the live
    provider. Methods that start a build must be called from a running
    event loop.

    Status goes ``idle -> loading -> ready | error``. Network failures end
    in ``idle`` (not connected yet) rather than ``error``.
    """

    def __init__(
        self,
        provider: Any = None,
        *,
        enabled: bool = True,
        mock_chains: Mapping[int, str] | None = None,
        builder: Any | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._provider = provider
        self._enabled = enabled
        self._mock_chains = dict(mock_chains) if mock_chains else None
        self._builder = builder or InstanceBuilder(settings=settings)
        self._status = SessionStatus.IDLE
        self._instance: FhevmInstance | None = None
        self._error: FhevmInitializationError | None = None
        self._phase: RelayerPhase | None = None
        self._token: CancellationToken | None = None
        self._task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._generation = 0
        self._listeners: list[StatusCallback] = []

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def instance(self) -> FhevmInstance | None:
        return self._instance

    @property
    def error(self) -> FhevmInitializationError | None:
        return self._error

    @property
    def phase(self) -> RelayerPhase | None:
        """Last build phase reported for the current build."""
        return self._phase

    @property
    def provider(self) -> Any:
        return self._provider

    @property
    def enabled(self) -> bool:
        return self._enabled

    def on_status_change(self):
        """Register a listener called with the new status on every transition.

        Usage:
            @controller.on_status_change()
            def changed(status): ...
        """

        def decorator(fn: StatusCallback) -> StatusCallback:
            self._listeners.append(fn)
            return fn

        return decorator

    def _set_status(self, status: SessionStatus) -> None:
        if status == self._status:
            return
        self._status = status
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as e:
                logger.error(f"Status listener failed: {e}", exc_info=True)

    def _cancel(self) -> None:
        if self._token is not None:
            self._token.cancel()
            self._token = None
        self._generation += 1

    def _reset(self) -> None:
        self._cancel()
        self._instance = None
        self._error = None
        self._phase = None
        self._set_status(SessionStatus.IDLE)

    def _is_current(self, provider: Any, token: CancellationToken, generation: int) -> bool:
        return not token.cancelled and generation == self._generation and provider is self._provider

    def start(self) -> None:
        """Start a build for the current provider if enabled, else go idle."""
        if not self._enabled or self._provider is None:
            self._reset()
            return

        self._cancel()
        token = CancellationToken()
        self._token = token
        generation = self._generation
        provider = self._provider

        self._error = None
        self._phase = None
        self._set_status(SessionStatus.LOADING)
        task = asyncio.get_running_loop().create_task(self._run(provider, token, generation))
        # Superseded builds stay referenced until they finish
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._task = task

    async def _run(self, provider: Any, token: CancellationToken, generation: int) -> None:
        def on_phase(phase: RelayerPhase) -> None:
            if not self._is_current(provider, token, generation):
                return
            logger.debug(f"FHEVM build phase: {phase.value}")
            self._phase = phase
            if phase is RelayerPhase.CREATING:
                self._set_status(SessionStatus.LOADING)

        try:
            instance = await self._builder.build(
                provider, mock_chains=self._mock_chains, token=token, on_phase=on_phase
            )
        except AbortError:
            return
        except Exception as e:
            if not self._is_current(provider, token, generation):
                return
            self._instance = None
            if is_network_error(e):
                logger.info(f"FHEVM endpoint not reachable yet: {e}")
                self._error = None
                self._set_status(SessionStatus.IDLE)
                return

            logger.error(f"Error creating FHEVM instance: {e}", exc_info=True)
            error = FhevmInitializationError(str(e), name=type(e).__name__)
            error.__cause__ = e
            self._error = error.with_traceback(e.__traceback__)
            self._set_status(SessionStatus.ERROR)
            return

        if not self._is_current(provider, token, generation):
            logger.debug("Discarding FHEVM instance from a superseded build")
            return
        self._instance = instance
        self._error = None
        self._set_status(SessionStatus.READY)

    def set_provider(self, provider: Any) -> None:
        """Switch to a new provider (None means unavailable)."""
        if provider is self._provider:
            return
        self._provider = provider
        self.refresh()

    def set_enabled(self, enabled: bool) -> None:
        if enabled == self._enabled:
            return
        self._enabled = enabled
        if enabled:
            self.start()
        else:
            self._reset()

    def refresh(self) -> None:
        """Drop the current instance and build a new one."""
        self._reset()
        self.start()

    async def wait(self) -> None:
        """Wait until no build is in flight."""
        while self._task is not None and not self._task.done():
            await asyncio.wait([self._task])

    async def close(self) -> None:
        """Tear down: cancel every build still running, superseded ones included, and go idle."""
        self._reset()
        self._task = None
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def __aenter__(self) -> SessionController:
        self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
