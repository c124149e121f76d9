from __future__ import annotations

from .exceptions import AbortError


class CancellationToken:
    """Cooperative cancellation flag checked at every suspension point.

    Cancelling does not interrupt a pending network call; the caller only
    stops acting on its result.
    """

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise AbortError()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"
