"""Cooperative abort signal threaded through client calls and stream pulls."""

from __future__ import annotations

import asyncio

from aicore_bridge.errors import AbortedError


class AbortSignal:
    """One-shot abort flag that async code can both poll and await.

    Example:
        signal = AbortSignal()
        result = await model.stream(CallOptions(prompt=..., abort_signal=signal))
        signal.abort("user navigated away")
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def abort(self, reason: str | None = None) -> None:
        """Signal abort. Only the first reason is kept."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    async def wait(self) -> None:
        """Block until the signal is aborted."""
        await self._event.wait()

    def raise_if_aborted(self) -> None:
        if self._event.is_set():
            raise AbortedError(
                f"Aborted: {self._reason}" if self._reason else "Aborted"
            )


def raise_if_aborted(signal: AbortSignal | None) -> None:
    """Raise AbortedError when *signal* is set; no-op for ``None``."""
    if signal is not None:
        signal.raise_if_aborted()
