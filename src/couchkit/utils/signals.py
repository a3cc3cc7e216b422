"""Signal helpers for graceful shutdown."""

from __future__ import annotations

import asyncio
import signal
from typing import Callable

from couchkit.utils.logging import get_logger

logger = get_logger(__name__)

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def install_stop_handlers(loop: asyncio.AbstractEventLoop, on_stop: Callable[[], None]) -> None:
    """
    Call ``on_stop`` from the event loop on SIGINT/SIGTERM.

    Each signal is handled once; a second delivery falls back to the default
    behaviour so a stuck shutdown can still be interrupted.
    """

    def handler(sig: signal.Signals) -> None:
        logger.info("signal_received", signal=sig.name)
        loop.remove_signal_handler(sig)
        on_stop()

    for sig in STOP_SIGNALS:
        loop.add_signal_handler(sig, handler, sig)


__all__ = ["install_stop_handlers"]
