"""
Retry policy for connectionless RCON commands.

UDP RCON has no delivery guarantee, so every command is retried on any
exception following a fixed backoff schedule. The wait blocks the calling
thread; pass a ``threading.Event`` to abort it early.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from .errors import CommandCancelledError

logger = logging.getLogger("gsclient.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetrySpec:
    """Ordered delays (seconds) slept before each retry."""
    delays: tuple[float, ...] = ()

    @classmethod
    def default(cls) -> "RetrySpec":
        return cls((random.random() * 1, random.random() * 3, random.random() * 5))

    @classmethod
    def none(cls) -> "RetrySpec":
        return cls(())

    @property
    def attempts(self) -> int:
        return len(self.delays) + 1


def _sleep(seconds: float, cancel: threading.Event | None):
    if cancel is None:
        time.sleep(seconds)
        return
    if cancel.wait(seconds):
        raise CommandCancelledError("Cancelled while waiting to retry")


def call_with_retry(
    func: Callable[[], T],
    spec: RetrySpec,
    server: str | None = None,
    cancel: threading.Event | None = None,
    sleep: Callable[[float, threading.Event | None], None] = _sleep,
) -> T:
    """
    Run ``func`` until it succeeds or the schedule is exhausted.

    Any exception triggers a retry; once every delay has been used the last
    exception propagates unchanged.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return func()
        except Exception as exc:
            if attempt > len(spec.delays):
                logger.error(f"[{server}] Command failed after {attempt} attempt(s): {exc}")
                raise
            delay = spec.delays[attempt - 1]
            logger.warning(f"[{server}] Failed to execute rcon command - retry count: {attempt} ({exc})")
            try:
                sleep(delay, cancel)
            except CommandCancelledError as cancelled:
                cancelled.server = server
                raise cancelled from exc
