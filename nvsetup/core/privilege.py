"""
Privilege — how privileged commands get elevated.

The orchestrator receives a ``Privilege`` capability at startup and
passes its prefix into every privileged action. When the process
already runs as root the prefix is empty; otherwise ``sudo`` is used.

Credential caching is a separate, optional concern: ``sudo_keepalive``
validates credentials once and refreshes them from a daemon thread
while the pipeline runs. The thread is stopped when the ``with`` block
exits, whatever the outcome.
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator

logger = logging.getLogger(__name__)


class PrivilegeError(Exception):
    """Raised when elevated credentials cannot be obtained."""


@dataclass(frozen=True)
class Privilege:
    """Command prefix that grants root for privileged actions."""

    prefix: tuple[str, ...] = ()

    @property
    def elevated(self) -> bool:
        """True when commands already run as root (no prefix needed)."""
        return not self.prefix

    @property
    def argv(self) -> list[str]:
        return list(self.prefix)

    @classmethod
    def detect(cls, sudo: str = "sudo") -> Privilege:
        if os.geteuid() == 0:
            return cls()
        return cls(prefix=(sudo,))


class SudoKeepalive:
    """Refresh cached sudo credentials on a fixed interval until stopped."""

    def __init__(
        self,
        interval: float = 60.0,
        refresh: Callable[[], bool] | None = None,
    ):
        self._interval = interval
        self._refresh = refresh or _refresh_sudo
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.refresh_count = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop,
            daemon=True,
            name="sudo-keepalive",
        )
        self._thread.start()
        logger.debug("sudo keepalive started (every %.0fs)", self._interval)

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        logger.debug("sudo keepalive stopped")

    def _loop(self) -> None:
        while not self._stop.wait(self._interval):
            ok = self._refresh()
            self.refresh_count += 1
            if not ok:
                logger.warning("Could not refresh sudo credentials")


def _refresh_sudo() -> bool:
    result = subprocess.run(
        ["sudo", "-n", "-v"],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    return result.returncode == 0


def validate_credentials() -> bool:
    """Prompt for the sudo password (on the terminal) and cache it."""
    try:
        result = subprocess.run(["sudo", "-v"])
    except FileNotFoundError:
        return False
    return result.returncode == 0


@contextmanager
def sudo_keepalive(
    privilege: Privilege,
    interval: float = 60.0,
    *,
    validate: Callable[[], bool] = validate_credentials,
    refresh: Callable[[], bool] | None = None,
) -> Iterator[SudoKeepalive | None]:
    """Keep sudo credentials warm for the duration of the block.

    A no-op when the process is already elevated.

    Raises:
        PrivilegeError: If the initial credential check fails.
    """
    if privilege.elevated:
        yield None
        return

    if not validate():
        raise PrivilegeError("Incorrect password or sudo unavailable.")

    keeper = SudoKeepalive(interval=interval, refresh=refresh)
    keeper.start()
    try:
        yield keeper
    finally:
        keeper.stop()
