"""Single-threaded socket readiness notifications for the connection registry."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Protocol, runtime_checkable


class Interest(str, Enum):
    """Socket condition a registration waits for."""

    READ = "r"
    WRITE = "w"


@dataclass(eq=False, slots=True)
class Registration:
    """One outstanding, one-shot readiness registration."""

    fd: int
    interest: Interest
    callback: Callable[[], None]
    active: bool = field(default=True)


@runtime_checkable
class ReadinessNotifier(Protocol):
    """Cooperative notifier the registry suspends on."""

    def register_once(self, fd: int, interest: Interest, callback: Callable[[], None]) -> Registration:
        """Invoke ``callback`` once when ``fd`` is ready for ``interest``."""

    def cancel(self, registration: Registration) -> None:
        """Drop a pending registration; its callback will never run."""

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> None:
        """Run ``callback`` on the next loop iteration."""


class AsyncioNotifier:
    """``ReadinessNotifier`` built on ``loop.add_reader``/``loop.add_writer``.

    The notifier must be used from the loop's own thread. Without an explicit
    loop it binds to the running loop on first use, so it can be created
    before the Textual app starts.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._pending: dict[tuple[int, Interest], Registration] = {}

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    @property
    def pending(self) -> tuple[Registration, ...]:
        """Registrations still waiting for their socket (testing helper)."""

        return tuple(self._pending.values())

    def register_once(self, fd: int, interest: Interest, callback: Callable[[], None]) -> Registration:
        key = (fd, interest)
        if key in self._pending:
            raise ValueError(f"fd {fd} already has a pending {interest.name.lower()} registration")
        registration = Registration(fd=fd, interest=interest, callback=callback)
        if interest is Interest.READ:
            self.loop.add_reader(fd, self._fire, registration)
        else:
            self.loop.add_writer(fd, self._fire, registration)
        self._pending[key] = registration
        return registration

    def cancel(self, registration: Registration) -> None:
        if not registration.active:
            return
        registration.active = False
        self._remove(registration)

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> None:
        self.loop.call_soon(callback, *args)

    def close(self) -> None:
        """Cancel every pending registration."""

        for registration in tuple(self._pending.values()):
            self.cancel(registration)

    def _fire(self, registration: Registration) -> None:
        if not registration.active:
            return
        registration.active = False
        self._remove(registration)
        registration.callback()

    def _remove(self, registration: Registration) -> None:
        key = (registration.fd, registration.interest)
        if self._pending.get(key) is registration:
            del self._pending[key]
        if registration.interest is Interest.READ:
            self.loop.remove_reader(registration.fd)
        else:
            self.loop.remove_writer(registration.fd)


__all__ = ["AsyncioNotifier", "Interest", "ReadinessNotifier", "Registration"]
