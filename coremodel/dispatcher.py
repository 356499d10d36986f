"""Connection between dispatch and one execution unit."""

from __future__ import annotations

import logging
from typing import Callable

from coremodel.pipes import Inst

log = logging.getLogger(__name__)


class DispatcherError(RuntimeError):
    """Raised when a dispatcher is asked to accept what it cannot."""


class Dispatcher:
    """Tracks credits and per-cycle bandwidth for one execution unit.

    ``send`` receives each accepted instruction; ``on_credits`` is called
    whenever credits arrive, so dispatch can try another session.
    """

    def __init__(
        self,
        name: str,
        send: Callable[[Inst], None],
        on_credits: Callable[[], None] | None = None,
    ) -> None:
        self.name = name
        self._send = send
        self._on_credits = on_credits
        self._credits = 0
        self._num_can_dispatch = 1

    @property
    def credits(self) -> int:
        """Credits currently held from the execution unit."""
        return self._credits

    def can_accept(self) -> bool:
        """Whether there are credits and bandwidth left this cycle."""
        return self._credits != 0 and self._num_can_dispatch != 0

    def accept_inst(self, inst: Inst) -> None:
        """Send ``inst`` to the execution unit, consuming a credit and the bandwidth."""
        if self._credits == 0:
            raise DispatcherError(
                f"Dispatcher {self.name} cannot accept the given instruction "
                f"(not enough credits): {inst}"
            )
        if self._num_can_dispatch == 0:
            raise DispatcherError(
                f"Dispatcher {self.name} cannot accept the given instruction "
                "(already accepted an instruction)"
            )
        log.debug("%s: dispatching %s", self.name, inst)
        self._send(inst)
        self._credits -= 1
        self._num_can_dispatch -= 1

    def reset(self) -> None:
        """Restore the per-cycle bandwidth."""
        self._num_can_dispatch = 1

    def receive_credits(self, credits: int) -> None:
        """Add credits returned by the execution unit."""
        self._credits += credits
        log.debug("%s got %d credits, total: %d", self.name, credits, self._credits)
        if self._on_credits is not None:
            self._on_credits()

    def __repr__(self) -> str:
        return f"Dispatcher({self.name!r}, credits={self._credits})"