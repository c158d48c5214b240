from __future__ import annotations

import logging
from enum import Enum, auto
from typing import Callable, List, Optional

from .locations import Location
from .repository import Repository
from .simulator import Simulator

logger = logging.getLogger(__name__)


class PowerState(Enum):
    OFF = auto()
    SWITCHING_ON = auto()
    RUNNING = auto()
    SWITCHING_OFF = auto()


PowerListener = Callable[["Host", PowerState, PowerState], None]


class Host:
    """Machine with a local repository, an optional location and a power state."""

    def __init__(
        self,
        name: str,
        local_disk: Repository,
        location: Optional[Location] = None,
        *,
        state: PowerState = PowerState.OFF,
        boot_ticks: int = 0,
        shutdown_ticks: int = 0,
    ):
        if boot_ticks < 0 or shutdown_ticks < 0:
            raise ValueError("boot_ticks and shutdown_ticks must be non-negative")
        self.name = name
        self.local_disk = local_disk
        self.location = location
        self.boot_ticks = boot_ticks
        self.shutdown_ticks = shutdown_ticks
        self._state = state
        self._listeners: List[PowerListener] = []

    def __repr__(self) -> str:
        return f"Host({self.name!r}, state={self._state.name})"

    @property
    def label(self) -> str:
        """Key used when reporting requests made from this host."""
        return self.location.city if self.location is not None else self.name

    def power_state(self) -> PowerState:
        return self._state

    def add_power_listener(self, listener: PowerListener) -> None:
        self._listeners.append(listener)

    def turn_on(self, simulator: Simulator) -> None:
        if self._state in (PowerState.RUNNING, PowerState.SWITCHING_ON):
            return
        if self.boot_ticks == 0:
            self._set_state(PowerState.RUNNING)
            return
        self._set_state(PowerState.SWITCHING_ON)
        simulator.schedule_in(self.boot_ticks, self._finish_boot)

    def switch_off(self, simulator: Optional[Simulator] = None) -> None:
        """Stop the host; it passes through SWITCHING_OFF when a shutdown delay applies.

        The delay needs a simulator to finish on; without one the host is OFF at once.
        """
        if self._state in (PowerState.OFF, PowerState.SWITCHING_OFF):
            return
        if simulator is None or self.shutdown_ticks == 0:
            self._set_state(PowerState.OFF)
            return
        self._set_state(PowerState.SWITCHING_OFF)
        simulator.schedule_in(self.shutdown_ticks, self._finish_shutdown)

    def _finish_boot(self) -> None:
        # switched off again while booting
        if self._state is PowerState.SWITCHING_ON:
            self._set_state(PowerState.RUNNING)

    def _finish_shutdown(self) -> None:
        if self._state is PowerState.SWITCHING_OFF:
            self._set_state(PowerState.OFF)

    def _set_state(self, new_state: PowerState) -> None:
        old_state = self._state
        if old_state is new_state:
            return
        self._state = new_state
        logger.debug("Host %s power state %s -> %s", self.name, old_state.name, new_state.name)
        for listener in list(self._listeners):
            listener(self, old_state, new_state)
