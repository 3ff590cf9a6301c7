"""Vehicle-control interface consumed by the dispatcher, plus an in-memory simulated vehicle."""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Callable, List

from pilotchat.system.exceptions import VehicleCommandError
from pilotchat.system.state import VehicleTelemetrySnapshot

StateListener = Callable[[VehicleTelemetrySnapshot], None]

# ArduPilot SITL default home (CMAC)
SITL_HOME_LAT = -35.363261
SITL_HOME_LON = 149.165230

SIMULATED_MODES = ("STABILIZE", "ALTHOLD", "LOITER", "GUIDED", "AUTO", "RTL", "LAND")


class VehicleControl:
    """Base class for a single controllable vehicle.

    ``get_current_state`` returns an immutable snapshot; commands are coroutines
    that raise ``VehicleCommandError`` (or another ``VehicleError``) on failure.
    """
    def __init__(self):
        self.logger = logging.getLogger(type(self).__module__)
        self._listeners: List[StateListener] = []

    def get_current_state(self) -> VehicleTelemetrySnapshot:
        raise NotImplementedError

    def subscribe_to_state_changes(self, callback: StateListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify_state_changed(self):
        state = self.get_current_state()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                self.logger.warning(f"State listener failed: {e}")

    async def arm(self):
        raise NotImplementedError

    async def disarm(self):
        raise NotImplementedError

    async def takeoff(self, altitude_m: float):
        raise NotImplementedError

    async def return_to_launch(self):
        raise NotImplementedError

    async def set_mode(self, mode_name: str):
        raise NotImplementedError

    async def fly_to(self, lat: float, lon: float, altitude_m: float):
        raise NotImplementedError

    async def close(self):
        pass


class SimulatedVehicle(VehicleControl):
    """Offline stand-in for a MAVLink vehicle. State changes apply instantly."""
    def __init__(self, home_lat: float = SITL_HOME_LAT, home_lon: float = SITL_HOME_LON,
                 command_delay_s: float = 0.0):
        super().__init__()
        self.home = (home_lat, home_lon)
        self.command_delay_s = command_delay_s
        self._state = VehicleTelemetrySnapshot(
            mode="STABILIZE",
            armed=False,
            latitude=home_lat,
            longitude=home_lon,
            altitude=0.0,
            heading=0.0,
            groundspeed=0.0,
            battery_voltage=12.6,
            battery_percent=100,
        )

    def get_current_state(self) -> VehicleTelemetrySnapshot:
        return self._state

    async def _apply(self, **changes):
        if self.command_delay_s:
            await asyncio.sleep(self.command_delay_s)
        self._state = dataclasses.replace(self._state, **changes)
        self._notify_state_changed()

    async def arm(self):
        self.logger.info("SIM: Arming.")
        await self._apply(armed=True)

    async def disarm(self):
        if self._state.altitude > 0.5:
            raise VehicleCommandError("Cannot disarm while airborne.")
        self.logger.info("SIM: Disarming.")
        await self._apply(armed=False)

    async def takeoff(self, altitude_m: float):
        if not self._state.armed:
            raise VehicleCommandError("Cannot take off: vehicle is not armed.")
        if self._state.mode != "GUIDED":
            raise VehicleCommandError(f"Cannot take off in {self._state.mode} mode.")
        self.logger.info(f"SIM: Taking off to {altitude_m}m.")
        await self._apply(altitude=float(altitude_m))

    async def return_to_launch(self):
        self.logger.info("SIM: Returning to launch.")
        await self._apply(mode="RTL", latitude=self.home[0], longitude=self.home[1],
                          altitude=0.0, groundspeed=0.0, armed=False)

    async def set_mode(self, mode_name: str):
        mode = mode_name.upper()
        if mode not in SIMULATED_MODES:
            raise VehicleCommandError(f"Unknown mode: {mode_name}")
        self.logger.info(f"SIM: Mode {mode}.")
        if mode == "LAND":
            await self._apply(mode=mode, altitude=0.0, groundspeed=0.0)
        elif mode == "RTL":
            await self.return_to_launch()
        else:
            await self._apply(mode=mode)

    async def fly_to(self, lat: float, lon: float, altitude_m: float):
        if not self._state.armed:
            raise VehicleCommandError("Cannot fly: vehicle is not armed.")
        if self._state.mode != "GUIDED":
            raise VehicleCommandError(f"Cannot fly to a position in {self._state.mode} mode.")
        self.logger.info(f"SIM: Flying to ({lat:.6f}, {lon:.6f}) at {altitude_m}m.")
        await self._apply(latitude=float(lat), longitude=float(lon), altitude=float(altitude_m))
