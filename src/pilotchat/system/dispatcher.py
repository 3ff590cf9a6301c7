"""Executes interpreted actions against a vehicle, one at a time, in order."""
import logging
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from pilotchat.components.vehicle import VehicleControl
from pilotchat.system.state import Action, ActionType, VehicleTelemetrySnapshot

DEFAULT_TAKEOFF_ALTITUDE_M = 10
DEFAULT_MODE = "GUIDED"


@dataclass
class DispatchReport:
    executed: List[ActionType] = field(default_factory=list)
    failed: List[Tuple[ActionType, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class ActionDispatcher:
    """Maps each Action to a VehicleControl call. A failing action is logged and skipped."""
    def __init__(self, vehicle: VehicleControl):
        self.logger = logging.getLogger(__name__)
        self.vehicle = vehicle

    async def dispatch(self, actions: Sequence[Action], telemetry: VehicleTelemetrySnapshot) -> DispatchReport:
        report = DispatchReport()
        for action in actions:
            try:
                await self._execute(action, telemetry)
            except Exception as e:
                self.logger.error(f"Failed to execute action {action.type.value}: {e}")
                report.failed.append((action.type, str(e)))
            else:
                report.executed.append(action.type)
        return report

    async def _execute(self, action: Action, telemetry: VehicleTelemetrySnapshot):
        self.logger.info(f"Executing {action.to_dict()}")
        kind = action.type
        if kind == ActionType.ARM:
            await self.vehicle.arm()
        elif kind == ActionType.DISARM:
            await self.vehicle.disarm()
        elif kind == ActionType.TAKEOFF:
            await self.vehicle.takeoff(action.param("altitude", DEFAULT_TAKEOFF_ALTITUDE_M))
        elif kind == ActionType.LAND:
            # the vehicle interface has no land call; LAND mode does the same job
            await self.vehicle.set_mode("LAND")
        elif kind == ActionType.RTL:
            await self.vehicle.return_to_launch()
        elif kind == ActionType.SET_MODE:
            await self.vehicle.set_mode(action.param("mode", DEFAULT_MODE))
        elif kind == ActionType.FLY_TO:
            await self.vehicle.fly_to(
                action.param("lat", telemetry.latitude),
                action.param("lon", telemetry.longitude),
                action.param("alt", telemetry.altitude),
            )
        else:
            raise ValueError(f"Unsupported action type: {kind}")
