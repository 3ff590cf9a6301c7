import pytest

from pilotchat.components.vehicle import VehicleControl
from pilotchat.system.exceptions import VehicleCommandError
from pilotchat.system.state import VehicleTelemetrySnapshot


def make_telemetry(**overrides) -> VehicleTelemetrySnapshot:
    values = dict(
        mode="GUIDED",
        armed=True,
        latitude=10.0,
        longitude=20.0,
        altitude=5.0,
        heading=90.0,
        groundspeed=1.5,
        battery_voltage=11.1,
        battery_percent=80,
    )
    values.update(overrides)
    return VehicleTelemetrySnapshot(**values)


class RecordingVehicle(VehicleControl):
    """Records every command; methods named in ``fail_on`` raise VehicleCommandError."""

    def __init__(self, telemetry=None, fail_on=()):
        super().__init__()
        self.telemetry = telemetry or make_telemetry()
        self.fail_on = set(fail_on)
        self.calls = []

    def get_current_state(self):
        return self.telemetry

    async def _record(self, name, *args):
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise VehicleCommandError(f"{name} rejected")

    async def arm(self):
        await self._record("arm")

    async def disarm(self):
        await self._record("disarm")

    async def takeoff(self, altitude_m):
        await self._record("takeoff", altitude_m)

    async def return_to_launch(self):
        await self._record("return_to_launch")

    async def set_mode(self, mode_name):
        await self._record("set_mode", mode_name)

    async def fly_to(self, lat, lon, altitude_m):
        await self._record("fly_to", lat, lon, altitude_m)


@pytest.fixture
def telemetry():
    return make_telemetry()


@pytest.fixture
def vehicle(telemetry):
    return RecordingVehicle(telemetry=telemetry)
