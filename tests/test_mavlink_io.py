"""Tests for the pymavlink controller and its async VehicleControl wrapper."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from pymavlink import mavutil

from conftest import make_telemetry
from pilotchat.components.mavlink_io import (
    UNKNOWN_BATTERY_VOLTAGE,
    UNKNOWN_STATE,
    MavlinkController,
    MavlinkVehicle,
)
from pilotchat.system.exceptions import VehicleCommandError

ACCEPTED = mavutil.mavlink.MAV_RESULT_ACCEPTED
DENIED = mavutil.mavlink.MAV_RESULT_DENIED


def connected_controller():
    controller = MavlinkController("udp:127.0.0.1:14550")
    master = MagicMock()
    master.target_system = 1
    master.target_component = 1
    master.mode_mapping.return_value = {"GUIDED": 4, "LAND": 9, "RTL": 6}
    controller.master = master
    return controller, master


def test_set_mode_accepted():
    controller, master = connected_controller()
    master.recv_match.return_value = SimpleNamespace(result=ACCEPTED)

    assert controller.set_mode("guided") is True
    master.mav.set_mode_send.assert_called_once_with(
        1, mavutil.mavlink.MAV_MODE_FLAG_CUSTOM_MODE_ENABLED, 4
    )


def test_set_unknown_mode_is_refused():
    controller, master = connected_controller()

    assert controller.set_mode("WARP") is False
    master.mav.set_mode_send.assert_not_called()


def test_arm_sends_arm_disarm_command():
    controller, master = connected_controller()
    master.recv_match.return_value = SimpleNamespace(
        command=mavutil.mavlink.MAV_CMD_COMPONENT_ARM_DISARM, result=ACCEPTED
    )

    assert controller.arm_vehicle() is True
    args = master.mav.command_long_send.call_args.args
    assert args[2] == mavutil.mavlink.MAV_CMD_COMPONENT_ARM_DISARM
    assert args[4] == 1


def test_takeoff_denied():
    controller, master = connected_controller()
    master.recv_match.return_value = SimpleNamespace(command=mavutil.mavlink.MAV_CMD_NAV_TAKEOFF, result=DENIED)

    assert controller.takeoff(15) is False
    args = master.mav.command_long_send.call_args.args
    assert args[2] == mavutil.mavlink.MAV_CMD_NAV_TAKEOFF
    assert args[-1] == 15.0


def test_commands_fail_when_not_connected():
    controller = MavlinkController("udp:127.0.0.1:14550")

    assert controller.arm_vehicle() is False
    assert controller.set_mode("GUIDED") is False
    assert controller.fly_to(1.0, 2.0, 3.0) is False


def test_fly_to_sends_scaled_position_target():
    controller, master = connected_controller()

    assert controller.fly_to(-35.0, 149.0, 20.0) is True
    args = master.mav.set_position_target_global_int_send.call_args.args
    assert args[5:8] == (-350000000, 1490000000, 20.0)


def test_read_telemetry_from_latest_messages():
    controller, master = connected_controller()
    master.recv_match.return_value = None
    master.flightmode = "GUIDED"
    master.motors_armed.return_value = 128
    master.messages = {
        "HEARTBEAT": SimpleNamespace(),
        "GLOBAL_POSITION_INT": SimpleNamespace(lat=-353632610, lon=1491652300, relative_alt=12500, hdg=9000),
        "VFR_HUD": SimpleNamespace(groundspeed=3.2, heading=91),
        "SYS_STATUS": SimpleNamespace(voltage_battery=11100, battery_remaining=80),
    }

    state = controller.read_telemetry(UNKNOWN_STATE)

    assert state.mode == "GUIDED"
    assert state.armed is True
    assert state.latitude == pytest.approx(-35.363261)
    assert state.longitude == pytest.approx(149.16523)
    assert state.altitude == 12.5
    assert state.heading == 90.0
    assert state.groundspeed == 3.2
    assert state.battery_voltage == pytest.approx(11.1)
    assert state.battery_percent == 80


def test_read_telemetry_keeps_previous_values_for_missing_messages():
    controller, master = connected_controller()
    master.recv_match.return_value = None
    master.messages = {}
    previous = make_telemetry()

    assert controller.read_telemetry(previous) == previous


def test_read_telemetry_ignores_unreported_battery():
    controller, master = connected_controller()
    master.recv_match.return_value = None
    master.messages = {"SYS_STATUS": SimpleNamespace(voltage_battery=UNKNOWN_BATTERY_VOLTAGE, battery_remaining=-1)}
    previous = make_telemetry()

    state = controller.read_telemetry(previous)

    assert state.battery_voltage == previous.battery_voltage
    assert state.battery_percent == previous.battery_percent


@pytest.mark.asyncio
async def test_vehicle_raises_when_command_not_accepted():
    controller = MagicMock()
    controller.arm_vehicle.return_value = False
    vehicle = MavlinkVehicle("udp:127.0.0.1:14550", controller=controller)

    with pytest.raises(VehicleCommandError):
        await vehicle.arm()


@pytest.mark.asyncio
async def test_vehicle_refreshes_and_notifies_after_command():
    controller = MagicMock()
    controller.set_mode.return_value = True
    controller.read_telemetry.return_value = make_telemetry(mode="LOITER")
    vehicle = MavlinkVehicle("udp:127.0.0.1:14550", controller=controller)
    seen = []
    vehicle.subscribe_to_state_changes(seen.append)

    await vehicle.set_mode("LOITER")

    controller.set_mode.assert_called_once_with("LOITER")
    assert vehicle.get_current_state().mode == "LOITER"
    assert [s.mode for s in seen] == ["LOITER"]


@pytest.mark.asyncio
async def test_vehicle_close_stops_polling_and_closes_link():
    controller = MagicMock()
    controller.read_telemetry.return_value = make_telemetry()
    vehicle = MavlinkVehicle("udp:127.0.0.1:14550", controller=controller, poll_interval_s=0.01)

    await vehicle.connect()
    await vehicle.close()

    controller.connect.assert_called_once()
    controller.close_connection.assert_called_once()
