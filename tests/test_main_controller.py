import pytest

from pilotchat.components.vehicle import SimulatedVehicle
from pilotchat.system.conversation import WELCOME_TEXT
from pilotchat.system import main_controller
from pilotchat.system.exceptions import MavlinkConnectionError
from pilotchat.system.main_controller import build_vehicle, main, parse_args, run_console


def test_parse_args_defaults():
    args = parse_args([])

    assert args.config == "pilotchat.json"
    assert args.simulate is False


@pytest.mark.asyncio
async def test_empty_connection_string_uses_simulator():
    vehicle = await build_vehicle({"connection_string": ""})

    assert isinstance(vehicle, SimulatedVehicle)


@pytest.mark.asyncio
async def test_simulate_flag_overrides_connection_string():
    vehicle = await build_vehicle({"connection_string": "udp:127.0.0.1:14550"}, simulate=True)

    assert isinstance(vehicle, SimulatedVehicle)


@pytest.mark.asyncio
async def test_console_session(monkeypatch, capsys):
    lines = iter(["take off to 12 meters", "what is my altitude", "quit"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(lines))
    config = {
        "llm": {"api_key": "k", "base_url": "http://127.0.0.1:9"},
        "vehicle": {"connection_string": ""},
    }

    await run_console(config)

    out = capsys.readouterr().out
    assert f"Assistant: {WELCOME_TEXT}" in out
    assert "Assistant: Taking off to 12 meters altitude." in out
    assert "Assistant: The current altitude is 12.0 meters above the home position." in out


def test_main_exits_cleanly_when_vehicle_link_fails(monkeypatch, tmp_path):
    async def unreachable(vehicle_settings, simulate=False):
        raise MavlinkConnectionError("No heartbeat from udp:127.0.0.1:14550")

    monkeypatch.setattr(main_controller, "build_vehicle", unreachable)

    assert main(["--config", str(tmp_path / "pilotchat.json")]) == 1
