"""Keyword NLU: map a single operator utterance plus telemetry to text and vehicle actions."""
import logging
from typing import Callable, NamedTuple, Optional

from pilotchat.system.state import Action, ActionType, InterpretationResult, VehicleTelemetrySnapshot
from pilotchat.utils.text_normalization import extract_meters, spoken_numbers_to_digits

DEFAULT_TAKEOFF_ALTITUDE_M = 10
DEFAULT_FLY_DISTANCE_M = 10

# Equirectangular small-distance approximation
LAT_DEG_PER_METER = 0.000009
LON_DEG_PER_METER = 0.000011

# direction -> (lat sign, lon sign), checked in this order
DIRECTIONS = (
    ("north", (1, 0)),
    ("south", (-1, 0)),
    ("east", (0, 1)),
    ("west", (0, -1)),
)
KNOWN_MODES = ("stabilize", "althold", "loiter", "rtl", "auto", "guided")

HELP_TEXT = """I can help you control your drone with commands like:
- "Take off to 50 meters"
- "Fly north 100 meters"
- "Return to home"
- "Land now"
- "What's my battery level?"
- "Change mode to loiter"
- "What's my current status?"

Just tell me what you'd like to do!"""

CLARIFICATION_TEXT = (
    "I understand you want to interact with the drone, but I'm not sure what specific action "
    "you're requesting. You can ask me to take off, land, fly in a direction, return to home, "
    "or provide status information. How can I help you?"
)


class Utterance(NamedTuple):
    text: str
    lower: str


Builder = Callable[[Utterance, VehicleTelemetrySnapshot], Optional[InterpretationResult]]


class Rule(NamedTuple):
    name: str
    matches: Callable[[str], bool]
    build: Builder


def _has_any(*keywords: str) -> Callable[[str], bool]:
    return lambda lower: any(k in lower for k in keywords)


def _set_mode(mode: str) -> Action:
    return Action(ActionType.SET_MODE, {"mode": mode})


def _format_number(value) -> str:
    return f"{value:g}" if isinstance(value, float) else str(value)


def _takeoff(utt, telemetry):
    altitude = extract_meters(utt.text, DEFAULT_TAKEOFF_ALTITUDE_M)
    return InterpretationResult(
        text=f"Taking off to {_format_number(altitude)} meters altitude.",
        actions=(
            _set_mode("GUIDED"),
            Action(ActionType.ARM),
            Action(ActionType.TAKEOFF, {"altitude": altitude}),
        ),
    )


def _land(utt, telemetry):
    return InterpretationResult(
        text="Landing the vehicle at the current location.",
        actions=(_set_mode("LAND"),),
    )


def _return_to_launch(utt, telemetry):
    return InterpretationResult(text="Returning to the launch location.", actions=(Action(ActionType.RTL),))


def _arm(utt, telemetry):
    return InterpretationResult(text="Arming the vehicle.", actions=(Action(ActionType.ARM),))


def _disarm(utt, telemetry):
    return InterpretationResult(text="Disarming the vehicle.", actions=(Action(ActionType.DISARM),))


def _fly_direction(utt, telemetry):
    direction = next(((name, signs) for name, signs in DIRECTIONS if name in utt.lower), None)
    if direction is None:
        return None
    name, (lat_sign, lon_sign) = direction
    distance = extract_meters(utt.text, DEFAULT_FLY_DISTANCE_M)
    new_lat = telemetry.latitude + lat_sign * LAT_DEG_PER_METER * distance
    new_lon = telemetry.longitude + lon_sign * LON_DEG_PER_METER * distance
    return InterpretationResult(
        text=f"Flying {name} for {_format_number(distance)} meters.",
        actions=(
            _set_mode("GUIDED"),
            Action(ActionType.FLY_TO, {"lat": new_lat, "lon": new_lon, "alt": telemetry.altitude}),
        ),
    )


def _change_mode(utt, telemetry):
    for mode in KNOWN_MODES:
        if mode in utt.lower:
            return InterpretationResult(
                text=f"Changing flight mode to {mode.upper()}.",
                actions=(_set_mode(mode.upper()),),
            )
    return None


def status_summary(telemetry: VehicleTelemetrySnapshot) -> str:
    return (
        "Current Status:\n"
        f"- Mode: {telemetry.mode}\n"
        f"- Armed: {'Yes' if telemetry.armed else 'No'}\n"
        f"- Altitude: {telemetry.altitude:.1f} meters\n"
        f"- Battery: {telemetry.battery_voltage:.1f}V ({_format_number(telemetry.battery_percent)}%)\n"
        f"- Position: {telemetry.latitude:.6f}°, {telemetry.longitude:.6f}°\n"
        f"- Heading: {telemetry.heading:.0f}°\n"
        f"- Ground Speed: {telemetry.groundspeed:.1f} m/s"
    )


def _status(utt, telemetry):
    lower = utt.lower
    if "altitude" in lower or "height" in lower:
        text = f"The current altitude is {telemetry.altitude:.1f} meters above the home position."
    elif "battery" in lower:
        text = (
            f"The battery is currently at {telemetry.battery_voltage:.1f}V which is approximately "
            f"{_format_number(telemetry.battery_percent)}% of capacity."
        )
    elif "position" in lower or "location" in lower or "where" in lower:
        text = (
            f"The vehicle is currently at {telemetry.latitude:.6f}° latitude, "
            f"{telemetry.longitude:.6f}° longitude, and {telemetry.altitude:.1f} meters altitude."
        )
    elif "mode" in lower:
        text = f"The vehicle is currently in {telemetry.mode} mode."
    else:
        text = status_summary(telemetry)
    return InterpretationResult(text=text)


def _help(utt, telemetry):
    return InterpretationResult(text=HELP_TEXT)


# Priority order matters: several keywords can appear in one utterance.
RULES = (
    Rule("takeoff", _has_any("takeoff", "take off"), _takeoff),
    Rule("land", _has_any("land"), _land),
    Rule("rtl", _has_any("rtl", "return", "home"), _return_to_launch),
    Rule("arm", lambda lower: "arm" in lower and "disarm" not in lower, _arm),
    Rule("disarm", _has_any("disarm"), _disarm),
    Rule("fly", _has_any("fly"), _fly_direction),
    Rule("mode", _has_any("mode"), _change_mode),
    Rule("status", _has_any("status", "how", "what"), _status),
    Rule("help", _has_any("help", "commands", "what can you do"), _help),
)


class RuleBasedInterpreter:
    """Deterministic fallback interpreter; needs no network and never fails."""
    def __init__(self, rules=RULES):
        self.logger = logging.getLogger(__name__)
        self.rules = tuple(rules)

    def interpret(self, utterance: str, telemetry: VehicleTelemetrySnapshot) -> InterpretationResult:
        text = spoken_numbers_to_digits(utterance or "")
        utt = Utterance(text=text, lower=text.lower())
        for rule in self.rules:
            if not rule.matches(utt.lower):
                continue
            result = rule.build(utt, telemetry)
            if result is not None:
                self.logger.debug(f"Rule '{rule.name}' matched '{utterance}'")
                return result
        self.logger.debug(f"No rule matched '{utterance}'")
        return InterpretationResult(text=CLARIFICATION_TEXT)


_default_interpreter = RuleBasedInterpreter()


def interpret(utterance: str, telemetry: VehicleTelemetrySnapshot) -> InterpretationResult:
    return _default_interpreter.interpret(utterance, telemetry)
