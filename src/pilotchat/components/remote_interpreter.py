"""Gemini-backed interpreter: chat history + telemetry -> InterpretationResult, with keyword fallback."""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Literal, Optional, Sequence

import aiohttp
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pilotchat.components.rule_interpreter import RuleBasedInterpreter
from pilotchat.system.exceptions import InterpretationError
from pilotchat.system.state import (
    Action,
    ActionType,
    InterpretationResult,
    Message,
    VehicleTelemetrySnapshot,
    latest_user_utterance,
)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"
DEFAULT_API_VERSION = "v1"
DEFAULT_MODEL = "gemini-1.5-pro"

SYSTEM_PROMPT = """
You are an AI assistant for ArduPilot, designed to help control and monitor drones through natural language commands.
You can perform the following actions:
1. Arm and disarm the vehicle
2. Take off to a specified altitude
3. Change flight modes (GUIDED, LOITER, RTL, AUTO, etc.)
4. Fly in specific directions (north, south, east, west) for specified distances
5. Return to launch (RTL)
6. Provide information about the vehicle's current status

When responding to user requests:
- Be concise and clear
- Confirm the actions you're taking
- Prioritize safety at all times
- Ask for clarification if a command is ambiguous
- Never perform unsafe operations

Your responses should include both a text reply and any actions that should be executed.

You will be given the chat history as a JSON array of messages. Each message has the fields
id, content, role ("user" or "assistant") and timestamp.

Respond by analyzing the chat history and the current vehicle state.
"""

RESPONSE_INSTRUCTIONS = """Respond with a JSON object containing the following:
1. text: Your response to the user
2. actions: Array of actions to perform (optional). Allowed types: arm, disarm, takeoff, land, rtl, flyTo, setMode.

DO NOT GIVE ANYTHING ELSE EXCEPT THE JSON OBJECT.

Example:
{
  "text": "Taking off to 10 meters altitude.",
  "actions": [
    { "type": "setMode", "params": { "mode": "GUIDED" } },
    { "type": "arm" },
    { "type": "takeoff", "params": { "altitude": 10 } }
  ]
}"""

_CODE_FENCE = re.compile(r"^```[\w+-]*\s*(.*?)\s*```", re.DOTALL)

# numeric params per action type; other types take none
_NUMERIC_PARAMS = {
    "takeoff": ("altitude",),
    "flyTo": ("lat", "lon", "alt"),
}


class ActionModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["arm", "disarm", "takeoff", "land", "rtl", "flyTo", "setMode"]
    params: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def _check_params(self):
        params = self.params or {}
        for name in _NUMERIC_PARAMS.get(self.type, ()):
            value = params.get(name)
            if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
                raise ValueError(f"{self.type}.{name} must be a number, got {value!r}")
        if self.type == "setMode":
            mode = params.get("mode")
            if mode is not None and not isinstance(mode, str):
                raise ValueError(f"setMode.mode must be a string, got {mode!r}")
        return self


class ResponseModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str
    actions: Optional[List[ActionModel]] = Field(default=None)

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text must not be empty")
        return value

    def to_result(self) -> InterpretationResult:
        actions = tuple(Action(ActionType(a.type), a.params or {}) for a in self.actions or ())
        return InterpretationResult(text=self.text, actions=actions)


def strip_code_fence(text: str) -> str:
    """Return the body of a ```lang ... ``` block, or the text itself when not fenced."""
    stripped = text.strip()
    match = _CODE_FENCE.match(stripped)
    return match.group(1).strip() if match else stripped


def parse_response_text(text: str) -> InterpretationResult:
    """Strictly parse model output into an InterpretationResult; raises InterpretationError."""
    try:
        payload = json.loads(strip_code_fence(text))
        return ResponseModel.model_validate(payload).to_result()
    except ValueError as e:
        # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
        raise InterpretationError(f"Unusable model output: {e}") from e


def build_prompt(history: Sequence[Message], telemetry: VehicleTelemetrySnapshot) -> str:
    return (
        "Current vehicle state:\n"
        f"Mode: {telemetry.mode}\n"
        f"Armed: {str(telemetry.armed).lower()}\n"
        f"Altitude: {telemetry.altitude:.1f} meters\n"
        f"Position: {telemetry.latitude:.6f}, {telemetry.longitude:.6f}\n"
        f"Battery: {telemetry.battery_voltage:.1f}V ({telemetry.battery_percent:g}%)\n"
        f"Heading: {telemetry.heading:.0f} degrees\n"
        f"Ground Speed: {telemetry.groundspeed:.1f} m/s\n"
        "\n"
        f"message history: {json.dumps([m.to_dict() for m in history])}\n"
        "\n"
        f"{RESPONSE_INSTRUCTIONS}"
    )


def extract_candidate_text(data: Any) -> str:
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise InterpretationError(f"Response has no candidate text: {e!r}") from e
    if not isinstance(text, str):
        raise InterpretationError("Candidate text is not a string")
    return text


class RemoteInterpreter:
    """Asks a Gemini model for a structured reply; any failure falls back to RuleBasedInterpreter."""
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        api_version: str = DEFAULT_API_VERSION,
        timeout_s: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
        fallback: Optional[RuleBasedInterpreter] = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.timeout_s = timeout_s
        self._session = session
        self.fallback = fallback or RuleBasedInterpreter()
        if not api_key:
            self.logger.warning("GEMINI_API_KEY is not set. Remote calls will fail and use the keyword fallback.")

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/{self.api_version}/models/{self.model}:generateContent"

    async def interpret(self, history: Sequence[Message], telemetry: VehicleTelemetrySnapshot) -> InterpretationResult:
        try:
            prompt = build_prompt(history, telemetry)
            generated = await self._generate(prompt)
            self.logger.debug(f"Gemini response: {generated}")
            result = parse_response_text(generated)
            self.logger.info(f"Gemini interpretation: {len(result.actions)} action(s)")
            return result
        except Exception as e:
            self.logger.warning(f"Remote interpretation failed, using keyword fallback: {e}")
        utterance = latest_user_utterance(history) or ""
        return self.fallback.interpret(utterance, telemetry)

    async def _generate(self, prompt: str) -> str:
        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [{"text": SYSTEM_PROMPT}, {"text": prompt}],
                }
            ]
        }
        if self._session is not None:
            return await self._post(self._session, payload)
        async with aiohttp.ClientSession() as session:
            return await self._post(session, payload)

    async def _post(self, session: aiohttp.ClientSession, payload: Dict[str, Any]) -> str:
        kwargs: Dict[str, Any] = {}
        if self.timeout_s:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=self.timeout_s)
        async with session.post(
            self.endpoint, params={"key": self.api_key or ""}, json=payload, **kwargs
        ) as response:
            data = await response.json(content_type=None)
            if response.status >= 400:
                detail = data.get("error") if isinstance(data, dict) else data
                raise InterpretationError(f"Gemini HTTP {response.status}: {detail}")
        return extract_candidate_text(data)
