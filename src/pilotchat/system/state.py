"""Data model shared by the interpreters, the dispatcher and the conversation."""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

class Role(str, Enum):
	USER = "user"
	ASSISTANT = "assistant"

class ConversationState(str, Enum):
	IDLE = "idle"
	PROCESSING = "processing"

class ActionType(str, Enum):
	ARM = "arm"
	DISARM = "disarm"
	TAKEOFF = "takeoff"
	LAND = "land"
	RTL = "rtl"
	FLY_TO = "flyTo"
	SET_MODE = "setMode"

@dataclass(frozen=True)
class Message:
	id: str
	content: str
	role: Role
	timestamp: datetime

	@classmethod
	def create(cls, role: Role, content: str) -> "Message":
		return cls(id=uuid.uuid4().hex, content=content, role=role, timestamp=datetime.now(timezone.utc))

	def to_dict(self) -> Dict[str, Any]:
		return {
			"id": self.id,
			"content": self.content,
			"role": self.role.value,
			"timestamp": self.timestamp.isoformat(),
		}

@dataclass(frozen=True)
class VehicleTelemetrySnapshot:
	"""Point-in-time read of vehicle state. Never mutated after creation."""
	mode: str
	armed: bool
	latitude: float
	longitude: float
	altitude: float
	heading: float
	groundspeed: float
	battery_voltage: float
	battery_percent: float

	def to_dict(self) -> Dict[str, Any]:
		return {
			"mode": self.mode,
			"armed": self.armed,
			"latitude": self.latitude,
			"longitude": self.longitude,
			"altitude": self.altitude,
			"heading": self.heading,
			"groundspeed": self.groundspeed,
			"batteryVoltage": self.battery_voltage,
			"batteryPercent": self.battery_percent,
		}

@dataclass(frozen=True)
class Action:
	type: ActionType
	params: Mapping[str, Any] = field(default_factory=dict)

	def __post_init__(self):
		object.__setattr__(self, "type", ActionType(self.type))
		object.__setattr__(self, "params", MappingProxyType(dict(self.params or {})))

	def param(self, name: str, default: Any = None) -> Any:
		# null counts as missing, an explicit 0 does not
		value = self.params.get(name)
		return default if value is None else value

	def to_dict(self) -> Dict[str, Any]:
		if not self.params:
			return {"type": self.type.value}
		return {"type": self.type.value, "params": dict(self.params)}

@dataclass(frozen=True)
class InterpretationResult:
	text: str
	actions: Tuple[Action, ...] = ()

	def __post_init__(self):
		if not isinstance(self.text, str) or not self.text.strip():
			raise ValueError("InterpretationResult.text must be a non-empty string")
		object.__setattr__(self, "actions", tuple(self.actions or ()))

	def to_dict(self) -> Dict[str, Any]:
		return {"text": self.text, "actions": [a.to_dict() for a in self.actions]}

def latest_user_utterance(history: Sequence[Message]) -> Optional[str]:
	for message in reversed(history):
		if message.role == Role.USER:
			return message.content
	return None
