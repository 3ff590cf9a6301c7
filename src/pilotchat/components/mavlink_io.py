"""MAVLink controller: connect, change modes, arm, take off, fly-to and telemetry reads."""
import asyncio
import contextlib
import threading
import logging
from typing import Optional

from pymavlink import mavutil
from pilotchat.components.vehicle import VehicleControl
from pilotchat.system.exceptions import MavlinkError, MavlinkConnectionError, VehicleCommandError
from pilotchat.system.state import VehicleTelemetrySnapshot

UNKNOWN_STATE = VehicleTelemetrySnapshot(
	mode="UNKNOWN", armed=False, latitude=0.0, longitude=0.0, altitude=0.0,
	heading=0.0, groundspeed=0.0, battery_voltage=0.0, battery_percent=0,
)

# SYS_STATUS voltage_battery sentinel (UINT16_MAX) for "not reported"
UNKNOWN_BATTERY_VOLTAGE = 65535

POSITION_ONLY_TYPE_MASK = (
	mavutil.mavlink.POSITION_TARGET_TYPEMASK_VX_IGNORE
	| mavutil.mavlink.POSITION_TARGET_TYPEMASK_VY_IGNORE
	| mavutil.mavlink.POSITION_TARGET_TYPEMASK_VZ_IGNORE
	| mavutil.mavlink.POSITION_TARGET_TYPEMASK_AX_IGNORE
	| mavutil.mavlink.POSITION_TARGET_TYPEMASK_AY_IGNORE
	| mavutil.mavlink.POSITION_TARGET_TYPEMASK_AZ_IGNORE
	| mavutil.mavlink.POSITION_TARGET_TYPEMASK_YAW_IGNORE
	| mavutil.mavlink.POSITION_TARGET_TYPEMASK_YAW_RATE_IGNORE
)


class MavlinkController:
	"""Blocking pymavlink wrapper for a single vehicle. Command methods return True when ACKed."""
	def __init__(self, connection_string: str, baudrate: int | None = None, source_system_id: int = 255):
		self.logger = logging.getLogger(__name__)
		self.connection_string = connection_string
		self.baudrate = baudrate
		self.source_system_id = source_system_id
		self.master = None

	def connect(self, timeout_s: float = 10):
		"""Establish connection to the vehicle and wait for heartbeat."""
		try:
			if "com" in self.connection_string.lower() or "/dev/tty" in self.connection_string.lower():
				self.master = mavutil.mavlink_connection(
					self.connection_string, baud=self.baudrate, source_system=self.source_system_id
				)
			else:
				self.master = mavutil.mavlink_connection(
					self.connection_string,
					source_system=self.source_system_id,
					dialect="ardupilotmega",
					autoreconnect=True,
					mavlink2=True,
				)
			self.logger.info(f"MAVLink: Waiting for heartbeat (timeout {timeout_s}s) on {self.connection_string}...")
			heartbeat = self.master.wait_heartbeat(timeout=timeout_s)
		except Exception as e:
			self.master = None
			raise MavlinkError(f"Exception during MAVLink connection: {e}") from e
		if heartbeat is None or self.master.target_system == 0:
			self.master = None
			raise MavlinkConnectionError(f"No valid heartbeat from {self.connection_string}")
		self.logger.info(
			f"MAVLink: Heartbeat from system {self.master.target_system} component {self.master.target_component}."
		)

	def is_connected(self) -> bool:
		return self.master is not None

	def _command_long(self, command, *params, timeout_s: float = 3) -> bool:
		if not self.is_connected():
			self.logger.error(f"MAVLink: Not connected. Cannot send command {command}.")
			return False
		args = (list(params) + [0] * 7)[:7]
		self.master.mav.command_long_send(
			self.master.target_system, self.master.target_component, command, 0, *args
		)
		ack = self.master.recv_match(type='COMMAND_ACK', blocking=True, timeout=timeout_s)
		if ack and ack.command == command and ack.result == mavutil.mavlink.MAV_RESULT_ACCEPTED:
			return True
		self.logger.error(f"MAVLink: Command {command} failed or no ACK: {ack}")
		return False

	def set_mode(self, mode_name: str) -> bool:
		if not self.is_connected():
			self.logger.error("MAVLink: Not connected. Cannot set mode.")
			return False
		mode_mapping = self.master.mode_mapping()
		if mode_mapping is None or mode_name.upper() not in mode_mapping:
			self.logger.error(f"MAVLink: Unknown mode: {mode_name}")
			return False
		self.master.mav.set_mode_send(
			self.master.target_system,
			mavutil.mavlink.MAV_MODE_FLAG_CUSTOM_MODE_ENABLED,
			mode_mapping[mode_name.upper()],
		)
		ack = self.master.recv_match(type='COMMAND_ACK', blocking=True, timeout=3)
		if ack and ack.result == mavutil.mavlink.MAV_RESULT_ACCEPTED:
			self.logger.info(f"MAVLink: Mode {mode_name.upper()} accepted.")
			return True
		self.logger.error(f"MAVLink: Mode change failed or no ACK: {ack}")
		return False

	def arm_vehicle(self) -> bool:
		ok = self._command_long(mavutil.mavlink.MAV_CMD_COMPONENT_ARM_DISARM, 1, timeout_s=5)
		if ok:
			self.logger.info("MAVLink: Armed.")
		return ok

	def disarm_vehicle(self) -> bool:
		ok = self._command_long(mavutil.mavlink.MAV_CMD_COMPONENT_ARM_DISARM, 0, timeout_s=5)
		if ok:
			self.logger.info("MAVLink: Disarmed.")
		return ok

	def takeoff(self, altitude_m: float) -> bool:
		ok = self._command_long(mavutil.mavlink.MAV_CMD_NAV_TAKEOFF, 0, 0, 0, 0, 0, 0, float(altitude_m))
		if ok:
			self.logger.info(f"MAVLink: Takeoff to {altitude_m}m accepted.")
		return ok

	def return_to_launch(self) -> bool:
		return self.set_mode("RTL")

	def fly_to(self, lat: float, lon: float, altitude_m: float) -> bool:
		"""Send a GUIDED position target. The caller is responsible for being in GUIDED mode."""
		if not self.is_connected():
			self.logger.error("MAVLink: Not connected. Cannot fly to location.")
			return False
		self.master.mav.set_position_target_global_int_send(
			0,
			self.master.target_system,
			self.master.target_component,
			mavutil.mavlink.MAV_FRAME_GLOBAL_RELATIVE_ALT_INT,
			POSITION_ONLY_TYPE_MASK,
			int(lat * 1e7),
			int(lon * 1e7),
			float(altitude_m),
			0, 0, 0,
			0, 0, 0,
			0, 0,
		)
		self.logger.info(f"MAVLink: Fly-to command sent to ({lat}, {lon}) at {altitude_m}m.")
		return True

	def read_telemetry(self, previous: VehicleTelemetrySnapshot) -> VehicleTelemetrySnapshot:
		"""Drain pending messages and build a snapshot from the latest of each type."""
		if not self.is_connected():
			return previous
		for _ in range(200):
			if not self.master.recv_match(blocking=False):
				break
		messages = self.master.messages
		values = previous.to_dict()
		if 'HEARTBEAT' in messages:
			values["mode"] = self.master.flightmode
			values["armed"] = bool(self.master.motors_armed())
		pos = messages.get('GLOBAL_POSITION_INT')
		if pos is not None:
			values["latitude"] = pos.lat / 1e7
			values["longitude"] = pos.lon / 1e7
			values["altitude"] = pos.relative_alt / 1000.0
			if pos.hdg != 65535:
				values["heading"] = pos.hdg / 100.0
		hud = messages.get('VFR_HUD')
		if hud is not None:
			values["groundspeed"] = float(hud.groundspeed)
			if pos is None or pos.hdg == 65535:
				values["heading"] = float(hud.heading)
		sys_status = messages.get('SYS_STATUS')
		if sys_status is not None:
			if sys_status.voltage_battery != UNKNOWN_BATTERY_VOLTAGE:
				values["batteryVoltage"] = sys_status.voltage_battery / 1000.0
			if sys_status.battery_remaining >= 0:
				values["batteryPercent"] = sys_status.battery_remaining
		return VehicleTelemetrySnapshot(
			mode=values["mode"],
			armed=values["armed"],
			latitude=values["latitude"],
			longitude=values["longitude"],
			altitude=values["altitude"],
			heading=values["heading"] % 360,
			groundspeed=values["groundspeed"],
			battery_voltage=values["batteryVoltage"],
			battery_percent=values["batteryPercent"],
		)

	def close_connection(self):
		if self.master:
			self.master.close()
			self.master = None
			self.logger.info(f"MAVLink: Connection closed for {self.connection_string}.")


class MavlinkVehicle(VehicleControl):
	"""Async VehicleControl over a MavlinkController; blocking I/O runs in worker threads."""
	def __init__(self, connection_string: str, baudrate: Optional[int] = None, source_system_id: int = 255,
	             poll_interval_s: float = 0.5, controller: Optional[MavlinkController] = None):
		super().__init__()
		self.controller = controller or MavlinkController(connection_string, baudrate, source_system_id)
		self.poll_interval_s = poll_interval_s
		self._lock = threading.Lock()
		self._state = UNKNOWN_STATE
		self._poll_task: Optional[asyncio.Task] = None

	def get_current_state(self) -> VehicleTelemetrySnapshot:
		return self._state

	def _locked(self, fn, *args):
		with self._lock:
			return fn(*args)

	async def connect(self):
		await asyncio.to_thread(self._locked, self.controller.connect)
		await self.refresh_state()
		self._poll_task = asyncio.create_task(self._poll_loop())

	async def refresh_state(self):
		state = await asyncio.to_thread(self._locked, self.controller.read_telemetry, self._state)
		if state != self._state:
			self._state = state
			self._notify_state_changed()

	async def _poll_loop(self):
		while True:
			try:
				await self.refresh_state()
			except Exception as e:
				self.logger.warning(f"Telemetry poll failed: {e}")
			await asyncio.sleep(self.poll_interval_s)

	async def _command(self, description: str, fn, *args):
		ok = await asyncio.to_thread(self._locked, fn, *args)
		if not ok:
			raise VehicleCommandError(f"{description} was not accepted by the vehicle.")
		await self.refresh_state()

	async def arm(self):
		await self._command("Arm", self.controller.arm_vehicle)

	async def disarm(self):
		await self._command("Disarm", self.controller.disarm_vehicle)

	async def takeoff(self, altitude_m: float):
		await self._command(f"Takeoff to {altitude_m}m", self.controller.takeoff, altitude_m)

	async def return_to_launch(self):
		await self._command("Return to launch", self.controller.return_to_launch)

	async def set_mode(self, mode_name: str):
		await self._command(f"Mode {mode_name}", self.controller.set_mode, mode_name)

	async def fly_to(self, lat: float, lon: float, altitude_m: float):
		await self._command(f"Fly to ({lat}, {lon})", self.controller.fly_to, lat, lon, altitude_m)

	async def close(self):
		if self._poll_task:
			self._poll_task.cancel()
			with contextlib.suppress(asyncio.CancelledError):
				await self._poll_task
			self._poll_task = None
		await asyncio.to_thread(self._locked, self.controller.close_connection)
