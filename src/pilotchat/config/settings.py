"""Configuration for pilotchat; values are read from environment with defaults."""
from decouple import config

def _optional_float(value):
    return float(value) if value not in (None, "") else None

# Remote interpreter (Gemini)
GEMINI_API_KEY = config('GEMINI_API_KEY', default='')
GEMINI_MODEL = config('GEMINI_MODEL', default='gemini-1.5-pro')
GEMINI_API_BASE_URL = config('GEMINI_API_BASE_URL', default='https://generativelanguage.googleapis.com')
GEMINI_API_VERSION = config('GEMINI_API_VERSION', default='v1')
# Unset: rely on the transport's own timeout
LLM_TIMEOUT_S = config('LLM_TIMEOUT_S', default='', cast=_optional_float)

# Vehicle / MAVLink Configuration
# Empty connection string selects the simulated vehicle
VEHICLE_CONNECTION_STRING = config('VEHICLE_CONNECTION_STRING', default='')
MAVLINK_BAUDRATE = config('MAVLINK_BAUDRATE', default=115200, cast=int)
MAVLINK_SOURCE_SYSTEM_ID = config('MAVLINK_SOURCE_SYSTEM_ID', default=255, cast=int)
TELEMETRY_POLL_INTERVAL_S = config('TELEMETRY_POLL_INTERVAL_S', default=0.5, cast=float)

# Logging
LOG_LEVEL = config('LOG_LEVEL', default='INFO')
