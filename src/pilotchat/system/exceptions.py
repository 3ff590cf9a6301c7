"""Custom exception hierarchy for pilotchat."""
class PilotChatError(Exception):
    """Base exception for the pilotchat application."""
    pass

class InterpretationError(PilotChatError):
    """Raised when a remote interpreter response cannot be used."""
    pass

class VehicleError(PilotChatError):
    """Base exception for vehicle-control failures."""
    pass

class VehicleCommandError(VehicleError):
    """Raised when the vehicle rejects or fails to execute a command."""
    pass

class MavlinkError(VehicleError):
    """Exception for MAVLink communication failures."""
    pass

class MavlinkConnectionError(MavlinkError):
    """Exception for failure to establish a MAVLink connection."""
    pass
