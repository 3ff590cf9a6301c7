"""
Main controller: builds the vehicle, interpreters, dispatcher and conversation,
then runs a console chat loop until the operator exits.
"""
import argparse
import asyncio
import logging
import logging.config
import sys

import aiohttp

from pilotchat.config import settings
from pilotchat.config.config_manager import ConfigManager
from pilotchat.components.mavlink_io import MavlinkVehicle
from pilotchat.components.remote_interpreter import RemoteInterpreter
from pilotchat.components.vehicle import SimulatedVehicle, VehicleControl
from pilotchat.system.conversation import Conversation
from pilotchat.system.dispatcher import ActionDispatcher
from pilotchat.system.exceptions import MavlinkError
from pilotchat.system.state import Role

EXIT_WORDS = ("exit", "quit")

LOGGING_CONFIG = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'default': {
            'format': '[%(asctime)s] %(levelname)s %(name)s: %(message)s',
            'datefmt': '%Y-%m-%dT%H:%M:%S',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'default',
            'level': 'DEBUG',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': settings.LOG_LEVEL,
    },
}


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Chat with an ArduPilot vehicle in plain English.")
    parser.add_argument("--config", default="pilotchat.json", help="Path to the JSON settings file")
    parser.add_argument("--simulate", action="store_true", help="Use the simulated vehicle even if a connection string is set")
    return parser.parse_args(argv)


async def build_vehicle(vehicle_settings: dict, simulate: bool = False) -> VehicleControl:
    connection_string = vehicle_settings.get("connection_string")
    if simulate or not connection_string:
        logging.getLogger(__name__).info("Using simulated vehicle.")
        return SimulatedVehicle()
    vehicle = MavlinkVehicle(
        connection_string,
        baudrate=vehicle_settings.get("baudrate"),
        source_system_id=vehicle_settings.get("source_system_id", 255),
        poll_interval_s=vehicle_settings.get("poll_interval_s", 0.5),
    )
    await vehicle.connect()
    return vehicle


def build_interpreter(llm_settings: dict, session: aiohttp.ClientSession) -> RemoteInterpreter:
    return RemoteInterpreter(
        api_key=llm_settings.get("api_key") or settings.GEMINI_API_KEY,
        model=llm_settings.get("model", settings.GEMINI_MODEL),
        base_url=llm_settings.get("base_url", settings.GEMINI_API_BASE_URL),
        api_version=llm_settings.get("api_version", settings.GEMINI_API_VERSION),
        timeout_s=llm_settings.get("timeout_s"),
        session=session,
    )


async def run_console(config: dict, simulate: bool = False):
    logger = logging.getLogger(__name__)
    vehicle = await build_vehicle(config.get("vehicle", {}), simulate=simulate)
    try:
        async with aiohttp.ClientSession() as session:
            conversation = Conversation(
                interpreter=build_interpreter(config.get("llm", {}), session),
                dispatcher=ActionDispatcher(vehicle),
                vehicle=vehicle,
            )
            for message in conversation.messages:
                print(f"Assistant: {message.content}")
            while True:
                line = await asyncio.to_thread(input, "You: ")
                if line.strip().lower() in EXIT_WORDS:
                    break
                reply = await conversation.submit(line)
                if reply is not None and reply.role == Role.ASSISTANT:
                    print(f"Assistant: {reply.content}")
    except EOFError:
        pass
    finally:
        logger.info("Closing vehicle connection.")
        await vehicle.close()


def main(argv=None):
    logging.config.dictConfig(LOGGING_CONFIG)
    logger = logging.getLogger(__name__)
    args = parse_args(argv)
    config = ConfigManager(args.config).settings
    logger.info("Starting pilotchat...")
    try:
        asyncio.run(run_console(config, simulate=args.simulate))
    except KeyboardInterrupt:
        logger.info("KeyboardInterrupt received. Shutting down.")
    except MavlinkError as e:
        logger.error(f"Vehicle link unavailable: {e}. Use --simulate to run without a vehicle.")
        return 1
    logger.info("pilotchat shutdown complete.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
