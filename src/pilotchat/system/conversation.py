"""Conversation orchestrator: owns the transcript and runs one command pipeline at a time."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, List, Optional, Tuple

from pilotchat.components.vehicle import VehicleControl
from pilotchat.system.dispatcher import ActionDispatcher
from pilotchat.system.state import ConversationState, Message, Role

WELCOME_TEXT = "Hello! I'm your ArduPilot AI Assistant. How can I help you with your drone today?"
APOLOGY_TEXT = "I'm sorry, I encountered an error processing your request. Please try again."

# listener(event, payload): ("message", Message) or ("state", ConversationState)
ConversationListener = Callable[[str, Any], None]


class Conversation:
    """Append-only transcript plus the Idle -> Processing -> Idle pipeline per utterance.

    ``interpreter`` needs an async ``interpret(history, telemetry)``; the remote
    interpreter is the normal choice.
    """
    def __init__(self, interpreter, dispatcher: ActionDispatcher, vehicle: VehicleControl,
                 welcome_text: Optional[str] = WELCOME_TEXT):
        self.logger = logging.getLogger(__name__)
        self.interpreter = interpreter
        self.dispatcher = dispatcher
        self.vehicle = vehicle
        self._messages: List[Message] = []
        self._state = ConversationState.IDLE
        self._active_run: Optional[asyncio.Task] = None
        self._listeners: List[ConversationListener] = []
        if welcome_text:
            self._append(Message.create(Role.ASSISTANT, welcome_text))

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def state(self) -> ConversationState:
        return self._state

    @property
    def is_processing(self) -> bool:
        return self._active_run is not None and not self._active_run.done()

    def add_listener(self, callback: ConversationListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _emit(self, event: str, payload: Any):
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception as e:
                self.logger.warning(f"Conversation listener failed: {e}")

    def _append(self, message: Message):
        self._messages.append(message)
        self._emit("message", message)

    def _set_state(self, state: ConversationState):
        self._state = state
        self._emit("state", state)

    async def submit(self, text: str) -> Optional[Message]:
        """Run the pipeline for one utterance and return the assistant reply.

        Returns None without touching the transcript when the input is blank or a
        previous submission is still being processed.
        """
        if not text or not text.strip():
            return None
        if self.is_processing:
            self.logger.info(f"Ignoring submission while processing: '{text}'")
            return None

        self._append(Message.create(Role.USER, text))
        self._set_state(ConversationState.PROCESSING)
        self._active_run = asyncio.ensure_future(self._run_pipeline())
        try:
            try:
                reply_text = await self._active_run
            except Exception as e:
                self.logger.error(f"Error processing message: {e}", exc_info=True)
                reply_text = APOLOGY_TEXT
            reply = Message.create(Role.ASSISTANT, reply_text)
            self._append(reply)
        finally:
            # Cancellation leaves the user message unanswered but never stuck in PROCESSING
            self._active_run = None
            self._set_state(ConversationState.IDLE)
        return reply

    async def _run_pipeline(self) -> str:
        telemetry = self.vehicle.get_current_state()
        result = await self.interpreter.interpret(self.messages, telemetry)
        if result.actions:
            report = await self.dispatcher.dispatch(result.actions, telemetry)
            if not report.ok:
                self.logger.warning(f"{len(report.failed)} of {len(result.actions)} action(s) failed")
        return result.text
