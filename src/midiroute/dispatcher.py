"""
Event Dispatcher: the per-message MIDI callback.

Each message goes through the same steps:

1. Ignore everything while learning mode is active
2. Resolve the application/bank context
3. Normalize the controller number, controller value and device name
4. Look the event up in the current Compiled Action Index
5. Submit the bound action to the deferred dispatch queue

Nothing in here raises for an unmatched or malformed event; unmatched
events simply end the callback.
"""

import copy
from typing import Callable, Optional, Union

from midiroute.callbacks import DispatchQueue
from midiroute.compiler import BoundAction, CompiledActionIndex, RegistryAction, VirtualControlAction
from midiroute.controls import ControlRegistry
from midiroute.logging_config import get_logger
from midiroute.messages import CommandType, MIDIMetadata
from midiroute.registry import ActionHandlerRegistry
from midiroute.resolver import BankContextResolver

logger = get_logger(__name__)

VIRTUAL_DEVICE_PREFIX = "virtual_"

FrontmostApplication = Callable[[], Optional[str]]
IndexProvider = Callable[[], CompiledActionIndex]


def virtual_device_name(device_name: str) -> str:
    """Device name used for a virtual source, distinct from a physical port of the same name."""
    return f"{VIRTUAL_DEVICE_PREFIX}{device_name}"


class EventDispatcher:
    """
    Routes incoming MIDI messages to bound actions.

    The dispatcher reads the index through a provider on every message, so a
    rebuilt index takes effect on the next message without any locking.
    """

    def __init__(
        self,
        index: IndexProvider,
        resolver: BankContextResolver,
        controls: ControlRegistry,
        handlers: ActionHandlerRegistry,
        queue: DispatchQueue,
        frontmost_application: FrontmostApplication,
        surface_resolvers: Optional[dict[str, BankContextResolver]] = None,
        learning_mode: Optional[Callable[[], bool]] = None,
    ):
        """
        Args:
            index: Returns the current compiled index
            resolver: Resolver for ordinary MIDI devices
            controls: Virtual control registry
            handlers: Action-handler registry
            queue: Deferred dispatch queue
            frontmost_application: Returns the frontmost application ID
            surface_resolvers: Resolvers for surfaces with their own tree, by device name
            learning_mode: Returns True while bindings are being captured
        """
        self._index = index
        self._resolver = resolver
        self._surface_resolvers = surface_resolvers or {}
        self._controls = controls
        self._handlers = handlers
        self._queue = queue
        self._frontmost_application = frontmost_application
        self._learning_mode = learning_mode or (lambda: False)

    def dispatch(
        self,
        device_name: str,
        command_type: Union[CommandType, str],
        metadata: MIDIMetadata,
        description: str = "",
    ) -> Optional[BoundAction]:
        """
        Handle one incoming MIDI message.

        Args:
            device_name: Name of the device that sent the message
            command_type: Command type (CommandType or its string value)
            metadata: Message metadata
            description: Human-readable description (for logs only)

        Returns:
            The binding that was scheduled, or None if nothing was dispatched
        """
        if self._learning_mode():
            return None

        try:
            command_type = CommandType(command_type)
        except ValueError:
            logger.debug(f"Ignoring unsupported command type: {command_type}")
            return None

        resolver = self._surface_resolvers.get(device_name, self._resolver)
        context = resolver.resolve(self._frontmost_application(), command_type, metadata)

        controller_number = metadata.controller_number
        if controller_number is None:
            controller_number = metadata.note

        controller_value = metadata.controller_value
        if metadata.fourteen_bit_command:
            controller_value = metadata.fourteen_bit_value

        if metadata.is_virtual:
            device_name = virtual_device_name(device_name)

        bound = self._index().lookup(
            context.application_id,
            context.bank_id,
            device_name,
            metadata.channel,
            command_type,
            controller_number,
            controller_value,
        )
        if bound is None:
            return None

        if isinstance(bound, VirtualControlAction):
            self._queue.submit(
                self._invoke_control,
                bound.control_id,
                metadata,
                device_name,
                description=f"virtual control {bound.control_id}",
            )
            return bound

        if not self._is_executable(command_type, metadata):
            return None

        self._queue.submit(
            self._execute_action,
            bound,
            description=f"handler {bound.handler_id}",
        )
        logger.debug(f"Dispatching {description or command_type.value} from {device_name} to {bound.handler_id}")
        return bound

    __call__ = dispatch

    @staticmethod
    def _is_executable(command_type: CommandType, metadata: MIDIMetadata) -> bool:
        """Registry actions only fire for wheel, CC and real note-on (velocity 0 is a note off)."""
        if command_type in (CommandType.PITCH_WHEEL_CHANGE, CommandType.CONTROL_CHANGE):
            return True
        return command_type == CommandType.NOTE_ON and metadata.velocity != 0

    def _invoke_control(self, control_id: str, metadata: MIDIMetadata, device_name: str) -> None:
        control = self._controls.get(control_id)
        if control is None:
            logger.debug(f"Virtual control not found: {control_id}")
            return
        control.invoke(metadata, device_name)

    def _execute_action(self, bound: RegistryAction) -> None:
        handler = self._handlers.get_handler(bound.handler_id)
        if handler is None:
            logger.debug(f"Action handler not found: {bound.handler_id}")
            return
        handler.execute(copy.deepcopy(bound.action))
