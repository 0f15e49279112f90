"""
Action Compiler: preference trees -> Compiled Action Index.

The preference trees are nested per application, bank and button, which
suits the editor but not the MIDI callback. compile_actions() flattens them
into a single mapping keyed by the full address of an incoming event:

    (application_id, bank_id, device_name, channel, command_type,
     controller_number, controller_value)

controller_number is None for pitch wheel bindings and controller_value is
None for the valueless fallback binding of a controller. The index is
rebuilt wholesale on every preference change and never patched.
"""

from types import MappingProxyType
from typing import Any, Iterator, Mapping, NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from midiroute.config import (
    ActionPayload,
    ButtonPreference,
    LoupedeckButtonPreference,
    iter_banks,
    iter_buttons,
)
from midiroute.controls import is_virtual_control_handler
from midiroute.logging_config import get_logger
from midiroute.messages import CommandType
from midiroute.plugin import SurfacePlugin

logger = get_logger(__name__)


class ActionKey(NamedTuple):
    """Full address of a compiled binding."""

    application_id: str
    bank_id: str
    device_name: str
    channel: int
    command_type: CommandType
    controller_number: Optional[int]
    controller_value: Optional[int]


class VirtualControlAction(BaseModel):
    """Binding that invokes an in-process virtual control."""

    model_config = ConfigDict(frozen=True)

    control_id: str
    handler_id: str


class RegistryAction(BaseModel):
    """Binding executed through the action-handler registry."""

    model_config = ConfigDict(frozen=True)

    handler_id: Optional[str]
    action: ActionPayload


BoundAction = Union[VirtualControlAction, RegistryAction]


def make_bound_action(handler_id: Optional[str], action: Any) -> Optional[BoundAction]:
    """
    Build the tagged binding for a record's handler ID and action payload.

    Returns None when a virtual control binding has no usable control ID.
    """
    if is_virtual_control_handler(handler_id):
        control_id = action.get("id") if isinstance(action, dict) else action
        if not isinstance(control_id, str) or not control_id:
            return None
        return VirtualControlAction(control_id=control_id, handler_id=handler_id)
    return RegistryAction(handler_id=handler_id, action=action)


class CompiledActionIndex:
    """
    Read-only lookup table of compiled bindings.

    Instances are immutable; a rebuild produces a new index that replaces
    the old one by reference.
    """

    def __init__(self, entries: Optional[Mapping[ActionKey, BoundAction]] = None):
        self._entries = MappingProxyType(dict(entries or {}))

    @property
    def entries(self) -> Mapping[ActionKey, BoundAction]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ActionKey]:
        return iter(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CompiledActionIndex):
            return NotImplemented
        return dict(self._entries) == dict(other._entries)

    def get(self, key: ActionKey) -> Optional[BoundAction]:
        return self._entries.get(key)

    def lookup(
        self,
        application_id: str,
        bank_id: str,
        device_name: str,
        channel: int,
        command_type: CommandType,
        controller_number: Optional[int],
        controller_value: Optional[int],
    ) -> Optional[BoundAction]:
        """
        Resolve an incoming event to a binding.

        Pitch wheel events have no controller number and use the
        command-type level entry. Other events prefer the binding for the
        exact controller value and fall back to the valueless binding.

        Returns:
            The bound action, or None if nothing matches
        """
        if command_type == CommandType.PITCH_WHEEL_CHANGE:
            return self._entries.get(
                ActionKey(application_id, bank_id, device_name, channel, command_type, None, None),
            )

        if controller_number is None:
            return None

        if controller_value is not None:
            exact = self._entries.get(
                ActionKey(application_id, bank_id, device_name, channel, command_type, controller_number, controller_value),
            )
            if exact is not None:
                return exact

        return self._entries.get(
            ActionKey(application_id, bank_id, device_name, channel, command_type, controller_number, None),
        )

    def devices(self) -> set[str]:
        """Device names referenced by compiled bindings."""
        return {key.device_name for key in self._entries}


class _IndexBuilder:
    """Accumulates entries with explicit-over-alias precedence."""

    def __init__(self):
        self.entries: dict[ActionKey, BoundAction] = {}
        self._explicit: set[ActionKey] = set()

    def add(self, key: ActionKey, bound: BoundAction, alias: bool = False) -> None:
        if alias:
            if key in self._explicit:
                return
            self.entries[key] = bound
            return

        if key in self._explicit and self.entries[key] != bound:
            logger.warning(f"Conflicting bindings for {tuple(key)}, keeping the last one")
        self.entries[key] = bound
        self._explicit.add(key)


def _compile_midi_tree(builder: _IndexBuilder, tree: Any) -> None:
    for application_id, bank_id, bank in iter_banks(tree):
        for button_id, record in iter_buttons(bank):
            try:
                button = ButtonPreference.model_validate(record)
            except ValidationError as e:
                logger.debug(
                    f"Skipping incomplete binding {application_id}/{bank_id}/{button_id}: "
                    f"{e.error_count()} validation error(s)",
                )
                continue

            if button.action is None:
                continue

            bound = make_bound_action(button.handler_id, button.action)
            if bound is None:
                logger.debug(f"Skipping virtual control binding without control ID: {button_id}")
                continue

            if button.command_type == CommandType.PITCH_WHEEL_CHANGE:
                number, value = None, None
            else:
                number = button.number
                # Virtual controls receive every value themselves
                value = button.value if isinstance(bound, RegistryAction) else None

            key = ActionKey(
                application_id,
                bank_id,
                button.device,
                button.channel,
                button.command_type,
                number,
                value,
            )
            builder.add(key, bound)


def _compile_surface_tree(builder: _IndexBuilder, tree: Any, plugin: SurfacePlugin) -> None:
    for application_id, bank_id, bank in iter_banks(tree):
        for button_id, record in iter_buttons(bank):
            try:
                button = LoupedeckButtonPreference.model_validate(record)
            except ValidationError:
                continue

            bound = make_bound_action(button.handler_id, button.action)
            if bound is None:
                continue

            for address in plugin.expand_control(button_id):
                key = ActionKey(
                    application_id,
                    bank_id,
                    plugin.device_name,
                    plugin.channel,
                    address.command_type,
                    address.number,
                    address.value,
                )
                builder.add(key, bound, alias=address.alias)


def compile_actions(
    midi_tree: Any,
    surface_tree: Any = None,
    surface_plugin: Optional[SurfacePlugin] = None,
) -> CompiledActionIndex:
    """
    Compile preference trees into a fresh CompiledActionIndex.

    Args:
        midi_tree: MIDI preference tree (application -> bank -> button -> record)
        surface_tree: Preference tree of a surface with its own layout
        surface_plugin: Plugin that expands the surface tree's button IDs

    Returns:
        A new index. Compiling the same trees twice yields equal indexes.
    """
    builder = _IndexBuilder()
    _compile_midi_tree(builder, midi_tree)

    if surface_tree and surface_plugin is not None:
        _compile_surface_tree(builder, surface_tree, surface_plugin)

    logger.debug(f"Compiled {len(builder.entries)} MIDI actions")
    return CompiledActionIndex(builder.entries)


def referenced_devices(tree: Any) -> set[str]:
    """
    Device names referenced anywhere in a MIDI preference tree.

    Counts every record with a device, compiled or not, so a device that is
    still being configured in the editor is already watched.
    """
    devices = set()
    for _, _, bank in iter_banks(tree):
        for _, record in iter_buttons(bank):
            device = record.get("device")
            if isinstance(device, str) and device:
                devices.add(device)
    return devices
