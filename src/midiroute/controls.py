"""
Virtual controls: in-process functions bound to MIDI controls.

A virtual control is invoked directly with the raw message metadata (for
example a timeline zoom slider that reads the 14-bit value) instead of
going through an action handler's execute().
"""

import threading
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict

from midiroute.logging_config import get_logger
from midiroute.messages import MIDIMetadata

logger = get_logger(__name__)

# Handler IDs ending in this suffix target a virtual control
VIRTUAL_CONTROL_SUFFIX = "_midicontrols"

VirtualControlFunction = Callable[[MIDIMetadata, str], Any]


def is_virtual_control_handler(handler_id: Optional[str]) -> bool:
    """Check whether a handler ID marks a virtual control binding."""
    return bool(handler_id) and handler_id.endswith(VIRTUAL_CONTROL_SUFFIX)


def virtual_control_handler_id(group: str) -> str:
    """Handler ID for the virtual controls in a group (e.g. "fcpx_midicontrols")."""
    return f"{group}{VIRTUAL_CONTROL_SUFFIX}"


class VirtualControl(BaseModel):
    """
    A registered virtual control.

    Attributes:
        control_id: Unique ID stored in binding actions ({"id": control_id})
        group: Group the control belongs to (e.g. "fcpx")
        text: Display name for action choosers
        sub_text: Optional description
        fn: Function(metadata, device_name) invoked on each matching message
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    control_id: str
    group: str
    text: str
    sub_text: Optional[str] = None
    fn: VirtualControlFunction

    def invoke(self, metadata: MIDIMetadata, device_name: str) -> Any:
        return self.fn(metadata, device_name)


class ControlRegistry:
    """Registry of virtual controls by ID."""

    def __init__(self):
        self._controls: dict[str, VirtualControl] = {}
        self._lock = threading.RLock()

    def new(
        self,
        control_id: str,
        group: str,
        text: str,
        fn: VirtualControlFunction,
        sub_text: Optional[str] = None,
    ) -> VirtualControl:
        """
        Create and register a virtual control.

        Args:
            control_id: Unique control ID
            group: Control group
            text: Display name
            fn: Function(metadata, device_name) to invoke
            sub_text: Optional description

        Returns:
            The registered control
        """
        control = VirtualControl(control_id=control_id, group=group, text=text, sub_text=sub_text, fn=fn)
        with self._lock:
            if control_id in self._controls:
                logger.warning(f"Virtual control '{control_id}' already registered, overwriting")
            self._controls[control_id] = control
        logger.debug(f"Registered virtual control: {control_id} (group: {group})")
        return control

    def remove(self, control_id: str) -> bool:
        with self._lock:
            return self._controls.pop(control_id, None) is not None

    def get(self, control_id: str) -> Optional[VirtualControl]:
        with self._lock:
            return self._controls.get(control_id)

    def get_all(self) -> list[VirtualControl]:
        with self._lock:
            return list(self._controls.values())

    def all_groups(self) -> list[str]:
        """Sorted list of the distinct groups of registered controls."""
        with self._lock:
            return sorted({control.group for control in self._controls.values()})
