"""
Plugin architecture for control surfaces with non-uniform layouts.

Most MIDI devices are bound message-by-message in the MIDI preference tree.
Some surfaces instead have their own preference tree keyed by logical
button IDs ("3Left", "5Press"), and the same logical control can emit
several raw MIDI addresses. A SurfacePlugin describes how one such surface
expands a logical button ID into raw addresses, and which key (if any)
acts as a bank modifier.
"""

from abc import ABC, abstractmethod
from typing import NamedTuple, Optional

from pydantic import BaseModel, Field

from .messages import CommandType


class ControlAddress(NamedTuple):
    """
    A raw MIDI address a logical surface control responds to.

    Attributes:
        command_type: Command type emitted by the control
        number: Note or controller number
        value: Exact value the binding is restricted to, or None
        alias: True when this address is a fan-out alias of the logical control
    """

    command_type: CommandType
    number: int
    value: Optional[int] = None
    alias: bool = False


class ModifierKey(BaseModel):
    """
    A dedicated modifier key that selects an alternate bank while held.

    Attributes:
        note: Note number the key sends
        channel: MIDI channel the key sends on
        bank_suffix: Suffix appended to the bank ID while held
    """

    note: int = Field(ge=0, le=127)
    channel: int = Field(ge=0, le=15, default=0)
    bank_suffix: str = "fn"

    def matches(self, channel: int, note: Optional[int]) -> bool:
        return note == self.note and channel == self.channel


class SurfacePlugin(ABC):
    """
    Abstract base class for surface-specific layouts.

    Plugins define:
    - The device name the surface reports
    - The channel its controls send on
    - How a logical button ID expands into raw MIDI addresses
    - An optional bank modifier key
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Plugin name (should match the surface name)."""
        pass

    @property
    def device_name(self) -> str:
        """MIDI device name the surface reports. Defaults to the plugin name."""
        return self.name

    @property
    def channel(self) -> int:
        """Channel all surface controls send on."""
        return 0

    @property
    def modifier(self) -> Optional[ModifierKey]:
        """Bank modifier key, or None if the surface has none."""
        return None

    @abstractmethod
    def expand_control(self, button_id: str) -> list[ControlAddress]:
        """
        Expand a logical button ID into the raw addresses it responds to.

        Args:
            button_id: Button ID as stored in the surface preference tree

        Returns:
            List of addresses; empty if the button ID is not recognised
        """
        pass
