"""
MIDI message model used by the router.

Incoming mido messages are translated into a command type plus a flat
MIDIMetadata record. Command type names follow the camelCase names stored
in the preference files ("noteOn", "controlChange", "pitchWheelChange", ...)
so compiled keys and incoming events compare directly.
"""

from enum import Enum
from typing import Optional

import mido
from pydantic import BaseModel, Field

PITCH_WHEEL_CENTER = 8192
FOURTEEN_BIT_MAX = 16383


class CommandType(str, Enum):
    """MIDI command types as named in the preference files."""

    NOTE_OFF = "noteOff"
    NOTE_ON = "noteOn"
    POLYPHONIC_KEY_PRESSURE = "polyphonicKeyPressure"
    CONTROL_CHANGE = "controlChange"
    PROGRAM_CHANGE = "programChange"
    CHANNEL_PRESSURE = "channelPressure"
    PITCH_WHEEL_CHANGE = "pitchWheelChange"


# mido message type -> CommandType
MIDO_COMMAND_TYPES: dict[str, CommandType] = {
    "note_off": CommandType.NOTE_OFF,
    "note_on": CommandType.NOTE_ON,
    "polytouch": CommandType.POLYPHONIC_KEY_PRESSURE,
    "control_change": CommandType.CONTROL_CHANGE,
    "program_change": CommandType.PROGRAM_CHANGE,
    "aftertouch": CommandType.CHANNEL_PRESSURE,
    "pitchwheel": CommandType.PITCH_WHEEL_CHANGE,
}


class MIDIMetadata(BaseModel):
    """
    Metadata for one incoming MIDI message.

    Note-style messages fill note/velocity, CC messages fill
    controller_number/controller_value. Pitch wheel messages carry the
    unsigned 14-bit position in fourteen_bit_value with
    fourteen_bit_command set.
    """

    channel: int = Field(ge=0, le=15, default=0)
    note: Optional[int] = Field(default=None, ge=0, le=127)
    velocity: Optional[int] = Field(default=None, ge=0, le=127)
    controller_number: Optional[int] = Field(default=None, ge=0, le=127)
    controller_value: Optional[int] = Field(default=None, ge=0, le=127)
    program_number: Optional[int] = Field(default=None, ge=0, le=127)
    pressure: Optional[int] = Field(default=None, ge=0, le=127)
    pitch_change: Optional[int] = Field(default=None, ge=0, le=FOURTEEN_BIT_MAX)
    fourteen_bit_command: bool = False
    fourteen_bit_value: Optional[int] = Field(default=None, ge=0, le=FOURTEEN_BIT_MAX)
    is_virtual: bool = False
    timestamp: Optional[float] = None


def translate_message(msg: mido.Message, is_virtual: bool = False) -> Optional[tuple[CommandType, MIDIMetadata]]:
    """
    Translate a mido message into (command_type, metadata).

    Args:
        msg: Incoming mido message
        is_virtual: Whether the message arrived on a virtual source

    Returns:
        (command_type, metadata), or None for message types the router
        does not handle (sysex, clock, ...)
    """
    command_type = MIDO_COMMAND_TYPES.get(msg.type)
    if command_type is None:
        return None

    fields = {"channel": msg.channel, "is_virtual": is_virtual}
    timestamp = getattr(msg, "time", None)
    if timestamp:
        fields["timestamp"] = float(timestamp)

    if command_type in (CommandType.NOTE_ON, CommandType.NOTE_OFF):
        fields["note"] = msg.note
        fields["velocity"] = msg.velocity
    elif command_type == CommandType.POLYPHONIC_KEY_PRESSURE:
        fields["note"] = msg.note
        fields["pressure"] = msg.value
    elif command_type == CommandType.CONTROL_CHANGE:
        fields["controller_number"] = msg.control
        fields["controller_value"] = msg.value
    elif command_type == CommandType.PROGRAM_CHANGE:
        fields["program_number"] = msg.program
    elif command_type == CommandType.CHANNEL_PRESSURE:
        fields["pressure"] = msg.value
    elif command_type == CommandType.PITCH_WHEEL_CHANGE:
        position = msg.pitch + PITCH_WHEEL_CENTER
        fields["pitch_change"] = position
        fields["controller_value"] = position >> 7
        fields["fourteen_bit_command"] = True
        fields["fourteen_bit_value"] = position

    return command_type, MIDIMetadata(**fields)


class FourteenBitMerger:
    """
    Merges coarse/fine controller pairs into 14-bit values.

    Controllers 0-31 carry the most significant 7 bits and controllers
    32-63 the least significant 7 bits of the same logical control. Both
    halves are reported as the coarse controller number with
    fourteen_bit_command set; a fine half with no coarse half seen yet
    passes through untouched.

    State is kept per (channel, controller) so one merger can serve a
    single device.
    """

    COARSE_RANGE = range(0, 32)
    FINE_OFFSET = 32

    def __init__(self):
        self._coarse: dict[tuple[int, int], int] = {}
        self._fine: dict[tuple[int, int], int] = {}

    def reset(self) -> None:
        self._coarse.clear()
        self._fine.clear()

    def merge(self, command_type: CommandType, metadata: MIDIMetadata) -> MIDIMetadata:
        if command_type != CommandType.CONTROL_CHANGE or metadata.controller_number is None:
            return metadata

        number = metadata.controller_number
        value = metadata.controller_value or 0

        if number in self.COARSE_RANGE:
            key = (metadata.channel, number)
            self._coarse[key] = value
            fine = self._fine.get(key, 0)
            return metadata.model_copy(
                update={"fourteen_bit_command": True, "fourteen_bit_value": (value << 7) | fine},
            )

        coarse_number = number - self.FINE_OFFSET
        if coarse_number in self.COARSE_RANGE:
            key = (metadata.channel, coarse_number)
            if key not in self._coarse:
                return metadata
            self._fine[key] = value
            coarse = self._coarse[key]
            return metadata.model_copy(
                update={
                    "controller_number": coarse_number,
                    "controller_value": coarse,
                    "fourteen_bit_command": True,
                    "fourteen_bit_value": (coarse << 7) | value,
                },
            )

        return metadata
