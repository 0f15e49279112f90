"""
Loupedeck+ Surface Plugin.

Hardware specifications:
- Knobs P1-P8 plus the larger dials, all endless encoders with push
- Buttons send Note On/Off, encoders send relative Control Change
- Everything on MIDI channel 1 (0 zero-indexed)
- A dedicated "Fn" key (note 110)

================================================================================
MIDI MAPPING
================================================================================

Event            | Message           | Value
-----------------|-------------------|-------------------
<n>Press         | Note On n         | any (velocity)
<n>Left          | CC n              | 127
<n>Right         | CC n              | 1

The P1-P8 knobs report different controller numbers depending on whether
the Hue, Sat or Lum lights are lit: n, n+8, n+16 or n+24. Those display
modes are ignored here; banks replace them, so each of the four numbers
maps to the same logical knob.

While Fn is held every other control selects the "<bank>fn" bank.

================================================================================
"""

import re

from ..logging_config import get_logger
from ..messages import CommandType
from ..plugin import ControlAddress, ModifierKey, SurfacePlugin

logger = get_logger(__name__)


# =============================================================================
# MIDI Constants
# =============================================================================

DEVICE_NAME = "Loupedeck+"
MIDI_CHANNEL = 0
FN_NOTE = 110
FN_BANK_SUFFIX = "fn"

# Knobs with display-mode aliases
ALIASED_KNOBS = range(1, 9)
ALIAS_STRIDE = 8
ALIAS_COUNT = 4

TURN_LEFT_VALUE = 127
TURN_RIGHT_VALUE = 1

_BUTTON_ID_PATTERN = re.compile(r"^(\d+)(Press|Left|Right)$")


class LoupedeckPlusPlugin(SurfacePlugin):
    """Loupedeck+ layout: knob aliasing and Fn bank modifier."""

    @property
    def name(self) -> str:
        return DEVICE_NAME

    @property
    def channel(self) -> int:
        return MIDI_CHANNEL

    @property
    def modifier(self) -> ModifierKey:
        return ModifierKey(note=FN_NOTE, channel=MIDI_CHANNEL, bank_suffix=FN_BANK_SUFFIX)

    def expand_control(self, button_id: str) -> list[ControlAddress]:
        match = _BUTTON_ID_PATTERN.match(button_id)
        if not match:
            logger.debug(f"Ignoring unrecognised Loupedeck+ button ID: {button_id}")
            return []

        number = int(match.group(1))
        event = match.group(2)

        if event == "Press":
            command_type, value = CommandType.NOTE_ON, None
        elif event == "Left":
            command_type, value = CommandType.CONTROL_CHANGE, TURN_LEFT_VALUE
        else:
            command_type, value = CommandType.CONTROL_CHANGE, TURN_RIGHT_VALUE

        addresses = []
        for n in self.alias_numbers(number):
            addresses.append(ControlAddress(command_type, n, value, alias=n != number))
        return addresses

    @staticmethod
    def alias_numbers(number: int) -> list[int]:
        """
        Raw numbers a logical knob can report.

        Example:
            >>> LoupedeckPlusPlugin.alias_numbers(3)
            [3, 11, 19, 27]
        """
        if number in ALIASED_KNOBS:
            return [number + ALIAS_STRIDE * i for i in range(ALIAS_COUNT)]
        return [number]
