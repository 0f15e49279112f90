"""
Pydantic models for persisted binding records and manager settings.

The preference files are written by a UI that stores numbers as strings and
uses "" for "not set", so the record models coerce those forms on the way in.
"""

from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from midiroute.logging_config import get_logger
from midiroute.messages import CommandType

logger = get_logger(__name__)

ALL_APPLICATIONS = "All Applications"
DEFAULT_BANK = "1"
FINAL_CUT_PRO_BUNDLE_ID = "com.apple.FinalCut"

MIDI_FOLDER = "MIDI Controls"
MIDI_SETTINGS_FILE = "Settings.cpMIDI"
MIDI_LEGACY_FILE = "Default.cpMIDI"

LOUPEDECK_FOLDER = "Loupedeck+"
LOUPEDECK_SETTINGS_FILE = "Settings.cpLoupedeckPlus"
LOUPEDECK_LEGACY_FOLDER = "Loupedeck"
LOUPEDECK_LEGACY_FILE = "Default.cpLoupedeck"

# Keys inside an application entry or a bank entry that are not buttons
IGNORE_KEY = "ignore"
BANK_LABEL_KEY = "bankLabel"

ActionPayload = Union[dict[str, Any], str]


class ConfigurationError(Exception):
    """Raised when manager settings are invalid."""

    pass


def _blank_to_none(v):
    if v is None:
        return None
    if isinstance(v, str) and v.strip() == "":
        return None
    return v


class ButtonPreference(BaseModel):
    """
    One button record from the MIDI preference tree.

    Only the fields the router needs are modelled; UI fields such as
    actionTitle are ignored.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    device: str
    channel: int = Field(ge=0, le=15)
    command_type: CommandType = Field(alias="commandType")
    number: Optional[int] = Field(default=None, ge=0, le=127)
    value: Optional[int] = None
    action: Optional[ActionPayload] = None
    handler_id: Optional[str] = Field(default=None, alias="handlerID")

    @field_validator("device")
    @classmethod
    def validate_device(cls, v):
        if not v:
            raise ValueError("device must not be empty")
        return v

    @field_validator("channel", "number", "value", mode="before")
    @classmethod
    def coerce_optional_int(cls, v):
        """Accept ints, numeric strings and "" (meaning unset)."""
        v = _blank_to_none(v)
        if isinstance(v, str):
            return int(v.strip())
        return v

    @field_validator("command_type", "handler_id", mode="before")
    @classmethod
    def coerce_blank(cls, v):
        return _blank_to_none(v)

    @field_validator("action", mode="before")
    @classmethod
    def coerce_action(cls, v):
        if isinstance(v, (dict, str)) and not v:
            return None
        return v

    @model_validator(mode="after")
    def validate_addressing(self):
        """Non pitch-wheel bindings need a controller number and an action."""
        if self.command_type != CommandType.PITCH_WHEEL_CHANGE:
            if self.number is None:
                raise ValueError("number is required for non pitch-wheel bindings")
            if self.action is None:
                raise ValueError("action is required for non pitch-wheel bindings")
        return self


class LoupedeckButtonPreference(BaseModel):
    """One button record from the Loupedeck+ preference tree."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    action: ActionPayload
    handler_id: Optional[str] = Field(default=None, alias="handlerID")

    @field_validator("handler_id", mode="before")
    @classmethod
    def coerce_blank(cls, v):
        return _blank_to_none(v)


class ManagerSettings(BaseModel):
    """
    Static settings for a MIDIManager.

    Attributes:
        config_root: Directory holding the "MIDI Controls" and "Loupedeck+" folders
        settings_file: JSON file for small persisted values (enable flags,
            active banks, migration flags). Defaults to config_root/Settings.json
        number_of_banks: Banks available to next/previous bank switching
        virtual_sources: Names of virtual MIDI inputs to offer as devices
        merge_fourteen_bit: Merge CC 0-31 / 32-63 pairs into 14-bit values
        midi_default_layout: Layout used when no MIDI settings file exists yet
        loupedeck_default_layout: Layout used when no Loupedeck+ settings file exists yet
        poll_interval: Seconds between device-list polls in the run loop
    """

    config_root: Path
    settings_file: Optional[Path] = None
    number_of_banks: int = Field(default=16, ge=1, le=128)
    virtual_sources: list[str] = Field(default_factory=list)
    merge_fourteen_bit: bool = False
    midi_default_layout: dict[str, Any] = Field(default_factory=dict)
    loupedeck_default_layout: dict[str, Any] = Field(default_factory=dict)
    poll_interval: float = Field(default=2.0, gt=0.0)

    @field_validator("virtual_sources")
    @classmethod
    def validate_virtual_sources(cls, v):
        for name in v:
            if not name or not name.strip():
                raise ValueError("virtual source names must not be empty")
        return v

    @model_validator(mode="after")
    def default_settings_file(self):
        if self.settings_file is None:
            self.settings_file = self.config_root / "Settings.json"
        return self

    @property
    def midi_settings_path(self) -> Path:
        return self.config_root / MIDI_FOLDER / MIDI_SETTINGS_FILE

    @property
    def midi_legacy_path(self) -> Path:
        return self.config_root / MIDI_FOLDER / MIDI_LEGACY_FILE

    @property
    def loupedeck_settings_path(self) -> Path:
        return self.config_root / LOUPEDECK_FOLDER / LOUPEDECK_SETTINGS_FILE

    @property
    def loupedeck_legacy_path(self) -> Path:
        return self.config_root / LOUPEDECK_LEGACY_FOLDER / LOUPEDECK_LEGACY_FILE


def iter_banks(tree: Any):
    """
    Yield (application_id, bank_id, bank) for every bank in a preference tree.

    Non-dict entries (such as the per-application "ignore" flag) are skipped.
    Iteration is sorted so results do not depend on file ordering.
    """
    if not isinstance(tree, dict):
        return
    for application_id in sorted(tree):
        app = tree[application_id]
        if not isinstance(app, dict):
            continue
        for bank_id in sorted(app):
            bank = app[bank_id]
            if isinstance(bank, dict):
                yield application_id, bank_id, bank


def iter_buttons(bank: dict[str, Any]):
    """Yield (button_id, record) for every button record in a bank, sorted."""
    for button_id in sorted(bank):
        record = bank[button_id]
        if isinstance(record, dict):
            yield button_id, record


def is_ignored(tree: Any, application_id: str) -> bool:
    """Check whether an application entry carries ignore = true."""
    if not isinstance(tree, dict):
        return False
    app = tree.get(application_id)
    return isinstance(app, dict) and app.get(IGNORE_KEY) is True
