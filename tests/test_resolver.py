"""Tests for application/bank context resolution."""

import pytest
from conftest import FCP

from midiroute.config import ALL_APPLICATIONS
from midiroute.messages import CommandType, MIDIMetadata
from midiroute.plugin import ModifierKey
from midiroute.resolver import BankContext, BankContextResolver


@pytest.fixture
def tree():
    return {
        ALL_APPLICATIONS: {"1": {}},
        FCP: {"1": {}},
        "com.example.Ignored": {"ignore": True, "1": {}},
    }


def note(number, channel=0, velocity=100):
    return MIDIMetadata(channel=channel, note=number, velocity=velocity)


class TestResolveApplication:
    def test_known_application(self, tree):
        resolver = BankContextResolver(lambda: tree, lambda: {})

        assert resolver.resolve_application(FCP) == FCP

    def test_unknown_application_falls_back(self, tree):
        resolver = BankContextResolver(lambda: tree, lambda: {})

        assert resolver.resolve_application("com.example.Unknown") == ALL_APPLICATIONS

    def test_ignored_application_falls_back(self, tree):
        resolver = BankContextResolver(lambda: tree, lambda: {})

        assert resolver.resolve_application("com.example.Ignored") == ALL_APPLICATIONS

    def test_missing_frontmost_application(self, tree):
        resolver = BankContextResolver(lambda: tree, lambda: {})

        assert resolver.resolve_application(None) == ALL_APPLICATIONS

    def test_missing_tree(self):
        resolver = BankContextResolver(lambda: None, lambda: None)

        assert resolver.resolve(FCP, CommandType.NOTE_ON, note(1)) == BankContext(ALL_APPLICATIONS, "1")


class TestActiveBank:
    def test_default_bank(self, tree):
        resolver = BankContextResolver(lambda: tree, lambda: {})

        assert resolver.resolve(FCP, CommandType.NOTE_ON, note(1)) == BankContext(FCP, "1")

    def test_active_bank_per_application(self, tree):
        active = {FCP: "3", ALL_APPLICATIONS: "2"}
        resolver = BankContextResolver(lambda: tree, lambda: active)

        assert resolver.resolve(FCP, CommandType.NOTE_ON, note(1)).bank_id == "3"
        assert resolver.resolve("com.example.Unknown", CommandType.NOTE_ON, note(1)).bank_id == "2"

    def test_reads_active_banks_on_every_call(self, tree):
        active = {}
        resolver = BankContextResolver(lambda: tree, lambda: active)

        assert resolver.active_bank(FCP) == "1"
        active[FCP] = "4"
        assert resolver.active_bank(FCP) == "4"


class TestModifier:
    @pytest.fixture
    def resolver(self, tree):
        return BankContextResolver(lambda: tree, lambda: {}, modifier=ModifierKey(note=110))

    def test_modifier_suffixes_other_controls(self, resolver):
        resolver.resolve(None, CommandType.NOTE_ON, note(110))

        assert resolver.modifier_pressed
        assert resolver.resolve(None, CommandType.NOTE_ON, note(5)) == BankContext(ALL_APPLICATIONS, "1fn")

    def test_modifier_messages_are_not_suffixed(self, resolver):
        press = resolver.resolve(None, CommandType.NOTE_ON, note(110))
        release = resolver.resolve(None, CommandType.NOTE_OFF, note(110, velocity=0))

        assert press.bank_id == "1"
        assert release.bank_id == "1"

    def test_release_clears_modifier(self, resolver):
        resolver.resolve(None, CommandType.NOTE_ON, note(110))
        resolver.resolve(None, CommandType.NOTE_OFF, note(110, velocity=0))

        assert not resolver.modifier_pressed
        assert resolver.resolve(None, CommandType.NOTE_ON, note(5)).bank_id == "1"

    def test_modifier_on_other_channel_is_ignored(self, resolver):
        resolver.resolve(None, CommandType.NOTE_ON, note(110, channel=1))

        assert not resolver.modifier_pressed

    def test_modifier_state_is_per_resolver(self, tree):
        first = BankContextResolver(lambda: tree, lambda: {}, modifier=ModifierKey(note=110))
        second = BankContextResolver(lambda: tree, lambda: {}, modifier=ModifierKey(note=110))

        first.resolve(None, CommandType.NOTE_ON, note(110))

        assert first.modifier_pressed
        assert not second.modifier_pressed

    def test_reset(self, resolver):
        resolver.resolve(None, CommandType.NOTE_ON, note(110))
        resolver.reset()

        assert not resolver.modifier_pressed

    def test_resolver_without_modifier_never_suffixes(self, tree):
        resolver = BankContextResolver(lambda: tree, lambda: {})
        resolver.resolve(None, CommandType.NOTE_ON, note(110))

        assert resolver.resolve(None, CommandType.NOTE_ON, note(5)).bank_id == "1"

    def test_note_on_velocity_zero_releases_modifier(self, resolver):
        resolver.resolve(None, CommandType.NOTE_ON, note(110, velocity=127))
        resolver.resolve(None, CommandType.NOTE_ON, note(110, velocity=0))

        assert not resolver.modifier_pressed
        knob = MIDIMetadata(controller_number=3, controller_value=127)
        assert resolver.resolve(None, CommandType.CONTROL_CHANGE, knob).bank_id == "1"
