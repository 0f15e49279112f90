"""Tests for bank-switch actions."""

import pytest
from conftest import FCP

from midiroute.banks import BankSwitcher
from midiroute.config import ALL_APPLICATIONS
from midiroute.preferences import SettingsStore
from midiroute.resolver import BankContextResolver


@pytest.fixture
def tree():
    return {
        ALL_APPLICATIONS: {"1": {}, "2": {"bankLabel": "Colour"}},
        FCP: {"1": {}},
    }


@pytest.fixture
def active_banks(tmp_path):
    return SettingsStore(tmp_path / "Settings.json").prop("midi.activeBanks", {})


@pytest.fixture
def state():
    return {"frontmost": None, "messages": []}


@pytest.fixture
def switcher(tree, active_banks, state):
    resolver = BankContextResolver(lambda: tree, active_banks.peek)
    return BankSwitcher(
        "MIDI",
        lambda: tree,
        active_banks,
        resolver,
        lambda: state["frontmost"],
        number_of_banks=3,
        notify=state["messages"].append,
    )


class TestBankSwitcher:
    def test_next_wraps(self, switcher, active_banks):
        assert switcher.next() == "2"
        assert switcher.next() == "3"
        assert switcher.next() == "1"
        assert active_banks() == {ALL_APPLICATIONS: "1"}

    def test_previous_wraps(self, switcher):
        assert switcher.previous() == "3"
        assert switcher.previous() == "2"

    def test_select(self, switcher):
        assert switcher.select(2) == "2"
        assert switcher.current_bank() == "2"

    def test_switch_applies_to_frontmost_application(self, switcher, active_banks, state):
        state["frontmost"] = FCP
        switcher.select(3)

        assert active_banks() == {FCP: "3"}
        assert switcher.current_bank(ALL_APPLICATIONS) == "1"

    def test_unknown_application_switches_all_applications(self, switcher, active_banks, state):
        state["frontmost"] = "com.example.Unknown"
        switcher.next()

        assert active_banks() == {ALL_APPLICATIONS: "2"}

    def test_notification_uses_bank_label(self, switcher, state):
        switcher.select(2)
        switcher.select(3)

        assert state["messages"] == ["MIDI Bank: Colour", "MIDI Bank: 3"]

    def test_failing_notifier_is_isolated(self, tree, active_banks):
        def broken(_message):
            raise RuntimeError("no notification center")

        resolver = BankContextResolver(lambda: tree, active_banks.peek)
        switcher = BankSwitcher("MIDI", lambda: tree, active_banks, resolver, lambda: None, 3, broken)

        assert switcher.next() == "2"


class TestExecute:
    @pytest.mark.parametrize(
        "action, expected",
        [({"id": "next"}, "2"), ({"id": "previous"}, "3"), ({"id": 3}, "3"), ({"id": "2"}, "2")],
    )
    def test_payloads(self, switcher, action, expected):
        assert switcher.execute(action) == expected

    def test_unknown_payload(self, switcher, active_banks):
        assert switcher.execute({"id": "sideways"}) is None
        assert switcher.execute({}) is None
        assert active_banks() == {}

    def test_choices(self, switcher):
        choices = switcher.choices()

        assert [choice["params"]["id"] for choice in choices] == [1, 2, 3, "next", "previous"]
        assert choices[0]["text"] == "MIDI Bank 1"
