"""Tests for the one-time legacy layout migration."""

import json

import pytest
from conftest import FCP

from midiroute.config import ALL_APPLICATIONS
from midiroute.migration import convert_legacy_layout, migrate_legacy_layout, split_group_id
from midiroute.preferences import JSONPreference, SettingsStore


@pytest.fixture
def legacy():
    return {
        "fcpx3": {"1": {"device": "Keys", "number": 36, "value": "None"}},
        "global1": {"1": {"device": "Keys", "number": 37, "value": 5}},
        "mystery2": {"1": {}},
    }


def test_split_group_id():
    assert split_group_id("fcpx3") == (FCP, "3")
    assert split_group_id("global12") == (ALL_APPLICATIONS, "12")
    assert split_group_id("global") is None
    assert split_group_id("other1") is None


class TestConvertLegacyLayout:
    def test_groups_become_applications_and_banks(self, legacy):
        converted = convert_legacy_layout(legacy)

        assert set(converted) == {FCP, ALL_APPLICATIONS}
        assert converted[FCP]["3"]["1"]["number"] == 36
        assert converted[ALL_APPLICATIONS]["1"]["1"]["number"] == 37

    def test_none_values_cleared_on_request(self, legacy):
        assert convert_legacy_layout(legacy)[FCP]["3"]["1"]["value"] == "None"
        assert convert_legacy_layout(legacy, clear_none_values=True)[FCP]["3"]["1"]["value"] == ""

    def test_input_is_not_modified(self, legacy):
        convert_legacy_layout(legacy, clear_none_values=True)

        assert legacy["fcpx3"]["1"]["value"] == "None"


class TestMigrateLegacyLayout:
    @pytest.fixture
    def paths(self, tmp_path):
        legacy_path = tmp_path / "MIDI Controls" / "Default.cpMIDI"
        legacy_path.parent.mkdir(parents=True)
        target = JSONPreference(tmp_path / "MIDI Controls" / "Settings.cpMIDI")
        completed = SettingsStore(tmp_path / "Settings.json").prop("midi.updatedPreferencesToV2", False)
        return legacy_path, target, completed

    def test_migrates_once(self, paths, legacy):
        legacy_path, target, completed = paths
        legacy_path.write_text(json.dumps(legacy), encoding="utf-8")

        assert migrate_legacy_layout(legacy_path, target, completed, clear_none_values=True)
        assert completed() is True
        assert target.get()[FCP]["3"]["1"]["value"] == ""

        target.set({})
        assert not migrate_legacy_layout(legacy_path, target, completed)
        assert target.get() == {}

    def test_flag_blocks_migration(self, paths, legacy):
        legacy_path, target, completed = paths
        legacy_path.write_text(json.dumps(legacy), encoding="utf-8")
        completed(True)

        assert not migrate_legacy_layout(legacy_path, target, completed)
        assert not target.exists()

    def test_existing_target_blocks_migration(self, paths, legacy):
        legacy_path, target, completed = paths
        legacy_path.write_text(json.dumps(legacy), encoding="utf-8")
        target.set({"kept": {}})

        assert not migrate_legacy_layout(legacy_path, target, completed)
        assert target.get() == {"kept": {}}
        assert completed() is False

    def test_missing_legacy_file(self, paths):
        legacy_path, target, completed = paths

        assert not migrate_legacy_layout(legacy_path, target, completed)

    @pytest.mark.parametrize("content", ["{broken", "[1, 2]"])
    def test_malformed_legacy_file(self, paths, content):
        legacy_path, target, completed = paths
        legacy_path.write_text(content, encoding="utf-8")

        assert not migrate_legacy_layout(legacy_path, target, completed)
        assert not target.exists()
        assert completed() is False

    def test_failed_write_leaves_migration_pending(self, tmp_path, legacy):
        legacy_path = tmp_path / "Default.cpMIDI"
        legacy_path.write_text(json.dumps(legacy), encoding="utf-8")
        blocked = tmp_path / "MIDI Controls"
        blocked.write_text("", encoding="utf-8")
        target = JSONPreference(blocked / "Settings.cpMIDI")
        completed = SettingsStore(tmp_path / "Settings.json").prop("midi.updatedPreferencesToV2", False)

        assert not migrate_legacy_layout(legacy_path, target, completed)
        assert completed() is False

        blocked.unlink()
        assert migrate_legacy_layout(legacy_path, target, completed)
        assert completed() is True
        assert FCP in target.get()
