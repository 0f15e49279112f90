"""Tests for persisted preference documents."""

import json

import pytest

from midiroute.preferences import JSONPreference, PreferenceError, SettingsStore


class TestJSONPreference:
    def test_missing_file_reads_default(self, tmp_path):
        pref = JSONPreference(tmp_path / "layout.json", default={"a": 1})

        assert not pref.exists()
        assert pref.get() == {"a": 1}

    def test_set_persists_and_creates_folders(self, tmp_path):
        path = tmp_path / "MIDI Controls" / "Settings.cpMIDI"
        pref = JSONPreference(path)

        pref.set({"x": {"1": {}}})

        assert pref.exists()
        assert json.loads(path.read_text(encoding="utf-8")) == {"x": {"1": {}}}
        assert JSONPreference(path).get() == {"x": {"1": {}}}

    def test_get_returns_a_copy(self, tmp_path):
        pref = JSONPreference(tmp_path / "layout.json")
        pref.set({"a": {"b": 1}})

        value = pref.get()
        value["a"]["b"] = 2

        assert pref.get() == {"a": {"b": 1}}

    def test_malformed_file_reads_default(self, tmp_path, caplog):
        path = tmp_path / "layout.json"
        path.write_text("{not json", encoding="utf-8")

        assert JSONPreference(path, default={}).get() == {}
        assert "using defaults" in caplog.text

    def test_watchers_fire_on_set(self, tmp_path):
        pref = JSONPreference(tmp_path / "layout.json")
        seen = []
        pref.watch(seen.append)

        pref.set({"a": 1})
        pref.update()

        assert seen == [{"a": 1}, {"a": 1}]

    def test_failing_watcher_is_isolated(self, tmp_path):
        pref = JSONPreference(tmp_path / "layout.json")
        seen = []

        def broken(_value):
            raise ValueError("boom")

        pref.watch(broken)
        pref.watch(seen.append)
        pref.set({"a": 1})

        assert seen == [{"a": 1}]

    def test_unwatch(self, tmp_path):
        pref = JSONPreference(tmp_path / "layout.json")
        seen = []
        pref.watch(seen.append)

        assert pref.unwatch(seen.append)
        pref.set({"a": 1})
        assert seen == []

    def test_unserializable_value_raises(self, tmp_path):
        pref = JSONPreference(tmp_path / "layout.json")

        with pytest.raises(PreferenceError):
            pref.set({"a": object()})

    def test_reload_reads_disk(self, tmp_path):
        path = tmp_path / "layout.json"
        pref = JSONPreference(path)
        pref.set({"a": 1})
        path.write_text('{"a": 2}', encoding="utf-8")

        assert pref.get() == {"a": 1}
        pref.reload()
        assert pref.get() == {"a": 2}

    def test_call_reads_and_writes(self, tmp_path):
        pref = JSONPreference(tmp_path / "layout.json")

        pref({"a": 1})

        assert pref() == {"a": 1}


class TestSettingsStore:
    def test_prop_default(self, tmp_path):
        store = SettingsStore(tmp_path / "Settings.json")

        assert store.prop("enableMIDI", False)() is False

    def test_props_share_one_file(self, tmp_path):
        path = tmp_path / "Settings.json"
        store = SettingsStore(path)

        store.prop("enableMIDI", False)(True)
        store.prop("midi.activeBanks", {})({"All Applications": "2"})

        assert json.loads(path.read_text(encoding="utf-8")) == {
            "enableMIDI": True,
            "midi.activeBanks": {"All Applications": "2"},
        }

    def test_props_are_shared_per_key(self, tmp_path):
        store = SettingsStore(tmp_path / "Settings.json")

        assert store.prop("enableMIDI") is store.prop("enableMIDI")

    def test_toggle(self, tmp_path):
        prop = SettingsStore(tmp_path / "Settings.json").prop("enableMIDI", False)
        seen = []
        prop.watch(seen.append)

        assert prop.toggle() is True
        assert prop.toggle() is False
        assert seen == [True, False]
