"""Tests for core/overrides.py."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from controlmap.core.mapping_store import MappingStore
from controlmap.core.overrides import (
    add_override_entry,
    apply_overrides,
    load_overrides,
    remove_override_entry,
    save_overrides,
    validate_confidence,
)


class TestValidateConfidence:
    @pytest.mark.parametrize("value,expected", [(0, 0), (100, 100), ("85", 85), (72.9, 72)])
    def test_valid(self, value, expected):
        assert validate_confidence(value) == expected

    @pytest.mark.parametrize("value", [-1, 101, "high", None, True])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            validate_confidence(value)


class TestOverrideFile:
    def test_missing_file_is_empty(self, tmp_path: Path):
        assert load_overrides(tmp_path / "overrides.yaml") == []

    def test_round_trip(self, tmp_path: Path):
        path = tmp_path / "sub" / "overrides.yaml"
        entries = [{"ism_control_id": "ISM-0714", "nist_control_id": "AC-2", "confidence": 90, "reasoning": "r"}]
        save_overrides(path, entries)
        assert load_overrides(path) == entries

    def test_non_dict_rows_ignored(self, tmp_path: Path):
        path = tmp_path / "overrides.yaml"
        path.write_text("overrides:\n  - just a string\n  - ism_control_id: ISM-1\n", encoding="utf-8")
        assert load_overrides(path) == [{"ism_control_id": "ISM-1"}]

    def test_add_entry(self, tmp_path: Path):
        path = tmp_path / "overrides.yaml"
        entry = add_override_entry(path, "ISM-0714", " ac-2 ", 90, "Account provisioning")
        assert entry["nist_control_id"] == "AC-2"
        assert entry["confidence"] == 90
        assert "reviewed_at" in entry

        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        assert len(data["overrides"]) == 1

    def test_add_replaces_same_pair(self, tmp_path: Path):
        path = tmp_path / "overrides.yaml"
        add_override_entry(path, "ISM-0714", "AC-2", 90, "first")
        add_override_entry(path, "ISM-0714", "AU-2", 60, "other")
        add_override_entry(path, "ISM-0714", "ac-2", 95, "second")

        entries = load_overrides(path)
        assert [(e["nist_control_id"], e["confidence"]) for e in entries] == [("AU-2", 60), ("AC-2", 95)]

    def test_add_rejects_bad_confidence(self, tmp_path: Path):
        path = tmp_path / "overrides.yaml"
        with pytest.raises(ValueError):
            add_override_entry(path, "ISM-0714", "AC-2", 150, "r")
        assert not path.exists()

    def test_remove_entry(self, tmp_path: Path):
        path = tmp_path / "overrides.yaml"
        add_override_entry(path, "ISM-0714", "AC-2", 90, "r")
        assert remove_override_entry(path, "ISM-0714", "ac-2") is True
        assert load_overrides(path) == []
        assert remove_override_entry(path, "ISM-0714", "AC-2") is False


class TestApplyOverrides:
    def test_applies_valid_rows(self, loaded_catalog):
        store = MappingStore(loaded_catalog)
        entries = [
            {"ism_control_id": "ISM-0714", "nist_control_id": "ac-2", "confidence": 90, "reasoning": "r"},
            {"ism_control_id": "ISM-0580", "nist_control_id": "AU-2", "confidence": "80"},
        ]
        assert apply_overrides(store, entries) == 2

        mapping = store.get("ISM-0714").nist_mappings[0]
        assert mapping.nist_control_id == "AC-2"
        assert mapping.is_manual_override
        assert store.get("ISM-0580").nist_mappings[0].reasoning == "Manual review"

    def test_invalid_rows_skipped(self, loaded_catalog):
        store = MappingStore(loaded_catalog)
        entries = [
            {"ism_control_id": "ISM-0714", "confidence": 90},
            {"ism_control_id": "ISM-0714", "nist_control_id": "AC-2", "confidence": 140},
            {"ism_control_id": "ISM-0714", "nist_control_id": "AC-2", "confidence": "very"},
            {"ism_control_id": "ISM-0714", "nist_control_id": "AU-2", "confidence": 0},
        ]
        assert apply_overrides(store, entries) == 1
        assert [m.nist_control_id for m in store.get("ISM-0714").nist_mappings] == ["AU-2"]
