"""Tests for core/config.py."""

from __future__ import annotations

from pathlib import Path

from controlmap.core.config import (
    DEFAULT_CONFIG,
    deep_merge,
    get_effective_config,
    get_env_overrides,
    load_config_file,
)


class TestDeepMerge:
    def test_simple_merge(self):
        base = {"a": 1, "b": 2}
        override = {"b": 3, "c": 4}
        result = deep_merge(base, override)
        assert result == {"a": 1, "b": 3, "c": 4}

    def test_nested_merge(self):
        base = {"ai": {"provider": "ollama", "timeout_seconds": 180}}
        override = {"ai": {"provider": "openai-compatible"}}
        result = deep_merge(base, override)
        assert result["ai"]["provider"] == "openai-compatible"
        assert result["ai"]["timeout_seconds"] == 180

    def test_arrays_replaced(self):
        base = {"output": {"families": ["Access Control", "Audit"]}}
        override = {"output": {"families": ["Incident Response"]}}
        result = deep_merge(base, override)
        assert result["output"]["families"] == ["Incident Response"]

    def test_base_not_mutated(self):
        base = {"a": {"b": 1}}
        override = {"a": {"b": 2}}
        deep_merge(base, override)
        assert base["a"]["b"] == 1


class TestLoadConfigFile:
    def test_loads_yaml(self, tmp_path: Path):
        path = tmp_path / "controlmap.yaml"
        path.write_text("processing:\n  concurrency: 4\n", encoding="utf-8")
        assert load_config_file(path) == {"processing": {"concurrency": 4}}

    def test_missing_returns_empty(self, tmp_path: Path):
        assert load_config_file(tmp_path / "nope.yaml") == {}

    def test_invalid_yaml_returns_empty(self, tmp_path: Path):
        path = tmp_path / "controlmap.yaml"
        path.write_text("processing: [unclosed\n", encoding="utf-8")
        assert load_config_file(path) == {}

    def test_non_mapping_returns_empty(self, tmp_path: Path):
        path = tmp_path / "controlmap.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        assert load_config_file(path) == {}

    def test_bom_stripped(self, tmp_path: Path):
        path = tmp_path / "controlmap.yaml"
        path.write_bytes("\ufeffai:\n  provider: ollama\n".encode("utf-8"))
        assert load_config_file(path)["ai"]["provider"] == "ollama"


class TestEnvOverrides:
    def test_ollama_vars(self):
        env = {"OLLAMA_BASE_URL": "http://gpu:11434", "OLLAMA_MODEL": "qwen2.5"}
        assert get_env_overrides(env) == {
            "ai": {"ollama": {"endpoint": "http://gpu:11434", "model": "qwen2.5"}}
        }

    def test_nothing_set(self):
        assert get_env_overrides({}) == {}


class TestGetEffectiveConfig:
    def test_defaults(self, tmp_path: Path):
        config = get_effective_config(tmp_path / "absent.yaml", environ={})
        assert config["ai"]["provider"] == "ollama"
        assert config["processing"]["concurrency"] == 1
        assert config["_config_path"] == str(tmp_path / "absent.yaml")

    def test_layer_order(self, tmp_path: Path):
        path = tmp_path / "controlmap.yaml"
        path.write_text(
            "ai:\n  ollama:\n    model: from-file\n    endpoint: http://file:11434\n"
            "processing:\n  concurrency: 2\n",
            encoding="utf-8",
        )
        config = get_effective_config(
            path,
            cli_overrides={"processing": {"concurrency": 8}},
            environ={"OLLAMA_MODEL": "from-env"},
        )
        assert config["ai"]["ollama"]["model"] == "from-env"
        assert config["ai"]["ollama"]["endpoint"] == "http://file:11434"
        assert config["processing"]["concurrency"] == 8
        assert config["processing"]["sample_size"] == 15

    def test_defaults_not_mutated(self, tmp_path: Path):
        get_effective_config(tmp_path / "absent.yaml", cli_overrides={"processing": {"concurrency": 9}}, environ={})
        assert DEFAULT_CONFIG["processing"]["concurrency"] == 1
