"""Tests for config/config_loader.py."""

from pathlib import Path

import pytest
import yaml

from config.config_loader import (
    AppConfig,
    ModelConfig,
    PolicyConfig,
    _deep_merge,
    load_config,
    save_auto_approve_threshold,
)


def _settings() -> dict:
    return {
        "defaults": {"output_dir": "./output", "judge": "claude"},
        "policy": {
            "always_allow_under": 0.5,
            "cost_overrun_ratio": 1.5,
            "max_rounds": 4,
            "filter": {"round3_consensus_points": 3, "round4_challenges": 5},
        },
        "models": {
            "claude": {
                "sdk": "anthropic",
                "model": "claude-sonnet-4-5",
                "api_key_env": "TEST_CLAUDE_KEY",
                "timeout_sec": 120,
                "max_tokens": 8192,
            },
            "grok": {
                "sdk": "xai",
                "model": "grok-4",
                "api_key_env": "TEST_GROK_KEY",
                "timeout_sec": 60,
                "max_tokens": 4096,
                "base_url": "https://api.x.ai/v1",
            },
        },
        "agents": [
            {"name": "Security Expert", "model": "claude", "prompt": "  You are a security expert.\n"},
            {"name": "Contrarian", "model": "grok", "prompt": "You disagree."},
        ],
        "pricing": {"claude-sonnet-4-5": {"input": 0.003, "output": 0.015}},
    }


def _write(path: Path, data: dict) -> Path:
    path.write_text(yaml.dump(data), encoding="utf-8")
    return path


@pytest.fixture
def settings_path(tmp_path: Path) -> Path:
    return _write(tmp_path / "settings.yaml", _settings())


@pytest.fixture
def user_path(tmp_path: Path) -> Path:
    return tmp_path / "user" / "settings.yaml"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("TEST_CLAUDE_KEY", "TEST_GROK_KEY", "CONSULT_ALWAYS_ALLOW_UNDER"):
        monkeypatch.delenv(name, raising=False)


def test_load_config_returns_app_config(settings_path, user_path):
    config = load_config(settings_path, user_path)
    assert isinstance(config, AppConfig)
    assert isinstance(config.defaults.output_dir, Path)
    assert config.defaults.judge == "claude"


def test_load_config_policy(settings_path, user_path):
    policy = load_config(settings_path, user_path).policy
    assert isinstance(policy, PolicyConfig)
    assert policy.always_allow_under == 0.5
    assert policy.max_rounds == 4
    assert policy.early_termination is False
    assert policy.filter.round3_consensus_points == 3
    # unspecified limits keep their defaults
    assert policy.filter.round4_rebuttals == 5


def test_load_config_models(settings_path, user_path):
    config = load_config(settings_path, user_path)
    assert isinstance(config.models["claude"], ModelConfig)
    assert config.models["claude"].model == "claude-sonnet-4-5"
    assert config.models["claude"].base_url is None
    assert config.models["grok"].base_url == "https://api.x.ai/v1"


def test_load_config_agents_strip_prompt(settings_path, user_path):
    agents = load_config(settings_path, user_path).agents
    assert [a.name for a in agents] == ["Security Expert", "Contrarian"]
    assert agents[0].prompt == "You are a security expert."


def test_load_config_pricing(settings_path, user_path):
    assert load_config(settings_path, user_path).pricing["claude-sonnet-4-5"] == {"input": 0.003, "output": 0.015}


def test_available_providers_follow_keys(settings_path, user_path, monkeypatch):
    monkeypatch.setenv("TEST_CLAUDE_KEY", "sk-test-key")
    monkeypatch.setenv("TEST_GROK_KEY", "   ")
    config = load_config(settings_path, user_path)
    assert config.available_providers == {"claude"}


def test_load_config_missing_file(user_path):
    with pytest.raises(FileNotFoundError):
        load_config(Path("/nonexistent/settings.yaml"), user_path)


def test_agent_with_unknown_model(tmp_path, user_path):
    data = _settings()
    data["agents"].append({"name": "Ghost", "model": "nope", "prompt": "x"})
    with pytest.raises(ValueError, match="unknown model 'nope'"):
        load_config(_write(tmp_path / "settings.yaml", data), user_path)


def test_judge_with_unknown_model(tmp_path, user_path):
    data = _settings()
    data["defaults"]["judge"] = "nope"
    with pytest.raises(ValueError, match="Judge"):
        load_config(_write(tmp_path / "settings.yaml", data), user_path)


def test_policy_mode_defaults_to_converge(settings_path, user_path):
    assert load_config(settings_path, user_path).policy.mode == "converge"


def test_policy_mode_from_user_settings(settings_path, user_path):
    user_path.parent.mkdir(parents=True)
    _write(user_path, {"policy": {"mode": "explore"}})
    assert load_config(settings_path, user_path).policy.mode == "explore"


def test_unknown_policy_mode(tmp_path, user_path):
    data = _settings()
    data["policy"]["mode"] = "brainstorm"
    with pytest.raises(ValueError, match="Unknown policy mode 'brainstorm'"):
        load_config(_write(tmp_path / "settings.yaml", data), user_path)


def test_user_settings_deep_merge(settings_path, user_path):
    user_path.parent.mkdir(parents=True)
    _write(user_path, {"policy": {"always_allow_under": 2.0, "filter": {"round4_challenges": 1}}})

    policy = load_config(settings_path, user_path).policy

    assert policy.always_allow_under == 2.0
    assert policy.filter.round4_challenges == 1
    assert policy.filter.round3_consensus_points == 3
    assert policy.cost_overrun_ratio == 1.5


def test_env_threshold_override(settings_path, user_path, monkeypatch):
    monkeypatch.setenv("CONSULT_ALWAYS_ALLOW_UNDER", "1.25")
    assert load_config(settings_path, user_path).policy.always_allow_under == 1.25


def test_env_threshold_invalid_is_ignored(settings_path, user_path, monkeypatch):
    monkeypatch.setenv("CONSULT_ALWAYS_ALLOW_UNDER", "cheap")
    assert load_config(settings_path, user_path).policy.always_allow_under == 0.5


def test_deep_merge_replaces_non_dicts():
    merged = _deep_merge({"a": {"b": 1, "c": 2}, "l": [1]}, {"a": {"b": 9}, "l": [2]})
    assert merged == {"a": {"b": 9, "c": 2}, "l": [2]}


def test_save_threshold_creates_file(user_path):
    path = save_auto_approve_threshold(1.5, user_path)

    assert path == user_path
    assert yaml.safe_load(user_path.read_text(encoding="utf-8")) == {"policy": {"always_allow_under": 1.5}}
    assert list(user_path.parent.glob("*.tmp")) == []


def test_save_threshold_preserves_other_settings(user_path):
    user_path.parent.mkdir(parents=True)
    _write(user_path, {"defaults": {"judge": "grok"}, "policy": {"max_rounds": 3}})

    save_auto_approve_threshold(0.75, user_path)

    data = yaml.safe_load(user_path.read_text(encoding="utf-8"))
    assert data["defaults"] == {"judge": "grok"}
    assert data["policy"] == {"max_rounds": 3, "always_allow_under": 0.75}


def test_saved_threshold_is_loaded(settings_path, user_path):
    save_auto_approve_threshold(3.0, user_path)
    assert load_config(settings_path, user_path).policy.always_allow_under == 3.0


def test_save_threshold_rejects_negative(user_path):
    with pytest.raises(ValueError):
        save_auto_approve_threshold(-1, user_path)
    assert not user_path.exists()


def test_packaged_settings_load():
    config = load_config(user_settings_path=None)
    assert {a.model for a in config.agents} <= set(config.models)
    assert config.defaults.judge in config.models
    assert "default" in config.pricing
