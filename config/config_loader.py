"""Load settings.yaml into typed dataclasses. Validates API keys at startup."""

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from consult.strategies import DEFAULT_MODE, MODES

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"
_USER_SETTINGS_PATH = Path.home() / ".config" / "council-consult" / "settings.yaml"

_THRESHOLD_ENV = "CONSULT_ALWAYS_ALLOW_UNDER"


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    base_url: str | None = None


@dataclass
class AgentConfig:
    name: str
    model: str          # key into AppConfig.models
    prompt: str


@dataclass
class FilterLimits:
    round3_consensus_points: int = 3
    round3_tensions: int = 2
    round4_consensus_points: int = 3
    round4_tensions: int = 2
    round4_challenges: int = 5
    round4_rebuttals: int = 5


@dataclass
class PolicyConfig:
    always_allow_under: float = 0.50
    cost_overrun_ratio: float = 1.5
    max_rounds: int = 4
    early_termination: bool = False
    early_termination_confidence: float = 0.90
    mode: str = DEFAULT_MODE
    filter: FilterLimits = field(default_factory=FilterLimits)


@dataclass
class DefaultsConfig:
    output_dir: Path
    judge: str


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    policy: PolicyConfig
    models: dict[str, ModelConfig]
    agents: list[AgentConfig]
    pricing: dict[str, dict[str, float]] = field(default_factory=dict)
    available_providers: set[str] = field(default_factory=set)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _parse_policy(raw: dict[str, Any]) -> PolicyConfig:
    filter_raw = raw.get("filter", {})
    limits = FilterLimits(**{k: int(v) for k, v in filter_raw.items() if k in FilterLimits.__dataclass_fields__})
    mode = str(raw.get("mode", DEFAULT_MODE))
    if mode not in MODES:
        raise ValueError(f"Unknown policy mode '{mode}'. Expected one of: {', '.join(MODES)}")
    return PolicyConfig(
        always_allow_under=float(raw.get("always_allow_under", 0.50)),
        cost_overrun_ratio=float(raw.get("cost_overrun_ratio", 1.5)),
        max_rounds=int(raw.get("max_rounds", 4)),
        early_termination=bool(raw.get("early_termination", False)),
        early_termination_confidence=float(raw.get("early_termination_confidence", 0.90)),
        mode=mode,
        filter=limits,
    )


def load_config(
    settings_path: Path = _SETTINGS_PATH,
    user_settings_path: Path | None = _USER_SETTINGS_PATH,
) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    The user file (if present) is deep-merged over the packaged defaults,
    then CONSULT_ALWAYS_ALLOW_UNDER overrides the auto-approve threshold.

    Raises FileNotFoundError if settings file missing, ValueError if an
    agent references an unknown model or the policy mode is unknown.
    Logs missing API keys but does not raise — callers check
    available_providers.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    raw = _read_yaml(settings_path)
    if user_settings_path is not None and user_settings_path.exists():
        logger.debug("Merging user settings from %s", user_settings_path)
        raw = _deep_merge(raw, _read_yaml(user_settings_path))

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        output_dir=Path(defaults_raw["output_dir"]),
        judge=str(defaults_raw["judge"]),
    )

    policy = _parse_policy(raw.get("policy", {}))
    env_threshold = os.environ.get(_THRESHOLD_ENV, "").strip()
    if env_threshold:
        try:
            policy.always_allow_under = float(env_threshold)
        except ValueError:
            logger.warning("Ignoring %s=%r (not a number)", _THRESHOLD_ENV, env_threshold)

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw["models"].items():
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            base_url=model_raw.get("base_url"),
        )
        models[provider_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s — set %s in .env",
                provider_name,
                model_raw["api_key_env"],
            )

    agents: list[AgentConfig] = []
    for agent_raw in raw.get("agents", []):
        agent = AgentConfig(
            name=str(agent_raw["name"]),
            model=str(agent_raw["model"]),
            prompt=str(agent_raw["prompt"]).strip(),
        )
        if agent.model not in models:
            raise ValueError(f"Agent '{agent.name}' references unknown model '{agent.model}'")
        agents.append(agent)

    if defaults.judge not in models:
        raise ValueError(f"Judge references unknown model '{defaults.judge}'")

    pricing = {
        str(key): {"input": float(val["input"]), "output": float(val["output"])}
        for key, val in raw.get("pricing", {}).items()
    }

    return AppConfig(
        defaults=defaults,
        policy=policy,
        models=models,
        agents=agents,
        pricing=pricing,
        available_providers=available_providers,
    )


def save_auto_approve_threshold(threshold: float, user_settings_path: Path = _USER_SETTINGS_PATH) -> Path:
    """Persist policy.always_allow_under to the user settings file.

    Written via a temp file in the same directory plus os.replace, so a
    crash never leaves a half-written file behind.
    """
    if threshold < 0:
        raise ValueError(f"Threshold must be non-negative, got {threshold}")

    data: dict[str, Any] = {}
    if user_settings_path.exists():
        data = _read_yaml(user_settings_path)
    data.setdefault("policy", {})["always_allow_under"] = float(threshold)

    user_settings_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=user_settings_path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, sort_keys=False)
        os.replace(tmp_name, user_settings_path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.info("Saved auto-approve threshold $%.2f to %s", threshold, user_settings_path)
    return user_settings_path
