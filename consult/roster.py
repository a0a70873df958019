"""Build the agent roster and judge from config."""

import logging

from config.config_loader import AppConfig
from consult.cost_ledger import CostLedger
from consult.models import Agent
from consult.providers.base import AIProvider, ProviderError
from consult.providers.factory import create_provider

logger = logging.getLogger(__name__)

JUDGE_PROMPT = (
    "You are an impartial judge in a multi-expert consultation. "
    "You do not take sides; you extract structure from what the experts said."
)


def judge_agent(provider: AIProvider, role: str) -> Agent:
    """Ad hoc judge, e.g. role="Synthesis" -> "Judge (Synthesis)". Not part of the roster."""
    return Agent(
        name=f"Judge ({role})",
        model=provider.model_string(),
        provider=provider,
        system_prompt=JUDGE_PROMPT,
    )


def build_roster(
    config: AppConfig,
    ledger: CostLedger,
    providers: dict[str, AIProvider] | None = None,
) -> list[Agent]:
    """One Agent per configured agent whose provider is available.

    ``providers`` caches adapters by model key so agents sharing a model
    share a client. Agents whose provider cannot be built are skipped.
    """
    providers = {} if providers is None else providers
    agents: list[Agent] = []
    for agent_cfg in config.agents:
        if agent_cfg.model not in config.available_providers:
            logger.warning("Agent '%s' skipped: provider '%s' has no API key", agent_cfg.name, agent_cfg.model)
            continue
        provider = providers.get(agent_cfg.model)
        if provider is None:
            try:
                provider = create_provider(config.models[agent_cfg.model], ledger)
            except ProviderError as exc:
                logger.warning("Agent '%s' skipped: %s", agent_cfg.name, exc)
                continue
            providers[agent_cfg.model] = provider
        agents.append(Agent(
            name=agent_cfg.name,
            model=provider.model_string(),
            provider=provider,
            system_prompt=agent_cfg.prompt,
        ))
    return agents


def build_judge(
    config: AppConfig,
    ledger: CostLedger,
    providers: dict[str, AIProvider] | None = None,
) -> AIProvider:
    """Provider for all judge calls. Raises ProviderError if it is unavailable."""
    providers = {} if providers is None else providers
    key = config.defaults.judge
    if key in providers:
        return providers[key]
    if key not in config.available_providers:
        raise ProviderError(key, f"Judge provider has no API key ({config.models[key].api_key_env})")
    provider = create_provider(config.models[key], ledger)
    providers[key] = provider
    return provider
