"""Pick the provider adapter for a model config by its ``sdk`` name."""

from config.config_loader import ModelConfig
from consult.cost_ledger import CostLedger
from consult.providers.anthropic import AnthropicProvider
from consult.providers.base import AIProvider, ProviderError
from consult.providers.gemini import GeminiProvider
from consult.providers.openai_provider import OpenAIProvider
from consult.providers.xai import XAIProvider

PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "google": GeminiProvider,
    "xai": XAIProvider,
}


def create_provider(model_config: ModelConfig, ledger: CostLedger | None = None) -> AIProvider:
    try:
        cls = PROVIDER_CLASSES[model_config.sdk]
    except KeyError:
        raise ProviderError(model_config.name, f"Unknown sdk '{model_config.sdk}'") from None
    return cls(model_config, ledger)
