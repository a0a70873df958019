"""Anthropic Claude provider using anthropic SDK with native async."""

import asyncio
import logging
import os
import time
from typing import Any

import anthropic as anthropic_sdk

from config.config_loader import ModelConfig
from consult.cost_ledger import CostLedger
from consult.models import ProviderResponse, TokenUsage, ToolCall
from consult.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)


class AnthropicProvider(AIProvider):
    """Anthropic Claude provider via anthropic SDK."""

    vendor = "anthropic"

    def __init__(self, config: ModelConfig, ledger: CostLedger | None = None) -> None:
        super().__init__(config, ledger)
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

    async def _perform_call(
        self,
        messages: list[dict[str, str]],
        system_prompt: str | None,
        options: dict[str, Any],
    ) -> ProviderResponse:
        kwargs: dict[str, Any] = {
            "model": self._config.model,
            "max_tokens": options.get("max_tokens", self._config.max_tokens),
            "messages": messages,
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        if "temperature" in options:
            kwargs["temperature"] = options["temperature"]
        if options.get("tools"):
            kwargs["tools"] = [
                {"name": t["name"], "description": t.get("description", ""), "input_schema": t["parameters"]}
                for t in options["tools"]
            ]

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(**kwargs),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.content:
            raise ProviderError(self._config.name, "Empty response content")

        text_blocks = [b.text for b in response.content if b.type == "text"]
        tool_calls = [
            ToolCall(id=b.id, name=b.name, arguments=dict(b.input or {}))
            for b in response.content
            if b.type == "tool_use"
        ]
        if not text_blocks and not tool_calls:
            raise ProviderError(self._config.name, "No text blocks in response")

        usage: TokenUsage | None = None
        if response.usage:
            usage = TokenUsage(
                input=response.usage.input_tokens,
                output=response.usage.output_tokens,
                cached_read=getattr(response.usage, "cache_read_input_tokens", None) or 0,
                cached_write=getattr(response.usage, "cache_creation_input_tokens", None) or 0,
            )

        logger.info(
            "Anthropic %s: %.2fs, %s tokens",
            self._config.model,
            latency,
            usage.total if usage else None,
        )

        return ProviderResponse(text="\n".join(text_blocks), tool_calls=tool_calls, usage=usage)
