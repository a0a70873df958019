"""OpenAI provider using openai SDK with native async."""

import asyncio
import json
import logging
import os
import time
from typing import Any

from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from consult.cost_ledger import CostLedger
from consult.models import ProviderResponse, TokenUsage, ToolCall
from consult.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)


class OpenAIProvider(AIProvider):
    """OpenAI provider via openai SDK."""

    vendor = "openai"
    _label = "OpenAI"

    def __init__(self, config: ModelConfig, ledger: CostLedger | None = None) -> None:
        super().__init__(config, ledger)
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = self._make_client(api_key)

    def _make_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key)

    async def _perform_call(
        self,
        messages: list[dict[str, str]],
        system_prompt: str | None,
        options: dict[str, Any],
    ) -> ProviderResponse:
        chat: list[dict[str, str]] = []
        if system_prompt:
            chat.append({"role": "system", "content": system_prompt})
        chat.extend(messages)

        kwargs: dict[str, Any] = {
            "model": self._config.model,
            "messages": chat,
            "max_tokens": options.get("max_tokens", self._config.max_tokens),
        }
        if "temperature" in options:
            kwargs["temperature"] = options["temperature"]
        if options.get("tools"):
            kwargs["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": t["name"],
                        "description": t.get("description", ""),
                        "parameters": t["parameters"],
                    },
                }
                for t in options["tools"]
            ]

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(**kwargs),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice:
            raise ProviderError(self._config.name, "Empty response content")

        tool_calls = [
            ToolCall(id=tc.id, name=tc.function.name, arguments=_parse_arguments(tc.function.arguments))
            for tc in (choice.message.tool_calls or [])
        ]
        if not choice.message.content and not tool_calls:
            raise ProviderError(self._config.name, "Empty response content")

        usage: TokenUsage | None = None
        if response.usage:
            details = getattr(response.usage, "prompt_tokens_details", None)
            usage = TokenUsage(
                input=response.usage.prompt_tokens,
                output=response.usage.completion_tokens,
                cached_read=(getattr(details, "cached_tokens", None) or 0) if details else 0,
            )

        logger.info(
            "%s %s: %.2fs, %s tokens",
            self._label,
            self._config.model,
            latency,
            usage.total if usage else None,
        )

        return ProviderResponse(text=choice.message.content or "", tool_calls=tool_calls, usage=usage)


def _parse_arguments(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Tool call arguments are not valid JSON: %.80s", raw)
        return {"_raw": raw}
    return parsed if isinstance(parsed, dict) else {"value": parsed}
