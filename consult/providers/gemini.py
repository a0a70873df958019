"""Gemini provider using google-genai SDK with native async."""

import asyncio
import logging
import os
import time
from typing import Any

from google import genai
from google.genai import types as genai_types

from config.config_loader import ModelConfig
from consult.cost_ledger import CostLedger
from consult.models import ProviderResponse, TokenUsage, ToolCall
from consult.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)


class GeminiProvider(AIProvider):
    """Google Gemini provider via google-genai SDK."""

    vendor = "google"

    def __init__(self, config: ModelConfig, ledger: CostLedger | None = None) -> None:
        super().__init__(config, ledger)
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(api_key=api_key)

    async def _perform_call(
        self,
        messages: list[dict[str, str]],
        system_prompt: str | None,
        options: dict[str, Any],
    ) -> ProviderResponse:
        # Gemini names the assistant role "model"
        contents = [
            genai_types.Content(
                role="model" if m["role"] == "assistant" else "user",
                parts=[genai_types.Part.from_text(text=m["content"])],
            )
            for m in messages
        ]
        config_kwargs: dict[str, Any] = {
            "max_output_tokens": options.get("max_tokens", self._config.max_tokens),
        }
        if system_prompt:
            config_kwargs["system_instruction"] = system_prompt
        if "temperature" in options:
            config_kwargs["temperature"] = options["temperature"]
        if options.get("tools"):
            config_kwargs["tools"] = [
                genai_types.Tool(
                    function_declarations=[
                        genai_types.FunctionDeclaration(
                            name=t["name"],
                            description=t.get("description", ""),
                            parameters=t["parameters"],
                        )
                        for t in options["tools"]
                    ]
                )
            ]

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self._config.model,
                    contents=contents,
                    config=genai_types.GenerateContentConfig(**config_kwargs),
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        tool_calls = [
            ToolCall(id=fc.id or fc.name, name=fc.name, arguments=dict(fc.args or {}))
            for fc in (response.function_calls or [])
        ]
        if not response.text and not tool_calls:
            raise ProviderError(self._config.name, "Empty response text")

        usage: TokenUsage | None = None
        meta = response.usage_metadata
        if meta:
            usage = TokenUsage(
                input=meta.prompt_token_count or 0,
                output=meta.candidates_token_count or 0,
                cached_read=meta.cached_content_token_count or 0,
            )

        logger.info(
            "Gemini %s: %.2fs, %s tokens",
            self._config.model,
            latency,
            usage.total if usage else None,
        )

        return ProviderResponse(text=response.text or "", tool_calls=tool_calls, usage=usage)
