from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import litellm

from skillbase.errors import ProviderError, ProviderRateLimitResponse, ProviderTimeout
from skillbase.llm.base import BaseLLMClient, Completion, Usage
from skillbase.llm.models import AnthropicModel, BedrockModel
from skillbase.models import LLMProvider, Turn

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4096


def _usage_from_response(response: litellm.ModelResponse) -> Usage:
    raw = getattr(response, "usage", None)
    if raw is None:
        return Usage()
    return Usage(
        input_tokens=getattr(raw, "prompt_tokens", 0) or 0,
        output_tokens=getattr(raw, "completion_tokens", 0) or 0,
        cache_creation_tokens=getattr(raw, "cache_creation_input_tokens", 0) or 0,
        cache_read_tokens=getattr(raw, "cache_read_input_tokens", 0) or 0,
    )


class LiteLLMClient(BaseLLMClient):
    """litellm-backed client for Anthropic and Bedrock hosted Claude models."""

    def __init__(
        self,
        model: AnthropicModel | BedrockModel | str,
        api_key: str | None = None,
        *,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        **provider_kwargs: Any,
    ) -> None:
        self._model = str(model)
        self._api_key = api_key
        self._max_tokens = max_tokens
        self._provider_kwargs = provider_kwargs

    @property
    def model(self) -> str:
        return self._model

    async def complete(
        self,
        system: str,
        messages: Sequence[Turn],
        *,
        timeout: float | None = None,
    ) -> Completion:
        payload = [{"role": "system", "content": system}]
        payload.extend(t.to_dict() for t in messages)
        try:
            response = await litellm.acompletion(
                model=self._model,
                messages=payload,
                max_tokens=self._max_tokens,
                api_key=self._api_key,
                timeout=timeout,
                **self._provider_kwargs,
            )
        except litellm.RateLimitError as exc:
            raise ProviderRateLimitResponse(str(exc)) from exc
        except (litellm.Timeout, litellm.APIConnectionError) as exc:
            raise ProviderTimeout(str(exc)) from exc
        except Exception as exc:
            logger.error("Completion failed for model %s", self._model, exc_info=True)
            raise ProviderError(str(exc)) from exc

        text: str = response.choices[0].message.content or ""  # type: ignore[union-attr]
        return Completion(
            text=text.strip(),
            usage=_usage_from_response(response),
            model=self._model.split("/", 1)[-1],
        )

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> LiteLLMClient:
        """Build from an ``llm`` config section.

        ``provider`` selects the default model (``anthropic`` or ``bedrock``);
        ``model``, ``api_key`` and ``max_tokens`` are optional.  Remaining
        keys (e.g. ``aws_region_name``) are passed through to litellm.
        """
        options = dict(config)
        provider = LLMProvider(options.pop("provider", LLMProvider.anthropic))
        default_model = (
            BedrockModel.CLAUDE_SONNET_4
            if provider is LLMProvider.bedrock
            else AnthropicModel.CLAUDE_SONNET_4
        )
        return cls(
            options.pop("model", None) or default_model,
            api_key=options.pop("api_key", None),
            max_tokens=int(options.pop("max_tokens", DEFAULT_MAX_TOKENS)),
            **options,
        )
