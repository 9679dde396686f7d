"""
OpenAI reasoning engine plugin.

Chat completions with an optional JSON-object response format, used for the
structured proposal schema. SDK retries are disabled; the orchestrator makes
exactly one call per run.
"""
from typing import Dict, List, Optional

from loguru import logger

from providers.base import BaseLLMProvider


class OpenAIProvider(BaseLLMProvider):
    """OpenAI GPT via the official SDK."""

    def __init__(self, api_key: str = "", model: str = "gpt-4o-mini",
                 timeout_seconds: float = 10.0):
        self._api_key = api_key
        self._model = model
        self._timeout = timeout_seconds
        self._client = None

    @property
    def name(self) -> str:
        return "openai"

    @property
    def model(self) -> str:
        return self._model

    def is_available(self) -> bool:
        return bool(self._api_key)

    def _get_client(self):
        """Lazy-init OpenAI client."""
        if self._client is None:
            from openai import OpenAI
            self._client = OpenAI(
                api_key=self._api_key,
                timeout=self._timeout,
                max_retries=0,
            )
        return self._client

    def complete(self, messages: List[Dict[str, str]],
                 temperature: float = 0.2,
                 max_tokens: int = 800,
                 json_mode: bool = False) -> Optional[str]:
        """Chat completion via OpenAI API.

        Returns response text or None when the model returned nothing.
        SDK errors (auth, 429, timeouts) propagate to the caller.
        """
        client = self._get_client()

        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = client.chat.completions.create(
            model=self._model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs,
        )

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            logger.warning(f"OpenAI returned an empty completion (model={self._model})")
            return None

        return choice.message.content.strip()
