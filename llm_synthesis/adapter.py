"""LLM adapters for ticket synthesis.

Provides a base interface and concrete adapters for OpenAI-compatible
APIs and a deterministic mock for testing.
"""

import json
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from app.config import SynthesisSettings, get_synthesis_settings


class BaseLLMAdapter(ABC):
    """Abstract base for all LLM adapters."""

    @abstractmethod
    def generate(self, system_prompt: str, user_prompt: str) -> str:
        """Send a prompt pair to the LLM and return the raw response text.

        Args:
            system_prompt: Fixed instructions and rules.
            user_prompt: Run-specific data sections and task.

        Returns:
            Raw string response from the model (expected to be JSON).
        """


class OpenAILLMAdapter(BaseLLMAdapter):
    """Adapter for OpenAI-compatible chat completion APIs.

    Configured for deterministic, non-streaming JSON output: temperature 0
    and a fixed seed.
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        max_tokens: int = 4096,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: float = 60.0,
    ) -> None:
        """Initialise the OpenAI adapter.

        Args:
            model: Model identifier.
            max_tokens: Maximum tokens in the completion.
            api_key: API key. Falls back to the OPENAI_API_KEY env var inside the SDK.
            base_url: Optional base URL for OpenAI-compatible endpoints.
            timeout_seconds: Per-request timeout.
        """
        from openai import OpenAI

        client_kwargs: dict = {"timeout": timeout_seconds, "max_retries": 0}
        if api_key:
            client_kwargs["api_key"] = api_key
        if base_url:
            client_kwargs["base_url"] = base_url

        self._client = OpenAI(**client_kwargs)
        self._model = model
        self._max_tokens = max_tokens

    def generate(self, system_prompt: str, user_prompt: str) -> str:
        """Call the OpenAI chat completion API.

        Args:
            system_prompt: Fixed instructions and rules.
            user_prompt: Run-specific data sections and task.

        Returns:
            Raw string content from the model response.
        """
        response = self._client.chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=0,
            top_p=1,
            max_tokens=self._max_tokens,
            stream=False,
            seed=42,
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content or ""


# ---------------------------------------------------------------------------
# Fixed mock response used for local testing.
# ---------------------------------------------------------------------------
_MOCK_RESPONSE = {
    "tickets": [],
    "reasoning": "Mock synthesis: candidate tickets kept as produced.",
    "executive_summary": "Mock executive summary for testing purposes.",
    "plan_30_60_90": {
        "j0_30": "Fix conversion blockers.",
        "j30_60": "Improve trust signals.",
        "j60_90": "Iterate on performance.",
    },
}

_MOCK_RESPONSE_JSON = json.dumps(_MOCK_RESPONSE, indent=2)


class MockLLMAdapter(BaseLLMAdapter):
    """Deterministic adapter that replays fixed responses.

    Used for local testing and CI pipelines where no LLM API is available.
    With no scripted responses it always returns a valid empty synthesis.
    The last scripted response is repeated once the script is exhausted.
    """

    def __init__(self, responses: Optional[Iterable[str]] = None) -> None:
        self._responses: List[str] = list(responses or [])
        self.calls: List[tuple] = []

    def generate(self, system_prompt: str, user_prompt: str) -> str:
        """Return the next scripted response regardless of input.

        Args:
            system_prompt: Recorded, otherwise ignored.
            user_prompt: Recorded, otherwise ignored.

        Returns:
            A JSON string.
        """
        self.calls.append((system_prompt, user_prompt))
        if not self._responses:
            return _MOCK_RESPONSE_JSON
        index = min(len(self.calls), len(self._responses)) - 1
        return self._responses[index]


def get_llm_adapter(settings: Optional[SynthesisSettings] = None) -> BaseLLMAdapter:
    """Build the adapter selected by ``LLM_ADAPTER``.

    Raises:
        RuntimeError: If the adapter name is unknown.
    """
    resolved = settings or get_synthesis_settings()
    if resolved.adapter == "mock":
        return MockLLMAdapter()
    if resolved.adapter == "openai":
        return OpenAILLMAdapter(
            model=resolved.model,
            max_tokens=resolved.max_tokens,
            api_key=resolved.api_key,
            base_url=resolved.base_url,
            timeout_seconds=resolved.timeout_seconds,
        )
    raise RuntimeError(f"Unknown LLM adapter '{resolved.adapter}'. Expected 'openai' or 'mock'.")
