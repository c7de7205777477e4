"""Ollama provider - direct HTTP calls to Ollama API."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from ollamacode.exceptions import ConfigurationError, LLMAPIError, LLMError
from ollamacode.logging import get_logger

log = get_logger(__name__)


OLLAMA_NATIVE_BASE_URL = "http://localhost:11434"


@dataclass
class Message:
    """A message in the conversation."""

    role: str  # "system", "user", "assistant"
    content: str


@dataclass
class LLMResponse:
    """Response from the LLM."""

    content: str
    model: str = ""
    usage: dict[str, int] = field(default_factory=dict)


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Return the model's reply to ``messages``.

        Raises:
            LLMError on any failure; callers treat it as fatal for the turn
        """
        pass

    async def close(self) -> None:
        """Release network resources."""
        return None


class OllamaProvider(LLMProvider):
    """Direct Ollama API provider."""

    def __init__(
        self,
        model: str = "llama3",
        base_url: str = OLLAMA_NATIVE_BASE_URL,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        api_key: str | None = None,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize Ollama provider.

        Args:
            model: Ollama model name (e.g., 'llama3', 'qwen2.5-coder:7b')
            base_url: Ollama API base URL
            temperature: Default sampling temperature
            max_tokens: Default max tokens to generate
            api_key: Optional API key (Ollama usually doesn't need one locally)
            timeout: Request timeout in seconds
        """
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.api_key = api_key

        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
        )

    @staticmethod
    def _convert_messages(messages: list[Message]) -> list[dict[str, str]]:
        return [{"role": msg.role, "content": msg.content or ""} for msg in messages]

    async def complete(
        self,
        messages: list[Message],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion."""
        url = f"{self.base_url}/api/chat"
        model_name = model or self.model

        options: dict[str, Any] = {
            "temperature": self.temperature if temperature is None else temperature,
            "num_predict": max_tokens or self.max_tokens,
        }
        body: dict[str, Any] = {
            "model": model_name,
            "messages": self._convert_messages(messages),
            "stream": False,
            "options": options,
        }

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            log.debug("Calling Ollama", model=model_name, url=url, msg_count=len(messages))
            response = await self.client.post(url, json=body, headers=headers)
            log.debug("Ollama response status", status=response.status_code)

            if not response.is_success:
                raise LLMAPIError(
                    f"Ollama API error {response.status_code}: {response.text}",
                    status_code=response.status_code,
                )

            data = response.json()
        except LLMError:
            raise
        except httpx.HTTPError as e:
            raise LLMAPIError(f"Ollama HTTP error: {e}") from e
        except json.JSONDecodeError as e:
            raise LLMError(f"Ollama response decode error: {e}") from e

        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, dict):
            raise LLMError("Ollama response has no message")

        usage = {
            "prompt_tokens": data.get("prompt_eval_count", 0),
            "completion_tokens": data.get("eval_count", 0),
        }
        usage["total_tokens"] = usage["prompt_tokens"] + usage["completion_tokens"]

        return LLMResponse(
            content=str(message.get("content") or ""),
            model=model_name,
            usage=usage,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


def create_provider(
    provider: str = "ollama",
    model: str = "llama3",
    api_key: str | None = None,
    base_url: str | None = None,
    temperature: float = 0.7,
    max_tokens: int = 4096,
    timeout: float = 120.0,
) -> LLMProvider:
    """Create an LLM provider.

    Raises:
        ConfigurationError for providers other than ``ollama``
    """
    if provider == "ollama":
        return OllamaProvider(
            model=model,
            base_url=base_url or OLLAMA_NATIVE_BASE_URL,
            temperature=temperature,
            max_tokens=max_tokens,
            api_key=api_key,
            timeout=timeout,
        )
    raise ConfigurationError(f"Provider '{provider}' not supported. Use 'ollama'.")
