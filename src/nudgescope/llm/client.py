"""Completion clients for the Anthropic API and a local Ollama server."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import requests

from nudgescope.config import MODEL_DEFAULT, OLLAMA_HOST_DEFAULT, OLLAMA_MODEL_DEFAULT
from nudgescope.exceptions import CompletionError, EmptyCompletionError
from nudgescope.llm.retry import RetryPolicy, RetryResult

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    content: str
    input_tokens: int
    output_tokens: int
    model: str


class AnthropicAPIClient:
    """Direct Anthropic API client using the anthropic Python SDK."""

    def __init__(self, api_key: str, model: str = MODEL_DEFAULT, temperature: float = 0.1):
        import anthropic

        self.client = anthropic.Anthropic(api_key=api_key)
        self.model = model
        self.temperature = temperature

    def complete(
        self, system: str, user: str, max_tokens: int = 1024
    ) -> LLMResponse:
        response = self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=self.temperature,
            system=system,
            messages=[{"role": "user", "content": user}],
        )
        return LLMResponse(
            content=response.content[0].text,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=self.model,
        )


class OllamaClient:
    """Client for a local Ollama server's /api/generate endpoint."""

    def __init__(
        self,
        model: str = OLLAMA_MODEL_DEFAULT,
        host: str = OLLAMA_HOST_DEFAULT,
        temperature: float = 0.1,
        timeout: float = 90,
    ):
        self.model = model
        self.api_url = f"{host.rstrip('/')}/api/generate"
        self.temperature = temperature
        self.timeout = timeout

    def complete(
        self, system: str, user: str, max_tokens: int = 1024
    ) -> LLMResponse:
        payload = {
            "model": self.model,
            "system": system,
            "prompt": user,
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "num_predict": max_tokens,
            },
        }
        try:
            response = requests.post(self.api_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise CompletionError(
                "Could not communicate with Ollama",
                remediation=f"Check that Ollama is running at {self.api_url}",
                details=str(e),
            ) from e

        data = response.json()
        return LLMResponse(
            content=data.get("response", ""),
            input_tokens=data.get("prompt_eval_count", 0),
            output_tokens=data.get("eval_count", 0),
            model=self.model,
        )


class CallbackClient:
    """Client that delegates to a user-provided callback function.

    The callback accepts (system, user) and returns the completion text.
    """

    def __init__(self, callback, model: str = "callback"):
        self.callback = callback
        self.model = model

    def complete(
        self, system: str, user: str, max_tokens: int = 1024
    ) -> LLMResponse:
        content = self.callback(system, user)
        return LLMResponse(
            content=content,
            input_tokens=0,
            output_tokens=0,
            model=self.model,
        )


def create_client(
    mode: str = "auto",
    model: str = MODEL_DEFAULT,
    ollama_host: str = OLLAMA_HOST_DEFAULT,
) -> AnthropicAPIClient | OllamaClient:
    """Factory function for creating a completion client.

    mode="auto": use the Anthropic API if ANTHROPIC_API_KEY is set, else Ollama.
    mode="api": require ANTHROPIC_API_KEY.
    mode="ollama": use the local Ollama server.
    """
    if mode == "auto":
        api_key = os.environ.get("ANTHROPIC_API_KEY")
        if api_key:
            return AnthropicAPIClient(api_key, model)
        return OllamaClient(host=ollama_host)
    elif mode == "api":
        api_key = os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable not set")
        return AnthropicAPIClient(api_key, model)
    elif mode == "ollama":
        ollama_model = model if not model.startswith("claude") else OLLAMA_MODEL_DEFAULT
        return OllamaClient(model=ollama_model, host=ollama_host)
    else:
        raise ValueError(f"Unknown LLM mode: {mode}")


def complete_with_retry(
    client,
    system: str,
    user: str,
    policy: RetryPolicy,
    max_tokens: int = 1024,
) -> RetryResult:
    """Call the model under `policy`, treating a blank reply as a failure.

    Returns Success(LLMResponse) or Failure; never raises for service errors.
    """

    def attempt() -> LLMResponse:
        response = client.complete(system, user, max_tokens)
        if not response.content or not response.content.strip():
            raise EmptyCompletionError()
        logger.debug(f"Completion succeeded ({len(response.content)} chars)")
        return response

    return policy.run(attempt)
