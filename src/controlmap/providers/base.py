"""Text-generation provider abstraction with retry logic."""

from __future__ import annotations

import asyncio
from typing import Optional, Protocol, runtime_checkable

import httpx
from rich.console import Console

from ..models.provider import CompletionResult, GenerationOptions
from ..utils.sanitize import sanitize_error

console = Console()


@runtime_checkable
class TextGenerator(Protocol):
    """Protocol that all text-generation providers must implement."""

    name: str
    model: str

    async def complete(
        self, prompt: str, options: GenerationOptions
    ) -> CompletionResult: ...

    async def complete_with_retry(
        self, prompt: str, options: GenerationOptions
    ) -> CompletionResult: ...

    async def list_models(self) -> list[str]: ...

    async def test_connectivity(self) -> bool: ...


class BaseProvider:
    """Base class with shared retry logic and config handling."""

    name: str = "base"
    default_endpoint: str = "http://localhost:11434"
    default_model: str = "llama3.1"

    def __init__(
        self,
        provider_config: dict,
        common_config: dict,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = provider_config
        self.common = common_config
        self.transport = transport
        self.max_attempts = max(1, int(common_config.get("retry_attempts", 1)))
        self.retry_delay = common_config.get("retry_delay_seconds", 5)
        self.timeout = common_config.get("timeout_seconds", 180)
        self.request_count = 0

    @property
    def endpoint(self) -> str:
        return (self.config.get("endpoint") or self.default_endpoint).rstrip("/")

    @property
    def model(self) -> str:
        return self.config.get("model") or self.default_model

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout if timeout is None else timeout,
            transport=self.transport,
        )

    async def complete(
        self, prompt: str, options: GenerationOptions
    ) -> CompletionResult:
        raise NotImplementedError

    async def list_models(self) -> list[str]:
        raise NotImplementedError

    async def test_connectivity(self) -> bool:
        """Non-blocking readiness check: can we reach the server at all?"""
        try:
            models = await self.list_models()
        except (httpx.HTTPError, ValueError) as e:
            console.print(
                f"  [red]ERROR[/red] {self.name} connection test failed: "
                f"{sanitize_error(str(e))}"
            )
            return False

        if not any(self.model in m for m in models):
            console.print(
                f"  [yellow]WARN[/yellow] Model {self.model} not found. "
                f"Available: {', '.join(models) or 'none'}"
            )
        return True

    async def complete_with_retry(
        self, prompt: str, options: GenerationOptions
    ) -> CompletionResult:
        """Wrap complete() with retry on server errors and timeouts."""
        last_result: Optional[CompletionResult] = None

        for attempt in range(1, self.max_attempts + 1):
            result = await self.complete(prompt, options)
            self.request_count += 1
            last_result = result

            if result.success:
                return result

            error_msg = result.error or ""
            is_retryable = any(
                code in error_msg
                for code in ("500", "502", "503", "504", "timeout", "timed out")
            ) and not any(
                code in error_msg for code in ("400", "401", "403", "404")
            )

            if not is_retryable or attempt >= self.max_attempts:
                result.error = sanitize_error(error_msg)
                return result

            await asyncio.sleep(self.retry_delay * min(attempt, 3))

        return last_result or CompletionResult(success=False, error="Max retries exceeded")


def get_text_generator(
    config: dict,
    provider_override: Optional[str] = None,
    model_override: Optional[str] = None,
    endpoint_override: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> BaseProvider:
    """Factory function to create the configured text-generation provider."""
    ai_config = config.get("ai", {})
    provider_name = provider_override or ai_config.get("provider", "ollama")

    provider_config = dict(ai_config.get(provider_name, {}))

    if model_override:
        provider_config["model"] = model_override
    if endpoint_override:
        provider_config["endpoint"] = endpoint_override

    # Common config is the ai section minus provider sub-configs
    common_config = {
        k: v
        for k, v in ai_config.items()
        if k not in ("ollama", "openai-compatible")
    }

    if provider_name == "ollama":
        from .ollama import OllamaProvider
        return OllamaProvider(provider_config, common_config, transport=transport)
    elif provider_name == "openai-compatible":
        from .openai_compat import OpenAICompatibleProvider
        return OpenAICompatibleProvider(provider_config, common_config, transport=transport)
    else:
        raise ValueError(f"Unknown AI provider: {provider_name}")


def get_generation_options(config: dict) -> GenerationOptions:
    """Build request options from the ai config section."""
    ai_config = config.get("ai", {})
    defaults = GenerationOptions()
    return GenerationOptions(
        temperature=ai_config.get("temperature", defaults.temperature),
        top_p=ai_config.get("top_p", defaults.top_p),
        max_tokens=ai_config.get("max_tokens", defaults.max_tokens),
        context_window=ai_config.get("context_window", defaults.context_window),
    )
