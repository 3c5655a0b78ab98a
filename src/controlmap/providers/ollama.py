"""Ollama local inference provider."""

from __future__ import annotations

import httpx

from ..models.provider import CompletionResult, GenerationOptions
from .base import BaseProvider


class OllamaProvider(BaseProvider):
    name = "ollama"
    default_endpoint = "http://localhost:11434"

    async def complete(
        self, prompt: str, options: GenerationOptions
    ) -> CompletionResult:
        body = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": options.temperature,
                "top_p": options.top_p,
                "num_predict": options.max_tokens,
                "num_ctx": options.context_window,
            },
        }

        try:
            async with self._client() as client:
                response = await client.post(f"{self.endpoint}/api/generate", json=body)
                response.raise_for_status()
                data = response.json()

            tokens = None
            if "eval_count" in data:
                tokens = {
                    "input": data.get("prompt_eval_count", 0),
                    "output": data.get("eval_count", 0),
                }

            return CompletionResult(
                success=True,
                content=data.get("response", ""),
                model=data.get("model", self.model),
                tokens_used=tokens,
            )
        except httpx.TimeoutException as e:
            return CompletionResult(success=False, error=f"Request timed out: {e}")
        except httpx.HTTPStatusError as e:
            return CompletionResult(
                success=False,
                error=f"{e.response.status_code} | {e.response.text}",
            )
        except (httpx.HTTPError, ValueError) as e:
            return CompletionResult(success=False, error=str(e))

    async def list_models(self) -> list[str]:
        async with self._client(timeout=5) as client:
            response = await client.get(f"{self.endpoint}/api/tags")
            response.raise_for_status()
            data = response.json()
        return [m.get("name", "") for m in data.get("models", [])]
