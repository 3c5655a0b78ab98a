"""OpenAI-compatible local inference provider (llama.cpp, vLLM, LM Studio)."""

from __future__ import annotations

import os
from typing import Optional

import httpx

from ..models.provider import CompletionResult, GenerationOptions
from .base import BaseProvider


class OpenAICompatibleProvider(BaseProvider):
    name = "openai-compatible"
    default_endpoint = "http://localhost:8000"

    def _get_api_key(self) -> Optional[str]:
        env_var = self.config.get("api_key_env", "LOCAL_LLM_API_KEY")
        return os.environ.get(env_var)

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        api_key = self._get_api_key()
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    async def complete(
        self, prompt: str, options: GenerationOptions
    ) -> CompletionResult:
        body = {
            "model": self.model,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "top_p": options.top_p,
            "messages": [{"role": "user", "content": prompt}],
        }

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.endpoint}/v1/chat/completions",
                    json=body,
                    headers=self._headers(),
                )
                response.raise_for_status()
                data = response.json()

            content = data["choices"][0]["message"]["content"]
            usage = data.get("usage", {})
            tokens = {
                "input": usage.get("prompt_tokens", 0),
                "output": usage.get("completion_tokens", 0),
            }

            return CompletionResult(
                success=True,
                content=content,
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
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as e:
            return CompletionResult(success=False, error=str(e))

    async def list_models(self) -> list[str]:
        async with self._client(timeout=5) as client:
            response = await client.get(f"{self.endpoint}/v1/models", headers=self._headers())
            response.raise_for_status()
            data = response.json()
        return [m.get("id", "") for m in data.get("data", [])]
