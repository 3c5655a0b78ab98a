"""Text-generation provider data models."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class GenerationOptions(BaseModel):
    temperature: float = 0.1
    top_p: float = 0.9
    max_tokens: int = 500
    context_window: int = 2048


class CompletionResult(BaseModel):
    success: bool
    content: Optional[str] = None
    model: Optional[str] = None
    tokens_used: Optional[dict] = None
    error: Optional[str] = None
