# src/llm_stack/backend.py
"""
Backend interface for local LLM engines.

Concrete implementation: llm_stack.backend_llamacpp.LlamaCppBackend.
"""

from __future__ import annotations

from typing import List, Optional, Protocol


class LLMBackend(Protocol):
    """Simple interface around a local text generation backend."""

    def generate(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float,
        stop: Optional[List[str]] = None,
        system_prompt: Optional[str] = None,
    ) -> str:
        """Generate a text completion for the given prompt."""
        ...
