# src/llm_stack/backend_llamacpp.py

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional

from llama_cpp import Llama

from env.schema import ModelSettings

from .backend import LLMBackend

logger = logging.getLogger(__name__)


class LlamaCppBackend(LLMBackend):
    """LLMBackend implementation using llama.cpp local inference.

        backend = LlamaCppBackend(profile.model)

    where `profile.model` is the ModelSettings resolved from models.yaml:
      - path
      - context_length
      - gpu_layers (optional, default: offload everything)
      - n_threads (optional, default: all cores but one)
      - n_batch (optional)
    """

    def __init__(self, settings: ModelSettings) -> None:
        path = Path(settings.path)
        if not path.exists():
            raise FileNotFoundError(path)

        # If gpu_layers is not set, let llama.cpp offload as many as VRAM allows.
        gpu_layers = 9999 if settings.gpu_layers is None else settings.gpu_layers
        n_threads = settings.n_threads or max(1, (os.cpu_count() or 1) - 1)
        n_batch = settings.n_batch or 512

        logger.info(
            "Loading GGUF model %s (ctx=%d, gpu_layers=%d, threads=%d)",
            path, settings.context_length, gpu_layers, n_threads,
        )
        self._llm = Llama(
            model_path=str(path),
            n_ctx=settings.context_length,
            n_gpu_layers=gpu_layers,
            n_threads=n_threads,
            n_batch=n_batch,
            verbose=False,
        )

    def generate(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float,
        stop: Optional[List[str]] = None,
        system_prompt: Optional[str] = None,
    ) -> str:
        """
        Generate text using chat-completion style calls.

        We map:
        - system_prompt -> system message (if provided)
        - prompt        -> user message
        and return the assistant's message content as a plain string.
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        out = self._llm.create_chat_completion(
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            stop=stop or [],
        )

        # choices[0]["message"]["content"] is the assistant text.
        text = out["choices"][0]["message"]["content"] or ""
        return text.strip()
