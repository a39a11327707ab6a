# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""OpenAI-compatible chat-completions backend for claim analysis."""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from typing import Any

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are an impartial fact-checker resolving prediction-market claims. "
    "Judge only from the documents provided. Respond ONLY with valid JSON; no markdown, no commentary."
)


def create_openai_backend(
    base_url: str,
    api_key: str,
    model: str,
    timeout: float = 60.0,
    system_prompt: str | None = None,
) -> Callable[[str], Coroutine[Any, Any, str]]:
    """Return an async callable suitable for ``InferenceProvider``.

    The prompt is sent as the user message; the reply text is taken from
    ``choices[0].message.content``. Temperature is pinned to 0 so repeated
    analyses of the same documents agree.

    Args:
        base_url: API root URL, e.g. ``"https://api.openai.com/v1"`` or
            ``"http://localhost:11434/v1"`` for Ollama.
        api_key: API key. Providers without auth accept any non-empty string.
        model: Model identifier.
        timeout: Request timeout in seconds.
        system_prompt: Optional override for the system message.

    Returns:
        Async callable ``(prompt: str) -> str``.

    Raises:
        openai.APIError: At call time, if the provider returns an error.
        RuntimeError: At call time, if the provider returns no content.
    """
    client = AsyncOpenAI(base_url=base_url, api_key=api_key or "unused", timeout=timeout)
    effective_system = system_prompt if system_prompt is not None else DEFAULT_SYSTEM_PROMPT

    async def backend(prompt: str) -> str:
        response = await client.chat.completions.create(
            model=model,
            temperature=0,
            messages=[
                {"role": "system", "content": effective_system},
                {"role": "user", "content": prompt},
            ],  # type: ignore[arg-type]
        )

        content = response.choices[0].message.content
        if content is None:
            raise RuntimeError(f"OpenAI-compat backend ({base_url}) returned empty content for model {model!r}")

        logger.debug("OpenAI-compat backend: received %d chars (model=%s url=%s)", len(content), model, base_url)
        return content

    backend.__name__ = f"openai_compat_backend({model}@{base_url})"  # type: ignore[attr-defined]
    return backend
