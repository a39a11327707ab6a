# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""LLM backends for the external signal's inference provider.

Provides async callables suitable for ``InferenceProvider(backend)``.

Available backends:
    - ``openai_compat``: Any OpenAI-compatible chat-completions API
      (OpenAI, Ollama's /v1 endpoint, Together, Fireworks, ...).

Usage::

    from verdict.core.backends import create_openai_backend
    from verdict.core.inference import InferenceProvider

    provider = InferenceProvider(create_openai_backend(base_url, api_key, model))

Neither the backend nor the analyzer trusts fields in the LLM response
outside the schema validated by ``inference.validate_output()``.
"""

from .openai_compat import create_openai_backend

__all__ = ["create_openai_backend"]
