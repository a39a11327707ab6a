"""Inference routing for the external signal.

One configuration point for LLM calls, with explicit degraded mode and
both sync and async backends.
Every task has a strict JSON output schema; responses are validated before
anything downstream trusts them.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Task type constants
# ---------------------------------------------------------------------------

TASK_ANALYZE = "analyze_claim"  # Claim + documents → recommendation

_ALL_TASKS = {TASK_ANALYZE}

RECOMMENDATION_ENUM = ["YES", "NO", "INCONCLUSIVE"]

# Maps task_type → list of required output keys
_TASK_REQUIRED_OUTPUT_FIELDS: dict[str, list[str]] = {
    TASK_ANALYZE: ["recommendation", "confidence", "reasoning"],
}

# Output schema descriptions, embedded in prompts
TASK_OUTPUT_SCHEMAS: dict[str, str] = {
    TASK_ANALYZE: """{
  "recommendation": "YES|NO|INCONCLUSIVE",
  "confidence": 0.0,
  "reasoning": "<one or two sentences citing the documents>"
}""",
}


class InferenceSchemaError(ValueError):
    """Raised when an LLM response does not conform to the expected task schema."""


# ---------------------------------------------------------------------------
# Schema validation
# ---------------------------------------------------------------------------


def _strip_markdown_fences(text: str) -> str:
    """Strip leading/trailing markdown code fences (```json ... ```)."""
    text = text.strip()
    if text.startswith("```"):
        lines = text.splitlines()
        inner = lines[1:]
        if inner and inner[-1].strip() == "```":
            inner = inner[:-1]
        text = "\n".join(inner).strip()
    return text


def validate_output(task_type: str, raw_json: str) -> dict:
    """Parse and validate a raw LLM response against the task output schema.

    Handles:
    - Markdown fence stripping (```json ... ```)
    - Required field validation
    - Recommendation enum validation (case-insensitive, normalised to upper case)
    - Confidence coercion to float and range check ([0, 1], percentages scaled)
    - Extra fields are silently ignored

    Raises:
        InferenceSchemaError: If the JSON cannot be parsed, required fields
            are missing, or values are invalid.
    """
    if task_type not in _TASK_REQUIRED_OUTPUT_FIELDS:
        raise InferenceSchemaError(f"Unknown task type {task_type!r}; expected one of {sorted(_ALL_TASKS)}")

    text = _strip_markdown_fences(raw_json)

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise InferenceSchemaError(f"[{task_type}] Response is not valid JSON: {exc}. Got: {raw_json[:200]!r}") from exc

    if not isinstance(parsed, dict):
        raise InferenceSchemaError(
            f"[{task_type}] Response must be a JSON object, got {type(parsed).__name__}. Value: {raw_json[:200]!r}"
        )

    required = _TASK_REQUIRED_OUTPUT_FIELDS[task_type]
    missing = [k for k in required if k not in parsed]
    if missing:
        raise InferenceSchemaError(
            f"[{task_type}] Response missing required fields: {missing!r}. Got keys: {list(parsed.keys())!r}"
        )

    if task_type == TASK_ANALYZE:
        recommendation = str(parsed["recommendation"]).strip().upper()
        if recommendation not in RECOMMENDATION_ENUM:
            raise InferenceSchemaError(
                f"[{task_type}] Field 'recommendation' has invalid value {parsed['recommendation']!r}; "
                f"must be one of {RECOMMENDATION_ENUM}"
            )
        parsed["recommendation"] = recommendation

        try:
            confidence = float(parsed["confidence"])
        except (TypeError, ValueError) as exc:
            raise InferenceSchemaError(
                f"[{task_type}] 'confidence' must be a number, got {parsed['confidence']!r}"
            ) from exc
        # Some models answer in percent
        if 1.0 < confidence <= 100.0:
            confidence /= 100.0
        if not 0.0 <= confidence <= 1.0:
            raise InferenceSchemaError(f"[{task_type}] 'confidence' must be within [0, 1], got {confidence!r}")
        parsed["confidence"] = confidence

        if parsed["reasoning"] is None:
            parsed["reasoning"] = ""

    return parsed


# ---------------------------------------------------------------------------
# InferenceResult
# ---------------------------------------------------------------------------


@dataclass
class InferenceResult:
    """Result envelope for a single inference call.

    Attributes:
        content: The LLM response string (empty string when degraded).
        degraded: True if no backend was available or the backend failed.
        task_type: Which task type was requested.
        error: Error message when degraded or invalid; None on success.
        parsed: Validated dict if schema validation succeeded; None otherwise.
    """

    content: str
    degraded: bool = False
    task_type: str = ""
    error: str | None = None
    parsed: dict | None = None

    @classmethod
    def success(cls, content: str, task_type: str, parsed: dict | None = None, error: str | None = None) -> InferenceResult:
        return cls(content=content, degraded=False, task_type=task_type, error=error, parsed=parsed)

    @classmethod
    def degraded_result(cls, task_type: str, error: str) -> InferenceResult:
        return cls(content="", degraded=True, task_type=task_type, error=error, parsed=None)


# ---------------------------------------------------------------------------
# InferenceProvider
# ---------------------------------------------------------------------------


class InferenceProvider:
    """Routes inference tasks to a configured backend.

    Usage::

        from verdict.core.inference import InferenceProvider, TASK_ANALYZE

        provider = InferenceProvider(my_async_llm_fn)
        result = await provider.infer(TASK_ANALYZE, prompt)
        if result.parsed is None:
            # degraded or invalid output
    """

    def __init__(self, backend: Callable[[str], Any] | None = None) -> None:
        self._backend = backend

    async def infer(self, task_type: str, prompt: str) -> InferenceResult:
        """Send a prompt to the backend and validate the reply.

        Returns a degraded result if no backend is configured or the backend
        raises. A schema failure is not degraded: the raw content is kept and
        ``parsed`` is None with ``error`` describing the problem.

        Returns:
            :class:`InferenceResult`; never raises.
        """
        backend = self._backend
        if backend is None:
            return InferenceResult.degraded_result(
                task_type=task_type,
                error="No inference backend configured",
            )

        try:
            if asyncio.iscoroutinefunction(backend):
                content = await backend(prompt)
            else:
                content = await asyncio.to_thread(backend, prompt)
                if asyncio.iscoroutine(content):
                    content = await content
            content = content if isinstance(content, str) else str(content)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Inference backend failed for task %r: %s", task_type, exc)
            return InferenceResult.degraded_result(task_type=task_type, error=f"Backend error: {exc}")

        parsed: dict | None = None
        error: str | None = None
        if task_type in _TASK_REQUIRED_OUTPUT_FIELDS:
            try:
                parsed = validate_output(task_type, content)
            except InferenceSchemaError as exc:
                logger.warning("Schema validation failed for task %r: %s", task_type, exc)
                error = str(exc)

        return InferenceResult.success(content=content, task_type=task_type, parsed=parsed, error=error)

