"""Completion client for an OpenAI-compatible endpoint (Groq by default).

``complete_json`` is the one place that knows about code fences, JSON repair
and re-prompting on schema failures; callers only see a validated object or
an ``ExternalServiceError``.
"""
from __future__ import annotations

import json
import re
import time
from typing import Any, Optional, TypeVar

import openai
from openai import OpenAI
from pydantic import TypeAdapter

from autoapply.errors import ExternalServiceError
from autoapply.log import get_logger
from autoapply.retry import retry

log = get_logger(__name__)

T = TypeVar("T")

JSON_ONLY = (
    "IMPORTANT: Respond ONLY with valid JSON. Do not include any explanatory text, "
    "markdown formatting, or code fences. Output must be pure JSON only."
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


class LLMClient:
    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.groq.com/openai/v1",
        models: Optional[dict[str, str]] = None,
        timeout: float = 30.0,
        client: Any = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self.models = models or {"fast": "llama-3.1-8b-instant", "balanced": "llama-3.3-70b-versatile"}
        self.timeout = timeout
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None or bool(self.api_key)

    def _get_client(self) -> Any:
        if self._client is None:
            if not self.api_key:
                raise ExternalServiceError("LLM API key not configured (set GROQ_API_KEY)")
            self._client = OpenAI(api_key=self.api_key, base_url=self.base_url, max_retries=0)
        return self._client

    def _timeout_for(self, tier: str, timeout: Optional[float]) -> float:
        if timeout:
            return timeout
        return 60.0 if tier == "powerful" else self.timeout

    @retry(max_attempts=3, base_delay=1.0, retryable=(openai.RateLimitError,))
    def _create(self, **kwargs: Any) -> Any:
        return self._get_client().chat.completions.create(**kwargs)

    def complete(
        self,
        system: str,
        user: str,
        *,
        model: str = "balanced",
        temperature: float = 0.7,
        max_tokens: int = 4096,
        timeout: Optional[float] = None,
    ) -> str:
        model_name = self.models.get(model) or self.models.get("balanced") or model
        started = time.monotonic()
        try:
            response = self._create(
                model=model_name,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=self._timeout_for(model, timeout),
            )
        except openai.APIError as exc:
            log.error(
                "Completion failed after %.0fms (model=%s): %s",
                (time.monotonic() - started) * 1000, model_name, exc,
            )
            raise ExternalServiceError(f"AI API error: {exc}") from exc

        usage = getattr(response, "usage", None)
        if usage is not None:
            log.debug(
                "Completion ok: model=%s in=%s out=%s %.0fms",
                model_name,
                getattr(usage, "prompt_tokens", "?"),
                getattr(usage, "completion_tokens", "?"),
                (time.monotonic() - started) * 1000,
            )
        content = response.choices[0].message.content if response.choices else None
        if content is None:
            raise ExternalServiceError("Empty completion from AI service")
        return content

    def complete_json(
        self,
        system: str,
        user: str,
        schema: Any,
        *,
        max_retries: int = 2,
        **options: Any,
    ) -> Any:
        """Complete and validate against ``schema`` (a pydantic model or any type
        ``TypeAdapter`` accepts), re-prompting with the error on failure."""
        if not self.configured:
            raise ExternalServiceError("LLM API key not configured (set GROQ_API_KEY)")
        adapter = TypeAdapter(schema)
        system = f"{system}\n\n{JSON_ONLY}"
        last_error: Exception | None = None

        for attempt in range(max_retries + 1):
            try:
                text = strip_code_fences(self.complete(system, user, **options))
                try:
                    parsed = json.loads(text)
                except json.JSONDecodeError:
                    match = _OBJECT_RE.search(text)
                    if not match:
                        raise
                    log.debug("Recovered JSON object from noisy completion (attempt %d)", attempt)
                    parsed = json.loads(match.group(0))
                return adapter.validate_python(parsed)
            except (ValueError, ExternalServiceError) as exc:
                last_error = exc
                if attempt == max_retries:
                    break
                log.warning("Structured completion attempt %d failed: %s", attempt + 1, str(exc)[:200])
                if isinstance(exc, json.JSONDecodeError):
                    feedback = f"The previous response was not valid JSON: {exc}. Please respond with valid JSON only."
                else:
                    feedback = (
                        f"The previous response had validation errors: {str(exc)[:1000]}. "
                        "Please ensure the JSON matches the required schema exactly."
                    )
                user = f"{user}\n\n{feedback}"

        log.error("Structured completion failed after %d attempts: %s", max_retries + 1, last_error)
        raise ExternalServiceError(
            f"Failed to get valid JSON response after {max_retries + 1} attempts: {last_error}"
        )
