"""LLM provider boundary.

Everything the engine learns from the model passes through `extract`, which
validates the reply against a pydantic schema before returning it. Raw provider
output never reaches the services.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from moneymind.ai.gemini_client import (
    GeminiClient,
    GeminiRequestError,
    GeminiResponseError,
)
from moneymind.config import settings
from moneymind.errors import ExtractionFailed, UpstreamProviderError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# One repair attempt after the first malformed reply.
MAX_SCHEMA_ATTEMPTS = 2

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class LLMProvider(Protocol):
    async def extract(
        self,
        prompt: str,
        schema: type[ModelT],
        *,
        system_prompt: str = "",
    ) -> ModelT: ...

    async def complete(self, prompt: str, *, system_prompt: str = "") -> str: ...


def _strip_fences(text: str) -> str:
    return _FENCE_RE.sub("", text.strip()).strip()


def parse_payload(text: str, schema: type[ModelT]) -> ModelT:
    """Parse and validate one model reply. Raises ValueError with readable errors."""
    cleaned = _strip_fences(text)
    if not cleaned:
        raise ValueError("response was empty")

    try:
        raw = json.loads(cleaned)
    except ValueError as exc:
        raise ValueError(f"response was not valid JSON: {exc}") from exc

    try:
        return schema.model_validate(raw)
    except ValidationError as exc:
        messages = [
            f"{'.'.join(str(part) for part in err['loc']) or 'root'}: {err['msg']}"
            for err in exc.errors()
        ]
        raise ValueError("; ".join(messages)) from exc


def build_repair_prompt(prompt: str, errors: str) -> str:
    return (
        f"{prompt}\n\n"
        "Your previous reply was rejected for these reasons:\n"
        f"{errors}\n"
        "Reply again with JSON only, fixing every listed problem."
    )


class GeminiProvider:
    """LLMProvider backed by `GeminiClient`."""

    def __init__(self, client: GeminiClient) -> None:
        self.client = client

    async def _generate(self, system_prompt: str, prompt: str, *, json_mode: bool) -> str:
        try:
            result = await self.client.generate(system_prompt, prompt, json_mode=json_mode)
        except GeminiRequestError as exc:
            logger.error("LLM provider request failed with status %s", exc.status_code)
            raise UpstreamProviderError("The assistant is unavailable right now. Try again shortly.") from exc
        return result.text_response

    async def extract(
        self,
        prompt: str,
        schema: type[ModelT],
        *,
        system_prompt: str = "",
    ) -> ModelT:
        errors: list[str] = []
        current_prompt = prompt

        for attempt in range(MAX_SCHEMA_ATTEMPTS):
            try:
                text = await self._generate(system_prompt, current_prompt, json_mode=True)
                return parse_payload(text, schema)
            except GeminiResponseError as exc:
                reason = str(exc)
            except ValueError as exc:
                reason = str(exc)

            errors.append(reason)
            logger.warning(
                "LLM reply rejected for %s (attempt %d): %s",
                schema.__name__,
                attempt + 1,
                reason,
            )
            current_prompt = build_repair_prompt(prompt, reason)

        raise ExtractionFailed(f"Could not extract a valid {schema.__name__}", errors)

    async def complete(self, prompt: str, *, system_prompt: str = "") -> str:
        try:
            return await self._generate(system_prompt, prompt, json_mode=False)
        except GeminiResponseError as exc:
            raise UpstreamProviderError("The assistant returned an unreadable reply.") from exc


def get_llm_provider() -> LLMProvider | None:
    """Build the configured provider, or None when no API key is set."""
    if not settings.gemini_api_key:
        return None
    return GeminiProvider(
        GeminiClient(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            timeout_seconds=settings.llm_timeout_seconds,
            max_retries=settings.llm_max_retries,
        )
    )
