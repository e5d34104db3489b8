from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from moneymind.ai.gemini_client import GeminiRequestError, GeminiResponseError, GeminiResult
from moneymind.ai.provider import GeminiProvider, get_llm_provider, parse_payload
from moneymind.errors import ExtractionFailed, UpstreamProviderError
from moneymind.services.extraction import GoalCreatePayload, ProgressPayload


def _run(coro):
    return asyncio.run(coro)


class StubGeminiClient:
    def __init__(self, results):
        self.results = list(results)
        self.prompts: list[str] = []

    async def generate(self, system_prompt, prompt, *, json_mode=False, temperature=0.2):
        self.prompts.append(prompt)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return GeminiResult(text_response=result, finish_reason="STOP")


def test_parse_payload_strips_markdown_fences() -> None:
    payload = parse_payload('```json\n{"amount": 50, "goal_hint": null}\n```', ProgressPayload)

    assert payload.amount == Decimal("50")
    assert payload.goal_hint is None


def test_parse_payload_names_failing_fields() -> None:
    with pytest.raises(ValueError) as exc_info:
        parse_payload('{"name": "Trip"}', GoalCreatePayload)

    assert "target_amount" in str(exc_info.value)


def test_extract_retries_once_with_repair_prompt() -> None:
    client = StubGeminiClient(["not json at all", '{"name": "Trip", "target_amount": 900}'])

    payload = _run(GeminiProvider(client).extract("Extract the goal.", GoalCreatePayload))

    assert payload.name == "Trip"
    assert payload.target_amount == Decimal("900")
    assert len(client.prompts) == 2
    assert "rejected" in client.prompts[1]
    assert "not valid JSON" in client.prompts[1]


def test_extract_gives_up_after_second_bad_reply() -> None:
    client = StubGeminiClient(['{"amount": -5}', GeminiResponseError("Gemini response missing candidates")])

    with pytest.raises(ExtractionFailed) as exc_info:
        _run(GeminiProvider(client).extract("How much?", ProgressPayload))

    assert len(exc_info.value.errors) == 2
    assert "amount" in exc_info.value.errors[0]


def test_request_failure_becomes_upstream_error() -> None:
    client = StubGeminiClient([GeminiRequestError(503, "Gemini request failed")])

    with pytest.raises(UpstreamProviderError):
        _run(GeminiProvider(client).extract("How much?", ProgressPayload))
    assert len(client.prompts) == 1


def test_complete_returns_plain_text() -> None:
    client = StubGeminiClient(["Nice work today."])

    assert _run(GeminiProvider(client).complete("Say something kind.")) == "Nice work today."


def test_no_api_key_means_no_provider(monkeypatch) -> None:
    from moneymind.ai import provider as provider_module

    monkeypatch.setattr(provider_module.settings, "gemini_api_key", "")
    assert get_llm_provider() is None

    monkeypatch.setattr(provider_module.settings, "gemini_api_key", "test-key")
    assert isinstance(get_llm_provider(), GeminiProvider)
