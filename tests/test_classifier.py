from __future__ import annotations

import asyncio
import json
from decimal import Decimal

import httpx
import pytest

from expense_sync.classifier import GeminiClassifier, build_prompt
from expense_sync.config import Settings
from expense_sync.errors import (
    ConfigMissing,
    EmptyResult,
    RateLimited,
    TransportError,
    ValidationFailed,
)
from tests.helpers.gemini_stub import gemini_body, gemini_transport, make_classifier

SMS = "Rs. 250 debited from A/c XX12 at STARBUCKS on 01-07"

GOOD = {
    "merchant": "Starbucks",
    "amount": 250,
    "type": "debit",
    "category": "Food",
    "confidence": 0.92,
}


def _classify(classifier: GeminiClassifier, body: str = SMS):
    return asyncio.run(classifier.classify(body))


def test_success_parses_candidate_and_sends_expected_request() -> None:
    seen: list[httpx.Request] = []
    classifier = make_classifier(gemini_transport(json_body=gemini_body(GOOD), seen=seen))

    cand = _classify(classifier)

    assert cand.merchant == "Starbucks"
    assert cand.amount == Decimal("250")
    assert cand.type == "debit"
    assert cand.category == "Food"
    assert cand.confidence == pytest.approx(0.92)

    assert len(seen) == 1
    req = seen[0]
    assert req.method == "POST"
    assert str(req.url) == "https://ai.test/v1/models/test-model:generateContent"
    assert req.headers["x-goog-api-key"] == "test-key"
    payload = json.loads(req.content)
    assert payload["generationConfig"] == {"responseMimeType": "application/json"}
    assert payload["contents"][0]["parts"][0]["text"] == build_prompt(SMS)
    assert build_prompt(SMS).endswith(f'SMS: "{SMS}"')


def test_missing_key_fails_without_network_call() -> None:
    seen: list[httpx.Request] = []
    classifier = make_classifier(gemini_transport(json_body=gemini_body(GOOD), seen=seen), api_key=None)

    with pytest.raises(ConfigMissing) as ei:
        _classify(classifier)
    assert ei.value.unreachable is True
    assert seen == []


def test_from_settings_uses_configured_endpoint() -> None:
    settings = Settings(gemini_api_key="k", gemini_model="m", gemini_base_url="https://x.test/v9/")
    classifier = GeminiClassifier.from_settings(settings)
    assert classifier.endpoint == "https://x.test/v9/models/m:generateContent"
    assert classifier.timeout_sec == settings.ai_timeout_sec


def test_http_429_maps_to_rate_limited() -> None:
    classifier = make_classifier(gemini_transport(status_code=429, json_body={"error": "quota"}))
    with pytest.raises(RateLimited) as ei:
        _classify(classifier)
    assert ei.value.unreachable is True


def test_http_500_maps_to_transport_error() -> None:
    classifier = make_classifier(gemini_transport(status_code=500, json_body={"error": "boom"}))
    with pytest.raises(TransportError) as ei:
        _classify(classifier)
    assert ei.value.status_code == 500
    assert ei.value.unreachable is True


@pytest.mark.parametrize(
    "exc", [httpx.ConnectError("connection refused"), httpx.ReadTimeout("too slow")]
)
def test_network_failures_map_to_transport_error(exc: Exception) -> None:
    classifier = make_classifier(gemini_transport(raise_exc=exc))
    with pytest.raises(TransportError):
        _classify(classifier)


def test_non_json_body_maps_to_transport_error() -> None:
    classifier = make_classifier(gemini_transport(text="<html>oops</html>"))
    with pytest.raises(TransportError):
        _classify(classifier)


def test_non_json_model_text_maps_to_transport_error() -> None:
    classifier = make_classifier(gemini_transport(json_body=gemini_body("not json at all")))
    with pytest.raises(TransportError):
        _classify(classifier)


@pytest.mark.parametrize(
    "body",
    [
        gemini_body("null"),
        gemini_body({"content": None}),
        gemini_body({"merchant": "Acme", "type": "debit"}),
        gemini_body({"merchant": "Acme", "amount": 0, "type": "debit"}),
        gemini_body({"merchant": "Acme", "amount": 12}),
        {"candidates": []},
        {"promptFeedback": {"blockReason": "OTHER"}},
    ],
)
def test_unusable_answers_map_to_empty_result(body: dict) -> None:
    classifier = make_classifier(gemini_transport(json_body=body))
    with pytest.raises(EmptyResult) as ei:
        _classify(classifier)
    # The service answered; this is not an outage.
    assert ei.value.unreachable is False


def test_malformed_fields_map_to_validation_failed() -> None:
    bad = {"merchant": "Acme", "amount": "twelve", "type": "debit"}
    classifier = make_classifier(gemini_transport(json_body=gemini_body(bad)))
    with pytest.raises(ValidationFailed):
        _classify(classifier)


def test_markdown_fenced_json_is_accepted() -> None:
    fenced = "```json\n" + json.dumps(GOOD) + "\n```"
    classifier = make_classifier(gemini_transport(json_body=gemini_body(fenced)))
    assert _classify(classifier).merchant == "Starbucks"
