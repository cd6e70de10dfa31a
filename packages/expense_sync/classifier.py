"""AI classifier backed by the Gemini ``generateContent`` REST endpoint.

One non-streaming POST per message. The request embeds a fixed instruction
prompt plus the raw SMS and asks for a JSON response; the JSON-encoded text at
``candidates[0].content.parts[0].text`` must decode to an object with
``merchant, amount, type, category, confidence``.

Outcome mapping
---------------
- no API key configured → :class:`~expense_sync.errors.ConfigMissing` (no
  request is sent)
- HTTP 429 → :class:`~expense_sync.errors.RateLimited`
- other non-2xx, network errors, timeouts, undecodable JSON →
  :class:`~expense_sync.errors.TransportError`
- no candidate text, a ``null`` payload, or a payload without a truthy
  ``amount`` and a ``type`` → :class:`~expense_sync.errors.EmptyResult`
  (:class:`~expense_sync.errors.ValidationFailed` when fields are present but
  malformed)

There are no retries here: the remote service enforces admission control and
callers fall back to the regex tier instead.
"""

from __future__ import annotations

import json
import time
from collections.abc import Mapping
from typing import Any

import httpx
from pydantic import ValidationError

from .config import DEFAULT_BASE_URL, DEFAULT_MODEL, Settings
from .errors import ConfigMissing, EmptyResult, RateLimited, TransportError, ValidationFailed
from .logging_setup import get_logger
from .models import ExtractedCandidate

_logger = get_logger("expense_sync.classifier")

SYSTEM_PROMPT = """
You are an intelligent expense tracker assistant.
Your goal is to extract structured data from SMS transaction messages.

Input: An SMS text.
Output: A JSON object with these fields:
- "merchant": The name of the merchant or person (e.g., "Starbucks", "Uber", "Ramesh"). Clean it up (remove "VPA", "UPI", etc.).
- "amount": The transaction amount (number).
- "type": "debit" or "credit".
- "category": A short category (e.g., "Food", "Travel", "Shopping", "Bills").
- "confidence": A number between 0 and 1 indicating how sure you are.

If the message is NOT a transaction, return content: null.
Return ONLY raw JSON.
"""  # noqa: E501


def build_prompt(body: str) -> str:
    return f'{SYSTEM_PROMPT}\n\nSMS: "{body}"'


def build_request_payload(body: str) -> dict[str, Any]:
    return {
        "contents": [{"parts": [{"text": build_prompt(body)}]}],
        "generationConfig": {"responseMimeType": "application/json"},
    }


def _extract_candidate_text(data: Any) -> str:
    """Return the JSON text at ``candidates[0].content.parts[0].text``."""

    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise EmptyResult("response carried no candidate text") from e
    if not isinstance(text, str) or not text.strip():
        raise EmptyResult("response carried no candidate text")
    return text


def _strip_fences(text: str) -> str:
    # Models occasionally wrap JSON in markdown fences despite the mime type.
    clean = text.strip()
    if clean.startswith("```"):
        clean = clean.split("```")[1]
        if clean.startswith("json"):
            clean = clean[4:]
    return clean.strip()


def parse_candidate(text: str) -> ExtractedCandidate:
    """Decode and validate the model's JSON text into a candidate."""

    try:
        decoded = json.loads(_strip_fences(text))
    except json.JSONDecodeError as e:
        raise TransportError("model output was not valid JSON") from e

    # "If the message is NOT a transaction, return content: null."
    if isinstance(decoded, Mapping) and set(decoded) == {"content"}:
        decoded = decoded["content"]
    if decoded is None:
        raise EmptyResult("model reported no transaction")
    if not isinstance(decoded, Mapping):
        raise ValidationFailed(f"expected a JSON object, got {type(decoded).__name__}")

    if not decoded.get("amount") or not decoded.get("type"):
        raise EmptyResult("model output lacks amount or type")

    try:
        return ExtractedCandidate.model_validate(decoded)
    except ValidationError as e:
        raise ValidationFailed(f"model output failed validation: {e.error_count()} error(s)") from e


class GeminiClassifier:
    """Async client for the remote classifier.

    Parameters
    ----------
    api_key:
        Credential passed as the ``x-goog-api-key`` header. ``None`` makes
        every call fail fast with :class:`ConfigMissing`.
    model / base_url:
        Endpoint coordinates; the request goes to
        ``{base_url}/models/{model}:generateContent``.
    timeout_sec:
        Bound on each request; expiry surfaces as :class:`TransportError`.
    transport:
        Optional ``httpx`` transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        api_key: str | None,
        *,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout_sec: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self._transport = transport

    @classmethod
    def from_settings(
        cls, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None
    ) -> GeminiClassifier:
        return cls(
            settings.gemini_api_key,
            model=settings.gemini_model,
            base_url=settings.gemini_base_url,
            timeout_sec=settings.ai_timeout_sec,
            transport=transport,
        )

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_sec, transport=self._transport)

    async def classify(self, body: str) -> ExtractedCandidate:
        """Classify one SMS body; raise a ``ClassifierError`` subclass on failure."""

        if not self.api_key:
            raise ConfigMissing("GEMINI_API_KEY is not configured")

        t0 = time.perf_counter()
        try:
            async with self._client() as client:
                resp = await client.post(
                    self.endpoint,
                    json=build_request_payload(body),
                    headers={"x-goog-api-key": self.api_key},
                )
        except httpx.TimeoutException as e:
            raise TransportError(f"request timed out after {self.timeout_sec}s") from e
        except httpx.HTTPError as e:
            raise TransportError(f"request failed: {e.__class__.__name__}: {e}") from e

        dt_ms = (time.perf_counter() - t0) * 1000.0
        if resp.status_code == 429:
            _logger.info("classifier:rate_limited latency_ms=%.2f", dt_ms)
            raise RateLimited("remote classifier is throttling requests (HTTP 429)")
        if not resp.is_success:
            raise TransportError(
                f"remote classifier error: HTTP {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise TransportError("response body was not valid JSON") from e

        candidate = parse_candidate(_extract_candidate_text(data))
        _logger.debug(
            "classifier:done latency_ms=%.2f merchant=%r confidence=%.2f",
            dt_ms,
            candidate.merchant,
            candidate.confidence,
        )
        return candidate


__all__ = [
    "SYSTEM_PROMPT",
    "build_prompt",
    "build_request_payload",
    "parse_candidate",
    "GeminiClassifier",
]
