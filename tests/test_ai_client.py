from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest
import requests

from houseplan.ai_client import (
    AIPlanPayload,
    GeminiClient,
    HuggingFaceImageClient,
    _post,
    enhance_plan,
    extract_json,
    generate_ai_plan,
    generate_prompt_variations,
    generate_visuals,
)
from houseplan.errors import ProviderError, ProviderUnavailable
from houseplan.plan_generator import COST_CATEGORIES, generate_house_plan

NOW = datetime(2025, 3, 14, 9, 30, tzinfo=timezone.utc)


class StubResponse:
    def __init__(self, status_code=200, body=None, content=b"", headers=None):
        self.status_code = status_code
        self._body = body
        self.content = content
        self.headers = headers or {"content-type": "application/json"}
        self.text = json.dumps(body) if body is not None else content.decode("latin-1")

    def json(self):
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body


class StubSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def gemini_text(text: str) -> StubResponse:
    return StubResponse(body={"candidates": [{"content": {"parts": [{"text": text}]}}]})


def plan_json(**overrides) -> str:
    data = {
        "houseType": "3-Bedroom Modern Family House",
        "style": "Modern",
        "bedrooms": 3,
        "size": 120,
        "plotSize": 500,
        "roofing": "Clay tiles",
        "interiorFinish": "Porcelain tiles",
        "costBreakdown": {name: 100_000 for name in COST_CATEGORIES},
        "timeline": "6-8 months",
        "notes": ["Buy cement in bulk"],
        "aiPrompts": ["a", "b", "c", "d"],
        "recommendations": "Orient living rooms east",
        "costOptimization": "Use local stone",
        "materials": "Machakos stone",
    }
    data.update(overrides)
    return json.dumps(data)


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(_post.retry, "sleep", lambda seconds: None)


def client_for(*responses) -> GeminiClient:
    return GeminiClient("test-key", session=StubSession(*responses))


def test_missing_client_uses_template_plan() -> None:
    result = generate_ai_plan(1_500_000, "Kenya", "", client=None, now=NOW)

    assert result.source == "fallback"
    assert result.reason == "Missing GOOGLE_API_KEY"
    assert result.plan.total_cost == 1_500_000
    assert result.plan.fallback_reason == "Missing GOOGLE_API_KEY"


def test_fenced_json_becomes_a_google_plan() -> None:
    client = client_for(gemini_text(f"Here you go:\n```json\n{plan_json()}\n```\nEnjoy"))
    result = generate_ai_plan(1_500_000, "Kisumu", "two floors", client=client, now=NOW)

    assert result.source == "google"
    plan = result.plan
    assert plan.house_type == "3-Bedroom Modern Family House"
    assert plan.location == "Kisumu"
    assert plan.total_cost == 1_200_000
    assert len(plan.ai_prompts) == 3
    assert plan.ai_enhanced.materials == "Machakos stone"

    url, kwargs = client.session.calls[0]
    assert "gemini-1.5-flash:generateContent" in url
    assert kwargs["params"] == {"key": "test-key"}
    assert "KES 1,500,000 in Kisumu" in kwargs["json"]["contents"][0]["parts"][0]["text"]


def test_prose_answer_falls_back() -> None:
    result = generate_ai_plan(1_500_000, client=client_for(gemini_text("I cannot help with that.")), now=NOW)

    assert result.source == "fallback"
    assert result.reason == "AI returned non-JSON content"


def test_incomplete_breakdown_falls_back() -> None:
    costs = {name: 1 for name in COST_CATEGORIES if name != "permits"}
    result = generate_ai_plan(1_500_000, client=client_for(gemini_text(plan_json(costBreakdown=costs))), now=NOW)

    assert result.source == "fallback"
    assert "does not match the plan schema" in result.reason


def test_negative_cost_falls_back() -> None:
    costs = {name: 1 for name in COST_CATEGORIES}
    costs["land"] = -5
    result = generate_ai_plan(1_500_000, client=client_for(gemini_text(plan_json(costBreakdown=costs))), now=NOW)

    assert result.source == "fallback"


@pytest.mark.parametrize(
    "reply",
    [
        plan_json(costBreakdown={**{name: 1 for name in COST_CATEGORIES}, "land": float("nan")}),
        plan_json(costBreakdown={**{name: 1 for name in COST_CATEGORIES}, "walls": float("inf")}),
        plan_json(size=float("inf")),
        plan_json(plotSize=7).replace('"plotSize": 7', '"plotSize": 1e400'),
    ],
    ids=["nan-cost", "infinite-cost", "infinite-size", "overflowing-plot"],
)
def test_non_finite_numbers_fall_back(reply: str) -> None:
    result = generate_ai_plan(1_500_000, client=client_for(gemini_text(reply)), now=NOW)

    assert result.source == "fallback"
    assert result.plan.total_cost == 1_500_000
    assert "does not match the plan schema" in result.reason


def test_unconvertible_payload_falls_back(monkeypatch) -> None:
    def overflow(self, budget, location, now=None):
        raise OverflowError("cannot convert float infinity to integer")

    monkeypatch.setattr(AIPlanPayload, "to_house_plan", overflow)
    result = generate_ai_plan(1_500_000, client=client_for(gemini_text(plan_json())), now=NOW)

    assert result.source == "fallback"
    assert result.reason == "AI returned values that cannot form a plan"


def test_client_error_falls_back_without_retry() -> None:
    client = client_for(StubResponse(400, body={"error": "bad key"}))
    result = generate_ai_plan(2_000_000, client=client, now=NOW)

    assert result.source == "fallback"
    assert result.reason.startswith("Google API error: HTTP 400")
    assert len(client.session.calls) == 1


def test_server_errors_are_retried() -> None:
    client = client_for(StubResponse(503, body={}), gemini_text(plan_json()))
    result = generate_ai_plan(2_000_000, client=client, now=NOW)

    assert result.source == "google"
    assert len(client.session.calls) == 2


def test_retries_give_up_after_three_attempts() -> None:
    session = StubSession(
        requests.ConnectionError("down"),
        StubResponse(429, body={}),
        StubResponse(502, body={}),
    )
    with pytest.raises(ProviderUnavailable):
        _post(session, "http://example.invalid", 1.0)
    assert len(session.calls) == 3


def test_extract_json_handles_fences_and_prose() -> None:
    assert extract_json('```json\n{"a": 1}\n```') == {"a": 1}
    assert extract_json('Sure! {"a": [1, 2]} hope this helps') == {"a": [1, 2]}
    assert extract_json('Prompts: ["x", "y"]', array=True) == ["x", "y"]
    with pytest.raises(ValueError):
        extract_json("no json here")


def test_enhance_plan_parses_json() -> None:
    body = json.dumps({"recommendations": "r", "costOptimization": "c", "materials": "m", "timeline": "t", "aiPrompts": ["p"]})
    enhanced = enhance_plan(3_000_000, client=client_for(gemini_text(body)))

    assert enhanced.recommendations == "r"
    assert enhanced.ai_prompts == ("p",)


def test_enhance_plan_keeps_prose_as_recommendations() -> None:
    text = "Build with stone. " * 50
    enhanced = enhance_plan(3_000_000, client=client_for(gemini_text(text)))

    assert enhanced.recommendations == text[:500]
    assert len(enhanced.ai_prompts) == 3


def test_enhance_plan_requires_a_client() -> None:
    with pytest.raises(ProviderError, match="GOOGLE_API_KEY"):
        enhance_plan(3_000_000, client=None)


def test_prompt_variations_from_google_and_template() -> None:
    plan = generate_house_plan(2_500_000, now=NOW)

    google = generate_prompt_variations(plan, "Eldoret", client_for(gemini_text('["one", "two", "three", "four"]')))
    assert google.source == "google"
    assert google.prompts == ["one", "two", "three"]

    fallback = generate_prompt_variations(plan, "Eldoret", client_for(gemini_text("not a list")))
    assert fallback.source == "fallback"
    assert len(fallback.prompts) == 3
    assert "Eldoret" in fallback.prompts[0]

    assert generate_prompt_variations(plan, "Eldoret", None).source == "fallback"


def test_visuals_need_prompts() -> None:
    with pytest.raises(ValueError):
        generate_visuals([])


def test_visuals_from_gemini_inline_data() -> None:
    image = {"candidates": [{"content": {"parts": [{"text": "ok"}, {"inlineData": {"mimeType": "image/jpeg", "data": "QUJD"}}]}}]}
    gemini = client_for(StubResponse(body=image), StubResponse(body={"candidates": []}))
    result = generate_visuals(["front", "back"], gemini=gemini)

    assert result.provider == "google"
    assert result.images == ["data:image/jpeg;base64,QUJD"]


def test_visuals_fall_through_to_hugging_face() -> None:
    gemini = client_for(StubResponse(body={"candidates": []}))
    hf = HuggingFaceImageClient("hf-token", session=StubSession(StubResponse(content=b"PNG", headers={"content-type": "image/png"})))
    result = generate_visuals(["front"], gemini=gemini, huggingface=hf)

    assert result.provider == "huggingface"
    assert result.images == ["data:image/png;base64,UE5H"]
    _, kwargs = hf.session.calls[0]
    assert kwargs["headers"]["Authorization"] == "Bearer hf-token"


def test_hugging_face_rejects_non_image_bodies() -> None:
    hf = HuggingFaceImageClient("t", session=StubSession(StubResponse(body={"error": "loading"})))
    with pytest.raises(ProviderError):
        hf.text_to_image("front")


def test_visuals_without_providers() -> None:
    with pytest.raises(ProviderError, match="No image provider configured"):
        generate_visuals(["front"])
