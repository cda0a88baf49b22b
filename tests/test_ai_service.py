import asyncio
import json

import pytest
from prometheus_client import REGISTRY

from healthflow import openai_client
from healthflow.ai_service import (
    AIService,
    ConfigurationError,
    DEFAULT_INTAKE_QUESTIONS,
    IntakeQuestion,
    RateLimitExceeded,
    ServiceError,
    parse_intake_questions,
)
from healthflow.config import AISettings
from healthflow.models import CLINIC_PHONE
from healthflow.rate_limiter import RateLimiter


INTAKE_REPLY = json.dumps(
    [
        {"id": "symptoms", "question": "Describe your symptoms", "type": "text", "required": True},
        {
            "id": "pain_scale",
            "question": "Rate your pain",
            "type": "select",
            "required": False,
            "options": ["1-3", "4-6", "7-10"],
        },
    ]
)


def _sample(name, labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.mark.asyncio
async def test_missing_configuration_fails_before_rate_limiter(transport):
    limiter = RateLimiter(limit=5)
    service = AIService(AISettings(api_key=None), rate_limiter=limiter, transport=transport)

    with pytest.raises(ConfigurationError) as excinfo:
        await service.generate_chat_response("Do you take Aetna?")

    assert excinfo.value.missing == ["OPENAI_API_KEY"]
    assert limiter.recorded_count == 0
    assert transport.calls == []


def test_blank_model_is_reported_missing(transport):
    service = AIService(AISettings(api_key="k", model=" "), transport=transport)
    with pytest.raises(ConfigurationError) as excinfo:
        service.summarize_clinical_note("note")
    assert excinfo.value.missing == ["OPENAI_MODEL"]


@pytest.mark.asyncio
async def test_chat_request_shape(ai_settings, transport):
    service = AIService(ai_settings, transport=transport)
    reply = await service.generate_chat_response("Where are you located?")

    assert reply == "stub reply"
    call = transport.calls[0]
    assert call["max_tokens"] == 300
    assert call["temperature"] == 0.7
    assert call["model"] == "gpt-4"
    assert call["api_key"] == "test-key"
    system, user = call["messages"]
    assert system["role"] == "system"
    assert CLINIC_PHONE in system["content"]
    assert user == {"role": "user", "content": "Where are you located?"}


@pytest.mark.asyncio
async def test_chat_uses_bot_knowledge_base(ai_settings, transport):
    service = AIService(ai_settings, transport=transport)
    kb = {"clinicInfo": {"phone": "(555) 000-1111"}, "insurance": ["Kaiser"]}
    await service.generate_chat_response("hi", kb)
    system = transport.calls[0]["messages"][0]["content"]
    assert "(555) 000-1111" in system
    assert "Kaiser" in system


@pytest.mark.asyncio
async def test_summary_request_shape(ai_settings, transport):
    service = AIService(ai_settings, transport=transport)
    await service.summarize_clinical_note("Pt presents with cough.")

    call = transport.calls[0]
    assert call["max_tokens"] == 500
    assert call["temperature"] == 0.3
    system = call["messages"][0]["content"]
    for section in ("Chief Complaint", "Key Findings", "Treatment Plan", "Follow-up"):
        assert section in system
    assert call["messages"][1]["content"].endswith("Pt presents with cough.")


@pytest.mark.asyncio
async def test_rate_limit_rejects_without_network(ai_settings, transport):
    service = AIService(ai_settings, rate_limiter=RateLimiter(limit=1), transport=transport)
    before = _sample("healthflow_ai_requests_total", {"operation": "chat", "outcome": "rate_limited"})

    await service.generate_chat_response("first")
    with pytest.raises(RateLimitExceeded) as excinfo:
        await service.generate_chat_response("second")

    assert excinfo.value.retry_after > 0
    assert len(transport.calls) == 1
    after = _sample("healthflow_ai_requests_total", {"operation": "chat", "outcome": "rate_limited"})
    assert after == before + 1


@pytest.mark.asyncio
async def test_admission_happens_when_called_not_when_awaited(ai_settings, transport):
    limiter = RateLimiter(limit=2)
    service = AIService(ai_settings, rate_limiter=limiter, transport=transport)

    first = service.generate_chat_response("a")
    second = service.summarize_clinical_note("b")
    assert limiter.recorded_count == 2
    with pytest.raises(RateLimitExceeded):
        service.generate_chat_response("c")

    results = await asyncio.gather(first, second)
    assert results == ["stub reply", "stub reply"]


@pytest.mark.asyncio
async def test_transport_failure_becomes_service_error(ai_settings, make_transport):
    boom = RuntimeError("Error calling OpenAI: connection reset")
    service = AIService(ai_settings, transport=make_transport(error=boom))

    with pytest.raises(ServiceError) as excinfo:
        await service.generate_chat_response("hello")

    assert excinfo.value.operation == "chat"
    assert excinfo.value.__cause__ is boom
    assert excinfo.value.cause is boom


@pytest.mark.asyncio
async def test_empty_reply_is_a_service_error(ai_settings, make_transport):
    service = AIService(ai_settings, transport=make_transport(replies=["   "]))
    with pytest.raises(ServiceError) as excinfo:
        await service.summarize_clinical_note("note")
    assert excinfo.value.operation == "summarize"


@pytest.mark.asyncio
async def test_intake_questions_parse_valid_reply(ai_settings, make_transport):
    transport = make_transport(replies=[f"```json\n{INTAKE_REPLY}\n```"])
    service = AIService(ai_settings, transport=transport)

    questions = await service.generate_intake_questions("new patient")

    assert [q.id for q in questions] == ["symptoms", "pain_scale"]
    assert questions[1].options == ["1-3", "4-6", "7-10"]
    assert transport.calls[0]["max_tokens"] == 800
    assert transport.calls[0]["temperature"] == 0.5
    assert transport.calls[0]["messages"][1]["content"] == "Generate intake questions for: new patient"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "reply",
    [
        "Sure! Here are some questions: 1. Name?",
        json.dumps({"id": "x", "question": "y", "type": "text", "required": True}),
        json.dumps([{"id": "x", "question": "y", "type": "radio", "required": True}]),
        json.dumps([{"id": "x", "type": "text", "required": True}]),
        "[]",
    ],
)
async def test_intake_questions_fall_back_on_invalid_reply(ai_settings, make_transport, reply):
    service = AIService(ai_settings, transport=make_transport(replies=[reply]))
    questions = await service.generate_intake_questions("general")
    assert questions == list(DEFAULT_INTAKE_QUESTIONS)
    assert [q.id for q in questions] == ["chief_complaint", "current_medications", "allergies"]


@pytest.mark.asyncio
async def test_intake_questions_fall_back_on_transport_failure(ai_settings, make_transport):
    service = AIService(ai_settings, transport=make_transport(error=RuntimeError("down")))
    questions = await service.generate_intake_questions("general")
    assert len(questions) == 3


def test_intake_still_raises_configuration_error(transport):
    service = AIService(AISettings(api_key=""), transport=transport)
    with pytest.raises(ConfigurationError):
        service.generate_intake_questions("general")


def test_parse_intake_questions_ignores_unknown_keys():
    questions = parse_intake_questions(
        '[{"id": "a", "question": "Q?", "type": "date", "required": false, "hint": "x"}]'
    )
    assert questions == [IntakeQuestion(id="a", question="Q?", type="date", required=False)]


@pytest.mark.asyncio
async def test_offline_mode_uses_deterministic_placeholder(monkeypatch, ai_settings):
    monkeypatch.setenv("USE_OFFLINE_MODEL", "true")
    service = AIService(ai_settings)

    first = await service.generate_chat_response("hello")
    second = await service.generate_chat_response("hello")

    assert first.startswith("Offline response (")
    assert first == second


@pytest.mark.asyncio
async def test_call_openai_wraps_client_errors(monkeypatch):
    def broken(*args, **kwargs):
        raise ConnectionError("no route to host")

    monkeypatch.setattr(openai_client, "_get_client", broken)
    with pytest.raises(RuntimeError) as excinfo:
        await openai_client.call_openai([{"role": "user", "content": "hi"}], api_key="k")
    assert isinstance(excinfo.value.__cause__, ConnectionError)


@pytest.mark.asyncio
async def test_call_openai_returns_message_content(monkeypatch):
    captured = {}

    class _Completions:
        async def create(self, **kwargs):
            captured.update(kwargs)
            message = type("Message", (), {"content": "Hello from the model"})()
            choice = type("Choice", (), {"message": message})()
            return type("Response", (), {"choices": [choice]})()

    class _Client:
        chat = type("Chat", (), {"completions": _Completions()})()

    monkeypatch.setattr(openai_client, "_get_client", lambda *a: _Client())
    out = await openai_client.call_openai(
        [{"role": "user", "content": "hi"}], api_key="k", model="gpt-4o", max_tokens=12, temperature=0.1
    )
    assert out == "Hello from the model"
    assert captured["model"] == "gpt-4o"
    assert captured["max_tokens"] == 12
