import base64
from unittest.mock import AsyncMock, MagicMock

import pytest

from fakes import jpeg_bytes
from inference_relay.classifier import ErrorCategory, ErrorClassifier
from inference_relay.config import Config
from inference_relay.constants import INTENT_GENERAL, INTENT_MEDICINE, PROMPT_MEDICINE
from inference_relay.deadline import Deadline
from inference_relay.models import AnalysisResult, DispatchOutcome
from inference_relay.orchestrator import MalformedRequest, Orchestrator, build_request, render

IMAGE = jpeg_bytes()


# ── build_request ─────────────────────────────────────────────────────────────


def test_image_request_with_raw_bytes():
    request = build_request({"payloadKind": "image", "imageBytes": IMAGE}, deadline=30.0)

    assert request.image == IMAGE
    assert request.intent == "printer"
    assert request.deadline == 30.0


@pytest.mark.parametrize(
    "encoded",
    [
        base64.b64encode(IMAGE).decode(),
        "data:image/jpeg;base64," + base64.b64encode(IMAGE).decode(),
    ],
)
def test_image_request_accepts_base64_and_data_url(encoded):
    request = build_request({"payloadKind": "image", "imageBytes": encoded}, deadline=30.0)

    assert request.image == IMAGE


def test_recognition_type_selects_prompt():
    body = {"payloadKind": "image", "imageBytes": IMAGE, "recognitionType": INTENT_MEDICINE}

    assert build_request(body, deadline=30.0).prompt == PROMPT_MEDICINE


def test_single_message_is_wrapped_as_user_turn():
    request = build_request({"payloadKind": "chat", "message": "hello"}, deadline=30.0)

    assert request.messages == ({"role": "user", "content": "hello"},)


def test_messages_array_wins_over_single_message():
    body = {
        "payloadKind": "chat",
        "chatMessages": [{"role": "user", "content": "a"}, {"role": "assistant", "content": "b"}],
        "message": "ignored",
    }

    assert [m["content"] for m in build_request(body, deadline=30.0).messages] == ["a", "b"]


def test_local_chat_defaults_to_general_intent():
    request = build_request({"payloadKind": "local-chat", "imageBytes": IMAGE}, deadline=30.0)

    assert request.intent == INTENT_GENERAL


def test_model_hint_is_carried():
    body = {"payloadKind": "chat", "message": "hi", "modelHint": "gpt-4o-mini"}

    assert build_request(body, deadline=30.0).model_hint == "gpt-4o-mini"


@pytest.mark.parametrize(
    "body, match",
    [
        ({"payloadKind": "video"}, "payloadKind"),
        ({"payloadKind": "image", "imageBytes": IMAGE, "recognitionType": "car"}, "recognitionType"),
        ({"payloadKind": "image"}, "imageBytes is required"),
        ({"payloadKind": "image", "imageBytes": "not base64!!"}, "base64"),
        ({"payloadKind": "image", "imageBytes": 42}, "imageBytes"),
        ({"payloadKind": "chat"}, "Messages array"),
        ({"payloadKind": "chat", "chatMessages": [{"role": "user"}]}, "role and content"),
        ({"payloadKind": "local-chat"}, "Message or image"),
        ({"payloadKind": ["image"], "imageBytes": IMAGE}, "payloadKind"),
        ({"payloadKind": {"kind": "chat"}, "message": "hi"}, "payloadKind"),
        ({"payloadKind": "image", "imageBytes": IMAGE, "recognitionType": ["printer"]}, "recognitionType"),
        ({"payloadKind": "image", "imageBytes": IMAGE, "recognitionType": {"a": 1}}, "recognitionType"),
        ({"payloadKind": "chat", "message": "hi", "modelHint": ["gpt-4o"]}, "modelHint"),
        (["payloadKind", "chat"], "JSON object"),
    ],
)
def test_invalid_requests_are_rejected(body, match):
    with pytest.raises(MalformedRequest, match=match):
        build_request(body, deadline=30.0)


# ── render ────────────────────────────────────────────────────────────────────


def test_render_success_with_structured_json():
    result = AnalysisResult(
        text='{"medicine_name": "Aspirin"}',
        provider="openai",
        attempts=2,
        structured={"medicine_name": "Aspirin"},
    )

    body = render(DispatchOutcome(result=result))

    assert body == {
        "status": "success",
        "resultText": '{"medicine_name": "Aspirin"}',
        "providerUsed": "openai",
        "attempts": 2,
        "structuredJson": {"medicine_name": "Aspirin"},
    }


def test_render_success_without_structured_json():
    result = AnalysisResult(text="a laser printer", provider="claude", attempts=1)

    assert "structuredJson" not in render(DispatchOutcome(result=result))


def test_render_error_has_category_and_message():
    error = ErrorClassifier().timeout("deadline")

    body = render(DispatchOutcome(error=error, attempts=[MagicMock(), MagicMock()]))

    assert body["status"] == "error"
    assert body["attempts"] == 2
    assert body["classifiedError"]["category"] == "timeout"
    assert body["classifiedError"]["message"]


# ── Orchestrator ──────────────────────────────────────────────────────────────


@pytest.fixture
def config(monkeypatch) -> Config:
    monkeypatch.setattr("inference_relay.config.load_dotenv", lambda **_: None)
    for name in ("PROXY_URL", "DEEPSEEK_API_KEY", "DEEPSEEK_BASE_URL", "ANTHROPIC_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    return Config.from_env()


@pytest.fixture
async def orchestrator(config):
    orch = Orchestrator.from_config(config)
    yield orch
    await orch.aclose()


async def test_from_config_builds_only_configured_providers(orchestrator):
    assert [p.name for p in orchestrator._dispatcher.providers] == ["openai", "ollama"]


async def test_health_reports_configuration(orchestrator):
    assert orchestrator.health() == {
        "status": "ok",
        "proxy": False,
        "providers": {"openai": True, "claude": False, "deepseek": False, "ollama": True},
    }


async def test_handle_rejects_malformed_body_without_dispatch(orchestrator):
    orchestrator._dispatcher.dispatch = AsyncMock()

    body = await orchestrator.handle({"payloadKind": "chat"})

    assert body["status"] == "error"
    assert body["attempts"] == 0
    assert body["classifiedError"]["category"] == ErrorCategory.MALFORMED_REQUEST.value
    orchestrator._dispatcher.dispatch.assert_not_called()


async def test_handle_renders_dispatch_outcome(orchestrator):
    result = AnalysisResult(text="hi there", provider="openai", attempts=1)
    orchestrator._dispatcher.dispatch = AsyncMock(return_value=DispatchOutcome(result=result))

    body = await orchestrator.handle({"payloadKind": "chat", "message": "hi"})

    assert body["providerUsed"] == "openai"
    request, deadline = orchestrator._dispatcher.dispatch.call_args.args
    assert request.kind == "chat"
    assert isinstance(deadline, Deadline)


async def test_handle_uses_caller_deadline(orchestrator):
    orchestrator._dispatcher.dispatch = AsyncMock(
        return_value=DispatchOutcome(error=ErrorClassifier().timeout("cancelled"))
    )
    deadline = Deadline(5.0)

    await orchestrator.handle({"payloadKind": "chat", "message": "hi"}, deadline=deadline)

    assert orchestrator._dispatcher.dispatch.call_args.args[1] is deadline


async def test_handle_rejects_non_string_recognition_type(orchestrator):
    orchestrator._dispatcher.dispatch = AsyncMock()
    body = {"payloadKind": "image", "imageBytes": IMAGE, "recognitionType": ["printer"]}

    response = await orchestrator.handle(body)

    assert response["classifiedError"]["category"] == ErrorCategory.MALFORMED_REQUEST.value
    orchestrator._dispatcher.dispatch.assert_not_called()
