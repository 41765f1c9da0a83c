from unittest.mock import AsyncMock, patch

import pytest

from fakes import jpeg_bytes
from inference_relay.main import _parser, build_body, main


def test_image_command_builds_image_body(tmp_path):
    path = tmp_path / "printer.jpg"
    path.write_bytes(jpeg_bytes())

    body = build_body(_parser().parse_args(["image", str(path), "--type", "medicine"]))

    assert body["payloadKind"] == "image"
    assert body["imageBytes"] == path.read_bytes()
    assert body["recognitionType"] == "medicine"
    assert body["modelHint"] is None


def test_chat_command_builds_message_body():
    body = build_body(_parser().parse_args(["chat", "hello", "--model", "deepseek-chat"]))

    assert body == {"payloadKind": "chat", "message": "hello", "modelHint": "deepseek-chat"}


def test_local_command_without_image():
    body = build_body(_parser().parse_args(["local", "why is the sky blue?"]))

    assert body["payloadKind"] == "local-chat"
    assert body["imageBytes"] is None


def test_unknown_type_is_rejected_by_parser():
    with pytest.raises(SystemExit):
        _parser().parse_args(["image", "x.jpg", "--type", "car"])


def test_main_exit_code_follows_status(monkeypatch):
    monkeypatch.setattr("inference_relay.config.load_dotenv", lambda **_: None)
    monkeypatch.delenv("PROXY_URL", raising=False)
    error = {"status": "error", "attempts": 0, "classifiedError": {"category": "timeout"}}

    with patch("inference_relay.main.Orchestrator.handle", AsyncMock(return_value=error)):
        assert main(["chat", "hi"]) == 1


def test_main_health_succeeds(monkeypatch):
    monkeypatch.setattr("inference_relay.config.load_dotenv", lambda **_: None)
    monkeypatch.delenv("PROXY_URL", raising=False)

    assert main(["health"]) == 0
