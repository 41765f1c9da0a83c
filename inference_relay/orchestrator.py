"""Orchestrator: upstream boundary, request dict in, response dict out."""
import base64
import binascii
import logging
from typing import Any, Optional

from inference_relay.adapters.base import ProviderAdapter
from inference_relay.adapters.claude import ClaudeAdapter
from inference_relay.adapters.deepseek import DeepSeekAdapter
from inference_relay.adapters.ollama import OllamaAdapter
from inference_relay.adapters.openai import OpenAIAdapter
from inference_relay.classifier import ErrorClassification, ErrorClassifier
from inference_relay.config import Config
from inference_relay.constants import (
    DEFAULT_INTENT,
    INTENT_GENERAL,
    KIND_CHAT,
    KIND_IMAGE,
    KIND_LOCAL_CHAT,
    PAYLOAD_KINDS,
    PROMPTS,
    PROVIDER_CLAUDE,
    PROVIDER_DEEPSEEK,
    PROVIDER_OLLAMA,
    PROVIDER_OPENAI,
    STATUS_ERROR,
    STATUS_OK,
    STATUS_SUCCESS,
)
from inference_relay.deadline import Deadline
from inference_relay.dispatcher import Dispatcher
from inference_relay.models import DispatchOutcome, InferenceRequest
from inference_relay.observability import AttemptRecorder, LoggingAttemptRecorder
from inference_relay.retry import Provider, RetryEngine
from inference_relay.transport import TransportSwitch

logger = logging.getLogger(__name__)

ADAPTERS: dict[str, type[ProviderAdapter]] = {
    PROVIDER_OPENAI: OpenAIAdapter,
    PROVIDER_CLAUDE: ClaudeAdapter,
    PROVIDER_DEEPSEEK: DeepSeekAdapter,
    PROVIDER_OLLAMA: OllamaAdapter,
}


class MalformedRequest(ValueError):
    pass


# ── request parsing ───────────────────────────────────────────────────────────


def _image_bytes(raw: Any) -> bytes | None:
    match raw:
        case None:
            return None
        case bytes() | bytearray():
            return bytes(raw)
        case str() as encoded:
            # accept bare base64 as well as a data URL
            _, _, data = encoded.rpartition(",")
            try:
                return base64.b64decode(data, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise MalformedRequest("imageBytes is not valid base64") from exc
        case _:
            raise MalformedRequest("imageBytes must be bytes or a base64 string")


def _chat_messages(body: dict[str, Any]) -> tuple[dict[str, str], ...]:
    match (body.get("chatMessages"), body.get("message")):
        case (list() as messages, _) if messages:
            for m in messages:
                match m:
                    case {"role": str(), "content": str()}:
                        pass
                    case _:
                        raise MalformedRequest("chatMessages entries need string role and content")
            return tuple({"role": m["role"], "content": m["content"]} for m in messages)
        case (_, str() as message) if message:
            return ({"role": "user", "content": message},)
        case _:
            return ()


def build_request(body: dict[str, Any], deadline: float) -> InferenceRequest:
    match body:
        case dict():
            pass
        case _:
            raise MalformedRequest("Request body must be a JSON object")

    kind = body.get("payloadKind")
    default_intent = INTENT_GENERAL if kind == KIND_LOCAL_CHAT else DEFAULT_INTENT
    intent = body.get("recognitionType") or default_intent
    match (kind, intent):
        case (str() as k, _) if k not in PAYLOAD_KINDS:
            raise MalformedRequest(f"payloadKind must be one of {', '.join(PAYLOAD_KINDS)}")
        case (str(), str() as i) if i not in PROMPTS:
            raise MalformedRequest(f"recognitionType must be one of {', '.join(PROMPTS)}")
        case (str(), str()):
            pass
        case (str(), _):
            raise MalformedRequest(f"recognitionType must be one of {', '.join(PROMPTS)}")
        case _:
            raise MalformedRequest(f"payloadKind must be one of {', '.join(PAYLOAD_KINDS)}")

    model_hint = body.get("modelHint") or None
    match model_hint:
        case None | str():
            pass
        case _:
            raise MalformedRequest("modelHint must be a string")

    image = _image_bytes(body.get("imageBytes"))
    messages = _chat_messages(body)
    match (kind, image, messages):
        case (k, None, _) if k == KIND_IMAGE:
            raise MalformedRequest("imageBytes is required for image analysis")
        case (k, _, ()) if k == KIND_CHAT:
            raise MalformedRequest("Messages array or message string is required")
        case (k, None, ()) if k == KIND_LOCAL_CHAT:
            raise MalformedRequest("Message or image is required")
        case _:
            pass

    return InferenceRequest(
        kind=kind,
        intent=intent,
        image=image,
        messages=messages,
        model_hint=model_hint,
        deadline=deadline,
    )


def render(outcome: DispatchOutcome) -> dict[str, Any]:
    match (outcome.result, outcome.error):
        case (None, error):
            return _error_body(error, len(outcome.attempts))
        case (result, _):
            body: dict[str, Any] = {
                "status": STATUS_SUCCESS,
                "resultText": result.text,
                "providerUsed": result.provider,
                "attempts": result.attempts,
            }
            if result.structured is not None:
                body["structuredJson"] = result.structured
            return body


def _error_body(error: ErrorClassification, attempts: int) -> dict[str, Any]:
    return {"status": STATUS_ERROR, "attempts": attempts, "classifiedError": error.to_dict()}


# ── orchestrator ──────────────────────────────────────────────────────────────


class Orchestrator:
    """Handles one inference request per ``handle`` call; safe to call concurrently."""

    def __init__(
        self,
        config: Config,
        dispatcher: Dispatcher,
        classifier: ErrorClassifier,
        transport: TransportSwitch,
    ) -> None:
        self._config = config
        self._dispatcher = dispatcher
        self._classifier = classifier
        self._transport = transport

    @classmethod
    def from_config(
        cls, config: Config, recorder: Optional[AttemptRecorder] = None
    ) -> "Orchestrator":
        transport = TransportSwitch(config.proxy_url)
        classifier = ErrorClassifier()
        providers = [
            Provider(p, ADAPTERS[p.name](p, transport))
            for p in config.providers
            if p.name in ADAPTERS and p.is_configured
        ]
        engine = RetryEngine(classifier, transport, backoff_unit=config.backoff_unit)
        dispatcher = Dispatcher(providers, engine, classifier, recorder or LoggingAttemptRecorder())
        return cls(config, dispatcher, classifier, transport)

    async def handle(self, body: dict[str, Any], deadline: Deadline | None = None) -> dict[str, Any]:
        """Run ``body`` to a terminal outcome.

        ``deadline`` lets the caller share a token it can ``cancel()`` on
        client disconnect; by default the configured request deadline applies.
        """
        try:
            request = build_request(body, self._config.request_deadline)
        except MalformedRequest as exc:
            logger.warning("Rejected request: %s", exc)
            return _error_body(self._classifier.malformed(str(exc)), 0)

        outcome = await self._dispatcher.dispatch(request, deadline or Deadline(request.deadline))
        return render(outcome)

    def health(self) -> dict[str, Any]:
        return {
            "status": STATUS_OK,
            "proxy": self._transport.proxy_configured,
            "providers": {
                p.name: p.is_configured for p in self._config.providers
            },
        }

    async def aclose(self) -> None:
        await self._transport.aclose()
