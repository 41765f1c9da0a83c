import json
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from inference_relay.classifier import ErrorClassification
from inference_relay.constants import DEFAULT_INTENT, KIND_IMAGE, PROMPTS, REQUEST_DEADLINE
from inference_relay.imaging import ConditionedImage

_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


@dataclass(frozen=True)
class InferenceRequest:
    kind: str
    intent: str = DEFAULT_INTENT
    image: Optional[bytes] = None
    messages: tuple[dict[str, str], ...] = ()
    model_hint: Optional[str] = None
    deadline: float = REQUEST_DEADLINE

    @property
    def has_image(self) -> bool:
        return self.image is not None

    @property
    def prompt(self) -> str:
        match self.messages:
            case ():
                return PROMPTS[self.intent]
            case messages:
                return messages[-1]["content"]


@dataclass(frozen=True)
class ProviderPayload:
    """What an adapter receives; field naming on the wire is the adapter's job."""

    kind: str
    prompt: str
    messages: tuple[dict[str, str], ...] = ()
    image: Optional[ConditionedImage] = None
    model: Optional[str] = None


@dataclass(frozen=True)
class ProviderResponse:
    text: str
    model: Optional[str] = None


@dataclass(frozen=True)
class Attempt:
    provider: str
    index: int
    started_at: float
    latency: float
    via_proxy: bool
    outcome: Optional[ErrorClassification] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is None


@dataclass(frozen=True)
class AnalysisResult:
    text: str
    provider: str
    attempts: int
    structured: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class DispatchOutcome:
    result: Optional[AnalysisResult] = None
    error: Optional[ErrorClassification] = None
    attempts: list[Attempt] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.result is not None


def parse_structured(text: str) -> dict[str, Any] | None:
    """Return the JSON object in ``text`` (bare or in a fenced block), else None."""
    fenced = _FENCED_JSON.search(text)
    candidate = fenced.group(1) if fenced else text.strip()
    try:
        parsed = json.loads(candidate)
    except (json.JSONDecodeError, TypeError):
        return None
    return parsed if isinstance(parsed, dict) else None


def wants_vision(request: InferenceRequest) -> bool:
    return request.kind == KIND_IMAGE or request.has_image
