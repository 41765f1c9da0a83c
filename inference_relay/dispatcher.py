"""Dispatcher: ordered, short-circuiting attempt sequence across providers."""
import asyncio
import logging
from typing import Iterable

from inference_relay.classifier import ErrorClassification, ErrorClassifier
from inference_relay.constants import (
    MSG_DEADLINE,
    MSG_FALLING_BACK,
    MSG_NO_PROVIDERS,
    PROVIDER_PRIORITY,
)
from inference_relay.config import ImageProfile
from inference_relay.deadline import Deadline, DeadlineExceeded, RequestCancelled
from inference_relay.imaging import ConditionedImage, ImageConditioner, ImageDecodeError
from inference_relay.lifecycle import RequestLifecycle, RequestState
from inference_relay.models import (
    AnalysisResult,
    Attempt,
    DispatchOutcome,
    InferenceRequest,
    ProviderPayload,
    parse_structured,
    wants_vision,
)
from inference_relay.observability import AttemptRecorder
from inference_relay.retry import Provider, RetryEngine

logger = logging.getLogger(__name__)


class Dispatcher:

    def __init__(
        self,
        providers: Iterable[Provider],
        engine: RetryEngine,
        classifier: ErrorClassifier,
        recorder: AttemptRecorder,
        conditioner: ImageConditioner | None = None,
        priority: dict[str, tuple[str, ...]] = PROVIDER_PRIORITY,
    ) -> None:
        self._providers = {p.name: p for p in providers}
        self._engine = engine
        self._classifier = classifier
        self._recorder = recorder
        self._conditioner = conditioner or ImageConditioner()
        self._priority = priority

    @property
    def providers(self) -> list[Provider]:
        return list(self._providers.values())

    def eligible(self, request: InferenceRequest) -> list[Provider]:
        """Configured providers able to serve ``request``, in attempt order.

        With an image on board, vision-capable providers come before
        text-only ones; the sort is stable so priority order holds within
        each group.
        """
        names = self._priority.get(request.kind, ())
        candidates = [
            self._providers[n]
            for n in names
            if n in self._providers
            and self._providers[n].config.is_configured
            and self._providers[n].config.serves(request.kind)
        ]
        match wants_vision(request):
            case True:
                return sorted(candidates, key=lambda p: not p.config.vision)
            case False:
                return candidates

    async def dispatch(self, request: InferenceRequest, deadline: Deadline) -> DispatchOutcome:
        lifecycle = RequestLifecycle()
        attempts: list[Attempt] = []

        def on_attempt(attempt: Attempt) -> None:
            attempts.append(attempt)
            self._recorder.record(attempt)

        def failed(error: ErrorClassification) -> DispatchOutcome:
            lifecycle.advance(RequestState.FAILED)
            return DispatchOutcome(error=error, attempts=attempts)

        providers = self.eligible(request)
        match providers:
            case []:
                logger.warning(MSG_NO_PROVIDERS, request.kind)
                return failed(self._classifier.unavailable(MSG_NO_PROVIDERS % request.kind))
            case _:
                pass

        images: dict[ImageProfile, ConditionedImage] = {}
        error: ErrorClassification | None = None

        for position, provider in enumerate(providers):
            try:
                payload = await self._payload(
                    request, provider, images, deadline, targeted=position == 0
                )
                outcome = await self._engine.run(provider, payload, deadline, lifecycle, on_attempt)
            except ImageDecodeError as exc:
                return failed(self._classifier.classify(exc, source=provider.name))
            except (DeadlineExceeded, RequestCancelled) as exc:
                logger.warning(MSG_DEADLINE, len(attempts))
                return failed(self._classifier.timeout(str(exc)))

            match (outcome.response, outcome.error):
                case (None, err):
                    error = err
                case (response, _):
                    lifecycle.advance(RequestState.SUCCESS, provider.name)
                    result = AnalysisResult(
                        text=response.text,
                        provider=provider.name,
                        attempts=len(attempts),
                        structured=parse_structured(response.text),
                    )
                    return DispatchOutcome(result=result, attempts=attempts)

            remaining = providers[position + 1:]
            match (error.fallback_eligible, remaining):
                case (True, [next_provider, *_]):
                    logger.info(
                        MSG_FALLING_BACK, provider.name, next_provider.name, error.category.value
                    )
                    lifecycle.advance(RequestState.FALLING_BACK, next_provider.name)
                case _:
                    return failed(error)

        return failed(error)

    async def _payload(
        self,
        request: InferenceRequest,
        provider: Provider,
        images: dict[ImageProfile, ConditionedImage],
        deadline: Deadline,
        targeted: bool,
    ) -> ProviderPayload:
        """Build one provider's payload, conditioning the image once per profile.

        The caller's model hint names a model of the first provider only;
        fallbacks run their configured model. Conditioning runs in a worker
        thread, off the event loop.
        """
        image = None
        match request.image:
            case None:
                pass
            case raw:
                profile = provider.config.image_profile
                if profile not in images:
                    images[profile] = await asyncio.to_thread(
                        self._conditioner.condition, raw, profile
                    )
                    deadline.check()
                image = images[profile]
        return ProviderPayload(
            kind=request.kind,
            prompt=request.prompt,
            messages=request.messages,
            image=image,
            model=request.model_hint if targeted else None,
        )
