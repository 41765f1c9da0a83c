"""RetryEngine: bounded in-place retries against a single provider."""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from inference_relay.adapters.base import ProviderAdapter
from inference_relay.classifier import ErrorClassification, ErrorClassifier
from inference_relay.config import ProviderConfig
from inference_relay.constants import MSG_RETRYING, RETRY_BACKOFF_UNIT
from inference_relay.deadline import Deadline, DeadlineExceeded, RequestCancelled
from inference_relay.lifecycle import RequestLifecycle, RequestState
from inference_relay.models import Attempt, ProviderPayload, ProviderResponse
from inference_relay.transport import TransportSwitch

logger = logging.getLogger(__name__)

OnAttempt = Callable[[Attempt], None]


@dataclass(frozen=True)
class Provider:
    config: ProviderConfig
    adapter: ProviderAdapter

    @property
    def name(self) -> str:
        return self.config.name


@dataclass(frozen=True)
class ProviderOutcome:
    attempts: int
    response: Optional[ProviderResponse] = None
    error: Optional[ErrorClassification] = None


class RetryEngine:
    """Runs up to ``max_attempts`` sequential attempts against one provider.

    Only Transient-Connection failures are retried, after a backoff of
    ``attempt * backoff_unit`` seconds. Any other classification ends the
    run at once. Deadline expiry or cancellation propagates to the caller
    after the interrupted attempt has been reported.
    """

    def __init__(
        self,
        classifier: ErrorClassifier,
        transport: TransportSwitch,
        backoff_unit: float = RETRY_BACKOFF_UNIT,
    ) -> None:
        self._classifier = classifier
        self._transport = transport
        self._backoff_unit = backoff_unit

    def backoff(self, attempt: int) -> float:
        return attempt * self._backoff_unit

    async def run(
        self,
        provider: Provider,
        payload: ProviderPayload,
        deadline: Deadline,
        lifecycle: RequestLifecycle,
        on_attempt: OnAttempt,
    ) -> ProviderOutcome:
        max_attempts = provider.config.max_attempts
        error: ErrorClassification | None = None

        for attempt in range(1, max_attempts + 1):
            deadline.check()
            lifecycle.advance(RequestState.ATTEMPTING, provider.name, attempt)
            use_proxy = self._transport.use_proxy(provider.config, attempt)
            budget = deadline.budget(provider.config.timeout)
            started_at, start = time.time(), time.perf_counter()

            def report(outcome: ErrorClassification | None) -> None:
                on_attempt(
                    Attempt(
                        provider=provider.name,
                        index=attempt,
                        started_at=started_at,
                        latency=time.perf_counter() - start,
                        via_proxy=use_proxy,
                        outcome=outcome,
                    )
                )

            try:
                response = await deadline.run(
                    provider.adapter.invoke(payload, budget, use_proxy),
                    provider.config.timeout,
                )
            except (DeadlineExceeded, RequestCancelled) as exc:
                report(self._classifier.timeout(str(exc)))
                raise
            except Exception as exc:
                error = self._classifier.classify(exc, source=provider.name)
                report(error)
            else:
                report(None)
                return ProviderOutcome(attempts=attempt, response=response)

            match (error.retryable, attempt < max_attempts):
                case (True, True):
                    delay = self.backoff(attempt)
                    lifecycle.advance(RequestState.RETRYING, provider.name, attempt + 1)
                    logger.info(MSG_RETRYING, provider.name, delay)
                    await deadline.sleep(delay)
                case _:
                    return ProviderOutcome(attempts=attempt, error=error)

        return ProviderOutcome(attempts=max_attempts, error=error)
