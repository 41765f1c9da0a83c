import httpx
import openai
import pytest

from fakes import HANG, scripted
from inference_relay.classifier import ErrorCategory, ErrorClassifier
from inference_relay.deadline import Deadline, DeadlineExceeded
from inference_relay.lifecycle import RequestLifecycle, RequestState
from inference_relay.models import ProviderPayload
from inference_relay.retry import RetryEngine
from inference_relay.transport import TransportSwitch

REQUEST = httpx.Request("POST", "https://api.example.test/v1/chat/completions")
PAYLOAD = ProviderPayload(kind="image", prompt="what is this?")


def transient() -> Exception:
    return openai.APIConnectionError(request=REQUEST)


def status(code: int) -> Exception:
    return openai.APIStatusError("err", response=httpx.Response(code, request=REQUEST), body=None)


@pytest.fixture
async def transport():
    switch = TransportSwitch("http://127.0.0.1:7890")
    yield switch
    await switch.aclose()


@pytest.fixture
def engine(transport) -> RetryEngine:
    return RetryEngine(ErrorClassifier(), transport, backoff_unit=0.01)


async def _run(engine, provider, deadline=None):
    attempts = []
    lifecycle = RequestLifecycle()
    outcome = await engine.run(
        provider, PAYLOAD, deadline or Deadline(5.0), lifecycle, attempts.append
    )
    return outcome, attempts, lifecycle


async def test_success_on_first_attempt(engine):
    provider = scripted("cloud", ["a printer"])

    outcome, attempts, _ = await _run(engine, provider)

    assert outcome.response.text == "a printer"
    assert outcome.attempts == 1
    assert [a.succeeded for a in attempts] == [True]


@pytest.mark.parametrize("failures", [1, 2])
async def test_retries_transient_failures_then_succeeds(engine, failures):
    provider = scripted("cloud", [transient()] * failures + ["ok"], max_attempts=3)

    outcome, attempts, lifecycle = await _run(engine, provider)

    assert outcome.response.text == "ok"
    assert outcome.attempts == failures + 1
    assert len(provider.adapter.calls) == failures + 1
    retries = [s for s in lifecycle.history if s.state is RequestState.RETRYING]
    assert len(retries) == failures


async def test_exhausts_budget_on_repeated_transient_failures(engine):
    provider = scripted("cloud", [transient()] * 3, max_attempts=3)

    outcome, attempts, _ = await _run(engine, provider)

    assert outcome.response is None
    assert outcome.error.category is ErrorCategory.TRANSIENT_CONNECTION
    assert outcome.attempts == 3
    assert [a.index for a in attempts] == [1, 2, 3]


async def test_malformed_request_stops_immediately(engine):
    provider = scripted("cloud", [status(400), "never"], max_attempts=3)

    outcome, attempts, _ = await _run(engine, provider)

    assert outcome.error.category is ErrorCategory.MALFORMED_REQUEST
    assert not outcome.error.fallback_eligible
    assert len(provider.adapter.calls) == 1


async def test_quota_error_is_not_retried(engine):
    provider = scripted("cloud", [status(429), "never"], max_attempts=3)

    outcome, _, _ = await _run(engine, provider)

    assert outcome.error.category is ErrorCategory.AUTHORIZATION_QUOTA
    assert outcome.attempts == 1


async def test_only_first_attempt_uses_proxy(engine):
    provider = scripted("cloud", [transient(), transient(), "ok"], proxy_optional=True)

    await _run(engine, provider)

    assert [use_proxy for _, _, use_proxy in provider.adapter.calls] == [True, False, False]


async def test_attempt_records_carry_proxy_and_latency(engine):
    provider = scripted("cloud", [transient(), "ok"], proxy_optional=True)

    _, attempts, _ = await _run(engine, provider)

    assert [a.via_proxy for a in attempts] == [True, False]
    assert all(a.latency >= 0 for a in attempts)
    assert attempts[0].outcome.category is ErrorCategory.TRANSIENT_CONNECTION


async def test_backoff_grows_linearly(transport):
    engine = RetryEngine(ErrorClassifier(), transport, backoff_unit=2.0)

    assert [engine.backoff(n) for n in (1, 2, 3)] == [2.0, 4.0, 6.0]


async def test_deadline_during_backoff_stops_further_attempts(transport):
    engine = RetryEngine(ErrorClassifier(), transport, backoff_unit=10.0)
    provider = scripted("cloud", [transient(), "never"], max_attempts=3)

    with pytest.raises(DeadlineExceeded):
        await _run(engine, provider, deadline=Deadline(0.1))

    assert len(provider.adapter.calls) == 1


async def test_deadline_during_call_reports_timeout_attempt(engine):
    provider = scripted("cloud", [HANG], max_attempts=3)
    attempts = []

    with pytest.raises(DeadlineExceeded):
        await engine.run(provider, PAYLOAD, Deadline(0.05), RequestLifecycle(), attempts.append)

    assert provider.adapter.cancelled
    assert attempts[0].outcome.category is ErrorCategory.TIMEOUT


async def test_per_call_timeout_is_classified_timeout_and_not_retried(engine):
    provider = scripted("cloud", [HANG, "never"], max_attempts=3, timeout=0.05)

    outcome, _, _ = await _run(engine, provider)

    assert outcome.error.category is ErrorCategory.TIMEOUT
    assert len(provider.adapter.calls) == 1


async def test_timeout_budget_passed_to_adapter_is_capped_by_deadline(engine):
    provider = scripted("cloud", ["ok"], timeout=600.0)

    await _run(engine, provider, deadline=Deadline(2.0))

    _, budget, _ = provider.adapter.calls[0]
    assert budget <= 2.0
