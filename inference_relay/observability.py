"""Attempt recorders: where the dispatcher reports every provider attempt."""
import logging
from abc import ABC, abstractmethod

from inference_relay.constants import MSG_ATTEMPT_FAIL, MSG_ATTEMPT_OK, MSG_VIA_PROXY
from inference_relay.models import Attempt

logger = logging.getLogger(__name__)


class AttemptRecorder(ABC):
    @abstractmethod
    def record(self, attempt: Attempt) -> None: ...


class LoggingAttemptRecorder(AttemptRecorder):

    def record(self, attempt: Attempt) -> None:
        proxy = MSG_VIA_PROXY if attempt.via_proxy else ""
        match attempt.outcome:
            case None:
                logger.info(MSG_ATTEMPT_OK, attempt.provider, attempt.index, attempt.latency, proxy)
            case outcome:
                logger.warning(
                    MSG_ATTEMPT_FAIL,
                    attempt.provider,
                    attempt.index,
                    outcome.category.value,
                    attempt.latency,
                    proxy,
                    outcome.detail,
                )
