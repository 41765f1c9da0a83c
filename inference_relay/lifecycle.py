"""RequestLifecycle: explicit per-request state machine.

Pending -> Attempting(provider, n) -> Success | Retrying(provider, n+1)
                                    | FallingBack(next) | Failed

Success and Failed are terminal.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class RequestState(str, Enum):
    PENDING = "pending"
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    FALLING_BACK = "falling_back"
    SUCCESS = "success"
    FAILED = "failed"


_S = RequestState

TRANSITIONS: dict[RequestState, frozenset[RequestState]] = {
    _S.PENDING: frozenset({_S.ATTEMPTING, _S.FAILED}),
    _S.ATTEMPTING: frozenset({_S.SUCCESS, _S.RETRYING, _S.FALLING_BACK, _S.FAILED}),
    _S.RETRYING: frozenset({_S.ATTEMPTING, _S.FAILED}),
    _S.FALLING_BACK: frozenset({_S.ATTEMPTING, _S.FAILED}),
    _S.SUCCESS: frozenset(),
    _S.FAILED: frozenset(),
}


class InvalidTransition(RuntimeError):
    pass


@dataclass(frozen=True)
class Step:
    state: RequestState
    provider: Optional[str] = None
    attempt: Optional[int] = None


class RequestLifecycle:

    def __init__(self) -> None:
        self._history: list[Step] = [Step(RequestState.PENDING)]

    @property
    def state(self) -> RequestState:
        return self._history[-1].state

    @property
    def current(self) -> Step:
        return self._history[-1]

    @property
    def history(self) -> list[Step]:
        return list(self._history)

    @property
    def terminal(self) -> bool:
        return not TRANSITIONS[self.state]

    def advance(
        self, state: RequestState, provider: str | None = None, attempt: int | None = None
    ) -> Step:
        match state in TRANSITIONS[self.state]:
            case True:
                logger.debug("Request %s -> %s (%s #%s)", self.state.value, state.value, provider, attempt)
                step = Step(state, provider, attempt)
                self._history.append(step)
                return step
            case False:
                raise InvalidTransition(f"{self.state.value} -> {state.value}")
