"""ErrorClassifier: maps raw provider/transport failures onto a stable taxonomy.

Classification is table driven. ``describe`` reduces any exception to an
``ErrorSignal`` (HTTP status, transport error code, message) and the first
``ClassificationRule`` matching that signal decides the category. New
provider quirks are handled by adding rules, never by touching the retry or
dispatch code.
"""
import errno
import logging
import socket
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

import httpx

from inference_relay.constants import (
    CODE_CALL_TIMEOUT,
    CODE_CONNECT,
    CODE_CONNECT_TIMEOUT,
    CODE_DNS,
    CODE_IMAGE_DECODE,
    CODE_PROXY,
    CODE_RESET,
    MSG_ERR_AUTHENTICATION,
    MSG_ERR_MALFORMED,
    MSG_ERR_QUOTA,
    MSG_ERR_TIMEOUT,
    MSG_ERR_TRANSIENT,
    MSG_ERR_UNAVAILABLE,
    MSG_ERR_UNKNOWN,
    PROVIDER_OLLAMA,
    TRANSIENT_ERROR_CODES,
)
from inference_relay.deadline import CallTimeout
from inference_relay.imaging import ImageDecodeError

logger = logging.getLogger(__name__)


class ErrorCategory(str, Enum):
    TRANSIENT_CONNECTION = "transient_connection"
    AUTHENTICATION = "authentication"
    AUTHORIZATION_QUOTA = "authorization_quota"
    MALFORMED_REQUEST = "malformed_request"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class CategoryPolicy:
    retryable: bool
    fallback_eligible: bool
    message: str


POLICIES: dict[ErrorCategory, CategoryPolicy] = {
    ErrorCategory.TRANSIENT_CONNECTION: CategoryPolicy(True, True, MSG_ERR_TRANSIENT),
    ErrorCategory.AUTHENTICATION: CategoryPolicy(False, False, MSG_ERR_AUTHENTICATION),
    ErrorCategory.AUTHORIZATION_QUOTA: CategoryPolicy(False, True, MSG_ERR_QUOTA),
    ErrorCategory.MALFORMED_REQUEST: CategoryPolicy(False, False, MSG_ERR_MALFORMED),
    ErrorCategory.PROVIDER_UNAVAILABLE: CategoryPolicy(False, True, MSG_ERR_UNAVAILABLE),
    ErrorCategory.TIMEOUT: CategoryPolicy(False, True, MSG_ERR_TIMEOUT),
    ErrorCategory.UNKNOWN: CategoryPolicy(False, True, MSG_ERR_UNKNOWN),
}


@dataclass(frozen=True)
class ErrorClassification:
    category: ErrorCategory
    retryable: bool
    fallback_eligible: bool
    message: str
    detail: str = ""

    @classmethod
    def of(cls, category: ErrorCategory, detail: str = "") -> "ErrorClassification":
        policy = POLICIES[category]
        return cls(category, policy.retryable, policy.fallback_eligible, policy.message, detail)

    def to_dict(self) -> dict[str, str]:
        return {"category": self.category.value, "message": self.message}


@dataclass(frozen=True)
class ErrorSignal:
    source: Optional[str] = None
    status: Optional[int] = None
    code: Optional[str] = None
    message: str = ""


@dataclass(frozen=True)
class ClassificationRule:
    """Matches when every field that is set agrees with the signal."""

    category: ErrorCategory
    source: Optional[str] = None
    status: int | range | None = None
    code: Optional[str] = None
    message: Optional[str] = None

    def matches(self, signal: ErrorSignal) -> bool:
        match self.source:
            case str() as s if s != signal.source:
                return False
            case _:
                pass
        match self.status:
            case None:
                pass
            case range() as r if signal.status not in r:
                return False
            case int() as s if s != signal.status:
                return False
            case _:
                pass
        match self.code:
            case str() as c if c != signal.code:
                return False
            case _:
                pass
        match self.message:
            case str() as m if m.lower() not in signal.message.lower():
                return False
            case _:
                return True


_T = ErrorCategory

DEFAULT_RULES: tuple[ClassificationRule, ...] = (
    # transport codes first: they are the most specific evidence
    ClassificationRule(_T.TIMEOUT, code=CODE_CALL_TIMEOUT),
    ClassificationRule(_T.MALFORMED_REQUEST, code=CODE_IMAGE_DECODE),
    *(ClassificationRule(_T.TRANSIENT_CONNECTION, code=c) for c in TRANSIENT_ERROR_CODES),
    # provider status codes
    ClassificationRule(_T.AUTHENTICATION, status=401),
    ClassificationRule(_T.AUTHORIZATION_QUOTA, status=402),
    ClassificationRule(_T.AUTHORIZATION_QUOTA, status=403),
    ClassificationRule(_T.AUTHORIZATION_QUOTA, status=429),
    ClassificationRule(_T.TIMEOUT, status=408),
    # ollama answers 404 when the requested model has not been pulled
    ClassificationRule(_T.PROVIDER_UNAVAILABLE, source=PROVIDER_OLLAMA, status=404),
    ClassificationRule(_T.PROVIDER_UNAVAILABLE, status=404),
    ClassificationRule(_T.MALFORMED_REQUEST, status=range(400, 500)),
    ClassificationRule(_T.PROVIDER_UNAVAILABLE, status=range(500, 600)),
    # message fallbacks for errors that carry neither status nor errno
    ClassificationRule(_T.TRANSIENT_CONNECTION, message="connection error"),
    ClassificationRule(_T.TRANSIENT_CONNECTION, message="ECONNREFUSED"),
    ClassificationRule(_T.TRANSIENT_CONNECTION, message="ETIMEDOUT"),
    ClassificationRule(_T.AUTHORIZATION_QUOTA, message="insufficient balance"),
    ClassificationRule(_T.AUTHORIZATION_QUOTA, message="quota"),
    ClassificationRule(_T.AUTHENTICATION, message="invalid api key"),
    ClassificationRule(_T.AUTHENTICATION, message="incorrect api key"),
    ClassificationRule(_T.MALFORMED_REQUEST, message="maximum context length"),
)


# ── signal extraction ─────────────────────────────────────────────────────────


def _chain(exc: BaseException) -> Iterable[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _status_of(exc: BaseException) -> int | None:
    match exc:
        case httpx.HTTPStatusError():
            return exc.response.status_code
        case _:
            status = getattr(exc, "status_code", None)
            return status if isinstance(status, int) else None


def _code_of(exc: BaseException) -> str | None:
    match exc:
        case CallTimeout():
            return CODE_CALL_TIMEOUT
        case ImageDecodeError():
            return CODE_IMAGE_DECODE
        case httpx.ProxyError():
            return CODE_PROXY
        case httpx.ConnectTimeout():
            return CODE_CONNECT_TIMEOUT
        case httpx.TimeoutException():
            return CODE_CALL_TIMEOUT
        case socket.gaierror():
            return CODE_DNS
        case OSError() if exc.errno in errno.errorcode:
            return errno.errorcode[exc.errno]
        case httpx.RemoteProtocolError():
            return CODE_RESET
        case httpx.ConnectError():
            return CODE_CONNECT
        case _:
            return None


def describe(exc: BaseException, source: str | None = None) -> ErrorSignal:
    """Reduce ``exc`` (and its cause chain) to the fields the rule table keys on."""
    chain = list(_chain(exc))
    status = next(filter(None, map(_status_of, chain)), None)
    code = next(filter(None, map(_code_of, chain)), None)
    message = str(exc) or type(exc).__name__
    return ErrorSignal(source=source, status=status, code=code, message=message)


# ── classifier ────────────────────────────────────────────────────────────────


class ErrorClassifier:

    def __init__(self, rules: Iterable[ClassificationRule] = DEFAULT_RULES) -> None:
        self._rules = tuple(rules)

    @property
    def rules(self) -> tuple[ClassificationRule, ...]:
        return self._rules

    def extend(self, *rules: ClassificationRule) -> "ErrorClassifier":
        """Return a classifier that consults ``rules`` before the current table."""
        return ErrorClassifier((*rules, *self._rules))

    def classify_signal(self, signal: ErrorSignal) -> ErrorClassification:
        rule = next((r for r in self._rules if r.matches(signal)), None)
        category = rule.category if rule else ErrorCategory.UNKNOWN
        return ErrorClassification.of(category, detail=signal.message)

    def classify(self, exc: BaseException, source: str | None = None) -> ErrorClassification:
        signal = describe(exc, source)
        classification = self.classify_signal(signal)
        logger.debug(
            "Classified %s (status=%s code=%s) as %s",
            type(exc).__name__, signal.status, signal.code, classification.category.value,
        )
        return classification

    @staticmethod
    def timeout(detail: str = "") -> ErrorClassification:
        return ErrorClassification.of(ErrorCategory.TIMEOUT, detail)

    @staticmethod
    def malformed(detail: str = "") -> ErrorClassification:
        return ErrorClassification.of(ErrorCategory.MALFORMED_REQUEST, detail)

    @staticmethod
    def unavailable(detail: str = "") -> ErrorClassification:
        return ErrorClassification.of(ErrorCategory.PROVIDER_UNAVAILABLE, detail)
