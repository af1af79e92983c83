"""Maps one physical attempt to a retry decision class.

This is the only place that decides retry eligibility; the executors act on its verdict.
"""

import socket
from dataclasses import dataclass
from enum import Enum

import httpx
import requests

from .backoff import parse_retry_after
from .errors import ErrorDetail, snippet


class Outcome(str, Enum):
    SUCCESS = "success"
    PERMANENT = "permanent"
    TRANSIENT = "transient"
    RATE_LIMITED = "rate_limited"
    AUTH_EXPIRED = "auth_expired"


# Failures before any response where an identical resend might succeed
TRANSIENT_EXCEPTIONS: tuple[type[BaseException], ...] = (
    requests.ConnectionError,
    requests.Timeout,
    requests.exceptions.ChunkedEncodingError,
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    socket.gaierror,
    ConnectionError,
    TimeoutError,
)

# Everything the executors catch around a send; anything else propagates untouched
TRANSPORT_EXCEPTIONS: tuple[type[BaseException], ...] = (
    requests.RequestException,
    httpx.HTTPError,
    httpx.InvalidURL,
    OSError,
)


@dataclass(frozen=True)
class RequestOutcome:
    outcome: Outcome
    detail: ErrorDetail
    response: object = None
    # Set when the attempt failed before a response arrived
    error: BaseException | None = None

    @property
    def retry_after(self) -> float | None:
        return self.detail.retry_after

    @property
    def retryable(self) -> bool:
        return self.outcome in (Outcome.TRANSIENT, Outcome.RATE_LIMITED)


def classify_status(status: int) -> Outcome:
    if 200 <= status < 300:  # noqa: PLR2004, http status code can be constant
        return Outcome.SUCCESS
    if status == 429:  # noqa: PLR2004
        return Outcome.RATE_LIMITED
    if status == 401:  # noqa: PLR2004
        return Outcome.AUTH_EXPIRED
    if 500 <= status < 600:  # noqa: PLR2004
        return Outcome.TRANSIENT
    # Remaining 4xx, plus 1xx/3xx that should never reach an API client
    return Outcome.PERMANENT


def classify_response(
    response, method: str = "", endpoint: str = "", now: float | None = None
) -> RequestOutcome:
    status = response.status_code
    outcome = classify_status(status)
    if outcome is Outcome.SUCCESS:
        return RequestOutcome(outcome, ErrorDetail(method, endpoint, status), response)
    retry_after = None
    if outcome is Outcome.RATE_LIMITED:
        retry_after = parse_retry_after(getattr(response, "headers", {}), now)
    detail = ErrorDetail(
        method=method,
        endpoint=endpoint,
        status=status,
        body=snippet(getattr(response, "text", "")),
        message=_reason(response),
        retry_after=retry_after,
    )
    return RequestOutcome(outcome, detail, response)


def _reason(response) -> str:
    # httpx exposes reason_phrase, requests exposes reason
    for attr in ("reason_phrase", "reason"):
        value = getattr(response, attr, None)
        if isinstance(value, str) and value:
            return value
    return ""


def classify_exception(exc: BaseException, method: str = "", endpoint: str = "") -> RequestOutcome:
    """Classify a failure raised before any response arrived."""
    transient = isinstance(exc, TRANSIENT_EXCEPTIONS)
    if not transient:
        # Some transports wrap socket errors in their own hierarchy
        cause = exc.__cause__ or exc.__context__
        transient = cause is not None and isinstance(cause, TRANSIENT_EXCEPTIONS)
    detail = ErrorDetail(
        method=method,
        endpoint=endpoint,
        message=f"{type(exc).__name__}: {exc}",
    )
    return RequestOutcome(
        Outcome.TRANSIENT if transient else Outcome.PERMANENT, detail, error=exc
    )
