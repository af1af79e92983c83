import asyncio
import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from .backoff import delay_for
from .classify import (
    TRANSPORT_EXCEPTIONS,
    Outcome,
    RequestOutcome,
    classify_exception,
    classify_response,
)
from .errors import AuthExpiredError, ErrorDetail, ExhaustedError, PermanentError, snippet
from .tokens import AccessToken
from .types import RetryPolicy

DECODE_EXCEPTIONS = (ValueError, KeyError, TypeError)


def decode_json(response) -> Any:
    """Default decoder: parsed JSON, or None for an empty body."""
    if response.status_code == 204 or not response.content:  # noqa: PLR2004
        return None
    return response.json()


@dataclass(frozen=True)
class RequestSpec:
    """Everything needed to (re)send one logical request."""

    method: str
    url: str
    params: dict | None = None
    json: Any = None
    data: dict | None = None
    headers: dict | None = None
    # Requests needing the bearer token are checked for expiry before each send
    authorized: bool = True
    decode: Callable[[Any], Any] | None = None
    # Short name used in logs and error detail (e.g. "customers/123")
    label: str = ""

    def __post_init__(self):
        object.__setattr__(self, "method", self.method.upper())
        if not self.label:
            object.__setattr__(self, "label", self.url)

    def with_headers(self, **headers) -> "RequestSpec":
        return replace(self, headers={**(self.headers or {}), **headers})


# ---------- shared loop logic (sending and sleeping handled by subclasses) ----------


class _RetryLoop:
    def __init__(
        self,
        policy: RetryPolicy,
        tracing: bool = False,
        logger: logging.Logger | None = None,
        clock: Callable[[], float] | None = None,
        rng: random.Random | None = None,
    ):
        self.policy = policy
        self.tracing = tracing
        self._logger = logger or logging.getLogger("spiris")
        self._clock = clock or time.time
        self._rng = rng

    def _now(self) -> float:
        return self._clock()

    def _current_token(self, spec: RequestSpec, token_source) -> AccessToken | None:
        if not spec.authorized:
            return None
        token = token_source() if token_source is not None else None
        if token is None or token.is_expired(self._now()):
            raise AuthExpiredError(
                "access token expired; refresh and reissue the request",
                ErrorDetail(spec.method, spec.label, message="token expired before send"),
            )
        return token

    def _next_delay(self, attempt: int, last: RequestOutcome) -> float:
        return delay_for(attempt, self.policy, last.retry_after, self._rng)

    def _trace_start(self, spec: RequestSpec, attempt: int):
        if self.tracing:
            self._logger.debug(
                f"req start method={spec.method} endpoint={spec.label} "
                f"attempt={attempt}/{self.policy.max_attempts}"
            )

    def _trace_done(self, spec: RequestSpec, outcome: RequestOutcome):
        if self.tracing:
            self._logger.debug(
                f"req done method={spec.method} endpoint={spec.label} "
                f"status={outcome.detail.status} outcome={outcome.outcome.value}"
            )

    def _settle(
        self, spec: RequestSpec, outcome: RequestOutcome, attempt: int
    ) -> tuple[bool, Any]:
        """Return (True, value) on success, (False, None) to retry; raise otherwise."""
        cause = outcome.error
        if outcome.outcome is Outcome.SUCCESS:
            decode = spec.decode or decode_json
            try:
                return True, decode(outcome.response)
            except DECODE_EXCEPTIONS as e:
                detail = replace(
                    outcome.detail,
                    body=snippet(getattr(outcome.response, "text", "")),
                    message=f"undecodable response body: {e}",
                )
                message = f"{spec.method} {spec.label}: {detail.message}"
                raise PermanentError(message, detail) from e
        if outcome.outcome is Outcome.PERMANENT:
            raise PermanentError(
                f"{spec.method} {spec.label} rejected: {outcome.detail}", outcome.detail
            ) from cause
        if outcome.outcome is Outcome.AUTH_EXPIRED:
            raise AuthExpiredError(
                f"{spec.method} {spec.label}: server rejected the access token", outcome.detail
            )
        # transient or rate limited
        if attempt >= self.policy.max_attempts:
            self._logger.error(
                f"{spec.method} {spec.label} failed after {attempt} attempts: {outcome.detail}"
            )
            raise ExhaustedError(
                f"{spec.method} {spec.label} failed after {attempt} attempts: {outcome.detail}",
                outcome.detail,
                attempts=attempt,
            ) from cause
        return False, None

    def _log_retry(self, spec: RequestSpec, last: RequestOutcome, attempt: int, delay: float):
        self._logger.warning(
            f"{spec.method} {spec.label} {last.outcome.value} "
            f"(attempt {attempt - 1}/{self.policy.max_attempts}), "
            f"retrying in {delay:.2f}s: {last.detail}"
        )


# ---------- threads (requests) ----------


class RetryingExecutor(_RetryLoop):
    """Runs one logical request as up to ``policy.max_attempts`` physical sends.

    ``send(spec, token)`` performs one round trip and returns a response object with
    ``status_code``, ``headers``, ``text``, ``content`` and ``json()``. The backoff
    sleep happens in the calling thread only; no shared lock is held across it.
    """

    def __init__(
        self, policy: RetryPolicy, sleep: Callable[[float], None] | None = None, **kwargs
    ):
        super().__init__(policy, **kwargs)
        self._sleep = sleep or time.sleep

    def execute(self, spec: RequestSpec, send, token_source=None) -> Any:
        last: RequestOutcome | None = None
        for attempt in range(1, self.policy.max_attempts + 1):
            if last is not None:
                delay = self._next_delay(attempt - 1, last)
                self._log_retry(spec, last, attempt, delay)
                self._sleep(delay)
            token = self._current_token(spec, token_source)
            self._trace_start(spec, attempt)
            try:
                response = send(spec, token)
            except TRANSPORT_EXCEPTIONS as e:
                outcome = classify_exception(e, spec.method, spec.label)
            else:
                outcome = classify_response(response, spec.method, spec.label, self._now())
            self._trace_done(spec, outcome)
            done, value = self._settle(spec, outcome, attempt)
            if done:
                return value
            last = outcome
        raise AssertionError("retry loop ended without settling")  # pragma: no cover


# ---------- asyncio (httpx) ----------


class AsyncRetryingExecutor(_RetryLoop):
    """asyncio rendition of RetryingExecutor; ``send`` is a coroutine function.

    Cancelling the calling task during the backoff wait or an in-flight send simply
    abandons the logical request.
    """

    def __init__(self, policy: RetryPolicy, sleep=None, **kwargs):
        super().__init__(policy, **kwargs)
        self._sleep = sleep or asyncio.sleep

    async def execute(self, spec: RequestSpec, send, token_source=None) -> Any:
        last: RequestOutcome | None = None
        for attempt in range(1, self.policy.max_attempts + 1):
            if last is not None:
                delay = self._next_delay(attempt - 1, last)
                self._log_retry(spec, last, attempt, delay)
                await self._sleep(delay)
            token = self._current_token(spec, token_source)
            self._trace_start(spec, attempt)
            try:
                response = await send(spec, token)
            except TRANSPORT_EXCEPTIONS as e:
                outcome = classify_exception(e, spec.method, spec.label)
            else:
                outcome = classify_response(response, spec.method, spec.label, self._now())
            self._trace_done(spec, outcome)
            done, value = self._settle(spec, outcome, attempt)
            if done:
                return value
            last = outcome
        raise AssertionError("retry loop ended without settling")  # pragma: no cover
