import email.utils as eut
import math
import random
import time

from .types import RetryPolicy


def wait_for(attempt: int, policy: RetryPolicy) -> float:
    """Backoff before retry number ``attempt`` (1-indexed: the first retry is 1).

    min(max_interval, initial_interval * multiplier ** (attempt - 1)); deterministic.
    """
    if attempt < 1:
        raise ValueError(f"attempt is 1-indexed, got {attempt}")
    try:
        raw = policy.initial_interval * (float(policy.multiplier) ** (attempt - 1))
    except OverflowError:
        return policy.max_interval
    return min(policy.max_interval, raw)


def apply_jitter(delay: float, ratio: float, rng: random.Random | None = None) -> float:
    """Shrink ``delay`` by a random share of at most ``ratio``; never grows it."""
    if ratio <= 0:
        return delay
    r = (rng or random).random()
    return delay * (1.0 - ratio * r)


def delay_for(
    attempt: int,
    policy: RetryPolicy,
    retry_after: float | None = None,
    rng: random.Random | None = None,
) -> float:
    """Wait before retry ``attempt``, honouring a server-declared Retry-After.

    The larger of the local backoff and the server value wins; the server value is not
    capped by max_interval.
    """
    delay = apply_jitter(wait_for(attempt, policy), policy.jitter, rng)
    if retry_after is not None and retry_after > delay:
        return retry_after
    return delay


def parse_retry_after(headers, now: float | None = None) -> float | None:
    ra = None
    for k, v in dict(headers or {}).items():
        if k.lower() == "retry-after":
            ra = v
            break
    if ra is None or not str(ra).strip():
        return None
    try:
        seconds = float(ra)
    except ValueError:
        pass
    else:
        return max(0.0, seconds) if math.isfinite(seconds) else None
    # HTTP-date per RFC 7231
    try:
        ts = eut.parsedate_to_datetime(ra)
    except (TypeError, ValueError):
        return None
    if ts is None:
        return None
    now = time.time() if now is None else now
    # Round up so short delays are not truncated to zero
    return max(0.0, float(math.ceil(ts.timestamp() - now)))
