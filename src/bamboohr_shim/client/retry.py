"""Retry policy primitives for the request executor.

The executor never decides "retry or raise" by catching its own
exceptions. Each attempt is reduced to one of three outcome values:

* :class:`Success` -- the parsed response body.
* :class:`RetryableFailure` -- a rate-limit condition (HTTP 429/503), or a
  network failure that happened while a rate-limit retry was in progress.
* :class:`TerminalFailure` -- anything that must surface immediately.

The loop in :class:`~bamboohr_shim.client.async_client.BambooHRClient`
switches on these values and raises only when it gives up. The helpers
below are pure so they can be tested without a transport.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any, Optional, Union

from bamboohr_shim.exceptions import BambooHRError
from bamboohr_shim.models import RequestConfig

RETRYABLE_STATUSES = frozenset({429, 503})


@dataclass(frozen=True)
class Success:
    data: Any
    cacheable: bool = False


@dataclass(frozen=True)
class RetryableFailure:
    error: BambooHRError
    retry_after: Optional[float] = None


@dataclass(frozen=True)
class TerminalFailure:
    error: BambooHRError


Outcome = Union[Success, RetryableFailure, TerminalFailure]


def is_retryable_status(status: int) -> bool:
    """Return ``True`` for rate-limit (429) and service-unavailable (503) statuses."""
    return status in RETRYABLE_STATUSES


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a ``Retry-After`` header given in seconds.

    HTTP-date values and garbage are ignored (``None``) so the caller falls
    back to exponential backoff.
    """
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    if seconds < 0:
        return None
    return seconds


def backoff_delay(attempt: int, config: RequestConfig, jitter: Optional[float] = None) -> float:
    """Return the wait before retry number ``attempt + 1``, in seconds.

    ``backoff_initial`` doubled ``attempt`` times plus up to
    ``backoff_jitter`` seconds of random jitter, capped at ``backoff_max``.
    With the defaults: about 1-2 s, 2-3 s, 4-5 s, then 8 s.

    Args:
        attempt: Zero-based index of the attempt that just failed.
        config: Request settings holding the backoff parameters.
        jitter: Fixed jitter for deterministic callers; drawn from
            :func:`random.uniform` when ``None``.
    """
    if jitter is None:
        jitter = random.uniform(0, config.backoff_jitter)
    delay = config.backoff_initial * (2 ** attempt) + jitter
    return min(delay, config.backoff_max)
