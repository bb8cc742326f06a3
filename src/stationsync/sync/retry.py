"""Retry wrapper for UEX fetches."""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, TypeVar

from stationsync.uex.client import RateLimited, UpstreamUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def fetch_with_retry(
    fetch: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    backoff_base_ms: int,
    backoff_multiplier: float = 2.0,
    label: str = "",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Call `fetch` up to `attempts` times.

    Only UpstreamUnavailable is retried, after sleeping
    backoff_base_ms * backoff_multiplier ** attempt. RateLimited and every
    other error propagate on first occurrence. When tries run out the last
    UpstreamUnavailable is re-raised.
    """
    attempts = max(1, attempts)
    last_error: Optional[BaseException] = None

    for attempt in range(attempts):
        try:
            return await fetch()
        except RateLimited:
            logger.warning("Rate limit hit%s, aborting", f" for {label}" if label else "")
            raise
        except UpstreamUnavailable as exc:
            last_error = exc
            if attempt >= attempts - 1:
                break
            backoff_ms = backoff_base_ms * (backoff_multiplier ** attempt)
            logger.warning(
                "Fetch attempt %d/%d failed%s, retrying in %dms: %s",
                attempt + 1,
                attempts,
                f" for {label}" if label else "",
                backoff_ms,
                exc,
            )
            await sleep(backoff_ms / 1000.0)

    assert last_error is not None
    raise last_error


def chunked(seq: List[T], size: int) -> List[List[T]]:
    """Split a list into consecutive chunks of at most `size` elements."""
    size = max(1, size)
    return [seq[i:i + size] for i in range(0, len(seq), size)]
