"""Call spacing and bounded retry helpers shared by every external client."""

import logging
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_INTERVAL_SECONDS = 0.25
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_SECONDS = 1.0


class RetryExhaustedError(RuntimeError):
    """Raised when an operation still fails after the last permitted attempt."""

    def __init__(self, context: str, attempts: int, last_error: BaseException) -> None:
        self.context = context
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Failed after {attempts - 1} retries ({context}): {last_error}")


class RateLimiter:
    """Strict fixed spacing between calls to one external dependency.

    One instance per dependency; there is no burst allowance.
    """

    def __init__(self, min_interval: float = DEFAULT_INTERVAL_SECONDS, *, name: str = "default") -> None:
        self.min_interval = max(0.0, float(min_interval))
        self.name = name
        self._last_served: Optional[float] = None

    def throttle(self) -> None:
        if self._last_served is not None:
            elapsed = time.monotonic() - self._last_served
            remaining = self.min_interval - elapsed
            if remaining > 0:
                logger.debug("Throttling %s for %.3fs", self.name, remaining)
                time.sleep(remaining)
        self._last_served = time.monotonic()


class RetryExecutor:
    """Run an operation with bounded exponential backoff.

    Every exception is retried unless its type is listed in ``fatal_errors``.
    Attempt ``n`` (0-based) that fails waits ``base_delay * 2 ** n`` before the
    next try; after ``max_retries`` retries a :class:`RetryExhaustedError`
    carrying ``context`` is raised.
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
        *,
        fatal_errors: Tuple[Type[BaseException], ...] = (),
    ) -> None:
        self.max_retries = max(0, int(max_retries))
        self.base_delay = max(0.0, float(base_delay))
        self.fatal_errors = fatal_errors

    def execute(self, operation: Callable[[], T], context: str = "operation") -> T:
        attempt = 0
        while True:
            try:
                return operation()
            except self.fatal_errors:
                raise
            except Exception as exc:  # noqa: BLE001
                if attempt >= self.max_retries:
                    logger.error("Retries exhausted for %s: %s", context, exc)
                    raise RetryExhaustedError(context, attempt + 1, exc) from exc
                delay = self.base_delay * (2 ** attempt)
                logger.warning(
                    "Retry %d/%d for %s after %.2fs: %s", attempt + 1, self.max_retries, context, delay, exc
                )
                time.sleep(delay)
                attempt += 1
