import threading
import time as time_module
from datetime import datetime, date, timezone
from dateutil import tz
import structlog

log = structlog.get_logger()


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def today_local(local_tz: str, now_utc: datetime | None = None) -> date:
    """Calendar date in the reporting timezone; the engine's notion of "today"."""
    now_utc = now_utc or datetime.now(timezone.utc)
    return now_utc.astimezone(tz.gettz(local_tz)).date()


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Exponential backoff: base, 2*base, 4*base ... capped at max_delay."""
    return min(max_delay, base_delay * (2 ** (attempt - 1)))


def retry_call(fn, *, attempts: int = 3, base_delay: float = 1.0, max_delay: float = 5.0, retry_on_result=None):
    """Call ``fn`` up to ``attempts`` times.

    Exceptions are retried and re-raised after the last attempt. When
    ``retry_on_result`` flags a result as unusable (e.g. an empty frame) the
    call is retried too; the last result is returned as is.
    """
    attempts = max(1, int(attempts))
    for attempt in range(1, attempts + 1):
        last = attempt == attempts
        try:
            result = fn()
        except Exception as exc:
            if last:
                raise
            log.debug("retry_after_error", attempt=attempt, error=str(exc))
        else:
            if last or not (retry_on_result and retry_on_result(result)):
                return result
            log.debug("retry_after_result", attempt=attempt)
        delay = backoff_delay(attempt, base_delay, max_delay)
        if delay > 0:
            time_module.sleep(delay)


class RateLimiter:
    """Minimum spacing between provider calls, shared by the fetch worker threads."""

    def __init__(self, min_interval_seconds: float):
        self.min_interval_seconds = float(min_interval_seconds or 0.0)
        self._next_allowed = None
        self._lock = threading.Lock()

    def wait(self):
        if self.min_interval_seconds <= 0:
            return
        with self._lock:
            now = time_module.monotonic()
            if self._next_allowed is not None and now < self._next_allowed:
                time_module.sleep(self._next_allowed - now)
                now = self._next_allowed
            self._next_allowed = now + self.min_interval_seconds
