"""
Per-tenant fixed-window send throttle.

Each tenant has a (window start, count) pair. Once ``window`` has elapsed since the window
started, the count resets; otherwise sends beyond ``max_messages`` are rejected. The state is the
only shared mutable state in the send path and sits behind a single lock.
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from chatbridge.core.logging.logger import get_logger
from chatbridge.domain.errors import RateLimitError
from chatbridge.domain.models import ProviderConfig

logger = get_logger(__name__)


@dataclass
class _Window:
    started_at: float
    count: int = 0


class RateLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[int, _Window] = {}

    def check(self, tenant_id: int, max_messages: int, window_minutes: float) -> None:
        """
        Count one send against the tenant's window.

        Raises:
            RateLimitError: If the tenant already sent ``max_messages`` in the current window
        """
        window_seconds = window_minutes * 60
        with self._lock:
            now = self._clock()
            window = self._windows.get(tenant_id)
            if window is None or now - window.started_at >= window_seconds:
                window = _Window(started_at=now)
                self._windows[tenant_id] = window

            if window.count >= max_messages:
                logger.warning(
                    f"Tenant {tenant_id} hit rate limit "
                    f"({max_messages}/{window_minutes:g}min)"
                )
                raise RateLimitError(tenant_id, max_messages, window_minutes)
            window.count += 1

    def acquire(self, config: ProviderConfig) -> None:
        if not config.rate_limit_enabled:
            return
        self.check(
            config.tenant_id,
            config.rate_limit_max_messages,
            config.rate_limit_window_minutes,
        )

    def remaining(self, tenant_id: int, max_messages: int, window_minutes: float) -> int:
        with self._lock:
            window = self._windows.get(tenant_id)
            if window is None or self._clock() - window.started_at >= window_minutes * 60:
                return max_messages
            return max(0, max_messages - window.count)

    def reset(self, tenant_id: int | None = None) -> None:
        with self._lock:
            if tenant_id is None:
                self._windows.clear()
            else:
                self._windows.pop(tenant_id, None)
