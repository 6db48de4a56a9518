"""
Rate limiting utility to prevent excessive AI provider usage.
Tracks combined Gemini + OpenAI calls against a total limit per sliding window.
"""
import logging
from typing import Dict, Optional, Tuple
from datetime import datetime, timedelta
from threading import Lock
from collections import defaultdict

from app.config import Config

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Rate limiter to control AI call frequency and total usage.
    Tracks calls per provider and enforces a combined limit over a sliding window.
    """

    def __init__(
        self,
        max_total_calls: Optional[int] = None,
        enabled: Optional[bool] = None,
        window: Optional[timedelta] = None,
    ):
        """
        Initialize rate limiter with call tracking.

        Args:
            max_total_calls: Maximum calls across all providers per window (defaults to Config.MAX_TOTAL_CALLS)
            enabled: Whether the limit is enforced (defaults to Config.ENABLE_RATE_LIMITING)
            window: Sliding window the limit applies to (defaults to Config.RATE_LIMIT_WINDOW_HOURS)
        """
        self.max_total_calls = Config.MAX_TOTAL_CALLS if max_total_calls is None else max_total_calls
        self.enabled = Config.ENABLE_RATE_LIMITING if enabled is None else enabled
        self.window = window if window is not None else timedelta(hours=Config.RATE_LIMIT_WINDOW_HOURS)
        self.call_history: Dict[str, list] = defaultdict(list)  # provider -> timestamps inside the window
        self.total_calls: Dict[str, int] = defaultdict(int)  # provider -> lifetime count
        self.lock = Lock()
        self.start_time = datetime.now()

    def _trim(self, now: datetime):
        """Drop timestamps that fell out of the window. Caller holds the lock."""
        cutoff = now - self.window
        for service in list(self.call_history):
            recent = [ts for ts in self.call_history[service] if ts > cutoff]
            if recent:
                self.call_history[service] = recent
            else:
                del self.call_history[service]

    def _calls_in_window(self) -> int:
        return sum(len(calls) for calls in self.call_history.values())

    def can_make_call(self, service: str) -> Tuple[bool, str]:
        """
        Check if a call can be made based on the windowed total limit.

        Args:
            service: Provider name (e.g., 'gemini', 'openai')

        Returns:
            Tuple of (can_call: bool, reason: str)
        """
        if not self.enabled:
            return True, "OK"

        with self.lock:
            self._trim(datetime.now())
            calls_made = self._calls_in_window()

            if calls_made >= self.max_total_calls:
                return False, (
                    f"Total call limit reached: {calls_made}/{self.max_total_calls} "
                    f"calls across all providers in the last {self.window}"
                )

            return True, "OK"

    def record_call(self, service: str):
        """Record that a call was made."""
        with self.lock:
            now = datetime.now()
            self._trim(now)
            self.call_history[service].append(now)
            self.total_calls[service] += 1

            logger.info(
                f"Recorded call for {service}. "
                f"Calls in window: {self._calls_in_window()}/{self.max_total_calls}"
            )

    def get_stats(self, service: Optional[str] = None) -> Dict:
        """
        Get statistics for a provider or all providers.

        Args:
            service: Optional provider name. If None, returns combined stats.

        Returns:
            Dictionary with statistics
        """
        with self.lock:
            now = datetime.now()
            self._trim(now)

            if service:
                recent_calls = self.call_history.get(service, [])
                cutoff_1m = now - timedelta(minutes=1)
                cutoff_1h = now - timedelta(hours=1)

                return {
                    'service': service,
                    'total_calls': self.total_calls[service],
                    'calls_last_minute': sum(1 for ts in recent_calls if ts > cutoff_1m),
                    'calls_last_hour': sum(1 for ts in recent_calls if ts > cutoff_1h),
                    'calls_in_window': len(recent_calls),
                }

            return {
                'total_calls': sum(self.total_calls.values()),
                'max_calls': self.max_total_calls,
                'remaining_calls': max(0, self.max_total_calls - self._calls_in_window()),
                'calls_by_service': dict(self.total_calls),
                'session_duration': (now - self.start_time).total_seconds()
            }

    def reset(self):
        """Reset all call tracking (useful for testing)."""
        with self.lock:
            self.call_history.clear()
            self.total_calls.clear()
            self.start_time = datetime.now()
            logger.info("Rate limiter reset")
