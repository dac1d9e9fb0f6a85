"""Daily token budget tracking for outbound LLM calls."""

import math
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, List, Any

from loguru import logger


DAILY_LIMIT = 1_500_000
DEFAULT_TOKENS_PER_REQUEST = 256
WARNING_THRESHOLD = 0.70
CRITICAL_THRESHOLD = 0.95


@dataclass
class UsageRecord:
    """One tracked outbound call."""
    estimated_tokens: int
    category: str = "chat"
    request_count: int = 1
    timestamp: float = field(default_factory=time.time)


@dataclass
class CategoryStats:
    count: int = 0
    total_tokens: int = 0
    avg_tokens: float = 0.0


class TokenBudgetTracker:
    """
    Tracks estimated token usage per calendar day.

    Records are cleared on the first track call of a new local calendar day,
    so the aggregate always describes today only.
    """

    def __init__(self,
                 daily_limit: int = DAILY_LIMIT,
                 warning_threshold: float = WARNING_THRESHOLD,
                 critical_threshold: float = CRITICAL_THRESHOLD,
                 default_tokens_per_request: int = DEFAULT_TOKENS_PER_REQUEST,
                 today: Callable[[], date] = date.today):
        self.daily_limit = daily_limit
        self.warning_threshold = warning_threshold
        self.critical_threshold = critical_threshold
        self.default_tokens_per_request = default_tokens_per_request
        self._today = today

        self._records: List[UsageRecord] = []
        self._categories: Dict[str, CategoryStats] = {}
        self._last_status = "good"
        self.last_reset_date: date = today()

    def track_usage(self, estimated_tokens: int, category: str = "chat") -> None:
        """Record one outbound call, rolling the day over first if needed."""
        today = self._today()
        if today != self.last_reset_date:
            logger.info(f"New day {today.isoformat()}, resetting token usage")
            self.reset()
            self.last_reset_date = today

        self._records.append(UsageRecord(estimated_tokens=estimated_tokens, category=category))

        stats = self._categories.setdefault(category, CategoryStats())
        stats.count += 1
        stats.total_tokens += estimated_tokens
        stats.avg_tokens = stats.total_tokens / stats.count

        usage = self.get_daily_usage()
        logger.debug(
            f"[{category.upper()}] Tokens: {estimated_tokens} | "
            f"Daily: {usage['estimated_tokens']}/{self.daily_limit} ({usage['percentage']:.1f}%)"
        )
        self._check_thresholds(usage)

    def _check_thresholds(self, usage: Dict[str, Any]) -> None:
        status = usage['status']
        if status == self._last_status:
            return

        if status == "critical":
            logger.error(
                f"CRITICAL: token usage at {usage['percentage']:.1f}% of the daily limit"
            )
        elif status == "warning":
            logger.warning(
                f"Token usage at {usage['percentage']:.1f}%, "
                f"~{self.get_remaining()['estimated_requests']} requests left today"
            )
        self._last_status = status

    def _total_tokens(self) -> int:
        return sum(r.estimated_tokens for r in self._records)

    def _status(self, percentage: float) -> str:
        if percentage >= self.critical_threshold * 100:
            return "critical"
        if percentage >= self.warning_threshold * 100:
            return "warning"
        return "good"

    def get_daily_usage(self) -> Dict[str, Any]:
        """Get today's totals and their status against the daily limit."""
        total_tokens = self._total_tokens()
        percentage = total_tokens / self.daily_limit * 100

        return {
            'requests': sum(r.request_count for r in self._records),
            'estimated_tokens': total_tokens,
            'percentage': percentage,
            'status': self._status(percentage),
        }

    def get_remaining(self) -> Dict[str, Any]:
        """Get remaining budget and how many average requests it still buys."""
        used = self._total_tokens()
        remaining = max(0, self.daily_limit - used)
        if self._records:
            avg = used / len(self._records)
        else:
            avg = self.default_tokens_per_request

        return {
            'tokens': remaining,
            'percentage': remaining / self.daily_limit * 100,
            'estimated_requests': math.floor(remaining / avg) if avg > 0 else 0,
        }

    def get_category_stats(self) -> Dict[str, Dict[str, float]]:
        return {
            name: {'count': s.count, 'total_tokens': s.total_tokens, 'avg_tokens': s.avg_tokens}
            for name, s in self._categories.items()
        }

    def get_usage_breakdown(self) -> Dict[str, Any]:
        total = self._total_tokens()
        by_category = []
        for name, s in self._categories.items():
            share = f"{s.total_tokens / total * 100:.1f}%" if total > 0 else "0%"
            by_category.append({
                'category': name,
                'count': s.count,
                'tokens': s.total_tokens,
                'percentage': share,
            })
        return {'by_category': by_category, 'total': total}

    def export_stats(self) -> Dict[str, Any]:
        return {
            'date': self.last_reset_date.isoformat(),
            'daily': self.get_daily_usage(),
            'breakdown': self.get_usage_breakdown(),
            'remaining': self.get_remaining(),
        }

    def reset(self) -> None:
        """Clear all accumulated usage."""
        self._records.clear()
        self._categories.clear()
        self._last_status = "good"
        logger.debug("Token usage stats reset")
