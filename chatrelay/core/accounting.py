"""Token usage and throughput accounting for a single relayed stream."""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from chatrelay.core.types import TokenUsage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageStats:
    """Running usage snapshot plus derived throughput."""
    usage: Optional[TokenUsage]
    elapsed_seconds: float
    tokens_per_second: float

    def to_dict(self) -> Dict[str, float]:
        result: Dict[str, float] = {
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "tokens_per_second": round(self.tokens_per_second, 2),
        }
        if self.usage:
            result.update(self.usage.to_dict())
        return result


class TokenAccountant:
    """Tracks the latest cumulative usage snapshot reported by a provider.

    Providers report cumulative usage, so each snapshot replaces the running
    totals instead of being added to them. Throughput is
    ``output_tokens / elapsed`` where elapsed runs from ``start()``, which the
    relay calls right before asking the adapter for its first chunk. Time to
    first token is therefore part of the denominator.

    One instance per request; not shared.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            clock: Monotonic clock in seconds (injectable for tests)
        """
        self._clock = clock
        self._started_at: Optional[float] = None
        self._finished: Optional[UsageStats] = None
        self.usage: Optional[TokenUsage] = None

    def start(self) -> None:
        """Mark the moment the first chunk is requested."""
        self._started_at = self._clock()

    def update(self, usage: Optional[TokenUsage]) -> UsageStats:
        """Record a usage snapshot (None is a no-op) and return current stats."""
        if self._finished is not None:
            return self._finished

        if usage is not None:
            if self.usage is not None and not usage.covers(self.usage):
                logger.warning(
                    f"Ignoring regressing usage snapshot: {usage.to_dict()} < {self.usage.to_dict()}"
                )
            else:
                self.usage = usage

        return self._stats()

    def finish(self) -> UsageStats:
        """Freeze and return the authoritative usage record."""
        if self._finished is None:
            self._finished = self._stats()
        return self._finished

    @property
    def stats(self) -> UsageStats:
        return self._finished or self._stats()

    def _stats(self) -> UsageStats:
        elapsed = 0.0
        if self._started_at is not None:
            elapsed = max(self._clock() - self._started_at, 0.0)

        output_tokens = self.usage.output_tokens if self.usage else 0
        tokens_per_second = output_tokens / elapsed if elapsed > 0 else 0.0
        return UsageStats(usage=self.usage, elapsed_seconds=elapsed, tokens_per_second=tokens_per_second)
