"""Per-step retry policies.

The delay before attempt ``n + 1`` is ``initial_backoff_s * base ** (n - 1)``
where ``n`` is the number of attempts already made.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    initial_backoff_s: float
    base: float

    def delay_for(self, attempt: int) -> float:
        """Backoff after the given (1-based) attempt."""
        return self.initial_backoff_s * self.base ** (max(attempt, 1) - 1)

    def exhausted(self, attempts: int) -> bool:
        return attempts >= self.max_attempts


STEP_RETRY_POLICIES: dict[str, RetryPolicy] = {
    "classify": RetryPolicy(max_attempts=3, initial_backoff_s=0.5, base=2.0),
    "link_metadata": RetryPolicy(max_attempts=5, initial_backoff_s=5.0, base=2.0),
    "categorize": RetryPolicy(max_attempts=5, initial_backoff_s=1.2, base=1.6),
    "metadata": RetryPolicy(max_attempts=8, initial_backoff_s=0.4, base=1.8),
    "renderables": RetryPolicy(max_attempts=3, initial_backoff_s=1.0, base=2.0),
}
