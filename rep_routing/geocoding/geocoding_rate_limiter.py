"""
Token bucket rate limiter for geocoder requests.

Nominatim's usage policy allows roughly one request per second per client.
Every upstream attempt (first tries, fallback candidates and retries) takes
a token, so pacing is enforced in one place instead of by sleeps scattered
through the call sites.
"""

import time
from typing import Optional

from ..cancellation import CancellationToken, OperationCancelledError
from ..config.logger_module import log_debug, log_info
from .geocoding_errors import RateLimitError


class TokenBucketRateLimiter:
    """
    Token bucket rate limiter for API requests (single-threaded).

    Tokens are added at a constant rate up to `burst_capacity`; each request
    consumes one. With a capacity of 1 this degenerates into a minimum
    interval between consecutive requests.
    """

    def __init__(self,
                 rate_per_second: float = 1 / 1.2,
                 burst_capacity: int = 1,
                 retry_attempts: int = 3,
                 backoff_factor: float = 2.0):
        """
        Initialize the rate limiter.

        Args:
            rate_per_second: Tokens added per second (average rate)
            burst_capacity: Maximum tokens in bucket (burst allowance)
            retry_attempts: Max waits before giving up on a token
            backoff_factor: Multiplier applied to the minimum wait between waits
        """
        if rate_per_second <= 0:
            raise ValueError(f"rate_per_second must be > 0, got {rate_per_second}")
        if burst_capacity < 1:
            raise ValueError(f"burst_capacity must be >= 1, got {burst_capacity}")

        self.rate_per_second = rate_per_second
        self.burst_capacity = burst_capacity
        self.retry_attempts = retry_attempts
        self.backoff_factor = backoff_factor

        # Initialize bucket with full capacity
        self.tokens = float(burst_capacity)
        self.last_update = time.time()

        log_info(
            f"RateLimiter initialized: {rate_per_second:.3f}/sec, "
            f"burst capacity: {burst_capacity}"
        )

    def _refill_tokens(self) -> None:
        """Refill tokens based on elapsed time."""
        current_time = time.time()
        elapsed = current_time - self.last_update

        tokens_to_add = elapsed * self.rate_per_second
        self.tokens = min(self.tokens + tokens_to_add, self.burst_capacity)
        self.last_update = current_time

    def acquire(self, tokens_needed: int = 1) -> bool:
        """
        Attempt to acquire tokens without waiting.

        Returns:
            True if successful, False if rate limited
        """
        self._refill_tokens()

        if self.tokens >= tokens_needed:
            self.tokens -= tokens_needed
            return True
        return False

    def wait_for_token(self,
                       tokens_needed: int = 1,
                       cancel_token: Optional[CancellationToken] = None) -> None:
        """
        Block until tokens are available.

        Waits are interruptible when a cancellation token is given.

        Raises:
            RateLimitError: After max wait attempts
            OperationCancelledError: If the token fires while waiting
        """
        if tokens_needed > self.burst_capacity:
            raise RateLimitError(
                f"Cannot acquire {tokens_needed} token(s) from a bucket of "
                f"capacity {self.burst_capacity}"
            )

        min_wait = 0.01

        for attempt in range(self.retry_attempts):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            if self.acquire(tokens_needed):
                return

            wait = max(min_wait, self.get_wait_time(tokens_needed))
            log_debug(
                f"Rate limited. Waiting {wait:.2f}s "
                f"(attempt {attempt + 1}/{self.retry_attempts})"
            )

            if cancel_token is not None:
                if cancel_token.wait(wait):
                    raise OperationCancelledError(
                        cancel_token.reason or "Operation cancelled"
                    )
            else:
                time.sleep(wait)
            min_wait *= self.backoff_factor

        if self.acquire(tokens_needed):
            return

        raise RateLimitError(
            f"Failed to acquire {tokens_needed} token(s) after "
            f"{self.retry_attempts} attempts"
        )

    def get_available_tokens(self) -> float:
        """Get current number of available tokens."""
        self._refill_tokens()
        return self.tokens

    def get_wait_time(self, tokens_needed: int = 1) -> float:
        """
        Calculate wait time for tokens without blocking.

        Returns:
            Estimated wait time in seconds (0 if tokens available)
        """
        self._refill_tokens()

        if self.tokens >= tokens_needed:
            return 0.0

        tokens_deficit = tokens_needed - self.tokens
        return tokens_deficit / self.rate_per_second
