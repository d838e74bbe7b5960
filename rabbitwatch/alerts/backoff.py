"""
Exponential backoff for notification retries.

Delays grow as ``base_delay * multiplier ** attempt`` so the first
retry waits ``base_delay``, the second twice that, and so on.
"""

import random


class ExponentialBackoff:
    """
    Exponential backoff with optional jitter.

    Computes delays as: min(base * multiplier^attempt, max_delay) + jitter.
    Jitter is off by default so retry timing is predictable.

    Usage:
        backoff = ExponentialBackoff(base_delay=1.0)
        for attempt in range(max_attempts):
            try:
                return await send()
            except TransientDeliveryError:
                await asyncio.sleep(backoff.next_delay())
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        multiplier: float = 2.0,
        jitter_range: float = 0.0,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.jitter_range = jitter_range
        self._attempt = 0

    def next_delay(self) -> float:
        """Return the next delay and advance the attempt counter."""
        delay = min(
            self.base_delay * (self.multiplier ** self._attempt),
            self.max_delay,
        )
        if self.jitter_range:
            delay += delay * random.uniform(-self.jitter_range, self.jitter_range)
        self._attempt += 1
        return max(0.0, delay)
