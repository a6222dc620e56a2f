"""Reconnection backoff policy.

Delays grow exponentially from ``initial_delay`` and are capped at
``max_delay``. A randomization factor spreads retries of many clients so
they do not hit a recovering server at the same instant.
"""
import random
from typing import Callable, Optional


class ReconnectBackoff:
    """Delay schedule for a bounded reconnection sequence.
    
    Attributes:
        max_attempts: Number of reconnection attempts before giving up
        initial_delay: Delay before the first attempt, in seconds
        max_delay: Upper bound for any delay, in seconds
        randomization_factor: Jitter as a fraction of the delay (0 disables)
        exponential_base: Growth factor between attempts
    """

    def __init__(
        self,
        max_attempts: int = 5,
        initial_delay: float = 1.0,
        max_delay: float = 5.0,
        randomization_factor: float = 0.5,
        exponential_base: float = 2.0,
        rng: Optional[Callable[[], float]] = None,
    ):
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.randomization_factor = randomization_factor
        self.exponential_base = exponential_base
        self._rng = rng or random.random

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for a given reconnection attempt.
        
        Args:
            attempt: Current attempt number (0-indexed)
            
        Returns:
            Delay in seconds before the attempt
            
        Example:
            With initial_delay=1.0, max_delay=5.0 and no jitter:
            - attempt 0: 1.0s
            - attempt 1: 2.0s
            - attempt 2: 4.0s
            - attempt 3: 5.0s
        """
        delay = min(self.initial_delay * (self.exponential_base ** attempt), self.max_delay)

        if self.randomization_factor:
            # Deviation in [-factor, +factor) of the delay
            deviation = (2 * self._rng() - 1) * self.randomization_factor * delay
            delay += deviation

        return max(0.0, min(delay, self.max_delay))
