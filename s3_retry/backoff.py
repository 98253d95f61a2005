"""Full-jitter exponential backoff as a tenacity wait strategy."""

import math
import random
from typing import Callable

from tenacity.wait import wait_base

from .constants import DEFAULT_BACKOFF_INTERVAL


class wait_full_jitter(wait_base):
    """
    Wait ``backoff_interval * ceil(random() * (2 ** (attempt + 2) - 1))`` milliseconds.

    The upper bound of the multiplier doubles with every attempt and the
    multiplier itself is drawn uniformly below it, so two calls with the same
    attempt number usually differ.
    """

    def __init__(
        self,
        backoff_interval: float = DEFAULT_BACKOFF_INTERVAL,
        random_fn: Callable[[], float] = random.random,
    ):
        self.backoff_interval = backoff_interval
        self.random_fn = random_fn

    def max_multiplier(self, attempt: int) -> int:
        return 2 ** (attempt + 2) - 1

    def compute_delay(self, attempt: int) -> float:
        """
        Compute the delay before the next attempt.

        Args:
            attempt: Number of attempts made so far (>= 0)

        Returns:
            float: Delay in milliseconds
        """
        if attempt < 0:
            raise ValueError(f"attempt must be >= 0, got {attempt}")
        multiplier = math.ceil(self.random_fn() * self.max_multiplier(attempt))
        return self.backoff_interval * multiplier

    def __call__(self, retry_state) -> float:
        """Delay in seconds for tenacity, keyed on ``retry_state.attempt_number``."""
        return self.compute_delay(retry_state.attempt_number) / 1000.0
