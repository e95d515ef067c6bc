import random
import time
from typing import Callable, Optional


MIN_JITTER_DELAY = 0.2
MAX_JITTER_DELAY = 1.0


def jittered_delay(rng: Optional[random.Random] = None) -> float:
    """Uniform delay in [MIN_JITTER_DELAY, MAX_JITTER_DELAY) seconds."""
    r = (rng or random).random()
    return MIN_JITTER_DELAY + r * (MAX_JITTER_DELAY - MIN_JITTER_DELAY)


class Backoff:
    """Delay source for one call's retries.

    A fixed ``delay`` is returned as-is. Without one, a jittered delay is drawn
    before each retry, or only once per call when ``redraw`` is false.
    """

    def __init__(
        self,
        delay: Optional[float] = None,
        redraw: bool = True,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] | None = None,
    ):
        self.delay = delay
        self.redraw = redraw
        self._rng = rng
        self._sleep = sleep or time.sleep
        self._drawn: Optional[float] = None

    def next_delay(self) -> float:
        if self.delay is not None:
            return self.delay
        if self._drawn is None or self.redraw:
            self._drawn = jittered_delay(self._rng)
        return self._drawn

    def wait(self) -> float:
        delay = self.next_delay()
        if delay > 0:
            self._sleep(delay)
        return delay
