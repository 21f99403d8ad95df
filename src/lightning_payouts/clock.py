"""Wall-clock helper shared by the windowed guards."""

import time
from collections.abc import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Current Unix time in integer milliseconds."""
    return int(time.time() * 1000)
