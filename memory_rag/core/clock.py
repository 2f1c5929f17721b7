from __future__ import annotations

import time


def now_ms() -> int:
    """Wall-clock milliseconds since the epoch; the insertion timestamp unit."""
    return int(time.time() * 1000)
