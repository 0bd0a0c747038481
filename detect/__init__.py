from .hysteresis import CandidateDebouncer
from .motion import (
    MODE_COUNT,
    MODE_NORMALIZED,
    FrameDiffer,
    ZoneMonitor,
    count_changed_pixels,
)

__all__ = [
    "CandidateDebouncer",
    "MODE_COUNT",
    "MODE_NORMALIZED",
    "FrameDiffer",
    "ZoneMonitor",
    "count_changed_pixels",
]
