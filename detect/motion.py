import logging

import numpy as np

from core.contracts import Zone

L = logging.getLogger("reflex_runtime.detect.motion")

MODE_COUNT = "count"
MODE_NORMALIZED = "normalized"
_MODES = {MODE_COUNT, MODE_NORMALIZED}


def clamp_region(
    region: tuple[int, int, int, int], width: int, height: int
) -> tuple[int, int, int, int]:
    x0, y0, x1, y1 = (int(v) for v in region)
    x0 = min(max(x0, 0), width)
    x1 = min(max(x1, 0), width)
    y0 = min(max(y0, 0), height)
    y1 = min(max(y1, 0), height)
    return x0, y0, max(x0, x1), max(y0, y1)


def count_changed_pixels(
    current: np.ndarray,
    previous: np.ndarray,
    pixel_threshold: int = 100,
    stride: int = 1,
) -> tuple[int, int]:
    """
    Count pixels whose |dR| + |dG| + |dB| exceeds pixel_threshold.
    Returns (changed, sampled). Only every `stride`-th pixel of the flattened
    buffer is compared; extra channels (alpha) are ignored.
    """
    cur = current.reshape(-1, current.shape[-1])[::stride, :3]
    prev = previous.reshape(-1, previous.shape[-1])[::stride, :3]
    sampled = int(cur.shape[0])
    if sampled == 0:
        return 0, 0
    # int16 keeps the per-channel delta signed without a float temporary.
    delta = np.abs(cur.astype(np.int16) - prev.astype(np.int16)).sum(axis=1)
    return int(np.count_nonzero(delta > pixel_threshold)), sampled


class FrameDiffer:
    def __init__(
        self,
        pixel_threshold: int = 100,
        stride: int = 8,
        mode: str = MODE_COUNT,
        scale: float = 1000.0,
    ):
        self.pixel_threshold = int(pixel_threshold)
        self.stride = int(stride)
        self.mode = str(mode)
        self.scale = float(scale)
        self._validate()

    def score(
        self,
        current: np.ndarray,
        previous: np.ndarray | None,
        region: tuple[int, int, int, int] | None = None,
    ) -> float | None:
        """
        Motion score of `current` against `previous` inside `region`.
        Both buffers are full frames; `region` is clamped to them.
        Returns None when there is no comparable baseline yet.
        """
        if previous is None or previous.shape != current.shape:
            return None
        height, width = current.shape[:2]
        x0, y0, x1, y1 = clamp_region(region or (0, 0, width, height), width, height)
        return self.score_crops(current[y0:y1, x0:x1], previous[y0:y1, x0:x1])

    def score_crops(self, current: np.ndarray, previous: np.ndarray) -> float | None:
        if previous is None or previous.shape != current.shape:
            return None
        if current.size == 0:
            return 0.0
        changed, sampled = count_changed_pixels(
            current, previous, self.pixel_threshold, self.stride
        )
        if self.mode == MODE_COUNT:
            return float(changed)
        return (changed / sampled) * self.scale if sampled else 0.0

    def _validate(self):
        if not (0 <= self.pixel_threshold <= 765):
            raise ValueError("detect pixel_threshold must be 0..765")
        if self.stride < 1:
            raise ValueError("detect stride must be >= 1")
        if self.mode not in _MODES:
            raise ValueError(f"detect mode must be one of {sorted(_MODES)}")
        if self.scale <= 0:
            raise ValueError("detect scale must be > 0")


class ZoneMonitor:
    """Owns one zone's baseline crop and turns frames into motion scores."""

    def __init__(self, zone: Zone, differ: FrameDiffer):
        self.zone = zone
        self.differ = differ
        self._baseline: np.ndarray | None = None
        self._frame_shape: tuple[int, ...] | None = None
        self.last_score: float = 0.0

    def sample(self, frame: np.ndarray) -> float | None:
        """Score `frame` against the stored baseline, then rotate the baseline.

        Returns None on the first sample and whenever the frame size changes.
        """
        height, width = frame.shape[:2]
        x0, y0, x1, y1 = self.zone.region(width, height)
        crop = frame[y0:y1, x0:x1]
        baseline = self._baseline
        if self._frame_shape != frame.shape:
            if self._frame_shape is not None:
                L.debug(
                    "zone=%s frame shape changed %s -> %s; rebaselining",
                    self.zone.zone_id,
                    self._frame_shape,
                    frame.shape,
                )
            baseline = None
        score = self.differ.score_crops(crop, baseline) if baseline is not None else None
        # The producer may reuse its array next cycle; never keep a view of it.
        self._baseline = np.array(crop, copy=True)
        self._frame_shape = frame.shape
        if score is not None:
            self.last_score = score
        return score

    def discard_baseline(self):
        self._baseline = None
        self._frame_shape = None
        self.last_score = 0.0

    @property
    def has_baseline(self) -> bool:
        return self._baseline is not None


__all__ = [
    "MODE_COUNT",
    "MODE_NORMALIZED",
    "FrameDiffer",
    "ZoneMonitor",
    "clamp_region",
    "count_changed_pixels",
]
