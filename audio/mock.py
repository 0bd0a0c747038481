# -- coding: utf-8 --

import logging
from contextlib import contextmanager

from audio.base import AudioConfig, BaseAudioSource, register_audio

L = logging.getLogger("reflex_runtime.audio.mock")


@register_audio("mock")
class MockAudioSource(BaseAudioSource):
    """Replays `levels` one per read, then stays silent."""

    def __init__(self, cfg: AudioConfig):
        super().__init__(cfg)
        self._levels = list(cfg.levels)
        self._pos = 0

    def read_level(self):
        if self._pos >= len(self._levels):
            return 0.0
        level = self._levels[self._pos]
        self._pos += 1
        return level

    @contextmanager
    def session(self):
        self._pos = 0
        L.info("mock audio: %d scripted levels", len(self._levels))
        yield self


__all__ = ["MockAudioSource"]
