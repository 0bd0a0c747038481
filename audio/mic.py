# -- coding: utf-8 --

import logging
import threading
from contextlib import contextmanager

import numpy as np
import pyaudio

from audio.base import AudioConfig, BaseAudioSource, register_audio
from audio.level import SpectrumLevelMeter
from core.contracts import CaptureDeviceError

L = logging.getLogger("reflex_runtime.audio.mic")


@register_audio("mic")
class MicAudioSource(BaseAudioSource):
    """Default (or `device_index`) input device through PyAudio."""

    def __init__(self, cfg: AudioConfig):
        super().__init__(cfg)
        self._pa: pyaudio.PyAudio | None = None
        self._stream = None
        self._block: np.ndarray | None = None
        self._block_seq = 0
        self._metered_seq = 0
        self._level: float | None = None
        self._lock = threading.Lock()
        self._meter = SpectrumLevelMeter(
            fft_size=cfg.fft_size, gain=cfg.gain, smoothing=cfg.smoothing
        )

    def _on_audio(self, in_data, frame_count, time_info, status):
        # PortAudio thread: only hand over the newest block.
        block = np.frombuffer(in_data, dtype=np.float32).copy()
        with self._lock:
            self._block = block
            self._block_seq += 1
        return (None, pyaudio.paContinue)

    def read_level(self):
        stream = self._stream
        if stream is not None and not stream.is_active():
            raise CaptureDeviceError("microphone stream stopped")
        with self._lock:
            block, seq = self._block, self._block_seq
        if block is None:
            return None
        # Smoothing advances once per PortAudio block, not once per read.
        if seq != self._metered_seq:
            self._level = self._meter.level(block)
            self._metered_seq = seq
        return self._level

    @contextmanager
    def session(self):
        self._pa = pyaudio.PyAudio()
        device_index = self.cfg.device_index if self.cfg.device_index >= 0 else None
        try:
            self._stream = self._pa.open(
                format=pyaudio.paFloat32,
                channels=1,
                rate=int(self.cfg.sample_rate),
                input=True,
                input_device_index=device_index,
                frames_per_buffer=int(self.cfg.fft_size),
                stream_callback=self._on_audio,
            )
            self._stream.start_stream()
        except (OSError, ValueError) as e:
            self._pa.terminate()
            self._pa = None
            raise CaptureDeviceError(f"microphone unavailable: {e}") from e
        L.info(
            "microphone open rate=%d fft=%d device=%s",
            self.cfg.sample_rate,
            self.cfg.fft_size,
            device_index if device_index is not None else "default",
        )
        try:
            yield self
        finally:
            try:
                self._stream.stop_stream()
                self._stream.close()
            finally:
                self._stream = None
                self._pa.terminate()
                self._pa = None
                self._meter.reset()
                with self._lock:
                    self._block = None
                self._level = None


__all__ = ["MicAudioSource"]
