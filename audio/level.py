import numpy as np

# Byte-spectrum dB window, as used by browser analyser nodes.
MIN_DB = -100.0
MAX_DB = -30.0


class SpectrumLevelMeter:
    """
    Loudness scalar from a block of mono samples.
    The block is Blackman-windowed, transformed with rfft, smoothed over time,
    mapped to 0..255 byte bins over [MIN_DB, MAX_DB] and averaged. The level
    is `min(100, mean / 255 * gain * 100)`.
    """

    def __init__(self, fft_size: int = 256, gain: float = 4.0, smoothing: float = 0.8):
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError("audio fft_size must be a power of two >= 32")
        if not (0.0 <= smoothing < 1.0):
            raise ValueError("audio smoothing must be in [0, 1)")
        if gain <= 0:
            raise ValueError("audio gain must be > 0")
        self.fft_size = int(fft_size)
        self.gain = float(gain)
        self.smoothing = float(smoothing)
        self._window = np.blackman(self.fft_size).astype(np.float32)
        self._smoothed = np.zeros(self.fft_size // 2, dtype=np.float64)

    def byte_spectrum(self, samples: np.ndarray) -> np.ndarray:
        block = np.asarray(samples, dtype=np.float32).reshape(-1)
        if block.size >= self.fft_size:
            block = block[-self.fft_size :]
        else:
            block = np.pad(block, (self.fft_size - block.size, 0))
        mags = np.abs(np.fft.rfft(block * self._window))[: self.fft_size // 2]
        mags /= self.fft_size
        self._smoothed = self.smoothing * self._smoothed + (1.0 - self.smoothing) * mags
        with np.errstate(divide="ignore"):
            db = 20.0 * np.log10(self._smoothed)
        scaled = (db - MIN_DB) * (255.0 / (MAX_DB - MIN_DB))
        return np.clip(np.floor(scaled), 0, 255).astype(np.uint8)

    def level(self, samples: np.ndarray) -> float:
        volume = float(self.byte_spectrum(samples).mean())
        return min(100.0, (volume / 255.0) * self.gain * 100.0)

    def reset(self):
        self._smoothed[:] = 0.0


__all__ = ["SpectrumLevelMeter", "MIN_DB", "MAX_DB"]
