import importlib.util
import os
import tempfile
import unittest

import cv2
import numpy as np

from audio import AudioConfig, SpectrumLevelMeter, create_audio_source
from camera import CameraConfig, create_camera
from camera.opencv import OpenCVCamera
from core.contracts import CaptureDeviceError


class TestSpectrumLevelMeter(unittest.TestCase):
    def test_silence_is_zero(self):
        meter = SpectrumLevelMeter()
        for _ in range(5):
            level = meter.level(np.zeros(256, dtype=np.float32))
        self.assertEqual(level, 0.0)

    def test_noise_is_loud_and_capped(self):
        rng = np.random.default_rng(7)
        meter = SpectrumLevelMeter(fft_size=256, gain=4.0, smoothing=0.8)
        for _ in range(30):
            level = meter.level(rng.uniform(-0.5, 0.5, 256).astype(np.float32))
        self.assertGreater(level, 50.0)
        self.assertLessEqual(level, 100.0)

    def test_quiet_below_loud(self):
        rng = np.random.default_rng(3)
        quiet, loud = SpectrumLevelMeter(), SpectrumLevelMeter()
        for _ in range(30):
            q = quiet.level(rng.uniform(-1e-3, 1e-3, 256))
            lo = loud.level(rng.uniform(-0.5, 0.5, 256))
        self.assertLess(q, lo)

    def test_short_block_is_padded(self):
        meter = SpectrumLevelMeter(fft_size=64)
        self.assertEqual(meter.byte_spectrum(np.zeros(10)).shape, (32,))

    def test_invalid_fft_size(self):
        with self.assertRaises(ValueError):
            SpectrumLevelMeter(fft_size=100)


@unittest.skipUnless(importlib.util.find_spec("pyaudio"), "PyAudio not installed")
class TestMicAudio(unittest.TestCase):
    def test_level_advances_once_per_block(self):
        src = create_audio_source("mic", AudioConfig(gain=1.0, smoothing=0.8))
        self.assertIsNone(src.read_level())
        block = np.random.default_rng(5).uniform(-0.05, 0.05, 256).astype(np.float32)
        src._on_audio(block.tobytes(), 256, None, 0)
        first = src.read_level()
        self.assertEqual([src.read_level() for _ in range(3)], [first] * 3)
        src._on_audio(block.tobytes(), 256, None, 0)
        self.assertGreater(src.read_level(), first)


class TestMockAudio(unittest.TestCase):
    def test_replays_levels_then_silence(self):
        src = create_audio_source("mock", AudioConfig(levels=[10.0, 90.0]))
        with src.session():
            self.assertEqual([src.read_level() for _ in range(4)], [10.0, 90.0, 0.0, 0.0])

    def test_unknown_type(self):
        with self.assertRaises(ValueError):
            create_audio_source("tape", AudioConfig())


class TestMockCamera(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = self._tmp.name
        for i, value in ((1, 0), (2, 128), (10, 255)):
            img = np.full((24, 32, 3), value, dtype=np.uint8)
            cv2.imwrite(os.path.join(self.dir, f"f{i}.png"), img)

    def tearDown(self):
        self._tmp.cleanup()

    def _camera(self, **kw):
        return create_camera("mock", CameraConfig(image_dir=self.dir, **kw))

    def test_natural_order_then_hold(self):
        cam = self._camera(order="name_natural", end_mode="hold")
        with cam.session():
            values = [int(cam.read_frame()[0, 0, 0]) for _ in range(5)]
        self.assertEqual(values, [0, 128, 255, 255, 255])

    def test_stop_end_mode(self):
        cam = self._camera(order="name_natural", end_mode="stop")
        with cam.session():
            frames = [cam.read_frame() for _ in range(4)]
        self.assertIsNone(frames[-1])

    def test_frames_are_copies(self):
        cam = self._camera(end_mode="loop")
        with cam.session():
            first = cam.read_frame()
            first[:] = 99
            for _ in range(2):
                cam.read_frame()
            self.assertEqual(int(cam.read_frame()[0, 0, 0]), 0)

    def test_missing_dir_is_device_error(self):
        cam = create_camera("mock", CameraConfig(image_dir=os.path.join(self.dir, "none")))
        with self.assertRaises(CaptureDeviceError):
            with cam.session():
                pass


class _ScriptedCapture:
    def __init__(self, oks):
        self._oks = iter(oks)

    def read(self):
        if next(self._oks, False):
            return True, np.zeros((4, 4, 3), dtype=np.uint8)
        return False, None


class TestOpenCVCamera(unittest.TestCase):
    def test_repeated_empty_reads_raise(self):
        cam = create_camera("opencv", CameraConfig())
        cam._cap = _ScriptedCapture([])
        for _ in range(cam.MAX_READ_FAILURES - 1):
            self.assertIsNone(cam.read_frame())
        with self.assertRaises(CaptureDeviceError):
            cam.read_frame()

    def test_good_frame_resets_failure_count(self):
        misses = [False] * (OpenCVCamera.MAX_READ_FAILURES - 1)
        cam = create_camera("opencv", CameraConfig())
        cam._cap = _ScriptedCapture(misses + [True] + misses)
        frames = [cam.read_frame() for _ in range(2 * len(misses) + 1)]
        self.assertEqual(sum(f is not None for f in frames), 1)


if __name__ == "__main__":
    unittest.main()
