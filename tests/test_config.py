import os
import tempfile
import unittest

from core.config import ConfigError, load_config, validate_config

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))

MAIN_GATE = """
runtime:
  data_dir: {data_dir}
session:
  variant: gate
  stabilization_ms: 500
camera:
  type: mock
  common:
    fps: 30
  mock:
    image_dir: frames
zones:
  radius: 30
  gate: {{x: 40, y: 50}}
detect:
  config_file: detect.yaml
output:
  history:
    size: 5
"""

DETECT = """
mode: normalized
low_threshold: 20
high_threshold: 60
"""


def _write(path: str, text: str):
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)


class TestConfigLoader(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = self._tmp.name

    def tearDown(self):
        self._tmp.cleanup()

    def _load(self, main_text: str, detect_text: str = DETECT):
        _write(os.path.join(self.dir, "main_test.yaml"), main_text)
        _write(os.path.join(self.dir, "detect.yaml"), detect_text)
        return load_config(self.dir)

    def test_typed_blocks_and_defaults(self):
        cfg = self._load(MAIN_GATE.format(data_dir=self.dir))
        validate_config(cfg)
        self.assertEqual(cfg.session.variant, "gate")
        self.assertEqual(cfg.camera.type, "mock")
        self.assertEqual(cfg.camera.fps, 30)
        self.assertEqual(cfg.camera.image_dir, "frames")
        self.assertEqual(cfg.camera.width, 320)
        self.assertEqual(cfg.audio.type, "none")
        self.assertEqual((cfg.zones.gate.x, cfg.zones.gate.y), (40, 50))
        self.assertIsNone(cfg.zones.pilot)
        self.assertEqual(cfg.detect_params.mode, "normalized")
        self.assertEqual(cfg.detect_params.stride, 8)
        self.assertEqual(cfg.output.history.size, 5)
        self.assertFalse(cfg.output.hmi.enabled)
        self.assertTrue(cfg.paths["detect"].endswith("detect.yaml"))

    def test_unknown_keys_rejected(self):
        with self.assertRaises(ConfigError):
            self._load("session:\n  variant: gate\n  colour: red\n")
        with self.assertRaises(ConfigError):
            self._load("extras:\n  a: 1\n")
        with self.assertRaises(ConfigError):
            self._load("camera:\n  type: mock\n  fps: 30\n")
        with self.assertRaises(ConfigError):
            self._load("detect:\n  config_file: detect.yaml\n", "low: 1\n")

    def test_missing_or_duplicate_main_file(self):
        with self.assertRaises(ConfigError):
            load_config(self.dir)
        _write(os.path.join(self.dir, "main_a.yaml"), "{}\n")
        _write(os.path.join(self.dir, "main_b.yaml"), "{}\n")
        with self.assertRaises(ConfigError):
            load_config(self.dir)

    def test_missing_detect_file(self):
        _write(os.path.join(self.dir, "main_x.yaml"), "detect:\n  config_file: nope.yaml\n")
        with self.assertRaises(ConfigError):
            load_config(self.dir)


class TestConfigValidation(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        _write(os.path.join(self._tmp.name, "main_v.yaml"), "{}\n")
        self.cfg = load_config(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_defaults_pass(self):
        validate_config(self.cfg)

    def test_invalid_values_raise_config_error(self):
        cases = [
            ("session", "variant", "bmx"),
            ("camera", "fps", 0),
            ("audio", "fft_size", 300),
            ("zones", "radius", 0),
            ("runtime", "log_level", "loud"),
        ]
        for block, field, value in cases:
            with self.subTest(field=f"{block}.{field}"):
                cfg = load_config(self._tmp.name)
                setattr(getattr(cfg, block), field, value)
                with self.assertRaises(ConfigError):
                    validate_config(cfg)

    def test_threshold_order(self):
        self.cfg.detect_params.low_threshold = 30
        self.cfg.detect_params.high_threshold = 30
        with self.assertRaises(ConfigError):
            validate_config(self.cfg)

    def test_reflex_needs_audio(self):
        self.cfg.session.variant = "reflex"
        with self.assertRaises(ConfigError):
            validate_config(self.cfg)
        self.cfg.audio.type = "mock"
        validate_config(self.cfg)


class TestShippedConfigs(unittest.TestCase):
    def test_shipped_config_dirs_validate(self):
        for name in ("gate", "reflex"):
            with self.subTest(config=name):
                cfg = load_config(os.path.join(REPO_ROOT, "config", name))
                validate_config(cfg)
                self.assertEqual(cfg.session.variant, name)


if __name__ == "__main__":
    unittest.main()
