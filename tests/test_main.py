import logging
import os
import tempfile
import unittest

from main import main, parse_args, setup_logging


class TestMainCli(unittest.TestCase):
    def tearDown(self):
        setup_logging(False, "warning")

    def test_parse_args(self):
        args = parse_args(["--config-dir", "config/reflex", "--log-level", "debug"])
        self.assertEqual(args.config_dir, "config/reflex")
        self.assertEqual(args.log_level, "debug")
        self.assertFalse(args.verbose)

    def test_setup_logging_levels(self):
        setup_logging(True)
        self.assertEqual(logging.getLogger().level, logging.DEBUG)
        setup_logging(False, "error")
        self.assertEqual(logging.getLogger().level, logging.ERROR)
        setup_logging(False, "nonsense")
        self.assertEqual(logging.getLogger().level, logging.INFO)

    def test_missing_config_exits_with_status_1(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(SystemExit) as ctx:
                main(["--config-dir", tmp, "--log-level", "critical"])
        self.assertEqual(ctx.exception.code, 1)

    def test_invalid_config_exits_with_status_1(self):
        with tempfile.TemporaryDirectory() as tmp:
            with open(os.path.join(tmp, "main_bad.yaml"), "w", encoding="utf-8") as f:
                f.write("session:\n  variant: reflex\n")
            with self.assertRaises(SystemExit) as ctx:
                main(["--config-dir", tmp, "--log-level", "critical"])
        self.assertEqual(ctx.exception.code, 1)


if __name__ == "__main__":
    unittest.main()
