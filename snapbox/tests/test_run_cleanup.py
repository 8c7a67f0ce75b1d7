import importlib.util
import unittest
from pathlib import Path
from unittest.mock import patch

from snapbox.cleanup import CleanupReport
from snapbox.config import Settings

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "run_cleanup.py"


def load_script():
    found = importlib.util.spec_from_file_location("run_cleanup_script", SCRIPT)
    module = importlib.util.module_from_spec(found)
    found.loader.exec_module(module)
    return module


class RunCleanupScriptTests(unittest.TestCase):
    def setUp(self):
        self.script = load_script()
        self.settings = Settings(use_in_memory_backends=True, upload_retention_days=30)

    def test_once_runs_a_single_cleanup(self):
        argv = ["run_cleanup.py", "--once", "--retention-days", "7"]
        with patch("sys.argv", argv), patch.object(
            self.script, "get_settings", return_value=self.settings
        ), patch.object(
            self.script, "run_cleanup", return_value=CleanupReport()
        ) as run, patch.object(self.script, "build_scheduler") as build:
            self.assertEqual(self.script.main(), 0)

        run.assert_called_once()
        settings = run.call_args[0][3]
        self.assertEqual(settings.upload_retention_days, 7)
        self.assertTrue(settings.use_in_memory_backends)
        build.assert_not_called()

    def test_without_once_blocks_on_scheduler(self):
        with patch("sys.argv", ["run_cleanup.py"]), patch.object(
            self.script, "get_settings", return_value=self.settings
        ), patch.object(self.script, "run_cleanup") as run, patch.object(
            self.script, "build_scheduler"
        ) as build:
            self.assertEqual(self.script.main(), 0)

        build.return_value.start.assert_called_once_with()
        self.assertIs(build.call_args[1]["scheduler_cls"], self.script.BlockingScheduler)
        run.assert_not_called()


if __name__ == "__main__":
    unittest.main()
