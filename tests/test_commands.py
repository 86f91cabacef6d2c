"""
Tests for the command runner.
"""

import os
import sys
import tempfile
import unittest
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from launcher_backend.commands import apply_node_env, command_exists, run_command
from launcher_backend.errors import LaunchError


class TestRunCommand(unittest.TestCase):
    """Test run_command."""

    def test_captures_merged_output_and_exit_code(self):
        script = "import sys; print('to stdout'); sys.stdout.flush(); sys.stderr.write('to stderr\\n'); sys.exit(3)"
        result = run_command(sys.executable, ["-c", script])

        self.assertEqual(result.exit_code, 3)
        self.assertFalse(result.ok)
        self.assertIn("to stdout", result.output)
        self.assertIn("to stderr", result.output)

    def test_zero_exit_is_ok(self):
        result = run_command(sys.executable, ["-c", "print('hello')"])

        self.assertTrue(result.ok)
        self.assertEqual(result.text, "hello")

    def test_runs_in_working_directory(self):
        with tempfile.TemporaryDirectory() as tmp:
            result = run_command(sys.executable, ["-c", "import os; print(os.getcwd())"], cwd=tmp)
            self.assertEqual(Path(result.text).resolve(), Path(tmp).resolve())

    def test_missing_program_raises_launch_error(self):
        with self.assertRaises(LaunchError):
            run_command("definitely-not-a-real-program-xyz", ["--version"])

    def test_missing_cwd_raises_launch_error(self):
        with tempfile.TemporaryDirectory() as tmp:
            missing = Path(tmp) / "nope"
            with self.assertRaises(LaunchError):
                run_command(sys.executable, ["-c", "pass"], cwd=missing)

    def test_command_exists(self):
        self.assertTrue(command_exists(sys.executable))
        self.assertFalse(command_exists("definitely-not-a-real-program-xyz"))


class TestNodeEnv(unittest.TestCase):
    """Test child environment overrides."""

    def test_browser_launch_suppressed(self):
        env = apply_node_env({"PATH": os.environ.get("PATH", ""), "BROWSER": "firefox"})

        self.assertEqual(env["BROWSER"], "none")
        self.assertEqual(env["NO_BROWSER"], "1")
        self.assertEqual(env["NODE_ENV"], "production")
        self.assertIn("PATH", env)

    def test_does_not_mutate_input(self):
        original = {"BROWSER": "firefox"}
        apply_node_env(original)
        self.assertEqual(original, {"BROWSER": "firefox"})


if __name__ == "__main__":
    unittest.main()
