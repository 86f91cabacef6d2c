"""
End-to-end update scenarios against real git repositories.

Builds a bare "origin" with `main` and `nightly` branches and a vendor clone
containing the SillyTavern app directory. Skipped when git is not installed.
"""

import os
import shutil
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from launcher_backend.config import LauncherConfig
from launcher_backend.log_sink import LogSink
from launcher_backend.vendor_update import UpdateStatus, VendorUpdateController

GIT_ENV = {
    "GIT_AUTHOR_NAME": "Launcher Tests",
    "GIT_AUTHOR_EMAIL": "tests@example.invalid",
    "GIT_COMMITTER_NAME": "Launcher Tests",
    "GIT_COMMITTER_EMAIL": "tests@example.invalid",
    "GIT_TERMINAL_PROMPT": "0",
}


def git(cwd, *args):
    result = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        raise AssertionError(f"git {' '.join(args)} failed: {result.stdout}{result.stderr}")
    return result.stdout.strip()


@unittest.skipUnless(shutil.which("git"), "git is not installed")
class TestRealGitScenarios(unittest.TestCase):

    def setUp(self):
        env_patch = patch.dict(os.environ, GIT_ENV)
        env_patch.start()
        self.addCleanup(env_patch.stop)

        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        origin = self.root / "origin.git"
        seed = self.root / "seed"
        self.vendor = self.root / "WeylandTavern"

        git(self.root, "init", "--bare", str(origin))
        git(origin, "symbolic-ref", "HEAD", "refs/heads/main")

        seed.mkdir()
        git(seed, "init")
        git(seed, "checkout", "-b", "main")
        (seed / "SillyTavern").mkdir()
        (seed / "SillyTavern" / "server.js").write_text("console.log('main');\n", encoding="utf-8")
        (seed / "README.md").write_text("WeylandTavern\n", encoding="utf-8")
        git(seed, "add", ".")
        git(seed, "commit", "-m", "initial")
        git(seed, "remote", "add", "origin", str(origin))
        git(seed, "push", "origin", "main")

        git(seed, "checkout", "-b", "nightly")
        (seed / "SillyTavern" / "nightly.txt").write_text("nightly build\n", encoding="utf-8")
        git(seed, "add", ".")
        git(seed, "commit", "-m", "nightly changes")
        git(seed, "push", "origin", "nightly")

        git(self.root, "clone", str(origin), str(self.vendor))

        self.config = LauncherConfig(
            app_dir=self.vendor / "SillyTavern",
            vendor_dir=self.vendor,
            remote_ref="origin/nightly",
            allow_git_pull=True,
            logs_dir=self.root / "logs",
        )
        self.controller = VendorUpdateController(self.config, LogSink(self.config.logs_dir))

    def tearDown(self):
        self._tmp.cleanup()

    def test_missing_local_branch_clean_tree(self):
        outcome = self.controller.update_vendor(False)

        self.assertEqual(outcome.status, UpdateStatus.SUCCESS, outcome.message)
        self.assertFalse(outcome.stash_used)
        self.assertFalse(self.controller.repository().stash_pending)
        self.assertEqual(git(self.vendor, "rev-parse", "--abbrev-ref", "HEAD"), "nightly")
        self.assertTrue((self.vendor / "SillyTavern" / "nightly.txt").exists())

    def test_already_current_is_up_to_date_without_stash(self):
        self.controller.update_vendor(False)

        outcome = self.controller.update_vendor(False)

        self.assertEqual(outcome.status, UpdateStatus.UP_TO_DATE, outcome.message)
        self.assertEqual(git(self.vendor, "stash", "list"), "")

    def test_overwrite_with_local_edits_then_restore(self):
        readme = self.vendor / "README.md"
        readme.write_text("WeylandTavern\nlocal notes\n", encoding="utf-8")

        outcome = self.controller.update_vendor(True)

        self.assertEqual(outcome.status, UpdateStatus.SUCCESS, outcome.message)
        self.assertTrue(outcome.stash_used)
        self.assertTrue(self.controller.repository().stash_pending)
        self.assertEqual(readme.read_text(encoding="utf-8"), "WeylandTavern\n")
        self.assertTrue((self.vendor / "SillyTavern" / "nightly.txt").exists())

        self.controller.finalize_stash(True)

        self.assertFalse(self.controller.repository().stash_pending)
        self.assertEqual(readme.read_text(encoding="utf-8"), "WeylandTavern\nlocal notes\n")
        self.assertEqual(git(self.vendor, "stash", "list"), "")

    def test_overwrite_on_tracked_branch_brings_new_commits(self):
        self.controller.update_vendor(False)
        seed = self.root / "seed"
        (seed / "SillyTavern" / "new.txt").write_text("fresh\n", encoding="utf-8")
        git(seed, "add", ".")
        git(seed, "commit", "-m", "new nightly commit")
        git(seed, "push", "origin", "nightly")
        readme = self.vendor / "README.md"
        readme.write_text("WeylandTavern\nlocal notes\n", encoding="utf-8")

        outcome = self.controller.update_vendor(True)

        self.assertEqual(outcome.status, UpdateStatus.SUCCESS, outcome.message)
        self.assertTrue(outcome.stash_used)
        self.assertTrue(self.controller.repository().stash_pending)
        self.assertTrue((self.vendor / "SillyTavern" / "new.txt").exists())

    def test_overwrite_then_discard(self):
        readme = self.vendor / "README.md"
        readme.write_text("throwaway edit\n", encoding="utf-8")

        outcome = self.controller.update_vendor(True)
        self.assertTrue(outcome.stash_used)

        self.controller.finalize_stash(False)

        self.assertFalse(self.controller.repository().stash_pending)
        self.assertEqual(readme.read_text(encoding="utf-8"), "WeylandTavern\n")
        self.assertEqual(git(self.vendor, "stash", "list"), "")

    def test_unknown_branch_fails_with_log(self):
        self.config.remote_ref = "origin/does-not-exist"
        controller = VendorUpdateController(self.config, LogSink(self.config.logs_dir))

        outcome = controller.update_vendor(False)

        self.assertEqual(outcome.status, UpdateStatus.FAILED)
        self.assertTrue(self.config.update_log_path.exists())
        self.assertTrue(self.config.update_log_path.read_text(encoding="utf-8").strip())


if __name__ == "__main__":
    unittest.main()
