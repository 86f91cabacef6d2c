"""
Tests for ref classification and pin checkout plans.
"""

import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from launcher_backend.commands import CommandResult
from launcher_backend.errors import ConfigurationError, SubprocessFailure
from launcher_backend.refs import (
    KIND_BRANCH,
    KIND_COMMIT,
    KIND_TAG,
    RefSpec,
    checkout_plan,
    checkout_ref,
    resolve_ref,
)


class TestResolveRef(unittest.TestCase):
    """Test classification precedence: sha, tags/, origin/, branch."""

    def test_short_and_long_sha(self):
        self.assertEqual(resolve_ref("3f2c9ab"), RefSpec(KIND_COMMIT, "3f2c9ab"))
        sha = "a" * 40
        self.assertEqual(resolve_ref(sha), RefSpec(KIND_COMMIT, sha))

    def test_too_short_or_long_hex_is_branch(self):
        self.assertEqual(resolve_ref("abc123").kind, KIND_BRANCH)
        self.assertEqual(resolve_ref("a" * 41).kind, KIND_BRANCH)

    def test_tag(self):
        self.assertEqual(resolve_ref("tags/v1.12.0"), RefSpec(KIND_TAG, "v1.12.0"))

    def test_origin_prefix_stripped(self):
        self.assertEqual(resolve_ref("origin/nightly"), RefSpec(KIND_BRANCH, "nightly"))

    def test_literal_branch(self):
        self.assertEqual(resolve_ref("release"), RefSpec(KIND_BRANCH, "release"))

    def test_hex_named_branch_is_treated_as_commit(self):
        # Known ambiguity: the sha pattern is checked first.
        self.assertEqual(resolve_ref("deadbeef").kind, KIND_COMMIT)

    def test_empty_ref(self):
        with self.assertRaises(ConfigurationError):
            resolve_ref("  ")


class TestCheckoutPlan(unittest.TestCase):
    """Test the git steps for each ref kind."""

    def test_branch_tracking(self):
        plan = checkout_plan(RefSpec(KIND_BRANCH, "nightly"), exact=False)
        self.assertEqual(plan[-1], ["checkout", "-B", "nightly", "--track", "origin/nightly"])

    def test_branch_exact_detaches(self):
        plan = checkout_plan(RefSpec(KIND_BRANCH, "nightly"), exact=True)
        self.assertEqual(plan[-1], ["checkout", "--detach", "origin/nightly"])

    def test_tag_and_commit_detach(self):
        self.assertEqual(checkout_plan(RefSpec(KIND_TAG, "v1"))[-1], ["checkout", "--detach", "tags/v1"])
        self.assertEqual(checkout_plan(RefSpec(KIND_COMMIT, "3f2c9ab"))[-1], ["checkout", "--detach", "3f2c9ab"])


class TestCheckoutRef(unittest.TestCase):
    """Test running a checkout plan."""

    def test_stops_at_first_failure(self):
        calls = []

        def fake_run(program, args, cwd=None, **kwargs):
            calls.append(args)
            if args[0] == "fetch":
                return CommandResult(128, "fatal: couldn't find remote ref nightly")
            return CommandResult(0, "")

        with tempfile.TemporaryDirectory() as tmp, patch("launcher_backend.refs.run_command", side_effect=fake_run):
            with self.assertRaises(SubprocessFailure) as ctx:
                checkout_ref(Path(tmp), "origin/nightly")

        self.assertEqual(len(calls), 1)
        self.assertIn("couldn't find remote ref", ctx.exception.output)

    def test_success_collects_output(self):
        with tempfile.TemporaryDirectory() as tmp, patch(
            "launcher_backend.refs.run_command", return_value=CommandResult(0, "Switched to branch 'nightly'")
        ):
            result = checkout_ref(Path(tmp), "nightly")

        self.assertTrue(result.ok)
        self.assertIn("Switched to branch", result.output)

    def test_missing_repo(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(ConfigurationError):
                checkout_ref(Path(tmp) / "missing", "nightly")


if __name__ == "__main__":
    unittest.main()
