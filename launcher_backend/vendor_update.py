"""
Vendor repository update workflow.

`update_vendor(attempt_overwrite=False)` fetches and merges the configured
remote ref. With `attempt_overwrite=True` local changes are stashed first and
the working tree is forced onto the remote ref before pulling; the stash must
exist before anything destructive runs. A later `finalize_stash(revert)` either
restores the stash or drops it.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from launcher_backend.commands import CommandResult, run_command
from launcher_backend.config import LauncherConfig
from launcher_backend.errors import ConflictError, LaunchError, SubprocessFailure
from launcher_backend.log_sink import LogSink

logger = logging.getLogger(__name__)

DEFAULT_REMOTE_REF = "origin/main"
NO_LOCAL_CHANGES = "no local changes to save"
UP_TO_DATE_MARKERS = ("already up to date", "already up-to-date")
CONFLICT_MARKERS = (
    "conflict (",
    "automatic merge failed",
    "would be overwritten by",
    "please commit your changes or stash them",
    "you have unmerged paths",
    "not possible to fast-forward",
    "divergent branches",
)


class UpdateStatus(str, Enum):
    SUCCESS = "success"
    UP_TO_DATE = "upToDate"
    NEED_RETRY = "needRetry"
    FAILED = "failed"


@dataclass
class UpdateOutcome:
    status: UpdateStatus
    message: str
    log_path: Optional[str] = None
    diff: Optional[str] = None
    stash_used: bool = False
    log_contents: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "message": self.message,
            "logPath": self.log_path,
            "diff": self.diff,
            "stashUsed": self.stash_used,
            "logContents": self.log_contents,
        }


@dataclass
class VendorRepository:
    """Working tree tracking `remote_ref`, plus the stash this session created."""

    root: Path
    remote_ref: str = DEFAULT_REMOTE_REF
    stash_pending: bool = False
    stash_commit: Optional[str] = None
    stash_label: Optional[str] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def remote(self) -> str:
        return self.remote_ref.split("/", 1)[0] if "/" in self.remote_ref else "origin"

    @property
    def branch(self) -> str:
        return self.remote_ref.split("/", 1)[1] if "/" in self.remote_ref else self.remote_ref

    @property
    def tracking_ref(self) -> str:
        return f"{self.remote}/{self.branch}"

    def mark_stash(self, commit: Optional[str], label: Optional[str] = None) -> None:
        with self._lock:
            if self.stash_pending:
                raise ConflictError("A stash from this session is already pending.")
            self.stash_pending = True
            self.stash_commit = commit
            self.stash_label = label

    def clear_stash(self) -> Tuple[bool, Optional[str]]:
        """Clear the pending flag; returns what was pending."""
        with self._lock:
            pending, commit = self.stash_pending, self.stash_commit
            self.stash_pending = False
            self.stash_commit = None
            self.stash_label = None
            return pending, commit


def format_update_log(pull_output: str, diff_output: str) -> str:
    contents = "git pull output:\n"
    contents += pull_output.strip() or "(no output)"
    contents += "\n\nGit diff --compact-summary:\n"
    if diff_output.strip():
        contents += diff_output.strip() + "\n"
    else:
        contents += "No differences.\n"
    return contents


def classify_pull(result: CommandResult, changed: bool = False) -> UpdateStatus:
    """Map a pull result to an update status. `changed` means a branch switch already applied changes."""
    lower = result.output.lower()
    if any(marker in lower for marker in CONFLICT_MARKERS):
        return UpdateStatus.NEED_RETRY
    if not result.ok:
        return UpdateStatus.FAILED
    if not changed and any(marker in lower for marker in UP_TO_DATE_MARKERS):
        return UpdateStatus.UP_TO_DATE
    return UpdateStatus.SUCCESS


class VendorUpdateController:
    """Drives fetch/checkout/stash against the vendor repository."""

    def __init__(self, config: LauncherConfig, sink: LogSink):
        self.config = config
        self.sink = sink
        self._repository: Optional[VendorRepository] = None
        self._repository_lock = threading.Lock()
        self._op_lock = threading.Lock()

    def _git(self, repo: VendorRepository, *args: str) -> CommandResult:
        return run_command("git", list(args), cwd=repo.root)

    def repository(self) -> VendorRepository:
        """Resolve the vendor repository once; raises ConfigurationError if it is missing."""
        if self._repository is not None:
            return self._repository
        with self._repository_lock:
            if self._repository is None:
                root = self.config.resolve_vendor_dir()
                repo = VendorRepository(root=root)
                repo.remote_ref = self.config.remote_ref or self._upstream_ref(repo)
                self._repository = repo
            return self._repository

    def _upstream_ref(self, repo: VendorRepository) -> str:
        try:
            result = self._git(repo, "rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}")
        except LaunchError:
            return DEFAULT_REMOTE_REF
        if result.ok and "/" in result.text:
            return result.text.splitlines()[0]
        return DEFAULT_REMOTE_REF

    def _head(self, repo: VendorRepository) -> Optional[str]:
        result = self._git(repo, "rev-parse", "HEAD")
        return result.text if result.ok else None

    def update_vendor(self, attempt_overwrite: bool = False) -> UpdateOutcome:
        self.config.resolve_app_dir()
        repo = self.repository()

        if not self.config.allow_git_pull:
            message = "Skipping vendor update: in-app git pull is disabled by policy."
            if self.config.update_script:
                message += f" Use {self.config.update_script} to update WeylandTavern manually."
            self.sink.emit_log(message)
            return UpdateOutcome(UpdateStatus.UP_TO_DATE, message)

        with self._op_lock:
            return self._update_locked(repo, attempt_overwrite)

    def _update_locked(self, repo: VendorRepository, attempt_overwrite: bool) -> UpdateOutcome:
        pre_head = self._head(repo)
        stash_used = False

        if attempt_overwrite:
            if repo.stash_pending:
                message = "A stash from an earlier update is still pending. Finalize it before retrying."
                self.sink.emit_log(message)
                return UpdateOutcome(UpdateStatus.FAILED, message, stash_used=False)

            self.sink.emit_log("Stashing local changes before retrying update...")
            label = f"weyland-launcher {datetime.now().isoformat(timespec='seconds')}"
            stash = self._git(repo, "stash", "push", "--include-untracked", "-m", label)
            if not stash.ok:
                return self._failure(repo, UpdateStatus.FAILED, "git stash failed.", stash.output, pre_head, False)
            if NO_LOCAL_CHANGES in stash.output.lower():
                self.sink.emit_log("No local changes to stash.")
            else:
                sha = self._git(repo, "rev-parse", "stash@{0}")
                repo.mark_stash(sha.text if sha.ok else None, label)
                stash_used = True
        else:
            self.sink.emit_log("Attempting to update WeylandTavern...")

        result, changed = self._pull(repo, force=attempt_overwrite)
        if result.ok and not changed and pre_head is not None:
            # A forced reset can move HEAD before the pull has anything left to do.
            post_head = self._head(repo)
            changed = post_head is not None and post_head != pre_head
        status = classify_pull(result, changed)

        if status == UpdateStatus.UP_TO_DATE:
            message = "WeylandTavern is up to date!"
        elif status == UpdateStatus.SUCCESS:
            message = "WeylandTavern updated successfully."
        elif status == UpdateStatus.NEED_RETRY:
            message = "There was an error updating WeylandTavern."
        elif attempt_overwrite:
            message = "Update failed even after stashing local changes."
        else:
            message = "WeylandTavern update failed. See the update log for details."

        if status in (UpdateStatus.UP_TO_DATE, UpdateStatus.SUCCESS):
            self.sink.emit_log(message)
            return UpdateOutcome(status, message, stash_used=stash_used)
        return self._failure(repo, status, message, result.output, pre_head, stash_used)

    def _pull(self, repo: VendorRepository, force: bool) -> Tuple[CommandResult, bool]:
        """Fetch, move onto the tracked branch, and pull. Returns (combined result, branch changed)."""
        outputs: List[str] = []

        def step(*args: str) -> CommandResult:
            result = self._git(repo, *args)
            if result.text:
                outputs.append(result.text)
            return result

        def combined(result: CommandResult) -> CommandResult:
            return CommandResult(result.exit_code, "\n".join(outputs))

        fetch = step("fetch", repo.remote, repo.branch)
        if not fetch.ok:
            return combined(fetch), False

        current = self._git(repo, "rev-parse", "--abbrev-ref", "HEAD")
        on_branch = current.ok and current.text == repo.branch
        changed = False

        if force:
            checkout = step("checkout", "-B", repo.branch, "--track", repo.tracking_ref)
            if not checkout.ok:
                return combined(checkout), False
            reset = step("reset", "--hard", repo.tracking_ref)
            if not reset.ok:
                return combined(reset), False
            changed = not on_branch
        elif not on_branch:
            exists = self._git(repo, "rev-parse", "--verify", "--quiet", f"refs/heads/{repo.branch}")
            if exists.ok:
                checkout = step("checkout", repo.branch)
            else:
                checkout = step("checkout", "-b", repo.branch, "--track", repo.tracking_ref)
            if not checkout.ok:
                return combined(checkout), False
            changed = True

        pull = step("pull", repo.remote, repo.branch)
        return combined(pull), changed

    def _diff_summary(self, repo: VendorRepository, pre_head: Optional[str]) -> str:
        args = ["diff", "--compact-summary"]
        if pre_head:
            args.append(pre_head)
        try:
            return self._git(repo, *args).output
        except LaunchError as e:
            logger.warning("Could not compute diff summary: %s", e)
            return ""

    def _failure(
        self,
        repo: VendorRepository,
        status: UpdateStatus,
        message: str,
        output: str,
        pre_head: Optional[str],
        stash_used: bool,
    ) -> UpdateOutcome:
        self.sink.emit_log("There was an error updating WeylandTavern...")
        log_path = self.config.update_log_path
        self.sink.emit_log(f"Generating log file {log_path}...")

        diff_text = self._diff_summary(repo, pre_head)
        contents = format_update_log(output, diff_text)
        written: Optional[str] = str(log_path)
        try:
            log_path.write_text(contents, encoding="utf-8")
        except OSError as e:
            logger.error("Could not write update log %s: %s", log_path, e)
            self.sink.emit_log(f"Could not write update log: {e}")
            written = None

        combined = output.strip()
        if diff_text.strip():
            combined = f"{combined}\n\n{diff_text.strip()}" if combined else diff_text.strip()

        return UpdateOutcome(
            status,
            message,
            log_path=written,
            diff=combined or None,
            stash_used=stash_used,
            log_contents=contents,
        )

    def finalize_stash(self, revert: bool) -> None:
        """
        Restore (`revert=True`) or drop the stash created by this session.

        The pending flag is always cleared, even when git fails. With no pending
        stash this is a no-op.

        Raises:
            ConflictError: restoring the stash conflicted with the updated tree.
            SubprocessFailure: dropping the stash failed.
        """
        repo = self.repository()
        with self._op_lock:
            try:
                if not repo.stash_pending:
                    return
                ref = self._find_stash_ref(repo)
                if ref is None:
                    self.sink.emit_log("No stashed changes to finalize.")
                    return
                if revert:
                    self.sink.emit_log("Reverting differing files post update...")
                    result = self._git(repo, "stash", "pop", ref)
                    if not result.ok:
                        raise ConflictError(result.text or "Failed to finalize stash", result.output)
                else:
                    self.sink.emit_log("Discarding stashed changes...")
                    result = self._git(repo, "stash", "drop", ref)
                    if not result.ok:
                        raise SubprocessFailure(result.text or "Failed to finalize stash", result)
            finally:
                repo.clear_stash()

    def _find_stash_ref(self, repo: VendorRepository) -> Optional[str]:
        """Locate this session's stash by commit, or by its message when the commit is unknown."""
        if repo.stash_commit is None and not repo.stash_label:
            return None
        listing = self._git(repo, "stash", "list", "--format=%gd %H %gs")
        if not listing.ok:
            return None
        for line in listing.text.splitlines():
            parts = line.strip().split(" ", 2)
            if len(parts) < 2:
                continue
            ref, sha = parts[0], parts[1]
            subject = parts[2] if len(parts) > 2 else ""
            if repo.stash_commit is not None:
                if sha == repo.stash_commit:
                    return ref
            elif subject.endswith(repo.stash_label):
                return ref
        return None
