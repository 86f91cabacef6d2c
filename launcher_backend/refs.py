"""
Ref classification and checkout for pinning the vendor repository.

Classification precedence: commit sha pattern, then `tags/` prefix, then
`origin/` prefix, then literal branch name. A branch whose name is 7-40 hex
characters is classified as a commit.
"""
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence

from launcher_backend.commands import CommandResult, run_command
from launcher_backend.errors import ConfigurationError, SubprocessFailure

SHA_PATTERN = re.compile(r"^[0-9a-fA-F]{7,40}$")

KIND_COMMIT = "commit"
KIND_TAG = "tag"
KIND_BRANCH = "branch"


@dataclass(frozen=True)
class RefSpec:
    kind: str
    name: str


def resolve_ref(ref: str) -> RefSpec:
    ref = (ref or "").strip()
    if not ref:
        raise ConfigurationError("Empty ref")
    if SHA_PATTERN.match(ref):
        return RefSpec(KIND_COMMIT, ref)
    if ref.startswith("tags/"):
        return RefSpec(KIND_TAG, ref[len("tags/"):])
    if ref.startswith("origin/"):
        return RefSpec(KIND_BRANCH, ref[len("origin/"):])
    return RefSpec(KIND_BRANCH, ref)


def checkout_plan(spec: RefSpec, exact: bool = False) -> List[List[str]]:
    """Git argument lists that move the working tree onto `spec`."""
    if spec.kind == KIND_COMMIT:
        return [
            ["fetch", "origin"],
            ["checkout", "--detach", spec.name],
        ]
    if spec.kind == KIND_TAG:
        return [
            ["fetch", "origin", "tag", spec.name, "--no-tags"],
            ["checkout", "--detach", f"tags/{spec.name}"],
        ]
    fetch = ["fetch", "origin", spec.name]
    if exact:
        return [fetch, ["checkout", "--detach", f"origin/{spec.name}"]]
    return [fetch, ["checkout", "-B", spec.name, "--track", f"origin/{spec.name}"]]


def run_git_steps(repo_root: Path, steps: Sequence[Sequence[str]]) -> CommandResult:
    """Run git steps in order, stopping at the first failure."""
    outputs = []
    result = CommandResult(0, "")
    for args in steps:
        result = run_command("git", list(args), cwd=repo_root)
        if result.text:
            outputs.append(result.text)
        if not result.ok:
            raise SubprocessFailure(
                f"git {' '.join(args)} failed: {result.text or 'no output'}", result
            )
    return CommandResult(result.exit_code, "\n".join(outputs))


def checkout_ref(repo_root: Path, ref: str, exact: bool = False) -> CommandResult:
    """Fetch and check out `ref` in `repo_root`."""
    repo_root = Path(repo_root)
    if not repo_root.is_dir():
        raise ConfigurationError(f"Vendor directory does not exist at {repo_root}")
    return run_git_steps(repo_root, checkout_plan(resolve_ref(ref), exact))
