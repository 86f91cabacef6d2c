"""
Command runner used by every other launcher component.

Runs an external program to completion and returns its exit code together with
the merged stdout/stderr text. A non-zero exit is ordinary data; only failing to
launch the program raises.
"""
import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence, Union

from launcher_backend.errors import LaunchError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class CommandResult:
    exit_code: int
    output: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def text(self) -> str:
        return self.output.strip()


def _check_cwd(cwd: Optional[PathLike]) -> None:
    if cwd is not None and not Path(cwd).is_dir():
        raise LaunchError(f"Working directory does not exist: {cwd}")


def run_command(
    program: str,
    args: Sequence[str] = (),
    cwd: Optional[PathLike] = None,
    env: Optional[Mapping[str, str]] = None,
    timeout: Optional[float] = None,
) -> CommandResult:
    """
    Run `program args...` in `cwd` and wait for it.

    Returns:
        CommandResult with the exit code and combined stdout+stderr.

    Raises:
        LaunchError: the program is missing, not executable, or cwd is invalid.
    """
    _check_cwd(cwd)
    argv = [program, *args]
    logger.debug("Running %s (cwd=%s)", argv, cwd)
    try:
        completed = subprocess.run(
            argv,
            cwd=str(cwd) if cwd is not None else None,
            env=dict(env) if env is not None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise LaunchError(f"{program} not found. Install {program} and ensure it is on your PATH. ({e})") from e
    except PermissionError as e:
        raise LaunchError(f"{program}: permission denied ({e})") from e
    except OSError as e:
        raise LaunchError(f"Unable to run {program}: {e}") from e

    logger.debug("%s exited with %s", program, completed.returncode)
    return CommandResult(completed.returncode, completed.stdout or "")


def command_exists(program: str) -> bool:
    """Return True if `program --version` runs and exits 0."""
    try:
        return run_command(program, ["--version"], timeout=30).ok
    except (LaunchError, subprocess.TimeoutExpired):
        return False


def apply_node_env(env: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Copy of `env` (default: os.environ) with the child's browser auto-open disabled."""
    merged = dict(os.environ if env is None else env)
    merged["NODE_ENV"] = "production"
    merged["NO_BROWSER"] = "1"
    merged["BROWSER"] = "none"
    return merged
