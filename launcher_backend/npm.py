"""
Dependency install for the vendored Node application.
"""
import logging
import os
from pathlib import Path
from typing import List

from launcher_backend.commands import apply_node_env, command_exists, run_command
from launcher_backend.config import InstallPolicy, LauncherConfig
from launcher_backend.errors import InstallFailedError, LaunchError
from launcher_backend.log_sink import LogSink

logger = logging.getLogger(__name__)

LOCK_FILE = "package-lock.json"
INSTALL_MARKER = "node_modules"
NPM_CANDIDATES = ("npm.cmd", "npm") if os.name == "nt" else ("npm",)
INSTALL_ARGS = ["install", "--no-audit", "--no-fund", "--loglevel=error", "--no-progress", "--omit=dev"]


def should_install(policy: InstallPolicy, app_dir: Path) -> bool:
    """
    Decide whether dependencies need installing.

    `auto` installs when node_modules is missing, or when package-lock.json is
    newer than node_modules. Without a lock file there is nothing to compare.
    """
    if policy == InstallPolicy.NEVER:
        return False
    if policy == InstallPolicy.ALWAYS:
        return True
    marker = Path(app_dir) / INSTALL_MARKER
    if not marker.exists():
        return True
    lock_file = Path(app_dir) / LOCK_FILE
    if lock_file.exists():
        return lock_file.stat().st_mtime > marker.stat().st_mtime
    return False


def locate_npm(config: LauncherConfig, sink: LogSink) -> List[str]:
    """Return the argv prefix that runs npm."""
    if config.npm_bin:
        if command_exists(config.npm_bin):
            sink.emit_log(f"Using npm from {config.npm_bin} as configured via NPM_BIN.")
            return [config.npm_bin]
        raise LaunchError(
            f"Configured NPM_BIN at {config.npm_bin} is not executable. Install npm or update NPM_BIN."
        )

    for candidate in NPM_CANDIDATES:
        if command_exists(candidate):
            return [candidate]

    sink.emit_log("npm executable not found on PATH; attempting to use the npm-cli.js bundled with Node.")
    result = run_command(
        config.runtime, ["-p", "require.resolve('npm/bin/npm-cli.js')"], env=apply_node_env()
    )
    script = result.text.splitlines()[-1].strip() if result.text else ""
    if result.ok and script:
        sink.emit_log(f"Resolved npm-cli.js at {script}. Falling back to running npm via node.")
        return [config.runtime, script]

    message = "npm not found. Install Node.js (which includes npm) or set NPM_BIN to the npm executable path."
    if result.text:
        message += f" {result.text}"
    raise LaunchError(message)


def install_args(config: LauncherConfig, app_dir: Path, sink: LogSink) -> List[str]:
    lock_exists = (Path(app_dir) / LOCK_FILE).exists()
    if config.npm_mode == "ci":
        if lock_exists:
            return ["ci"]
        sink.emit_log("package-lock.json missing; falling back to npm install.")
    return list(INSTALL_ARGS)


def run_install(config: LauncherConfig, app_dir: Path, sink: LogSink) -> None:
    """Install Node modules in `app_dir`. Raises InstallFailedError on a non-zero exit."""
    npm = locate_npm(config, sink)
    args = npm[1:] + install_args(config, app_dir, sink)
    sink.emit_log("Installing Node modules...")
    result = run_command(npm[0], args, cwd=app_dir, env=apply_node_env())
    if result.text:
        sink.emit_log(result.text)
    if not result.ok:
        logger.error("npm install exited with %s", result.exit_code)
        raise InstallFailedError(result.text, result)
