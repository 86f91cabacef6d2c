"""
Launcher configuration.

Values come from environment variables, optionally seeded from a `.env` file
next to the launcher (`../.env` first, then `.env`). Variables already present
in the process environment win over the file.
"""
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from launcher_backend.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_APP_DIR = "./vendor/WeylandTavern/SillyTavern"
DEFAULT_SYNC_URL = "https://mega.nz/folder/J5ARwZRI#2hnLHnLjXXNk3GGve7fjlw"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_LAUNCHER_PORT = 17860
DEFAULT_HEALTH_ATTEMPTS = 30

TRUTHY = {"1", "true", "yes", "on"}


class InstallPolicy(str, Enum):
    AUTO = "auto"
    ALWAYS = "always"
    NEVER = "never"


def parse_bool(raw: Optional[str], default: bool = False) -> bool:
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in TRUTHY


def parse_port(raw: Optional[str]) -> Optional[int]:
    """Parse a TCP port; blank, invalid, zero or out-of-range values give None."""
    if raw is None:
        return None
    raw = raw.strip()
    if not raw:
        return None
    try:
        port = int(raw)
    except ValueError:
        return None
    if port <= 0 or port > 65535:
        return None
    return port


def parse_install_policy(raw: Optional[str]) -> InstallPolicy:
    value = (raw or InstallPolicy.AUTO.value).strip().lower()
    try:
        return InstallPolicy(value)
    except ValueError:
        logger.warning("Unknown RUN_NPM_INSTALL=%r, using 'auto'", raw)
        return InstallPolicy.AUTO


def load_env() -> None:
    """Seed os.environ from ../.env, falling back to .env."""
    for candidate in (Path("..") / ".env", Path(".env")):
        if candidate.is_file():
            load_dotenv(candidate, override=False)
            return


@dataclass
class LauncherConfig:
    app_dir: Path
    vendor_dir: Optional[Path] = None
    remote_ref: Optional[str] = None
    allow_git_pull: bool = False
    update_script: Optional[str] = None
    sync_enabled: bool = True
    sync_url: str = DEFAULT_SYNC_URL
    host: str = DEFAULT_HOST
    port: Optional[int] = None
    server_args: List[str] = field(default_factory=list)
    runtime: str = "node"
    entry_point: str = "server.js"
    install_policy: InstallPolicy = InstallPolicy.AUTO
    npm_mode: str = "install"
    npm_bin: Optional[str] = None
    logs_dir: Path = Path("logs")
    launcher_port: int = DEFAULT_LAUNCHER_PORT
    health_max_attempts: int = DEFAULT_HEALTH_ATTEMPTS

    def resolve_app_dir(self) -> Path:
        """Application directory, which must exist."""
        if not self.app_dir.exists():
            raise ConfigurationError(
                f"SILLYTAVERN_DIR does not exist at {self.app_dir}. Set SILLYTAVERN_DIR in .env"
            )
        return self.app_dir

    def resolve_vendor_dir(self) -> Path:
        """Root of the vendor repository (defaults to the app directory's parent)."""
        if self.vendor_dir is not None:
            if not self.vendor_dir.exists():
                raise ConfigurationError(
                    f"VENDOR_DIR does not exist at {self.vendor_dir}. Set VENDOR_DIR in .env"
                )
            return self.vendor_dir
        app_dir = self.resolve_app_dir()
        parent = app_dir.resolve().parent
        if parent == app_dir.resolve():
            raise ConfigurationError("Unable to determine vendor directory")
        return parent

    @property
    def update_log_path(self) -> Path:
        return self.app_dir / "WTUpdate.log"


def load_config() -> LauncherConfig:
    """Build a LauncherConfig from the environment (after loading .env)."""
    load_env()
    env = os.environ

    vendor_dir = env.get("VENDOR_DIR", "").strip()
    update_script = env.get("UPDATE_SCRIPT", "").strip()
    npm_bin = env.get("NPM_BIN", "").strip()
    remote_ref = env.get("VENDOR_REMOTE_REF", "").strip()

    try:
        attempts = max(1, int(env.get("HEALTH_MAX_ATTEMPTS") or DEFAULT_HEALTH_ATTEMPTS))
    except ValueError:
        attempts = DEFAULT_HEALTH_ATTEMPTS

    return LauncherConfig(
        app_dir=Path(env.get("SILLYTAVERN_DIR") or DEFAULT_APP_DIR),
        vendor_dir=Path(vendor_dir) if vendor_dir else None,
        remote_ref=remote_ref or None,
        allow_git_pull=parse_bool(env.get("ALLOW_GIT_PULL_IN_APP")),
        update_script=update_script or None,
        sync_enabled=parse_bool(env.get("CHARACTER_SYNC_ENABLED"), default=True),
        sync_url=env.get("CHARACTER_SYNC_URL", DEFAULT_SYNC_URL),
        host=(env.get("SERVER_HOST") or DEFAULT_HOST).strip(),
        port=parse_port(env.get("SERVER_PORT")),
        server_args=env.get("SERVER_ARGS", "").split(),
        runtime=(env.get("SERVER_RUNTIME") or "node").strip(),
        entry_point=(env.get("SERVER_ENTRY") or "server.js").strip(),
        install_policy=parse_install_policy(env.get("RUN_NPM_INSTALL")),
        npm_mode=(env.get("NPM_MODE") or "install").strip().lower(),
        npm_bin=npm_bin or None,
        logs_dir=Path(env.get("LAUNCHER_LOGS_DIR") or "logs"),
        launcher_port=parse_port(env.get("LAUNCHER_PORT")) or DEFAULT_LAUNCHER_PORT,
        health_max_attempts=attempts,
    )
