"""
Server port resolution.

Precedence: PORT / ST_PORT from the application's own .env, then the
launcher's SERVER_PORT, then the first free fallback port.
"""
import socket
from pathlib import Path
from typing import Optional

from dotenv import dotenv_values

from launcher_backend.config import LauncherConfig, parse_port
from launcher_backend.errors import ConfigurationError

FALLBACK_PORTS = (8000, 8080, 3000, 5173)


def app_env_port(app_dir: Path) -> Optional[int]:
    env_path = Path(app_dir) / ".env"
    if not env_path.is_file():
        return None
    try:
        values = dotenv_values(env_path)
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Failed to read {env_path}: {e}") from e
    return parse_port(values.get("PORT")) or parse_port(values.get("ST_PORT"))


def is_port_available(host: str, port: int) -> bool:
    if port <= 0:
        return False
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind((host, port))
        except OSError:
            return False
    return True


def determine_port(config: LauncherConfig, app_dir: Path) -> int:
    port = app_env_port(app_dir)
    if port:
        return port
    if config.port:
        return config.port
    for candidate in FALLBACK_PORTS:
        if is_port_available(config.host, candidate):
            return candidate
    raise ConfigurationError("Unable to determine an available server port.")
