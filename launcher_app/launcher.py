"""
Desktop launcher for WeylandTavern using pywebview.

Runs the launcher control API (FastAPI) on a background thread, opens a window
on the launcher page, and tears the child server down when the window closes.
"""
import logging
import os
import sys
import tempfile
import threading
import time
from pathlib import Path

# Add project root to Python path so imports work
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import atexit
import socket

import requests
import uvicorn
import webview

from launcher_api.main import create_app
from launcher_backend.service import LauncherService


class ServerThread(threading.Thread):
    """Thread to run the launcher control API."""
    def __init__(self, app, port):
        super().__init__(daemon=True, name="launcher-api")
        self.app = app
        self.port = port
        self.server = None

    def run(self):
        config = uvicorn.Config(self.app, host="127.0.0.1", port=self.port, log_level="warning")
        self.server = uvicorn.Server(config)
        self.server.run()

    def shutdown(self):
        if self.server:
            self.server.should_exit = True


class LauncherWindowApi:
    """Methods exposed to the launcher page as `window.pywebview.api`."""

    def __init__(self):
        self.window = None

    def quit(self):
        if self.window is not None:
            self.window.destroy()


def get_lock_file_path() -> Path:
    """Lock file that keeps a second launcher from managing the same vendor tree."""
    return Path(tempfile.gettempdir()) / "weyland-launcher.lock"


def is_port_in_use(port):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        return s.connect_ex(("127.0.0.1", port)) == 0


def check_existing_instance() -> bool:
    """True if a live launcher process already holds the lock file."""
    lock_file = get_lock_file_path()
    if not lock_file.exists():
        return False
    try:
        pid = int(lock_file.read_text().strip())
    except (ValueError, OSError):
        lock_file.unlink(missing_ok=True)
        return False
    if pid == os.getpid():
        return False
    if os.name == "nt":
        import subprocess
        result = subprocess.run(
            ["tasklist", "/FI", f"PID eq {pid}"],
            capture_output=True,
            text=True,
        )
        if str(pid) in result.stdout:
            return True
    else:
        try:
            os.kill(pid, 0)
            return True
        except OSError:
            pass
    # Process doesn't exist, remove stale lock file
    lock_file.unlink(missing_ok=True)
    return False


def create_lock_file() -> Path:
    lock_file = get_lock_file_path()
    lock_file.write_text(str(os.getpid()))

    def cleanup_lock():
        try:
            if lock_file.exists() and lock_file.read_text().strip() == str(os.getpid()):
                lock_file.unlink()
        except OSError:
            pass

    atexit.register(cleanup_lock)
    return lock_file


def wait_for_server(port, max_retries=30):
    """Wait for the control API to answer its health check."""
    for _ in range(max_retries):
        try:
            response = requests.get(f"http://127.0.0.1:{port}/api/health", timeout=1)
            if response.status_code == 200:
                return True
        except requests.RequestException:
            pass
        time.sleep(0.5)
    return False


def main():
    """Launch the desktop application."""
    logging.basicConfig(
        level=logging.DEBUG if os.getenv("LAUNCHER_DEBUG") else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if check_existing_instance():
        print("Another WeylandTavern launcher is already running.")
        print("Please close that instance first.")
        sys.exit(1)

    service = LauncherService()
    port = service.config.launcher_port
    if is_port_in_use(port):
        print(f"ERROR: Launcher port {port} is already in use by another application.")
        print("Set LAUNCHER_PORT in .env to a free port and restart the launcher.")
        sys.exit(1)

    create_lock_file()

    server_thread = ServerThread(create_app(service), port)
    server_thread.start()

    if not wait_for_server(port):
        print("Failed to start launcher API")
        service.shutdown()
        sys.exit(1)

    launcher_url = f"http://127.0.0.1:{port}/"
    print(f"Launcher UI at {launcher_url}")

    js_api = LauncherWindowApi()
    window = webview.create_window(
        title="WeylandTavern",
        url=launcher_url,
        width=1280,
        height=860,
        min_size=(900, 600),
        js_api=js_api,
        text_select=True,
    )
    js_api.window = window

    def on_closed():
        """Cleanup on window close: the child server never outlives the launcher."""
        print("=== CLEANUP STARTING ===")
        service.shutdown()
        server_thread.shutdown()
        print("=== CLEANUP COMPLETE ===")

    try:
        webview.start(debug=bool(os.getenv("LAUNCHER_DEBUG")))
    except KeyboardInterrupt:
        print("Keyboard interrupt received")
    finally:
        on_closed()


if __name__ == "__main__":
    main()
