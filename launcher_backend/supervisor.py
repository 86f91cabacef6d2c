"""
Supervision of the vendored application's server process.

Lifecycle: Idle -> Preparing -> Installing (optional) -> Starting -> Probing -> Ready,
with Failed reachable from any of the middle states. `ServerState.lock` is shared
by the start and shutdown paths: a shutdown can never leave a half-started child
behind, and two starts can never produce two children.
"""
import logging
import os
import signal
import subprocess
import threading
import time
from enum import Enum
from typing import Callable, List, Optional

import requests

from launcher_backend.commands import apply_node_env, command_exists
from launcher_backend.config import LauncherConfig
from launcher_backend.errors import (
    ConfigurationError,
    HealthTimeoutError,
    LaunchError,
    StartInProgressError,
)
from launcher_backend.log_sink import LogSink
from launcher_backend.npm import run_install, should_install
from launcher_backend.ports import determine_port

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 2.0
TERMINATE_GRACE = 10.0


class SupervisorPhase(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    INSTALLING = "installing"
    STARTING = "starting"
    PROBING = "probing"
    READY = "ready"
    FAILED = "failed"


class ServerState:
    """The supervised child. Read and mutate only while holding `lock`."""

    def __init__(self):
        self.lock = threading.Lock()
        self.process: Optional[subprocess.Popen] = None
        self.process_group: Optional[int] = None
        self.host: Optional[str] = None
        self.port: Optional[int] = None
        self.ready = False
        self.starting = False
        self.closing = False
        self.closed = False
        self.phase = SupervisorPhase.IDLE

    @property
    def url(self) -> Optional[str]:
        if self.host is None or self.port is None:
            return None
        return f"http://{self.host}:{self.port}/"

    def is_alive(self) -> bool:
        """Whether the child is running. A dead child is never ready."""
        alive = self.process is not None and self.process.poll() is None
        if not alive:
            self.ready = False
            if self.phase == SupervisorPhase.READY:
                self.phase = SupervisorPhase.FAILED
        return alive

    def snapshot(self) -> dict:
        with self.lock:
            running = self.is_alive()
            return {
                "phase": self.phase.value,
                "ready": self.ready,
                "running": running,
                "pid": self.process.pid if self.process is not None else None,
                "url": self.url,
            }


def build_server_args(extra: List[str], host: str, port: int) -> List[str]:
    """Extra server args, with the listen/host/port/no-open flags added unless already given."""
    args = list(extra)
    if "--listen" not in args:
        args += ["--listen", "true"]
    if "--listen-host" not in args:
        args += ["--listen-host", host]
    if "--listen-port" not in args:
        args += ["--listen-port", str(port)]
    if "--no-open" not in args:
        args.append("--no-open")
    return args


def wait_for_health(
    url: str,
    max_attempts: int = 30,
    is_alive: Optional[Callable[[], bool]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """
    Poll `url` until it answers 2xx.

    Connection errors just mean the server is not listening yet. Gives up after
    `max_attempts`, or as soon as `is_alive()` reports the process has exited.
    """
    for i in range(max_attempts):
        if is_alive is not None and not is_alive():
            return False
        try:
            response = requests.get(url, timeout=PROBE_TIMEOUT)
            if 200 <= response.status_code < 300:
                return True
        except requests.RequestException:
            pass
        if i < max_attempts - 1:
            sleep(0.5 + i * 0.1)
    return False


def terminate_process_tree(
    proc: subprocess.Popen, process_group: Optional[int], grace: float = TERMINATE_GRACE
) -> None:
    """Stop `proc` and everything it spawned."""
    if os.name == "nt":
        result = subprocess.run(
            ["taskkill", "/T", "/F", "/PID", str(proc.pid)],
            capture_output=True,
            text=True,
        )
        if result.returncode != 0 and proc.poll() is None:
            proc.kill()
        proc.wait()
        return

    if process_group is None:
        proc.kill()
        proc.wait()
        return

    try:
        os.killpg(process_group, signal.SIGINT)
    except ProcessLookupError:
        proc.wait()
        return
    try:
        proc.wait(timeout=grace)
    except subprocess.TimeoutExpired:
        logger.warning("Server did not exit after SIGINT; killing process group %s", process_group)
        try:
            os.killpg(process_group, signal.SIGKILL)
        except ProcessLookupError:
            pass
        proc.wait()


class ServerSupervisor:
    def __init__(
        self,
        config: LauncherConfig,
        sink: LogSink,
        state: Optional[ServerState] = None,
        probe: Callable[..., bool] = wait_for_health,
    ):
        self.config = config
        self.sink = sink
        self.state = state or ServerState()
        self.probe = probe
        self.terminate_grace = TERMINATE_GRACE
        # Set once the user picks "continue without reinstalling".
        self.skip_install = False

    def _set_phase(self, phase: SupervisorPhase) -> None:
        with self.state.lock:
            self.state.phase = phase
        logger.debug("Server supervisor phase: %s", phase.value)

    def start(self, force: bool = False) -> str:
        """
        Bring the server up and return its URL.

        Raises:
            StartInProgressError: another start is running.
            ConfigurationError, LaunchError, InstallFailedError, HealthTimeoutError
        """
        state = self.state
        with state.lock:
            if state.closed:
                raise LaunchError("The launcher is shutting down.")
            if state.starting:
                raise StartInProgressError("WeylandTavern is already starting.")
            if state.is_alive():
                running_url = state.url
            else:
                running_url = None
                state.process = None
                state.process_group = None
                state.ready = False
                state.starting = True
                state.closing = False

        if running_url is not None:
            self.sink.emit_log("WeylandTavern is already running.")
            return running_url

        try:
            return self._start(force)
        except Exception:
            self._set_phase(SupervisorPhase.FAILED)
            raise
        finally:
            with state.lock:
                state.starting = False

    def restart(self, force: bool = False) -> str:
        self.shutdown()
        return self.start(force=force)

    def _prepare(self):
        self._set_phase(SupervisorPhase.PREPARING)
        app_dir = self.config.resolve_app_dir()
        entry = app_dir / self.config.entry_point
        if not entry.is_file():
            raise ConfigurationError(f"Server entry point not found at {entry}")
        runtime = self.config.runtime
        if not command_exists(runtime):
            raise LaunchError(f"{runtime} not found. Install {runtime} and ensure it is on your PATH.")
        return app_dir

    def _install_if_needed(self, app_dir, force: bool) -> None:
        if force:
            self.skip_install = True
        if not should_install(self.config.install_policy, app_dir):
            return
        if self.skip_install:
            self.sink.emit_log("Skipping npm install after previous failure at user request.")
            return
        self._set_phase(SupervisorPhase.INSTALLING)
        run_install(self.config, app_dir, self.sink)

    def _spawn(self, app_dir, host: str, port: int) -> subprocess.Popen:
        env = apply_node_env()
        env["PORT"] = str(port)
        env["ST_PORT"] = str(port)
        argv = [self.config.runtime, self.config.entry_point]
        argv += build_server_args(self.config.server_args, host, port)

        kwargs = {}
        if os.name == "nt":
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            kwargs["start_new_session"] = True

        logger.info("Spawning %s in %s", argv, app_dir)
        try:
            return subprocess.Popen(
                argv,
                cwd=str(app_dir),
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                **kwargs,
            )
        except OSError as e:
            raise LaunchError(f"Failed to start WeylandTavern: {e}") from e

    def _forward(self, stream) -> None:
        with stream:
            for line in stream:
                self.sink.append(line)

    def _start_readers(self, proc: subprocess.Popen) -> None:
        for name, stream in (("stdout", proc.stdout), ("stderr", proc.stderr)):
            if stream is None:
                continue
            reader = threading.Thread(
                target=self._forward,
                args=(stream,),
                name=f"server-{name}-{proc.pid}",
                daemon=True,
            )
            reader.start()

    def _start(self, force: bool) -> str:
        app_dir = self._prepare()
        self._install_if_needed(app_dir, force)

        self._set_phase(SupervisorPhase.STARTING)
        host = self.config.host
        port = determine_port(self.config, app_dir)
        self.sink.emit_log("Starting WeylandTavern...")

        state = self.state
        with state.lock:
            if state.closing or state.closed:
                raise LaunchError("Server start was cancelled by shutdown.")
            proc = self._spawn(app_dir, host, port)
            state.process = proc
            state.process_group = proc.pid if os.name != "nt" else None
            state.host = host
            state.port = port
            state.ready = False
            state.phase = SupervisorPhase.PROBING
        self._start_readers(proc)

        url = f"http://{host}:{port}/"
        healthy = self.probe(
            url, self.config.health_max_attempts, is_alive=lambda: proc.poll() is None
        )

        with state.lock:
            current = state.process is proc and proc.poll() is None
            if healthy and current:
                state.ready = True
                state.phase = SupervisorPhase.READY

        if healthy and current:
            self.sink.emit_log(f"WeylandTavern is now active on {host}:{port} (By default)")
            self.sink.server_ready(url)
            return url

        with state.lock:
            replaced = state.process is not proc
        if replaced:
            raise LaunchError("Server start was cancelled by shutdown.")

        exit_code = proc.poll()
        if exit_code is not None:
            message = f"WeylandTavern exited with code {exit_code} before becoming healthy. Please check the logs."
        else:
            message = f"Failed to verify server health at {url}. Please check the logs."
        self.sink.emit_log(message)
        self.shutdown()
        raise HealthTimeoutError(url, message)

    def shutdown(self, final: bool = False) -> None:
        """Kill the child (and its process group) and clear the handles."""
        with self.state.lock:
            proc = self.state.process
            group = self.state.process_group
            self.state.process = None
            self.state.process_group = None
            self.state.ready = False
            self.state.closing = True
            if final:
                self.state.closed = True
            if self.state.phase != SupervisorPhase.FAILED:
                self.state.phase = SupervisorPhase.IDLE

        if proc is None:
            return
        logger.info("Stopping server process %s", proc.pid)
        terminate_process_tree(proc, group, self.terminate_grace)
