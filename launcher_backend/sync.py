"""
One-shot character sync against the vendor application directory.

Failures here are reported, never raised: the caller decides whether to retry
or to carry on starting the server.
"""
import logging
import subprocess
from collections import deque
from dataclasses import asdict, dataclass

from launcher_backend.commands import apply_node_env
from launcher_backend.config import LauncherConfig
from launcher_backend.errors import ConfigurationError
from launcher_backend.log_sink import LogSink

logger = logging.getLogger(__name__)

SYNC_SCRIPT = "character-downloader.js"
FAILURE_TAIL_LINES = 5


@dataclass
class SyncResult:
    success: bool
    message: str

    def to_dict(self) -> dict:
        return asdict(self)


class AuxiliarySyncRunner:
    def __init__(self, config: LauncherConfig, sink: LogSink):
        self.config = config
        self.sink = sink

    def command(self):
        return [self.config.runtime, SYNC_SCRIPT, self.config.sync_url.strip(), "-u"]

    def run(self) -> SyncResult:
        if not self.config.sync_enabled:
            return SyncResult(True, "Character sync disabled.")
        if not self.config.sync_url.strip():
            return SyncResult(False, "Character sync URL is not configured.")
        try:
            app_dir = self.config.resolve_app_dir()
        except ConfigurationError as e:
            self.sink.emit_log(str(e))
            return SyncResult(False, str(e))

        self.sink.emit_log("Checking for character updates...")
        try:
            proc = subprocess.Popen(
                self.command(),
                cwd=str(app_dir),
                env=apply_node_env(),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            message = f"Unable to run character sync: {e}"
            self.sink.emit_log(message)
            return SyncResult(False, message)

        tail = deque(maxlen=FAILURE_TAIL_LINES)
        with proc:
            for line in proc.stdout:
                line = line.rstrip("\r\n")
                if line.strip():
                    self.sink.emit_log(line)
                    tail.append(line.strip())
            exit_code = proc.wait()

        logger.info("Character sync exited with %s", exit_code)
        if exit_code == 0:
            return SyncResult(True, "Character update completed.")
        message = "Character update failed. Check logs for details."
        if tail:
            message += "\n" + "\n".join(tail)
        return SyncResult(False, message)
