"""
Launcher service: the operations the UI can invoke.

One instance per launcher process. It owns the log sink, the vendor update
controller, the sync runner and the server supervisor.
"""
import logging
from typing import List, Optional

from launcher_backend.config import LauncherConfig, load_config
from launcher_backend.log_sink import EventHub, LauncherEvent, LogSink
from launcher_backend.supervisor import ServerState, ServerSupervisor
from launcher_backend.sync import AuxiliarySyncRunner, SyncResult
from launcher_backend.vendor_update import UpdateOutcome, VendorUpdateController

logger = logging.getLogger(__name__)


class LauncherService:
    def __init__(self, config: Optional[LauncherConfig] = None, state: Optional[ServerState] = None):
        self.config = config or load_config()
        self.events = EventHub()
        self.sink = LogSink(self.config.logs_dir, self.events)
        self.updater = VendorUpdateController(self.config, self.sink)
        self.sync_runner = AuxiliarySyncRunner(self.config, self.sink)
        self.supervisor = ServerSupervisor(self.config, self.sink, state=state)

    def update_vendor(self, attempt_overwrite: bool = False) -> UpdateOutcome:
        return self.updater.update_vendor(attempt_overwrite)

    def finalize_stash(self, revert: bool) -> None:
        self.updater.finalize_stash(revert)

    def run_character_sync(self) -> SyncResult:
        return self.sync_runner.run()

    def start_server(self, force: bool = False) -> str:
        return self.supervisor.start(force=force)

    def restart_server(self, force: bool = False) -> str:
        return self.supervisor.restart(force=force)

    def server_status(self) -> dict:
        return self.supervisor.state.snapshot()

    def events_since(self, seq: int = 0) -> List[LauncherEvent]:
        return self.events.events_since(seq)

    def shutdown(self) -> None:
        """Final teardown: kill the child and refuse further starts."""
        logger.info("Launcher shutting down")
        self.supervisor.shutdown(final=True)
