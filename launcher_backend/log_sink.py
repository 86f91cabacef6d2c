"""
Log file writer and UI event fan-out.

`LogSink.append` is called from the child's stdout/stderr reader threads and
from command handlers at the same time; every write goes through one lock so
lines are never interleaved in the file or in the event stream.
"""
import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Deque, List, Optional

logger = logging.getLogger(__name__)

EVENT_LOG = "log"
EVENT_SERVER_READY = "server-ready"

MAX_BUFFERED_EVENTS = 2000


@dataclass
class LauncherEvent:
    seq: int
    kind: str
    payload: str

    def to_dict(self) -> dict:
        return asdict(self)


Listener = Callable[[LauncherEvent], None]


class EventHub:
    """Ordered event buffer the UI polls, plus optional push listeners."""

    def __init__(self, max_events: int = MAX_BUFFERED_EVENTS):
        self._lock = threading.Lock()
        self._events: Deque[LauncherEvent] = deque(maxlen=max_events)
        self._next_seq = 1
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish(self, kind: str, payload: str) -> LauncherEvent:
        with self._lock:
            event = LauncherEvent(self._next_seq, kind, payload)
            self._next_seq += 1
            self._events.append(event)
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener failed for %s", kind)
        return event

    def events_since(self, seq: int = 0) -> List[LauncherEvent]:
        """Buffered events with a sequence number greater than `seq`, oldest first."""
        with self._lock:
            return [e for e in self._events if e.seq > seq]

    @property
    def last_seq(self) -> int:
        with self._lock:
            return self._next_seq - 1


class LogSink:
    """Append-only server log (one file per day) that also feeds the EventHub."""

    def __init__(self, logs_dir: Path, hub: Optional[EventHub] = None):
        self.logs_dir = Path(logs_dir)
        self.hub = hub or EventHub()
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self.logs_dir / f"server-{datetime.now().strftime('%Y%m%d')}.log"

    def append(self, line: str) -> None:
        """Write `line` to today's log file and emit it as a log event."""
        line = line.rstrip("\r\n")
        with self._lock:
            try:
                self.logs_dir.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
            except OSError as e:
                logger.warning("Could not write server log %s: %s", self.path, e)
            self.hub.publish(EVENT_LOG, line)

    def emit_log(self, text: str) -> None:
        """Send status text to the UI only (one event per line, file untouched)."""
        with self._lock:
            for line in text.splitlines() or [""]:
                self.hub.publish(EVENT_LOG, line)

    def emit(self, kind: str, payload: str) -> LauncherEvent:
        with self._lock:
            return self.hub.publish(kind, payload)

    def server_ready(self, url: str) -> LauncherEvent:
        return self.emit(EVENT_SERVER_READY, url)
