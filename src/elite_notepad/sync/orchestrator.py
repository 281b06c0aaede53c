"""Sync Orchestrator — runs push-then-pull cycles, one at a time per owner.

A cycle pushes the queue first and pulls second: pulling first would
overwrite local edits that the remote has not seen yet.  Push failures
never stop the pull.

Cycles run on a small thread pool.  While a cycle for an owner is in
flight, further triggers for that owner join it instead of starting a
second one.  A cycle that outlives the timeout of the call that started
it is cancelled: its token is set so it removes nothing from the queue
and writes nothing locally, and the owner is released so a fresh cycle
can start.  Callers that merely joined a cycle never cancel it.
"""

import enum
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Optional

from elite_notepad.config import Config
from elite_notepad.database.models import PullResult
from elite_notepad.database.store import LocalStore

from .connectivity import ConnectivityCheck
from .puller import RemotePuller
from .queue_processor import SyncQueueProcessor
from .remote import RemoteStore

logger = logging.getLogger(__name__)


class SyncState(enum.Enum):
    IDLE = "idle"
    PUSHING = "pushing"
    PULLING = "pulling"


class SyncOrchestrator:
    """Sequences queue drain and pull behind a per-owner single flight."""

    def __init__(self, store: LocalStore, remote: RemoteStore,
                 is_online: ConnectivityCheck,
                 timeout: Optional[float] = None, max_workers: int = 4):
        self.store = store
        self.is_online = is_online
        self.processor = SyncQueueProcessor(store, remote, is_online)
        self.puller = RemotePuller(store, remote)
        self.timeout = Config.SYNC_TIMEOUT_SECONDS if timeout is None else timeout
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="sync"
        )
        self._lock = threading.Lock()
        self._in_flight: dict[str, tuple[Future, threading.Event]] = {}
        self._states: dict[str, SyncState] = {}

    # ── Public API ──────────────────────────────────────────────

    def state(self, owner_id: str) -> SyncState:
        with self._lock:
            return self._states.get(owner_id, SyncState.IDLE)

    def is_syncing(self, owner_id: str) -> bool:
        with self._lock:
            return owner_id in self._in_flight

    def full_sync(self, owner_id: str,
                  timeout: Optional[float] = None) -> Optional[PullResult]:
        """Push the queue, then pull; return the pull result or None.

        Returns None straight away when offline.  Never raises.  Only the
        call that started the cycle cancels it on timeout; a call that
        joined a running cycle just stops waiting for it.
        """
        future, started = self._start(owner_id)
        if future is None:
            return None

        wait = self.timeout if timeout is None else timeout
        try:
            return future.result(timeout=wait or None)
        except FutureTimeout:
            if not started:
                logger.warning(
                    f"Gave up waiting for the running sync of {owner_id} "
                    f"after {wait}s"
                )
                return None
            logger.error(f"Sync for {owner_id} timed out after {wait}s; cancelling")
            self._abort(owner_id, future)
            return None
        except Exception:
            logger.exception(f"Sync for {owner_id} failed")
            return None

    def trigger(self, owner_id: str) -> Optional[Future]:
        """Start a cycle in the background, or join the one in flight.

        Returns None when offline.
        """
        return self._start(owner_id)[0]

    def _start(self, owner_id: str) -> tuple[Optional[Future], bool]:
        """Like trigger, also telling whether this call started the cycle."""
        try:
            online = self.is_online()
        except Exception:
            logger.exception("Connectivity check failed")
            online = False
        if not online:
            logger.debug(f"Offline; skipping sync for {owner_id}")
            return None, False

        with self._lock:
            current = self._in_flight.get(owner_id)
            if current is not None:
                logger.debug(f"Sync for {owner_id} already running; joining it")
                return current[0], False
            cancel = threading.Event()
            future = self._executor.submit(self._run_cycle, owner_id, cancel)
            self._in_flight[owner_id] = (future, cancel)
        return future, True

    def shutdown(self, wait: bool = False):
        """Cancel in-flight cycles and stop the worker pool."""
        with self._lock:
            for _, cancel in self._in_flight.values():
                cancel.set()
            self._in_flight.clear()
        self._executor.shutdown(wait=wait)

    # ── Cycle ───────────────────────────────────────────────────

    def _run_cycle(self, owner_id: str,
                   cancel: threading.Event) -> Optional[PullResult]:
        try:
            self._set_state(owner_id, cancel, SyncState.PUSHING)
            try:
                pushed = self.processor.process(owner_id, cancel)
                logger.debug(f"Pushed {pushed} operations for {owner_id}")
            except Exception:
                logger.exception(f"Push phase failed for {owner_id}")

            if cancel.is_set():
                return None

            self._set_state(owner_id, cancel, SyncState.PULLING)
            return self.puller.pull(owner_id, cancel)
        finally:
            # Must run before the future resolves
            self._release(owner_id, cancel)

    def _set_state(self, owner_id: str, cancel: threading.Event,
                   state: SyncState):
        with self._lock:
            current = self._in_flight.get(owner_id)
            # A cancelled cycle no longer owns the state
            if current is not None and current[1] is cancel:
                self._states[owner_id] = state

    def _release(self, owner_id: str, cancel: threading.Event):
        with self._lock:
            current = self._in_flight.get(owner_id)
            if current is not None and current[1] is cancel:
                del self._in_flight[owner_id]
                self._states[owner_id] = SyncState.IDLE

    def _abort(self, owner_id: str, future: Future):
        with self._lock:
            current = self._in_flight.get(owner_id)
            if current is not None and current[0] is future:
                current[1].set()
                del self._in_flight[owner_id]
                self._states[owner_id] = SyncState.IDLE


class SyncScheduler:
    """Runs a full sync for one owner on a fixed interval."""

    def __init__(self, orchestrator: SyncOrchestrator, owner_id: str,
                 interval: Optional[float] = None):
        self.orchestrator = orchestrator
        self.owner_id = owner_id
        self.interval = interval or Config.SYNC_INTERVAL_SECONDS
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name=f"sync-scheduler-{self.owner_id}",
            daemon=True,
        )
        self._thread.start()

    def join(self, timeout: Optional[float] = None):
        """Wait for the scheduler thread to finish."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def stop(self, timeout: Optional[float] = None):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _loop(self):
        while True:
            self.orchestrator.full_sync(self.owner_id)
            if self._stop.wait(self.interval):
                break
