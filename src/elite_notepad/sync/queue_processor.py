"""Sync Queue Processor — replays queued local mutations against the remote.

Entries are replayed in queue id order.  Each entry succeeds or fails on
its own: a failure leaves the entry queued verbatim and the pass moves on.
Only entries whose replay succeeded are removed, in one batch at the end.

Two rules keep replay order intact when something fails:

* once an entry for a ``(table, record_id)`` fails, later entries for the
  same record are held back until the next pass;
* a member insert is only pushed when its team is known and its team's
  own entries did not fail in this pass.
"""

import logging
import threading
from typing import Callable, Optional

from elite_notepad.database.models import (
    DeletePayload,
    InsertPayload,
    SyncQueueEntry,
    UpdatePayload,
)
from elite_notepad.database.store import LocalStore, StoreError
from elite_notepad.utils.constants import OPTIONAL_COLUMNS

from .connectivity import ConnectivityCheck
from .remote import RemoteError, RemoteStore, UnknownColumnError

logger = logging.getLogger(__name__)


def strip_unknown_columns(table: str, payload: dict,
                          error: UnknownColumnError) -> list[str]:
    """Remove the optional columns named by *error* from *payload*.

    The structured ``error.column`` is used first; the error text is then
    scanned for any other known-optional column names.  Only columns in
    ``OPTIONAL_COLUMNS[table]`` are ever stripped.  Returns the names that
    were removed.
    """
    optional = OPTIONAL_COLUMNS.get(table, ())
    named = []
    if error.column:
        named.append(error.column)
    message = str(error)
    named.extend(c for c in optional if f"'{c}'" in message and c not in named)

    stripped = [c for c in named if c in optional and c in payload]
    for column in stripped:
        del payload[column]
    return stripped


class SyncQueueProcessor:
    """Drains an owner's sync queue to the remote store."""

    def __init__(self, store: LocalStore, remote: RemoteStore,
                 is_online: ConnectivityCheck):
        self.store = store
        self.remote = remote
        self.is_online = is_online

    def process(self, owner_id: str,
                cancel: Optional[threading.Event] = None) -> int:
        """Push pending operations; return how many were synced and removed.

        Returns 0 without touching the queue when offline or when the
        connectivity check itself fails.  If *cancel* is set during the
        pass nothing is removed, so the whole pass is retried next time.
        """
        try:
            online = self.is_online()
        except Exception:
            logger.exception("Connectivity check failed; treating as offline")
            online = False
        if not online:
            return 0

        try:
            entries = self.store.list_queue(owner_id)
        except StoreError as e:
            logger.error(f"Cannot read sync queue for {owner_id}: {e}")
            return 0
        if not entries:
            return 0

        logger.info(f"Processing {len(entries)} queued operations for {owner_id}")
        completed: list[int] = []
        held: set[tuple[str, str]] = set()

        for entry in entries:
            if cancel is not None and cancel.is_set():
                logger.warning("Sync cancelled mid-pass; queue left untouched")
                return 0

            key = (entry.table, entry.record_id)
            if key in held:
                logger.debug(
                    f"Holding {entry.table}/{entry.operation} {entry.record_id} "
                    f"behind an earlier failure"
                )
                continue
            if not self._parent_ready(entry, held):
                held.add(key)
                continue

            try:
                self._replay(entry)
            except RemoteError as e:
                logger.error(
                    f"Failed to sync {entry.table}/{entry.operation} "
                    f"{entry.record_id}: {e}"
                )
                held.add(key)
                continue
            except Exception:
                logger.exception(
                    f"Unexpected error syncing {entry.table}/{entry.operation} "
                    f"{entry.record_id}"
                )
                held.add(key)
                continue
            completed.append(entry.id)

        if cancel is not None and cancel.is_set():
            logger.warning("Sync cancelled; queue left untouched")
            return 0
        if not completed:
            return 0

        try:
            removed = self.store.delete_many("sync_queue", completed)
        except StoreError as e:
            logger.error(f"Cannot clear synced queue entries: {e}")
            return 0
        logger.info(f"Synced {removed}/{len(entries)} operations")
        return removed

    # ── Replay ──────────────────────────────────────────────────

    def _replay(self, entry: SyncQueueEntry):
        payload = entry.payload
        table = entry.table

        if isinstance(payload, InsertPayload):
            self._send_with_column_retry(
                table, dict(payload.row),
                lambda row: self.remote.upsert(table, row),
            )
        elif isinstance(payload, UpdatePayload):
            def _update(changes):
                if changes:
                    self.remote.update(table, entry.record_id, changes)

            self._send_with_column_retry(table, dict(payload.changes), _update)
        elif isinstance(payload, DeletePayload):
            self.remote.delete(table, entry.record_id)
        else:
            raise RemoteError(f"Cannot replay payload {payload!r}")

    def _send_with_column_retry(self, table: str, payload: dict,
                                send: Callable[[dict], None]):
        """Send once; on an unknown optional column, strip it and retry once."""
        try:
            send(payload)
        except UnknownColumnError as e:
            stripped = strip_unknown_columns(table, payload, e)
            if not stripped:
                raise
            logger.warning(
                f"Remote {table} schema lacks {', '.join(stripped)}; "
                f"retrying without"
            )
            send(payload)

    def _parent_ready(self, entry: SyncQueueEntry,
                      held: set[tuple[str, str]]) -> bool:
        """Whether a member insert has a team it can be attached to."""
        if entry.table != "members" or not isinstance(entry.payload, InsertPayload):
            return True

        team_id = entry.payload.row.get("team_id")
        if not team_id:
            logger.warning(f"Member {entry.record_id} has no team; not syncing")
            return False
        if ("teams", team_id) in held:
            logger.debug(
                f"Member {entry.record_id} waits for team {team_id} to sync"
            )
            return False
        try:
            known = (
                self.store.get("teams", team_id) is not None
                or self.store.has_queued(entry.owner_id, "teams", team_id)
            )
        except StoreError as e:
            logger.error(f"Cannot check team {team_id} for member {entry.record_id}: {e}")
            return False
        if not known:
            logger.warning(
                f"Member {entry.record_id} references unknown team {team_id}; "
                f"not syncing"
            )
        return known
