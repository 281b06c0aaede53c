"""Remote Puller — refreshes the local store from the remote snapshot."""

import logging
import threading
from typing import Optional

from elite_notepad.database.mapper import member_to_local, team_to_local
from elite_notepad.database.models import PullResult
from elite_notepad.database.store import LocalStore, StoreError
from elite_notepad.utils.constants import META_LAST_SYNC
from elite_notepad.utils.dates import utc_now_iso

from .remote import RemoteError, RemoteStore

logger = logging.getLogger(__name__)


class RemotePuller:
    """Fetches an owner's full remote snapshot and overwrites local copies.

    The pull is all-or-nothing: both collections are fetched before
    anything is written, and the write is a single transaction.
    """

    def __init__(self, store: LocalStore, remote: RemoteStore):
        self.store = store
        self.remote = remote

    def pull(self, owner_id: str,
             cancel: Optional[threading.Event] = None) -> Optional[PullResult]:
        try:
            remote_teams = self.remote.fetch_teams(owner_id)
            remote_members = self.remote.fetch_members(owner_id)
        except RemoteError as e:
            logger.error(f"Pull failed for {owner_id}: {e}")
            return None
        except Exception:
            logger.exception(f"Unexpected error pulling data for {owner_id}")
            return None

        if cancel is not None and cancel.is_set():
            logger.warning("Pull cancelled; local data left as is")
            return None

        # Rows without an id cannot be keyed locally
        teams = [t for t in (team_to_local(r, owner_id) for r in remote_teams)
                 if t["id"]]
        members = [m for m in (member_to_local(r, owner_id) for r in remote_members)
                   if m["id"]]

        try:
            self.store.save_snapshot(teams, members)
            self.store.set_meta(META_LAST_SYNC, utc_now_iso())
        except StoreError as e:
            logger.error(f"Cannot save pulled data for {owner_id}: {e}")
            return None

        logger.info(
            f"Pulled {len(teams)} teams and {len(members)} members for {owner_id}"
        )
        return PullResult(teams=teams, members=members)
