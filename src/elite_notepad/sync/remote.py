"""Remote store capability and its Supabase (PostgREST) implementation.

The sync engine only needs row-level upsert/update/delete by id on the
``teams`` and ``members`` collections plus an owner-scoped fetch.  Remote
failures are translated into three classes so the queue processor can
decide what is recoverable:

* ``UnknownColumnError``: the remote schema lacks a column we sent
* ``RemoteNotFoundError``: no row matched
* ``RemoteError``: transport, auth and everything else
"""

import logging
import re
from typing import Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client, ClientOptions, create_client

from elite_notepad.config import Config

logger = logging.getLogger(__name__)

# PostgREST error codes
UNKNOWN_COLUMN_CODE = "PGRST204"
NOT_FOUND_CODE = "PGRST116"

# "Could not find the 'two_fa' column of 'members' in the schema cache"
_COLUMN_PATTERN = re.compile(r"'([A-Za-z0-9_]+)' column")


class RemoteError(Exception):
    """The remote store rejected a request or could not be reached."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class RemoteNotFoundError(RemoteError):
    """No remote row matched the request."""


class UnknownColumnError(RemoteError):
    """The remote schema does not know a column in the payload."""

    def __init__(self, message: str, column: Optional[str] = None,
                 code: Optional[str] = UNKNOWN_COLUMN_CODE):
        super().__init__(message, code)
        self.column = column


def classify_error(exc: Exception) -> RemoteError:
    """Translate a client exception into the remote error taxonomy."""
    if isinstance(exc, APIError):
        code = exc.code
        message = exc.message or str(exc)
        if code == UNKNOWN_COLUMN_CODE:
            match = _COLUMN_PATTERN.search(message)
            return UnknownColumnError(
                message, column=match.group(1) if match else None
            )
        if code == NOT_FOUND_CODE:
            return RemoteNotFoundError(message, code)
        return RemoteError(message, code)
    if isinstance(exc, httpx.HTTPError):
        return RemoteError(f"Transport error: {exc}")
    return RemoteError(str(exc))


class RemoteStore:
    """Row-oriented remote collections filterable by owner."""

    def upsert(self, table: str, row: dict):
        raise NotImplementedError

    def update(self, table: str, record_id: str, changes: dict):
        raise NotImplementedError

    def delete(self, table: str, record_id: str):
        raise NotImplementedError

    def fetch_teams(self, owner_id: str) -> list[dict]:
        """All teams for the owner, newest ``created_at`` first."""
        raise NotImplementedError

    def fetch_members(self, owner_id: str) -> list[dict]:
        raise NotImplementedError


class SupabaseRemote(RemoteStore):
    """RemoteStore backed by a supabase-py client."""

    OWNER_COLUMN = "user_id"

    def __init__(self, client: Client):
        self.client = client

    def upsert(self, table: str, row: dict):
        self._run(self.client.table(table).upsert(row))

    def update(self, table: str, record_id: str, changes: dict):
        self._run(
            self.client.table(table).update(changes).eq("id", record_id)
        )

    def delete(self, table: str, record_id: str):
        self._run(self.client.table(table).delete().eq("id", record_id))

    def fetch_teams(self, owner_id: str) -> list[dict]:
        result = self._run(
            self.client.table("teams")
            .select("*")
            .eq(self.OWNER_COLUMN, owner_id)
            .order("created_at", desc=True)
        )
        return result.data or []

    def fetch_members(self, owner_id: str) -> list[dict]:
        result = self._run(
            self.client.table("members")
            .select("*")
            .eq(self.OWNER_COLUMN, owner_id)
        )
        return result.data or []

    def _run(self, query):
        try:
            return query.execute()
        except (APIError, httpx.HTTPError) as e:
            raise classify_error(e) from e


def create_remote(url: Optional[str] = None, key: Optional[str] = None,
                  timeout: Optional[int] = None) -> SupabaseRemote:
    """Build a SupabaseRemote from explicit values or Config."""
    url = url or Config.SUPABASE_URL
    key = key or Config.SUPABASE_KEY
    if not url or not key:
        raise RemoteError("Supabase URL and key must be configured")
    options = ClientOptions(
        postgrest_client_timeout=timeout or Config.REMOTE_TIMEOUT_SECONDS,
    )
    client = create_client(url, key, options=options)
    logger.debug(f"Supabase client created for {url}")
    return SupabaseRemote(client)
