"""Fixtures for the sync engine: an in-memory remote that records calls."""

import pytest

from elite_notepad.sync.remote import RemoteError, RemoteStore, UnknownColumnError


class RecordingRemote(RemoteStore):
    """In-memory remote that logs every call in order.

    ``fail_ids`` makes writes for those record ids raise RemoteError.
    ``unknown_columns`` maps table -> columns the remote schema lacks;
    writes carrying one raise UnknownColumnError naming it.
    """

    def __init__(self):
        self.calls = []
        self.rows = {"teams": {}, "members": {}}
        self.fail_ids = set()
        self.unknown_columns = {}
        self.fetch_error = None

    def _check(self, table, record_id, data):
        if record_id in self.fail_ids:
            raise RemoteError(f"rejected {record_id}")
        for column in self.unknown_columns.get(table, ()):
            if column in data:
                raise UnknownColumnError(
                    f"Could not find the '{column}' column of '{table}' "
                    f"in the schema cache",
                    column=column,
                )

    def upsert(self, table, row):
        self.calls.append(("upsert", table, row["id"], dict(row)))
        self._check(table, row["id"], row)
        self.rows[table][row["id"]] = dict(row)

    def update(self, table, record_id, changes):
        self.calls.append(("update", table, record_id, dict(changes)))
        self._check(table, record_id, changes)
        if record_id in self.rows[table]:
            self.rows[table][record_id].update(changes)

    def delete(self, table, record_id):
        self.calls.append(("delete", table, record_id, None))
        self._check(table, record_id, {})
        self.rows[table].pop(record_id, None)

    def fetch_teams(self, owner_id):
        self.calls.append(("fetch", "teams", owner_id, None))
        if self.fetch_error:
            raise self.fetch_error
        teams = [dict(r) for r in self.rows["teams"].values()
                 if r.get("user_id") == owner_id]
        return sorted(teams, key=lambda r: r.get("created_at") or "", reverse=True)

    def fetch_members(self, owner_id):
        self.calls.append(("fetch", "members", owner_id, None))
        if self.fetch_error:
            raise self.fetch_error
        return [dict(r) for r in self.rows["members"].values()
                if r.get("user_id") == owner_id]

    def writes(self):
        return [(op, table, rid) for op, table, rid, _ in self.calls if op != "fetch"]


@pytest.fixture
def remote():
    return RecordingRemote()
