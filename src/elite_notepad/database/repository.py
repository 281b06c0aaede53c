"""Repository layer — local-first reads and mutations for one owner.

Every mutation writes the local store and appends its sync queue entry in
one transaction; the queue is the only path by which changes reach the
remote.  Reads always come from the local store.
"""

import logging
import uuid
from datetime import date
from typing import Callable, Iterable, Optional

from elite_notepad.utils.constants import (
    DEFAULT_ADMIN_EMAIL,
    DEFAULT_TEAM_NAME,
    MAX_MEMBERS,
    META_LAST_SYNC,
    SUBSCRIPTION_TYPES,
)
from elite_notepad.utils.dates import format_local_date, utc_now_iso

from .mapper import (
    member_from_app,
    member_to_app,
    team_from_app,
    team_to_app,
)
from .models import (
    DeletePayload,
    InsertPayload,
    Member,
    QueuePayload,
    SyncQueueEntry,
    Team,
    UpdatePayload,
)
from .store import LocalStore, StoreError

logger = logging.getLogger(__name__)

# Columns a caller may change through update_team / update_member
TEAM_UPDATABLE = {
    "team_name", "admin_email", "created_at", "logo", "last_backup",
    "is_yearly", "is_plus",
}
MEMBER_UPDATABLE = {
    "email", "phone", "telegram", "twofa_secret", "password", "e_pass",
    "g_pass", "join_date", "is_paid", "paid_amount", "pending_amount",
    "subscriptions", "is_pushed", "active_team_id", "team_id",
}

# Application field names accepted as aliases of storage columns
_MEMBER_FIELD_COLUMNS = {"two_fa": "twofa_secret"}


def _check_tags(tags: Iterable[str]):
    unknown = set(tags) - set(SUBSCRIPTION_TYPES)
    if unknown:
        raise ValueError(f"Unknown subscription types: {sorted(unknown)}")


def _member_column_value(column: str, value):
    if column == "join_date" and isinstance(value, date):
        return format_local_date(value)
    if column == "subscriptions" and value is not None:
        return sorted(set(value)) or None
    if column in ("is_paid", "is_pushed"):
        return bool(value)
    if column in ("telegram", "twofa_secret", "password", "e_pass", "g_pass",
                  "active_team_id", "paid_amount", "pending_amount"):
        # Empty values are stored as NULL
        return value or None
    return value


class Repository:
    """Provides all local-first operations for one owner's teams."""

    def __init__(self, store: LocalStore, owner_id: str,
                 on_change: Optional[Callable[[str], object]] = None):
        self.store = store
        self.owner_id = owner_id
        self.on_change = on_change

    # ── Reads ───────────────────────────────────────────────────

    def load_teams(self) -> list[Team]:
        """All teams with their members, newest first.

        Returns an empty list if the local store cannot be read.
        """
        try:
            rows = self.store.list_teams(self.owner_id)
            member_rows = self.store.list_members(self.owner_id)
        except StoreError as e:
            logger.error(f"Cannot load teams: {e}")
            return []
        members_by_team: dict[str, list[Member]] = {}
        for row in member_rows:
            members_by_team.setdefault(row["team_id"], []).append(
                member_to_app(row)
            )
        rows.sort(key=lambda r: r["created_at"] or "", reverse=True)
        return [team_to_app(r, members_by_team.get(r["id"], [])) for r in rows]

    def get_team(self, team_id: str) -> Optional[Team]:
        try:
            return self._load_team(team_id)
        except StoreError as e:
            logger.error(f"Cannot load team {team_id}: {e}")
            return None

    def get_member(self, member_id: str) -> Optional[Member]:
        try:
            row = self.store.get("members", member_id)
        except StoreError as e:
            logger.error(f"Cannot load member {member_id}: {e}")
            return None
        if row is None or row["user_id"] != self.owner_id:
            return None
        return member_to_app(row)

    def search_members(self, query: str) -> list[tuple[Team, Member, bool]]:
        """Find members (and team admins) by email or phone across all teams.

        Returns ``(team, member, is_admin)`` tuples; admins are reported
        as a pseudo-member with id ``"admin"``.
        """
        needle = query.strip().lower()
        if not needle:
            return []
        results = []
        for team in self.load_teams():
            if needle in team.admin_email.lower():
                admin = Member(
                    id="admin", team_id=team.id, email=team.admin_email,
                    created_at=team.created_at,
                )
                results.append((team, admin, True))
            for member in team.members:
                if needle in member.email.lower() or needle in member.phone:
                    results.append((team, member, False))
        return results

    def can_add_member(self, team: Team) -> bool:
        if not team.is_standard:
            return True
        return len(team.members) + 1 < MAX_MEMBERS

    def pending_changes(self) -> int:
        try:
            return self.store.queue_length(self.owner_id)
        except StoreError as e:
            logger.error(f"Cannot count pending changes: {e}")
            return 0

    def last_sync(self) -> Optional[str]:
        try:
            return self.store.get_meta(META_LAST_SYNC)
        except StoreError as e:
            logger.error(f"Cannot read last sync time: {e}")
            return None

    # ── Teams ───────────────────────────────────────────────────

    def create_team(self, team_name: Optional[str] = None,
                    logo: Optional[str] = None, is_yearly: bool = False,
                    is_plus: bool = False,
                    admin_email: Optional[str] = None) -> Optional[Team]:
        """Create a team locally and queue its insert."""
        _check_tags([logo] if logo else [])
        row = {
            "id": str(uuid.uuid4()),
            "user_id": self.owner_id,
            "team_name": team_name or DEFAULT_TEAM_NAME,
            # Yearly and Plus teams have no admin seat
            "admin_email": "" if (is_yearly or is_plus)
            else (admin_email or DEFAULT_ADMIN_EMAIL),
            "logo": logo or None,
            "created_at": utc_now_iso(),
            "last_backup": None,
            "is_yearly": bool(is_yearly),
            "is_plus": bool(is_plus),
        }
        if not self._commit(
            [self._entry("teams", row["id"], InsertPayload(row=row))],
            upserts=[("teams", row)],
        ):
            return None
        return team_to_app(row)

    def delete_team(self, team_id: str) -> bool:
        """Delete a team and its members locally and queue the delete."""
        return self._commit(
            [self._entry("teams", team_id, DeletePayload())],
            team_deletes=[team_id],
        )

    def update_team(self, team_id: str, **changes) -> bool:
        """Change team columns locally and queue a partial update."""
        unknown = set(changes) - TEAM_UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update team fields: {sorted(unknown)}")
        if changes.get("logo"):
            _check_tags([changes["logo"]])
        try:
            row = self.store.get("teams", team_id)
        except StoreError as e:
            logger.error(f"Cannot update team {team_id}: {e}")
            return False
        upserts = []
        if row is not None:
            row.update(changes)
            upserts.append(("teams", row))
        return self._commit(
            [self._entry("teams", team_id, UpdatePayload(changes=changes))],
            upserts=upserts,
        )

    def set_last_backup(self, team_id: str,
                        when: Optional[str] = None) -> bool:
        return self.update_team(team_id, last_backup=when or utc_now_iso())

    # ── Members ─────────────────────────────────────────────────

    def add_member(self, team_id: str, member: Member,
                   skip_limit_check: bool = False) -> Optional[Member]:
        """Add a member to a team locally and queue its insert.

        Raises ValueError if the team does not exist, is full or the
        member carries an unknown subscription tag.  Returns None if the
        local write fails.
        """
        _check_tags(member.subscriptions)
        try:
            team = self._load_team(team_id)
        except StoreError as e:
            logger.error(f"Cannot add member to team {team_id}: {e}")
            return None
        if team is None:
            raise ValueError(f"Team {team_id} not found")
        if not skip_limit_check and not self.can_add_member(team):
            raise ValueError(f"Maximum {MAX_MEMBERS} members allowed")

        member.id = member.id or str(uuid.uuid4())
        member.team_id = team_id
        member.owner_id = self.owner_id
        member.created_at = member.created_at or utc_now_iso()
        row = member_from_app(member, self.owner_id)
        if not self._commit(
            [self._entry("members", row["id"], InsertPayload(row=row))],
            upserts=[("members", row)],
        ):
            return None
        return member_to_app(row)

    def remove_member(self, member_id: str) -> bool:
        return self._commit(
            [self._entry("members", member_id, DeletePayload())],
            deletes=[("members", member_id)],
        )

    def update_member(self, member_id: str, **changes) -> bool:
        """Change member fields locally and queue a partial update.

        Accepts storage column names plus ``two_fa`` for the two-factor
        secret; dates, sets and booleans are normalized for storage.
        """
        columns = {}
        for name, value in changes.items():
            column = _MEMBER_FIELD_COLUMNS.get(name, name)
            if column not in MEMBER_UPDATABLE:
                raise ValueError(f"Cannot update member field: {name}")
            columns[column] = _member_column_value(column, value)
        _check_tags(columns.get("subscriptions") or [])
        try:
            row = self.store.get("members", member_id)
        except StoreError as e:
            logger.error(f"Cannot update member {member_id}: {e}")
            return False
        upserts = []
        if row is not None:
            row.update(columns)
            upserts.append(("members", row))
        return self._commit(
            [self._entry("members", member_id, UpdatePayload(changes=columns))],
            upserts=upserts,
        )

    def update_member_payment(self, member_id: str, is_paid: bool,
                              paid_amount: Optional[float] = None) -> bool:
        """Mark a member paid or unpaid; unpaid clears the amount."""
        return self.update_member(
            member_id,
            is_paid=is_paid,
            paid_amount=paid_amount if is_paid else None,
        )

    # ── Import ──────────────────────────────────────────────────

    def import_teams(self, teams: Iterable[Team]) -> int:
        """Persist imported teams with their members and queue the inserts.

        Each team is stored together with its queue entries; returns the
        number of teams for which both landed.
        """
        stored = 0
        for team in teams:
            team_row = team_from_app(team, self.owner_id)
            team_row["user_id"] = self.owner_id
            team_row["created_at"] = team_row["created_at"] or utc_now_iso()
            member_rows = []
            try:
                for member in team.members:
                    # Legacy backups use short ids like "1" that may clash
                    existing = self.store.get("members", member.id) if member.id else None
                    if not member.id or (existing and existing["team_id"] != team.id):
                        member.id = str(uuid.uuid4())
                    member.team_id = team.id
                    member.owner_id = self.owner_id
                    member_rows.append(member_from_app(member, self.owner_id))
            except StoreError as e:
                logger.error(f"Cannot import team {team.id}: {e}")
                continue
            entries = [self._entry("teams", team_row["id"],
                                   InsertPayload(row=team_row))]
            entries += [self._entry("members", row["id"], InsertPayload(row=row))
                        for row in member_rows]
            upserts = [("teams", team_row)]
            upserts += [("members", row) for row in member_rows]
            if self._commit(entries, upserts=upserts, notify=False):
                stored += 1
        if stored:
            self._notify()
        return stored

    # ── Internals ───────────────────────────────────────────────

    def _load_team(self, team_id: str) -> Optional[Team]:
        row = self.store.get("teams", team_id)
        if row is None or row["user_id"] != self.owner_id:
            return None
        members = [member_to_app(m) for m in self.store.list_team_members(team_id)]
        return team_to_app(row, members)

    def _entry(self, table: str, record_id: str,
               payload: QueuePayload) -> SyncQueueEntry:
        return SyncQueueEntry(
            table=table,
            record_id=record_id,
            payload=payload,
            owner_id=self.owner_id,
            created_at=utc_now_iso(),
        )

    def _commit(self, entries: list[SyncQueueEntry], upserts=(), deletes=(),
                team_deletes=(), notify: bool = True) -> bool:
        """Write local rows and their queue entries in one transaction."""
        try:
            self.store.record_change(
                entries, upserts=upserts, deletes=deletes,
                team_deletes=team_deletes,
            )
        except StoreError as e:
            first = entries[0]
            logger.error(
                f"Cannot save {first.table}/{first.operation} "
                f"{first.record_id}: {e}"
            )
            return False
        if notify:
            self._notify()
        return True

    def _notify(self):
        """Tell the sync layer there is something to push."""
        if self.on_change is None:
            return
        try:
            self.on_change(self.owner_id)
        except Exception:
            logger.exception("Sync trigger after local change failed")
