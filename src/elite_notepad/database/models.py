"""Data models for the database layer."""

from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Union

from elite_notepad.utils.constants import SYNC_OPERATIONS, SYNC_TABLES


@dataclass
class Member:
    id: str = ""
    team_id: str = ""
    owner_id: str = ""
    email: str = ""
    phone: str = ""
    telegram: Optional[str] = None
    two_fa: Optional[str] = None
    password: Optional[str] = None
    e_pass: Optional[str] = None
    g_pass: Optional[str] = None
    join_date: Optional[date] = None  # local civil date, no time component
    is_paid: bool = False
    paid_amount: Optional[float] = None
    pending_amount: Optional[float] = None
    subscriptions: set[str] = field(default_factory=set)
    is_pushed: bool = False
    active_team_id: Optional[str] = None
    created_at: str = ""


@dataclass
class Team:
    id: str = ""
    owner_id: str = ""
    team_name: str = ""
    admin_email: str = ""
    logo: Optional[str] = None
    created_at: str = ""
    last_backup: Optional[str] = None
    is_yearly: bool = False
    is_plus: bool = False
    members: list[Member] = field(default_factory=list)

    @property
    def is_standard(self) -> bool:
        """Standard teams are capped and follow the 30-day expiry rule."""
        return not (self.is_yearly or self.is_plus)


@dataclass
class Notepad:
    id: str = ""
    title: str = ""
    content: str = ""
    created_at: str = ""
    updated_at: str = ""


@dataclass
class AppData:
    """Full application state as exchanged through backup files."""

    teams: list[Team] = field(default_factory=list)
    active_team_id: str = ""
    notepads: Optional[list[Notepad]] = None


# ── Sync queue payloads ─────────────────────────────────────────


@dataclass(frozen=True)
class InsertPayload:
    """Full row snapshot, replayed as an upsert."""

    row: dict
    operation: str = field(default="insert", init=False)


@dataclass(frozen=True)
class UpdatePayload:
    """Changed columns only; never carries the id."""

    changes: dict
    operation: str = field(default="update", init=False)


@dataclass(frozen=True)
class DeletePayload:
    operation: str = field(default="delete", init=False)


QueuePayload = Union[InsertPayload, UpdatePayload, DeletePayload]


def encode_payload(payload: QueuePayload) -> dict:
    """Convert a payload variant to the JSON-able dict stored in the queue."""
    if isinstance(payload, InsertPayload):
        return dict(payload.row)
    if isinstance(payload, UpdatePayload):
        return {k: v for k, v in payload.changes.items() if k != "id"}
    return {}


def decode_payload(table: str, operation: str, raw) -> QueuePayload:
    """Rebuild the payload variant for a ``(table, operation)`` pair.

    Raises ValueError for unknown tables or operations, or for a raw
    payload that cannot carry the operation.
    """
    if table not in SYNC_TABLES:
        raise ValueError(f"Unknown sync table: {table!r}")
    if operation not in SYNC_OPERATIONS:
        raise ValueError(f"Unknown sync operation: {operation!r}")
    if operation == "delete":
        return DeletePayload()
    if not isinstance(raw, dict):
        raise ValueError(
            f"{table}/{operation} payload must be an object, "
            f"got {type(raw).__name__}"
        )
    if operation == "insert":
        if not raw.get("id"):
            raise ValueError(f"{table}/insert payload has no id")
        return InsertPayload(row=dict(raw))
    return UpdatePayload(changes={k: v for k, v in raw.items() if k != "id"})


@dataclass
class SyncQueueEntry:
    table: str
    record_id: str
    payload: QueuePayload
    owner_id: str
    created_at: str = ""
    id: Optional[int] = None  # assigned by the store

    @property
    def operation(self) -> str:
        return self.payload.operation


@dataclass
class PullResult:
    """Snapshot returned by a successful pull, as local rows."""

    teams: list[dict] = field(default_factory=list)
    members: list[dict] = field(default_factory=list)
