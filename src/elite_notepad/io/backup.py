"""JSON backup export and import.

Backups use the application's camelCase document shape::

    {"teams": [...], "activeTeamId": "...", "notepads": [...], "exportedAt": "..."}

Import also accepts the legacy single-team shape
``{"teamName", "adminEmail", "members", "lastBackup"?}``, which becomes one
new team appended to the current list and made active.

Import either applies completely or returns False and leaves the state
untouched.
"""

import json
import logging
import uuid
from datetime import date
from pathlib import Path
from typing import Optional

from elite_notepad.config import Config
from elite_notepad.database.models import AppData, Member, Notepad, Team
from elite_notepad.utils.dates import format_local_date, parse_local_date, utc_now_iso

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "elite-notepade-backup-"


class BackupFormatError(ValueError):
    """A backup document has the wrong shape."""


# ── Entity <-> JSON ─────────────────────────────────────────────


def _drop_empty(data: dict) -> dict:
    return {k: v for k, v in data.items() if v not in (None, "", [])}


def member_to_json(member: Member) -> dict:
    data = {
        "id": member.id,
        "email": member.email,
        "phone": member.phone,
        "joinDate": format_local_date(member.join_date) or "",
        "isPaid": member.is_paid,
        "isPushed": member.is_pushed,
    }
    data.update(_drop_empty({
        "telegram": member.telegram,
        "twoFA": member.two_fa,
        "password": member.password,
        "ePass": member.e_pass,
        "gPass": member.g_pass,
        "paidAmount": member.paid_amount,
        "pendingAmount": member.pending_amount,
        "subscriptions": sorted(member.subscriptions),
        "activeTeamId": member.active_team_id,
    }))
    return data


def team_to_json(team: Team) -> dict:
    data = {
        "id": team.id,
        "teamName": team.team_name,
        "adminEmail": team.admin_email,
        "members": [member_to_json(m) for m in team.members],
        "createdAt": team.created_at,
        "isYearlyTeam": team.is_yearly,
        "isPlusTeam": team.is_plus,
    }
    data.update(_drop_empty({
        "lastBackup": team.last_backup,
        "logo": team.logo,
    }))
    return data


def _optional_number(value) -> Optional[float]:
    if isinstance(value, bool) or value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def member_from_json(data) -> Member:
    if not isinstance(data, dict):
        raise BackupFormatError(f"Member must be an object, got {type(data).__name__}")
    subscriptions = data.get("subscriptions") or []
    if isinstance(subscriptions, str):
        subscriptions = [subscriptions]
    return Member(
        id=str(data.get("id") or ""),
        email=str(data.get("email") or ""),
        phone=str(data.get("phone") or ""),
        telegram=data.get("telegram") or None,
        two_fa=data.get("twoFA") or None,
        password=data.get("password") or None,
        e_pass=data.get("ePass") or None,
        g_pass=data.get("gPass") or None,
        join_date=parse_local_date(data.get("joinDate")),
        is_paid=bool(data.get("isPaid") or False),
        paid_amount=_optional_number(data.get("paidAmount")),
        pending_amount=_optional_number(data.get("pendingAmount")),
        subscriptions={str(s) for s in subscriptions if s},
        is_pushed=bool(data.get("isPushed") or False),
        active_team_id=data.get("activeTeamId") or None,
    )


def team_from_json(data) -> Team:
    if not isinstance(data, dict):
        raise BackupFormatError(f"Team must be an object, got {type(data).__name__}")
    members = data.get("members") or []
    if not isinstance(members, list):
        raise BackupFormatError("Team members must be a list")
    team = Team(
        id=str(data.get("id") or uuid.uuid4()),
        team_name=str(data.get("teamName") or ""),
        admin_email=str(data.get("adminEmail") or ""),
        logo=data.get("logo") or None,
        created_at=str(data.get("createdAt") or utc_now_iso()),
        last_backup=data.get("lastBackup") or None,
        is_yearly=bool(data.get("isYearlyTeam") or False),
        is_plus=bool(data.get("isPlusTeam") or False),
    )
    team.members = [member_from_json(m) for m in members]
    for member in team.members:
        member.team_id = team.id
    return team


def notepad_from_json(data) -> Notepad:
    if not isinstance(data, dict):
        raise BackupFormatError("Notepad must be an object")
    return Notepad(
        id=str(data.get("id") or ""),
        title=str(data.get("title") or ""),
        content=str(data.get("content") or ""),
        created_at=str(data.get("createdAt") or ""),
        updated_at=str(data.get("updatedAt") or ""),
    )


def notepad_to_json(notepad: Notepad) -> dict:
    return {
        "id": notepad.id,
        "title": notepad.title,
        "content": notepad.content,
        "createdAt": notepad.created_at,
        "updatedAt": notepad.updated_at,
    }


# ── Export ──────────────────────────────────────────────────────


def export_backup(state: AppData) -> str:
    """Serialize the full application state to a JSON document."""
    document = {
        "teams": [team_to_json(t) for t in state.teams],
        "activeTeamId": state.active_team_id,
        "exportedAt": utc_now_iso(),
    }
    if state.notepads is not None:
        document["notepads"] = [notepad_to_json(n) for n in state.notepads]
    return json.dumps(document, indent=2, ensure_ascii=False)


def backup_filename(today: Optional[date] = None) -> str:
    return f"{BACKUP_PREFIX}{(today or date.today()).isoformat()}.json"


def save_backup(state: AppData, directory: Optional[Path] = None) -> Optional[Path]:
    """Write a dated backup file; returns its path or None on failure."""
    directory = Path(directory or Config.BACKUP_PATH)
    path = directory / backup_filename()
    try:
        directory.mkdir(parents=True, exist_ok=True)
        path.write_text(export_backup(state), encoding="utf-8")
    except OSError as e:
        logger.error(f"Backup to {path} failed: {e}")
        return None
    logger.info(f"Backup written to {path}")
    return path


# ── Import ──────────────────────────────────────────────────────


def is_legacy_document(parsed) -> bool:
    return (
        isinstance(parsed, dict)
        and bool(parsed.get("teamName"))
        and bool(parsed.get("adminEmail"))
        and isinstance(parsed.get("members"), list)
    )


def convert_legacy(parsed: dict) -> Team:
    """Turn a legacy single-team document into a new Team."""
    team = team_from_json({
        "teamName": parsed["teamName"],
        "adminEmail": parsed["adminEmail"],
        "members": parsed["members"],
        "lastBackup": parsed.get("lastBackup"),
    })
    team.id = str(uuid.uuid4())
    team.created_at = utc_now_iso()
    for member in team.members:
        member.team_id = team.id
    return team


def import_backup(state: AppData, text: str) -> bool:
    """Apply a backup document to *state*; False leaves *state* untouched."""
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Backup is not valid JSON: {e}")
        return False

    try:
        if isinstance(parsed, dict) and isinstance(parsed.get("teams"), list):
            teams = [team_from_json(t) for t in parsed["teams"]]
            notepads = parsed.get("notepads")
            if notepads is not None:
                if not isinstance(notepads, list):
                    raise BackupFormatError("notepads must be a list")
                notepads = [notepad_from_json(n) for n in notepads]
            active = str(parsed.get("activeTeamId") or (teams[0].id if teams else ""))

            state.teams = teams
            state.active_team_id = active
            state.notepads = notepads
            return True

        if is_legacy_document(parsed):
            team = convert_legacy(parsed)
            state.teams = [*state.teams, team]
            state.active_team_id = team.id
            return True
    except BackupFormatError as e:
        logger.warning(f"Rejected backup: {e}")
        return False

    logger.warning("Rejected backup: unrecognized document shape")
    return False


def load_backup(state: AppData, path: Path) -> bool:
    """Read a backup file and import it into *state*."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        logger.error(f"Cannot read backup {path}: {e}")
        return False
    return import_backup(state, text)
