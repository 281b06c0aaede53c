"""Entity Mapper — converts between storage rows and application entities.

Storage rows use the remote column names (``team_name``, ``user_id``, ...)
so a local row can be pushed as-is.  Older data stored some fields under
other names; ``FIELD_ALIASES`` lists, per canonical column, the names to
try in priority order.  The first non-null value wins.

Nothing in here raises: malformed input degrades to a partial record.
"""

from collections.abc import Iterable
from typing import Optional

from elite_notepad.utils.dates import format_local_date, parse_local_date, utc_now_iso

from .models import Member, Team

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "twofa_secret": ("twofa_secret", "twofa", "two_fa", "otp_secret"),
    "team_name": ("team_name", "teamName"),
    "admin_email": ("admin_email", "adminEmail"),
    "join_date": ("join_date", "joinDate"),
    "last_backup": ("last_backup", "lastBackup"),
}


def resolve_field(row: dict, name: str):
    """Return the first non-null value among *name*'s aliases, else None."""
    for candidate in FIELD_ALIASES.get(name, (name,)):
        value = row.get(candidate)
        if value is not None:
            return value
    return None


def _as_row(value) -> dict:
    return value if isinstance(value, dict) else {}


def _text(value) -> Optional[str]:
    """Non-empty string or None (empty strings mean 'unset' upstream)."""
    if value is None or value == "":
        return None
    return value if isinstance(value, str) else str(value)


def _number(value) -> Optional[float]:
    if isinstance(value, bool) or value in (None, ""):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    # 0 means "no amount"
    return number or None


def _subscriptions(value) -> Optional[list[str]]:
    if value is None:
        return None
    if isinstance(value, str):
        return [value] if value else None
    if not isinstance(value, Iterable) or isinstance(value, dict):
        return None
    tags = sorted({str(v) for v in value if v is not None and v != ""})
    return tags or None


# ── Remote / legacy row -> local row ────────────────────────────


def team_to_local(row, owner_id: str) -> dict:
    row = _as_row(row)
    return {
        "id": _text(row.get("id")) or "",
        "user_id": _text(row.get("user_id")) or owner_id,
        "team_name": _text(resolve_field(row, "team_name")) or "",
        "admin_email": _text(resolve_field(row, "admin_email")) or "",
        "logo": _text(row.get("logo")),
        "created_at": _text(row.get("created_at")) or "",
        "last_backup": _text(resolve_field(row, "last_backup")),
        "is_yearly": bool(row.get("is_yearly") or False),
        "is_plus": bool(row.get("is_plus") or False),
    }


def member_to_local(row, owner_id: str) -> dict:
    row = _as_row(row)
    join_date = resolve_field(row, "join_date")
    parsed = parse_local_date(join_date)
    return {
        "id": _text(row.get("id")) or "",
        "team_id": _text(row.get("team_id")) or "",
        "user_id": _text(row.get("user_id")) or owner_id,
        "email": _text(row.get("email")) or "",
        "phone": _text(row.get("phone")) or "",
        "telegram": _text(row.get("telegram")),
        "twofa_secret": _text(resolve_field(row, "twofa_secret")),
        "password": _text(row.get("password")),
        "e_pass": _text(row.get("e_pass")),
        "g_pass": _text(row.get("g_pass")),
        "join_date": format_local_date(parsed) if parsed else _text(join_date),
        "is_paid": bool(row.get("is_paid") or False),
        "paid_amount": _number(row.get("paid_amount")),
        "pending_amount": _number(row.get("pending_amount")),
        "subscriptions": _subscriptions(row.get("subscriptions")),
        "is_pushed": bool(row.get("is_pushed") or False),
        "active_team_id": _text(row.get("active_team_id")),
        "created_at": _text(row.get("created_at")) or "",
    }


# ── Local row -> application entity ─────────────────────────────


def member_to_app(row) -> Member:
    row = _as_row(row)
    return Member(
        id=row.get("id") or "",
        team_id=row.get("team_id") or "",
        owner_id=row.get("user_id") or "",
        email=row.get("email") or "",
        phone=row.get("phone") or "",
        telegram=_text(row.get("telegram")),
        two_fa=_text(resolve_field(row, "twofa_secret")),
        password=_text(row.get("password")),
        e_pass=_text(row.get("e_pass")),
        g_pass=_text(row.get("g_pass")),
        join_date=parse_local_date(row.get("join_date")),
        is_paid=bool(row.get("is_paid") or False),
        paid_amount=_number(row.get("paid_amount")),
        pending_amount=_number(row.get("pending_amount")),
        subscriptions=set(_subscriptions(row.get("subscriptions")) or ()),
        is_pushed=bool(row.get("is_pushed") or False),
        active_team_id=_text(row.get("active_team_id")),
        created_at=row.get("created_at") or "",
    )


def team_to_app(row, members: Optional[list[Member]] = None) -> Team:
    row = _as_row(row)
    return Team(
        id=row.get("id") or "",
        owner_id=row.get("user_id") or "",
        team_name=row.get("team_name") or "",
        admin_email=row.get("admin_email") or "",
        logo=_text(row.get("logo")),
        created_at=row.get("created_at") or "",
        last_backup=_text(row.get("last_backup")),
        is_yearly=bool(row.get("is_yearly") or False),
        is_plus=bool(row.get("is_plus") or False),
        members=list(members or []),
    )


# ── Application entity -> local row ─────────────────────────────


def team_from_app(team: Team, owner_id: str) -> dict:
    return {
        "id": team.id,
        "user_id": team.owner_id or owner_id,
        "team_name": team.team_name,
        "admin_email": team.admin_email,
        "logo": team.logo,
        "created_at": team.created_at,
        "last_backup": team.last_backup,
        "is_yearly": team.is_yearly,
        "is_plus": team.is_plus,
    }


def member_from_app(member: Member, owner_id: str) -> dict:
    return {
        "id": member.id,
        "team_id": member.team_id,
        "user_id": member.owner_id or owner_id,
        "email": member.email,
        "phone": member.phone or "",
        "telegram": member.telegram or None,
        "twofa_secret": member.two_fa or None,
        "password": member.password or None,
        "e_pass": member.e_pass or None,
        "g_pass": member.g_pass or None,
        "join_date": format_local_date(member.join_date),
        "is_paid": member.is_paid,
        "paid_amount": member.paid_amount or None,
        "pending_amount": member.pending_amount or None,
        "subscriptions": sorted(member.subscriptions) or None,
        "is_pushed": member.is_pushed,
        "active_team_id": member.active_team_id or None,
        "created_at": member.created_at or utc_now_iso(),
    }
