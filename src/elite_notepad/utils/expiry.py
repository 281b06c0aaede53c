"""Subscription expiry classification for reminder notifications.

A subscription lasts ``EXPIRY_DAYS`` calendar days from the member's join
date.  Members are reported the day before (``days_until_expiry == 1``)
and on the day itself (``0``).  Dates are local calendar dates.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from elite_notepad.database.models import Member, Team

from .constants import EXPIRY_DAYS
from .dates import days_since, today_local


@dataclass
class ExpiringMember:
    member: Member
    team: Team
    days_until_expiry: int  # 0 = today, 1 = tomorrow


def classify_expiry(join_date: Optional[date], today: Optional[date] = None,
                    open_ended: bool = False) -> Optional[int]:
    """Days until expiry (1 or 0) or None when no reminder is due.

    With *open_ended*, anything past the expiry day still counts as
    expiring today.
    """
    if join_date is None:
        return None
    elapsed = days_since(join_date, today or today_local())
    if elapsed == EXPIRY_DAYS - 1:
        return 1
    if elapsed == EXPIRY_DAYS or (open_ended and elapsed > EXPIRY_DAYS):
        return 0
    return None


def find_expiring_members(teams: list[Team],
                          today: Optional[date] = None) -> list[ExpiringMember]:
    """Standard-team members expiring today or tomorrow.

    Pushed members and members reassigned to another team are skipped.
    """
    today = today or today_local()
    results = []
    for team in teams:
        if not team.is_standard:
            continue
        for member in team.members:
            if member.is_pushed or member.active_team_id:
                continue
            days = classify_expiry(member.join_date, today)
            if days is not None:
                results.append(ExpiringMember(member, team, days))
    return results


def find_expiring_plus_members(teams: list[Team],
                               today: Optional[date] = None) -> list[ExpiringMember]:
    """Plus-team members whose 30-day period ends tomorrow or has ended."""
    today = today or today_local()
    results = []
    for team in teams:
        if not team.is_plus:
            continue
        for member in team.members:
            if member.is_pushed:
                continue
            days = classify_expiry(member.join_date, today, open_ended=True)
            if days is not None:
                results.append(ExpiringMember(member, team, days))
    return results
