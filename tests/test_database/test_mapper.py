"""Tests for the row/entity mapper."""

from datetime import date

import pytest

from elite_notepad.database.mapper import (
    member_from_app,
    member_to_app,
    member_to_local,
    resolve_field,
    team_from_app,
    team_to_app,
    team_to_local,
)
from elite_notepad.database.models import Member, Team


class TestResolveField:
    def test_first_non_null_wins(self):
        row = {"twofa_secret": None, "twofa": "", "two_fa": "X"}
        # Empty string is not null, so it wins over the later alias
        assert resolve_field(row, "twofa_secret") == ""

    def test_falls_through_nulls(self):
        assert resolve_field({"twofa": None, "two_fa": "X"}, "twofa_secret") == "X"

    def test_unaliased_name(self):
        assert resolve_field({"email": "a"}, "email") == "a"

    def test_missing(self):
        assert resolve_field({}, "twofa_secret") is None


class TestTeamToLocal:
    def test_defaults(self):
        row = team_to_local({"id": "t1"}, "u1")
        assert row["user_id"] == "u1"
        assert row["team_name"] == ""
        assert row["is_yearly"] is False
        assert row["is_plus"] is False
        assert row["created_at"] == ""

    def test_camel_case_aliases(self):
        row = team_to_local(
            {"id": "t1", "teamName": "A", "adminEmail": "a@x.com"}, "u1"
        )
        assert row["team_name"] == "A"
        assert row["admin_email"] == "a@x.com"

    def test_remote_owner_kept(self):
        assert team_to_local({"id": "t1", "user_id": "u9"}, "u1")["user_id"] == "u9"

    @pytest.mark.parametrize("value", [None, "garbage", 42, ["x"]])
    def test_malformed_input_never_raises(self, value):
        row = team_to_local(value, "u1")
        assert row["id"] == ""

    def test_deterministic(self):
        source = {"id": "t1", "team_name": "A"}
        assert team_to_local(source, "u1") == team_to_local(source, "u1")


class TestMemberToLocal:
    def test_twofa_alias_chain(self):
        assert member_to_local({"id": "m", "twofa": "A"}, "u")["twofa_secret"] == "A"
        assert member_to_local({"id": "m", "two_fa": "B"}, "u")["twofa_secret"] == "B"
        row = member_to_local({"id": "m", "twofa_secret": "S", "two_fa": "B"}, "u")
        assert row["twofa_secret"] == "S"

    def test_join_date_normalized(self):
        row = member_to_local(
            {"id": "m", "join_date": "2024-03-05T23:30:00+00:00"}, "u"
        )
        assert row["join_date"] == "2024-03-05"

    def test_zero_amounts_are_unset(self):
        row = member_to_local({"id": "m", "paid_amount": 0, "pending_amount": "12.5"}, "u")
        assert row["paid_amount"] is None
        assert row["pending_amount"] == 12.5

    def test_bad_amount_is_unset(self):
        assert member_to_local({"id": "m", "paid_amount": "lots"}, "u")["paid_amount"] is None

    def test_subscriptions(self):
        row = member_to_local({"id": "m", "subscriptions": ["gemini", "chatgpt", "gemini"]}, "u")
        assert row["subscriptions"] == ["chatgpt", "gemini"]
        assert member_to_local({"id": "m", "subscriptions": []}, "u")["subscriptions"] is None
        assert member_to_local({"id": "m", "subscriptions": "canva"}, "u")["subscriptions"] == ["canva"]

    def test_missing_created_at_stays_empty(self):
        assert member_to_local({"id": "m"}, "u")["created_at"] == ""

    def test_bool_defaults(self):
        row = member_to_local({"id": "m"}, "u")
        assert row["is_paid"] is False
        assert row["is_pushed"] is False


class TestToApp:
    def test_member_to_app(self):
        member = member_to_app({
            "id": "m1", "team_id": "t1", "user_id": "u1", "email": "a@x.com",
            "two_fa": "legacy", "join_date": "2024-01-31",
            "subscriptions": ["chatgpt"], "is_paid": 1,
        })
        assert member.two_fa == "legacy"
        assert member.join_date == date(2024, 1, 31)
        assert member.subscriptions == {"chatgpt"}
        assert member.is_paid is True

    def test_member_bad_date(self):
        assert member_to_app({"id": "m", "join_date": "not a date"}).join_date is None

    def test_team_to_app_attaches_members(self):
        team = team_to_app({"id": "t1", "is_plus": 1}, [Member(id="m1")])
        assert team.is_plus is True
        assert [m.id for m in team.members] == ["m1"]


class TestFromApp:
    def test_member_from_app(self):
        member = Member(
            id="m1", team_id="t1", email="a@x.com", two_fa="S",
            join_date=date(2024, 2, 1), subscriptions={"gemini", "canva"},
            paid_amount=0.0, created_at="c",
        )
        row = member_from_app(member, "u1")
        assert row["user_id"] == "u1"
        assert row["twofa_secret"] == "S"
        assert row["join_date"] == "2024-02-01"
        assert row["subscriptions"] == ["canva", "gemini"]
        assert row["paid_amount"] is None
        assert row["created_at"] == "c"

    def test_member_from_app_stamps_created_at(self):
        assert member_from_app(Member(id="m"), "u")["created_at"]

    def test_team_round_trip(self):
        team = Team(id="t1", team_name="A", admin_email="a@x.com",
                    created_at="c", is_yearly=True)
        again = team_to_app(team_to_local(team_from_app(team, "u1"), "u1"))
        assert again.team_name == "A"
        assert again.is_yearly is True
        assert again.owner_id == "u1"
