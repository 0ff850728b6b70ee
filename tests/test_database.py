from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from ctfadmin.database import API_KEY_PREFIX, Database
from ctfadmin.models import LogLevel, Role


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db_path = tmp_path / "ctfadmin.sqlite3"
    db = Database(db_path)
    db.initialize()
    return db


def test_create_user_and_authenticate_api_key(database: Database) -> None:
    user, api_key = database.create_user("alice", "Alice@Example.com", role=Role.ADMIN)

    assert api_key.startswith(API_KEY_PREFIX)
    assert user.email == "alice@example.com"
    retrieved = database.get_user_by_api_key(api_key)
    assert retrieved is not None
    assert retrieved.id == user.id
    assert retrieved.role is Role.ADMIN

    assert database.get_user_by_api_key(API_KEY_PREFIX + "invalid") is None
    assert database.get_user_by_api_key("not-a-key") is None


def test_rotate_api_key_invalidates_previous_key(database: Database) -> None:
    user, old_key = database.create_user("bob", None)

    _, new_key = database.rotate_api_key(user.id)

    assert database.get_user_by_api_key(old_key) is None
    assert database.get_user_by_api_key(new_key).id == user.id


def test_duplicate_username_is_rejected(database: Database) -> None:
    database.create_user("carol", "carol@example.com")
    with pytest.raises(ValueError):
        database.create_user("carol", "other@example.com")


def test_list_users_orders_by_id_and_pages(database: Database) -> None:
    created = [database.create_user(f"user{i}", None)[0] for i in range(5)]
    expected = sorted(user.id for user in created)

    assert [user.id for user in database.list_users(0, 10)] == expected
    assert [user.id for user in database.list_users(1, 2)] == expected[1:3]
    assert database.list_users(1000, 10) == []


def test_update_user_writes_all_columns(database: Database) -> None:
    user, _ = database.create_user("dave", "dave@example.com")
    changed = replace(user, bio="hello", phone="555-0100", role=Role.MONITOR)

    assert database.update_user(changed) is True
    assert database.get_user(user.id) == changed


def test_update_and_delete_missing_user_report_false(database: Database) -> None:
    user, _ = database.create_user("erin", None)
    assert database.delete_user(user.id) is True
    assert database.delete_user(user.id) is False
    assert database.update_user(user) is False


def test_deleting_user_removes_team_membership(database: Database) -> None:
    captain, _ = database.create_user("frank", None)
    member, _ = database.create_user("grace", None)
    database.create_team("Red", captain_id=captain.id, members=[captain.id, member.id])

    database.delete_user(member.id)
    [team] = database.list_teams(0, 10)

    assert team.members == (captain.id,)
    assert team.captain_id == captain.id


def test_logs_are_newest_first_and_filterable(database: Database) -> None:
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    database.append_log(LogLevel.INFO, "first", time=base)
    database.append_log(LogLevel.ERROR, "second", time=base + timedelta(minutes=1))
    database.append_log(LogLevel.INFO, "third", time=base + timedelta(minutes=2))

    assert [entry.message for entry in database.list_logs(0, 10)] == ["third", "second", "first"]
    assert [entry.message for entry in database.list_logs(0, 10, LogLevel.INFO)] == ["third", "first"]
    assert [entry.message for entry in database.list_logs(1, 1)] == ["second"]


def test_files_are_listed_by_name(database: Database) -> None:
    database.add_file("zeta.zip", 10, "hash-z")
    database.add_file("alpha.bin", 20, "hash-a")

    assert [record.name for record in database.list_files(0, 10)] == ["alpha.bin", "zeta.zip"]
    with pytest.raises(ValueError):
        database.add_file("copy.bin", 20, "hash-a")


def test_notice_round_trip_preserves_time(database: Database) -> None:
    notice = database.create_notice("Welcome", "Game starts soon", is_pinned=True)

    stored = database.get_notice(notice.id)
    assert stored == notice

    later = replace(notice, is_pinned=False, time=notice.time + timedelta(hours=1))
    assert database.update_notice(later) is True
    assert database.get_notice(notice.id) == later
    assert database.delete_notice(notice.id) is True
    assert database.get_notice(notice.id) is None
