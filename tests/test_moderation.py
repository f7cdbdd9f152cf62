import threading

import pytest

from conftest import make_user, text_request, upload
from linkvault import models
from linkvault.errors import AlreadyReported, NotFound, ValidationError
from linkvault.moderation import list_reported, list_shares, list_user_shares, list_users, report_share
from linkvault.schemas import CreateShareRequest


def test_report_counts_once_per_user(db, engine, owner, other_user, admin):
    share = engine.create_share(db, owner, text_request())

    assert report_share(db, other_user, share.token, "spam") == 1
    with pytest.raises(AlreadyReported):
        report_share(db, other_user, share.token, "spam again")
    assert report_share(db, admin, share.token) == 2

    db.refresh(share)
    assert share.report_count == 2
    assert [report.reason for report in share.reports] == ["spam", ""]


def test_report_validation(db, engine, owner, other_user):
    share = engine.create_share(db, owner, text_request())

    with pytest.raises(ValidationError):
        report_share(db, other_user, "not-a-token", "spam")
    with pytest.raises(ValidationError):
        report_share(db, other_user, share.token, "x" * 301)
    with pytest.raises(NotFound):
        report_share(db, other_user, "f" * 32, "spam")

    assert report_share(db, other_user, share.token, "x" * 300) == 1


def test_concurrent_duplicate_reports(db, session_factory, engine, owner, other_user):
    token = engine.create_share(db, owner, text_request()).token
    reporter_id = other_user.id
    barrier = threading.Barrier(4)
    outcomes = []

    def attempt():
        with session_factory() as session:
            reporter = session.get(models.User, reporter_id)
            barrier.wait()
            try:
                outcomes.append(report_share(session, reporter, token, "spam"))
            except AlreadyReported:
                outcomes.append("duplicate")

    threads = [threading.Thread(target=attempt) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count(1) == 1
    assert outcomes.count("duplicate") == 3


def test_list_reported_order(db, engine, owner, clock):
    reporters = [make_user(db, f"r{i}@example.com") for i in range(3)]
    older = engine.create_share(db, owner, text_request("older"))
    clock.advance(minutes=1)
    most_reported = engine.create_share(db, owner, text_request("most"))
    clock.advance(minutes=1)
    newer = engine.create_share(db, owner, text_request("newer"))
    engine.create_share(db, owner, text_request("clean"))

    report_share(db, reporters[0], older.token)
    report_share(db, reporters[0], most_reported.token)
    report_share(db, reporters[1], most_reported.token)
    report_share(db, reporters[2], newer.token)

    assert [share.id for share in list_reported(db)] == [most_reported.id, newer.id, older.id]


def test_list_users_with_stats(db, engine, owner, other_user, admin):
    text_share = engine.create_share(db, owner, text_request())
    file_share = engine.create_share(db, owner, CreateShareRequest(), upload())
    engine.get_for_view(db, text_share.token)
    engine.get_for_view(db, text_share.token)
    engine.get_for_download(db, file_share.token)

    stats = {summary.user.email: (summary.share_count, summary.total_views) for summary in list_users(db)}
    assert stats["owner@example.com"] == (2, 3)
    assert stats["other@example.com"] == (0, 0)
    assert stats["boss@example.com"] == (0, 0)

    admins = list_users(db, role=models.ROLE_ADMIN)
    assert [summary.user.email for summary in admins] == ["boss@example.com"]


def test_list_shares_by_owner_role(db, engine, owner, admin):
    user_share = engine.create_share(db, owner, text_request())
    admin_share = engine.create_share(db, admin, text_request())

    assert {share.id for share in list_shares(db)} == {user_share.id, admin_share.id}
    assert [share.id for share in list_shares(db, owner_role=models.ROLE_ADMIN)] == [admin_share.id]
    assert [share.id for share in list_shares(db, owner_role=models.ROLE_USER)] == [user_share.id]


def test_list_user_shares(db, engine, owner, other_user):
    mine = engine.create_share(db, owner, text_request())
    engine.create_share(db, other_user, text_request())

    shares = list_user_shares(db, owner.id)
    assert [share.id for share in shares] == [mine.id]
    assert shares[0].owner.email == "owner@example.com"
    assert list_user_shares(db, 9999) == []
