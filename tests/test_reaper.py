import os
import threading
import time

from conftest import make_user, text_request, upload
from linkvault import models
from linkvault.reaper import ExpiryReaper
from linkvault.schemas import CreateShareRequest


def make_reaper(session_factory, file_store, settings, clock, **overrides):
    settings = settings.model_copy(update=overrides)
    return ExpiryReaper(session_factory, file_store, settings, clock=clock)


def remaining_ids(session_factory):
    with session_factory() as session:
        return {share_id for (share_id,) in session.query(models.Share.id).all()}


def test_sweep_removes_expired_shares_and_files(db, session_factory, engine, file_store, settings, clock, owner):
    expired_text = engine.create_share(db, owner, text_request(expires_at="2026-01-01T12:10:00"))
    expired_file = engine.create_share(db, owner, CreateShareRequest(expires_at="2026-01-01T12:10:00"), upload())
    live = engine.create_share(db, owner, text_request(expires_at="2026-01-02T12:00:00"))
    expired_file_path = expired_file.file_path
    live_id, expired_ids = live.id, {expired_text.id, expired_file.id}

    clock.advance(minutes=10)
    reaper = make_reaper(session_factory, file_store, settings, clock)

    assert reaper.sweep() == 2
    assert remaining_ids(session_factory) == {live_id}
    assert not os.path.exists(expired_file_path)
    assert not expired_ids & remaining_ids(session_factory)


def test_sweep_twice_is_idempotent(db, session_factory, engine, file_store, settings, clock, owner):
    engine.create_share(db, owner, CreateShareRequest(expires_at="2026-01-01T12:01:00"), upload())
    clock.advance(minutes=2)
    reaper = make_reaper(session_factory, file_store, settings, clock)

    assert reaper.sweep() == 1
    assert reaper.sweep() == 0


def test_sweep_respects_batch_size(db, session_factory, engine, file_store, settings, clock, owner):
    for _ in range(3):
        engine.create_share(db, owner, text_request(expires_at="2026-01-01T12:01:00"))
    clock.advance(minutes=2)
    reaper = make_reaper(session_factory, file_store, settings, clock, cleanup_batch_size=2)

    assert reaper.sweep() == 2
    assert reaper.sweep() == 1
    assert remaining_ids(session_factory) == set()


def test_missing_file_does_not_block_sweep(db, session_factory, engine, file_store, settings, clock, owner):
    share = engine.create_share(db, owner, CreateShareRequest(expires_at="2026-01-01T12:01:00"), upload())
    os.remove(share.file_path)
    clock.advance(minutes=2)

    assert make_reaper(session_factory, file_store, settings, clock).sweep() == 1


def test_file_removal_failure_does_not_abort_batch(
    db, session_factory, engine, file_store, settings, clock, owner, monkeypatch
):
    for _ in range(3):
        engine.create_share(db, owner, CreateShareRequest(expires_at="2026-01-01T12:01:00"), upload())
    clock.advance(minutes=2)

    calls = []
    original_remove = file_store.remove

    def flaky_remove(file_path):
        calls.append(file_path)
        if len(calls) == 1:
            raise RuntimeError("disk on fire")
        return original_remove(file_path)

    monkeypatch.setattr(file_store, "remove", flaky_remove)

    assert make_reaper(session_factory, file_store, settings, clock).sweep() == 3
    assert len(calls) == 3
    assert remaining_ids(session_factory) == set()


def test_sweep_drops_reports_of_expired_shares(db, session_factory, engine, file_store, settings, clock, owner):
    share = engine.create_share(db, owner, text_request(expires_at="2026-01-01T12:01:00"))
    reporter = make_user(db, "reporter@example.com")
    db.add(models.ShareReport(share_id=share.id, reported_by_id=reporter.id, reason="spam", created_at=clock.now))
    db.commit()
    clock.advance(minutes=2)

    make_reaper(session_factory, file_store, settings, clock).sweep()

    with session_factory() as session:
        assert session.query(models.ShareReport).count() == 0


def test_overlapping_sweeps_delete_each_share_once(db, session_factory, engine, file_store, settings, clock, owner):
    for _ in range(5):
        engine.create_share(db, owner, CreateShareRequest(expires_at="2026-01-01T12:01:00"), upload())
    clock.advance(minutes=2)
    reaper = make_reaper(session_factory, file_store, settings, clock)
    barrier = threading.Barrier(2)
    deleted = []

    def run():
        barrier.wait()
        deleted.append(reaper.sweep())

    threads = [threading.Thread(target=run) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(deleted) == 5
    assert remaining_ids(session_factory) == set()
    assert os.listdir(settings.upload_dir) == []


def test_start_sweeps_immediately_and_stops_cleanly(db, session_factory, engine, file_store, settings, clock, owner):
    engine.create_share(db, owner, text_request(expires_at="2026-01-01T12:01:00"))
    clock.advance(minutes=2)
    reaper = make_reaper(session_factory, file_store, settings, clock, cleanup_interval_seconds=0.1)

    reaper.start()
    try:
        deadline = time.monotonic() + 5
        while remaining_ids(session_factory) and time.monotonic() < deadline:
            time.sleep(0.02)
        assert remaining_ids(session_factory) == set()
        assert reaper.running

        # Later ticks pick up shares that expire after startup.
        engine.create_share(db, owner, text_request(expires_at="2026-01-01T12:03:00"))
        clock.advance(minutes=2)
        deadline = time.monotonic() + 5
        while remaining_ids(session_factory) and time.monotonic() < deadline:
            time.sleep(0.02)
        assert remaining_ids(session_factory) == set()
    finally:
        reaper.stop()

    assert not reaper.running
