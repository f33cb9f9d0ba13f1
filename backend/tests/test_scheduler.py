from datetime import timedelta

from pymongo.errors import ServerSelectionTimeoutError

from accounts.core import scheduler
from accounts.repositories.base import utcnow


def test_purge_job_clears_expired_tokens(db, make_user, users_repo):
    now = utcnow()
    make_user(reset_password_token="old", reset_password_token_expires_at=now - timedelta(minutes=5))
    make_user(reset_password_token="new", reset_password_token_expires_at=now + timedelta(minutes=5))

    assert scheduler.purge_expired_reset_tokens_job(db) == 1
    assert scheduler.purge_expired_reset_tokens_job(db) == 0

    tokens = [doc.get("reset_password_token") for doc in users_repo.collection.docs]
    assert tokens == [None, "new"]


def test_purge_job_survives_store_errors(db, monkeypatch, caplog):
    def unavailable(*args, **kwargs):
        raise ServerSelectionTimeoutError("no servers available")

    monkeypatch.setattr(db["users"], "update_many", unavailable)

    assert scheduler.purge_expired_reset_tokens_job(db) == 0
    assert "purge_expired_reset_tokens_job" in caplog.text


def test_start_and_stop_scheduler_registers_purge_job(monkeypatch):
    monkeypatch.setattr(scheduler, "scheduler", scheduler.BackgroundScheduler())

    scheduler.start_scheduler()
    try:
        job = scheduler.scheduler.get_job("purge_expired_reset_tokens")
        assert job is not None
        assert job.trigger.interval == timedelta(minutes=scheduler.settings.RESET_TOKEN_PURGE_MINUTES)
    finally:
        scheduler.stop_scheduler()

    assert not scheduler.scheduler.running
