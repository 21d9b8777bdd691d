"""Unit tests for the quota ledger"""

import pytest

from clouddrive.models import User, UserQuota
from clouddrive.quota import FILE_COUNT_LIMIT_EXCEEDED, STORAGE_LIMIT_EXCEEDED, QuotaCheck, QuotaLedger, quota_exceeded

GIB = 1024 * 1024 * 1024


@pytest.fixture
def user_id(session):
    user = User(email="quota@example.com", hashed_password="x")
    session.add(user)
    session.commit()
    session.refresh(user)
    return user.id


@pytest.fixture
def ledger(session, ctx):
    return QuotaLedger(session, ctx.free_plan)


def set_limits(session, ledger, user_id, storage_limit, file_count_limit, storage_used=0, file_count=0):
    row = ledger.ensure_row(user_id)
    row.storage_limit = storage_limit
    row.file_count_limit = file_count_limit
    row.storage_used = storage_used
    row.file_count = file_count
    session.add(row)
    session.commit()


def test_usage_defaults_to_free_tier(ledger, user_id):
    usage = ledger.usage(user_id)
    assert usage.plan == "free"
    assert usage.storage_used == 0
    assert usage.storage_limit == 5 * GIB
    assert usage.file_count == 0
    assert usage.file_count_limit == 10_000


def test_check_allows_within_limits(ledger, user_id):
    check = ledger.check_upload_allowed(user_id, 10)
    assert check.allowed is True
    assert check.code is None


def test_check_rejects_storage_overflow(session, ledger, user_id):
    set_limits(session, ledger, user_id, storage_limit=100, file_count_limit=10, storage_used=95)
    check = ledger.check_upload_allowed(user_id, 6)
    assert check.allowed is False
    assert check.code == STORAGE_LIMIT_EXCEEDED
    assert "Storage limit exceeded" in check.reason


def test_check_allows_exactly_filling_storage(session, ledger, user_id):
    set_limits(session, ledger, user_id, storage_limit=100, file_count_limit=10, storage_used=95)
    assert ledger.check_upload_allowed(user_id, 5).allowed is True


def test_check_rejects_file_count_overflow(session, ledger, user_id):
    set_limits(session, ledger, user_id, storage_limit=100, file_count_limit=3, file_count=3)
    check = ledger.check_upload_allowed(user_id, 1)
    assert check.allowed is False
    assert check.code == FILE_COUNT_LIMIT_EXCEEDED


def test_check_ignores_file_count_for_new_versions(session, ledger, user_id):
    set_limits(session, ledger, user_id, storage_limit=100, file_count_limit=3, file_count=3)
    assert ledger.check_upload_allowed(user_id, 1, new_files=0).allowed is True


def test_charge_increments_usage(session, ledger, user_id):
    assert ledger.charge(user_id, 10, 1) is True
    session.commit()
    usage = ledger.usage(user_id)
    assert usage.storage_used == 10
    assert usage.file_count == 1


def test_charge_refuses_when_it_would_not_fit(session, ledger, user_id):
    set_limits(session, ledger, user_id, storage_limit=100, file_count_limit=10, storage_used=90)
    assert ledger.charge(user_id, 11, 1) is False
    session.commit()
    assert ledger.usage(user_id).storage_used == 90
    assert ledger.usage(user_id).file_count == 0


def test_release_never_goes_negative(session, ledger, user_id):
    ledger.charge(user_id, 10, 1)
    session.commit()
    ledger.release(user_id, 25, 3)
    session.commit()
    usage = ledger.usage(user_id)
    assert usage.storage_used == 0
    assert usage.file_count == 0


def test_apply_plan_updates_limits_and_keeps_usage(session, ctx, ledger, user_id):
    ledger.charge(user_id, 10, 1)
    pro = next(p for p in ctx.plans if p.id == "pro")
    ledger.apply_plan(user_id, pro)
    session.commit()

    row = session.get(UserQuota, user_id)
    assert row.plan == "pro"
    assert row.storage_limit == pro.storage_limit_bytes
    assert row.file_count_limit == pro.file_count_limit
    assert row.storage_used == 10


def test_quota_exceeded_always_carries_a_code():
    exc = quota_exceeded(QuotaCheck(allowed=True))
    assert exc.status_code == 403
    assert exc.detail["code"] == STORAGE_LIMIT_EXCEEDED
    assert exc.detail["message"]

    exc = quota_exceeded(QuotaCheck(allowed=False, reason="File count limit exceeded (3).", code=FILE_COUNT_LIMIT_EXCEEDED))
    assert exc.detail == {"message": "File count limit exceeded (3).", "code": FILE_COUNT_LIMIT_EXCEEDED}


def test_release_keeps_unflushed_changes_on_other_rows(session, ledger, user_id):
    ledger.charge(user_id, 5, 1)
    session.commit()

    user = session.get(User, user_id)
    user.first_name = "Pending"
    session.add(user)
    ledger.release(user_id, 5, 1)
    assert ledger.usage(user_id).storage_used == 0
    session.commit()

    session.expire_all()
    assert session.get(User, user_id).first_name == "Pending"
