# Filename: clouddrive/quota.py
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import case, update
from sqlmodel import Session

from .billing import Plan
from .models import UserQuota

logger = logging.getLogger(__name__)

STORAGE_LIMIT_EXCEEDED = "STORAGE_LIMIT_EXCEEDED"
FILE_COUNT_LIMIT_EXCEEDED = "FILE_COUNT_LIMIT_EXCEEDED"

MB = 1024 * 1024


@dataclass
class QuotaCheck:
    allowed: bool
    reason: Optional[str] = None
    code: Optional[str] = None


@dataclass
class Usage:
    plan: str
    storage_used: int
    storage_limit: int
    file_count: int
    file_count_limit: int


class QuotaLedger:
    """Per-user storage and file-count accounting.

    ``check_upload_allowed`` is the advisory gate run before a blob is
    written. ``charge`` is the binding one: a single conditional UPDATE that
    only applies when the increment still fits, so racing uploads cannot both
    push a user over the limit.
    """

    def __init__(self, session: Session, free_plan: Plan):
        self.session = session
        self.free_plan = free_plan

    def get(self, user_id: int) -> Optional[UserQuota]:
        return self.session.get(UserQuota, user_id)

    def usage(self, user_id: int) -> Usage:
        row = self.get(user_id)
        if row is None:
            return Usage(
                plan=self.free_plan.id,
                storage_used=0,
                storage_limit=self.free_plan.storage_limit_bytes,
                file_count=0,
                file_count_limit=self.free_plan.file_count_limit,
            )
        return Usage(
            plan=row.plan,
            storage_used=row.storage_used,
            storage_limit=row.storage_limit,
            file_count=row.file_count,
            file_count_limit=row.file_count_limit,
        )

    def check_upload_allowed(self, user_id: int, incoming_bytes: int, new_files: int = 1) -> QuotaCheck:
        u = self.usage(user_id)
        if u.storage_used + incoming_bytes > u.storage_limit:
            return QuotaCheck(
                allowed=False,
                reason=(
                    f"Storage limit exceeded. Used {u.storage_used / MB:.2f}MB / {u.storage_limit / MB:.2f}MB. "
                    f"File adds {incoming_bytes / MB:.2f}MB."
                ),
                code=STORAGE_LIMIT_EXCEEDED,
            )
        if u.file_count + new_files > u.file_count_limit:
            return QuotaCheck(
                allowed=False,
                reason=f"File count limit exceeded ({u.file_count_limit}).",
                code=FILE_COUNT_LIMIT_EXCEEDED,
            )
        return QuotaCheck(allowed=True)

    def ensure_row(self, user_id: int) -> UserQuota:
        row = self.get(user_id)
        if row is None:
            row = UserQuota(
                user_id=user_id,
                plan=self.free_plan.id,
                storage_limit=self.free_plan.storage_limit_bytes,
                file_count_limit=self.free_plan.file_count_limit,
            )
            self.session.add(row)
            self.session.flush()
        return row

    def _expire_row(self, user_id: int) -> None:
        # the UPDATE went around the ORM; only the cached quota row is stale
        row = self.session.identity_map.get(self.session.identity_key(UserQuota, user_id))
        if row is not None:
            self.session.expire(row)

    def charge(self, user_id: int, nbytes: int, files: int = 1) -> bool:
        """Atomically add usage if it fits. Returns False when it would not.

        Runs inside the caller's transaction; the caller commits.
        """
        self.ensure_row(user_id)
        stmt = (
            update(UserQuota)
            .where(UserQuota.user_id == user_id)
            .where(UserQuota.storage_used + nbytes <= UserQuota.storage_limit)
            .where(UserQuota.file_count + files <= UserQuota.file_count_limit)
            .values(
                storage_used=UserQuota.storage_used + nbytes,
                file_count=UserQuota.file_count + files,
            )
        )
        result = self.session.connection().execute(stmt)
        self._expire_row(user_id)
        return result.rowcount == 1

    def release(self, user_id: int, nbytes: int, files: int = 1) -> None:
        """Give usage back, never dropping below zero."""
        stmt = (
            update(UserQuota)
            .where(UserQuota.user_id == user_id)
            .values(
                storage_used=case((UserQuota.storage_used > nbytes, UserQuota.storage_used - nbytes), else_=0),
                file_count=case((UserQuota.file_count > files, UserQuota.file_count - files), else_=0),
            )
        )
        self.session.connection().execute(stmt)
        self._expire_row(user_id)

    def apply_plan(self, user_id: int, plan: Plan) -> UserQuota:
        row = self.ensure_row(user_id)
        row.plan = plan.id
        row.storage_limit = plan.storage_limit_bytes
        row.file_count_limit = plan.file_count_limit
        self.session.add(row)
        logger.info("user %s moved to plan %s", user_id, plan.id)
        return row


def quota_exceeded(check: QuotaCheck) -> HTTPException:
    if check.allowed:
        # usage moved between the check and a refused charge
        check = QuotaCheck(allowed=False, reason="Storage limit exceeded.", code=STORAGE_LIMIT_EXCEEDED)
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"message": check.reason, "code": check.code},
    )
