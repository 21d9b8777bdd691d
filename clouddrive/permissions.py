# Filename: clouddrive/permissions.py
from dataclasses import dataclass
from typing import Literal, Optional

from fastapi import HTTPException, status
from sqlmodel import Session, select

from .models import File, Share, User

Needed = Literal["view", "edit", "owner"]
Level = Literal["view", "edit", "owner"]


@dataclass
class PermissionDecision:
    allowed: bool
    level: Optional[Level]
    file: Optional[File] = None


def resolve(session: Session, user_id: int, file_id: int, needed: Needed) -> PermissionDecision:
    """Decide what ``user_id`` may do with ``file_id``.

    Owners may do anything. Anyone else needs a private share addressed to
    their e-mail; an admin share counts as edit.
    """
    f = session.get(File, file_id)
    if f is None:
        return PermissionDecision(allowed=False, level=None)
    if f.owner_id == user_id:
        return PermissionDecision(allowed=True, level="owner", file=f)

    user = session.get(User, user_id)
    if user is None:
        return PermissionDecision(allowed=False, level=None, file=f)
    share = session.exec(
        select(Share)
        .where(Share.file_id == file_id)
        .where(Share.share_type == "private")
        .where(Share.shared_with_email == user.email)
    ).first()
    if share is None:
        return PermissionDecision(allowed=False, level=None, file=f)

    level: Level = "view" if share.permissions == "view" else "edit"
    if needed == "view":
        return PermissionDecision(allowed=True, level=level, file=f)
    if needed == "edit":
        return PermissionDecision(allowed=level == "edit", level=level, file=f)
    return PermissionDecision(allowed=False, level=level, file=f)


def require(session: Session, user_id: int, file_id: int, needed: Needed) -> File:
    """Return the file if the caller may act on it, else raise.

    A caller with no relationship to the file gets 404, so file ids don't
    leak; a caller whose share is too weak gets 403.
    """
    decision = resolve(session, user_id, file_id, needed)
    if decision.allowed:
        return decision.file
    if decision.level is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
