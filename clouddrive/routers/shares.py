# Filename: clouddrive/routers/shares.py
import logging
import secrets
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased
from sqlmodel import Session, col, select

from ..auth import get_current_user, get_user_by_email, normalize_email
from ..context import AppContext, get_context, get_session
from ..models import File, Share, User
from ..permissions import require
from ..realtime import publish
from ..schemas import (
    FileSummary,
    PublicFileOut,
    PublicLinkCreate,
    ShareCreate,
    SharedFile,
    ShareListing,
    ShareListItem,
    ShareOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/shares", tags=["shares"])

# 24 random bytes, 48 hex characters
PUBLIC_TOKEN_BYTES = 24


def new_public_token() -> str:
    return secrets.token_hex(PUBLIC_TOKEN_BYTES)


def as_utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def clamp_paging(page: int, limit: int):
    return max(1, page), min(100, max(1, limit))


def share_item(share: Share, f: File, owner_email: Optional[str] = None, with_recipient: bool = False) -> ShareListItem:
    return ShareListItem(
        id=share.id,
        permissions=share.permissions,
        share_type=share.share_type,
        expires_at=share.expires_at,
        created_at=share.created_at,
        shared_with_email=share.shared_with_email if with_recipient else None,
        owner_email=owner_email,
        file=SharedFile(id=f.id, name=f.name, size=f.size, type=f.mime_type, created_at=f.created_at),
    )


@router.get("/shared-with-me", response_model=ShareListing)
def shared_with_me(
    page: int = 1,
    limit: int = 20,
    search: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    page, limit = clamp_paging(page, limit)
    search = (search or "").strip()
    owner = aliased(User)
    stmt = (
        select(Share, File, owner.email)
        .join(File, File.id == Share.file_id)
        .join(owner, owner.id == Share.owner_id)
        .where(Share.share_type == "private")
        .where(Share.shared_with_email == current_user.email)
        .where(File.is_deleted == False)  # noqa: E712
        .order_by(col(Share.created_at).desc(), col(Share.id).desc())
    )
    if len(search) > 1:
        stmt = stmt.where(col(File.name).ilike(f"%{search}%"))

    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    rows = session.exec(stmt.offset((page - 1) * limit).limit(limit)).all()
    return ShareListing(
        shares=[share_item(s, f, owner_email=email) for s, f, email in rows],
        page=page,
        limit=limit,
        total=total,
    )


@router.get("/shared-by-me", response_model=ShareListing)
def shared_by_me(
    page: int = 1,
    limit: int = 20,
    search: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    page, limit = clamp_paging(page, limit)
    search = (search or "").strip()
    stmt = (
        select(Share, File)
        .join(File, File.id == Share.file_id)
        .where(Share.owner_id == current_user.id)
        .order_by(col(Share.created_at).desc(), col(Share.id).desc())
    )
    if len(search) > 1:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(col(File.name).ilike(pattern), col(Share.shared_with_email).ilike(pattern)))

    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    rows = session.exec(stmt.offset((page - 1) * limit).limit(limit)).all()
    return ShareListing(
        shares=[share_item(s, f, with_recipient=True) for s, f in rows],
        page=page,
        limit=limit,
        total=total,
    )


@router.get("/public/{token}", response_model=PublicFileOut)
def resolve_public_link(
    token: str,
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_session),
):
    share = session.exec(
        select(Share).where(Share.public_token == token).where(Share.share_type == "public")
    ).first()
    f = session.get(File, share.file_id) if share else None
    if share is None or f is None or f.is_deleted or not f.path:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Link not found")
    if share.expires_at and share.expires_at < datetime.utcnow():
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Link expired")
    return PublicFileOut(
        file=FileSummary(id=f.id, name=f.name, size=f.size, type=f.mime_type),
        downloadUrl=ctx.blobs.signed_url(f.path, ctx.settings.signed_url_expire_seconds),
    )


@router.delete("/public/{token}")
async def revoke_public_link(
    token: str,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_session),
):
    share = session.exec(
        select(Share)
        .where(Share.public_token == token)
        .where(Share.share_type == "public")
        .where(Share.owner_id == current_user.id)
    ).first()
    if share is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Link not found")
    share_id, file_id = share.id, share.file_id
    session.delete(share)
    session.commit()
    publish(background_tasks, ctx.notifier, current_user.id, "share:revoked", {"id": share_id, "file_id": file_id})
    return {"message": "Public link revoked"}


@router.post("/{file_id}/share")
async def share_file(
    file_id: int,
    body: ShareCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_session),
):
    require(session, current_user.id, file_id, "owner")
    email = normalize_email(str(body.email))
    if email == current_user.email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot share a file with yourself")
    if get_user_by_email(session, email) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    existing = session.exec(
        select(Share)
        .where(Share.file_id == file_id)
        .where(Share.share_type == "private")
        .where(Share.shared_with_email == email)
    ).first()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="File already shared with this user")

    share = Share(
        file_id=file_id,
        owner_id=current_user.id,
        shared_with_email=email,
        permissions=body.permissions,
        share_type="private",
    )
    session.add(share)
    try:
        session.commit()
    except IntegrityError:
        # another request created the same share in between
        session.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="File already shared with this user")
    session.refresh(share)

    publish(background_tasks, ctx.notifier, current_user.id, "share:created", {
        "id": share.id,
        "file_id": share.file_id,
        "shared_with_email": share.shared_with_email,
        "permissions": share.permissions,
        "created_at": share.created_at,
    })
    return {"message": "File shared successfully", "share": ShareOut.model_validate(share)}


@router.delete("/{file_id}/shares/{share_id}")
async def revoke_share(
    file_id: int,
    share_id: int,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_session),
):
    require(session, current_user.id, file_id, "owner")
    share = session.exec(select(Share).where(Share.id == share_id).where(Share.file_id == file_id)).first()
    if share is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Share not found")
    session.delete(share)
    session.commit()
    publish(background_tasks, ctx.notifier, current_user.id, "share:revoked", {"id": share_id, "file_id": file_id})
    return {"message": "Share revoked successfully"}


@router.post("/{file_id}/public")
async def create_public_link(
    file_id: int,
    background_tasks: BackgroundTasks,
    body: Optional[PublicLinkCreate] = None,
    current_user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_session),
):
    require(session, current_user.id, file_id, "owner")
    share = Share(
        file_id=file_id,
        owner_id=current_user.id,
        shared_with_email="",
        permissions="view",
        share_type="public",
        public_token=new_public_token(),
        expires_at=as_utc_naive(body.expiresAt) if body else None,
    )
    session.add(share)
    session.commit()
    session.refresh(share)
    publish(background_tasks, ctx.notifier, current_user.id, "share:created", {
        "id": share.id,
        "file_id": share.file_id,
        "share_type": share.share_type,
        "expires_at": share.expires_at,
        "created_at": share.created_at,
    })
    return {"message": "Public link created", "token": share.public_token, "share": ShareOut.model_validate(share)}
