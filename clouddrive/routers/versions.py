# Filename: clouddrive/routers/versions.py
import logging
from datetime import datetime
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, File as FormFile, HTTPException, UploadFile, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, col, select

from ..auth import get_current_user
from ..catalog import discard_blob, version_references
from ..context import AppContext, get_context, get_session
from ..models import File, FileVersion, User
from ..permissions import require
from ..quota import QuotaLedger, quota_exceeded
from ..realtime import publish
from ..schemas import VersionOut
from ..storage import file_extension, measure_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["versions"])


def next_version_number(session: Session, file_id: int) -> int:
    last = session.exec(select(func.max(FileVersion.version_number)).where(FileVersion.file_id == file_id)).one()
    return (last or 0) + 1


def version_conflict() -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Concurrent version update, please retry")


@router.post("/{file_id}/versions")
async def create_version(
    file_id: int,
    background_tasks: BackgroundTasks,
    file: UploadFile = FormFile(...),
    current_user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_session),
):
    user_id = current_user.id
    f = require(session, user_id, file_id, "owner")
    if f.is_deleted or f.is_folder:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    size = measure_upload(file)
    if size > ctx.settings.max_upload_bytes:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File exceeds the upload size limit")
    ledger = QuotaLedger(session, ctx.free_plan)
    check = ledger.check_upload_allowed(user_id, size, new_files=0)
    if not check.allowed:
        raise quota_exceeded(check)

    key = ctx.blobs.make_key(user_id, file.filename, prefix=f"versions/{file_id}")
    written = await ctx.blobs.save(file, key)

    # content uploaded before the first version is not in the history,
    # so nothing can point at it once the file moves on
    old_path, old_size = f.path, f.size
    orphaned = bool(old_path) and not version_references(session, file_id, old_path)
    try:
        if not ledger.charge(user_id, written, 0):
            session.rollback()
            discard_blob(ctx.blobs, key)
            raise quota_exceeded(ledger.check_upload_allowed(user_id, written, new_files=0))
        version = FileVersion(
            file_id=file_id,
            version_number=next_version_number(session, file_id),
            size=written,
            path=key,
            change_type="update",
            created_by=user_id,
        )
        session.add(version)
        f.size = written
        f.mime_type = file.content_type or "application/octet-stream"
        f.extension = file_extension(file.filename)
        f.path = key
        f.updated_at = datetime.utcnow()
        session.add(f)
        if orphaned:
            ledger.release(user_id, old_size, 0)
        session.commit()
        session.refresh(version)
    except IntegrityError:
        session.rollback()
        discard_blob(ctx.blobs, key)
        raise version_conflict()
    except SQLAlchemyError:
        session.rollback()
        discard_blob(ctx.blobs, key)
        raise

    if orphaned:
        discard_blob(ctx.blobs, old_path)
    publish(background_tasks, ctx.notifier, user_id, "file:updated", {"id": file_id, "version": version.version_number})
    return {"message": "New version created", "version": VersionOut.model_validate(version)}


@router.get("/{file_id}/versions")
def list_versions(
    file_id: int,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    require(session, current_user.id, file_id, "owner")
    versions: List[FileVersion] = session.exec(
        select(FileVersion)
        .where(FileVersion.file_id == file_id)
        .order_by(col(FileVersion.version_number).desc())
    ).all()
    return {"versions": [VersionOut.model_validate(v) for v in versions]}


@router.post("/{file_id}/versions/{version_number}/restore")
async def restore_version(
    file_id: int,
    version_number: int,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_session),
):
    f: File = require(session, current_user.id, file_id, "owner")
    target = session.exec(
        select(FileVersion)
        .where(FileVersion.file_id == file_id)
        .where(FileVersion.version_number == version_number)
    ).first()
    if target is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Version not found")

    f.path = target.path
    f.size = target.size
    f.updated_at = datetime.utcnow()
    session.add(f)
    restored = FileVersion(
        file_id=file_id,
        version_number=next_version_number(session, file_id),
        size=target.size,
        path=target.path,
        change_type="restore",
        created_by=current_user.id,
    )
    session.add(restored)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise version_conflict()
    session.refresh(restored)

    publish(background_tasks, ctx.notifier, current_user.id, "file:updated", {"id": file_id, "restoredFrom": version_number})
    return {"message": "File restored to selected version", "version": VersionOut.model_validate(restored)}
