# Filename: clouddrive/routers/files.py
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File as FormFile, Form, HTTPException, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy import func, or_, text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from ..auth import get_current_user
from ..catalog import blob_sizes, discard_blob, ensure_parent_folder, erase_rows, is_descendant_or_self, subtree
from ..context import AppContext, get_context, get_session
from ..models import File, User
from ..permissions import require
from ..quota import QuotaLedger, quota_exceeded
from ..realtime import publish
from ..schemas import DownloadOut, FileListing, FileOut, FileSummary, FileUpdate, FolderCreate
from ..storage import file_extension, measure_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["files"])

SORT_FIELDS = {
    "name": File.name,
    "size": File.size,
    "created_at": File.created_at,
    "updated_at": File.updated_at,
}


# --- Signed blob retrieval (no auth: the token is the credential) ---
@router.get("/blob/{token}")
def get_blob(token: str, ctx: AppContext = Depends(get_context), session: Session = Depends(get_session)):
    key = ctx.blobs.resolve_signed(token)
    if not key:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired link")
    try:
        path = ctx.blobs.get_file_path(key)
    except ValueError:
        path = ""
    if not path:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File missing in storage")
    f = session.exec(select(File).where(File.path == key)).first()
    if f is None:
        return FileResponse(path, media_type="application/octet-stream")
    return FileResponse(path, media_type=f.mime_type or "application/octet-stream", filename=f.name)


# --- Upload file with quota ---
@router.post("/upload")
async def upload_file(
    background_tasks: BackgroundTasks,
    file: UploadFile = FormFile(...),
    parentId: Optional[int] = Form(default=None),
    current_user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_session),
):
    user_id = current_user.id
    size = measure_upload(file)
    if size > ctx.settings.max_upload_bytes:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File exceeds the upload size limit")
    if parentId is not None:
        ensure_parent_folder(session, user_id, parentId)

    ledger = QuotaLedger(session, ctx.free_plan)
    check = ledger.check_upload_allowed(user_id, size)
    if not check.allowed:
        raise quota_exceeded(check)

    key = ctx.blobs.make_key(user_id, file.filename)
    written = await ctx.blobs.save(file, key)
    try:
        if not ledger.charge(user_id, written, 1):
            # lost a race with another upload since the check above
            session.rollback()
            discard_blob(ctx.blobs, key)
            raise quota_exceeded(ledger.check_upload_allowed(user_id, written))
        name = file.filename or key.rsplit("/", 1)[-1]
        f = File(
            owner_id=user_id,
            parent_id=parentId,
            name=name,
            original_name=name,
            size=written,
            mime_type=file.content_type or "application/octet-stream",
            extension=file_extension(name),
            path=key,
        )
        session.add(f)
        session.commit()
        session.refresh(f)
    except SQLAlchemyError:
        session.rollback()
        discard_blob(ctx.blobs, key)
        raise

    out = FileOut.model_validate(f)
    publish(background_tasks, ctx.notifier, user_id, "file:created", {
        "id": f.id,
        "name": f.name,
        "size": f.size,
        "type": f.mime_type,
        "path": f.path,
        "created_at": f.created_at,
    })
    return {"message": "File uploaded successfully", "file": out}


# --- List files (filters + pagination + search) ---
@router.get("/", response_model=FileListing)
def list_files(
    deleted: bool = False,
    parentId: Optional[str] = None,
    starred: bool = False,
    recent: bool = False,
    page: int = 1,
    limit: int = 20,
    search: Optional[str] = None,
    sortBy: str = "created_at",
    sortOrder: str = "desc",
    current_user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_session),
):
    page = max(1, page)
    limit = min(100, max(1, limit))
    search = (search or "").strip()

    stmt = select(File).where(File.owner_id == current_user.id).where(File.is_deleted == deleted)
    if parentId is not None:
        if parentId in ("", "root", "null"):
            stmt = stmt.where(col(File.parent_id).is_(None))
        elif parentId.isdigit():
            stmt = stmt.where(File.parent_id == int(parentId))
        else:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid parentId")
    if starred:
        stmt = stmt.where(File.is_starred == True)  # noqa: E712

    if recent:
        stmt = stmt.where(File.is_folder == False).order_by(col(File.updated_at).desc())  # noqa: E712
    else:
        sort_col = col(SORT_FIELDS.get(sortBy, File.created_at))
        stmt = stmt.order_by(sort_col.asc() if sortOrder == "asc" else sort_col.desc())
    stmt = stmt.order_by(col(File.id).desc())

    offset = (page - 1) * limit
    searching = len(search) > 1

    if searching and ctx.settings.use_fts:
        fts_stmt = stmt.where(text("search_vector @@ plainto_tsquery('english', :q)").bindparams(q=search))
        try:
            total = session.exec(select(func.count()).select_from(fts_stmt.subquery())).one()
            files = session.exec(fts_stmt.offset(offset).limit(limit)).all()
            return FileListing(
                files=[FileOut.model_validate(f) for f in files], page=page, limit=limit, total=total, fts=True
            )
        except SQLAlchemyError as e:
            session.rollback()
            logger.warning("FTS failed, falling back to ILIKE: %s", e.__class__.__name__)

    if searching:
        pattern = f"%{search}%"
        stmt = stmt.where(or_(col(File.name).ilike(pattern), col(File.original_name).ilike(pattern)))

    total = session.exec(select(func.count()).select_from(stmt.subquery())).one()
    files = session.exec(stmt.offset(offset).limit(limit)).all()
    return FileListing(files=[FileOut.model_validate(f) for f in files], page=page, limit=limit, total=total, fts=False)


@router.post("/folders", status_code=status.HTTP_201_CREATED)
async def create_folder(
    data: FolderCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_session),
):
    name = data.name.strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Folder name is required")
    if data.parentId is not None:
        ensure_parent_folder(session, current_user.id, data.parentId)
    folder = File(
        owner_id=current_user.id,
        parent_id=data.parentId,
        name=name,
        original_name=name,
        size=0,
        mime_type="folder",
        is_folder=True,
    )
    session.add(folder)
    session.commit()
    session.refresh(folder)
    publish(background_tasks, ctx.notifier, current_user.id, "folder:created", {
        "id": folder.id,
        "name": folder.name,
        "parent_id": folder.parent_id,
        "created_at": folder.created_at,
    })
    return {"message": "Folder created", "folder": FileOut.model_validate(folder)}


# --- Rename / move / star ---
@router.patch("/{file_id}")
async def update_file(
    file_id: int,
    body: FileUpdate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_session),
):
    changes = body.model_dump(exclude_unset=True)
    moving = "parentId" in changes
    f = require(session, current_user.id, file_id, "owner" if moving else "edit")

    updated = False
    name = changes.get("name")
    if isinstance(name, str) and name.strip():
        f.name = name.strip()
        f.original_name = name.strip()
        updated = True
    if moving:
        parent_id = changes["parentId"]
        if parent_id is not None:
            ensure_parent_folder(session, f.owner_id, parent_id)
            if is_descendant_or_self(session, f.id, parent_id):
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot move a folder into itself")
        f.parent_id = parent_id
        updated = True
    if isinstance(changes.get("starred"), bool):
        f.is_starred = changes["starred"]
        updated = True
    if not updated:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No changes provided")

    f.updated_at = datetime.utcnow()
    session.add(f)
    session.commit()
    session.refresh(f)
    publish(background_tasks, ctx.notifier, f.owner_id, "file:updated", {
        "id": f.id,
        "name": f.name,
        "parent_id": f.parent_id,
        "is_starred": f.is_starred,
        "updated_at": f.updated_at,
    })
    return {"message": "File updated", "file": FileOut.model_validate(f)}


# --- Soft delete (move to trash) ---
@router.delete("/{file_id}")
async def delete_file(
    file_id: int,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_session),
):
    f = require(session, current_user.id, file_id, "owner")
    if f.is_deleted:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="File already in trash")
    f.is_deleted = True
    f.deleted_at = datetime.utcnow()
    session.add(f)
    session.commit()
    publish(background_tasks, ctx.notifier, current_user.id, "file:deleted", {"id": file_id, "soft": True})
    return {"message": "File moved to trash"}


@router.post("/{file_id}/restore")
async def restore_file(
    file_id: int,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_session),
):
    f = require(session, current_user.id, file_id, "owner")
    if not f.is_deleted:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="File is not in trash")
    f.is_deleted = False
    f.deleted_at = None
    session.add(f)
    session.commit()
    publish(background_tasks, ctx.notifier, current_user.id, "file:restored", {"id": file_id})
    return {"message": "File restored"}


# --- Permanent delete (storage + DB) ---
@router.delete("/{file_id}/permanent")
async def delete_file_permanently(
    file_id: int,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_session),
):
    f = require(session, current_user.id, file_id, "owner")
    nodes = subtree(session, f)

    keys = {}
    file_count = 0
    for node in nodes:
        keys.update(blob_sizes(session, node))
        if not node.is_folder:
            file_count += 1

    # blob removal is best-effort; the rows go regardless
    for key in keys:
        discard_blob(ctx.blobs, key)

    erase_rows(session, nodes)
    QuotaLedger(session, ctx.free_plan).release(current_user.id, sum(keys.values()), file_count)
    session.commit()

    publish(background_tasks, ctx.notifier, current_user.id, "file:deleted", {"id": file_id, "soft": False})
    return {"message": "File permanently deleted"}


# --- Download (signed URL) - owner or shared user with at least view ---
@router.get("/{file_id}/download", response_model=DownloadOut)
def download_file(
    file_id: int,
    current_user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_session),
):
    f = require(session, current_user.id, file_id, "view")
    if f.is_deleted or f.is_folder or not f.path:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return DownloadOut(
        downloadUrl=ctx.blobs.signed_url(f.path, ctx.settings.signed_url_expire_seconds),
        file=FileSummary(id=f.id, name=f.name, size=f.size, type=f.mime_type),
    )
