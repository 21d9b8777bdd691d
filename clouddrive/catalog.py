# Filename: clouddrive/catalog.py
import logging
from typing import Dict, List, Optional

from fastapi import HTTPException, status
from sqlmodel import Session, col, select

from .models import File, FileVersion, Share
from .storage import BlobStore

logger = logging.getLogger(__name__)


def ensure_parent_folder(session: Session, owner_id: int, parent_id: int) -> File:
    parent = session.get(File, parent_id)
    if not parent or parent.owner_id != owner_id or not parent.is_folder:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Parent folder not found")
    return parent


def is_descendant_or_self(session: Session, node_id: int, candidate_id: int) -> bool:
    """True if ``candidate_id`` is ``node_id`` or lies somewhere below it."""
    current: Optional[int] = candidate_id
    seen = set()
    while current is not None and current not in seen:
        if current == node_id:
            return True
        seen.add(current)
        parent = session.get(File, current)
        current = parent.parent_id if parent else None
    return False


def subtree(session: Session, root: File) -> List[File]:
    """``root`` followed by all of its descendants, parents before children."""
    nodes = [root]
    frontier = [root.id] if root.is_folder else []
    while frontier:
        children = session.exec(select(File).where(col(File.parent_id).in_(frontier))).all()
        nodes.extend(children)
        frontier = [c.id for c in children if c.is_folder]
    return nodes


def blob_sizes(session: Session, node: File) -> Dict[str, int]:
    """Every blob key reachable from a node (its current content and its history)."""
    keys: Dict[str, int] = {}
    if node.path and not node.is_folder:
        keys[node.path] = node.size
    for v in session.exec(select(FileVersion).where(FileVersion.file_id == node.id)).all():
        keys.setdefault(v.path, v.size)
    return keys


def version_references(session: Session, file_id: int, key: Optional[str]) -> bool:
    if not key:
        return False
    stmt = select(FileVersion.id).where(FileVersion.file_id == file_id).where(FileVersion.path == key)
    return session.exec(stmt).first() is not None


def erase_rows(session: Session, nodes: List[File]) -> None:
    """Delete nodes with their versions and shares, children first."""
    for node in reversed(nodes):
        for v in session.exec(select(FileVersion).where(FileVersion.file_id == node.id)).all():
            session.delete(v)
        for s in session.exec(select(Share).where(Share.file_id == node.id)).all():
            session.delete(s)
        session.delete(node)
        session.flush()


def discard_blob(blobs: BlobStore, key: Optional[str]) -> None:
    """Remove a blob, logging instead of failing."""
    if not key:
        return
    try:
        blobs.remove(key)
    except (OSError, ValueError):
        logger.exception("storage deletion failed for %s", key)
