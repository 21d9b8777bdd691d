# Filename: clouddrive/routers/root.py
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from ..config import settings
from ..context import get_session

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/health", tags=["root"])
def health():
    """
    Health check with app version.
    """
    return {
        "app_name": settings.app_name,
        "app_version": settings.app_version,
        "status": "OK",
    }


@router.get("/api/health/db", tags=["root"])
def health_db(session: Session = Depends(get_session)):
    try:
        session.connection().execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("database health check failed")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable")
    return {"ok": True}
