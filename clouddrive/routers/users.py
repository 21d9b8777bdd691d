# Filename: clouddrive/routers/users.py
from fastapi import APIRouter, Depends
from sqlmodel import Session

from ..auth import get_current_user
from ..context import AppContext, get_context, get_session
from ..models import User
from ..quota import QuotaLedger
from ..schemas import QuotaOut

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/quota")
def get_quota(
    current_user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_session),
):
    usage = QuotaLedger(session, ctx.free_plan).usage(current_user.id)
    return {"quota": QuotaOut.model_validate(usage)}
