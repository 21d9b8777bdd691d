# Filename: clouddrive/routers/billing.py
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlmodel import Session

from ..auth import get_current_user
from ..billing import Plan, WebhookSignatureError, find_plan
from ..context import AppContext, get_context, get_session
from ..models import User
from ..quota import QuotaLedger
from ..schemas import CheckoutRequest, PlanOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/billing", tags=["billing"])

PLAN_EVENTS = ("checkout.session.completed", "customer.subscription.created", "customer.subscription.updated")
CANCEL_EVENTS = ("customer.subscription.deleted",)


def plan_out(plan: Plan) -> PlanOut:
    return PlanOut(
        id=plan.id,
        name=plan.name,
        description=plan.description,
        priceMonthly=plan.price_monthly,
        currency=plan.currency,
        storageLimitBytes=plan.storage_limit_bytes,
        fileCountLimit=plan.file_count_limit,
        hasPrice=plan.has_price,
    )


@router.get("/prices")
def list_prices(ctx: AppContext = Depends(get_context)) -> Dict[str, List[PlanOut]]:
    return {"plans": [plan_out(p) for p in ctx.plans]}


@router.post("/checkout")
def create_checkout(
    body: CheckoutRequest,
    current_user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    if not ctx.billing.enabled:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Billing not configured")
    plan = find_plan(ctx.plans, plan_id=body.planId, price_id=body.priceId)
    if plan is None or not plan.has_price:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Plan is not configured. Please try again later.",
        )

    client_url = ctx.settings.client_url.rstrip("/")
    metadata = {"userId": str(current_user.id), "planId": plan.id}
    try:
        url = ctx.billing.create_checkout_session(
            price_id=plan.price_id,
            success_url=f"{client_url}/profile?billing=success",
            cancel_url=f"{client_url}/profile?billing=cancel",
            metadata=metadata,
            customer_email=current_user.email,
        )
    except Exception as e:
        logger.exception("checkout failed for user %s", current_user.id)
        # provider message is safe to show and tells the user what to fix
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e) or "Internal server error")
    return {"url": url}


def _metadata(event: Dict[str, Any]) -> Dict[str, Any]:
    obj = (event.get("data") or {}).get("object") or {}
    return obj.get("metadata") or {}


def _user_id(metadata: Dict[str, Any]) -> Optional[int]:
    raw = metadata.get("userId")
    if raw is None or not str(raw).isdigit():
        return None
    return int(raw)


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    ctx: AppContext = Depends(get_context),
    session: Session = Depends(get_session),
):
    payload = await request.body()
    try:
        event = ctx.billing.parse_webhook(payload, request.headers.get("stripe-signature"))
    except WebhookSignatureError as e:
        logger.warning("webhook signature verification failed: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Webhook Error: {e}")

    event_type = event.get("type")
    metadata = _metadata(event)
    user_id = _user_id(metadata)
    ledger = QuotaLedger(session, ctx.free_plan)

    if event_type in PLAN_EVENTS:
        plan = find_plan(ctx.plans, plan_id=metadata.get("planId"))
        if user_id is not None and plan is not None and session.get(User, user_id) is not None:
            ledger.apply_plan(user_id, plan)
            session.commit()
    elif event_type in CANCEL_EVENTS:
        if user_id is not None and session.get(User, user_id) is not None:
            ledger.apply_plan(user_id, ctx.free_plan)
            session.commit()
    else:
        logger.debug("ignoring stripe event %s", event_type)

    return {"received": True}
