# Filename: clouddrive/billing.py
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import stripe

from .config import Settings

logger = logging.getLogger(__name__)

PRICE_ID_RE = re.compile(r"^price_[A-Za-z0-9]+$")


def is_valid_price_id(value: Optional[str]) -> bool:
    # placeholders such as "price_123..." from sample env files don't count
    return bool(value) and PRICE_ID_RE.match(value) is not None


@dataclass(frozen=True)
class Plan:
    id: str
    name: str
    description: str
    price_monthly: int
    currency: str
    price_id: Optional[str]
    storage_limit_bytes: int
    file_count_limit: int

    @property
    def has_price(self) -> bool:
        return is_valid_price_id(self.price_id)


def build_plans(settings: Settings) -> List[Plan]:
    """The plan catalog. Free must stay first: cancellations fall back to it."""
    return [
        Plan(
            id="free",
            name="Free",
            description="Great to get started",
            price_monthly=0,
            currency="usd",
            price_id=None,
            storage_limit_bytes=settings.free_storage_limit_bytes,
            file_count_limit=settings.free_file_count_limit,
        ),
        Plan(
            id="pro",
            name="Pro",
            description="For power users",
            price_monthly=settings.pro_price_monthly,
            currency="usd",
            price_id=settings.stripe_price_id_pro if is_valid_price_id(settings.stripe_price_id_pro) else None,
            storage_limit_bytes=settings.pro_storage_limit_bytes,
            file_count_limit=settings.pro_file_count_limit,
        ),
        Plan(
            id="business",
            name="Business",
            description="For teams and heavy usage",
            price_monthly=settings.business_price_monthly,
            currency="usd",
            price_id=settings.stripe_price_id_business if is_valid_price_id(settings.stripe_price_id_business) else None,
            storage_limit_bytes=settings.business_storage_limit_bytes,
            file_count_limit=settings.business_file_count_limit,
        ),
    ]


def find_plan(plans: List[Plan], plan_id: Optional[str] = None, price_id: Optional[str] = None) -> Optional[Plan]:
    for plan in plans:
        if price_id and plan.price_id == price_id:
            return plan
        if not price_id and plan_id and plan.id == plan_id:
            return plan
    return None


class WebhookSignatureError(Exception):
    pass


class StripeBilling:
    """Thin wrapper over the Stripe SDK for checkout and webhooks."""

    def __init__(self, secret_key: Optional[str], webhook_secret: Optional[str] = None):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        if not secret_key:
            logger.warning("stripe secret key is not set, billing endpoints are disabled")

    @property
    def enabled(self) -> bool:
        return bool(self.secret_key)

    def create_checkout_session(
        self,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        customer_email: Optional[str] = None,
    ) -> str:
        session = stripe.checkout.Session.create(
            api_key=self.secret_key,
            mode="subscription",
            line_items=[{"price": price_id, "quantity": 1}],
            success_url=success_url,
            cancel_url=cancel_url,
            customer_email=customer_email,
            metadata=metadata,
            subscription_data={"metadata": metadata},
        )
        return session.url

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify the Stripe-Signature header and decode the event.

        Without a webhook secret the payload is trusted as-is; that is only
        meant for local development.
        """
        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise WebhookSignatureError("payload is not valid UTF-8") from e
        if self.webhook_secret:
            try:
                stripe.WebhookSignature.verify_header(body, signature or "", self.webhook_secret)
            except stripe.SignatureVerificationError as e:
                raise WebhookSignatureError(str(e)) from e
        try:
            event = json.loads(body)
        except ValueError as e:
            raise WebhookSignatureError("invalid payload") from e
        if not isinstance(event, dict):
            raise WebhookSignatureError("invalid payload")
        return event
