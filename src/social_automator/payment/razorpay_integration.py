"""
Razorpay subscriptions.

Razorpay is called over its REST API with HTTP basic auth (key ID and key
secret). Checkout happens in the browser; the dashboard then posts the
payment ID, subscription ID and signature back for verification.
"""

import os
import hmac
import json
import hashlib
import logging
from typing import Any, Dict, Optional
from datetime import datetime, timezone
from supabase import Client
import aiohttp

from .plans import PLANS, get_plan, get_price_id
from .usage import SUBSCRIPTIONS_TABLE, get_subscription, save_subscription
from ..database.client import execute
from ..database.models import PlanName, SubscriptionStatus
from ..errors import ForbiddenError, NotFoundError, PlatformError, ServiceUnavailableError, ValidationError
from ..platforms.base import DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

RAZORPAY_API = "https://api.razorpay.com/v1"
# Razorpay caps billing cycles, 120 months is the usual maximum
TOTAL_BILLING_CYCLES = 120


def _credentials() -> aiohttp.BasicAuth:
    key_id = os.getenv("RAZORPAY_KEY_ID")
    key_secret = os.getenv("RAZORPAY_KEY_SECRET")
    if not key_id or not key_secret:
        raise ServiceUnavailableError("Payment gateway not configured")
    return aiohttp.BasicAuth(key_id, key_secret)


def _sign(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def _timestamp(value: Optional[int]) -> Optional[str]:
    if not value:
        return None
    return datetime.fromtimestamp(value, timezone.utc).isoformat()


def plan_for_razorpay_plan(plan_id: Optional[str]) -> Optional[str]:
    """Reverse lookup of a configured Razorpay plan ID."""
    if not plan_id:
        return None
    for name, plan in PLANS.items():
        if plan_id in (plan.razorpay_monthly_plan_id, plan.razorpay_annual_plan_id):
            return name
    return None


class RazorpayClient:
    """Minimal Razorpay REST client for subscriptions."""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self._session = session
        self._owns_session = session is None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=DEFAULT_TIMEOUT)
        return self._session

    async def close(self):
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        auth = _credentials()
        url = f"{RAZORPAY_API}{path}"
        if method == "GET":
            request = self.session.get(url, auth=auth)
        else:
            request = self.session.post(url, json=payload or {}, auth=auth)

        async with request as response:
            status = response.status
            try:
                body = await response.json(content_type=None)
            except ValueError:
                body = None

        if status >= 400 or not isinstance(body, dict):
            error = (body.get("error") if isinstance(body, dict) else None) or {}
            message = error.get("description") or f"Razorpay request failed ({status})"
            logger.error(f"❌ Razorpay {method} {path} failed: {message}")
            raise PlatformError(message, "razorpay", status)
        return body

    async def create_subscription(self, plan_id: str, user_id: str) -> Dict[str, Any]:
        return await self._request("POST", "/subscriptions", {
            "plan_id": plan_id,
            "customer_notify": 1,
            "total_count": TOTAL_BILLING_CYCLES,
            "notes": {"userId": user_id},
        })

    async def fetch_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/subscriptions/{subscription_id}")

    async def cancel_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"/subscriptions/{subscription_id}/cancel")


async def create_razorpay_subscription(
    client: Client,
    user_id: str,
    plan_name: str,
    interval: str = "monthly",
    razorpay: Optional[RazorpayClient] = None,
) -> Dict[str, Any]:
    """
    Create a Razorpay subscription the dashboard opens checkout for.

    Returns:
        Dict with subscriptionId and the public keyId
    """
    plan = get_plan(plan_name)
    if plan.price == 0:
        raise ValidationError("The free plan does not need a subscription")

    plan_id = get_price_id(plan_name, interval, provider="razorpay")
    if not plan_id:
        raise ValidationError("Plan ID is required")

    _credentials()
    logger.info(f"🔍 Creating Razorpay subscription for user {user_id} on {plan_name} ({interval})")
    async with razorpay or RazorpayClient() as api:
        subscription = await api.create_subscription(plan_id, user_id)

    logger.info(f"✅ Subscription created successfully: {subscription['id']}")
    return {"subscriptionId": subscription["id"], "keyId": os.getenv("RAZORPAY_KEY_ID")}


def verify_payment_signature(payment_id: str, subscription_id: str, signature: str) -> bool:
    """HMAC-SHA256 of ``payment_id|subscription_id`` keyed with the key secret."""
    secret = os.getenv("RAZORPAY_KEY_SECRET")
    if not secret:
        raise ServiceUnavailableError("Payment gateway not configured")
    expected = _sign(secret, f"{payment_id}|{subscription_id}".encode())
    return hmac.compare_digest(expected, signature or "")


async def verify_razorpay_payment(
    client: Client,
    user_id: str,
    payment_id: str,
    subscription_id: str,
    signature: str,
    plan_name: Optional[str] = None,
    razorpay: Optional[RazorpayClient] = None,
) -> Dict[str, Any]:
    """
    Verify a completed checkout and activate the plan it was paid for.

    The plan is read from the Razorpay subscription, never from the caller.
    ``plan_name``, when given, must match it.

    Raises:
        ValidationError: If the signature does not match or the plan is unknown or different
        ForbiddenError: If the subscription was created for another user
    """
    if not verify_payment_signature(payment_id, subscription_id, signature):
        logger.warning(f"Invalid Razorpay payment signature for user {user_id}")
        raise ValidationError("Invalid payment signature")

    async with razorpay or RazorpayClient() as api:
        details = await api.fetch_subscription(subscription_id)

    owner = (details.get("notes") or {}).get("userId")
    if owner != user_id:
        logger.warning(f"User {user_id} tried to verify subscription {subscription_id} of user {owner}")
        raise ForbiddenError("Subscription belongs to another user")

    plan = plan_for_razorpay_plan(details.get("plan_id"))
    if plan is None:
        raise ValidationError("Unknown subscription plan")
    if plan_name and plan_name.strip().lower() != plan:
        raise ValidationError(f"Subscription is for the {get_plan(plan).name} plan")

    await save_subscription(
        client,
        user_id,
        plan=plan,
        status=SubscriptionStatus.ACTIVE.value,
        razorpay_subscription_id=subscription_id,
        razorpay_customer_id=details.get("customer_id"),
        current_period_end=_timestamp(details.get("current_end")),
        trial_ends_at=None,
    )
    logger.info(f"✅ Payment verified, user {user_id} is now on {plan}")
    return {"success": True}


async def cancel_subscription(
    client: Client,
    user_id: str,
    razorpay: Optional[RazorpayClient] = None,
) -> Dict[str, Any]:
    """Cancel the user's Razorpay subscription and move them to free."""
    subscription = await get_subscription(client, user_id)
    subscription_id = (subscription or {}).get("razorpay_subscription_id")
    if not subscription_id:
        raise NotFoundError("No active subscription found")

    async with razorpay or RazorpayClient() as api:
        await api.cancel_subscription(subscription_id)

    await save_subscription(
        client, user_id, status=SubscriptionStatus.CANCELLED.value, plan=PlanName.FREE.value
    )
    logger.info(f"Cancelled Razorpay subscription {subscription_id} for user {user_id}")
    return {"success": True}


async def _set_status(client: Client, subscription_id: str, update: Dict[str, Any]) -> int:
    update = {**update, "updated_at": datetime.now(timezone.utc).isoformat()}
    rows = await execute(
        client.table(SUBSCRIPTIONS_TABLE).update(update).eq("razorpay_subscription_id", subscription_id)
    )
    return len(rows)


async def handle_razorpay_webhook(client: Client, raw_body: bytes, signature: Optional[str]) -> Dict[str, Any]:
    """
    Verify and apply a Razorpay webhook.

    The signature is an HMAC-SHA256 of the raw request body keyed with
    RAZORPAY_WEBHOOK_SECRET.
    """
    secret = os.getenv("RAZORPAY_WEBHOOK_SECRET")
    if not secret:
        raise ServiceUnavailableError("Razorpay webhooks not configured")
    if not signature or not hmac.compare_digest(_sign(secret, raw_body), signature):
        logger.error("❌ Webhook error: Invalid webhook signature")
        raise ValidationError("Invalid webhook signature")

    try:
        event = json.loads(raw_body)
    except ValueError:
        raise ValidationError("Invalid webhook payload")

    event_type = event.get("event")
    entity = (((event.get("payload") or {}).get("subscription") or {}).get("entity")) or {}
    subscription_id = entity.get("id")

    if event_type == "subscription.charged":
        if not (entity.get("notes") or {}).get("userId"):
            logger.error("⚠️ User ID not found in subscription notes")
        updated = await _set_status(client, subscription_id, {
            "status": SubscriptionStatus.ACTIVE.value,
            "current_period_end": _timestamp(entity.get("current_end")),
        })
    elif event_type in ("subscription.cancelled", "subscription.halted"):
        updated = await _set_status(client, subscription_id, {
            "status": SubscriptionStatus.CANCELLED.value,
            "plan": PlanName.FREE.value,
        })
    else:
        return {"received": True, "type": event_type, "handled": False}

    logger.info(f"📨 Razorpay webhook {event_type} applied to {updated} subscription(s)")
    return {"received": True, "type": event_type, "handled": updated > 0}
