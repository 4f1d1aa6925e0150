"""
Stripe billing for Social Media Automator.

This module provides:
- Checkout sessions for the paid plans (monthly or annual)
- Customer portal sessions
- Subscription cancellation
- Webhook handling that keeps the ``subscriptions`` table in sync
"""

import os
import asyncio
import logging
from typing import Any, Callable, Dict, Optional
from datetime import datetime, timezone
import stripe
from supabase import Client

from .plans import PLANS, get_plan, get_price_id
from .usage import SUBSCRIPTIONS_TABLE, get_subscription, save_subscription
from ..config import get_frontend_url
from ..database.client import execute
from ..database.models import PlanName, SubscriptionStatus
from ..errors import NotFoundError, PlatformError, ServiceUnavailableError, ValidationError

logger = logging.getLogger(__name__)

# Stripe subscription statuses mapped onto ours
STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.TRIALING,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "incomplete": SubscriptionStatus.PENDING,
    "incomplete_expired": SubscriptionStatus.CANCELLED,
    "canceled": SubscriptionStatus.CANCELLED,
}


def _configure_stripe():
    api_key = os.getenv("STRIPE_SECRET_KEY")
    if not api_key:
        raise ServiceUnavailableError("Payment gateway not configured")
    stripe.api_key = api_key


async def _stripe_call(func: Callable, *args, **params) -> Any:
    """Run a blocking Stripe SDK call off the event loop."""
    _configure_stripe()
    try:
        return await asyncio.to_thread(func, *args, **params)
    except stripe.StripeError as e:
        logger.error(f"Stripe request failed: {e}")
        raise PlatformError(e.user_message or str(e), "stripe", e.http_status)


def _timestamp(value: Optional[int]) -> Optional[str]:
    if not value:
        return None
    return datetime.fromtimestamp(value, timezone.utc).isoformat()


def plan_for_price(price_id: Optional[str]) -> Optional[str]:
    """Reverse lookup of a configured Stripe price ID."""
    if not price_id:
        return None
    for name, plan in PLANS.items():
        if price_id in (plan.stripe_monthly_price_id, plan.stripe_annual_price_id):
            return name
    return None


async def create_checkout_session(
    client: Client,
    user_id: str,
    email: Optional[str],
    plan_name: str,
    interval: str = "monthly",
) -> Dict[str, Any]:
    """
    Create a Stripe Checkout session for a paid plan.

    Raises:
        ValidationError: For the free plan or a plan without a configured price
        ServiceUnavailableError: If Stripe is not configured
    """
    plan = get_plan(plan_name)
    if plan.price == 0:
        raise ValidationError("The free plan does not need a checkout")

    price_id = get_price_id(plan_name, interval, provider="stripe")
    if not price_id:
        raise ValidationError(f"Stripe price not configured for the {plan.name} plan ({interval})")

    frontend = get_frontend_url()
    metadata = {"user_id": user_id, "plan": plan_name.lower()}
    params: Dict[str, Any] = {
        "mode": "subscription",
        "payment_method_types": ["card"],
        "line_items": [{"price": price_id, "quantity": 1}],
        "success_url": f"{frontend}/settings/billing?success=true&session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": f"{frontend}/settings/billing?canceled=true",
        "metadata": metadata,
        "subscription_data": {"metadata": metadata},
        "allow_promotion_codes": True,
    }

    subscription = await get_subscription(client, user_id)
    if subscription and subscription.get("stripe_customer_id"):
        params["customer"] = subscription["stripe_customer_id"]
    elif email:
        params["customer_email"] = email

    session = await _stripe_call(stripe.checkout.Session.create, **params)
    logger.info(f"Created checkout session {session.id} for user {user_id} ({plan_name} {interval})")
    return {"session_id": session.id, "url": session.url}


async def create_portal_session(client: Client, user_id: str) -> Dict[str, Any]:
    """Customer portal session for managing payment methods and invoices."""
    subscription = await get_subscription(client, user_id)
    customer_id = (subscription or {}).get("stripe_customer_id")
    if not customer_id:
        raise NotFoundError("No billing account found")

    session = await _stripe_call(
        stripe.billing_portal.Session.create,
        customer=customer_id,
        return_url=f"{get_frontend_url()}/settings/billing",
    )
    return {"url": session.url}


async def cancel_stripe_subscription(client: Client, user_id: str, subscription_id: str) -> Dict[str, Any]:
    await _stripe_call(stripe.Subscription.cancel, subscription_id)
    await save_subscription(
        client, user_id, status=SubscriptionStatus.CANCELLED.value, plan=PlanName.FREE.value
    )
    logger.info(f"Cancelled Stripe subscription {subscription_id} for user {user_id}")
    return {"success": True}


async def _update_by(client: Client, column: str, value: Any, update: Dict[str, Any]) -> int:
    update = {**update, "updated_at": datetime.now(timezone.utc).isoformat()}
    rows = await execute(client.table(SUBSCRIPTIONS_TABLE).update(update).eq(column, value))
    return len(rows)


async def _handle_checkout_completed(client: Client, session: Dict[str, Any]) -> bool:
    metadata = session.get("metadata") or {}
    user_id = metadata.get("user_id")
    if not user_id:
        logger.error("No user_id in checkout session metadata")
        return False

    await save_subscription(
        client,
        user_id,
        plan=metadata.get("plan") or PlanName.PRO.value,
        status=SubscriptionStatus.ACTIVE.value,
        stripe_customer_id=session.get("customer"),
        stripe_subscription_id=session.get("subscription"),
    )
    logger.info(f"✅ Checkout completed for user {user_id}, subscription {session.get('subscription')}")
    return True


async def _handle_subscription_updated(client: Client, subscription: Dict[str, Any]) -> bool:
    status = STATUS_MAP.get(subscription.get("status"), SubscriptionStatus.ACTIVE)
    update: Dict[str, Any] = {
        "status": status.value,
        "current_period_end": _timestamp(subscription.get("current_period_end")),
    }

    items = (subscription.get("items") or {}).get("data") or []
    if items:
        plan = plan_for_price((items[0].get("price") or {}).get("id"))
        if plan:
            update["plan"] = plan
    if status == SubscriptionStatus.CANCELLED:
        update["plan"] = PlanName.FREE.value

    updated = await _update_by(client, "stripe_subscription_id", subscription.get("id"), update)
    logger.info(f"Subscription {subscription.get('id')} updated to {status.value}")
    return updated > 0


async def _handle_subscription_deleted(client: Client, subscription: Dict[str, Any]) -> bool:
    updated = await _update_by(
        client,
        "stripe_subscription_id",
        subscription.get("id"),
        {"status": SubscriptionStatus.CANCELLED.value, "plan": PlanName.FREE.value},
    )
    logger.info(f"Subscription {subscription.get('id')} cancelled, user moved to free")
    return updated > 0


async def _handle_payment_failed(client: Client, invoice: Dict[str, Any]) -> bool:
    updated = await _update_by(
        client,
        "stripe_customer_id",
        invoice.get("customer"),
        {"status": SubscriptionStatus.PAST_DUE.value},
    )
    logger.warning(f"Payment failed for customer {invoice.get('customer')}")
    return updated > 0


EVENT_HANDLERS = {
    "checkout.session.completed": _handle_checkout_completed,
    "customer.subscription.updated": _handle_subscription_updated,
    "customer.subscription.deleted": _handle_subscription_deleted,
    "invoice.payment_failed": _handle_payment_failed,
}


async def handle_stripe_webhook(client: Client, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
    """
    Verify and apply a Stripe webhook event.

    Raises:
        ValidationError: If the payload or signature is invalid
        ServiceUnavailableError: If the webhook secret is not configured
    """
    webhook_secret = os.getenv("STRIPE_WEBHOOK_SECRET")
    if not webhook_secret:
        raise ServiceUnavailableError("Stripe webhooks not configured")
    if not signature:
        raise ValidationError("Missing signature header")

    try:
        event = stripe.Webhook.construct_event(payload, signature, webhook_secret)
    except ValueError:
        raise ValidationError("Invalid webhook payload")
    except stripe.SignatureVerificationError as e:
        logger.error(f"Webhook signature verification failed: {e}")
        raise ValidationError("Invalid webhook signature")

    event_type = event["type"]
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info(f"Unhandled webhook event type: {event_type}")
        return {"received": True, "type": event_type, "handled": False}

    logger.info(f"Received webhook event: {event_type}")
    handled = await handler(client, event["data"]["object"])
    return {"received": True, "type": event_type, "handled": handled}
