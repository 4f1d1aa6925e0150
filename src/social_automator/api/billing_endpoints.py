"""
Billing endpoints.

Stripe handles card checkout and the customer portal; Razorpay handles
subscriptions for Indian customers. Provider webhooks live in
``payment.webhook_handler``.
"""

import logging
from typing import Any, Dict, Literal, Optional
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field, field_validator
from supabase import Client

from ..database.client import get_supabase_admin
from ..errors import NotFoundError
from ..middleware.rate_limiter import api_limit, limiter, public_limit
from ..payment.plans import get_all_plans, plan_to_dict
from ..payment.razorpay_integration import (
    cancel_subscription as cancel_razorpay_subscription,
    create_razorpay_subscription,
    verify_razorpay_payment,
)
from ..payment.stripe_integration import cancel_stripe_subscription, create_checkout_session, create_portal_session
from ..payment.usage import get_billing_info, get_subscription
from ..security.auth import get_current_user

logger = logging.getLogger(__name__)

billing_router = APIRouter(prefix="/api/billing", tags=["billing"])

BillingInterval = Literal["monthly", "annual"]


class CheckoutRequest(BaseModel):
    plan: str = Field(..., description="Plan to subscribe to (pro or business)")
    interval: BillingInterval = Field("monthly", description="Billing interval")

    @field_validator("plan")
    @classmethod
    def normalize_plan(cls, v: str) -> str:
        return v.strip().lower()


class RazorpayVerifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    payment_id: str = Field(..., alias="razorpay_payment_id")
    subscription_id: str = Field(..., alias="razorpay_subscription_id")
    signature: str = Field(..., alias="razorpay_signature")
    plan: Optional[str] = Field(None, description="Plan the user expects; must match the subscription")


@billing_router.get("/plans")
@limiter.limit(public_limit)
async def plans(request: Request) -> Dict[str, Any]:
    return {"success": True, "plans": [plan_to_dict(name) for name in get_all_plans()]}


@billing_router.get("/usage")
@limiter.limit(api_limit)
async def usage(
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    """Current plan, subscription state and this month's usage."""
    return {"success": True, **await get_billing_info(supabase, user["id"])}


@billing_router.post("/checkout")
@limiter.limit(api_limit)
async def checkout(
    request: Request,
    body: CheckoutRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    session = await create_checkout_session(supabase, user["id"], user.get("email"), body.plan, body.interval)
    return {"success": True, "sessionId": session["session_id"], "url": session["url"]}


@billing_router.post("/portal")
@limiter.limit(api_limit)
async def portal(
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    session = await create_portal_session(supabase, user["id"])
    return {"success": True, "url": session["url"]}


@billing_router.post("/razorpay/subscription")
@limiter.limit(api_limit)
async def razorpay_subscription(
    request: Request,
    body: CheckoutRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    result = await create_razorpay_subscription(supabase, user["id"], body.plan, body.interval)
    return {"success": True, **result}


@billing_router.post("/razorpay/verify")
@limiter.limit(api_limit)
async def razorpay_verify(
    request: Request,
    body: RazorpayVerifyRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    return await verify_razorpay_payment(
        supabase, user["id"], body.payment_id, body.subscription_id, body.signature, body.plan
    )


@billing_router.post("/cancel")
@limiter.limit(api_limit)
async def cancel(
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    """Cancel whichever provider the user subscribed through."""
    subscription = await get_subscription(supabase, user["id"]) or {}
    if subscription.get("razorpay_subscription_id"):
        return await cancel_razorpay_subscription(supabase, user["id"])
    if subscription.get("stripe_subscription_id"):
        return await cancel_stripe_subscription(supabase, user["id"], subscription["stripe_subscription_id"])
    raise NotFoundError("No active subscription found")
