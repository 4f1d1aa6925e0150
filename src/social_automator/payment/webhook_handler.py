"""
Payment webhook endpoints.

Stripe and Razorpay post events here. Both verify a signature computed over
the raw request body, so the body is read unparsed. Webhooks are exempt from
rate limiting.
"""

import logging
from typing import Any, Dict
from fastapi import APIRouter, Depends, Request
from supabase import Client

from .razorpay_integration import handle_razorpay_webhook
from .stripe_integration import handle_stripe_webhook
from ..database.client import get_supabase_admin
from ..middleware.rate_limiter import limiter

logger = logging.getLogger(__name__)

webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@webhook_router.post("/stripe")
@limiter.exempt
async def stripe_webhook_endpoint(
    request: Request,
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    """Apply a Stripe subscription event."""
    payload = await request.body()
    result = await handle_stripe_webhook(supabase, payload, request.headers.get("stripe-signature"))
    logger.info(f"Webhook processed successfully: {result}")
    return result


@webhook_router.post("/razorpay")
@limiter.exempt
async def razorpay_webhook_endpoint(
    request: Request,
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    """Apply a Razorpay subscription event."""
    payload = await request.body()
    result = await handle_razorpay_webhook(supabase, payload, request.headers.get("x-razorpay-signature"))
    logger.info(f"Webhook processed successfully: {result}")
    return result
