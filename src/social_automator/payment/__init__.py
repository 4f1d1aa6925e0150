"""Plans, usage limits and subscription billing through Stripe and Razorpay."""

from .plans import PLANS, UNLIMITED, get_plan, plan_to_dict
from .usage import check_usage, get_billing_info, increment_usage, require_usage, set_user_plan
from .stripe_integration import create_checkout_session, create_portal_session, handle_stripe_webhook
from .razorpay_integration import (
    cancel_subscription,
    create_razorpay_subscription,
    handle_razorpay_webhook,
    verify_razorpay_payment,
)

__all__ = [
    "PLANS",
    "UNLIMITED",
    "get_plan",
    "plan_to_dict",
    "check_usage",
    "get_billing_info",
    "increment_usage",
    "require_usage",
    "set_user_plan",
    "create_checkout_session",
    "create_portal_session",
    "handle_stripe_webhook",
    "cancel_subscription",
    "create_razorpay_subscription",
    "handle_razorpay_webhook",
    "verify_razorpay_payment",
]
