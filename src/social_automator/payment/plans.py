"""
Plan catalogue for Social Media Automator.

Defines the free, pro and business plans with their prices (INR), monthly
limits and feature lists, plus the helpers used to enforce limits. A limit of
``UNLIMITED`` (-1) means the resource is not metered on that plan.
"""

import os
import logging
from typing import Dict, Any, Optional, List
from pydantic import BaseModel, Field

from ..errors import NotFoundError

logger = logging.getLogger(__name__)

UNLIMITED = -1
DEFAULT_GRACE = 2

class PlanLimits(BaseModel):
    """Monthly limits for a plan."""
    posts: int
    accounts: int
    ai: int
    images: int
    videos: int
    voice: int
    team: int
    platforms: List[str] = Field(default_factory=list)

class Plan(BaseModel):
    """Plan configuration."""
    name: str
    price: int = Field(..., description="Monthly price")
    annual: int = Field(..., description="Annual price")
    limits: PlanLimits
    features: List[str] = Field(default_factory=list)
    features_excluded: List[str] = Field(default_factory=list)
    stripe_monthly_price_id: Optional[str] = None
    stripe_annual_price_id: Optional[str] = None
    razorpay_monthly_plan_id: Optional[str] = None
    razorpay_annual_plan_id: Optional[str] = None

PLANS: Dict[str, Plan] = {
    "free": Plan(
        name="Free",
        price=0,
        annual=0,
        limits=PlanLimits(
            posts=10,
            accounts=5,
            ai=5,
            images=5,
            videos=0,
            voice=0,
            team=0,
            platforms=["linkedin", "twitter", "youtube"],
        ),
        features=[
            "10 posts per month",
            "5 specific accounts",
            "5 AI post generations",
            "5 Images per month",
            "Community support",
        ],
        features_excluded=[
            "Videos",
            "Voice generation",
            "Team members",
            "API access",
            "White-label",
        ],
    ),
    "pro": Plan(
        name="Pro",
        price=1000,
        annual=10000,  # 2 months free
        limits=PlanLimits(
            posts=100,
            accounts=20,
            ai=UNLIMITED,
            images=50,
            videos=20,
            voice=10,
            team=1,
            platforms=["linkedin", "twitter", "instagram", "youtube"],
        ),
        features=[
            "100 posts per month",
            "All 20+ accounts",
            "Unlimited AI post gen",
            "50 Images/month",
            "20 Videos",
            "10 Voice generations",
            "1 Team member",
            "Email support",
        ],
        stripe_monthly_price_id=os.getenv("STRIPE_PRO_MONTHLY_PRICE_ID"),
        stripe_annual_price_id=os.getenv("STRIPE_PRO_ANNUAL_PRICE_ID"),
        razorpay_monthly_plan_id=os.getenv("RAZORPAY_PRO_MONTHLY_PLAN_ID"),
        razorpay_annual_plan_id=os.getenv("RAZORPAY_PRO_ANNUAL_PLAN_ID"),
    ),
    "business": Plan(
        name="Business",
        price=5000,
        annual=50000,  # 2 months free
        limits=PlanLimits(
            posts=UNLIMITED,
            accounts=50,
            ai=UNLIMITED,
            images=UNLIMITED,
            videos=UNLIMITED,
            voice=UNLIMITED,
            team=5,
            platforms=["linkedin", "twitter", "instagram", "youtube"],
        ),
        features=[
            "Unlimited posts",
            "All 20+ accounts",
            "Unlimited AI & Images",
            "Unlimited Videos",
            "Unlimited Voice gen",
            "5 Team members",
            "API Access",
            "White-label options",
            "Priority support",
        ],
        stripe_monthly_price_id=os.getenv("STRIPE_BUSINESS_MONTHLY_PRICE_ID"),
        stripe_annual_price_id=os.getenv("STRIPE_BUSINESS_ANNUAL_PRICE_ID"),
        razorpay_monthly_plan_id=os.getenv("RAZORPAY_BUSINESS_MONTHLY_PLAN_ID"),
        razorpay_annual_plan_id=os.getenv("RAZORPAY_BUSINESS_ANNUAL_PLAN_ID"),
    ),
}

UPGRADE_PATH = {
    "free": "pro",
    "pro": "business",
    "business": None,
}


def get_plan(plan_name: str) -> Plan:
    """
    Look up a plan by name (case-insensitive).

    Raises:
        NotFoundError: If the plan does not exist
    """
    plan = PLANS.get((plan_name or "").lower())
    if plan is None:
        raise NotFoundError(f'Plan "{plan_name}" not found')
    return plan


def get_all_plans() -> Dict[str, Plan]:
    return PLANS


def get_resource_limit(plan_name: str, resource: str) -> int:
    limits = get_plan(plan_name).limits
    if resource not in PlanLimits.model_fields or resource == "platforms":
        raise NotFoundError(f'Resource "{resource}" is not metered')
    return getattr(limits, resource)


def check_limit(plan_name: str, resource: str, current_usage: int) -> Dict[str, Any]:
    """
    Check usage of a resource against the plan limit.

    Returns:
        Dict with allowed, limit, remaining and usage
    """
    limit = get_resource_limit(plan_name, resource)

    if limit == UNLIMITED:
        return {"allowed": True, "limit": UNLIMITED, "remaining": UNLIMITED, "usage": current_usage}

    return {
        "allowed": current_usage < limit,
        "limit": limit,
        "remaining": max(0, limit - current_usage),
        "usage": current_usage,
    }


def check_limit_with_grace(
    plan_name: str,
    resource: str,
    current_usage: int,
    grace_amount: int = DEFAULT_GRACE,
) -> Dict[str, Any]:
    """
    Check a limit allowing ``grace_amount`` uses past it before blocking.

    Usage is hard blocked once it reaches ``limit + grace_amount``. Between the
    limit and that point the user is in the grace period. Close to the limit a
    warning message is returned.

    Returns:
        Dict with allowed, hard_block, in_grace_period, limit, remaining, usage and message
    """
    plan = get_plan(plan_name)
    limit = get_resource_limit(plan_name, resource)

    if limit == UNLIMITED:
        return {
            "allowed": True,
            "hard_block": False,
            "in_grace_period": False,
            "limit": UNLIMITED,
            "remaining": UNLIMITED,
            "usage": current_usage,
            "message": None,
        }

    remaining = limit - current_usage
    in_grace_period = limit <= current_usage < limit + grace_amount
    hard_block = current_usage >= limit + grace_amount

    message = None
    if hard_block:
        message = (
            f"You've reached your {plan.name} plan limit of {limit} {resource} per month. "
            f"Please upgrade to continue."
        )
    elif in_grace_period:
        upgrade = "Pro" if plan_name.lower() == "free" else "Business"
        message = (
            f"You've used {current_usage}/{limit} {resource} this month. "
            f"Consider upgrading to {upgrade} for unlimited access."
        )
    elif 0 < remaining <= 2:
        message = f"Warning: Only {remaining} {resource} remaining this month."

    return {
        "allowed": not hard_block,
        "hard_block": hard_block,
        "in_grace_period": in_grace_period,
        "limit": limit,
        "remaining": max(0, remaining),
        "usage": current_usage,
        "message": message,
    }


def get_recommended_upgrade(plan_name: str) -> Optional[str]:
    return UPGRADE_PATH.get((plan_name or "").lower())


def calculate_annual_savings(plan_name: str) -> Optional[Dict[str, int]]:
    """Savings of annual over monthly billing. None for the free plan."""
    plan = get_plan(plan_name)
    if plan.price == 0:
        return None

    monthly_total = plan.price * 12
    savings = monthly_total - plan.annual
    return {
        "monthly": plan.price,
        "monthly_total": monthly_total,
        "annual": plan.annual,
        "savings": savings,
        "months_free": round(savings / plan.price),
        "savings_percent": round(savings / monthly_total * 100),
    }


def has_feature(plan_name: str, feature: str) -> bool:
    plan = get_plan(plan_name)
    name = plan_name.lower()
    limits = plan.limits

    feature_map = {
        "ai_captions": limits.ai == UNLIMITED or limits.ai > 0,
        "bulk_upload": name != "free",
        "all_platforms": "instagram" in limits.platforms,
        "api_access": name == "business",
        "priority_support": name == "business",
        "white_label": name == "business",
        "unlimited_posts": limits.posts == UNLIMITED,
        "unlimited_ai": limits.ai == UNLIMITED,
    }
    return feature_map.get(feature, False)


def get_price_id(plan_name: str, interval: str = "monthly", provider: str = "stripe") -> Optional[str]:
    """Provider price/plan ID for a paid plan and billing interval."""
    plan = get_plan(plan_name)
    period = "annual" if interval in ("annual", "yearly") else "monthly"
    return getattr(plan, f"{provider}_{period}_{'price' if provider == 'stripe' else 'plan'}_id")


def plan_to_dict(plan_name: str) -> Dict[str, Any]:
    plan = get_plan(plan_name)
    data = plan.model_dump(
        exclude={
            "stripe_monthly_price_id",
            "stripe_annual_price_id",
            "razorpay_monthly_plan_id",
            "razorpay_annual_plan_id",
        }
    )
    data["id"] = plan_name.lower()
    data["annual_savings"] = calculate_annual_savings(plan_name)
    return data
