"""
Database models for Social Media Automator.

This module defines Pydantic models that correspond to Supabase database tables
for scheduled posts, connected accounts, subscriptions and monthly usage.
"""

from typing import Dict, Any, Optional, List
from datetime import datetime
from pydantic import BaseModel, Field
from enum import Enum

class PostStatus(str, Enum):
    """Post status enumeration."""
    QUEUED = "queued"
    POSTED = "posted"
    FAILED = "failed"
    PARTIAL = "partial"

class AccountStatus(str, Enum):
    """Connected account status enumeration."""
    ACTIVE = "active"
    DISCONNECTED = "disconnected"
    EXPIRED = "expired"

class PlanName(str, Enum):
    """Subscription plan enumeration."""
    FREE = "free"
    PRO = "pro"
    BUSINESS = "business"

class SubscriptionStatus(str, Enum):
    """Subscription status enumeration."""
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"
    PENDING = "pending"

class UsageResource(str, Enum):
    """Metered resources tracked in the usage table."""
    POSTS = "posts"
    AI = "ai"
    ACCOUNTS = "accounts"

class Post(BaseModel):
    """Scheduled or published post."""

    id: Optional[int] = Field(None, description="Post ID (auto-generated)")
    user_id: str = Field(..., description="Supabase user ID")
    text: str = Field(..., description="Post caption")
    image_url: Optional[str] = Field(None, description="Attached media URL")
    platforms: List[str] = Field(default_factory=list, description="Target platforms")
    schedule_time: datetime = Field(..., description="When the post should be published")
    status: PostStatus = Field(default=PostStatus.QUEUED, description="Publishing status")
    results: Optional[Dict[str, Any]] = Field(None, description="Per-platform publish results")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")
    posted_at: Optional[datetime] = Field(None, description="Publish attempt timestamp")

class ConnectedAccount(BaseModel):
    """Social account connected by a user (the user_accounts table)."""

    id: Optional[int] = Field(None, description="Account row ID")
    user_id: str = Field(..., description="Supabase user ID")
    platform: str = Field(..., description="Platform name, e.g. telegram")
    platform_name: Optional[str] = Field(None, description="Display name of the platform")
    oauth_provider: Optional[str] = Field(None, description="OAuth provider or 'manual'")
    access_token: Optional[str] = Field(None, description="Access token or bot token")
    refresh_token: Optional[str] = Field(None, description="OAuth refresh token")
    token_expires_at: Optional[datetime] = Field(None, description="Access token expiry")
    platform_user_id: Optional[str] = Field(None, description="Account ID on the platform")
    platform_username: Optional[str] = Field(None, description="Account handle on the platform")
    platform_metadata: Dict[str, Any] = Field(default_factory=dict, description="Platform specific settings")
    account_label: Optional[str] = Field(None, description="User defined label")
    is_default: bool = Field(default=False, description="Default account for its platform")
    status: AccountStatus = Field(default=AccountStatus.ACTIVE, description="Connection status")
    connected_at: Optional[datetime] = Field(None, description="Connection timestamp")

class Subscription(BaseModel):
    """User subscription row."""

    user_id: str = Field(..., description="Supabase user ID")
    plan: PlanName = Field(default=PlanName.FREE, description="Current plan")
    status: SubscriptionStatus = Field(default=SubscriptionStatus.ACTIVE, description="Subscription status")
    stripe_customer_id: Optional[str] = Field(None, description="Stripe customer ID")
    stripe_subscription_id: Optional[str] = Field(None, description="Stripe subscription ID")
    razorpay_customer_id: Optional[str] = Field(None, description="Razorpay customer ID")
    razorpay_subscription_id: Optional[str] = Field(None, description="Razorpay subscription ID")
    current_period_end: Optional[datetime] = Field(None, description="Current billing period end")
    trial_ends_at: Optional[datetime] = Field(None, description="Trial end")
    updated_at: Optional[datetime] = Field(None, description="Last change")

class Usage(BaseModel):
    """Monthly usage counters."""

    user_id: str = Field(..., description="Supabase user ID")
    month: str = Field(..., description="Month in YYYY-MM-01 form")
    posts_count: int = Field(default=0, description="Posts published this month")
    ai_count: int = Field(default=0, description="AI generations this month")
    accounts_count: int = Field(default=0, description="Accounts connected")
