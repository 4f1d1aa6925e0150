"""Tests for the plan catalogue and limit checks."""

import pytest

from .plans import (
    UNLIMITED,
    calculate_annual_savings,
    check_limit,
    check_limit_with_grace,
    get_plan,
    get_price_id,
    get_recommended_upgrade,
    has_feature,
    plan_to_dict,
)
from ..errors import NotFoundError


def test_get_plan_is_case_insensitive():
    assert get_plan("PRO").name == "Pro"
    assert get_plan("business").limits.posts == UNLIMITED


def test_get_plan_unknown():
    with pytest.raises(NotFoundError):
        get_plan("enterprise")


def test_check_limit():
    result = check_limit("free", "posts", 4)
    assert result == {"allowed": True, "limit": 10, "remaining": 6, "usage": 4}

    blocked = check_limit("free", "posts", 12)
    assert blocked["allowed"] is False
    assert blocked["remaining"] == 0


def test_check_limit_unlimited():
    result = check_limit("business", "posts", 5000)
    assert result["allowed"] is True
    assert result["limit"] == UNLIMITED


def test_grace_warning_before_limit():
    result = check_limit_with_grace("free", "posts", 8)
    assert result["allowed"] is True
    assert result["in_grace_period"] is False
    assert result["message"] == "Warning: Only 2 posts remaining this month."


def test_grace_period_between_limit_and_grace():
    result = check_limit_with_grace("free", "posts", 11)
    assert result["allowed"] is True
    assert result["in_grace_period"] is True
    assert result["remaining"] == 0
    assert result["message"] == (
        "You've used 11/10 posts this month. Consider upgrading to Pro for unlimited access."
    )


def test_grace_hard_block():
    result = check_limit_with_grace("free", "posts", 12)
    assert result["allowed"] is False
    assert result["hard_block"] is True
    assert result["message"] == (
        "You've reached your Free plan limit of 10 posts per month. Please upgrade to continue."
    )


def test_grace_suggests_business_for_pro():
    result = check_limit_with_grace("pro", "posts", 100)
    assert "Business" in result["message"]


def test_no_message_with_room_left():
    assert check_limit_with_grace("pro", "posts", 10)["message"] is None


def test_recommended_upgrade():
    assert get_recommended_upgrade("free") == "pro"
    assert get_recommended_upgrade("Pro") == "business"
    assert get_recommended_upgrade("business") is None


def test_annual_savings():
    assert calculate_annual_savings("free") is None
    savings = calculate_annual_savings("pro")
    assert savings["monthly_total"] == 12000
    assert savings["savings"] == 2000
    assert savings["months_free"] == 2
    assert savings["savings_percent"] == 17


def test_has_feature():
    assert has_feature("free", "ai_captions") is True
    assert has_feature("free", "bulk_upload") is False
    assert has_feature("free", "all_platforms") is False
    assert has_feature("pro", "all_platforms") is True
    assert has_feature("pro", "unlimited_ai") is True
    assert has_feature("pro", "api_access") is False
    assert has_feature("business", "white_label") is True
    assert has_feature("business", "unlimited_posts") is True
    assert has_feature("business", "teleportation") is False


def test_price_ids_from_environment(monkeypatch):
    monkeypatch.setattr(get_plan("pro"), "razorpay_annual_plan_id", "plan_pro_annual")
    assert get_price_id("pro", "annual", provider="razorpay") == "plan_pro_annual"
    assert get_price_id("free", "monthly") is None


def test_plan_to_dict_hides_provider_ids():
    data = plan_to_dict("pro")
    assert data["id"] == "pro"
    assert "razorpay_monthly_plan_id" not in data
    assert data["annual_savings"]["months_free"] == 2
