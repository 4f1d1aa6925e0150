"""Admin endpoints. Restricted to the addresses in ADMIN_EMAILS."""

from typing import Any, Dict
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from supabase import Client

from ..admin.users import change_user_plan, list_users
from ..database.client import get_supabase_admin
from ..middleware.rate_limiter import api_limit, limiter
from ..security.auth import require_admin

admin_router = APIRouter(prefix="/api/admin", tags=["admin"])


class PlanChangeRequest(BaseModel):
    plan: str = Field(..., description="free, pro or business")


@admin_router.get("/users")
@limiter.limit(api_limit)
async def users(
    request: Request,
    admin: Dict[str, Any] = Depends(require_admin),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    result = await list_users(supabase)
    return {"success": True, "users": result, "count": len(result)}


@admin_router.put("/users/{user_id}/plan")
@limiter.limit(api_limit)
async def update_plan(
    request: Request,
    user_id: str,
    body: PlanChangeRequest,
    admin: Dict[str, Any] = Depends(require_admin),
    supabase: Client = Depends(get_supabase_admin),
) -> Dict[str, Any]:
    subscription = await change_user_plan(supabase, admin["id"], user_id, body.plan)
    return {"success": True, "subscription": subscription}
