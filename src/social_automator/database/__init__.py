"""Supabase persistence layer."""

from .client import get_supabase_client, get_supabase_admin, health_check

__all__ = ["get_supabase_client", "get_supabase_admin", "health_check"]
