"""Admin tools."""

from .users import change_user_plan, list_users, serialize_user

__all__ = ["change_user_plan", "list_users", "serialize_user"]
