"""Tests for the admin user listing."""

from . import users


async def test_list_users_reads_every_page(fake_supabase, monkeypatch):
    monkeypatch.setattr(users, "USERS_PAGE_SIZE", 2)
    for n in range(5):
        fake_supabase.add_user(f"token-{n}", f"user-{n}", f"user{n}@example.com",
                               created_at=f"2025-01-0{n + 1}T00:00:00+00:00")
    fake_supabase.add_row("subscriptions", {"user_id": "user-3", "plan": "pro", "status": "active"})

    listed = await users.list_users(fake_supabase)

    assert [u["id"] for u in listed] == ["user-4", "user-3", "user-2", "user-1", "user-0"]
    assert [q for q in fake_supabase.queries if q[0] == "auth.users"] == [
        ("auth.users", 1), ("auth.users", 2), ("auth.users", 3),
    ]
    assert next(u for u in listed if u["id"] == "user-3")["plan"] == "pro"


async def test_full_last_page_requests_one_more(fake_supabase):
    for n in range(4):
        fake_supabase.add_user(f"token-{n}", f"user-{n}", f"user{n}@example.com")

    listed = await users.fetch_all_users(fake_supabase, page_size=2)

    assert len(listed) == 4
    assert [q[1] for q in fake_supabase.queries if q[0] == "auth.users"] == [1, 2, 3]
