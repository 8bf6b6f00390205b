import pytest
import ulid

from clublit.settings import settings


@pytest.mark.asyncio
async def test_register_login_and_me(api_client):
    registered = await api_client.post(
        "/auth/register",
        json={"username": "reader", "email": "Reader@Example.com", "password": "long-enough-pw"},
    )
    assert registered.status_code == 201
    profile = registered.json()
    assert profile["email"] == "reader@example.com"
    assert profile["is_admin"] is False

    duplicate = await api_client.post(
        "/auth/register",
        json={"username": "reader", "email": "reader@example.com", "password": "long-enough-pw"},
    )
    assert duplicate.status_code == 409

    bad_login = await api_client.post("/auth/login", json={"email": "reader@example.com", "password": "nope"})
    assert bad_login.status_code == 401

    login = await api_client.post("/auth/login", json={"email": "reader@example.com", "password": "long-enough-pw"})
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = await api_client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["id"] == profile["id"]

    forged = await api_client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert forged.status_code == 401


@pytest.mark.asyncio
async def test_author_snapshot_uses_registered_name(api_client):
    registered = (
        await api_client.post(
            "/auth/register",
            json={"username": "snap", "email": "snap@example.com", "password": "long-enough-pw"},
        )
    ).json()
    login = await api_client.post("/auth/login", json={"email": "snap@example.com", "password": "long-enough-pw"})
    headers = {"Authorization": f"Bearer {login.json()['access_token']}"}

    club = (
        await api_client.post("/clubs", json={"name": "Snap", "description": "d", "book": "b"}, headers=headers)
    ).json()
    sent = await api_client.post("/messages", json={"club_id": club["id"], "text": "hi"}, headers=headers)
    assert sent.json()["author_id"] == registered["id"]
    assert sent.json()["author_name"] == "snap"


@pytest.mark.asyncio
async def test_ops_endpoints(api_client):
    live = await api_client.get("/health/live")
    assert live.status_code == 200
    assert live.json()["status"] == "ok"
    assert "X-Request-Id" in live.headers

    settings.obs_metrics_public = True
    metrics = await api_client.get("/metrics")
    assert metrics.status_code == 200
    assert "clublit_http_requests_total" in metrics.text


async def _login(api_client, username: str) -> dict:
    email = f"{username}@example.com"
    registered = await api_client.post(
        "/auth/register",
        json={"username": username, "email": email, "password": "long-enough-pw"},
    )
    assert registered.status_code == 201
    login = await api_client.post("/auth/login", json={"email": email, "password": "long-enough-pw"})
    return {"Authorization": f"Bearer {login.json()['access_token']}"}


@pytest.mark.asyncio
async def test_rename_only_affects_later_messages(api_client):
    headers = await _login(api_client, "snap")
    club = (
        await api_client.post("/clubs", json={"name": "Snap", "description": "d", "book": "b"}, headers=headers)
    ).json()
    await api_client.post("/messages", json={"club_id": club["id"], "text": "before"}, headers=headers)

    updated = await api_client.put("/auth/me", json={"username": "renamed", "avatar": " /a.png "}, headers=headers)
    assert updated.status_code == 200
    assert updated.json()["username"] == "renamed"
    assert updated.json()["avatar"] == "/a.png"
    assert updated.json()["email"] == "snap@example.com"

    await api_client.post("/messages", json={"club_id": club["id"], "text": "after"}, headers=headers)
    history = (await api_client.get(f"/messages/{club['id']}", headers=headers)).json()
    assert [(m["text"], m["author_name"], m["author_avatar"]) for m in history] == [
        ("before", "snap", ""),
        ("after", "renamed", "/a.png"),
    ]


@pytest.mark.asyncio
async def test_profile_update_conflicts(api_client):
    await _login(api_client, "first")
    headers = await _login(api_client, "second")

    taken_name = await api_client.put("/auth/me", json={"username": "first"}, headers=headers)
    assert taken_name.status_code == 409
    assert taken_name.json()["detail"] == "username_taken"

    taken_email = await api_client.put("/auth/me", json={"email": "FIRST@example.com"}, headers=headers)
    assert taken_email.status_code == 409
    assert taken_email.json()["detail"] == "email_taken"

    too_short = await api_client.put("/auth/me", json={"username": " x "}, headers=headers)
    assert too_short.status_code == 400

    unknown = await api_client.put("/auth/me", json={"username": "ghost"}, headers={"X-User-Id": "user-ghost"})
    assert unknown.status_code == 404


@pytest.mark.asyncio
async def test_notifications_list_mark_read_and_clear(api_client):
    headers = await _login(api_client, "host")
    club = (
        await api_client.post("/clubs", json={"name": "Gone", "description": "d", "book": "b"}, headers=headers)
    ).json()
    admin = {"X-User-Id": "user-admin", "X-User-Roles": "admin"}
    deleted = await api_client.delete(f"/clubs/{club['id']}", headers=admin)
    assert deleted.json()["deleted_by"] == "admin"

    notifications = (await api_client.get("/auth/me/notifications", headers=headers)).json()
    assert len(notifications) == 1
    assert notifications[0]["status"] == "unread"
    assert "Gone" in notifications[0]["message"]

    marked = await api_client.put("/auth/me/notifications/mark-read", headers=headers)
    assert marked.json() == {"ok": True}
    notifications = (await api_client.get("/auth/me/notifications", headers=headers)).json()
    assert [n["status"] for n in notifications] == ["read"]

    cleared = await api_client.delete("/auth/me/notifications", headers=headers)
    assert cleared.status_code == 200
    assert (await api_client.get("/auth/me/notifications", headers=headers)).json() == []


@pytest.mark.asyncio
async def test_admin_user_management(api_client, monkeypatch):
    monkeypatch.setattr(settings, "admin_email", "primary@example.com")
    await _login(api_client, "primary")
    await _login(api_client, "alice")
    admin = {"X-User-Id": "user-admin", "X-User-Roles": "admin"}

    forbidden = await api_client.get("/admin/users", headers={"X-User-Id": "user-member"})
    assert forbidden.status_code == 403

    users = (await api_client.get("/admin/users", headers=admin)).json()
    by_email = {u["email"]: u["id"] for u in users}
    assert set(by_email) == {"primary@example.com", "alice@example.com"}
    assert all("password_hash" not in u for u in users)

    promoted = await api_client.put(f"/admin/users/{by_email['alice@example.com']}/make-admin", headers=admin)
    assert promoted.status_code == 200
    assert promoted.json()["already_admin"] is False
    assert promoted.json()["user"]["is_admin"] is True
    again = await api_client.put(f"/admin/users/{by_email['alice@example.com']}/make-admin", headers=admin)
    assert again.json()["already_admin"] is True

    primary = await api_client.delete(f"/admin/users/{by_email['primary@example.com']}", headers=admin)
    assert primary.status_code == 403
    assert primary.json()["detail"] == "cannot_delete_primary_admin"

    removed = await api_client.delete(f"/admin/users/{by_email['alice@example.com']}", headers=admin)
    assert removed.json() == {"ok": True}
    remaining = (await api_client.get("/admin/users", headers=admin)).json()
    assert [u["email"] for u in remaining] == ["primary@example.com"]

    malformed = await api_client.delete("/admin/users/not-an-id", headers=admin)
    assert malformed.status_code == 400
    unknown = await api_client.delete(f"/admin/users/{ulid.new()}", headers=admin)
    assert unknown.status_code == 404
