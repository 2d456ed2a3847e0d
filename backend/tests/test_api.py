"""End-to-end checks through the HTTP layer against the SQLite fixture database."""

import httpx
import pytest
from sqlalchemy import update

from mediashelf.api.deps import get_adapters
from mediashelf.database import get_db
from mediashelf.main import app
from mediashelf.models.tables import User


@pytest.fixture
async def client(session_factory, adapters):
    async def override_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_adapters] = lambda: adapters
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test/api/v1") as client:
        yield client
    app.dependency_overrides.clear()


async def _register(client, username: str) -> dict:
    resp = await client.post("/auth/register", json={
        "username": username,
        "email": f"{username}@example.com",
        "password": "correct-horse",
    })
    assert resp.status_code == 201
    body = resp.json()
    return {"Authorization": f"Bearer {body['token']}", "id": body["data"]["user"]["id"]}


def _headers(auth: dict) -> dict:
    return {"Authorization": auth["Authorization"]}


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


async def test_book_detail_by_external_then_local_id(client, book_adapter):
    resp = await client.get("/books/zyTCAlFPjgYC")
    assert resp.status_code == 200
    local_id = resp.json()["data"]["id"]

    resp = await client.get(f"/books/{local_id}")
    assert resp.json()["data"]["google_books_id"] == "zyTCAlFPjgYC"
    assert book_adapter.get_calls == ["zyTCAlFPjgYC"]

    resp = await client.get("/books/search", params={"q": "dune"})
    [result] = resp.json()["data"]["results"]
    assert result["detail_page_id"] == local_id


async def test_errors_use_status_envelope(client):
    resp = await client.get("/movies/999999")
    assert resp.status_code == 404
    assert resp.json()["status"] == "fail"

    resp = await client.get("/movies/search")
    assert resp.status_code == 400

    resp = await client.get("/books", params={"unknown_field": "x"})
    assert resp.status_code == 400


async def test_protected_routes_need_a_token(client):
    resp = await client.post("/reviews", json={"item_type": "Book", "item_id": "zyTCAlFPjgYC", "rating": 8})
    assert resp.status_code == 401

    resp = await client.get("/users/me", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401


async def test_review_flow_updates_rating_and_feed(client):
    alice = await _register(client, "alice")
    bob = await _register(client, "bob")

    resp = await client.post(f"/users/{bob['id']}/follow", headers=_headers(alice))
    assert resp.status_code == 201

    resp = await client.post(
        "/reviews",
        json={"item_type": "Movie", "item_id": "603", "rating": 8, "text": "Whoa."},
        headers=_headers(bob),
    )
    assert resp.status_code == 201

    movie = (await client.get("/movies/603")).json()["data"]
    assert movie["ratings_count"] == 1
    assert movie["average_rating"] == 8.0

    feed = (await client.get("/feed/social", headers=_headers(alice))).json()
    assert [a["type"] for a in feed["data"]] == ["REVIEW_CREATED", "FOLLOW_CREATED"]
    assert feed["data"][0]["subject"]["item"]["title"] == "The Matrix"

    resp = await client.get(f"/users/{bob['id']}/follow-stats")
    assert resp.json()["data"] == {"followers_count": 1, "following_count": 0}


async def test_library_add_then_re_add(client):
    alice = await _register(client, "alice")
    lists = (await client.get("/lists/me", headers=_headers(alice))).json()["data"]
    books = next(lst for lst in lists if lst["name"] == "My Books")

    body = {"list_id": books["id"], "item_type": "Book", "item_id": "pD6arNyKyi8C"}
    assert (await client.post("/library", json=body, headers=_headers(alice))).status_code == 201
    resp = await client.post("/library", json={**body, "status": "READING"}, headers=_headers(alice))
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "READING"

    # default lists are private
    assert (await client.get(f"/lists/{books['id']}")).status_code == 403
    entries = (await client.get(f"/library/list/{books['id']}", headers=_headers(alice))).json()["data"]
    assert entries[0]["item"]["title"] == "The Hobbit"


async def test_password_change_returns_working_token(client):
    alice = await _register(client, "alice")
    resp = await client.patch(
        "/users/me/password",
        json={"current_password": "correct-horse", "new_password": "battery-staple"},
        headers=_headers(alice),
    )
    assert resp.status_code == 200
    fresh = {"Authorization": f"Bearer {resp.json()['token']}"}

    assert (await client.get("/users/me", headers=fresh)).status_code == 200


async def _make_admin(session_factory, user_id: str) -> None:
    async with session_factory() as session:
        await session.execute(update(User).where(User.id == user_id).values(role="admin"))
        await session.commit()


async def test_other_users_see_public_profiles_only(client):
    alice = await _register(client, "alice")
    bob = await _register(client, "bob")

    listed = (await client.get("/users", headers=_headers(alice))).json()["data"]
    assert {u["username"] for u in listed} == {"alice", "bob"}
    for record in listed:
        assert "email" not in record
        assert "role" not in record

    profile = (await client.get(f"/users/{bob['id']}")).json()["data"]
    assert profile["username"] == "bob"
    assert "email" not in profile and "role" not in profile

    assert (await client.get("/users", params={"email": "bob@example.com"})).status_code == 400
    assert (await client.get("/users", params={"sort": "role"})).status_code == 400

    me = (await client.get("/users/me", headers=_headers(bob))).json()["data"]
    assert me["email"] == "bob@example.com"


async def test_logout_invalidates_the_token(client):
    alice = await _register(client, "alice")
    resp = await client.post("/auth/logout", headers=_headers(alice))
    assert resp.status_code == 200

    resp = await client.get("/users/me", headers=_headers(alice))
    assert resp.status_code == 401
    assert resp.json()["message"] == "This token has been invalidated. Please log in again."
    assert (await client.post("/auth/logout", headers=_headers(alice))).status_code == 401


async def test_deleting_own_account_needs_the_password(client):
    alice = await _register(client, "alice")
    resp = await client.request("DELETE", "/users/me", json={"password": "wrong-horse"}, headers=_headers(alice))
    assert resp.status_code == 401
    resp = await client.request("DELETE", "/users/me", json={"password": "correct-horse"}, headers=_headers(alice))
    assert resp.status_code == 204

    assert (await client.get(f"/users/{alice['id']}")).status_code == 404
    assert (await client.get("/users/me", headers=_headers(alice))).status_code == 401


async def test_admin_can_edit_and_delete_users(client, session_factory):
    admin = await _register(client, "admin")
    bob = await _register(client, "bob")
    await _make_admin(session_factory, admin["id"])

    resp = await client.patch(f"/users/{admin['id']}", json={"role": "user"}, headers=_headers(bob))
    assert resp.status_code == 403

    resp = await client.patch(f"/users/{bob['id']}", json={"password": "battery-staple"}, headers=_headers(admin))
    assert resp.status_code == 400
    resp = await client.patch(f"/users/{bob['id']}", json={"bio": "Moderated."}, headers=_headers(admin))
    assert resp.status_code == 200
    assert resp.json()["data"]["bio"] == "Moderated."

    await client.post(
        "/reviews", json={"item_type": "Movie", "item_id": "603", "rating": 4}, headers=_headers(bob),
    )
    assert (await client.delete(f"/users/{bob['id']}", headers=_headers(admin))).status_code == 204
    assert (await client.get(f"/users/{bob['id']}")).status_code == 404
    assert (await client.delete(f"/users/{bob['id']}", headers=_headers(admin))).status_code == 404

    movie = (await client.get("/movies/603")).json()["data"]
    assert movie["ratings_count"] == 0


async def test_top_five_books(client):
    alice = await _register(client, "alice")
    for external_id, rating in (("zyTCAlFPjgYC", 9), ("pD6arNyKyi8C", 6)):
        await client.post(
            "/reviews", json={"item_type": "Book", "item_id": external_id, "rating": rating}, headers=_headers(alice),
        )

    body = (await client.get("/books/top-5")).json()
    assert body["limit"] == 5
    assert [b["title"] for b in body["data"]] == ["Dune", "The Hobbit"]
    assert set(body["data"][0]) == {"id", "title", "cover_image", "average_rating", "published_date", "authors"}
