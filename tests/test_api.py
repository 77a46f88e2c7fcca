from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from app.clients.base import RowQuery
from app.dependencies.services import get_review_service, get_row_store
from app.main import app
from app.services.exceptions import StoreConflictError, StoreUnavailableError
from app.services.mock_store import build_mock_store, get_mock_store, reset_mock_store
from app.services.reviews import ReviewService

TOKEN_HEADER = "X-Ownership-Token"


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class UnavailableStore:
    async def select(self, table, query):
        raise StoreUnavailableError("Unable to reach store at db.internal:5432")

    async def insert(self, table, row):
        raise StoreUnavailableError("Unable to reach store at db.internal:5432")


class InsertConflictStore:
    def __init__(self) -> None:
        self.inner = build_mock_store()

    async def select(self, table, query):
        return await self.inner.select(table, query)

    async def insert(self, table, row):
        raise StoreConflictError(
            "duplicate key value violates unique constraint \"reviews_dedupe_key\""
        )


@pytest.fixture(autouse=True)
def _reset_store() -> None:
    reset_mock_store()
    yield
    reset_mock_store()
    app.dependency_overrides.clear()


def _stored_rows():
    rows, _ = asyncio.run(get_mock_store().select("reviews", RowQuery()))
    return rows


def test_review_lifecycle() -> None:
    client = TestClient(app)

    created = client.post(
        "/reviews",
        json={"author": "Kim", "product": "Widget", "rating": 4, "content": "Good"},
    )
    assert created.status_code == 201
    body = created.json()
    review_id, token = body["id"], body["ownership_token"]
    assert token and body["ok"] is True and body["duplicate"] is False

    listing = client.get("/reviews")
    assert listing.status_code == 200
    items = listing.json()["items"]
    assert [item["id"] for item in items] == [review_id]
    assert "ownership_token" not in items[0]

    patched = client.patch(f"/reviews/{review_id}", json={"rating": 5}, headers={TOKEN_HEADER: token})
    assert patched.status_code == 200
    assert patched.json()["review"]["rating"] == 5
    assert "ownership_token" not in patched.json()["review"]

    forbidden = client.patch(
        f"/reviews/{review_id}", json={"rating": 1}, headers={TOKEN_HEADER: "wrong-token"}
    )
    assert forbidden.status_code == 403
    assert client.get(f"/reviews/{review_id}").json()["rating"] == 5

    deleted = client.delete(f"/reviews/{review_id}", headers={TOKEN_HEADER: token})
    assert deleted.status_code == 200
    assert deleted.json() == {"ok": True, "id": review_id}

    after = client.get("/reviews").json()
    assert after["total"] == 0
    assert review_id not in [item["id"] for item in after["items"]]
    assert client.get(f"/reviews/{review_id}").status_code == 404


def test_read_endpoints_never_return_tokens() -> None:
    client = TestClient(app)
    for index in range(3):
        client.post(
            "/reviews",
            json={"author": f"A{index}", "product": "P", "rating": 3, "content": "Fine"},
        )

    listing = client.get("/reviews").json()
    assert listing["total"] == 3
    for item in listing["items"]:
        assert "ownership_token" not in item
        single = client.get(f"/reviews/{item['id']}").json()
        assert "ownership_token" not in single


def test_double_submit_is_absorbed() -> None:
    client = TestClient(app)
    payload = {"author": "A", "product": "P", "rating": 5, "content": "C is fine"}

    first = client.post("/reviews", json=payload)
    second = client.post("/reviews", json=payload)

    assert first.status_code == second.status_code == 201
    assert first.json()["ownership_token"]
    assert second.json()["ownership_token"] is None
    assert second.json()["id"] == first.json()["id"]
    assert len(_stored_rows()) == 1


def test_resubmission_after_window_creates_second_row() -> None:
    clock = FakeClock()
    store = build_mock_store(clock=clock)
    app.dependency_overrides[get_review_service] = lambda: ReviewService(
        store, duplicate_window_seconds=7, clock=clock
    )
    client = TestClient(app)
    payload = {"author": "A", "product": "P", "rating": 5, "content": "C is fine"}

    first = client.post("/reviews", json=payload)
    clock.advance(8)
    second = client.post("/reviews", json=payload)

    assert first.json()["id"] != second.json()["id"]
    assert second.json()["ownership_token"]
    _, total = asyncio.run(store.select("reviews", RowQuery()))
    assert total == 2


@pytest.mark.parametrize(
    "payload",
    [
        {"author": "A", "product": "P", "rating": 6, "content": "Good"},
        {"author": "A", "product": "P", "rating": 0, "content": "Good"},
        {"author": "A", "product": "P", "rating": "5", "content": "Good"},
        {"author": "   ", "product": "P", "rating": 5, "content": "Good"},
        {"author": "A", "product": "P", "rating": 5, "content": "  ok  "},
        {"author": "A" * 31, "product": "P", "rating": 5, "content": "Good"},
        {"author": "A", "product": "P" * 51, "rating": 5, "content": "Good"},
        {"author": "A", "product": "P", "rating": 5, "content": "x" * 501},
        {"product": "P", "rating": 5, "content": "Good"},
    ],
)
def test_invalid_submissions_are_rejected_without_store_writes(payload) -> None:
    client = TestClient(app)

    response = client.post("/reviews", json=payload)

    assert response.status_code == 422
    assert _stored_rows() == []


def test_mutation_denials_map_to_distinct_statuses() -> None:
    client = TestClient(app)
    created = client.post(
        "/reviews", json={"author": "A", "product": "P", "rating": 2, "content": "Good"}
    ).json()
    review_id = created["id"]

    assert client.patch(f"/reviews/{review_id}", json={"rating": 1}).status_code == 401
    assert client.delete(f"/reviews/{review_id}").status_code == 401
    assert client.delete(f"/reviews/{review_id}", headers={TOKEN_HEADER: "nope"}).status_code == 403
    missing = client.patch("/reviews/9999", json={"rating": 1}, headers={TOKEN_HEADER: "nope"})
    assert missing.status_code == 404
    assert client.patch(f"/reviews/{review_id}", json={}, headers={TOKEN_HEADER: created["ownership_token"]}).status_code == 422

    assert _stored_rows()[0]["rating"] == 2


def test_patch_accepts_token_in_body() -> None:
    client = TestClient(app)
    created = client.post(
        "/reviews", json={"author": "A", "product": "P", "rating": 2, "content": "Good"}
    ).json()

    response = client.patch(
        f"/reviews/{created['id']}",
        json={"content": "Better now", "ownership_token": created["ownership_token"]},
    )

    assert response.status_code == 200
    assert response.json()["review"]["content"] == "Better now"


def test_list_pagination_and_limit_cap() -> None:
    client = TestClient(app)
    for index in range(12):
        client.post(
            "/reviews",
            json={"author": "A", "product": "P", "rating": 1 + index % 5, "content": f"Entry {index}"},
        )

    first = client.get("/reviews", params={"limit": 5}).json()
    assert (first["page"], first["limit"], first["total"], first["has_more"]) == (1, 5, 12, True)

    last = client.get("/reviews", params={"limit": 5, "page": 3}).json()
    assert len(last["items"]) == 2
    assert last["has_more"] is False

    capped = client.get("/reviews", params={"limit": 1000}).json()
    assert capped["limit"] == 50

    assert client.get("/reviews", params={"page": 0}).status_code == 422
    assert client.get("/reviews", params={"sort": "random"}).status_code == 422
    assert client.get("/reviews", params={"query": "entry 1"}).json()["total"] == 3


def test_store_outage_returns_generic_503() -> None:
    app.dependency_overrides[get_row_store] = lambda: UnavailableStore()
    client = TestClient(app)

    listing = client.get("/reviews")
    created = client.post(
        "/reviews", json={"author": "A", "product": "P", "rating": 2, "content": "Good"}
    )

    for response in (listing, created):
        assert response.status_code == 503
        assert "db.internal" not in response.text


def test_insert_conflict_without_visible_winner_returns_409() -> None:
    app.dependency_overrides[get_row_store] = lambda: InsertConflictStore()
    client = TestClient(app)

    response = client.post(
        "/reviews", json={"author": "A", "product": "P", "rating": 2, "content": "Good"}
    )

    assert response.status_code == 409
    assert response.json() == {"detail": "Review conflicts with an existing review"}
    assert "reviews_dedupe_key" not in response.text


def test_edit_matching_another_review_in_same_bucket_returns_409() -> None:
    clock = FakeClock()
    store = build_mock_store(clock=clock)
    app.dependency_overrides[get_review_service] = lambda: ReviewService(
        store, duplicate_window_seconds=7, clock=clock
    )
    client = TestClient(app)
    payload = {"author": "A", "product": "P", "rating": 5}

    first = client.post("/reviews", json={**payload, "content": "First take"}).json()
    second = client.post("/reviews", json={**payload, "content": "Second take"}).json()

    response = client.patch(
        f"/reviews/{second['id']}",
        json={"content": "First take"},
        headers={TOKEN_HEADER: second["ownership_token"]},
    )

    assert response.status_code == 409
    assert response.json() == {"detail": "Review conflicts with an existing review"}
    assert client.get(f"/reviews/{second['id']}").json()["content"] == "Second take"
    assert client.get(f"/reviews/{first['id']}").json()["content"] == "First take"

def test_health_reports_store_backend() -> None:
    client = TestClient(app)

    response = client.get("/health")

    assert response.json() == {"ok": True, "store": "memory"}
