import httpx
import pytest

from travelbunk.db.database import get_db
from travelbunk.main import app
from travelbunk.services.notification_service import get_notification_sink


@pytest.fixture
async def client(session_factory, sink):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_sink] = lambda: sink
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
async def travellers(client):
    for email, name in (("alice@x.com", "Alice"), ("bob@x.com", "Bob")):
        res = await client.post("/v1/users/", json={"email": email, "first_name": name})
        assert res.status_code == 201


async def test_root(client):
    res = await client.get("/")
    assert res.status_code == 200


async def test_create_user_twice(client, travellers):
    res = await client.post("/v1/users/", json={"email": "alice@x.com", "first_name": "Alice"})

    assert res.status_code == 409


async def test_get_user(client, travellers):
    res = await client.get("/v1/users/bob@x.com")

    assert res.status_code == 200
    body = res.json()
    assert body["first_name"] == "Bob"
    assert body["connections"] == []


async def test_get_unknown_user(client):
    res = await client.get("/v1/users/nobody@x.com")

    assert res.status_code == 404


async def test_goa_trip_walkthrough(client, sink, travellers):
    res = await client.post("/v1/connections/send-request", json={
        "from_id": "alice@x.com",
        "to_id": "bob@x.com",
        "context": {"destination": "Goa"},
    })
    assert res.status_code == 200
    assert res.json()["ok"] is True

    res = await client.get("/v1/connections/requests", params={"user_id": "bob@x.com"})
    body = res.json()
    assert body["ok"] is True
    assert len(body["incoming"]) == 1
    assert body["incoming"][0]["from_id"] == "alice@x.com"
    assert body["incoming"][0]["status"] == "pending"
    assert body["incoming"][0]["context"] == {"destination": "Goa"}
    assert body["outgoing"] == []

    res = await client.post("/v1/connections/respond-request", json={
        "to_id": "bob@x.com",
        "from_id": "alice@x.com",
        "action": "accept",
    })
    assert res.json() == {
        "ok": True,
        "message": "Request accepted",
        "request_id": "alice@x.com:bob@x.com:1",
        "partial": False,
    }

    res = await client.get("/v1/connections/status", params={"a": "alice@x.com", "b": "bob@x.com"})
    assert res.json() == {"ok": True, "connected": True}

    res = await client.get("/v1/connections/alice@x.com")
    assert res.json()["connections"] == ["bob@x.com"]

    assert [event for _, event, _ in sink.published] == ["request-received", "request-responded"]


async def test_send_request_with_missing_fields_is_a_result_not_422(client):
    res = await client.post("/v1/connections/send-request", json={})

    assert res.status_code == 200
    assert res.json()["ok"] is False
    assert res.json()["error"] == "validation"


async def test_send_request_to_self(client, travellers):
    res = await client.post("/v1/connections/send-request", json={"from_id": "alice@x.com", "to_id": "alice@x.com"})

    assert res.json() == {
        "ok": False,
        "message": "Cannot send request to yourself",
        "error": "validation",
        "partial": False,
    }


async def test_respond_with_invalid_action(client, travellers):
    res = await client.post("/v1/connections/respond-request", json={
        "to_id": "bob@x.com",
        "from_id": "alice@x.com",
        "action": "maybe",
    })

    assert res.json()["ok"] is False
    assert res.json()["error"] == "validation"


async def test_list_requests_unknown_user(client):
    res = await client.get("/v1/connections/requests", params={"user_id": "nobody@x.com"})

    assert res.status_code == 200
    assert res.json()["ok"] is False
    assert res.json()["error"] == "not_found"
