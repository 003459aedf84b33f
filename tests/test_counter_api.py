import asyncio

import httpx
import pytest
from doubles import FakeStore

from counter_service.api.routes import counter as counter_routes
from counter_service.app import create_app
from counter_service.services.lifecycle import build_services


def test_default_label_counts_from_one(client, store):
    for expected in range(1, 11):
        response = client.get("/")
        assert response.status_code == 200
        assert response.content == f'{{"value":{expected}}}'.encode()
    assert set(store.calls) == {"counter.next.default"}


def test_label_counts_from_one(client):
    values = [client.get("/", params={"label": "foobar"}).json()["value"] for _ in range(10)]
    assert values == list(range(1, 11))


def test_distinct_labels_are_independent(client):
    client.get("/?label=alpha")
    client.get("/?label=alpha")
    assert client.get("/?label=beta").json() == {"value": 1}
    assert client.get("/?label=alpha").json() == {"value": 3}


def test_invalid_label_is_rejected_without_store_access(client, store):
    response = client.get("/", params={"label": "!@#"})

    assert response.status_code == 400
    assert response.json() == {"error": "invalid label"}
    assert store.calls == []
    assert client.get("/").json() == {"value": 1}


def test_malformed_query_is_rejected(client, store):
    response = client.get("/?label=%!@")

    assert response.status_code == 400
    assert "error" in response.json()
    assert store.calls == []


def test_loose_label_match_is_accepted(client, store):
    response = client.get("/", params={"label": "!!!abc!!!"})

    assert response.status_code == 200
    assert store.calls == ["counter.next.!!!abc!!!"]


def test_store_failure_is_reported_as_client_error(client, store):
    store.unavailable = True

    response = client.get("/?label=foobar")

    assert response.status_code == 400
    assert response.json() == {"error": "dial tcp 127.0.0.1:6379: connection refused"}


def test_form_post_is_accepted(client):
    response = client.post("/", data={"label": "posted"})
    assert response.json() == {"value": 1}


def test_oversized_form_body_is_rejected(client, store, monkeypatch):
    monkeypatch.setattr(counter_routes, "MAX_FORM_BODY_BYTES", 64)

    response = client.post("/", data={"label": "x" * 100})

    assert response.status_code == 400
    assert response.json() == {"error": "http: POST too large"}
    assert store.calls == []
    assert client.post("/", data={"label": "small"}).json() == {"value": 1}


def test_unknown_path_renders_error_body(client, store):
    response = client.get("/foo")

    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}
    assert store.calls == []


def test_unsupported_method_renders_error_body(client, store):
    response = client.put("/")

    assert response.status_code == 405
    assert response.json() == {"error": "Method Not Allowed"}
    assert "GET" in response.headers["allow"]
    assert store.calls == []


def test_request_id_header_is_echoed(client):
    response = client.get("/", headers={"X-Request-ID": "abc-123"})
    assert response.headers["X-Request-ID"] == "abc-123"
    assert client.get("/").headers["X-Request-ID"]


def test_outcomes_are_counted(client, store, services):
    client.get("/")
    client.get("/?label=---")
    store.unavailable = True
    client.get("/")

    registry = services.metrics_registry
    for outcome in ("ok", "invalid", "store_error"):
        assert registry.get_sample_value("counter_increments_total", {"outcome": outcome}) == 1


@pytest.mark.asyncio
async def test_concurrent_increments_have_no_gaps_or_duplicates(settings):
    store = FakeStore(delay=0.001)
    services = build_services(settings, store=store)
    app = create_app(services.counter_service, services.system_tracker)
    callers = 50

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://counter") as ac:
        responses = await asyncio.gather(*(ac.get("/", params={"label": "race"}) for _ in range(callers)))

    values = sorted(r.json()["value"] for r in responses)
    assert values == list(range(1, callers + 1))
