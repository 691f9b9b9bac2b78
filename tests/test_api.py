import pytest

from auditlog.services.connection import StoreHandle
from auditlog.services.options import OPT_PRUNING_LIMIT, OPT_PRUNING_LIMIT_ENABLED


@pytest.mark.anyio("asyncio")
async def test_healthcheck(client):
    response = await client.get("/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["events_store"] == "ok"
    assert payload["events_store_external"] is False
    assert payload["buffer_size"] == 0
    assert payload["archiving_in_progress"] is False
    assert payload["scheduler_config_enabled"] is False
    assert payload["scheduler_running"] is False
    assert payload["scheduler_lock"]["present"] is False


@pytest.mark.anyio("asyncio")
async def test_health_degrades_when_store_unreachable(monkeypatch, client, connections):
    monkeypatch.setattr(
        connections,
        "get_connection",
        lambda *_args: StoreHandle(name="local", engine=None, error=RuntimeError("down")),
    )

    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "degraded"
    assert response.json()["events_store"] == "error"


@pytest.mark.anyio("asyncio")
async def test_log_and_read_event(client):
    response = await client.post("/events", json={"alert_id": 1003, "data": {"Username": "admin"}})

    assert response.status_code == 202
    body = response.json()
    assert body["logged"] is True
    assert body["buffered"] is False

    read = await client.get(f"/events/{body['occurrence_id']}")
    assert read.status_code == 200
    assert read.json()["alert_id"] == 1003
    assert read.json()["meta"] == {"Username": "admin"}


@pytest.mark.anyio("asyncio")
async def test_filtered_event_is_not_logged(client):
    response = await client.post("/events", json={"alert_id": 5, "data": {}})

    assert response.status_code == 202
    assert response.json() == {"logged": False, "buffered": False, "occurrence_id": None}


@pytest.mark.anyio("asyncio")
async def test_buffered_event_when_store_down(monkeypatch, client, connections):
    monkeypatch.setattr(
        connections,
        "get_connection",
        lambda *_args: StoreHandle(name="local", engine=None, error=RuntimeError("down")),
    )

    response = await client.post("/events", json={"alert_id": 1000, "data": {"A": 1}, "timestamp": 12.5})

    assert response.status_code == 202
    assert response.json() == {"logged": True, "buffered": True, "occurrence_id": None}


@pytest.mark.anyio("asyncio")
async def test_invalid_event_data_is_422(client):
    response = await client.post("/events", json={"alert_id": 1000, "data": {"Timestamp": "later"}})

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "INVALID_EVENT_DATA"


@pytest.mark.anyio("asyncio")
async def test_missing_event_is_404(client):
    response = await client.get("/events/999")

    assert response.status_code == 404
    error = response.json()["error"]
    assert error["code"] == "OCCURRENCE_NOT_FOUND"
    assert error["details"] == {"occurrence_id": 999}


@pytest.mark.anyio("asyncio")
async def test_prune_endpoint(client, options, insert_occurrences):
    insert_occurrences([1.0, 2.0, 3.0, 4.0])
    options.set(OPT_PRUNING_LIMIT_ENABLED, True)
    options.set(OPT_PRUNING_LIMIT, 2)

    response = await client.post("/maintenance/prune")

    assert response.status_code == 200
    body = response.json()
    assert body["pruned"] is True
    assert body["deleted_count"] == 3
    assert "DELETE FROM metadata" in body["plan"]

    again = await client.post("/maintenance/prune")
    assert again.json() == {"pruned": False, "deleted_count": 0, "plan": None, "high_water_mark": None}


@pytest.mark.anyio("asyncio")
async def test_drain_endpoint(client, buffer_store):
    from auditlog.services.buffer import OccurrenceSnapshot

    buffer_store.enqueue(OccurrenceSnapshot(alert_id=1000, site_id=0, created_on=1.0), {})
    buffer_store.enqueue(OccurrenceSnapshot(alert_id=1001, site_id=0, created_on=2.0), {})

    response = await client.post("/maintenance/drain-buffer")

    assert response.status_code == 200
    assert response.json() == {"drained": 2, "failed": 0, "remaining": 0}
