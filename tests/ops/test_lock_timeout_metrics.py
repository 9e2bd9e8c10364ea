import uuid

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app.depot.core.error_catalog import ConcurrentModification
from app.depot.core.errors import setup_exception_handlers
from app.depot.core.metrics import metrics


def test_lock_timeout_increments_metric():
    metrics.reset()
    app = FastAPI()
    setup_exception_handlers(app)

    @app.get("/lock-timeout")
    def lock_timeout():
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/lock-timeout")

    assert response.status_code == 409
    assert response.json()["code"] == "LOCK_TIMEOUT"

    snapshot = metrics.render()
    content = snapshot.content.decode("utf-8")
    if metrics.enabled:
        assert "lock_wait_timeout_total" in content
    else:
        assert "metrics_disabled" in content


def test_domain_error_details_are_json_safe():
    app = FastAPI()
    setup_exception_handlers(app)

    @app.get("/stale")
    def stale():
        raise ConcurrentModification("item was modified since it was read", item_id=uuid.UUID(int=1))

    with TestClient(app) as client:
        response = client.get("/stale")

    assert response.status_code == 409
    payload = response.json()
    assert payload["code"] == "CONCURRENT_MODIFICATION"
    assert payload["details"]["item_id"] == "00000000-0000-0000-0000-000000000001"
    assert payload["details"]["message"] == "item was modified since it was read"
