import json
import logging
from types import SimpleNamespace

from starlette.requests import Request
from starlette.responses import Response

from app.depot.core.logging import log_json
from app.depot.middleware.observability import build_request_log_payload


def test_build_request_log_payload():
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/depot/transfers/abc/actions",
        "headers": [],
        "route": SimpleNamespace(path="/depot/transfers/{transfer_id}/actions"),
    }
    request = Request(scope)
    request.state.trace_id = "trace-1"
    request.state.user_id = "clerk-1"
    request.state.error_code = "INVALID_TRANSITION"
    response = Response(status_code=409)

    payload = build_request_log_payload(
        request=request,
        response=response,
        latency_ms=12.3456,
    )

    assert payload["trace_id"] == "trace-1"
    assert payload["actor_id"] == "clerk-1"
    assert payload["route"] == "/depot/transfers/{transfer_id}/actions"
    assert payload["method"] == "POST"
    assert payload["status_code"] == 409
    assert payload["latency_ms"] == 12.35
    assert payload["error_code"] == "INVALID_TRANSITION"


def test_log_json_serializes_non_json_values(caplog):
    logger = logging.getLogger("depot.test")
    with caplog.at_level(logging.INFO, logger="depot.test"):
        log_json(logger, {"event": "transfer.initiated", "transfer_id": SimpleNamespace(hex="x")})
    record = json.loads(caplog.records[-1].getMessage())
    assert record["event"] == "transfer.initiated"
    assert isinstance(record["transfer_id"], str)
