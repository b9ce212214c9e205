"""Tests for normalized error responses."""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from convertly.core.errors import (
    AppError,
    StoreUnavailableError,
    app_error_handler,
)
from convertly.core.middleware.request_id import RequestIdMiddleware


def test_validation_error_has_standard_shape(client):
    resp = client.post("/api/convert", data={"format": "word"})
    assert resp.status_code == 400
    body = resp.json()
    rid = resp.headers.get("x-request-id")
    assert body["error"]["code"] == "validation_error"
    assert body["error"]["request_id"] == rid
    assert body["detail"] == body["error"]["message"]


def test_request_body_validation_is_400(client):
    resp = client.post("/api/signup-with-welcome", content=b"not json", headers={"content-type": "application/json"})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"


def test_unknown_route_normalized(client):
    resp = client.get("/api/does-not-exist")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"
    assert resp.json()["error"]["request_id"] == resp.headers["x-request-id"]


def test_store_unavailable_is_503():
    test_app = FastAPI()
    test_app.add_middleware(RequestIdMiddleware)
    test_app.add_exception_handler(AppError, app_error_handler)

    @test_app.get("/boom")
    async def boom():
        raise StoreUnavailableError("entitlement store unavailable")

    resp = TestClient(test_app).get("/boom")

    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "store_unavailable"


def test_store_down_on_convert_fails_closed(client, app, make_user, monkeypatch):
    user = make_user()

    def unavailable(*args, **kwargs):
        raise StoreUnavailableError("entitlement store unavailable")

    monkeypatch.setattr(app.state.services.store, "try_record_conversion", unavailable)

    resp = client.post(
        "/api/convert",
        files={"file": ("a.pdf", b"%PDF-1.4 x", "application/pdf")},
        data={"format": "word"},
        headers={"X-User-Id": str(user.id)},
    )

    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "store_unavailable"
