from __future__ import annotations

import pytest


@pytest.mark.integration
def test_health_endpoint(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "PDF Annotator API is running"
    assert body["environment"] == "development"
    assert "timestamp" in body


@pytest.mark.integration
def test_healthz_endpoint(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.integration
def test_metrics_endpoint(client):
    client.get("/healthz")
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "http_requests_total" in response.text
    assert "annotator_documents_uploaded_total" in response.text


def test_unknown_route_uses_error_envelope(client):
    response = client.get("/nowhere")
    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Route not found"}


def test_request_id_is_echoed(client):
    response = client.get("/healthz", headers={"x-request-id": "abc123"})
    assert response.headers["x-request-id"] == "abc123"


def test_malformed_json_is_a_validation_error(client, owner):
    response = client.post(
        "/annotations",
        headers={**owner.headers, "Content-Type": "application/json"},
        content=b"{not json",
    )
    assert response.status_code == 400
    assert response.json()["success"] is False
