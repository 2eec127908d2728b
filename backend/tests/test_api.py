from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from procurement.main import create_app


@pytest.fixture()
def client(table, blobs, clock):
    return TestClient(create_app())


def _signup(client: TestClient, username: str, role: str) -> dict[str, str]:
    r = client.post(
        "/api/auth/register",
        json={
            "username": username,
            "email": f"{username}@mail.acme.io",
            "password": "Secret123",
            "role": role,
            "fullName": username.title(),
        },
    )
    assert r.status_code == 201, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


def _new_rfp(client: TestClient, headers: dict[str, str]) -> str:
    r = client.post(
        "/api/rfps",
        headers=headers,
        json={
            "title": "Fleet maintenance",
            "description": "Annual maintenance for twelve delivery vans.",
            "category": "Automotive",
            "budgetMin": 5000,
            "budgetMax": 9000,
            "deadline": "2030-01-15T13:00:00Z",
        },
    )
    assert r.status_code == 201, r.text
    return r.json()["data"]["id"]


def test_health_is_public(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.json()["status"] == "running"


def test_protected_route_requires_token(client):
    r = client.post("/api/rfps", json={}, headers={"X-Request-Id": "req-123"})
    assert r.status_code == 401
    assert r.headers["content-type"].startswith("application/problem+json")
    assert r.headers["X-Request-Id"] == "req-123"
    body = r.json()
    assert body["requestId"] == "req-123"
    assert body["extensions"]["kind"] == "unauthorized"


def test_garbage_token_is_rejected_but_public_reads_degrade(client):
    bad = {"Authorization": "Bearer not-a-jwt"}
    assert client.get("/api/responses", headers=bad).status_code == 401
    assert client.get("/api/rfps", headers=bad).status_code == 200


def test_identity_lookup_outage_is_503(client, monkeypatch):
    from procurement.db.dynamodb.errors import DdbUnavailable
    from procurement.repositories import users_repo

    headers = _signup(client, "ivan", "responder")

    def unavailable(user_id):
        raise DdbUnavailable(message="endpoint unreachable", operation="GetItem", retryable=True)

    monkeypatch.setattr(users_repo, "get_user_item", unavailable)
    r = client.get("/api/auth/me", headers=headers)
    assert r.status_code == 503
    assert r.headers["content-type"].startswith("application/problem+json")
    assert r.json()["extensions"]["kind"] == "storage_error"


def test_me_and_login(client):
    headers = _signup(client, "carol", "requester")
    me = client.get("/api/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["user"]["username"] == "carol"

    r = client.post("/api/auth/login", json={"username": "carol", "password": "Secret123"})
    assert r.status_code == 200
    assert r.json()["token_type"] == "Bearer"

    r = client.post("/api/auth/login", json={"username": "carol", "password": "Wrong123"})
    assert r.status_code == 401
    assert r.json()["extensions"]["kind"] == "unauthorized"


def test_duplicate_registration_is_conflict(client):
    _signup(client, "dave", "responder")
    r = client.post(
        "/api/auth/register",
        json={"username": "dave", "email": "d2@mail.acme.io", "password": "Secret123", "role": "responder", "fullName": "D"},
    )
    assert r.status_code == 409
    assert r.json()["extensions"]["kind"] == "conflict"


def test_request_validation_is_problem_details(client):
    headers = _signup(client, "erin", "requester")
    r = client.post("/api/rfps", headers=headers, json={"title": "x"})
    assert r.status_code == 422
    body = r.json()
    assert body["extensions"]["kind"] == "validation_error"
    assert {e["path"] for e in body["errors"]} >= {"title", "description"}


def test_non_finite_budget_is_rejected(client):
    headers = _signup(client, "erika", "requester")
    raw = (
        '{"title": "Fleet upkeep", "description": "Annual van servicing.", "category": "Automotive",'
        ' "budgetMax": Infinity, "deadline": "2030-01-15T13:00:00Z"}'
    )
    r = client.post("/api/rfps", headers={**headers, "Content-Type": "application/json"}, content=raw)
    assert r.status_code == 422
    assert [e["path"] for e in r.json()["errors"]] == ["budgetMax"]


def test_rfp_and_response_flow(client):
    buyer = _signup(client, "buyer", "requester")
    supplier = _signup(client, "supplier", "responder")
    rfp_id = _new_rfp(client, buyer)

    # Drafts are hidden from everyone but the creator.
    assert client.get(f"/api/rfps/{rfp_id}").status_code == 403
    r = client.post(f"/api/rfps/{rfp_id}/close", headers=buyer)
    assert r.status_code == 409
    assert r.json()["extensions"]["kind"] == "invalid_state_transition"

    r = client.post(f"/api/rfps/{rfp_id}/publish", headers=buyer)
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "published"

    listed = client.get("/api/rfps").json()["data"]
    assert [x["id"] for x in listed] == [rfp_id]

    r = client.post(
        "/api/rfps",
        headers=supplier,
        json={"title": "Supplier RFP", "description": "Should not be allowed.", "category": "Misc", "deadline": "2030-02-01T00:00:00Z"},
    )
    assert r.status_code == 403
    assert r.json()["extensions"]["kind"] == "role_not_permitted"

    r = client.post(
        "/api/responses",
        headers=supplier,
        json={"rfpId": rfp_id, "proposal": "Full service package, quarterly visits."},
    )
    assert r.status_code == 201, r.text
    response_id = r.json()["data"]["id"]

    r = client.post(
        "/api/responses",
        headers=supplier,
        json={"rfpId": rfp_id, "proposal": "A second attempt at the same RFP."},
    )
    assert r.status_code == 409
    assert r.json()["extensions"]["kind"] == "conflict"

    r = client.post(f"/api/responses/{response_id}/submit", headers=supplier)
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "submitted"
    assert client.get(f"/api/rfps/{rfp_id}").json()["data"]["responseCount"] == 1

    r = client.post(f"/api/responses/{response_id}/review", headers=supplier, json={"status": "approved"})
    assert r.status_code == 403
    assert r.json()["extensions"]["kind"] == "role_not_permitted"

    r = client.post(
        f"/api/responses/{response_id}/review",
        headers=buyer,
        json={"status": "approved", "reviewerNotes": "Good value"},
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["status"] == "approved"
    assert data["reviewedAt"]

    rows = client.get(f"/api/rfps/{rfp_id}/responses", headers=buyer).json()["data"]
    assert [x["id"] for x in rows] == [response_id]


def test_submit_after_deadline_maps_to_400(client, clock):
    buyer = _signup(client, "frank", "requester")
    supplier = _signup(client, "grace", "responder")
    rfp_id = _new_rfp(client, buyer)
    client.post(f"/api/rfps/{rfp_id}/publish", headers=buyer)
    r = client.post("/api/responses", headers=supplier, json={"rfpId": rfp_id, "proposal": "Late but thorough."})
    response_id = r.json()["data"]["id"]

    clock.advance(hours=2)
    r = client.post(f"/api/responses/{response_id}/submit", headers=supplier)
    assert r.status_code == 400
    assert r.json()["extensions"]["kind"] == "expired_deadline"


def test_document_upload_download_delete(client, blobs):
    buyer = _signup(client, "heidi", "requester")
    rfp_id = _new_rfp(client, buyer)

    r = client.post(
        "/api/documents/upload",
        headers=buyer,
        data={"documentType": "rfp_document"},
        files={"file": ("scope.pdf", b"%PDF-1.7", "application/pdf")},
    )
    assert r.status_code == 400
    assert r.json()["extensions"]["kind"] == "validation_error"

    r = client.post(
        "/api/documents/upload",
        headers=buyer,
        data={"documentType": "rfp_document", "rfpId": rfp_id, "description": "Scope"},
        files={"file": ("scope sheet (v2).pdf", b"%PDF-1.7", "application/pdf")},
    )
    assert r.status_code == 201, r.text
    doc_id = r.json()["data"]["id"]

    r = client.get(f"/api/documents/{doc_id}/download", headers=buyer)
    assert r.status_code == 200
    assert r.content == b"%PDF-1.7"
    disposition = r.headers["content-disposition"]
    assert disposition.startswith('attachment; filename="scope sheet _v2_.pdf"')
    assert "filename*=UTF-8''scope%20sheet%20%28v2%29.pdf" in disposition

    assert client.get(f"/api/rfps/{rfp_id}", headers=buyer).json()["data"]["documentIds"] == [doc_id]

    r = client.delete(f"/api/documents/{doc_id}", headers=buyer)
    assert r.status_code == 200
    assert blobs.blobs == {}
    assert client.get(f"/api/documents/{doc_id}", headers=buyer).status_code == 404


def test_unknown_route_is_problem_details(client):
    r = client.get("/nope")
    assert r.status_code == 404
    assert r.json()["detail"] == "Route not found"
