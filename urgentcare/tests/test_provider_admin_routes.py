from conftest import ADMIN, OTHER_PROVIDER, PATIENT, PROVIDER, auth_headers, request_payload

STEPS = ["start-en-route", "mark-arrived", "start-visit", "complete"]


def _create(client, catalog):
    r = client.post("/api/care-requests", json=request_payload(catalog), headers=auth_headers(PATIENT))
    assert r.status_code == 201, r.text
    return r.json()["id"]


def test_available_lists_unclaimed(client, catalog):
    rid = _create(client, catalog)
    r = client.get("/api/provider/requests/available", headers=auth_headers(PROVIDER))
    assert r.status_code == 200
    assert [x["id"] for x in r.json()] == [rid]
    assert client.get("/api/provider/requests/available", headers=auth_headers(ADMIN)).status_code == 200
    assert client.get("/api/provider/requests/available", headers=auth_headers(PATIENT)).status_code == 403


def test_claim_then_second_claim_conflicts(client, catalog):
    rid = _create(client, catalog)
    r = client.post(f"/api/provider/requests/{rid}/claim", headers=auth_headers(PROVIDER))
    assert r.status_code == 200
    assert r.json()["status"] == "matched"
    assert r.json()["status_headline"] == "Provider assigned"

    r = client.post(f"/api/provider/requests/{rid}/claim", headers=auth_headers(OTHER_PROVIDER))
    assert r.status_code == 409
    j = r.json()
    assert j["code"] == "REQUEST_ALREADY_CLAIMED"
    assert j["message"] == "This request was just accepted by another provider"
    assert client.get("/api/provider/requests/available", headers=auth_headers(PROVIDER)).json() == []


def test_claim_unknown_request(client, catalog):
    r = client.post("/api/provider/requests/missing/claim", headers=auth_headers(PROVIDER))
    assert r.status_code == 404
    assert r.json()["code"] == "REQUEST_NOT_FOUND"


def test_visit_flow_active_and_history(client, catalog):
    rid = _create(client, catalog)
    headers = auth_headers(PROVIDER)
    client.post(f"/api/provider/requests/{rid}/claim", headers=headers)
    assert client.get("/api/provider/requests/active", headers=headers).json()["id"] == rid

    for step in STEPS[:-1]:
        assert client.post(f"/api/provider/requests/{rid}/{step}", headers=headers).status_code == 200
    r = client.post(f"/api/provider/requests/{rid}/complete", json={"notes": "Strep negative"}, headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "completed"
    assert body["provider_notes"] == "Strep negative"
    assert body["cancelled_at"] is None

    assert client.get("/api/provider/requests/active", headers=headers).json() is None
    history = client.get("/api/provider/requests/history", headers=headers).json()
    assert [x["id"] for x in history] == [rid]

    stats = client.get("/api/provider/stats", headers=headers).json()
    assert stats == {"today_earnings": 100.0, "today_visits": 1, "available_requests": 0}


def test_out_of_order_step_is_precondition_failed(client, catalog):
    rid = _create(client, catalog)
    headers = auth_headers(PROVIDER)
    client.post(f"/api/provider/requests/{rid}/claim", headers=headers)
    r = client.post(f"/api/provider/requests/{rid}/start-visit", headers=headers)
    assert r.status_code == 409
    assert r.json()["code"] == "PRECONDITION_FAILED"


def test_step_by_unassigned_provider_is_forbidden(client, catalog):
    rid = _create(client, catalog)
    client.post(f"/api/provider/requests/{rid}/claim", headers=auth_headers(PROVIDER))
    client.post(f"/api/provider/requests/{rid}/start-en-route", headers=auth_headers(PROVIDER))
    r = client.post(f"/api/provider/requests/{rid}/mark-arrived", headers=auth_headers(OTHER_PROVIDER))
    assert r.status_code == 403
    assert r.json()["code"] == "NOT_AUTHORIZED"


def test_unknown_step(client, catalog):
    rid = _create(client, catalog)
    r = client.post(f"/api/provider/requests/{rid}/teleport", headers=auth_headers(PROVIDER))
    assert r.status_code == 422
    assert r.json()["code"] == "VALIDATION_FAILED"
    r = client.post(f"/api/provider/requests/{rid}/cancel", headers=auth_headers(PROVIDER))
    assert r.status_code == 422


def test_decline_keeps_request_open(client, catalog):
    rid = _create(client, catalog)
    r = client.post(f"/api/provider/requests/{rid}/decline", headers=auth_headers(PROVIDER))
    assert r.status_code == 200
    assert r.json() == {"request_id": rid, "declined": True}
    available = client.get("/api/provider/requests/available", headers=auth_headers(OTHER_PROVIDER)).json()
    assert [x["id"] for x in available] == [rid]


def test_admin_assign_cancel_and_list(client, catalog):
    first, second = _create(client, catalog), _create(client, catalog)
    headers = auth_headers(ADMIN)

    r = client.post(f"/api/admin/requests/{first}/assign", json={"provider_id": OTHER_PROVIDER.id}, headers=headers)
    assert r.status_code == 200
    assert r.json()["provider_id"] == OTHER_PROVIDER.id
    assert r.json()["status"] == "matched"

    r = client.post(f"/api/admin/requests/{second}/cancel", json={"reason": "duplicate"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["cancelled_by"] == "admin"

    listed = client.get("/api/admin/requests", headers=headers).json()
    assert {x["id"] for x in listed} == {first, second}
    cancelled = client.get("/api/admin/requests", params={"status": "cancelled"}, headers=headers).json()
    assert [x["id"] for x in cancelled] == [second]
    assert client.get(f"/api/admin/requests/{first}", headers=headers).json()["id"] == first


def test_admin_routes_require_admin(client, catalog):
    rid = _create(client, catalog)
    for headers in (auth_headers(PATIENT), auth_headers(PROVIDER)):
        assert client.get("/api/admin/requests", headers=headers).status_code == 403
        r = client.post(f"/api/admin/requests/{rid}/assign", json={"provider_id": "x"}, headers=headers)
        assert r.status_code == 403
    assert client.get("/api/admin/stats").status_code == 401


def test_admin_stats(client, catalog):
    rid = _create(client, catalog)
    _create(client, catalog)
    provider = auth_headers(PROVIDER)
    client.post(f"/api/provider/requests/{rid}/claim", headers=provider)
    for step in STEPS:
        client.post(f"/api/provider/requests/{rid}/{step}", headers=provider)

    stats = client.get("/api/admin/stats", headers=auth_headers(ADMIN)).json()
    assert stats["total_revenue"] == 100.0
    assert stats["completed_visits"] == 1
    assert stats["active_requests"] == 1
    assert stats["total_patients"] == 1
    assert stats["status_counts"]["searching"] == 1
    assert stats["status_counts"]["completed"] == 1
    # nothing completed in the previous week to compare against
    assert stats["revenue_change_pct"] is None
