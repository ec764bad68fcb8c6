from conftest import ADMIN, OTHER_PATIENT, PATIENT, PROVIDER, auth_headers, request_payload


def _create(client, catalog, **kwargs):
    r = client.post("/api/care-requests", json=request_payload(catalog, **kwargs), headers=auth_headers(PATIENT))
    assert r.status_code == 201, r.text
    return r.json()


def test_create_returns_searching_aggregate(client, catalog):
    body = _create(client, catalog, donation="10")
    assert body["status"] == "searching"
    assert body["status_headline"] == "Finding a provider near you"
    assert body["urgency"] == "medium"
    assert body["total_price"] == 110.0
    assert body["case_patients"][0]["date_of_birth"] == "1990-04-02"
    assert body["case_patients"][0]["symptoms"][0]["display_name"] == "Fever"


def test_create_requires_token(client, catalog):
    r = client.post("/api/care-requests", json=request_payload(catalog))
    assert r.status_code == 401
    j = r.json()
    assert j["code"] == "NOT_AUTHENTICATED"
    assert "trace_id" in j


def test_create_rejects_bad_token(client, catalog):
    r = client.post(
        "/api/care-requests",
        json=request_payload(catalog),
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert r.status_code == 401
    assert r.json()["code"] == "NOT_AUTHENTICATED"


def test_create_is_patient_only(client, catalog):
    r = client.post("/api/care-requests", json=request_payload(catalog), headers=auth_headers(PROVIDER))
    assert r.status_code == 403
    assert r.json()["code"] == "NOT_AUTHORIZED"


def test_severity_out_of_range_is_validation_failed(client, catalog):
    patients = [{"name": "A", "relationship": "self", "symptoms": [{"custom_symptom": "pain", "severity": 11}]}]
    r = client.post("/api/care-requests", json=request_payload(catalog, patients=patients), headers=auth_headers(PATIENT))
    assert r.status_code == 422
    j = r.json()
    assert j["code"] == "VALIDATION_FAILED"
    assert any("severity" in d for d in j["details"])


def test_missing_case_patients_is_validation_failed(client, catalog):
    r = client.post("/api/care-requests", json=request_payload(catalog, patients=[]), headers=auth_headers(PATIENT))
    assert r.status_code == 422
    assert r.json()["code"] == "VALIDATION_FAILED"


def test_symptom_needs_one_source(client, catalog):
    patients = [{"name": "A", "relationship": "self", "symptoms": [{"severity": 4}]}]
    r = client.post("/api/care-requests", json=request_payload(catalog, patients=patients), headers=auth_headers(PATIENT))
    assert r.status_code == 422


def test_list_and_get_my_requests(client, catalog):
    first = _create(client, catalog)
    second = _create(client, catalog)

    r = client.get("/api/care-requests", headers=auth_headers(PATIENT))
    assert [x["id"] for x in r.json()] == [second["id"], first["id"]]
    assert client.get("/api/care-requests", headers=auth_headers(OTHER_PATIENT)).json() == []

    r = client.get(f"/api/care-requests/{first['id']}", headers=auth_headers(PATIENT))
    assert r.status_code == 200
    assert r.json()["id"] == first["id"]


def test_get_is_scoped_to_owner_assignee_and_admin(client, catalog):
    rid = _create(client, catalog)["id"]
    assert client.get(f"/api/care-requests/{rid}", headers=auth_headers(OTHER_PATIENT)).status_code == 403
    assert client.get(f"/api/care-requests/{rid}", headers=auth_headers(PROVIDER)).status_code == 403
    assert client.get(f"/api/care-requests/{rid}", headers=auth_headers(ADMIN)).status_code == 200

    client.post(f"/api/provider/requests/{rid}/claim", headers=auth_headers(PROVIDER))
    assert client.get(f"/api/care-requests/{rid}", headers=auth_headers(PROVIDER)).status_code == 200


def test_get_unknown_request(client, catalog):
    r = client.get("/api/care-requests/does-not-exist", headers=auth_headers(PATIENT))
    assert r.status_code == 404
    assert r.json()["code"] == "REQUEST_NOT_FOUND"


def test_patient_cancel(client, catalog):
    rid = _create(client, catalog)["id"]
    r = client.post(f"/api/care-requests/{rid}/cancel", json={"reason": "Feeling better"}, headers=auth_headers(PATIENT))
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "cancelled"
    assert body["cancelled_by"] == "patient"
    assert body["cancellation_reason"] == "Feeling better"

    again = client.post(f"/api/care-requests/{rid}/cancel", headers=auth_headers(PATIENT))
    assert again.status_code == 409
    assert again.json()["code"] == "PRECONDITION_FAILED"


def test_cancel_someone_elses_request(client, catalog):
    rid = _create(client, catalog)["id"]
    r = client.post(f"/api/care-requests/{rid}/cancel", headers=auth_headers(OTHER_PATIENT))
    assert r.status_code == 403
    assert r.json()["code"] == "NOT_AUTHORIZED"


def test_create_is_rate_limited(client, catalog):
    headers = auth_headers(PATIENT)
    for _ in range(10):
        assert client.post("/api/care-requests", json=request_payload(catalog), headers=headers).status_code == 201
    r = client.post("/api/care-requests", json=request_payload(catalog), headers=headers)
    assert r.status_code == 429
    j = r.json()
    assert j["code"] == "TOO_MANY_REQUESTS"
    assert "trace_id" in j
    assert "Retry-After" in r.headers
    # the limit is per caller
    assert client.post("/api/care-requests", json=request_payload(catalog), headers=auth_headers(OTHER_PATIENT)).status_code == 201
