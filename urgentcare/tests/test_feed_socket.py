import time

from conftest import ADMIN, OTHER_PATIENT, PATIENT, PROVIDER, auth_headers, request_payload
from urgentcare.auth.jwt import create_access_token


def _url(key, principal=None, token=None):
    if token is None and principal is not None:
        token = create_access_token(principal.id, principal.role)
    url = f"/api/feed/ws?key={key}"
    if token:
        url += f"&token={token}"
    return url


def _wait_for_no_subscribers(feed, timeout=2.0):
    deadline = time.monotonic() + timeout
    while feed.subscriber_count() and time.monotonic() < deadline:
        time.sleep(0.01)
    return feed.subscriber_count()


def test_pool_watcher_sees_new_and_claimed_requests(client, catalog, feed):
    with client.websocket_connect(_url("unclaimed", PROVIDER)) as ws:
        assert ws.receive_json() == {"type": "subscribed", "key": "unclaimed"}

        created = client.post("/api/care-requests", json=request_payload(catalog), headers=auth_headers(PATIENT))
        rid = created.json()["id"]
        event = ws.receive_json()
        assert event["type"] == "change"
        assert event["kind"] == "created"
        assert event["request_id"] == rid
        assert event["care_request"]["status"] == "searching"

        client.post(f"/api/provider/requests/{rid}/claim", headers=auth_headers(PROVIDER))
        event = ws.receive_json()
        assert event["kind"] == "updated"
        assert event["care_request"]["provider_id"] == PROVIDER.id
        assert event["version"] > created.json()["version"]

    assert _wait_for_no_subscribers(feed) == 0


def test_patient_follows_own_request(client, catalog, feed):
    rid = client.post("/api/care-requests", json=request_payload(catalog), headers=auth_headers(PATIENT)).json()["id"]
    with client.websocket_connect(_url(f"request:{rid}", PATIENT)) as ws:
        assert ws.receive_json()["type"] == "subscribed"
        client.post(f"/api/care-requests/{rid}/cancel", json={"reason": "ok"}, headers=auth_headers(PATIENT))
        event = ws.receive_json()
        assert event["care_request"]["status"] == "cancelled"
        assert event["care_request"]["status_headline"] == "Request cancelled"
    assert _wait_for_no_subscribers(feed) == 0


def test_missing_token_is_rejected(client, catalog, feed):
    with client.websocket_connect(_url("unclaimed")) as ws:
        message = ws.receive_json()
    assert message["type"] == "error"
    assert message["code"] == "NOT_AUTHENTICATED"
    assert feed.subscriber_count() == 0


def test_key_permissions(client, catalog, feed):
    rid = client.post("/api/care-requests", json=request_payload(catalog), headers=auth_headers(PATIENT)).json()["id"]
    denied = [
        ("all", PROVIDER),
        ("unclaimed", PATIENT),
        (f"request:{rid}", OTHER_PATIENT),
        (f"request:{rid}", PROVIDER),
    ]
    for key, principal in denied:
        with client.websocket_connect(_url(key, principal)) as ws:
            assert ws.receive_json()["code"] == "NOT_AUTHORIZED", key

    with client.websocket_connect(_url("request:missing", ADMIN)) as ws:
        assert ws.receive_json()["code"] == "REQUEST_NOT_FOUND"
    with client.websocket_connect(_url("sideways", ADMIN)) as ws:
        assert ws.receive_json()["code"] == "VALIDATION_FAILED"

    with client.websocket_connect(_url("all", ADMIN)) as ws:
        assert ws.receive_json() == {"type": "subscribed", "key": "all"}
    assert _wait_for_no_subscribers(feed) == 0
