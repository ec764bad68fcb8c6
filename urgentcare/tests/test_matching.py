from sqlalchemy.exc import OperationalError

from conftest import ADMIN, OTHER_PROVIDER, PATIENT, PROVIDER
from urgentcare.models.care_request import CareRequest, CareRequestStatus as S
from urgentcare.services.errors import NotAuthorized, RequestAlreadyClaimed, RequestNotFound, StoreUnavailable
from urgentcare.services.lifecycle import Operation
from urgentcare.services.matching import MatchingGateway
from urgentcare.services.store import RequestStore


def test_list_unclaimed_newest_first_and_capped(db, feed, submit, lifecycle):
    ids = [submit() for _ in range(23)]
    lifecycle.claim(ids[-1], PROVIDER).unwrap()
    lifecycle.cancel(ids[-2], PATIENT).unwrap()

    listed = MatchingGateway(db, feed).list_unclaimed().unwrap()
    assert len(listed) == 20
    assert all(r.provider_id is None and r.status == S.SEARCHING for r in listed)
    created = [r.created_at for r in listed]
    assert created == sorted(created, reverse=True)
    assert ids[-1] not in {r.id for r in listed}
    assert ids[-2] not in {r.id for r in listed}


def test_listing_includes_nested_aggregate(db, feed, submit):
    submit()
    (row,) = MatchingGateway(db, feed).list_unclaimed().unwrap()
    assert row.service_type.name == "Urgent care house call"
    assert row.case_patients[0].symptoms[0].symptom.name == "Fever"
    assert row.urgency.value == "medium"


def test_page_size_is_configurable(db, feed, submit):
    for _ in range(3):
        submit()
    assert len(MatchingGateway(db, feed, page_size=2).list_unclaimed().unwrap()) == 2


def test_second_claim_gets_already_claimed(db, feed, submit):
    rid = submit()
    gateway = MatchingGateway(db, feed)
    won = gateway.claim(rid, PROVIDER).unwrap()
    assert won.status == S.MATCHED
    assert won.matched_at is not None

    lost = gateway.claim(rid, OTHER_PROVIDER)
    assert not lost.ok
    assert isinstance(lost.error, RequestAlreadyClaimed)
    assert RequestStore(db).find_by_id(rid).provider_id == PROVIDER.id


def test_stale_read_cannot_claim(session_factory, feed, submit):
    """Two providers read the same open request; only the first write lands."""
    rid = submit()
    session_a, session_b = session_factory(), session_factory()
    try:
        stale = RequestStore(session_a).find_by_id(rid)
        assert stale.provider_id is None

        assert MatchingGateway(session_b, feed).claim(rid, OTHER_PROVIDER).ok

        # the loser's compare-and-swap matches no row even though its read said "unclaimed"
        store_a = RequestStore(session_a)
        with store_a.transaction():
            changed = store_a.conditional_update(
                rid,
                {"provider_id": PROVIDER.id, "status": S.MATCHED},
                CareRequest.provider_id.is_(None),
            )
        assert changed == 0

        result = MatchingGateway(session_a, feed).claim(rid, PROVIDER)
        assert isinstance(result.error, RequestAlreadyClaimed)
        assert RequestStore(session_a).find_by_id(rid).provider_id == OTHER_PROVIDER.id
    finally:
        session_a.close()
        session_b.close()


def test_lost_race_is_classified(db, feed, submit, session_factory, monkeypatch):
    """The pre-check passes on a stale read; the conditional write then matches nothing."""
    rid = submit()
    real_find = RequestStore.find_by_id
    calls = {"n": 0}

    def _find_then_someone_claims(self, request_id):
        row = real_find(self, request_id)
        calls["n"] += 1
        if calls["n"] == 1:
            other = session_factory()
            try:
                store = RequestStore(other)
                with store.transaction():
                    store.conditional_update(
                        request_id,
                        {"provider_id": OTHER_PROVIDER.id, "status": S.MATCHED, "matched_at": row.created_at},
                    )
            finally:
                other.close()
        return row

    monkeypatch.setattr(RequestStore, "find_by_id", _find_then_someone_claims)
    result = MatchingGateway(db, feed).claim(rid, PROVIDER)
    monkeypatch.undo()

    assert isinstance(result.error, RequestAlreadyClaimed)
    assert RequestStore(db).find_by_id(rid).provider_id == OTHER_PROVIDER.id

def test_claim_requires_provider_role(db, feed, submit):
    rid = submit()
    assert isinstance(MatchingGateway(db, feed).claim(rid, ADMIN).error, NotAuthorized)
    assert isinstance(MatchingGateway(db, feed).claim(rid, PATIENT).error, NotAuthorized)


def test_claim_after_cancel_is_precondition_failure(db, feed, submit, lifecycle):
    rid = submit()
    lifecycle.cancel(rid, PATIENT).unwrap()
    result = MatchingGateway(db, feed).claim(rid, PROVIDER)
    assert result.error.code == "PRECONDITION_FAILED"


def test_decline_is_soft(db, feed, submit):
    rid = submit()
    gateway = MatchingGateway(db, feed)
    out = gateway.decline(rid, PROVIDER).unwrap()
    assert out.request_id == rid and out.declined
    # still visible to everyone, including the provider who declined
    assert rid in {r.id for r in gateway.list_unclaimed().unwrap()}
    assert gateway.claim(rid, PROVIDER).ok


def test_decline_unknown_request(db, feed, catalog):
    assert isinstance(MatchingGateway(db, feed).decline("missing", PROVIDER).error, RequestNotFound)


def test_store_outage_surfaces_as_store_unavailable(db, feed, monkeypatch):
    def _down(self, limit=20):
        raise OperationalError("SELECT", {}, Exception("connection refused"))

    monkeypatch.setattr(RequestStore, "find_unclaimed", _down)
    result = MatchingGateway(db, feed).list_unclaimed()
    assert isinstance(result.error, StoreUnavailable)


def test_claimed_request_moves_forward(db, feed, submit, lifecycle):
    rid = submit()
    MatchingGateway(db, feed).claim(rid, PROVIDER).unwrap()
    assert lifecycle.advance_status(rid, PROVIDER, Operation.START_EN_ROUTE).unwrap().status == S.EN_ROUTE
