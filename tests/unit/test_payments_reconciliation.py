from datetime import datetime, timedelta, timezone

import pytest

from payflow.config import GRANT_LEASE_SECONDS
from payflow.payments import checkout
from payflow.payments.errors import IntentNotFound, ReconciliationConflict, ReconciliationFailure
from payflow.payments.models import IntentState, ProviderEvent, SubjectRef, SubjectType
from payflow.payments.reconciliation import Outcome, reconcile

COURSE = SubjectRef(subject_type=SubjectType.COURSE, subject_id="c1")


@pytest.fixture()
def started(ledger, courses, orders, provider):
    """Checkout d'un cours à 4999.0 -> intention pending + session Stripe."""
    courses.add_course("c1", 4999.0)
    result = checkout.initiate(provider, buyer_id="u1", subject=COURSE, success_url="https://s", cancel_url="https://c")
    return result


def _event(provider, session_id, event_type="checkout.session.completed", event_id="evt_1", **overrides):
    session = {**provider.sessions[session_id], **overrides}
    return ProviderEvent(id=event_id, type=event_type, data_object=session)


def test_completion_grants_once_and_records_settled_amount(started, ledger, courses, provider):
    provider.mark_paid(started.session_id)

    outcome = reconcile(_event(provider, started.session_id))

    intent = ledger.get_intent(started.intent_id)
    assert outcome == Outcome.COMPLETED
    assert intent.state == IntentState.COMPLETED
    assert intent.amount == 499900
    assert intent.entitlement_granted_at is not None
    assert courses.is_enrolled("u1", "c1")
    assert courses.grant_count == 1


def test_redelivery_is_acknowledged_without_second_grant(started, ledger, courses, provider):
    provider.mark_paid(started.session_id)
    event = _event(provider, started.session_id)

    assert reconcile(event) == Outcome.COMPLETED
    writes = ledger.writes
    assert reconcile(event) == Outcome.REPLAYED
    assert reconcile(event.model_copy(update={"id": "evt_2"})) == Outcome.REPLAYED

    assert courses.grant_count == 1
    assert courses.grant_calls == 1
    assert ledger.writes == writes


def test_settled_amount_overrides_recorded_amount(started, ledger, provider):
    provider.mark_paid(started.session_id)
    reconcile(_event(provider, started.session_id, amount_total=450000))
    assert ledger.get_intent(started.intent_id).amount == 450000


def test_missing_amount_total_keeps_recorded_amount(started, ledger, provider):
    provider.mark_paid(started.session_id)
    reconcile(_event(provider, started.session_id, amount_total=None))
    assert ledger.get_intent(started.intent_id).amount == 499900


def test_unpaid_completion_waits_for_async_payment(started, ledger, courses, provider):
    outcome = reconcile(_event(provider, started.session_id, payment_status="unpaid"))
    assert outcome == Outcome.AWAITING_PAYMENT
    assert ledger.get_intent(started.intent_id).state == IntentState.PENDING

    provider.mark_paid(started.session_id)
    outcome = reconcile(_event(provider, started.session_id, event_type="checkout.session.async_payment_succeeded"))
    assert outcome == Outcome.COMPLETED
    assert courses.grant_count == 1


@pytest.mark.parametrize("event_type", ["checkout.session.expired", "checkout.session.async_payment_failed"])
def test_failure_events_move_pending_to_failed(started, ledger, courses, provider, event_type):
    outcome = reconcile(_event(provider, started.session_id, event_type=event_type))
    intent = ledger.get_intent(started.intent_id)
    assert outcome == Outcome.FAILED
    assert intent.state == IntentState.FAILED
    assert intent.failure_reason == event_type
    assert courses.grant_count == 0


def test_completion_after_failure_is_acknowledged_without_grant(started, ledger, courses, provider):
    reconcile(_event(provider, started.session_id, event_type="checkout.session.expired"))
    provider.mark_paid(started.session_id)

    assert reconcile(_event(provider, started.session_id)) == Outcome.ALREADY_TERMINAL
    assert ledger.get_intent(started.intent_id).state == IntentState.FAILED
    assert courses.grant_count == 0


def test_failure_after_completion_changes_nothing(started, ledger, provider):
    provider.mark_paid(started.session_id)
    reconcile(_event(provider, started.session_id))
    assert reconcile(_event(provider, started.session_id, event_type="checkout.session.expired")) == Outcome.ALREADY_TERMINAL
    assert ledger.get_intent(started.intent_id).state == IntentState.COMPLETED


def test_unknown_event_type_is_ignored_without_reads(ledger, monkeypatch):
    def _no_read(*a, **kw):
        raise AssertionError("aucune lecture attendue")
    monkeypatch.setattr("payflow.payments.repository.get_intent", _no_read)

    outcome = reconcile(ProviderEvent(id="evt_x", type="payment_intent.created", data_object={"metadata": {"intent_id": "whatever"}}))
    assert outcome == Outcome.IGNORED
    assert ledger.writes == 0


def test_unknown_intent_is_not_found(ledger, courses):
    event = ProviderEvent(id="evt_1", type="checkout.session.completed", data_object={
        "id": "cs_unknown", "payment_status": "paid", "metadata": {"intent_id": "nope"},
    })
    with pytest.raises(IntentNotFound):
        reconcile(event)
    assert courses.grant_count == 0


def test_session_id_is_used_when_metadata_is_missing(started, ledger, courses, provider):
    provider.mark_paid(started.session_id)
    event = _event(provider, started.session_id, metadata={}, client_reference_id=None)
    assert reconcile(event) == Outcome.COMPLETED
    assert courses.grant_count == 1


def test_grant_failure_is_retried_and_converges(started, ledger, courses, provider):
    provider.mark_paid(started.session_id)
    event = _event(provider, started.session_id)
    courses.fail_grants = True

    with pytest.raises(ReconciliationFailure):
        reconcile(event)
    intent = ledger.get_intent(started.intent_id)
    assert intent.state == IntentState.COMPLETED
    assert intent.entitlement_granted_at is None
    assert intent.grant_claimed_at is None

    courses.fail_grants = False
    assert reconcile(event) == Outcome.RESUMED
    assert ledger.get_intent(started.intent_id).entitlement_granted_at is not None
    assert courses.grant_count == 1
    assert reconcile(event) == Outcome.REPLAYED


def test_ledger_write_failure_is_reconciliation_failure(started, ledger, courses, provider):
    provider.mark_paid(started.session_id)
    ledger.fail_writes = True
    with pytest.raises(ReconciliationFailure):
        reconcile(_event(provider, started.session_id))
    assert courses.grant_count == 0


def test_lost_swap_without_grant_is_conflict(started, ledger, courses, provider, monkeypatch):
    # Une autre livraison a fait la transition mais n'a pas encore accordé l'entitlement
    provider.mark_paid(started.session_id)

    def _concurrent_complete(intent_id, *, amount, session_id=None):
        ledger.rows[intent_id] = ledger.rows[intent_id].model_copy(update={"state": IntentState.COMPLETED})
        return None
    monkeypatch.setattr("payflow.payments.repository.complete_if_pending", _concurrent_complete)

    with pytest.raises(ReconciliationConflict):
        reconcile(_event(provider, started.session_id))
    assert courses.grant_count == 0
    assert ledger.get_intent(started.intent_id).entitlement_granted_at is None


def test_lost_swap_after_grant_is_replay(started, ledger, courses, provider, monkeypatch):
    provider.mark_paid(started.session_id)

    def _concurrent_complete(intent_id, *, amount, session_id=None):
        ledger.rows[intent_id] = ledger.rows[intent_id].model_copy(update={"state": IntentState.COMPLETED})
        ledger.mark_entitlement_granted(intent_id)
        return None
    monkeypatch.setattr("payflow.payments.repository.complete_if_pending", _concurrent_complete)

    assert reconcile(_event(provider, started.session_id)) == Outcome.REPLAYED
    assert courses.grant_count == 0


def test_order_completion_confirms_order_with_settled_total(ledger, orders, provider):
    order = orders.insert_order({"user_id": "u1", "status": "pending", "total_amount": 60000,
                                 "cart_items": [{"name": "Thali", "price": 30000, "quantity": 2}]})
    subject = SubjectRef(subject_type=SubjectType.ORDER, subject_id=order["id"])
    result = checkout.initiate(provider, buyer_id="u1", subject=subject, success_url="https://s", cancel_url="https://c")
    provider.mark_paid(result.session_id)

    event = _event(provider, result.session_id)
    assert reconcile(event) == Outcome.COMPLETED
    assert orders.get_order(order["id"])["status"] == "confirmed"
    assert orders.get_order(order["id"])["total_amount"] == 60000
    assert reconcile(event) == Outcome.REPLAYED


def test_redelivery_during_grant_is_conflict_and_grants_once(started, ledger, courses, provider, monkeypatch):
    from payflow.payments import entitlements

    provider.mark_paid(started.session_id)
    event = _event(provider, started.session_id)
    real_grant = entitlements.grant
    nested = []

    def _grant_with_redelivery(intent, settled_amount):
        # Deuxième livraison pendant que la première accorde l'entitlement
        try:
            nested.append(reconcile(event.model_copy(update={"id": "evt_2"})))
        except ReconciliationConflict as e:
            nested.append(e)
        return real_grant(intent, settled_amount)
    monkeypatch.setattr(entitlements, "grant", _grant_with_redelivery)

    assert reconcile(event) == Outcome.COMPLETED
    assert len(nested) == 1 and isinstance(nested[0], ReconciliationConflict)
    assert courses.grant_calls == 1
    assert reconcile(event) == Outcome.REPLAYED


def test_completed_without_grant_and_fresh_claim_is_conflict(started, ledger, courses, provider):
    ledger.rows[started.intent_id] = ledger.rows[started.intent_id].model_copy(update={
        "state": IntentState.COMPLETED,
        "grant_claimed_at": datetime.now(timezone.utc),
    })
    provider.mark_paid(started.session_id)

    with pytest.raises(ReconciliationConflict):
        reconcile(_event(provider, started.session_id))
    assert courses.grant_calls == 0


def test_crashed_grant_is_resumed_once_lease_is_stale(started, ledger, courses, provider):
    # La livraison gagnante est morte entre la transition et le grant
    ledger.rows[started.intent_id] = ledger.rows[started.intent_id].model_copy(update={
        "state": IntentState.COMPLETED,
        "grant_claimed_at": datetime.now(timezone.utc) - timedelta(seconds=GRANT_LEASE_SECONDS + 60),
    })
    provider.mark_paid(started.session_id)
    event = _event(provider, started.session_id)

    assert reconcile(event) == Outcome.RESUMED
    assert courses.grant_count == 1
    assert ledger.get_intent(started.intent_id).entitlement_granted_at is not None
    assert reconcile(event) == Outcome.REPLAYED
