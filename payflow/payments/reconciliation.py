"""
Reconciliation Engine: applique un événement fournisseur vérifié à l'intention d'achat.

Propriété centrale: l'entitlement est accordé au plus une fois par intention, quel que soit
le nombre de livraisons du webhook (Stripe ne garantit pas l'exactly-once).
- La transition pending -> completed est un compare-and-swap en base qui pose aussi le bail
  du grant (grant_claimed_at); seule la livraison qui l'emporte accorde l'entitlement.
- entitlement_granted_at est posé après l'entitlement. Une intention 'completed' sans ce
  marqueur n'est reprise que par la livraison qui prend le bail (absent ou expiré); les autres
  reçoivent un conflit (409) et Stripe réessaiera.
"""
from datetime import datetime, timedelta, timezone
from enum import Enum
import logging

from payflow.config import GRANT_LEASE_SECONDS
from . import entitlements, repository
from .errors import IntentNotFound, LedgerError, ReconciliationConflict, ReconciliationFailure
from .metadata import extract_intent_id
from .models import IntentState, ProviderEvent, PurchaseIntent

logger = logging.getLogger(__name__)

COMPLETION_EVENTS = frozenset({
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
})
FAILURE_EVENTS = frozenset({
    "checkout.session.expired",
    "checkout.session.async_payment_failed",
})
PAID_STATUSES = frozenset({"paid", "no_payment_required"})


class Outcome(str, Enum):
    IGNORED = "ignored"
    AWAITING_PAYMENT = "awaiting_payment"
    COMPLETED = "completed"
    REPLAYED = "replayed"
    RESUMED = "resumed"
    FAILED = "failed"
    ALREADY_TERMINAL = "already_terminal"


# module payflow.payments.reconciliation
def _load_intent(data_object: dict) -> PurchaseIntent:
    intent_id = extract_intent_id(data_object)
    try:
        if intent_id:
            intent = repository.get_intent(intent_id)
        else:
            intent = repository.get_intent_by_session_id(str(data_object.get("id") or ""))
    except LedgerError as e:
        raise ReconciliationFailure(str(e)) from e
    if intent is None:
        logger.warning(
            "payments.reconcile intent not found intent_id=%s session_id=%s",
            intent_id, data_object.get("id"),
        )
        raise IntentNotFound()
    return intent

def _settled_amount(data_object: dict, intent: PurchaseIntent) -> int:
    amount_total = data_object.get("amount_total")
    if isinstance(amount_total, int) and not isinstance(amount_total, bool) and amount_total >= 0:
        return amount_total
    return intent.amount

def _reload(intent_id: str) -> PurchaseIntent | None:
    try:
        return repository.get_intent(intent_id)
    except LedgerError as e:
        raise ReconciliationFailure(str(e)) from e

def _release_claim(intent_id: str) -> None:
    try:
        repository.release_grant_claim(intent_id)
    except LedgerError:
        logger.warning("payments.reconcile claim kept until lease expiry intent_id=%s", intent_id)

def _grant(intent: PurchaseIntent, settled_amount: int) -> None:
    """Appelé uniquement par la livraison qui détient le bail du grant."""
    try:
        entitlements.grant(intent, settled_amount)
        repository.mark_entitlement_granted(intent.id)
    except Exception as e:
        logger.exception("payments.reconcile grant failed intent_id=%s", intent.id)
        _release_claim(intent.id)
        raise ReconciliationFailure(f"Entitlement non accordé: {e}") from e

def _resume(intent: PurchaseIntent) -> Outcome:
    stale_before = datetime.now(timezone.utc) - timedelta(seconds=GRANT_LEASE_SECONDS)
    try:
        claimed = repository.claim_grant(intent.id, stale_before=stale_before)
    except LedgerError as e:
        raise ReconciliationFailure(str(e)) from e
    if claimed is None:
        current = _reload(intent.id)
        if current is not None and current.entitlement_granted:
            return Outcome.REPLAYED
        logger.info("payments.reconcile grant in progress elsewhere intent_id=%s", intent.id)
        raise ReconciliationConflict()
    logger.warning("payments.reconcile resuming grant intent_id=%s", intent.id)
    _grant(claimed, claimed.amount)
    return Outcome.RESUMED

def _complete(event: ProviderEvent) -> Outcome:
    obj = event.data_object
    if event.type == "checkout.session.completed" and obj.get("payment_status") not in PAID_STATUSES:
        # Moyen de paiement différé: async_payment_succeeded/failed suivra
        logger.info("payments.reconcile awaiting payment session_id=%s payment_status=%s", obj.get("id"), obj.get("payment_status"))
        return Outcome.AWAITING_PAYMENT

    intent = _load_intent(obj)

    if intent.state == IntentState.COMPLETED:
        if intent.entitlement_granted:
            logger.info("payments.reconcile replay intent_id=%s event_id=%s", intent.id, event.id)
            return Outcome.REPLAYED
        return _resume(intent)

    if intent.state == IntentState.FAILED:
        logger.error(
            "payments.reconcile completion for failed intent intent_id=%s session_id=%s reason=%s",
            intent.id, obj.get("id"), intent.failure_reason,
        )
        return Outcome.ALREADY_TERMINAL

    settled = _settled_amount(obj, intent)
    session_id = None if intent.external_session_id else (obj.get("id") or None)
    try:
        updated = repository.complete_if_pending(intent.id, amount=settled, session_id=session_id)
    except LedgerError as e:
        raise ReconciliationFailure(str(e)) from e

    if updated is None:
        # Une autre livraison a fait la transition entre notre lecture et notre écriture
        current = _reload(intent.id)
        if current is not None and current.entitlement_granted:
            return Outcome.REPLAYED
        raise ReconciliationConflict()

    _grant(updated, settled)
    logger.info(
        "payments.reconcile completed intent_id=%s subject=%s:%s amount=%s",
        updated.id, updated.subject_type.value, updated.subject_id, settled,
    )
    return Outcome.COMPLETED

def _fail(event: ProviderEvent) -> Outcome:
    intent = _load_intent(event.data_object)
    if intent.state != IntentState.PENDING:
        return Outcome.ALREADY_TERMINAL
    try:
        changed = repository.mark_failed_if_pending(intent.id, event.type)
    except LedgerError as e:
        raise ReconciliationFailure(str(e)) from e
    logger.info("payments.reconcile failed intent_id=%s event=%s changed=%s", intent.id, event.type, changed)
    return Outcome.FAILED if changed else Outcome.ALREADY_TERMINAL

def reconcile(event: ProviderEvent) -> Outcome:
    """
    reconcile(event) -> Outcome | IntentNotFound | ReconciliationConflict | ReconciliationFailure
    Les types d'événement non gérés sont acquittés sans lecture ni écriture.
    """
    if event.type in COMPLETION_EVENTS:
        return _complete(event)
    if event.type in FAILURE_EVENTS:
        return _fail(event)
    logger.info("payments.reconcile ignored event_id=%s type=%s", event.id, event.type)
    return Outcome.IGNORED
