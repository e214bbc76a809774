"""
Cas d'usage 'payments' côté utilisateur authentifié.
- confirm_session: alternative sans webhook (retour du navigateur sur success_url),
  passe par le même moteur de réconciliation que le webhook.
- purchase_status / list_purchases: lecture du registre des achats.
"""
from typing import Any, Dict, List
import logging

from . import repository
from .errors import IntentNotFound, PaymentNotConfirmed, SessionForbidden
from .metadata import extract_buyer_id
from .models import IntentState, ProviderEvent, PurchaseIntent, SubjectRef
from .reconciliation import PAID_STATUSES, Outcome, reconcile

logger = logging.getLogger(__name__)

# module payflow.payments.service
def confirm_session(provider, session_id: str, current_user_id: str) -> Dict[str, Any]:
    """
    Récupère la session Stripe, vérifie l'état du paiement et la propriété,
    puis réconcilie comme le ferait checkout.session.completed.
    - 400 si payment_status n'est pas 'paid'
    - 403 si la session appartient à un autre utilisateur
    """
    session = provider.retrieve_session(session_id)

    payment_status = session.get("payment_status") or ""
    if payment_status not in PAID_STATUSES:
        raise PaymentNotConfirmed(f"Paiement non confirmé (payment_status={payment_status})")

    meta_buyer_id = extract_buyer_id(session)
    if meta_buyer_id and meta_buyer_id != current_user_id:
        raise SessionForbidden()

    event = ProviderEvent(id=f"confirm:{session_id}", type="checkout.session.completed", data_object=session)
    outcome = reconcile(event)
    intent = repository.get_intent_by_session_id(session_id)
    if intent is not None and intent.buyer_id != current_user_id:
        raise SessionForbidden()
    logger.info("payments.confirm session_id=%s user_id=%s outcome=%s", session_id, current_user_id, outcome.value)
    return {
        "status": "ok",
        "outcome": outcome.value,
        "intent": _public(intent) if intent else None,
    }

def purchase_status(buyer_id: str, subject: SubjectRef) -> Dict[str, Any]:
    """
    État de l'achat le plus récent pour (acheteur, sujet).
    purchased=True dès qu'une intention est 'completed'.
    """
    intents = [i for i in repository.list_buyer_intents(buyer_id) if i.subject == subject]
    if not intents:
        raise IntentNotFound("Aucun achat pour ce sujet")
    latest = intents[0]
    purchased = any(i.state == IntentState.COMPLETED for i in intents)
    return {"purchased": purchased, "intent": _public(latest)}

def list_purchases(buyer_id: str) -> List[Dict[str, Any]]:
    return [_public(i) for i in repository.list_buyer_intents(buyer_id)]

def _public(intent: PurchaseIntent) -> Dict[str, Any]:
    return {
        "id": intent.id,
        "subject_type": intent.subject_type.value,
        "subject_id": intent.subject_id,
        "amount": intent.amount,
        "currency": intent.currency,
        "state": intent.state.value,
        "failure_reason": intent.failure_reason,
        "created_at": intent.created_at.isoformat() if intent.created_at else None,
    }


__all__ = ["confirm_session", "purchase_status", "list_purchases", "Outcome"]
