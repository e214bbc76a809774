"""
Ledger Store: accès à la table purchase_intents.
- Toutes les transitions d'état sont des mises à jour conditionnelles filtrées sur state='pending'
  (compare-and-swap): seule la livraison qui affecte une ligne a gagné la transition.
- Les erreurs d'accès sont journalisées puis remontées en LedgerError: un échec d'écriture
  ne doit jamais passer pour un succès (le webhook doit être redélivré).
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4
import logging

import payflow.infra.supabase_client as supabase_client
from payflow.config import PURCHASE_INTENTS_TABLE
from .errors import LedgerError
from .models import IntentState, PurchaseIntent, SubjectRef

logger = logging.getLogger(__name__)

# module payflow.payments.repository
def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def _table():
    return supabase_client.get_service_supabase().table(PURCHASE_INTENTS_TABLE)

def _first(res) -> Optional[PurchaseIntent]:
    rows = getattr(res, "data", None) or []
    return PurchaseIntent.from_row(rows[0]) if rows else None

def insert_intent(*, buyer_id: str, subject: SubjectRef, amount: int, currency: str) -> PurchaseIntent:
    """Crée une intention 'pending' (sans session externe) et retourne la ligne créée."""
    row: Dict[str, Any] = {
        "id": str(uuid4()),
        "subject_type": subject.subject_type.value,
        "subject_id": subject.subject_id,
        "buyer_id": buyer_id,
        "amount": int(amount),
        "currency": currency,
        "state": IntentState.PENDING.value,
    }
    try:
        intent = _first(_table().insert(row).execute())
    except Exception as e:
        logger.exception("payments.repository.insert_intent failed buyer_id=%s subject=%s", buyer_id, subject.subject_id)
        raise LedgerError(f"Création de l'intention impossible: {e}") from e
    if intent is None:
        raise LedgerError("Création de l'intention sans retour")
    return intent

def get_intent(intent_id: str) -> Optional[PurchaseIntent]:
    if not intent_id:
        return None
    try:
        return _first(_table().select("*").eq("id", intent_id).limit(1).execute())
    except Exception as e:
        logger.exception("payments.repository.get_intent failed id=%s", intent_id)
        raise LedgerError(f"Lecture de l'intention impossible: {e}") from e

def get_intent_by_session_id(session_id: str) -> Optional[PurchaseIntent]:
    if not session_id:
        return None
    try:
        return _first(_table().select("*").eq("external_session_id", session_id).limit(1).execute())
    except Exception as e:
        logger.exception("payments.repository.get_intent_by_session_id failed session_id=%s", session_id)
        raise LedgerError(f"Lecture de l'intention impossible: {e}") from e

def find_pending_intent(buyer_id: str, subject: SubjectRef) -> Optional[PurchaseIntent]:
    """Intention 'pending' la plus récente pour le couple (acheteur, sujet)."""
    try:
        res = (
            _table()
            .select("*")
            .eq("buyer_id", buyer_id)
            .eq("subject_type", subject.subject_type.value)
            .eq("subject_id", subject.subject_id)
            .eq("state", IntentState.PENDING.value)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        return _first(res)
    except Exception as e:
        logger.exception("payments.repository.find_pending_intent failed buyer_id=%s subject=%s", buyer_id, subject.subject_id)
        raise LedgerError(f"Lecture de l'intention impossible: {e}") from e

def attach_session(intent_id: str, *, session_id: str, checkout_url: str, expires_at: Optional[datetime]) -> PurchaseIntent:
    """Pose external_session_id / checkout_url sur une intention encore 'pending'."""
    patch: Dict[str, Any] = {
        "external_session_id": session_id,
        "checkout_url": checkout_url,
        "expires_at": expires_at.isoformat() if expires_at else None,
        "updated_at": _now_iso(),
    }
    try:
        intent = _first(
            _table().update(patch).eq("id", intent_id).eq("state", IntentState.PENDING.value).execute()
        )
    except Exception as e:
        logger.exception("payments.repository.attach_session failed id=%s session_id=%s", intent_id, session_id)
        raise LedgerError(f"Mise à jour de l'intention impossible: {e}") from e
    if intent is None:
        raise LedgerError("Intention absente ou déjà terminée lors de l'attache de session")
    return intent

def mark_failed_if_pending(intent_id: str, reason: str) -> bool:
    """pending -> failed. Retourne True si la transition a eu lieu."""
    try:
        res = (
            _table()
            .update({"state": IntentState.FAILED.value, "failure_reason": reason[:500], "updated_at": _now_iso()})
            .eq("id", intent_id)
            .eq("state", IntentState.PENDING.value)
            .execute()
        )
        return bool(res.data)
    except Exception as e:
        logger.exception("payments.repository.mark_failed_if_pending failed id=%s", intent_id)
        raise LedgerError(f"Mise à jour de l'intention impossible: {e}") from e

def complete_if_pending(intent_id: str, *, amount: int, session_id: Optional[str] = None) -> Optional[PurchaseIntent]:
    """
    pending -> completed avec le montant réglé; la livraison gagnante prend le bail du grant.
    Retourne l'intention mise à jour, ou None si une autre livraison a déjà fait la transition.
    """
    patch: Dict[str, Any] = {
        "state": IntentState.COMPLETED.value,
        "amount": int(amount),
        "grant_claimed_at": _now_iso(),
        "updated_at": _now_iso(),
    }
    if session_id:
        patch["external_session_id"] = session_id
    try:
        return _first(
            _table().update(patch).eq("id", intent_id).eq("state", IntentState.PENDING.value).execute()
        )
    except Exception as e:
        logger.exception("payments.repository.complete_if_pending failed id=%s", intent_id)
        raise LedgerError(f"Mise à jour de l'intention impossible: {e}") from e

def mark_entitlement_granted(intent_id: str) -> None:
    try:
        (
            _table()
            .update({"entitlement_granted_at": _now_iso(), "updated_at": _now_iso()})
            .eq("id", intent_id)
            .eq("state", IntentState.COMPLETED.value)
            .is_("entitlement_granted_at", "null")
            .execute()
        )
    except Exception as e:
        logger.exception("payments.repository.mark_entitlement_granted failed id=%s", intent_id)
        raise LedgerError(f"Mise à jour de l'intention impossible: {e}") from e

def claim_grant(intent_id: str, *, stale_before: datetime) -> Optional[PurchaseIntent]:
    """
    Reprise d'un grant interrompu: prend le bail sur une intention 'completed' sans entitlement,
    si aucun bail n'est posé ou s'il date d'avant stale_before.
    Retourne None si une autre livraison détient un bail récent (ou si le grant est déjà fait).
    """
    stale = stale_before.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    try:
        return _first(
            _table()
            .update({"grant_claimed_at": _now_iso(), "updated_at": _now_iso()})
            .eq("id", intent_id)
            .eq("state", IntentState.COMPLETED.value)
            .is_("entitlement_granted_at", "null")
            .or_(f"grant_claimed_at.is.null,grant_claimed_at.lt.{stale}")
            .execute()
        )
    except Exception as e:
        logger.exception("payments.repository.claim_grant failed id=%s", intent_id)
        raise LedgerError(f"Mise à jour de l'intention impossible: {e}") from e

def release_grant_claim(intent_id: str) -> None:
    """Libère le bail après un grant en échec: la livraison suivante peut reprendre sans attendre."""
    try:
        (
            _table()
            .update({"grant_claimed_at": None, "updated_at": _now_iso()})
            .eq("id", intent_id)
            .is_("entitlement_granted_at", "null")
            .execute()
        )
    except Exception as e:
        logger.exception("payments.repository.release_grant_claim failed id=%s", intent_id)
        raise LedgerError(f"Mise à jour de l'intention impossible: {e}") from e

def list_buyer_intents(buyer_id: str, limit: int = 50) -> List[PurchaseIntent]:
    if not buyer_id:
        return []
    try:
        res = (
            _table()
            .select("*")
            .eq("buyer_id", buyer_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [PurchaseIntent.from_row(r) for r in (res.data or [])]
    except Exception:
        logger.exception("payments.repository.list_buyer_intents failed buyer_id=%s", buyer_id)
        return []
