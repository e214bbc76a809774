"""
Types du flux de paiement: sujet achetable, intention d'achat (PurchaseIntent), événement fournisseur.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class SubjectType(str, Enum):
    COURSE = "course"
    ORDER = "order"


class IntentState(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = frozenset({IntentState.COMPLETED, IntentState.FAILED})


class SubjectRef(BaseModel):
    subject_type: SubjectType
    subject_id: str = Field(min_length=1)


class PurchaseIntent(BaseModel):
    """
    Ligne de la table purchase_intents.
    - amount: unités mineures (paise/centimes), figé à la création, réécrit uniquement par la réconciliation
    - state: pending -> completed | failed, jamais de sortie d'un état terminal
    - external_session_id: id de session Checkout, clé de jointure unique une fois posé
    - grant_claimed_at: bail de la livraison qui accorde l'entitlement (posé par la transition completed)
    """
    id: str
    subject_type: SubjectType
    subject_id: str
    buyer_id: str
    amount: int
    currency: str = "inr"
    state: IntentState = IntentState.PENDING
    external_session_id: Optional[str] = None
    checkout_url: Optional[str] = None
    expires_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    entitlement_granted_at: Optional[datetime] = None
    grant_claimed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PurchaseIntent":
        return cls.model_validate(row)

    @property
    def subject(self) -> SubjectRef:
        return SubjectRef(subject_type=self.subject_type, subject_id=self.subject_id)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def entitlement_granted(self) -> bool:
        return self.entitlement_granted_at is not None


class ProviderEvent(BaseModel):
    """Événement Stripe vérifié (sous-ensemble utile: id, type, data.object)."""
    id: str = ""
    type: str
    data_object: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ProviderEvent":
        data_obj = ((payload or {}).get("data") or {}).get("object") or {}
        return cls(id=str(payload.get("id") or ""), type=str(payload.get("type") or ""), data_object=data_obj)


class CheckoutResult(BaseModel):
    intent_id: str
    session_id: Optional[str] = None
    url: str
    reused: bool = False
