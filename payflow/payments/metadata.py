"""
Métadonnées Stripe: lien entre une session Checkout et l'intention d'achat locale.
"""
from typing import Any, Dict, List, Optional

from payflow.catalog.models import CatalogItem
from .models import PurchaseIntent

INTENT_ID_KEY = "intent_id"

# module payflow.payments.metadata
def make_metadata(intent: PurchaseIntent) -> Dict[str, str]:
    """
    metadata embarquée dans la session: intent_id fait autorité pour la réconciliation,
    les autres clés servent au diagnostic côté dashboard Stripe.
    """
    return {
        INTENT_ID_KEY: intent.id,
        "subject_type": intent.subject_type.value,
        "subject_id": intent.subject_id,
        "buyer_id": intent.buyer_id,
    }

def extract_intent_id(data_object: Dict[str, Any]) -> Optional[str]:
    """
    Extrait l'id d'intention depuis event.data.object (ou une session lue directement).
    - metadata.intent_id d'abord, client_reference_id en repli
    """
    meta = (data_object or {}).get("metadata") or {}
    intent_id = meta.get(INTENT_ID_KEY) or (data_object or {}).get("client_reference_id")
    return str(intent_id) if intent_id else None

def extract_buyer_id(data_object: Dict[str, Any]) -> Optional[str]:
    meta = (data_object or {}).get("metadata") or {}
    return meta.get("buyer_id") or None

def to_line_items(item: CatalogItem, currency: str) -> List[Dict[str, Any]]:
    """Lignes Stripe (price_data) à partir des lignes catalogue, montants en unités mineures."""
    line_items: List[Dict[str, Any]] = []
    for line in item.lines:
        product_data: Dict[str, Any] = {"name": line.name}
        if line.image:
            product_data["images"] = [line.image]
        line_items.append({
            "quantity": line.quantity,
            "price_data": {
                "currency": currency,
                "unit_amount": line.unit_amount,
                "product_data": product_data,
            },
        })
    return line_items
