"""
Entitlement grant: effet métier d'un achat réglé, distinct de l'état du paiement.
- cours: inscription (insertion ensembliste idempotente)
- commande: confirmation pending -> confirmed (conditionnelle, donc idempotente)
"""
from payflow.courses import service as courses_service
from payflow.orders import service as orders_service
from .models import PurchaseIntent, SubjectType

# module payflow.payments.entitlements
def grant(intent: PurchaseIntent, settled_amount: int) -> None:
    if intent.subject_type == SubjectType.COURSE:
        courses_service.enroll(intent.buyer_id, intent.subject_id)
    elif intent.subject_type == SubjectType.ORDER:
        orders_service.confirm_order(intent.subject_id, settled_amount)
    else:
        raise ValueError(f"subject_type inconnu: {intent.subject_type}")
