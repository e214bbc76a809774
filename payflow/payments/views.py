import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Request, Depends, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from payflow.utils.security import require_user
from payflow.utils.rate_limit import optional_rate_limit
from payflow.payments import gateway
from payflow.payments import reconciliation
from payflow.payments import service as payments_service
from payflow.payments.errors import PaymentError
from payflow.payments.stripe_client import StripeProvider, get_payment_provider

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])


class ConfirmBody(BaseModel):
    session_id: Optional[str] = None


# module payflow.payments.views
@router.post("/webhook", include_in_schema=False)
async def webhook_stripe(request: Request, provider: StripeProvider = Depends(get_payment_provider)):
    """
    Webhook Stripe.
    - Signature vérifiée sur les octets bruts (Stripe-Signature + STRIPE_WEBHOOK_SECRET)
    - Réconciliation de l'intention référencée par metadata.intent_id
    - Réponses: 200 corps vide (acquitté, y compris rejeu et type ignoré),
      400 signature invalide, 404 intention inconnue, 409 conflit transitoire, 500 échec
    Tout code non-2xx déclenche une nouvelle livraison côté Stripe.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    try:
        event = gateway.verify(provider, payload, sig_header)
        outcome = await run_in_threadpool(reconciliation.reconcile, event)
    except PaymentError as e:
        logger.warning("payments.webhook rejected status=%s detail=%s", e.status_code, e.detail)
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    logger.info("payments.webhook event_id=%s type=%s outcome=%s", event.id, event.type, outcome.value)
    return Response(status_code=200)

@router.post("/confirm", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def confirm_checkout(
    request: Request,
    body: Optional[ConfirmBody] = None,
    user: dict = Depends(require_user),
    provider: StripeProvider = Depends(get_payment_provider),
):
    """
    Alternative sans webhook: confirme la session Stripe au retour du navigateur.
    - session_id en JSON body {"session_id": "..."} ou en query
    - Même réconciliation que le webhook: aucun double entitlement si les deux passent
    - Erreurs: 400 si paiement non confirmé, 403 si session d'un autre utilisateur
    """
    session_id = (body.session_id if body else None) or request.query_params.get("session_id")
    if not session_id:
        raise HTTPException(status_code=400, detail="session_id manquant")
    try:
        return await run_in_threadpool(payments_service.confirm_session, provider, session_id, user.get("id"))
    except PaymentError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)

@router.get("/purchases")
def list_purchases(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    """Historique des intentions d'achat de l'utilisateur (plus récentes d'abord)."""
    return {"purchases": payments_service.list_purchases(user.get("id"))}
