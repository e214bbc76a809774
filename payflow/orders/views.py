import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from payflow.utils.security import require_user
from payflow.utils.rate_limit import optional_rate_limit
from payflow.orders import service as orders_service
from payflow.payments import checkout
from payflow.payments.errors import PaymentError
from payflow.payments.models import SubjectRef, SubjectType
from payflow.payments.stripe_client import StripeProvider, get_payment_provider

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/orders", tags=["Orders API"])


class CartItemIn(BaseModel):
    menu_id: str
    quantity: int = Field(gt=0)


class OrderCheckoutBody(BaseModel):
    restaurant_id: str
    cart_items: List[CartItemIn]
    delivery_details: Dict[str, Any] = Field(default_factory=dict)


def _checkout_order(provider: StripeProvider, user_id: str, body: OrderCheckoutBody) -> Dict[str, Any]:
    order = orders_service.create_pending_order(
        user_id,
        body.restaurant_id,
        [i.model_dump() for i in body.cart_items],
        body.delivery_details,
    )
    subject = SubjectRef(subject_type=SubjectType.ORDER, subject_id=str(order["id"]))
    success_url, cancel_url = checkout.redirect_urls(subject)
    try:
        result = checkout.initiate(
            provider,
            buyer_id=user_id,
            subject=subject,
            success_url=success_url,
            cancel_url=cancel_url,
        )
    except PaymentError as e:
        # Aucune session payable: la commande ne doit pas rester 'pending'
        try:
            orders_service.cancel_pending_order(subject.subject_id, e.detail)
        except Exception:
            logger.exception("orders.checkout cancel failed order_id=%s", subject.subject_id)
        raise
    return {"id": result.session_id, "url": result.url, "intent_id": result.intent_id, "order_id": subject.subject_id}

# module payflow.orders.views
@router.post("/checkout", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def checkout_order(
    body: OrderCheckoutBody,
    user: dict = Depends(require_user),
    provider: StripeProvider = Depends(get_payment_provider),
):
    """
    Crée une commande 'pending' puis la session Checkout Stripe correspondante.
    - Entrée JSON: {restaurant_id, cart_items: [{menu_id, quantity}], delivery_details}
    - Les prix viennent des menus du restaurant, jamais du client
    - Erreurs: 400 panier invalide, 404 restaurant introuvable, 502 session non créée
    """
    try:
        return await run_in_threadpool(_checkout_order, provider, user.get("id"), body)
    except orders_service.InvalidCart as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PaymentError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)

@router.get("")
def list_orders(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    return {"orders": orders_service.list_orders(user.get("id"))}
