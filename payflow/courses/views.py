import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from starlette.concurrency import run_in_threadpool

from payflow.utils.security import require_user
from payflow.utils.rate_limit import optional_rate_limit
from payflow.courses import service as courses_service
from payflow.payments import checkout
from payflow.payments import service as payments_service
from payflow.payments.errors import IntentNotFound, PaymentError
from payflow.payments.models import SubjectRef, SubjectType
from payflow.payments.stripe_client import StripeProvider, get_payment_provider

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/courses", tags=["Courses API"])

# module payflow.courses.views
@router.post("/{course_id}/checkout", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def purchase_course(
    course_id: str,
    user: dict = Depends(require_user),
    provider: StripeProvider = Depends(get_payment_provider),
):
    """
    Crée (ou réutilise) une session Checkout Stripe pour l'achat d'un cours.
    - 404 cours introuvable ou non publié, 409 déjà acheté, 502 session non créée
    - Réponse: {id, url, intent_id, reused}
    """
    subject = SubjectRef(subject_type=SubjectType.COURSE, subject_id=course_id)
    success_url, cancel_url = checkout.redirect_urls(subject)
    try:
        result = await run_in_threadpool(
            checkout.initiate,
            provider,
            buyer_id=user.get("id"),
            subject=subject,
            success_url=success_url,
            cancel_url=cancel_url,
        )
    except PaymentError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    return {"id": result.session_id, "url": result.url, "intent_id": result.intent_id, "reused": result.reused}

@router.get("/enrolled")
def enrolled_courses(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    return {"courses": courses_service.list_enrolled(user.get("id"))}

@router.get("/{course_id}/purchase-status")
def course_purchase_status(course_id: str, user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    """
    Détail du cours + purchased (inscription effective) + dernière intention d'achat éventuelle.
    L'inscription fait foi: une intention 'completed' dont l'entitlement n'est pas encore posé
    n'est pas encore un achat.
    """
    status = courses_service.get_course_with_status(course_id, user.get("id"))
    if status is None:
        raise HTTPException(status_code=404, detail="Cours introuvable")
    subject = SubjectRef(subject_type=SubjectType.COURSE, subject_id=course_id)
    try:
        status["latest_intent"] = payments_service.purchase_status(user.get("id"), subject)["intent"]
    except IntentNotFound:
        status["latest_intent"] = None
    return status
