"""
Checkout Session Initiator.
initiate(provider, buyer_id, subject, success_url, cancel_url) -> CheckoutResult
Étapes:
  1) Catalog Lookup (SubjectNotFound sinon)
  2) Cours: refus si déjà inscrit, réutilisation de la session 'pending' encore valide
     (une session remplacée est d'abord expirée chez Stripe)
  3) Intention 'pending' écrite AVANT l'appel Stripe: le webhook trouve toujours sa ligne
  4) Session Stripe (metadata.intent_id); en cas d'échec l'intention passe 'failed'
  5) external_session_id / checkout_url posés sur l'intention
"""
from datetime import datetime, timedelta, timezone
import logging

from payflow.catalog import service as catalog_service
from payflow.config import (
    CHECKOUT_CURRENCY,
    CHECKOUT_SESSION_TTL_MINUTES,
    COURSE_CANCEL_PATH,
    COURSE_SUCCESS_PATH,
    FRONTEND_URL,
    ORDER_CANCEL_PATH,
    ORDER_SUCCESS_PATH,
)
from payflow.courses import service as courses_service
from . import repository
from .errors import AlreadyEntitled, CheckoutInProgress, LedgerError, PaymentError, SessionCreationFailed
from .metadata import make_metadata, to_line_items
from .models import CheckoutResult, PurchaseIntent, SubjectRef, SubjectType
from .stripe_client import expiry_from_now

logger = logging.getLogger(__name__)

# Une session qui expire dans moins de REUSE_MARGIN n'est plus proposée au client
REUSE_MARGIN = timedelta(minutes=2)
# Intention sans session plus récente que IN_FLIGHT_WINDOW: création concurrente en cours
IN_FLIGHT_WINDOW = timedelta(minutes=2)


# module payflow.payments.checkout
def _reusable(intent: PurchaseIntent, now: datetime) -> bool:
    return bool(
        intent.external_session_id
        and intent.checkout_url
        and intent.expires_at
        and intent.expires_at - REUSE_MARGIN > now
    )

def _retire_session(provider, intent: PurchaseIntent) -> bool:
    """
    Expire côté Stripe la session d'une intention avant de la remplacer.
    True si la session n'est plus payable; False si elle a été payée ou reste ouverte
    (le webhook de complétion doit alors trouver l'intention encore 'pending').
    """
    session_id = intent.external_session_id
    try:
        session = provider.expire_session(session_id)
    except Exception:
        # Refus attendu si la session est déjà payée ou déjà expirée
        logger.warning("payments.checkout expire refused intent_id=%s session_id=%s", intent.id, session_id, exc_info=True)
        try:
            session = provider.retrieve_session(session_id)
        except Exception:
            logger.exception("payments.checkout session lookup failed intent_id=%s session_id=%s", intent.id, session_id)
            return False
    return (session or {}).get("status") == "expired"

def _settle_previous_pending(provider, buyer_id: str, subject: SubjectRef) -> CheckoutResult | None:
    """
    Une seule intention 'pending' par (acheteur, cours):
    - session encore valide -> on la renvoie
    - session proche de l'expiration -> expirée chez Stripe, puis l'intention passe 'failed';
      si Stripe refuse (session payée entre-temps) -> CheckoutInProgress
    - session jamais créée -> 'failed', sauf création concurrente récente (CheckoutInProgress)
    """
    existing = repository.find_pending_intent(buyer_id, subject)
    if existing is None:
        return None
    now = datetime.now(timezone.utc)
    if _reusable(existing, now):
        logger.info("payments.checkout reuse intent_id=%s session_id=%s", existing.id, existing.external_session_id)
        return CheckoutResult(
            intent_id=existing.id,
            session_id=existing.external_session_id,
            url=existing.checkout_url,
            reused=True,
        )
    if existing.external_session_id:
        if not _retire_session(provider, existing):
            logger.info("payments.checkout previous session still payable intent_id=%s", existing.id)
            raise CheckoutInProgress()
        reason = "session_expired"
    elif existing.created_at and existing.created_at + IN_FLIGHT_WINDOW > now:
        raise CheckoutInProgress()
    else:
        reason = "session_never_created"
    repository.mark_failed_if_pending(existing.id, reason)
    logger.info("payments.checkout superseded intent_id=%s reason=%s", existing.id, reason)
    return None

def _abandon(intent: PurchaseIntent, reason: str) -> None:
    try:
        repository.mark_failed_if_pending(intent.id, reason)
    except LedgerError:
        logger.exception("payments.checkout could not mark intent failed id=%s", intent.id)

def initiate(provider, *, buyer_id: str, subject: SubjectRef, success_url: str, cancel_url: str) -> CheckoutResult:
    item = catalog_service.resolve(subject)

    if subject.subject_type == SubjectType.COURSE:
        if courses_service.is_enrolled(buyer_id, subject.subject_id):
            raise AlreadyEntitled("Cours déjà acheté")
        previous = _settle_previous_pending(provider, buyer_id, subject)
        if previous is not None:
            return previous

    intent = repository.insert_intent(
        buyer_id=buyer_id,
        subject=subject,
        amount=item.amount,
        currency=CHECKOUT_CURRENCY,
    )
    expires_at = expiry_from_now(CHECKOUT_SESSION_TTL_MINUTES)

    try:
        session = provider.create_checkout_session(
            line_items=to_line_items(item, CHECKOUT_CURRENCY),
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=make_metadata(intent),
            client_reference_id=intent.id,
            expires_at=expires_at,
        )
    except PaymentError as e:
        _abandon(intent, f"provider_error: {e.detail}")
        raise
    except Exception as e:
        logger.exception("payments.checkout provider error intent_id=%s", intent.id)
        _abandon(intent, f"provider_error: {e}")
        raise SessionCreationFailed() from e

    session_id = (session or {}).get("id")
    url = (session or {}).get("url")
    if not session_id or not url:
        _abandon(intent, "no_redirect_url")
        raise SessionCreationFailed()

    intent = repository.attach_session(intent.id, session_id=session_id, checkout_url=url, expires_at=expires_at)
    logger.info(
        "payments.checkout created intent_id=%s session_id=%s subject=%s:%s amount=%s",
        intent.id, session_id, subject.subject_type.value, subject.subject_id, intent.amount,
    )
    return CheckoutResult(intent_id=intent.id, session_id=session_id, url=url)

def redirect_urls(subject: SubjectRef) -> tuple[str, str]:
    """
    (success_url, cancel_url) sur le front; Stripe remplace {CHECKOUT_SESSION_ID} au retour,
    ce qui permet au front d'appeler /payments/confirm sans attendre le webhook.
    """
    if subject.subject_type == SubjectType.COURSE:
        success_path, cancel_path = COURSE_SUCCESS_PATH, COURSE_CANCEL_PATH
    else:
        success_path, cancel_path = ORDER_SUCCESS_PATH, ORDER_CANCEL_PATH
    success = FRONTEND_URL + success_path.format(subject_id=subject.subject_id)
    cancel = FRONTEND_URL + cancel_path.format(subject_id=subject.subject_id)
    sep = "&" if "?" in success else "?"
    return f"{success}{sep}session_id={{CHECKOUT_SESSION_ID}}", cancel
