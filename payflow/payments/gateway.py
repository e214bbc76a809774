"""
Webhook / Verification Gateway.
verify(raw_payload, signature_header) -> ProviderEvent | VerificationFailed
- La signature est vérifiée sur les octets reçus, jamais sur une re-sérialisation du JSON.
- Le même contenu est ensuite décodé; aucun état n'est modifié ici.
"""
import json
import logging
from typing import Optional

import stripe

from .errors import VerificationFailed
from .models import ProviderEvent

logger = logging.getLogger(__name__)

# module payflow.payments.gateway
def verify(provider, raw_payload: bytes, signature_header: Optional[str]) -> ProviderEvent:
    if not signature_header:
        raise VerificationFailed("En-tête Stripe-Signature manquant")
    try:
        provider.verify_signature(raw_payload, signature_header)
    except stripe.SignatureVerificationError as e:
        logger.warning("payments.gateway signature rejected: %s", e)
        raise VerificationFailed(f"Signature invalide: {e}") from e
    except UnicodeDecodeError as e:
        raise VerificationFailed("Payload non UTF-8") from e

    try:
        payload = json.loads(raw_payload)
    except ValueError as e:
        raise VerificationFailed("Payload JSON invalide") from e
    if not isinstance(payload, dict) or not payload.get("type"):
        raise VerificationFailed("Événement sans type")

    event = ProviderEvent.from_payload(payload)
    logger.info("payments.gateway verified event_id=%s type=%s", event.id, event.type)
    return event
