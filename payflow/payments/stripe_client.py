"""
Adaptateur Stripe: centralise les appels au SDK.
Une instance StripeProvider est construite au démarrage (lifespan) et injectée dans le checkout
et le webhook via get_payment_provider; aucune configuration globale de stripe.api_key.
Les tests remplacent l'instance par un faux fournisseur (dependency_overrides).
"""
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import stripe
from fastapi import Request

from payflow.config import STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET, STRIPE_WEBHOOK_TOLERANCE
from .errors import PaymentNotConfirmed, ProviderNotConfigured, ProviderUnavailable

SESSION_FIELDS = (
    "id",
    "url",
    "status",
    "payment_status",
    "amount_total",
    "currency",
    "client_reference_id",
    "expires_at",
)

def _plain(obj: Any) -> Dict[str, Any]:
    """StripeObject -> dict (les versions récentes du SDK n'héritent plus de dict)."""
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return dict(obj)
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)

def session_to_dict(session: Any) -> Dict[str, Any]:
    if isinstance(session, dict):
        data = {k: session.get(k) for k in SESSION_FIELDS}
        data["metadata"] = dict(session.get("metadata") or {})
        return data
    data = {k: getattr(session, k, None) for k in SESSION_FIELDS}
    data["metadata"] = _plain(getattr(session, "metadata", None))
    return data


class StripeProvider:
    """PaymentProviderClient Stripe Checkout."""

    name = "stripe"

    def __init__(self, secret_key: str, webhook_secret: str, tolerance: int = 300):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    def _require_key(self) -> str:
        if not self.secret_key:
            raise ProviderNotConfigured("STRIPE_SECRET_KEY manquant")
        return self.secret_key

    def create_checkout_session(
        self,
        *,
        line_items: List[Dict[str, Any]],
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        client_reference_id: str,
        expires_at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Crée une session Stripe Checkout (mode payment).
        Retour: dict session (ex: {"id": "cs_test_...", "url": "https://...", ...})
        """
        params: Dict[str, Any] = {
            "mode": "payment",
            "line_items": line_items,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "client_reference_id": client_reference_id,
            "payment_method_types": ["card"],
        }
        if expires_at is not None:
            params["expires_at"] = int(expires_at.timestamp())
        session = stripe.checkout.Session.create(api_key=self._require_key(), **params)
        return session_to_dict(session)

    def retrieve_session(self, session_id: str) -> Dict[str, Any]:
        """
        Relit une session Checkout.
        - id inconnu ou mal formé -> PaymentNotConfirmed (400, erreur client)
        - autre erreur Stripe (réseau, API) -> ProviderUnavailable (502)
        """
        key = self._require_key()
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=key)
        except stripe.InvalidRequestError as e:
            raise PaymentNotConfirmed(f"Session de paiement introuvable: {session_id}") from e
        except stripe.StripeError as e:
            raise ProviderUnavailable(str(e)) from e
        return session_to_dict(session)

    def expire_session(self, session_id: str) -> Dict[str, Any]:
        """
        Expire une session Checkout encore ouverte: plus aucun paiement possible ensuite.
        Stripe refuse (InvalidRequestError) si la session est déjà payée ou expirée.
        """
        session = stripe.checkout.Session.expire(session_id, api_key=self._require_key())
        return session_to_dict(session)

    def verify_signature(self, payload: bytes, sig_header: str) -> None:
        """
        Vérifie l'en-tête Stripe-Signature sur les octets bruts reçus.
        Lève stripe.SignatureVerificationError si la signature ou l'horodatage est invalide.
        """
        if not self.webhook_secret:
            raise ProviderNotConfigured("STRIPE_WEBHOOK_SECRET manquant")
        stripe.WebhookSignature.verify_header(
            payload.decode("utf-8"), sig_header, self.webhook_secret, self.tolerance
        )


def build_provider() -> StripeProvider:
    return StripeProvider(STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET, STRIPE_WEBHOOK_TOLERANCE)

def get_payment_provider(request: Request) -> StripeProvider:
    """Dépendance FastAPI: instance construite par le lifespan (repli paresseux hors lifespan)."""
    provider = getattr(request.app.state, "payment_provider", None)
    if provider is None:
        provider = build_provider()
        request.app.state.payment_provider = provider
    return provider

def expiry_from_now(minutes: int) -> datetime:
    return datetime.fromtimestamp(int(time.time()) + minutes * 60, tz=timezone.utc)
