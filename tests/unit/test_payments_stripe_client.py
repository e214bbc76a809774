import pytest
import stripe

from payflow.payments.errors import PaymentNotConfirmed, ProviderNotConfigured, ProviderUnavailable
from payflow.payments.stripe_client import StripeProvider


@pytest.fixture()
def stripe_provider():
    return StripeProvider("sk_test_x", "whsec_test")


def test_retrieve_unknown_session_is_client_error(stripe_provider, monkeypatch):
    def _retrieve(session_id, api_key=None):
        raise stripe.InvalidRequestError(f"No such checkout.session: '{session_id}'", "id")
    monkeypatch.setattr(stripe.checkout.Session, "retrieve", _retrieve)

    with pytest.raises(PaymentNotConfirmed) as exc:
        stripe_provider.retrieve_session("cs_nope")
    assert exc.value.status_code == 400


def test_retrieve_network_error_is_provider_unavailable(stripe_provider, monkeypatch):
    def _retrieve(session_id, api_key=None):
        raise stripe.APIConnectionError("connexion impossible")
    monkeypatch.setattr(stripe.checkout.Session, "retrieve", _retrieve)

    with pytest.raises(ProviderUnavailable) as exc:
        stripe_provider.retrieve_session("cs_1")
    assert exc.value.status_code == 502


def test_retrieve_session_returns_plain_dict(stripe_provider, monkeypatch):
    seen = {}

    def _retrieve(session_id, api_key=None):
        seen["api_key"] = api_key
        return {"id": session_id, "status": "complete", "payment_status": "paid", "metadata": {"intent_id": "i1"}}
    monkeypatch.setattr(stripe.checkout.Session, "retrieve", _retrieve)

    session = stripe_provider.retrieve_session("cs_1")

    assert seen["api_key"] == "sk_test_x"
    assert session["payment_status"] == "paid"
    assert session["metadata"] == {"intent_id": "i1"}


def test_expire_session_uses_per_call_key(stripe_provider, monkeypatch):
    seen = {}

    def _expire(session_id, api_key=None):
        seen.update(session_id=session_id, api_key=api_key)
        return {"id": session_id, "status": "expired", "metadata": {}}
    monkeypatch.setattr(stripe.checkout.Session, "expire", _expire)

    assert stripe_provider.expire_session("cs_1")["status"] == "expired"
    assert seen == {"session_id": "cs_1", "api_key": "sk_test_x"}


def test_missing_secret_key_is_not_configured():
    with pytest.raises(ProviderNotConfigured):
        StripeProvider("", "whsec_test").retrieve_session("cs_1")
