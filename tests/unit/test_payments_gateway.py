import json
import time

import pytest

from payflow.payments import gateway
from payflow.payments.errors import ProviderNotConfigured, VerificationFailed
from payflow.payments.stripe_client import StripeProvider
from tests.fakes import sign_payload

SECRET = "whsec_test"
PAYLOAD = json.dumps({
    "id": "evt_1",
    "type": "checkout.session.completed",
    "data": {"object": {"id": "cs_test_1", "metadata": {"intent_id": "i1"}}},
}).encode("utf-8")


@pytest.fixture()
def stripe_provider():
    return StripeProvider("sk_test_x", SECRET, tolerance=300)


def test_valid_signature_yields_event(stripe_provider):
    event = gateway.verify(stripe_provider, PAYLOAD, sign_payload(PAYLOAD, SECRET))
    assert event.id == "evt_1"
    assert event.type == "checkout.session.completed"
    assert event.data_object["metadata"]["intent_id"] == "i1"


def test_missing_header_is_rejected(stripe_provider):
    with pytest.raises(VerificationFailed):
        gateway.verify(stripe_provider, PAYLOAD, None)


def test_wrong_secret_is_rejected(stripe_provider):
    with pytest.raises(VerificationFailed):
        gateway.verify(stripe_provider, PAYLOAD, sign_payload(PAYLOAD, "whsec_other"))


def test_signature_is_checked_on_raw_bytes(stripe_provider):
    # Même JSON re-sérialisé différemment: la signature ne correspond plus
    header = sign_payload(PAYLOAD, SECRET)
    reformatted = json.dumps(json.loads(PAYLOAD), indent=2).encode("utf-8")
    with pytest.raises(VerificationFailed):
        gateway.verify(stripe_provider, reformatted, header)


def test_stale_timestamp_is_rejected(stripe_provider):
    header = sign_payload(PAYLOAD, SECRET, timestamp=int(time.time()) - 3600)
    with pytest.raises(VerificationFailed):
        gateway.verify(stripe_provider, PAYLOAD, header)


def test_signed_but_undecodable_body_is_rejected(stripe_provider):
    body = b"not json"
    with pytest.raises(VerificationFailed):
        gateway.verify(stripe_provider, body, sign_payload(body, SECRET))


def test_signed_event_without_type_is_rejected(stripe_provider):
    body = json.dumps({"id": "evt_1", "data": {}}).encode("utf-8")
    with pytest.raises(VerificationFailed):
        gateway.verify(stripe_provider, body, sign_payload(body, SECRET))


def test_missing_webhook_secret_is_configuration_error():
    provider = StripeProvider("sk_test_x", "", tolerance=300)
    with pytest.raises(ProviderNotConfigured):
        gateway.verify(provider, PAYLOAD, sign_payload(PAYLOAD, SECRET))
