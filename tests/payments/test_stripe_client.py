import json
import time
from types import SimpleNamespace

import pytest
import stripe

from core.settings import PaymentRetry, PaymentSettings, StripeSettings
from domain.order import PaymentEventType
from infrastructure.external.payments import get_payment_gateway
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentSignatureError,
    ProviderUnavailableError,
    UnsupportedPaymentProviderError,
    WebhookPayloadError,
)
from infrastructure.external.payments.stripe_client import StripeClient
from application.dtos.payments import CreateCheckoutSession

from fakes import WEBHOOK_SECRET, sign_payload, signed_delivery, stripe_event


def _client(**retry) -> StripeClient:
    settings = PaymentSettings(
        retry=PaymentRetry(**({"max": 0} | retry)),
        stripe=StripeSettings(secret_key="sk_test_123", webhook_secret=WEBHOOK_SECRET),
    )
    return StripeClient(settings=settings)


def test_factory_returns_stripe_client():
    assert isinstance(get_payment_gateway("stripe"), StripeClient)
    with pytest.raises(UnsupportedPaymentProviderError):
        get_payment_gateway("paypal")


def test_parse_webhook_verifies_signature():
    client = _client()
    body, sig = signed_delivery(stripe_event("evt_1", "payment_intent.succeeded", created=150))

    evt = client.parse_webhook(body, sig)

    assert (evt.id, evt.type, evt.provider, evt.created) == ("evt_1", "payment_intent.succeeded", "stripe", 150)
    assert len(evt.payload_digest) == 64


def test_parse_webhook_rejects_bad_signature():
    client = _client()
    body, _ = signed_delivery(stripe_event("evt_1", "payment_intent.succeeded"))

    with pytest.raises(PaymentSignatureError):
        client.parse_webhook(body, sign_payload(body, secret="whsec_other"))
    with pytest.raises(PaymentSignatureError):
        client.parse_webhook(body, None)


def test_parse_webhook_rejects_tampered_body():
    client = _client()
    body, sig = signed_delivery(stripe_event("evt_1", "payment_intent.succeeded"))
    tampered = body.replace(b"evt_1", b"evt_2")

    with pytest.raises(PaymentSignatureError):
        client.parse_webhook(tampered, sig)


def test_parse_webhook_rejects_replayed_timestamp():
    client = _client()
    body = json.dumps(stripe_event("evt_1", "payment_intent.succeeded")).encode()
    old = sign_payload(body, timestamp=int(time.time()) - 3600)

    with pytest.raises(PaymentSignatureError):
        client.parse_webhook(body, old)


def test_parse_webhook_requires_json_with_id_and_type():
    client = _client()
    not_json = b"hello"
    with pytest.raises(WebhookPayloadError):
        client.parse_webhook(not_json, sign_payload(not_json))

    no_type = json.dumps({"id": "evt_1"}).encode()
    with pytest.raises(WebhookPayloadError):
        client.parse_webhook(no_type, sign_payload(no_type))


@pytest.mark.parametrize(
    "envelope",
    [[1], {"object": "pi_123"}, {"object": {"metadata": "x"}}],
    ids=["data-list", "object-string", "metadata-string"],
)
def test_parse_webhook_rejects_malformed_event_data(envelope):
    client = _client()
    body = json.dumps(
        {"id": "evt_1", "type": "payment_intent.succeeded", "created": 100, "data": envelope}
    ).encode()

    with pytest.raises(WebhookPayloadError):
        client.parse_webhook(body, sign_payload(body))


def test_parse_webhook_accepts_event_without_data():
    client = _client()
    body = json.dumps({"id": "evt_1", "type": "customer.created", "created": 100}).encode()

    evt = client.parse_webhook(body, sign_payload(body))

    assert evt.data == {}
    assert client.normalize_event(evt) is None


@pytest.mark.parametrize(
    "stripe_type,expected",
    [
        ("payment_intent.amount_capturable_updated", PaymentEventType.AUTHORIZED),
        ("payment_intent.succeeded", PaymentEventType.CAPTURED),
        ("payment_intent.payment_failed", PaymentEventType.FAILED),
        ("payment_intent.canceled", PaymentEventType.FAILED),
        ("charge.refunded", PaymentEventType.REFUNDED),
    ],
)
def test_normalize_maps_event_types(stripe_type, expected):
    client = _client()
    body, sig = signed_delivery(stripe_event("evt_1", stripe_type, order_id="o9", created=77))

    event = client.normalize_event(client.parse_webhook(body, sig))

    assert event.event_type is expected
    assert (event.event_id, event.order_id, event.occurred_at, event.provider) == ("evt_1", "o9", 77, "stripe")


def test_normalize_ignores_untracked_types():
    client = _client()
    body, sig = signed_delivery(stripe_event("evt_1", "customer.created"))

    assert client.normalize_event(client.parse_webhook(body, sig)) is None


def test_normalize_falls_back_to_client_reference_id():
    client = _client()
    body, sig = signed_delivery(
        stripe_event("evt_1", "payment_intent.succeeded", order_id="o7", use_client_reference=True)
    )

    assert client.normalize_event(client.parse_webhook(body, sig)).order_id == "o7"


def test_normalize_requires_order_reference_and_timestamp():
    client = _client()
    body, sig = signed_delivery(stripe_event("evt_1", "payment_intent.succeeded", order_id=None))
    with pytest.raises(WebhookPayloadError):
        client.normalize_event(client.parse_webhook(body, sig))

    body, sig = signed_delivery(stripe_event("evt_2", "payment_intent.succeeded", created=None))
    with pytest.raises(WebhookPayloadError):
        client.normalize_event(client.parse_webhook(body, sig))


def _checkout_request() -> CreateCheckoutSession:
    return CreateCheckoutSession(
        order_id="o1",
        amount=5000,
        currency="USD",
        idempotency_key="k" * 64,
        metadata={"order_id": "o1"},
    )


@pytest.mark.asyncio
async def test_create_checkout_session_uses_manual_capture(monkeypatch):
    captured = {}

    def _create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(id="cs_test_abc", url="https://checkout.stripe.com/c/pay/cs_test_abc")

    monkeypatch.setattr(stripe.checkout.Session, "create", _create)
    client = _client()

    session = await client.create_checkout_session(_checkout_request())

    assert session.session_handle == "cs_test_abc"
    assert session.redirect_target.startswith("https://checkout.stripe.com/")
    assert captured["api_key"] == "sk_test_123"
    assert captured["idempotency_key"] == "k" * 64
    assert captured["client_reference_id"] == "o1"
    assert captured["payment_intent_data"]["capture_method"] == "manual"
    assert captured["payment_intent_data"]["metadata"]["order_id"] == "o1"
    price = captured["line_items"][0]["price_data"]
    assert (price["unit_amount"], price["currency"]) == (5000, "usd")


@pytest.mark.asyncio
async def test_transient_stripe_errors_are_retried(monkeypatch):
    calls = []

    def _create(**kwargs):
        calls.append(kwargs)
        if len(calls) == 1:
            raise stripe.APIConnectionError("network down")
        return SimpleNamespace(id="cs_test_retry", url=None)

    monkeypatch.setattr(stripe.checkout.Session, "create", _create)
    client = _client(max=1, base_backoff=0)

    session = await client.create_checkout_session(_checkout_request())

    assert session.session_handle == "cs_test_retry"
    assert len(calls) == 2
    assert calls[0]["idempotency_key"] == calls[1]["idempotency_key"]


@pytest.mark.asyncio
async def test_transient_error_surfaces_when_retries_exhausted(monkeypatch):
    def _create(**kwargs):
        raise stripe.RateLimitError("slow down")

    monkeypatch.setattr(stripe.checkout.Session, "create", _create)

    with pytest.raises(ProviderUnavailableError):
        await _client().create_checkout_session(_checkout_request())


def _server_error(replayed: bool = False) -> stripe.APIError:
    headers = {"Idempotent-Replayed": "true"} if replayed else {"Request-Id": "req_1"}
    return stripe.APIError("internal error", http_status=500, headers=headers)


@pytest.mark.asyncio
async def test_server_error_retry_uses_a_fresh_idempotency_key(monkeypatch):
    calls = []

    def _create(**kwargs):
        calls.append(kwargs["idempotency_key"])
        if len(calls) == 1:
            raise _server_error()
        return SimpleNamespace(id="cs_test_fresh", url=None)

    monkeypatch.setattr(stripe.checkout.Session, "create", _create)

    session = await _client(max=1, base_backoff=0).create_checkout_session(_checkout_request())

    assert session.session_handle == "cs_test_fresh"
    assert calls == ["k" * 64, "k" * 64 + ":1"]


@pytest.mark.asyncio
async def test_replayed_server_error_moves_to_next_key_without_spending_a_retry(monkeypatch):
    calls = []

    def _create(**kwargs):
        calls.append(kwargs["idempotency_key"])
        if len(calls) < 3:
            raise _server_error(replayed=True)
        return SimpleNamespace(id="cs_test_after_replay", url=None)

    monkeypatch.setattr(stripe.checkout.Session, "create", _create)

    session = await _client(max=0).create_checkout_session(_checkout_request())

    assert session.session_handle == "cs_test_after_replay"
    assert calls == ["k" * 64, "k" * 64 + ":1", "k" * 64 + ":2"]


@pytest.mark.asyncio
async def test_server_error_surfaces_when_retries_exhausted(monkeypatch):
    calls = []

    def _create(**kwargs):
        calls.append(kwargs["idempotency_key"])
        raise _server_error()

    monkeypatch.setattr(stripe.checkout.Session, "create", _create)

    with pytest.raises(ProviderUnavailableError):
        await _client(max=1, base_backoff=0).create_checkout_session(_checkout_request())
    assert len(set(calls)) == 2


@pytest.mark.asyncio
async def test_definitive_stripe_errors_are_not_retried(monkeypatch):
    calls = []

    def _create(**kwargs):
        calls.append(kwargs)
        raise stripe.InvalidRequestError("bad currency", param="currency")

    monkeypatch.setattr(stripe.checkout.Session, "create", _create)

    with pytest.raises(PaymentProviderError):
        await _client(max=2, base_backoff=0).create_checkout_session(_checkout_request())
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_slow_provider_call_times_out():
    client = BasePaymentClient(timeout=0.05)

    with pytest.raises(ProviderUnavailableError):
        await client._call_with_timeout(lambda: time.sleep(0.5))


def test_missing_secrets_fail_fast():
    settings = PaymentSettings()
    settings.stripe.webhook_secret = None

    with pytest.raises(RuntimeError):
        StripeClient(secret_key="sk_test_123", settings=settings)
