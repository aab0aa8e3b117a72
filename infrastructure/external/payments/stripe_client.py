"""
Stripe Checkout adapter using the official stripe-python SDK.

Notes on SDK usage:
- Checkout Sessions are created with ``capture_method=manual`` so funds are
  authorized first and captured later; the order id travels as metadata on
  both the session and its PaymentIntent (charges inherit it).
- The API key is passed per request instead of via the module-level
  ``stripe.api_key`` so several clients can coexist in one process.
- Webhook verification uses ``stripe.WebhookSignature.verify_header`` with
  the ``Stripe-Signature`` header; the verified body is then decoded as
  plain JSON.
"""
from __future__ import annotations

import json
from typing import Any, Optional

import stripe

from application.dtos.payments import (
    CheckoutSession,
    CreateCheckoutSession,
    WebhookEvent,
)
from infrastructure.external.payments.base import BasePaymentClient, payload_digest
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    ProviderUnavailableError,
    PaymentSignatureError,
    WebhookPayloadError,
)
from core.settings import PaymentSettings, payment_settings
from core.logging_config import get_logger


logger = get_logger(__name__)

# upper bound on consecutive replayed 5xx responses skipped within one attempt
MAX_KEY_GENERATIONS = 50


def _is_idempotent_replay(exc: stripe.StripeError) -> bool:
    headers = exc.headers or {}
    for name, value in headers.items():
        if name.lower() == "idempotent-replayed":
            return str(value).lower() == "true"
    return False


class _IdempotencyKeys:
    """Idempotency keys for one logical checkout request.

    Generation 0 is the caller's key; later generations append ``:<n>``.
    Without a base key every generation is None.
    """

    def __init__(self, base: Optional[str]):
        self._base = base
        self.generation = 0

    @property
    def current(self) -> Optional[str]:
        if self._base is None or self.generation == 0:
            return self._base
        return f"{self._base}:{self.generation}"

    def advance(self) -> None:
        self.generation += 1


class StripeClient(BasePaymentClient):
    provider = "stripe"
    signature_header = "Stripe-Signature"

    def __init__(
        self,
        secret_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        *,
        settings: PaymentSettings = payment_settings,
    ):
        super().__init__(
            timeout=settings.timeouts.total,
            retry={"max": settings.retry.max, "base": settings.retry.base_backoff},
        )
        self._secret_key = secret_key or settings.stripe.secret_key
        self._webhook_secret = webhook_secret or settings.stripe.webhook_secret
        if not self._secret_key:
            raise RuntimeError("PAYMENT__STRIPE__SECRET_KEY not configured")
        if not self._webhook_secret:
            raise RuntimeError("PAYMENT__STRIPE__WEBHOOK_SECRET not configured")
        self._success_url = settings.stripe.success_url
        self._cancel_url = settings.stripe.cancel_url
        self._tolerance = settings.webhook.tolerance_seconds

    def _session_params(self, req: CreateCheckoutSession) -> dict[str, Any]:
        metadata = dict(req.metadata or {})
        metadata.setdefault("order_id", req.order_id)
        return {
            "mode": "payment",
            "client_reference_id": req.order_id,
            "line_items": [
                {
                    "quantity": 1,
                    "price_data": {
                        "currency": req.currency.lower(),
                        "unit_amount": req.amount,
                        "product_data": {"name": req.description or f"Order {req.order_id}"},
                    },
                }
            ],
            "payment_intent_data": {
                "capture_method": "manual",
                "metadata": metadata,
            },
            "metadata": metadata,
            "success_url": req.success_url or self._success_url,
            "cancel_url": req.cancel_url or self._cancel_url,
        }

    async def create_checkout_session(self, req: CreateCheckoutSession) -> CheckoutSession:  # type: ignore[override]
        params = self._session_params(req)
        keys = _IdempotencyKeys(req.idempotency_key)

        def _create():
            while True:
                try:
                    return stripe.checkout.Session.create(
                        api_key=self._secret_key,
                        idempotency_key=keys.current,
                        **params,
                    )
                except (stripe.APIConnectionError, stripe.RateLimitError) as exc:
                    # the request may never have reached Stripe; retry under the same key
                    raise ProviderUnavailableError(
                        str(exc.user_message or exc), provider=self.provider, provider_code=exc.code
                    ) from exc
                except stripe.APIError as exc:
                    # Stripe stores a 5xx under its idempotency key and replays it,
                    # so the next attempt must use a fresh key
                    replayed = _is_idempotent_replay(exc)
                    keys.advance()
                    if replayed and keys.generation <= MAX_KEY_GENERATIONS:
                        logger.warning(
                            "stripe_replayed_server_error",
                            order_id=req.order_id,
                            http_status=exc.http_status,
                            key_generation=keys.generation,
                        )
                        continue
                    raise ProviderUnavailableError(
                        str(exc.user_message or exc), provider=self.provider, provider_code=exc.code
                    ) from exc
                except stripe.StripeError as exc:
                    raise PaymentProviderError(
                        str(exc.user_message or exc), provider=self.provider, provider_code=exc.code
                    ) from exc

        async def _attempt():
            return await self._call_with_timeout(_create)

        session = await self._retry(_attempt)
        self._log(
            "stripe_checkout_session_created",
            order_id=req.order_id,
            session_id=session.id,
            key_generation=keys.generation,
        )
        return CheckoutSession(
            session_handle=str(session.id),
            redirect_target=getattr(session, "url", None),
            provider=self.provider,
            order_id=req.order_id,
        )

    def parse_webhook(self, body: bytes, signature: Optional[str]) -> WebhookEvent:  # type: ignore[override]
        if not signature:
            raise PaymentSignatureError("Missing Stripe-Signature header", provider=self.provider)
        try:
            payload = body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise WebhookPayloadError("Webhook body is not valid UTF-8", provider=self.provider) from exc
        try:
            stripe.WebhookSignature.verify_header(payload, signature, self._webhook_secret, self._tolerance)
        except stripe.SignatureVerificationError as exc:
            raise PaymentSignatureError(str(exc), provider=self.provider) from exc

        try:
            data = json.loads(payload)
        except ValueError as exc:
            raise WebhookPayloadError("Webhook body is not valid JSON", provider=self.provider) from exc
        if not isinstance(data, dict) or not data.get("id") or not data.get("type"):
            raise WebhookPayloadError("Webhook body lacks id or type", provider=self.provider)
        envelope = data.get("data")
        if envelope is None:
            envelope = {}
        if not isinstance(envelope, dict):
            raise WebhookPayloadError("Webhook data must be an object", provider=self.provider)
        obj = envelope.get("object")
        if obj is not None and not isinstance(obj, dict):
            raise WebhookPayloadError("Webhook data.object must be an object", provider=self.provider)
        if obj is not None and obj.get("metadata") is not None and not isinstance(obj["metadata"], dict):
            raise WebhookPayloadError("Webhook object metadata must be an object", provider=self.provider)

        created = data.get("created")
        return WebhookEvent(
            id=str(data["id"]),
            type=str(data["type"]),
            provider=self.provider,
            created=int(created) if isinstance(created, (int, float)) else None,
            data=envelope,
            payload_digest=payload_digest(body),
            raw_body=body,
        )

    def _extract_order_id(self, event: WebhookEvent) -> Optional[str]:
        obj = event.data.get("object")
        if not isinstance(obj, dict):
            return None
        metadata = obj.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}
        return metadata.get("order_id") or obj.get("client_reference_id")
