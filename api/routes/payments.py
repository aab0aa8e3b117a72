"""
Payments API routes.

Exposes the provider webhook endpoint and checkout-session creation via the
application services. Keep this thin: no SDK details here.
"""
from __future__ import annotations

import ipaddress

from fastapi import APIRouter, Depends, Request

from api.dependencies import get_payment_service, get_webhook_service
from application.dtos.payments import CheckoutSessionRequest
from application.services.payment_service import PaymentService
from application.services.webhook_service import WebhookService
from core.logging_config import get_logger
from core.response import success_response
from core.settings import payment_settings
from infrastructure.external.payments.exceptions import (
    WebhookPayloadError,
    WebhookSourceForbiddenError,
)


router = APIRouter(tags=["Payments"])
logger = get_logger(__name__)


def _ip_allowed(remote_ip: str, allowlist: list[str]) -> bool:
    try:
        rip = ipaddress.ip_address(remote_ip)
    except ValueError:
        return False
    for entry in allowlist:
        try:
            if "/" in entry:
                if rip in ipaddress.ip_network(entry, strict=False):
                    return True
            elif rip == ipaddress.ip_address(entry):
                return True
        except ValueError:
            logger.warning("webhook_allowlist_entry_invalid", entry=entry)
    return False


@router.post("/payments/webhooks/{provider}", summary="Receive provider webhook")
async def payments_webhook(
    provider: str,
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
):
    # Optional IP allowlist
    allowlist = payment_settings.webhook.ip_allowlist or []
    if allowlist:
        remote_ip = request.client.host if request.client else None
        if not remote_ip or not _ip_allowed(remote_ip, allowlist):
            raise WebhookSourceForbiddenError(remote_ip, provider=provider)

    ct = (request.headers.get("content-type") or "").lower()
    if "application/json" not in ct:
        raise WebhookPayloadError("Unsupported content type, expected application/json", provider=provider)

    raw_body = await request.body()
    receipt = await service.receive(raw_body, request.headers.get(service.gateway.signature_header))
    if not receipt.acknowledged:
        raise receipt.error

    # 200 acknowledges receipt; providers retry anything else
    return success_response(
        data=receipt.model_dump(mode="json"),
        message="Webhook received",
    )


@router.post("/orders/{order_id}/checkout-session", summary="Create hosted payment session")
async def create_checkout_session(
    order_id: str,
    payload: CheckoutSessionRequest,
    service: PaymentService = Depends(get_payment_service),
):
    session = await service.create_session(order_id, payload.amount, payload.currency)
    return success_response(data=session.model_dump(mode="json"), message="Checkout session created")
