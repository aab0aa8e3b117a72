"""
Exceptions for payment providers mapped to unified BusinessException variants.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentProviderError(BusinessException):
    """Definitive provider rejection; retrying the same request will not help."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type="PaymentProviderError",
            details=full_details,
        )


class ProviderUnavailableError(BusinessException):
    """Transient provider failure (timeout, connection, rate limit, 5xx). Safe to retry."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_RECOVERABLE,
            message=message,
            error_type="ProviderUnavailableError",
            details=full_details,
        )


class PaymentSignatureError(BusinessException):
    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        full_details = {"provider": provider}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="PaymentSignatureError",
            details=full_details,
        )


class WebhookPayloadError(BusinessException):
    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        full_details = {"provider": provider}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.WEBHOOK_PAYLOAD_INVALID,
            message=message,
            error_type="WebhookPayloadError",
            details=full_details,
        )


class WebhookSourceForbiddenError(BusinessException):
    def __init__(self, remote_ip: str | None, *, provider: str):
        super().__init__(
            code=PaymentCode.WEBHOOK_SOURCE_FORBIDDEN,
            message="Webhook source not allowed",
            error_type="WebhookSourceForbidden",
            details={"provider": provider, "remote_ip": remote_ip},
        )


class UnsupportedPaymentProviderError(BusinessException):
    def __init__(self, provider: str):
        super().__init__(
            code=PaymentCode.PROVIDER_UNSUPPORTED,
            message=f"Unsupported payment provider: {provider}",
            error_type="UnsupportedPaymentProvider",
            details={"provider": provider},
        )
