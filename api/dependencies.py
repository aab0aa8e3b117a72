"""
API依赖项 - 组装应用服务（composition root）
"""
from typing import Callable

from fastapi import Depends, Request

from application.ports.payment_gateway import PaymentGateway
from application.services.order_service import OrderApplicationService
from application.services.order_sync_service import OrderSyncService
from application.services.payment_service import PaymentService
from application.services.webhook_service import WebhookService
from core.settings import payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.external.payments.exceptions import UnsupportedPaymentProviderError
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


UnitOfWorkFactory = Callable[..., AbstractUnitOfWork]


def get_uow_factory() -> UnitOfWorkFactory:
    return SQLAlchemyUnitOfWork


def get_default_gateway(request: Request) -> PaymentGateway:
    """启动时构建的默认支付渠道客户端（见 main.lifespan）"""
    return request.app.state.payment_gateway


def get_webhook_gateway(provider: str, request: Request) -> PaymentGateway:
    """按路径参数选择支付渠道（用于 /payments/webhooks/{provider}）"""
    gateway: PaymentGateway = request.app.state.payment_gateway
    if provider.lower() != gateway.provider:
        raise UnsupportedPaymentProviderError(provider)
    return gateway


async def get_order_service(uow_factory: UnitOfWorkFactory = Depends(get_uow_factory)) -> OrderApplicationService:
    return OrderApplicationService(uow_factory=uow_factory)


async def get_order_sync_service(uow_factory: UnitOfWorkFactory = Depends(get_uow_factory)) -> OrderSyncService:
    return OrderSyncService(
        uow_factory,
        max_attempts=payment_settings.sync.max_attempts,
        base_backoff=payment_settings.sync.base_backoff,
    )


async def get_payment_service(
    gateway: PaymentGateway = Depends(get_default_gateway),
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
) -> PaymentService:
    return PaymentService(gateway=gateway, uow_factory=uow_factory)


async def get_webhook_service(
    gateway: PaymentGateway = Depends(get_webhook_gateway),
    sync_service: OrderSyncService = Depends(get_order_sync_service),
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
) -> WebhookService:
    return WebhookService(gateway=gateway, sync_service=sync_service, uow_factory=uow_factory)
