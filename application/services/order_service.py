"""
订单应用服务（application/services）- 编排订单领域服务和事务边界
"""
from typing import Callable, List

from application.dtos.orders import OrderCreateDTO, OrderResponseDTO, PaymentEventResponseDTO
from core.logging_config import get_logger
from domain.common.exceptions import OrderNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.service import OrderDomainService


logger = get_logger(__name__)


class OrderApplicationService:
    """订单应用服务 - 处理应用层逻辑"""

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def create_order(self, data: OrderCreateDTO) -> OrderResponseDTO:
        """创建待支付订单（由业务流程在发起支付前调用）"""
        async with self._uow_factory() as uow:
            domain_service = OrderDomainService(uow.order_repository)
            order = await domain_service.create_order(
                order_id=data.order_id,
                amount=data.amount,
                currency=data.currency,
                description=data.description,
            )
        logger.info("order_created", order_id=order.order_id, amount=order.amount, currency=order.currency)
        return OrderResponseDTO.model_validate(order)

    async def get_order(self, order_id: str) -> OrderResponseDTO:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_order_id(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        return OrderResponseDTO.model_validate(order)

    async def list_payment_events(self, order_id: str) -> List[PaymentEventResponseDTO]:
        """按处理顺序返回订单的支付事件账本"""
        async with self._uow_factory(readonly=True) as uow:
            if not await uow.order_repository.exists_by_order_id(order_id):
                raise OrderNotFoundException(order_id)
            records = await uow.payment_event_repository.list_by_order_id(order_id)
        return [PaymentEventResponseDTO.model_validate(r) for r in records]
