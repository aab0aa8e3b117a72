"""
订单领域服务 - 处理跨实体、依赖仓储的订单业务逻辑
"""
from typing import Optional
from datetime import datetime, timezone

from .entity import Order, OrderStatus
from .repository import OrderRepository
from domain.common.exceptions import OrderAlreadyExistsException


class OrderDomainService:
    """
    订单领域服务

    职责：创建订单时的业务校验（订单唯一性）
    """

    def __init__(self, order_repository: OrderRepository):
        self.order_repository = order_repository

    async def create_order(
        self,
        order_id: str,
        amount: int,
        currency: str,
        description: Optional[str] = None,
    ) -> Order:
        """
        创建待支付订单

        业务规则：
        1. 订单ID不能重复
        2. 金额必须为正整数
        3. 货币代码必须有效
        """
        if await self.order_repository.exists_by_order_id(order_id):
            raise OrderAlreadyExistsException(order_id)

        now = datetime.now(timezone.utc)
        order = Order(
            id=None,
            order_id=order_id,
            amount=amount,
            currency=currency,
            status=OrderStatus.PENDING,
            description=description,
            created_at=now,
            updated_at=now,
        )
        return await self.order_repository.create(order)
