"""
订单仓储接口 - 定义订单与支付事件账本的数据访问抽象
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import Order, PaymentEventRecord


class OrderRepository(ABC):
    """订单仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """创建订单，order_id 重复时抛出 OrderAlreadyExistsException"""
        pass

    @abstractmethod
    async def get_by_order_id(self, order_id: str, *, for_update: bool = False) -> Optional[Order]:
        """根据订单ID获取订单；for_update=True 时加行级排他锁"""
        pass

    @abstractmethod
    async def update(self, order: Order, expected_version: int) -> Order:
        """
        按版本号比较并更新（compare-and-swap）

        仅当库中版本等于 expected_version 时写入，否则抛出 OptimisticLockException。
        """
        pass

    @abstractmethod
    async def exists_by_order_id(self, order_id: str) -> bool:
        """检查订单是否存在"""
        pass


class PaymentEventRepository(ABC):
    """支付事件账本仓储抽象接口（只追加）"""

    @abstractmethod
    async def add(self, record: PaymentEventRecord) -> PaymentEventRecord:
        """插入事件（不存在时插入），event_id 已存在时抛出 DuplicatePaymentEventException"""
        pass

    @abstractmethod
    async def get_by_event_id(self, event_id: str) -> Optional[PaymentEventRecord]:
        """根据事件ID获取账本记录"""
        pass

    @abstractmethod
    async def list_by_order_id(self, order_id: str) -> List[PaymentEventRecord]:
        """获取订单的事件记录（按处理时间正序）"""
        pass
