"""
订单仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError

from domain.common.exceptions import OrderAlreadyExistsException, OptimisticLockException
from domain.order.entity import Order, OrderStatus
from domain.order.repository import OrderRepository
from infrastructure.models.order import OrderModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        """将数据库模型转换为领域实体"""
        return Order(
            id=model.id,
            order_id=model.order_id,
            amount=int(model.amount),
            currency=model.currency,
            status=OrderStatus(model.status),
            external_reference=model.external_reference,
            last_event_at=model.last_event_at,
            version=model.version,
            description=model.description,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Order) -> OrderModel:
        """将领域实体转换为数据库模型"""
        return OrderModel(
            id=entity.id,
            order_id=entity.order_id,
            amount=entity.amount,
            currency=entity.currency,
            status=entity.status.value,
            external_reference=entity.external_reference,
            last_event_at=entity.last_event_at,
            version=entity.version,
            description=entity.description,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def create(self, order: Order) -> Order:
        """创建订单"""
        db_order = self._to_model(order)
        self.session.add(db_order)
        try:
            await self.session.flush()
        except IntegrityError as e:
            # 事务由 UoW 统一回滚
            if "order_id" in str(e).lower():
                logger.warning("order_create_conflict", order_id=order.order_id)
                raise OrderAlreadyExistsException(order.order_id) from e
            raise
        await self.session.refresh(db_order)
        logger.info("order_persisted", order_pk=db_order.id, order_id=db_order.order_id)
        return self._to_entity(db_order)

    async def get_by_order_id(self, order_id: str, *, for_update: bool = False) -> Optional[Order]:
        """根据订单ID获取订单；for_update 时使用 SELECT ... FOR UPDATE（SQLite 下忽略）"""
        stmt = (
            select(OrderModel)
            .where(OrderModel.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def update(self, order: Order, expected_version: int) -> Order:
        """
        比较并交换更新订单

        WHERE version = expected_version，影响行数为0说明已被并发修改。
        """
        stmt = (
            update(OrderModel)
            .where(
                OrderModel.order_id == order.order_id,
                OrderModel.version == expected_version,
            )
            .values(
                status=order.status.value,
                external_reference=order.external_reference,
                last_event_at=order.last_event_at,
                version=order.version,
                updated_at=order.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            logger.warning(
                "order_version_conflict",
                order_id=order.order_id,
                expected_version=expected_version,
            )
            raise OptimisticLockException(order.order_id, expected_version)

        logger.debug(
            "order_updated",
            order_id=order.order_id,
            status=order.status.value,
            version=order.version,
        )
        return order

    async def exists_by_order_id(self, order_id: str) -> bool:
        """检查订单是否存在"""
        result = await self.session.execute(
            select(func.count()).select_from(OrderModel).where(OrderModel.order_id == order_id)
        )
        return (result.scalar_one() or 0) > 0

