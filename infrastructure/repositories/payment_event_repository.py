"""
支付事件账本仓储实现 - 只追加
"""
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from domain.common.exceptions import DuplicatePaymentEventException
from domain.order.entity import PaymentEventRecord
from domain.order.repository import PaymentEventRepository
from infrastructure.models.order import PaymentEventModel


class SQLAlchemyPaymentEventRepository(PaymentEventRepository):
    """支付事件账本的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _to_entity(model: PaymentEventModel) -> PaymentEventRecord:
        return PaymentEventRecord(
            id=model.id,
            event_id=model.event_id,
            provider=model.provider,
            order_id=model.order_id,
            event_type=model.event_type,
            occurred_at=int(model.occurred_at),
            payload_digest=model.payload_digest,
            outcome=model.outcome,
            reason=model.reason,
            processed_at=model.processed_at,
        )

    async def add(self, record: PaymentEventRecord) -> PaymentEventRecord:
        """插入账本记录；唯一约束冲突即视为重复事件"""
        model = PaymentEventModel(
            event_id=record.event_id,
            provider=record.provider,
            order_id=record.order_id,
            event_type=record.event_type.value,
            occurred_at=record.occurred_at,
            payload_digest=record.payload_digest,
            outcome=record.outcome.value,
            reason=record.reason.value if record.reason else None,
            processed_at=record.processed_at,
        )
        self.session.add(model)
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise DuplicatePaymentEventException(record.event_id) from e
        record.id = model.id
        return record

    async def get_by_event_id(self, event_id: str) -> Optional[PaymentEventRecord]:
        result = await self.session.execute(
            select(PaymentEventModel).where(PaymentEventModel.event_id == event_id)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list_by_order_id(self, order_id: str) -> List[PaymentEventRecord]:
        result = await self.session.execute(
            select(PaymentEventModel)
            .where(PaymentEventModel.order_id == order_id)
            .order_by(PaymentEventModel.processed_at.asc(), PaymentEventModel.id.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]
