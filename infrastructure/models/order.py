"""
订单数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, Index
)
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    """
    订单数据库模型

    这是数据库表的映射，不包含业务逻辑
    所有业务规则都在 domain.order.entity.Order 中
    """
    __tablename__ = "orders"

    # 主键
    id = Column(Integer, primary_key=True, autoincrement=True)

    # 订单信息
    order_id = Column(String(100), unique=True, index=True, nullable=False, comment="订单ID")
    description = Column(String(255), nullable=True, comment="订单描述（支付页展示）")

    # 金额信息（最小货币单位，整数存储）
    amount = Column(BigInteger, nullable=False, comment="订单金额（最小货币单位）")
    currency = Column(String(3), nullable=False, default="USD", comment="货币代码 ISO-4217")

    # 状态
    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="支付状态: pending/authorized/captured/failed/refunded"
    )

    # 支付渠道会话ID，设置后不可修改
    external_reference = Column(String(255), nullable=True, unique=True, comment="支付渠道会话ID")

    # 顺序控制与乐观锁
    last_event_at = Column(BigInteger, nullable=True, comment="最近一次已应用事件的时间戳")
    version = Column(Integer, nullable=False, default=0, comment="版本号，每次修改递增")

    # 时间戳
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    __table_args__ = (
        Index("ix_orders_status_created_at", "status", "created_at"),
    )

    def __repr__(self):
        return (
            f"<OrderModel(id={self.id}, order_id='{self.order_id}', "
            f"amount={self.amount}, status='{self.status}', version={self.version})>"
        )


class PaymentEventModel(Base):
    """
    支付事件账本模型

    只追加不修改，event_id 唯一约束保证并发下的“不存在才插入”语义
    """
    __tablename__ = "payment_events"

    id = Column(Integer, primary_key=True, autoincrement=True)

    event_id = Column(String(255), unique=True, nullable=False, comment="渠道事件ID")
    provider = Column(String(50), nullable=False, comment="支付提供商")
    order_id = Column(String(100), nullable=False, index=True, comment="订单ID")
    event_type = Column(String(20), nullable=False, comment="事件类型: authorized/captured/failed/refunded")
    occurred_at = Column(BigInteger, nullable=False, comment="渠道事件时间戳")
    payload_digest = Column(String(64), nullable=False, comment="原始报文 SHA-256")

    # 处理结果
    outcome = Column(String(20), nullable=False, comment="处理结果: applied/rejected")
    reason = Column(String(50), nullable=True, comment="拒绝原因: illegal_transition/stale_event")
    processed_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="处理时间"
    )

    def __repr__(self):
        return (
            f"<PaymentEventModel(event_id='{self.event_id}', order_id='{self.order_id}', "
            f"event_type='{self.event_type}', outcome='{self.outcome}')>"
        )
