"""
订单领域实体 - 订单聚合根与支付事件账本记录
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from domain.common.exceptions import (
    CheckoutSessionConflictException,
    DomainValidationException,
)


class OrderStatus(str, Enum):
    """订单支付状态枚举"""
    PENDING = "pending"            # 待支付
    AUTHORIZED = "authorized"      # 已授权（资金冻结，待扣款）
    CAPTURED = "captured"          # 已扣款
    FAILED = "failed"              # 支付失败
    REFUNDED = "refunded"          # 已退款


class PaymentEventType(str, Enum):
    """规范化后的支付事件类型"""
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    FAILED = "failed"
    REFUNDED = "refunded"


class RejectionReason(str, Enum):
    """事件被拒绝（不改变订单）的原因"""
    ILLEGAL_TRANSITION = "illegal_transition"
    STALE_EVENT = "stale_event"
    PREMATURE_EVENT = "premature_event"  # 前置事件尚未到达，留待渠道重投


class EventOutcome(str, Enum):
    """账本中记录的事件处理结果"""
    APPLIED = "applied"
    REJECTED = "rejected"


# 状态机：(当前状态, 事件类型) -> 目标状态。表中不存在的组合一律视为非法转换。
ORDER_TRANSITIONS: dict[tuple[OrderStatus, PaymentEventType], OrderStatus] = {
    (OrderStatus.PENDING, PaymentEventType.AUTHORIZED): OrderStatus.AUTHORIZED,
    (OrderStatus.AUTHORIZED, PaymentEventType.CAPTURED): OrderStatus.CAPTURED,
    (OrderStatus.AUTHORIZED, PaymentEventType.FAILED): OrderStatus.FAILED,
    (OrderStatus.CAPTURED, PaymentEventType.REFUNDED): OrderStatus.REFUNDED,
}


def next_status(current: OrderStatus, event_type: PaymentEventType) -> Optional[OrderStatus]:
    """查询状态机，非法转换返回 None"""
    return ORDER_TRANSITIONS.get((OrderStatus(current), PaymentEventType(event_type)))


def is_reachable_later(current: OrderStatus, event_type: PaymentEventType) -> bool:
    """
    事件在当前状态下不合法，但在某个后继状态下合法

    例如 pending 时先收到 captured：authorized 事件尚未送达。
    """
    seen: set[OrderStatus] = set()
    frontier = [s for (src, _), s in ORDER_TRANSITIONS.items() if src == OrderStatus(current)]
    while frontier:
        status = frontier.pop()
        if status in seen:
            continue
        seen.add(status)
        if (status, PaymentEventType(event_type)) in ORDER_TRANSITIONS:
            return True
        frontier.extend(s for (src, _), s in ORDER_TRANSITIONS.items() if src == status)
    return False


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Order:
    """
    订单聚合根 - 管理订单的支付生命周期

    业务规则：
    1. 订单ID必须唯一
    2. 金额（最小货币单位）必须大于0
    3. 状态转换必须遵循 ORDER_TRANSITIONS
    4. external_reference 一旦设置不可修改
    5. 每次持久化的修改 version 都递增 1
    """

    id: Optional[int]
    order_id: str
    amount: int  # 最小货币单位，如 cents
    currency: str  # ISO-4217
    status: OrderStatus = OrderStatus.PENDING
    external_reference: Optional[str] = None  # 支付渠道的会话ID
    last_event_at: Optional[int] = None  # 最近一次已应用事件的时间戳
    version: int = 0
    description: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """初始化后验证"""
        self._validate_order_id()
        self._validate_amount()
        self._validate_currency()
        self.status = OrderStatus(self.status)
        self.currency = self.currency.upper()
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    def _validate_order_id(self) -> None:
        if not self.order_id or not self.order_id.strip():
            raise DomainValidationException("订单ID不能为空", field="order_id")

    def _validate_amount(self) -> None:
        """业务规则：金额必须是大于0的整数"""
        if isinstance(self.amount, bool) or not isinstance(self.amount, int) or self.amount <= 0:
            raise DomainValidationException(
                f"订单金额必须为正整数（最小货币单位）: {self.amount}",
                field="amount"
            )

    def _validate_currency(self) -> None:
        """业务规则：货币代码必须是3位字母"""
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(
                f"无效的货币代码: {self.currency}",
                field="currency"
            )

    def _touch(self) -> None:
        self.version += 1
        self.updated_at = datetime.now(timezone.utc)

    def ensure_can_start_checkout(self) -> None:
        """
        校验是否可以发起支付会话

        业务规则：只有待支付且尚未创建过会话的订单可以发起支付
        """
        if self.external_reference or self.status != OrderStatus.PENDING:
            raise CheckoutSessionConflictException(self.order_id, status=self.status.value)

    def ensure_amount_matches(self, amount: int, currency: str) -> None:
        """业务规则：金额以服务端存储为准，调用方提交的金额必须一致"""
        if amount != self.amount or (currency or "").upper() != self.currency:
            raise DomainValidationException(
                "支付金额与订单金额不一致",
                field="amount",
                details={
                    "order_id": self.order_id,
                    "expected_amount": self.amount,
                    "expected_currency": self.currency,
                },
            )

    def attach_external_reference(self, reference: str) -> None:
        """记录支付会话ID（仅允许设置一次）"""
        if not reference:
            raise DomainValidationException("支付会话ID不能为空", field="external_reference")
        self.ensure_can_start_checkout()
        self.external_reference = reference
        self._touch()

    def check_event(self, event_type: PaymentEventType, occurred_at: int) -> Optional[RejectionReason]:
        """
        判断事件能否应用到当前订单

        先按时间戳判断是否过期（资金状态不允许回退），再查状态机；
        状态机不允许但后继状态允许的事件视为提前到达。
        """
        if self.last_event_at is not None and occurred_at < self.last_event_at:
            return RejectionReason.STALE_EVENT
        if next_status(self.status, event_type) is None:
            if is_reachable_later(self.status, event_type):
                return RejectionReason.PREMATURE_EVENT
            return RejectionReason.ILLEGAL_TRANSITION
        return None

    def apply_event(self, event_type: PaymentEventType, occurred_at: int) -> Optional[RejectionReason]:
        """
        应用支付事件

        返回 None 表示已应用（状态、时间戳、版本号同时更新）；
        否则返回拒绝原因，订单保持不变。
        """
        reason = self.check_event(event_type, occurred_at)
        if reason is not None:
            return reason
        self.status = next_status(self.status, event_type)  # type: ignore[assignment]
        self.last_event_at = occurred_at
        self._touch()
        return None


@dataclass
class PaymentEventRecord:
    """
    支付事件账本记录 - 只追加，不修改

    以 event_id 为唯一键，用于跨进程重启的去重与审计。
    """

    event_id: str
    provider: str
    order_id: str
    event_type: PaymentEventType
    occurred_at: int
    payload_digest: str
    outcome: EventOutcome
    reason: Optional[RejectionReason] = None
    processed_at: Optional[datetime] = None
    id: Optional[int] = None

    def __post_init__(self):
        self.event_type = PaymentEventType(self.event_type)
        self.outcome = EventOutcome(self.outcome)
        if self.reason is not None:
            self.reason = RejectionReason(self.reason)
        self.processed_at = _ensure_utc(self.processed_at) or datetime.now(timezone.utc)
