"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class OrderNotFoundException(BusinessException):
    def __init__(self, order_id: str):
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message=f"Order {order_id} not found",
            error_type="OrderNotFound",
            details={"order_id": order_id},
        )


class OrderAlreadyExistsException(BusinessException):
    def __init__(self, order_id: str):
        super().__init__(
            code=BusinessCode.CONFLICT,
            message=f"Order {order_id} already exists",
            error_type="OrderAlreadyExists",
            details={"order_id": order_id},
            field="order_id",
        )


class CheckoutSessionConflictException(BusinessException):
    """订单已创建过支付会话，或已不处于待支付状态"""

    def __init__(self, order_id: str, *, status: str | None = None):
        details = {"order_id": order_id}
        if status:
            details["status"] = status
        super().__init__(
            code=PaymentCode.CHECKOUT_SESSION_CONFLICT,
            message="Payment for this order is already paid or in progress",
            error_type="CheckoutSessionConflict",
            details=details,
        )


class OptimisticLockException(BusinessException):
    """版本号比较失败：订单已被并发修改"""

    def __init__(self, order_id: str, expected_version: int):
        super().__init__(
            code=PaymentCode.CONCURRENT_UPDATE,
            message=f"Order {order_id} was modified concurrently",
            error_type="OptimisticLockError",
            details={"order_id": order_id, "expected_version": expected_version},
        )


class DuplicatePaymentEventException(BusinessException):
    """事件账本中已存在相同 event_id"""

    def __init__(self, event_id: str):
        super().__init__(
            code=PaymentCode.EVENT_DUPLICATE,
            message=f"Payment event {event_id} already recorded",
            error_type="DuplicatePaymentEvent",
            details={"event_id": event_id},
        )


class PrematurePaymentEventException(BusinessException):
    """事件提前到达：当前状态下不可应用，但前置事件送达后可以应用，不记账留待渠道重投"""

    def __init__(self, order_id: str, event_type: str, status: str):
        super().__init__(
            code=PaymentCode.EVENT_OUT_OF_ORDER,
            message=f"Event {event_type} arrived before the order could accept it",
            error_type="PrematurePaymentEvent",
            details={"order_id": order_id, "event_type": event_type, "status": status},
        )
