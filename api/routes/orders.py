"""
订单相关路由
"""
from fastapi import APIRouter, Depends, status

from api.dependencies import get_order_service
from application.dtos.orders import OrderCreateDTO
from application.services.order_service import OrderApplicationService
from core.response import success_response


router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("", status_code=status.HTTP_201_CREATED, summary="创建待支付订单")
async def create_order(
    payload: OrderCreateDTO,
    service: OrderApplicationService = Depends(get_order_service),
):
    order = await service.create_order(payload)
    return success_response(data=order.model_dump(mode="json"), message="Order created")


@router.get("/{order_id}", summary="查询订单")
async def get_order(
    order_id: str,
    service: OrderApplicationService = Depends(get_order_service),
):
    order = await service.get_order(order_id)
    return success_response(data=order.model_dump(mode="json"))


@router.get("/{order_id}/payment-events", summary="查询订单支付事件账本")
async def list_payment_events(
    order_id: str,
    service: OrderApplicationService = Depends(get_order_service),
):
    events = await service.list_payment_events(order_id)
    return success_response(data=[e.model_dump(mode="json") for e in events])
