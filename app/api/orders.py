"""
Order Endpoints.
Checkout, buyer payment proof, and seller payment/fulfillment actions.
"""

import logging
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.fsm.commands import (
    Actor,
    CancelOrder,
    CollectCod,
    ConfirmPayment,
    DeliverOrder,
    RecordRefund,
    RejectPayment,
    ShipOrder,
    SubmitUpiProof,
)
from app.fsm.machine import ReconciliationEngine, ReconciliationResult
from app.errors import ConflictError
from app.fsm.states import ActorRole, Operation, OrderStatus, PaymentMethod, PaymentStatus
from app.models.order import Order
from app.api.deps import get_optional_actor, get_seller, get_seller_or_admin
from app.services.gateway_service import GatewayService
from app.services.notification_service import NotificationService
from app.services.order_service import BuyerContact, OrderService, OrderTotals
from app.services.payment_service import PaymentService
from app.services.secret_service import SecretService
from app.services.system_service import SystemService
from app.services.timeline_service import TimelineService

router = APIRouter()
logger = logging.getLogger(__name__)


class CustomerIn(BaseModel):
    name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None


class OrderItemIn(BaseModel):
    name: str
    quantity: int
    unit_price: int
    product_id: Optional[str] = None


class CreateOrderRequest(BaseModel):
    """Checkout payload. Amounts are in minor units (paise)."""
    seller_id: str
    customer: CustomerIn
    items: List[OrderItemIn]
    payment_method: PaymentMethod
    currency: Optional[str] = None
    shipping_amount: int = 0
    tax_amount: int = 0
    discount_amount: int = 0
    channel: str = "whatsapp"
    source: str = "ai_chat"
    notes: Optional[str] = None


class PaymentProofRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transaction_id: str = Field(alias="transactionId")
    screenshot_url: Optional[str] = Field(default=None, alias="screenshotUrl")
    notes: Optional[str] = None


class ConfirmPaymentRequest(BaseModel):
    action: Literal["confirm", "reject"]
    notes: Optional[str] = None


class CodCollectedRequest(BaseModel):
    collected_by: str = "seller"
    notes: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class FulfillmentRequest(BaseModel):
    action: Literal["ship", "deliver"]
    note: Optional[str] = None


class RefundRequest(BaseModel):
    reason: Optional[str] = None


async def apply_command(
    db: AsyncSession,
    order_id: int,
    command,
    actor: Actor,
    background_tasks: BackgroundTasks,
) -> Dict[str, Any]:
    """Run a command through the engine and queue the buyer notification."""
    engine = ReconciliationEngine(db)
    result = await engine.execute(command, actor, order_id=order_id)

    if result.changed:
        background_tasks.add_task(NotificationService().notify_buyer, result.order)

    return _result_body(result)


def _result_body(result: ReconciliationResult) -> Dict[str, Any]:
    return {
        "status": "success",
        "changed": result.changed,
        "order_id": result.order.id,
        "order_status": result.order.status,
        "payment_status": result.order.payment_status,
        "invoice_number": result.order.invoice_number,
    }


async def order_detail(db: AsyncSession, order: Order) -> Dict[str, Any]:
    payments = await PaymentService(db).find_by_order_id(order.id)
    timeline = await TimelineService(db).list_for_order(order.id)
    return {
        **order.to_dict(),
        "payments": [p.to_dict() for p in payments],
        "timeline": [t.to_dict() for t in timeline],
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(
    request: CreateOrderRequest,
    db: AsyncSession = Depends(get_db),
):
    """Create an order from a chat or storefront checkout."""
    await SystemService(db).ensure_allowed(Operation.ORDERS)

    order = await OrderService(db).create(
        seller_id=request.seller_id,
        items=[item.model_dump(exclude_none=True) for item in request.items],
        buyer=BuyerContact(
            name=request.customer.name,
            phone=request.customer.phone,
            email=request.customer.email,
            address=request.customer.address,
        ),
        payment_method=request.payment_method,
        totals=OrderTotals(
            shipping_amount=request.shipping_amount,
            tax_amount=request.tax_amount,
            discount_amount=request.discount_amount,
        ),
        currency=request.currency,
        channel=request.channel,
        source=request.source,
        notes=request.notes,
    )
    return await order_detail(db, order)


@router.get("/{order_id}")
async def get_order(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_seller_or_admin),
):
    service = OrderService(db)
    if actor.is_admin:
        order = await service.get(order_id)
    else:
        order = await service.get_for_seller(order_id, actor.actor_id)
    return await order_detail(db, order)


@router.post("/{order_id}/payment-proof")
async def submit_payment_proof(
    order_id: int,
    request: PaymentProofRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    actor: Optional[Actor] = Depends(get_optional_actor),
):
    """Buyer reports a manual UPI transfer. Public: the order id is the capability."""
    buyer = actor if actor is not None and actor.role == ActorRole.BUYER else Actor.buyer()
    command = SubmitUpiProof(
        transaction_id=request.transaction_id,
        screenshot_url=request.screenshot_url,
        notes=request.notes,
    )
    body = await apply_command(db, order_id, command, buyer, background_tasks)

    if body["changed"]:
        order = await OrderService(db).get(order_id)
        phone = await SecretService(db).get_notification_phone(order.seller_id)
        background_tasks.add_task(
            NotificationService().notify_seller,
            phone,
            f"Payment proof received for order {order.reference or order.id} "
            f"(UTR {request.transaction_id}). Please verify it.",
        )
    return body


@router.post("/{order_id}/confirm-payment")
async def confirm_payment(
    order_id: int,
    request: ConfirmPaymentRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_seller_or_admin),
):
    if request.action == "confirm":
        command = ConfirmPayment(notes=request.notes)
    else:
        command = RejectPayment(notes=request.notes)
    return await apply_command(db, order_id, command, actor, background_tasks)


@router.post("/{order_id}/cod-collected")
async def cod_collected(
    order_id: int,
    request: CodCollectedRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_seller_or_admin),
):
    command = CollectCod(collected_by=request.collected_by, notes=request.notes)
    return await apply_command(db, order_id, command, actor, background_tasks)


@router.post("/{order_id}/cancel")
async def cancel_order(
    order_id: int,
    request: CancelRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_seller_or_admin),
):
    return await apply_command(db, order_id, CancelOrder(reason=request.reason), actor, background_tasks)


@router.post("/{order_id}/fulfillment")
async def update_fulfillment(
    order_id: int,
    request: FulfillmentRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_seller_or_admin),
):
    if request.action == "ship":
        command = ShipOrder(note=request.note)
    else:
        command = DeliverOrder(note=request.note)
    return await apply_command(db, order_id, command, actor, background_tasks)


@router.post("/{order_id}/refund")
async def record_refund(
    order_id: int,
    request: RefundRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_seller_or_admin),
):
    """Record a refund made outside the platform. No gateway call is made."""
    return await apply_command(db, order_id, RecordRefund(reason=request.reason), actor, background_tasks)


@router.post("/{order_id}/payments/gateway", status_code=status.HTTP_201_CREATED)
async def create_gateway_payment(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_seller),
):
    """Create a Razorpay order the buyer can pay through checkout."""
    await SystemService(db).ensure_allowed(Operation.ORDERS)
    order = await OrderService(db).get_for_seller(order_id, actor.actor_id)
    return await GatewayService(db).create_gateway_payment(order)


@router.post("/{order_id}/resend-link")
async def resend_payment_reminder(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_seller_or_admin),
):
    """Remind the buyer over WhatsApp to complete an outstanding payment."""
    service = OrderService(db)
    if actor.is_admin:
        order = await service.get(order_id)
    else:
        await SystemService(db).ensure_allowed(Operation.ORDERS)
        order = await service.get_for_seller(order_id, actor.actor_id)

    if order.payment_status in (PaymentStatus.PAID.value, PaymentStatus.REFUNDED.value):
        raise ConflictError("Order is already paid")
    if order.status == OrderStatus.CANCELLED.value:
        raise ConflictError("Order is cancelled")

    current = await PaymentService(db).current_for_order(order.id)
    message_id = await NotificationService().remind_buyer(order, current.method if current else None)
    logger.info(f"Payment reminder for order {order.id} sent={message_id is not None}")
    return {"status": "success", "order_id": order.id, "sent": message_id is not None}
