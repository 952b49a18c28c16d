"""
Reconciliation transition function.

`decide` is pure: given a snapshot of the order, its current payment attempt,
a command and the acting identity, it returns the `Transition` to apply or
raises a typed error. Nothing here touches the database.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Type

from app.errors import (
    ConflictError,
    NotFound,
    PermissionDenied,
    TerminalStateConflict,
    ValidationError,
)
from app.fsm.commands import (
    ADMIN_COMMANDS,
    GATEWAY_COMMANDS,
    SELLER_COMMANDS,
    Actor,
    AdminMarkFailed,
    AdminMarkPaid,
    AdminRequestInfo,
    CancelOrder,
    CollectCod,
    ConfirmPayment,
    DeliverOrder,
    GatewayCaptured,
    GatewayFailed,
    RecordRefund,
    RejectPayment,
    ShipOrder,
    SubmitUpiProof,
)
from app.fsm.states import (
    ActorRole,
    OrderStatus,
    PaymentMethod,
    PaymentRecordStatus,
    PaymentStatus,
)

ADMIN_NOTE_PREFIX = "ADMIN OVERRIDE"


@dataclass(frozen=True)
class OrderSnapshot:
    id: int
    seller_id: str
    status: OrderStatus
    payment_status: PaymentStatus
    version: int
    total_amount: int

    @classmethod
    def from_model(cls, order) -> "OrderSnapshot":
        return cls(
            id=order.id,
            seller_id=order.seller_id,
            status=OrderStatus(order.status),
            payment_status=PaymentStatus(order.payment_status),
            version=order.version,
            total_amount=order.total_amount,
        )


@dataclass(frozen=True)
class PaymentSnapshot:
    id: object
    method: PaymentMethod
    status: PaymentRecordStatus
    amount: int
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None

    @classmethod
    def from_model(cls, payment) -> "PaymentSnapshot":
        return cls(
            id=payment.id,
            method=PaymentMethod(payment.method),
            status=PaymentRecordStatus(payment.status),
            amount=payment.amount,
            gateway_order_id=payment.gateway_order_id,
            gateway_payment_id=payment.gateway_payment_id,
        )


@dataclass(frozen=True)
class Transition:
    """
    A precomputed field-set for one order (and at most one payment attempt).

    The `expected_*` fields pin the state the transition was computed from;
    the ledger refuses to apply it if the row has moved on since.
    """

    order_id: int
    actor_id: str
    expected_status: OrderStatus
    expected_payment_status: PaymentStatus
    expected_version: int
    order_status: OrderStatus
    payment_status: PaymentStatus
    note: str
    payment_id: Optional[object] = None
    previous_record_status: Optional[PaymentRecordStatus] = None
    record_status: Optional[PaymentRecordStatus] = None
    open_attempt: Optional[PaymentMethod] = None
    gateway_payment_id: Optional[str] = None
    upi_reference: Optional[str] = None
    payment_proof_url: Optional[str] = None
    correction: bool = False
    internal_note: Optional[str] = None
    extra: Dict[str, str] = field(default_factory=dict)

    @property
    def order_changed(self) -> bool:
        return (
            self.order_status != self.expected_status
            or self.payment_status != self.expected_payment_status
        )

    @property
    def payment_changed(self) -> bool:
        if self.open_attempt is not None:
            return True
        return self.record_status is not None and self.record_status != self.previous_record_status

    @property
    def changed(self) -> bool:
        return self.order_changed or self.payment_changed

    @property
    def becomes_paid(self) -> bool:
        return (
            self.payment_status == PaymentStatus.PAID
            and self.expected_payment_status != PaymentStatus.PAID
        )

    @property
    def timeline_status(self) -> str:
        """Label stored on the timeline entry for this transition."""
        if self.order_status != self.expected_status:
            return self.order_status.value
        if self.payment_status != self.expected_payment_status:
            return self.payment_status.value
        return f"payment_{(self.record_status or PaymentRecordStatus.PENDING).value.lower()}"


def _with_notes(base: str, extra: Optional[str]) -> str:
    return f"{base}: {extra}" if extra else base


def _confirmed_unless_past(status: OrderStatus) -> OrderStatus:
    return status if status.is_past_confirmed else OrderStatus.CONFIRMED


def _build(order: OrderSnapshot, actor: Actor, note: str, payment: Optional[PaymentSnapshot] = None, **changes) -> Transition:
    changes.setdefault("order_status", order.status)
    changes.setdefault("payment_status", order.payment_status)
    if payment is not None and "payment_id" not in changes and changes.get("open_attempt") is None:
        changes["payment_id"] = payment.id
        changes["previous_record_status"] = payment.status
    return Transition(
        order_id=order.id,
        actor_id=actor.actor_id,
        expected_status=order.status,
        expected_payment_status=order.payment_status,
        expected_version=order.version,
        note=note,
        **changes,
    )


def _manual_settlement_target(payment: Optional[PaymentSnapshot], method: PaymentMethod) -> dict:
    """
    Payment changes for a manual SUCCESS claim.

    A FAILED attempt is closed, so a new attempt is opened instead of
    overwriting it. An attempt already at SUCCESS is left untouched.
    """
    if payment is None or payment.status == PaymentRecordStatus.FAILED:
        return {"open_attempt": method, "record_status": PaymentRecordStatus.SUCCESS}
    if payment.status == PaymentRecordStatus.SUCCESS:
        return {}
    return {"record_status": PaymentRecordStatus.SUCCESS}


# --- Buyer ---

def _submit_upi_proof(order, payment, command: SubmitUpiProof, actor, other_success) -> Transition:
    transaction_id = (command.transaction_id or "").strip()
    if not transaction_id:
        raise ValidationError("transactionId is required")
    if order.status == OrderStatus.CANCELLED:
        raise ConflictError("Order is cancelled")
    if order.payment_status == PaymentStatus.PAID:
        raise ConflictError("Order is already paid")
    if order.payment_status != PaymentStatus.UNPAID:
        raise ConflictError(f"Payment is {order.payment_status.value}, proof cannot be submitted")
    if other_success or (payment is not None and payment.status == PaymentRecordStatus.SUCCESS):
        raise TerminalStateConflict("A settled payment already exists for this order")

    reusable = (
        payment is not None
        and payment.method == PaymentMethod.UPI_MANUAL
        and not payment.status.is_terminal
    )
    target = {} if reusable else {"open_attempt": PaymentMethod.UPI_MANUAL}

    internal = f"UPI proof submitted, UTR {transaction_id}"
    if command.screenshot_url:
        internal += f", screenshot {command.screenshot_url}"
    return _build(
        order,
        actor,
        f"Buyer submitted payment proof (UTR {transaction_id})",
        payment,
        payment_status=PaymentStatus.PENDING_VERIFICATION,
        record_status=PaymentRecordStatus.PENDING_VERIFICATION,
        upi_reference=transaction_id,
        payment_proof_url=command.screenshot_url,
        internal_note=_with_notes(internal, command.notes),
        **target,
    )


# --- Seller ---

def _confirm_payment(order, payment, command: ConfirmPayment, actor, other_success) -> Transition:
    if order.payment_status == PaymentStatus.PAID:
        raise ConflictError("Order is already paid")
    if order.status == OrderStatus.CANCELLED:
        raise ConflictError("Order is cancelled")

    method = PaymentMethod.COD if payment is not None and payment.method == PaymentMethod.COD else PaymentMethod.UPI_MANUAL
    target = {} if other_success else _manual_settlement_target(payment, method)
    return _build(
        order,
        actor,
        _with_notes("Payment confirmed by seller", command.notes),
        payment,
        payment_status=PaymentStatus.PAID,
        order_status=_confirmed_unless_past(order.status),
        **target,
    )


def _reject_payment(order, payment, command: RejectPayment, actor, other_success) -> Transition:
    if order.payment_status == PaymentStatus.PAID:
        raise ConflictError("Order is already paid, use refund instead")

    target = {}
    if payment is not None:
        if payment.status == PaymentRecordStatus.SUCCESS:
            raise TerminalStateConflict("Payment is already settled and cannot be rejected")
        target = {"record_status": PaymentRecordStatus.FAILED}
    return _build(
        order,
        actor,
        _with_notes("Payment rejected by seller", command.notes),
        payment,
        payment_status=PaymentStatus.UNPAID,
        internal_note=_with_notes("Payment proof rejected", command.notes),
        **target,
    )


def _collect_cod(order, payment, command: CollectCod, actor, other_success) -> Transition:
    if payment is None or payment.method != PaymentMethod.COD:
        raise ValidationError("This order is not a COD order")
    if order.payment_status == PaymentStatus.PAID:
        raise ConflictError("COD already collected")
    if order.status == OrderStatus.CANCELLED:
        raise ConflictError("Order is cancelled")

    collected_by = command.collected_by or "seller"
    return _build(
        order,
        actor,
        _with_notes(f"COD collected by {collected_by}", command.notes),
        payment,
        payment_status=PaymentStatus.PAID,
        order_status=OrderStatus.DELIVERED,
        internal_note=_with_notes(f"COD collected by {collected_by}", command.notes),
        **({} if other_success else _manual_settlement_target(payment, PaymentMethod.COD)),
    )


def _cancel_order(order, payment, command: CancelOrder, actor, other_success) -> Transition:
    if order.payment_status == PaymentStatus.PAID:
        raise ConflictError("Order is already paid, use refund instead")
    if order.status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED):
        raise ConflictError(f"Order is already {order.status.value}")

    who = "admin" if actor.is_admin else "seller"
    reason = command.reason or "No reason"
    return _build(
        order,
        actor,
        f"Cancelled by {who}: {reason}",
        order_status=OrderStatus.CANCELLED,
        internal_note=f"Cancelled by {who}: {reason}",
    )


def _ship_order(order, payment, command: ShipOrder, actor, other_success) -> Transition:
    cod_pending = (
        order.status == OrderStatus.PENDING
        and payment is not None
        and payment.method == PaymentMethod.COD
    )
    if order.status != OrderStatus.CONFIRMED and not cod_pending:
        raise ConflictError(f"Order cannot be shipped while {order.status.value}")
    return _build(
        order,
        actor,
        _with_notes("Order marked as shipped", command.note),
        order_status=OrderStatus.SHIPPED,
    )


def _deliver_order(order, payment, command: DeliverOrder, actor, other_success) -> Transition:
    if order.status != OrderStatus.SHIPPED:
        raise ConflictError(f"Order cannot be delivered while {order.status.value}")
    if order.payment_status != PaymentStatus.PAID:
        raise ConflictError("Order is not paid; collect COD payment instead")
    return _build(
        order,
        actor,
        _with_notes("Order marked as delivered", command.note),
        order_status=OrderStatus.DELIVERED,
    )


def _record_refund(order, payment, command: RecordRefund, actor, other_success) -> Transition:
    if order.payment_status != PaymentStatus.PAID:
        raise ConflictError("Only paid orders can be refunded")
    reason = command.reason or "Requested by seller"
    return _build(
        order,
        actor,
        f"Refund recorded: {reason}",
        payment_status=PaymentStatus.REFUNDED,
        internal_note=f"Refund recorded by {actor.role.value}: {reason}",
    )


# --- Gateway ---

def _gateway_captured(order, payment, command: GatewayCaptured, actor, other_success) -> Transition:
    if payment is None:
        raise NotFound(f"No payment for gateway order {command.gateway_order_id}")

    if payment.status == PaymentRecordStatus.SUCCESS:
        if command.gateway_payment_id and payment.gateway_payment_id not in (None, command.gateway_payment_id):
            raise TerminalStateConflict("Gateway order already settled by a different payment")
        # Redelivery of a capture we already applied
        return _build(order, actor, "Gateway capture already recorded", payment)
    if other_success:
        raise TerminalStateConflict(
            "Order already settled by another payment attempt; review for refund"
        )
    if order.status == OrderStatus.CANCELLED:
        raise ConflictError("Payment captured for a cancelled order; requires review")
    if command.amount is not None and command.amount != payment.amount:
        raise ConflictError(
            f"Captured amount {command.amount} does not match expected {payment.amount}"
        )

    correction = payment.status == PaymentRecordStatus.FAILED
    note = f"Payment captured via gateway ({command.gateway_payment_id or 'unknown id'})"
    if correction:
        note += ", superseding an earlier failure"
    return _build(
        order,
        actor,
        note,
        payment,
        payment_status=PaymentStatus.PAID,
        order_status=_confirmed_unless_past(order.status),
        record_status=PaymentRecordStatus.SUCCESS,
        gateway_payment_id=command.gateway_payment_id,
        correction=correction,
    )


def _gateway_failed(order, payment, command: GatewayFailed, actor, other_success) -> Transition:
    if payment is None:
        raise NotFound(f"No payment for gateway order {command.gateway_order_id}")
    if payment.status == PaymentRecordStatus.SUCCESS:
        raise TerminalStateConflict(
            "Payment already captured; a later failure event cannot reverse it"
        )

    reason = command.error_description or "Unknown error"
    return _build(
        order,
        actor,
        f"Gateway payment failed: {reason}",
        payment,
        record_status=PaymentRecordStatus.FAILED,
        gateway_payment_id=command.gateway_payment_id,
        internal_note=f"Payment failed: {reason}",
    )


# --- Admin ---

def _admin_note(action: str, note: str) -> str:
    return f"{ADMIN_NOTE_PREFIX}: {action} - {note or ''}".rstrip(" -")


def _admin_mark_paid(order, payment, command: AdminMarkPaid, actor, other_success) -> Transition:
    note = _admin_note("mark_paid", command.note)
    return _build(
        order,
        actor,
        note,
        payment_status=PaymentStatus.PAID,
        order_status=_confirmed_unless_past(order.status),
        internal_note=note,
    )


def _admin_mark_failed(order, payment, command: AdminMarkFailed, actor, other_success) -> Transition:
    note = _admin_note("mark_failed", command.note)
    return _build(
        order,
        actor,
        note,
        payment_status=PaymentStatus.FAILED,
        internal_note=note,
    )


def _admin_request_info(order, payment, command: AdminRequestInfo, actor, other_success) -> Transition:
    note = _admin_note("request_info", command.note)
    return _build(
        order,
        actor,
        note,
        order_status=OrderStatus.ON_HOLD,
        internal_note=note,
    )


_HANDLERS: Dict[Type, Callable[..., Transition]] = {
    SubmitUpiProof: _submit_upi_proof,
    ConfirmPayment: _confirm_payment,
    RejectPayment: _reject_payment,
    CollectCod: _collect_cod,
    CancelOrder: _cancel_order,
    ShipOrder: _ship_order,
    DeliverOrder: _deliver_order,
    RecordRefund: _record_refund,
    GatewayCaptured: _gateway_captured,
    GatewayFailed: _gateway_failed,
    AdminMarkPaid: _admin_mark_paid,
    AdminMarkFailed: _admin_mark_failed,
    AdminRequestInfo: _admin_request_info,
}


def authorize(order: OrderSnapshot, command, actor: Actor) -> None:
    """Check the actor may issue this command against this order."""
    if isinstance(command, ADMIN_COMMANDS):
        if not actor.is_admin:
            raise PermissionDenied("Admin role required")
    elif isinstance(command, GATEWAY_COMMANDS):
        if actor.role != ActorRole.SYSTEM:
            raise PermissionDenied("Gateway events must come through the webhook gate")
    elif isinstance(command, SELLER_COMMANDS):
        if actor.is_admin:
            return
        if actor.role != ActorRole.SELLER:
            raise PermissionDenied("Seller role required")
        if actor.actor_id != order.seller_id:
            # Do not reveal other sellers' orders
            raise NotFound("Order not found")


def decide(
    order: OrderSnapshot,
    payment: Optional[PaymentSnapshot],
    command,
    actor: Actor,
    other_success: bool = False,
) -> Transition:
    """
    Compute the transition for `command` against the given state.

    `payment` is the attempt the command targets (the newest attempt for
    manual actions, the gateway-linked attempt for webhooks). `other_success`
    tells whether some *other* attempt of the order is already SUCCESS.
    """
    handler = _HANDLERS.get(type(command))
    if handler is None:
        raise ValidationError(f"Unsupported command: {type(command).__name__}")
    authorize(order, command, actor)
    return handler(order, payment, command, actor, other_success)
