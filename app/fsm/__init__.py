"""FSM package for order/payment reconciliation."""

from app.fsm.states import OrderStatus, PaymentStatus, PaymentMethod, PaymentRecordStatus

__all__ = ["OrderStatus", "PaymentStatus", "PaymentMethod", "PaymentRecordStatus"]
