"""
Order and payment state definitions.
"""

from enum import Enum


class OrderStatus(str, Enum):
    """Fulfillment state of an order."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    ON_HOLD = "on_hold"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @property
    def is_past_confirmed(self) -> bool:
        """Shipped or delivered orders never move back to confirmed."""
        return self in (OrderStatus.SHIPPED, OrderStatus.DELIVERED)


class PaymentStatus(str, Enum):
    """Settlement state of an order."""

    UNPAID = "unpaid"
    PENDING_VERIFICATION = "pending_verification"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    """Payment rail used by a payment attempt."""

    COD = "COD"
    UPI_MANUAL = "UPI_MANUAL"
    GATEWAY = "GATEWAY"


class PaymentRecordStatus(str, Enum):
    """Status of a single payment attempt."""

    PENDING = "PENDING"
    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (PaymentRecordStatus.SUCCESS, PaymentRecordStatus.FAILED)


class ActorRole(str, Enum):
    """Who triggered a transition."""

    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"
    SYSTEM = "system"


class LockMode(str, Enum):
    """Maintenance lock scope."""

    FULL = "full"
    ORDERS = "orders"
    WEBHOOKS = "webhooks"
    NONE = "none"


class Operation(str, Enum):
    """Operation classes checked against the maintenance lock."""

    ORDERS = "orders"
    WEBHOOKS = "webhooks"
    ADMIN = "admin"


class WebhookOutcome(str, Enum):
    """Result recorded on a dedup ledger row."""

    PENDING = "pending"
    PROCESSED = "processed"
    IGNORED = "ignored"
    REJECTED = "rejected"
    CONFLICT = "conflict"
