"""
Reconciliation commands.

One frozen dataclass per actor/channel action, each carrying only the fields
that action needs. The HTTP layer maps request payloads onto these at the edge.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Type

from app.fsm.states import ActorRole, Operation


@dataclass(frozen=True)
class Actor:
    """Identity resolved by the channel's own authentication."""

    actor_id: str
    role: ActorRole

    @classmethod
    def system(cls) -> "Actor":
        return cls(actor_id="system", role=ActorRole.SYSTEM)

    @classmethod
    def buyer(cls, actor_id: str = "buyer") -> "Actor":
        return cls(actor_id=actor_id, role=ActorRole.BUYER)

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


# --- Buyer ---

@dataclass(frozen=True)
class SubmitUpiProof:
    transaction_id: str
    screenshot_url: Optional[str] = None
    notes: Optional[str] = None


# --- Seller (admins may act on a seller's behalf) ---

@dataclass(frozen=True)
class ConfirmPayment:
    notes: Optional[str] = None


@dataclass(frozen=True)
class RejectPayment:
    notes: Optional[str] = None


@dataclass(frozen=True)
class CollectCod:
    collected_by: str = "seller"
    notes: Optional[str] = None


@dataclass(frozen=True)
class CancelOrder:
    reason: Optional[str] = None


@dataclass(frozen=True)
class ShipOrder:
    note: Optional[str] = None


@dataclass(frozen=True)
class DeliverOrder:
    note: Optional[str] = None


@dataclass(frozen=True)
class RecordRefund:
    reason: Optional[str] = None


# --- Gateway (verified webhooks) ---

@dataclass(frozen=True)
class GatewayCaptured:
    gateway_order_id: str
    gateway_payment_id: Optional[str] = None
    amount: Optional[int] = None
    event_id: Optional[str] = None


@dataclass(frozen=True)
class GatewayFailed:
    gateway_order_id: str
    gateway_payment_id: Optional[str] = None
    error_description: Optional[str] = None
    event_id: Optional[str] = None


# --- Admin manual resolve ---

@dataclass(frozen=True)
class AdminMarkPaid:
    note: str = ""


@dataclass(frozen=True)
class AdminMarkFailed:
    note: str = ""


@dataclass(frozen=True)
class AdminRequestInfo:
    note: str = ""


BUYER_COMMANDS: Tuple[Type, ...] = (SubmitUpiProof,)
SELLER_COMMANDS: Tuple[Type, ...] = (
    ConfirmPayment,
    RejectPayment,
    CollectCod,
    CancelOrder,
    ShipOrder,
    DeliverOrder,
    RecordRefund,
)
GATEWAY_COMMANDS: Tuple[Type, ...] = (GatewayCaptured, GatewayFailed)
ADMIN_COMMANDS: Tuple[Type, ...] = (AdminMarkPaid, AdminMarkFailed, AdminRequestInfo)


def operation_for(command) -> Operation:
    """Maintenance-lock class of a command."""
    if isinstance(command, ADMIN_COMMANDS):
        return Operation.ADMIN
    if isinstance(command, GATEWAY_COMMANDS):
        return Operation.WEBHOOKS
    return Operation.ORDERS
