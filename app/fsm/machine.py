"""
Reconciliation engine - transactional driver around the pure transition function.

Every order/payment state change goes through `ReconciliationEngine.execute`:
guard check, fresh read, `decide`, `apply_transition`, commit. A transition
is either committed whole (order, payment attempt, timeline entry) or not at all.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.errors import (
    ConflictError,
    NotFound,
    ReconciliationError,
    StaleTransition,
    TransientStoreError,
)
from app.fsm.commands import GATEWAY_COMMANDS, Actor, operation_for
from app.fsm.states import Operation
from app.fsm.transitions import OrderSnapshot, PaymentSnapshot, Transition, decide
from app.models.order import Order
from app.models.payment import Payment
from app.services.order_service import OrderService
from app.services.payment_service import PaymentService
from app.services.system_service import SystemService

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 2


@dataclass
class ReconciliationResult:
    order: Order
    transition: Transition
    changed: bool
    payment: Optional[Payment] = None


class ReconciliationEngine:
    """
    Applies commands to orders.

    `guard` is anything with `async ensure_allowed(operation)`; it defaults
    to the database-backed maintenance lock.
    """

    def __init__(self, db: AsyncSession, guard=None):
        self.db = db
        self.guard = guard if guard is not None else SystemService(db)
        self.orders = OrderService(db)
        self.payments = PaymentService(db)

    async def execute(
        self,
        command,
        actor: Actor,
        order_id: Optional[int] = None,
    ) -> ReconciliationResult:
        """
        Run `command` for `actor`.

        Gateway commands locate their order through the gateway order id;
        everything else needs `order_id`.
        """
        operation = operation_for(command)
        if operation != Operation.ADMIN:
            await self.guard.ensure_allowed(operation)

        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                return await self._run_once(command, actor, order_id)
            except (StaleTransition, StaleDataError) as e:
                await self.db.rollback()
                if attempt >= MAX_ATTEMPTS:
                    logger.warning(
                        f"Giving up after concurrent modification: {e}",
                        extra={"order_id": order_id, "actor_id": actor.actor_id},
                    )
                    raise ConflictError("Order was modified concurrently, please retry")
                logger.info(
                    f"Concurrent modification, re-reading and deciding again: {e}",
                    extra={"order_id": order_id, "actor_id": actor.actor_id},
                )
            except ReconciliationError:
                await self.db.rollback()
                raise
            except IntegrityError as e:
                await self.db.rollback()
                logger.warning(f"Integrity violation applying {type(command).__name__}: {e}")
                raise ConflictError("Transition violates a uniqueness constraint")
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(
                    f"Store failure applying {type(command).__name__}: {e}",
                    extra={"order_id": order_id, "actor_id": actor.actor_id},
                )
                raise TransientStoreError("Store unavailable, retry later")

        raise ConflictError("Order was modified concurrently, please retry")

    async def _run_once(self, command, actor: Actor, order_id: Optional[int]) -> ReconciliationResult:
        if isinstance(command, GATEWAY_COMMANDS):
            payment = await self.payments.find_by_gateway_order_id(command.gateway_order_id)
            order_id = payment.order_id
        elif order_id is None:
            raise NotFound("Order not found")
        else:
            payment = None

        order = await self.orders.get(order_id)
        if payment is None:
            payment = await self.payments.current_for_order(order.id)
        other_success = await self.payments.has_other_success(
            order.id, payment.id if payment is not None else None
        )

        transition = decide(
            OrderSnapshot.from_model(order),
            PaymentSnapshot.from_model(payment) if payment is not None else None,
            command,
            actor,
            other_success=other_success,
        )

        if not transition.changed:
            await self.db.commit()
            logger.info(
                f"{type(command).__name__} changed nothing",
                extra={"order_id": order.id, "actor_id": actor.actor_id},
            )
            return ReconciliationResult(order=order, transition=transition, changed=False, payment=payment)

        order = await self.orders.apply_transition(transition)
        await self.db.commit()

        current = await self.payments.current_for_order(order.id)
        if transition.payment_id is not None:
            current = await self.payments.get(transition.payment_id)
        return ReconciliationResult(order=order, transition=transition, changed=True, payment=current)
