"""
Webhook Service - authentication and at-most-once ingestion of gateway callbacks.

Razorpay signs each callback with the receiving seller's webhook secret and
may deliver the same event several times, late or out of order. An event
reaches the reconciliation engine only after its signature verifies and its
id has been inserted into the dedup ledger.
"""

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from redis.exceptions import RedisError
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import utcnow
from app.errors import (
    ConflictError,
    InvalidSignature,
    MaintenanceMode,
    NotFound,
    ReconciliationError,
    TransientStoreError,
    ValidationError,
)
from app.fsm.commands import Actor, GatewayCaptured, GatewayFailed
from app.fsm.states import Operation, WebhookOutcome
from app.models.order import Order
from app.models.webhook_event import WebhookEvent
from app.services.payment_service import PaymentService
from app.services.secret_service import SecretService

logger = logging.getLogger(__name__)

SOURCE = "razorpay"
REDIS_KEY_PREFIX = "webhook:event:"

CAPTURE_EVENTS = {"payment.captured", "order.paid"}
FAILURE_EVENTS = {"payment.failed"}

SecretLookup = Callable[[str], Awaitable[Optional[str]]]


class IngestResult(str, Enum):
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


@dataclass
class IngestOutcome:
    """What happened to a delivery; `order` is set when the engine ran."""

    result: IngestResult
    order: Optional[Order] = None
    changed: bool = False


@dataclass(frozen=True)
class VerifiedEvent:
    """A callback whose signature has been checked."""

    event_id: str
    event_type: str
    gateway_order_id: str
    seller_id: str
    gateway_payment_id: Optional[str] = None
    amount: Optional[int] = None
    error_description: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def is_handled(self) -> bool:
        return self.event_type in CAPTURE_EVENTS or self.event_type in FAILURE_EVENTS

    def to_command(self):
        if self.event_type in CAPTURE_EVENTS:
            return GatewayCaptured(
                gateway_order_id=self.gateway_order_id,
                gateway_payment_id=self.gateway_payment_id,
                amount=self.amount,
                event_id=self.event_id,
            )
        if self.event_type in FAILURE_EVENTS:
            return GatewayFailed(
                gateway_order_id=self.gateway_order_id,
                gateway_payment_id=self.gateway_payment_id,
                error_description=self.error_description,
                event_id=self.event_id,
            )
        raise ValidationError(f"Unhandled event type: {self.event_type}")


class WebhookService:
    """Service for the Razorpay webhook gate and the dedup ledger."""

    def __init__(self, db: AsyncSession, redis_client=None):
        self.db = db
        self.redis = redis_client
        self.payments = PaymentService(db)

    # --- Authentication ---

    @staticmethod
    def verify_signature(raw_body: bytes, signature: str, secret: str) -> bool:
        """HMAC-SHA256 hex over the exact raw body, compared in constant time."""
        if not signature or not secret:
            return False
        expected = hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature.strip())

    @staticmethod
    def parse_event(raw_body: bytes) -> Dict[str, Any]:
        try:
            payload = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError):
            raise ValidationError("Malformed webhook body")
        if not isinstance(payload, dict):
            raise ValidationError("Malformed webhook body")
        return payload

    @staticmethod
    def _payment_entity(payload: Dict[str, Any]) -> Dict[str, Any]:
        entity = (payload.get("payload") or {}).get("payment", {}).get("entity")
        return entity if isinstance(entity, dict) else {}

    @classmethod
    def _gateway_order_id(cls, payload: Dict[str, Any]) -> Optional[str]:
        order_id = cls._payment_entity(payload).get("order_id")
        if not order_id:
            order_entity = (payload.get("payload") or {}).get("order", {}).get("entity") or {}
            order_id = order_entity.get("id")
        return order_id

    @staticmethod
    def synthesize_event_id(gateway_order_id: str, gateway_payment_id: Optional[str], event_type: str) -> str:
        """Deterministic id for callbacks that carry none, so redeliveries collide."""
        basis = f"{gateway_order_id}:{gateway_payment_id or ''}:{event_type}"
        return "syn_" + hashlib.sha256(basis.encode()).hexdigest()

    async def accept(
        self,
        raw_body: bytes,
        signature: Optional[str],
        secret_lookup: Optional[SecretLookup] = None,
        header_event_id: Optional[str] = None,
    ) -> VerifiedEvent:
        """
        Authenticate a callback and extract what the engine needs.
        Nothing is persisted here.
        """
        if not signature:
            raise InvalidSignature("Missing signature")

        payload = self.parse_event(raw_body)
        gateway_order_id = self._gateway_order_id(payload)
        if not gateway_order_id:
            raise ValidationError("Webhook has no gateway order id")

        payment = await self.payments.get_by_gateway_order_id(gateway_order_id)
        if payment is None:
            raise NotFound(f"No payment for gateway order {gateway_order_id}")

        lookup = secret_lookup or SecretService(self.db).get_webhook_secret
        secret = await lookup(payment.seller_id)
        if not secret:
            raise ValidationError("Seller has no webhook secret configured")

        if not self.verify_signature(raw_body, signature, secret):
            logger.warning(
                f"Invalid Razorpay signature for gateway order {gateway_order_id}",
                extra={"payment_id": str(payment.id)},
            )
            raise InvalidSignature("Invalid signature")

        entity = self._payment_entity(payload)
        event_type = payload.get("event") or "unknown"
        gateway_payment_id = entity.get("id")
        amount = entity.get("amount")
        event_id = (
            header_event_id
            or payload.get("event_id")
            or payload.get("id")
            or self.synthesize_event_id(gateway_order_id, gateway_payment_id, event_type)
        )

        return VerifiedEvent(
            event_id=str(event_id),
            event_type=event_type,
            gateway_order_id=gateway_order_id,
            seller_id=payment.seller_id,
            gateway_payment_id=gateway_payment_id,
            amount=amount if isinstance(amount, int) else None,
            error_description=entity.get("error_description"),
            payload=payload,
        )

    # --- Dedup ledger ---

    async def _seen_in_cache(self, event_id: str) -> bool:
        if self.redis is None:
            return False
        try:
            return bool(await self.redis.exists(f"{REDIS_KEY_PREFIX}{event_id}"))
        except (RedisError, OSError) as e:
            logger.warning(f"Redis dedup lookup failed, using database only: {e}")
            return False

    async def _remember_in_cache(self, event_id: str) -> None:
        if self.redis is None:
            return
        try:
            await self.redis.set(
                f"{REDIS_KEY_PREFIX}{event_id}",
                "1",
                ex=int(timedelta(days=settings.webhook_retention_days).total_seconds()),
            )
        except (RedisError, OSError) as e:
            logger.warning(f"Redis dedup write failed: {e}")

    async def _forget_in_cache(self, event_id: str) -> None:
        if self.redis is None:
            return
        try:
            await self.redis.delete(f"{REDIS_KEY_PREFIX}{event_id}")
        except (RedisError, OSError) as e:
            logger.warning(f"Redis dedup delete failed: {e}")

    async def register(self, event: VerifiedEvent) -> bool:
        """
        Insert the event into the ledger.

        Returns False for a duplicate. Raises TransientStoreError if the
        ledger cannot be written, in which case the event must not be processed.
        """
        if await self._seen_in_cache(event.event_id):
            logger.info(f"Duplicate event {event.event_id} (cache)", extra={"event_id": event.event_id})
            return False

        self.db.add(
            WebhookEvent(
                event_id=event.event_id,
                message_id=event.gateway_payment_id,
                source=SOURCE,
                event_type=event.event_type,
            )
        )
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info(f"Duplicate event {event.event_id}", extra={"event_id": event.event_id})
            return False
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to register event {event.event_id}: {e}", extra={"event_id": event.event_id})
            raise TransientStoreError("Webhook ledger unavailable")

        await self._remember_in_cache(event.event_id)
        return True

    async def mark_processed(
        self,
        event_id: str,
        outcome: WebhookOutcome = WebhookOutcome.PROCESSED,
        detail: Optional[str] = None,
    ) -> None:
        """Record the outcome. A failure here is logged only; the event already ran."""
        try:
            await self.db.execute(
                update(WebhookEvent)
                .where(WebhookEvent.event_id == event_id)
                .values(
                    processed=True,
                    outcome=WebhookOutcome(outcome).value,
                    detail=detail,
                    processed_at=utcnow(),
                )
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to mark event {event_id} processed: {e}", extra={"event_id": event_id})

    async def release(self, event_id: str) -> None:
        """Drop a registered event so the sender's redelivery is processed."""
        try:
            await self.db.execute(delete(WebhookEvent).where(WebhookEvent.event_id == event_id))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to release event {event_id}: {e}", extra={"event_id": event_id})
        await self._forget_in_cache(event_id)

    # --- Ingestion ---

    async def ingest(
        self,
        raw_body: bytes,
        signature: Optional[str],
        engine,
        guard=None,
        secret_lookup: Optional[SecretLookup] = None,
        header_event_id: Optional[str] = None,
    ) -> IngestOutcome:
        """
        accept -> maintenance check -> register -> engine -> mark processed.

        Typed engine rejections are recorded on the ledger row and re-raised.
        """
        event = await self.accept(raw_body, signature, secret_lookup, header_event_id)
        log_extra = {"event_id": event.event_id, "payment_id": event.gateway_payment_id}

        if guard is not None:
            await guard.ensure_allowed(Operation.WEBHOOKS)

        if not await self.register(event):
            return IngestOutcome(IngestResult.DUPLICATE)

        if not event.is_handled:
            logger.info(f"Ignoring Razorpay event {event.event_type}", extra=log_extra)
            await self.mark_processed(event.event_id, WebhookOutcome.IGNORED)
            return IngestOutcome(IngestResult.IGNORED)

        try:
            result = await engine.execute(event.to_command(), Actor.system())
        except (TransientStoreError, MaintenanceMode):
            await self.release(event.event_id)
            raise
        except ConflictError as e:
            logger.warning(f"Webhook {event.event_type} needs review: {e.message}", extra=log_extra)
            await self.mark_processed(event.event_id, WebhookOutcome.CONFLICT, e.message)
            raise
        except ReconciliationError as e:
            logger.warning(f"Webhook {event.event_type} rejected: {e.message}", extra=log_extra)
            await self.mark_processed(event.event_id, WebhookOutcome.REJECTED, e.message)
            raise
        except Exception:
            logger.error(f"Webhook {event.event_type} failed unexpectedly, releasing", extra=log_extra)
            await self.db.rollback()
            await self.release(event.event_id)
            raise

        await self.mark_processed(event.event_id, WebhookOutcome.PROCESSED)
        logger.info(
            f"Processed Razorpay {event.event_type} (changed={result.changed})",
            extra={**log_extra, "order_id": result.order.id},
        )
        return IngestOutcome(IngestResult.PROCESSED, order=result.order, changed=result.changed)

    # --- Housekeeping ---

    async def cleanup_old_events(self, retention_days: Optional[int] = None) -> int:
        """Delete ledger rows older than the retention window. Returns rows deleted."""
        days = retention_days if retention_days is not None else settings.webhook_retention_days
        cutoff = utcnow() - timedelta(days=days)
        result = await self.db.execute(delete(WebhookEvent).where(WebhookEvent.created_at < cutoff))
        await self.db.commit()
        deleted = result.rowcount or 0
        logger.info(f"Purged {deleted} webhook events older than {days} days")
        return deleted

    async def get_stats(self) -> Dict[str, int]:
        total = await self.db.scalar(select(func.count()).select_from(WebhookEvent))
        recent = await self.db.scalar(
            select(func.count())
            .select_from(WebhookEvent)
            .where(WebhookEvent.created_at >= utcnow() - timedelta(hours=24))
        )
        return {"total": total or 0, "last_24_hours": recent or 0}
