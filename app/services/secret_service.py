"""
Secret Service - per-seller payment secrets with envelope encryption.

Each seller gets its own Fernet data key. The data key is stored wrapped by
the platform master key(s) from SECRETS_MASTER_KEYS; the seller's webhook
secret and gateway key secret are encrypted with the data key. Listing
several master keys allows rotation: the first encrypts, all can decrypt.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from cryptography.fernet import Fernet, InvalidToken, MultiFernet
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import SecretUnavailable, ValidationError
from app.models.seller import SellerPaymentSettings

logger = logging.getLogger(__name__)


def _mask(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return f"{value[:4]}****" if len(value) > 8 else "****"


class SecretService:

    def __init__(self, db: AsyncSession, master_keys: Optional[List[str]] = None):
        self.db = db
        self.master_keys = master_keys if master_keys is not None else settings.master_keys

    def _master(self) -> MultiFernet:
        if not self.master_keys:
            raise SecretUnavailable("No master key configured")
        try:
            return MultiFernet([Fernet(key.encode()) for key in self.master_keys])
        except ValueError as e:
            raise SecretUnavailable(f"Invalid master key: {e}")

    def _data_key(self, row: SellerPaymentSettings) -> Fernet:
        try:
            raw = self._master().decrypt(row.data_key_encrypted.encode())
        except InvalidToken:
            logger.error(f"Data key for seller {row.seller_id} cannot be unwrapped")
            raise SecretUnavailable("Seller secrets cannot be decrypted")
        return Fernet(raw)

    def _encrypt(self, row: SellerPaymentSettings, plaintext: str) -> str:
        return self._data_key(row).encrypt(plaintext.encode()).decode()

    def _decrypt(self, row: SellerPaymentSettings, token: Optional[str]) -> Optional[str]:
        if not token:
            return None
        try:
            return self._data_key(row).decrypt(token.encode()).decode()
        except InvalidToken:
            logger.error(f"Secret for seller {row.seller_id} failed to decrypt")
            raise SecretUnavailable("Seller secrets cannot be decrypted")

    async def get_settings(self, seller_id: str) -> Optional[SellerPaymentSettings]:
        return await self.db.get(SellerPaymentSettings, seller_id)

    async def _load_or_create(self, seller_id: str) -> SellerPaymentSettings:
        row = await self.get_settings(seller_id)
        if row is None:
            data_key = Fernet.generate_key()
            row = SellerPaymentSettings(
                seller_id=seller_id,
                data_key_encrypted=self._master().encrypt(data_key).decode(),
            )
            self.db.add(row)
        return row

    async def update_settings(
        self,
        seller_id: str,
        webhook_secret: Optional[str] = None,
        gateway_key_id: Optional[str] = None,
        gateway_key_secret: Optional[str] = None,
        notification_phone: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Store whichever fields are given; absent fields are left as they are."""
        if webhook_secret is not None and not webhook_secret.strip():
            raise ValidationError("Webhook secret cannot be empty")
        if gateway_key_secret is not None and not gateway_key_secret.strip():
            raise ValidationError("Gateway key secret cannot be empty")

        row = await self._load_or_create(seller_id)
        if webhook_secret is not None:
            row.webhook_secret_encrypted = self._encrypt(row, webhook_secret)
        if gateway_key_id is not None:
            row.gateway_key_id = gateway_key_id
        if gateway_key_secret is not None:
            row.gateway_key_secret_encrypted = self._encrypt(row, gateway_key_secret)
        if notification_phone is not None:
            row.notification_phone = notification_phone or None
        await self.db.flush()

        logger.info(f"Payment settings updated for seller {seller_id}")
        return self.describe(row)

    def describe(self, row: SellerPaymentSettings) -> Dict[str, Any]:
        """Settings summary safe to return over the API."""
        return {
            "seller_id": row.seller_id,
            "webhook_secret_configured": bool(row.webhook_secret_encrypted),
            "gateway_key_id": _mask(row.gateway_key_id),
            "gateway_key_secret_configured": bool(row.gateway_key_secret_encrypted),
            "notification_phone": row.notification_phone,
        }

    async def set_webhook_secret(self, seller_id: str, secret: str) -> None:
        await self.update_settings(seller_id, webhook_secret=secret)

    async def get_webhook_secret(self, seller_id: str) -> Optional[str]:
        row = await self.get_settings(seller_id)
        if row is None:
            return None
        return self._decrypt(row, row.webhook_secret_encrypted)

    async def get_gateway_credentials(self, seller_id: str) -> Optional[Tuple[str, str]]:
        row = await self.get_settings(seller_id)
        if row is None or not row.gateway_key_id or not row.gateway_key_secret_encrypted:
            return None
        return row.gateway_key_id, self._decrypt(row, row.gateway_key_secret_encrypted)

    async def get_notification_phone(self, seller_id: str) -> Optional[str]:
        row = await self.get_settings(seller_id)
        return row.notification_phone if row else None

    async def rewrap_data_keys(self) -> int:
        """Re-encrypt every data key under the primary master key."""
        master = self._master()
        result = await self.db.execute(select(SellerPaymentSettings))
        count = 0
        for row in result.scalars().all():
            try:
                row.data_key_encrypted = master.rotate(row.data_key_encrypted.encode()).decode()
            except InvalidToken:
                logger.error(f"Data key for seller {row.seller_id} cannot be rotated")
                continue
            count += 1
        await self.db.flush()
        logger.info(f"Rewrapped {count} seller data keys")
        return count
