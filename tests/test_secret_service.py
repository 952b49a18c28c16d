"""
Tests for the seller secret vault.
"""

import pytest
from cryptography.fernet import Fernet

from app.errors import SecretUnavailable, ValidationError
from app.models.seller import SellerPaymentSettings
from app.services.secret_service import SecretService


@pytest.fixture
def master_key():
    return Fernet.generate_key().decode()


@pytest.mark.asyncio
async def test_secrets_round_trip(db, master_key):
    service = SecretService(db, master_keys=[master_key])
    await service.update_settings(
        "seller_1",
        webhook_secret="whsec_live",
        gateway_key_id="rzp_live_abcdef",
        gateway_key_secret="topsecret",
        notification_phone="919800000000",
    )

    assert await service.get_webhook_secret("seller_1") == "whsec_live"
    assert await service.get_gateway_credentials("seller_1") == ("rzp_live_abcdef", "topsecret")
    assert await service.get_notification_phone("seller_1") == "919800000000"


@pytest.mark.asyncio
async def test_secrets_are_not_stored_in_plaintext(db, master_key):
    service = SecretService(db, master_keys=[master_key])
    await service.update_settings("seller_1", webhook_secret="whsec_live", gateway_key_secret="topsecret")

    row = await db.get(SellerPaymentSettings, "seller_1")
    assert "whsec_live" not in row.webhook_secret_encrypted
    assert "topsecret" not in row.gateway_key_secret_encrypted
    assert row.data_key_encrypted


@pytest.mark.asyncio
async def test_partial_update_keeps_other_fields(db, master_key):
    service = SecretService(db, master_keys=[master_key])
    await service.update_settings("seller_1", webhook_secret="first")
    summary = await service.update_settings("seller_1", notification_phone="919811111111")

    assert summary["webhook_secret_configured"] is True
    assert summary["gateway_key_secret_configured"] is False
    assert await service.get_webhook_secret("seller_1") == "first"


@pytest.mark.asyncio
async def test_missing_seller_has_no_secrets(db, master_key):
    service = SecretService(db, master_keys=[master_key])

    assert await service.get_webhook_secret("nobody") is None
    assert await service.get_gateway_credentials("nobody") is None


@pytest.mark.asyncio
async def test_empty_secret_is_rejected(db, master_key):
    with pytest.raises(ValidationError):
        await SecretService(db, master_keys=[master_key]).update_settings("seller_1", webhook_secret="  ")


@pytest.mark.asyncio
async def test_wrong_master_key_cannot_decrypt(db, master_key):
    await SecretService(db, master_keys=[master_key]).set_webhook_secret("seller_1", "whsec_live")

    stranger = SecretService(db, master_keys=[Fernet.generate_key().decode()])
    with pytest.raises(SecretUnavailable):
        await stranger.get_webhook_secret("seller_1")


@pytest.mark.asyncio
async def test_master_key_rotation(db, master_key):
    await SecretService(db, master_keys=[master_key]).set_webhook_secret("seller_1", "whsec_live")

    new_key = Fernet.generate_key().decode()
    rotating = SecretService(db, master_keys=[new_key, master_key])
    assert await rotating.rewrap_data_keys() == 1

    # After the rewrap the old key can be retired
    assert await SecretService(db, master_keys=[new_key]).get_webhook_secret("seller_1") == "whsec_live"


@pytest.mark.asyncio
async def test_no_master_key_configured(db):
    with pytest.raises(SecretUnavailable):
        await SecretService(db, master_keys=[]).set_webhook_secret("seller_1", "x")
