"""
Tests for the Razorpay seller webhook endpoint.
"""

import hashlib
import hmac
import json
from unittest.mock import AsyncMock, patch

import pytest

from app.fsm.states import LockMode, PaymentMethod
from app.services.payment_service import PaymentService
from app.services.secret_service import SecretService
from app.services.system_service import SystemService

SECRET = "whsec_route_456"
URL = "/webhooks/razorpay/sellers"


def captured_body(gateway_order_id="order_R1", payment_id="pay_r1", amount=50000, event="payment.captured"):
    return json.dumps({
        "event": event,
        "payload": {
            "payment": {
                "entity": {"id": payment_id, "order_id": gateway_order_id, "amount": amount}
            }
        },
    }).encode()


def headers(body, secret=SECRET, event_id=None):
    h = {
        "Content-Type": "application/json",
        "X-Razorpay-Signature": hmac.new(secret.encode(), body, hashlib.sha256).hexdigest(),
    }
    if event_id:
        h["X-Razorpay-Event-Id"] = event_id
    return h


@pytest.fixture
def gateway_order(session_factory, make_order):
    async def _make():
        order_id = await make_order(PaymentMethod.GATEWAY)
        async with session_factory() as session:
            await PaymentService(session).create_for_order(
                order_id, "seller_1", PaymentMethod.GATEWAY, 50000, gateway_order_id="order_R1"
            )
            await SecretService(session).set_webhook_secret("seller_1", SECRET)
            await session.commit()
        return order_id

    return _make


@pytest.mark.asyncio
async def test_valid_event_is_processed(client, gateway_order):
    order_id = await gateway_order()
    body = captured_body()

    response = await client.post(URL, content=body, headers=headers(body, event_id="evt_1"))
    assert response.status_code == 200

    detail = await client.get(f"/orders/{order_id}", headers={"X-Admin-Key": "test-admin-key"})
    assert detail.json()["payment_status"] == "paid"


@pytest.mark.asyncio
async def test_duplicate_delivery_is_acknowledged(client, gateway_order):
    await gateway_order()
    body = captured_body()

    first = await client.post(URL, content=body, headers=headers(body, event_id="evt_dup"))
    second = await client.post(URL, content=body, headers=headers(body, event_id="evt_dup"))

    assert first.status_code == 200
    assert second.status_code == 200


@pytest.mark.asyncio
async def test_invalid_signature_is_rejected(client, gateway_order):
    order_id = await gateway_order()
    body = captured_body()

    response = await client.post(URL, content=body, headers=headers(body, secret="wrong"))
    assert response.status_code == 400

    missing = await client.post(URL, content=body, headers={"Content-Type": "application/json"})
    assert missing.status_code == 400

    detail = await client.get(f"/orders/{order_id}", headers={"X-Admin-Key": "test-admin-key"})
    assert detail.json()["payment_status"] == "unpaid"

    stats = await client.get("/admin/webhooks/stats", headers={"X-Admin-Key": "test-admin-key"})
    assert stats.json()["total"] == 0


@pytest.mark.asyncio
async def test_unknown_gateway_order_is_404(client, gateway_order):
    await gateway_order()
    body = captured_body(gateway_order_id="order_nope")

    response = await client.post(URL, content=body, headers=headers(body))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_conflict_is_409(client, gateway_order):
    await gateway_order()
    body = captured_body(amount=1)

    response = await client.post(URL, content=body, headers=headers(body))
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_maintenance_is_503(client, gateway_order, session_factory):
    await gateway_order()
    async with session_factory() as session:
        await SystemService(session).lock_system("migration", "admin", LockMode.WEBHOOKS)
        await session.commit()
    body = captured_body()

    response = await client.post(URL, content=body, headers=headers(body, event_id="evt_m"))
    assert response.status_code == 503

    stats = await client.get("/admin/webhooks/stats", headers={"X-Admin-Key": "test-admin-key"})
    assert stats.json()["total"] == 0


@pytest.mark.asyncio
async def test_capture_notifies_buyer_once(client, gateway_order):
    order_id = await gateway_order()
    body = captured_body()

    with patch(
        "app.services.notification_service.NotificationService.notify_buyer",
        new_callable=AsyncMock,
    ) as notify:
        first = await client.post(URL, content=body, headers=headers(body, event_id="evt_n"))
        second = await client.post(URL, content=body, headers=headers(body, event_id="evt_n"))

    assert first.status_code == 200
    assert second.status_code == 200
    notify.assert_awaited_once()
    order = notify.await_args[0][0]
    assert order.id == order_id
    assert order.payment_status == "paid"


@pytest.mark.asyncio
async def test_ignored_event_sends_nothing(client, gateway_order):
    await gateway_order()
    body = captured_body(event="refund.created")

    with patch(
        "app.services.notification_service.NotificationService.notify_buyer",
        new_callable=AsyncMock,
    ) as notify:
        response = await client.post(URL, content=body, headers=headers(body))

    assert response.status_code == 200
    notify.assert_not_awaited()
