"""
Tests for the order, seller and admin HTTP endpoints.
"""

from unittest.mock import AsyncMock, patch

import pytest

from app.fsm.states import PaymentMethod

ADMIN = {"X-Admin-Key": "test-admin-key"}
SELLER = {"Authorization": "Bearer seller-token"}
OTHER_SELLER = {"Authorization": "Bearer other-seller-token"}
BUYER = {"Authorization": "Bearer buyer-token"}

CHECKOUT = {
    "seller_id": "seller_1",
    "customer": {"name": "Asha", "phone": "919876543210"},
    "items": [{"name": "Cotton Saree", "quantity": 2, "unit_price": 25000}],
    "payment_method": "UPI_MANUAL",
    "shipping_amount": 4000,
}


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_checkout_creates_order(client):
    response = await client.post("/orders", json=CHECKOUT)

    assert response.status_code == 201
    body = response.json()
    assert body["total_amount"] == 54000
    assert body["status"] == "pending"
    assert body["payment_status"] == "unpaid"
    assert len(body["payments"]) == 1
    assert body["timeline"][0]["status"] == "pending"


@pytest.mark.asyncio
async def test_checkout_rejects_empty_items(client):
    response = await client.post("/orders", json={**CHECKOUT, "items": []})

    assert response.status_code == 400
    assert response.json()["status"] == "error"


@pytest.mark.asyncio
async def test_upi_proof_then_seller_confirms(client, make_order):
    order_id = await make_order(PaymentMethod.UPI_MANUAL)

    proof = await client.post(
        f"/orders/{order_id}/payment-proof",
        json={"transactionId": "UTR555", "screenshotUrl": "https://img.example/p.png"},
    )
    assert proof.status_code == 200
    assert proof.json()["payment_status"] == "pending_verification"

    confirm = await client.post(
        f"/orders/{order_id}/confirm-payment",
        json={"action": "confirm", "notes": "seen in bank app"},
        headers=SELLER,
    )
    assert confirm.status_code == 200
    body = confirm.json()
    assert body["payment_status"] == "paid"
    assert body["order_status"] == "confirmed"
    assert body["invoice_number"].startswith("INV-")


@pytest.mark.asyncio
async def test_seller_reject(client, make_order):
    order_id = await make_order(PaymentMethod.UPI_MANUAL)
    await client.post(f"/orders/{order_id}/payment-proof", json={"transactionId": "UTR1"})

    response = await client.post(
        f"/orders/{order_id}/confirm-payment",
        json={"action": "reject", "notes": "wrong amount"},
        headers=SELLER,
    )
    assert response.status_code == 200
    assert response.json()["payment_status"] == "unpaid"


@pytest.mark.asyncio
async def test_confirm_requires_authentication(client, make_order):
    order_id = await make_order(PaymentMethod.UPI_MANUAL)

    response = await client.post(f"/orders/{order_id}/confirm-payment", json={"action": "confirm"})
    assert response.status_code == 401

    response = await client.post(f"/orders/{order_id}/confirm-payment", json={"action": "confirm"}, headers=BUYER)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_other_seller_gets_404(client, make_order):
    order_id = await make_order(PaymentMethod.UPI_MANUAL)

    response = await client.post(
        f"/orders/{order_id}/confirm-payment", json={"action": "confirm"}, headers=OTHER_SELLER
    )
    assert response.status_code == 404

    response = await client.get(f"/orders/{order_id}", headers=OTHER_SELLER)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_cod_flow_and_conflicts(client, make_order):
    order_id = await make_order(PaymentMethod.COD)

    shipped = await client.post(f"/orders/{order_id}/fulfillment", json={"action": "ship"}, headers=SELLER)
    assert shipped.json()["order_status"] == "shipped"

    collected = await client.post(
        f"/orders/{order_id}/cod-collected", json={"collected_by": "courier"}, headers=SELLER
    )
    assert collected.status_code == 200
    assert collected.json()["order_status"] == "delivered"
    assert collected.json()["payment_status"] == "paid"

    again = await client.post(f"/orders/{order_id}/cod-collected", json={}, headers=SELLER)
    assert again.status_code == 409

    cancel = await client.post(f"/orders/{order_id}/cancel", json={"reason": "late"}, headers=SELLER)
    assert cancel.status_code == 409
    assert "refund" in cancel.json()["message"]

    refund = await client.post(f"/orders/{order_id}/refund", json={"reason": "damaged"}, headers=SELLER)
    assert refund.status_code == 200
    assert refund.json()["payment_status"] == "refunded"


@pytest.mark.asyncio
async def test_admin_resolve(client, make_order):
    order_id = await make_order(PaymentMethod.UPI_MANUAL)

    forbidden = await client.post(
        f"/admin/orders/{order_id}/resolve", json={"action": "mark_paid", "note": "x"}, headers=SELLER
    )
    assert forbidden.status_code == 403

    response = await client.post(
        f"/admin/orders/{order_id}/resolve",
        json={"action": "request_info", "note": "need UTR screenshot"},
        headers=ADMIN,
    )
    assert response.status_code == 200
    assert response.json()["order_status"] == "on_hold"

    detail = await client.get(f"/orders/{order_id}", headers=ADMIN)
    assert detail.json()["timeline"][-1]["note"] == "ADMIN OVERRIDE: request_info - need UTR screenshot"


@pytest.mark.asyncio
async def test_invalid_admin_key(client):
    response = await client.get("/admin/system/status", headers={"X-Admin-Key": "nope"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_maintenance_lock_cycle(client, make_order):
    order_id = await make_order(PaymentMethod.UPI_MANUAL)

    locked = await client.post("/admin/system/lock", json={"reason": "upgrade", "mode": "orders"}, headers=ADMIN)
    assert locked.status_code == 200
    assert locked.json()["lock_mode"] == "orders"

    blocked = await client.post("/orders", json=CHECKOUT)
    assert blocked.status_code == 503
    assert blocked.json()["message"] == "upgrade"

    proof = await client.post(f"/orders/{order_id}/payment-proof", json={"transactionId": "UTR1"})
    assert proof.status_code == 503

    resolve = await client.post(
        f"/admin/orders/{order_id}/resolve", json={"action": "mark_paid", "note": "ok"}, headers=ADMIN
    )
    assert resolve.status_code == 200

    unlocked = await client.post("/admin/system/unlock", headers=ADMIN)
    assert unlocked.json()["maintenance_mode"] is False

    status = await client.get("/admin/system/status", headers=ADMIN)
    assert status.json()["lock_mode"] == "none"


@pytest.mark.asyncio
async def test_payment_settings_never_echo_secrets(client):
    response = await client.put(
        "/sellers/me/payment-settings",
        json={"webhook_secret": "whsec_abc", "gateway_key_id": "rzp_test_12345678", "gateway_key_secret": "s3cret"},
        headers=SELLER,
    )

    assert response.status_code == 200
    settings = response.json()["settings"]
    assert settings["webhook_secret_configured"] is True
    assert settings["gateway_key_secret_configured"] is True
    assert settings["gateway_key_id"] == "rzp_****"
    assert "whsec_abc" not in response.text
    assert "s3cret" not in response.text


@pytest.mark.asyncio
async def test_payment_settings_require_seller(client):
    response = await client.put("/sellers/me/payment-settings", json={"webhook_secret": "x"}, headers=ADMIN)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_resend_link_reminds_buyer(client, make_order):
    order_id = await make_order(PaymentMethod.UPI_MANUAL)

    with patch(
        "app.services.notification_service.NotificationService.send_text_message",
        new_callable=AsyncMock,
        return_value="wamid.1",
    ) as send:
        response = await client.post(f"/orders/{order_id}/resend-link", headers=SELLER)

    assert response.status_code == 200
    assert response.json()["sent"] is True
    phone, message = send.await_args[0]
    assert phone == "919876543210"
    assert message.startswith("Payment reminder")
    assert "UPI transaction ID" in message


@pytest.mark.asyncio
async def test_resend_link_rejected_for_paid_or_foreign_orders(client, make_order):
    order_id = await make_order(PaymentMethod.COD)

    foreign = await client.post(f"/orders/{order_id}/resend-link", headers=OTHER_SELLER)
    assert foreign.status_code == 404

    await client.post(f"/orders/{order_id}/cod-collected", json={}, headers=SELLER)
    paid = await client.post(f"/orders/{order_id}/resend-link", headers=SELLER)
    assert paid.status_code == 409


@pytest.mark.asyncio
async def test_rotate_keys(client):
    await client.put("/sellers/me/payment-settings", json={"webhook_secret": "whsec_abc"}, headers=SELLER)

    forbidden = await client.post("/admin/system/rotate-keys", headers=SELLER)
    assert forbidden.status_code == 403

    response = await client.post("/admin/system/rotate-keys", headers=ADMIN)
    assert response.status_code == 200
    assert response.json()["rewrapped"] == 1
