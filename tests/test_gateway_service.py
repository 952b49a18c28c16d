"""
Tests for Razorpay order creation.
"""

from unittest.mock import MagicMock, patch

import pytest

from app.errors import ConflictError, GatewayUnavailable, ValidationError
from app.fsm.states import PaymentMethod, PaymentStatus
from app.services.gateway_service import GatewayService
from app.services.order_service import OrderService
from app.services.payment_service import PaymentService
from app.services.secret_service import SecretService


async def _configure(db):
    await SecretService(db).update_settings(
        "seller_1", gateway_key_id="rzp_test_key", gateway_key_secret="rzp_secret"
    )


def _client(gateway_order_id="order_G1"):
    client = MagicMock()
    client.order.create.return_value = {"id": gateway_order_id, "amount": 50000, "currency": "INR"}
    return client


@pytest.mark.asyncio
async def test_links_gateway_order_to_pending_attempt(db, make_order):
    order_id = await make_order(PaymentMethod.GATEWAY)
    await _configure(db)
    order = await OrderService(db).get(order_id)
    client = _client()

    with patch("app.services.gateway_service.razorpay.Client", return_value=client) as factory:
        payload = await GatewayService(db).create_gateway_payment(order)

    factory.assert_called_once_with(auth=("rzp_test_key", "rzp_secret"))
    args = client.order.create.call_args[0][0]
    assert args["amount"] == 50000
    assert args["notes"]["order_id"] == str(order_id)

    assert payload["gateway_order_id"] == "order_G1"
    assert payload["key_id"] == "rzp_test_key"
    payments = await PaymentService(db).find_by_order_id(order_id)
    assert len(payments) == 1
    assert payments[0].gateway_order_id == "order_G1"


@pytest.mark.asyncio
async def test_existing_gateway_order_is_reused(db, make_order):
    order_id = await make_order(PaymentMethod.GATEWAY)
    await _configure(db)
    order = await OrderService(db).get(order_id)
    client = _client()

    with patch("app.services.gateway_service.razorpay.Client", return_value=client):
        first = await GatewayService(db).create_gateway_payment(order)
        second = await GatewayService(db).create_gateway_payment(order)

    assert first == second
    client.order.create.assert_called_once()


@pytest.mark.asyncio
async def test_new_attempt_for_non_gateway_order(db, make_order):
    order_id = await make_order(PaymentMethod.UPI_MANUAL)
    await _configure(db)
    order = await OrderService(db).get(order_id)

    with patch("app.services.gateway_service.razorpay.Client", return_value=_client("order_G2")):
        await GatewayService(db).create_gateway_payment(order)

    payments = await PaymentService(db).find_by_order_id(order_id)
    assert [p.method for p in payments] == [PaymentMethod.UPI_MANUAL.value, PaymentMethod.GATEWAY.value]
    assert payments[-1].gateway_order_id == "order_G2"


@pytest.mark.asyncio
async def test_requires_credentials(db, make_order):
    order = await OrderService(db).get(await make_order(PaymentMethod.GATEWAY))

    with pytest.raises(ValidationError):
        await GatewayService(db).create_gateway_payment(order)


@pytest.mark.asyncio
async def test_paid_order_is_rejected(db, make_order):
    order_id = await make_order(PaymentMethod.GATEWAY)
    await _configure(db)
    order = await OrderService(db).get(order_id)
    order.payment_status = PaymentStatus.PAID.value

    with pytest.raises(ConflictError):
        await GatewayService(db).create_gateway_payment(order)


@pytest.mark.asyncio
async def test_gateway_error_is_reported(db, make_order):
    order_id = await make_order(PaymentMethod.GATEWAY)
    await _configure(db)
    order = await OrderService(db).get(order_id)
    client = MagicMock()
    client.order.create.side_effect = Exception("BadRequestError")

    with patch("app.services.gateway_service.razorpay.Client", return_value=client):
        with pytest.raises(GatewayUnavailable):
            await GatewayService(db).create_gateway_payment(order)

    payments = await PaymentService(db).find_by_order_id(order_id)
    assert payments[0].gateway_order_id is None
