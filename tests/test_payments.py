import pytest
from unittest.mock import AsyncMock
from sqlalchemy.future import select
from elearning.main import app
from elearning.models import Subscription, Payment, Progress
from elearning.services.payment_gateway import PayOSClient, PaymentGatewayError, get_payment_links
from conftest import auth_headers, purchase, sign_payment

def verification_body(order_id="order_1", payment_id="pay_1", signature=None):
    return {
        "razorpay_order_id": order_id,
        "razorpay_payment_id": payment_id,
        "razorpay_signature": signature if signature is not None else sign_payment(order_id, payment_id),
    }

async def rows(session_factory, model, **filters):
    async with session_factory() as session:
        stmt = select(model)
        for column, value in filters.items():
            stmt = stmt.where(getattr(model, column) == value)
        return (await session.execute(stmt)).scalars().all()

@pytest.mark.asyncio
async def test_checkout_creates_order(client, make_user, make_course, session_factory, gateway):
    student = await make_user()
    course = await make_course(price=499.5)

    res = await client.post(f"/api/course/checkout/{course.id}", headers=auth_headers(student))
    assert res.status_code == 201
    body = res.json()
    assert body["order"]["amount"] == 49950
    assert body["order"]["currency"] == "INR"
    assert body["course"]["_id"] == course.id
    assert len(gateway.orders) == 1
    assert gateway.orders[0]["receipt"] == f"course_{course.id}_user_{student.id}"

    (pending,) = await rows(session_factory, Payment, razorpay_order_id=body["order"]["id"])
    assert pending.status == "created"
    assert pending.amount == 49950
    assert (pending.user_id, pending.course_id) == (student.id, course.id)
    assert pending.razorpay_payment_id is None

@pytest.mark.asyncio
async def test_checkout_missing_course(client, make_user, gateway):
    student = await make_user()
    res = await client.post("/api/course/checkout/404", headers=auth_headers(student))
    assert res.status_code == 404
    assert res.json() == {"message": "Course not found"}

@pytest.mark.asyncio
async def test_checkout_requires_login(client, make_course, gateway):
    course = await make_course()
    res = await client.post(f"/api/course/checkout/{course.id}")
    assert res.status_code == 403
    assert res.json() == {"message": "Please Login"}

@pytest.mark.asyncio
async def test_verification_enrolls_once(client, make_user, make_course, session_factory, gateway):
    student = await make_user()
    course = await make_course()

    res = await purchase(client, student, course.id)
    assert res.status_code == 200
    assert res.json() == {"message": "Course Verified and Added Successfully"}

    # Replaying the same confirmation must not add a second subscription
    res_again = await client.post(f"/api/verification/{course.id}", json=verification_body(), headers=auth_headers(student))
    assert res_again.status_code == 400
    assert res_again.json() == {"message": "You already have this course"}

    assert len(await rows(session_factory, Subscription, user_id=student.id)) == 1
    payments = await rows(session_factory, Payment, razorpay_order_id="order_1")
    assert len(payments) == 1
    assert payments[0].course_id == course.id
    assert payments[0].status == "paid"
    assert payments[0].razorpay_payment_id == "pay_1"
    assert payments[0].paid_at is not None
    assert len(await rows(session_factory, Progress, user_id=student.id, course_id=course.id)) == 1

    res_me = await client.get("/api/user/me", headers=auth_headers(student))
    assert res_me.json()["user"]["subscription"] == [course.id]

    res_checkout = await client.post(f"/api/course/checkout/{course.id}", headers=auth_headers(student))
    assert res_checkout.status_code == 400
    assert res_checkout.json() == {"message": "You already have this course"}

@pytest.mark.asyncio
async def test_order_cannot_unlock_another_course(client, make_user, make_course, session_factory, gateway):
    student = await make_user()
    cheap = await make_course(title="Cheap", price=1)
    pricey = await make_course(title="Pricey", price=999)

    assert (await purchase(client, student, cheap.id)).status_code == 200

    res = await client.post(f"/api/verification/{pricey.id}", json=verification_body(), headers=auth_headers(student))
    assert res.status_code == 400
    assert res.json() == {"message": "Payment Failed"}

    subscriptions = await rows(session_factory, Subscription, user_id=student.id)
    assert [s.course_id for s in subscriptions] == [cheap.id]
    assert len(await rows(session_factory, Payment)) == 1

@pytest.mark.asyncio
async def test_unconfirmed_order_is_bound_to_its_course(client, make_user, make_course, session_factory, gateway):
    student = await make_user()
    cheap = await make_course(title="Cheap", price=1)
    pricey = await make_course(title="Pricey", price=999)

    res_checkout = await client.post(f"/api/course/checkout/{cheap.id}", headers=auth_headers(student))
    order_id = res_checkout.json()["order"]["id"]

    res = await client.post(
        f"/api/verification/{pricey.id}",
        json=verification_body(order_id=order_id),
        headers=auth_headers(student),
    )
    assert res.status_code == 400
    assert res.json() == {"message": "Payment Failed"}
    assert await rows(session_factory, Subscription) == []

    # The order is still good for the course it was created for
    res_own = await client.post(
        f"/api/verification/{cheap.id}",
        json=verification_body(order_id=order_id),
        headers=auth_headers(student),
    )
    assert res_own.status_code == 200

@pytest.mark.asyncio
async def test_order_cannot_be_redeemed_by_another_user(client, make_user, make_course, session_factory, gateway):
    buyer = await make_user(email="buyer@example.com")
    other = await make_user(email="other@example.com")
    course = await make_course()

    assert (await purchase(client, buyer, course.id)).status_code == 200

    res = await client.post(f"/api/verification/{course.id}", json=verification_body(), headers=auth_headers(other))
    assert res.status_code == 400
    assert res.json() == {"message": "Payment Failed"}
    assert await rows(session_factory, Subscription, user_id=other.id) == []

@pytest.mark.asyncio
async def test_verification_requires_checkout_order(client, make_user, make_course, session_factory, gateway):
    student = await make_user()
    course = await make_course()

    res = await client.post(
        f"/api/verification/{course.id}",
        json=verification_body(order_id="order_unknown"),
        headers=auth_headers(student),
    )
    assert res.status_code == 400
    assert res.json() == {"message": "Payment Failed"}
    assert await rows(session_factory, Subscription) == []

@pytest.mark.asyncio
async def test_verification_rejects_bad_signature(client, make_user, make_course, session_factory, gateway):
    student = await make_user()
    course = await make_course()

    res = await client.post(
        f"/api/verification/{course.id}",
        json=verification_body(signature="forged"),
        headers=auth_headers(student),
    )
    assert res.status_code == 400
    assert res.json() == {"message": "Payment Failed"}
    assert await rows(session_factory, Subscription) == []
    assert await rows(session_factory, Payment) == []

@pytest.mark.asyncio
async def test_verification_missing_fields(client, make_user, make_course, gateway):
    student = await make_user()
    course = await make_course()
    res = await client.post(f"/api/verification/{course.id}", json={"razorpay_order_id": "order_1"}, headers=auth_headers(student))
    assert res.status_code == 400
    assert res.json()["message"] == "Validation failed"

@pytest.mark.asyncio
async def test_create_payment_link(client):
    payos = PayOSClient("client", "key", "checksum")
    payos.create_payment_link = AsyncMock(return_value={"checkoutUrl": "https://pay.example.com/abc", "orderCode": 42})
    app.dependency_overrides[get_payment_links] = lambda: payos
    try:
        res = await client.post("/api/create-payment-link", json={"amount": 9999, "description": "Course enrollment payment"})
        assert res.status_code == 200
        assert res.json() == {"checkoutUrl": "https://pay.example.com/abc", "orderCode": 42}
        kwargs = payos.create_payment_link.call_args.kwargs
        assert kwargs["return_url"].endswith("/success")
        assert kwargs["cancel_url"].endswith("/cancel")

        res_missing = await client.post("/api/create-payment-link", json={"amount": 9999})
        assert res_missing.status_code == 400
        assert res_missing.json() == {"message": "Amount and description are required"}

        payos.create_payment_link = AsyncMock(side_effect=PaymentGatewayError("down"))
        res_error = await client.post("/api/create-payment-link", json={"amount": 1, "description": "x"})
        assert res_error.status_code == 500
        assert res_error.json() == {"message": "Internal Server Error"}
    finally:
        app.dependency_overrides.pop(get_payment_links, None)

@pytest.mark.asyncio
async def test_receive_hook_echoes_payload(client):
    payload = {"code": "00", "data": {"orderCode": 123, "amount": 9999}, "signature": "abc"}
    res = await client.post("/receive-hook", json=payload)
    assert res.status_code == 200
    assert res.json() == payload

@pytest.mark.asyncio
async def test_health_check(client):
    res = await client.get("/")
    assert res.status_code == 200
    assert res.text == "Server is running"
