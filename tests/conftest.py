import os
import tempfile

# Settings are read at import time, so the environment goes in before the app is imported.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("ACTIVATION_SECRET", "test-activation-secret")
os.environ.setdefault("FORGOT_SECRET", "test-forgot-secret")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "test-razorpay-secret")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("MAIL_WEBHOOK_URL", "")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="elearning-uploads-"))

import hashlib
import hmac
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from elearning.config import settings
from elearning.database import Base, get_db
from elearning.main import app
from elearning.models import User, Course, Lecture, Role
from elearning.routers.auth import hash_password, create_session_token
from elearning.services.payment_gateway import RazorpayGateway, get_payment_gateway

class FakeGateway(RazorpayGateway):
    """Real signature check, canned orders."""

    def __init__(self):
        super().__init__("test-key", settings.RAZORPAY_KEY_SECRET)
        self.orders = []

    async def create_order(self, amount, currency, receipt=None):
        order = {
            "id": f"order_{len(self.orders) + 1}",
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "status": "created",
        }
        self.orders.append(order)
        return order

def sign_payment(order_id: str, payment_id: str) -> str:
    body = f"{order_id}|{payment_id}".encode()
    return hmac.new(settings.RAZORPAY_KEY_SECRET.encode(), body, hashlib.sha256).hexdigest()

@pytest_asyncio.fixture(scope="function")
async def session_factory():
    """Fresh in-memory database per test, wired into the app."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    TestingSessionLocal = sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield TestingSessionLocal
    app.dependency_overrides.pop(get_db, None)
    await engine.dispose()

@pytest.fixture
def gateway():
    fake = FakeGateway()
    app.dependency_overrides[get_payment_gateway] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_payment_gateway, None)

@pytest_asyncio.fixture
async def client(session_factory):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://localhost") as ac:
        yield ac

@pytest_asyncio.fixture
async def make_user(session_factory):
    async def _make_user(email="student@example.com", password="secret123", name="Student", role=Role.USER):
        async with session_factory() as session:
            user = User(name=name, email=email, hashed_password=hash_password(password), role=role.value)
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user
    return _make_user

@pytest_asyncio.fixture
async def make_course(session_factory):
    async def _make_course(title="Python Basics", price=499.0, lectures=0):
        async with session_factory() as session:
            course = Course(
                title=title,
                description="Learn Python from scratch",
                price=price,
                duration=10,
                category="Programming",
                created_by="Dr. Jane Smith",
            )
            session.add(course)
            await session.commit()
            await session.refresh(course)
            for i in range(lectures):
                session.add(Lecture(title=f"Lecture {i + 1}", description="Lecture body", course_id=course.id))
            await session.commit()
            return course
    return _make_course

async def lecture_ids(session_factory, course_id):
    from sqlalchemy.future import select
    async with session_factory() as session:
        result = await session.execute(select(Lecture.id).where(Lecture.course_id == course_id).order_by(Lecture.id))
        return list(result.scalars().all())

def auth_headers(user) -> dict:
    return {"token": create_session_token(user)}

async def purchase(client, user, course_id, payment_id="pay_1"):
    """Checks out a course and confirms the resulting order, as the payment page would."""
    res_checkout = await client.post(f"/api/course/checkout/{course_id}", headers=auth_headers(user))
    order_id = res_checkout.json()["order"]["id"]
    return await client.post(
        f"/api/verification/{course_id}",
        json={
            "razorpay_order_id": order_id,
            "razorpay_payment_id": payment_id,
            "razorpay_signature": sign_payment(order_id, payment_id),
        },
        headers=auth_headers(user),
    )
