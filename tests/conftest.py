import pytest
import pytest_asyncio
from datetime import datetime, timedelta
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from main import app
from database import get_db, Base
from auth import create_access_token
from mailer import Mailer, get_mailer

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

@pytest_asyncio.fixture(scope="function")
async def test_db():
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()

@pytest_asyncio.fixture(scope="function")
async def file_db(tmp_path):
    """Session factory over a real file, so separate sessions get separate connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'rides.db'}", echo=False)
    async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_session

    await engine.dispose()

@pytest_asyncio.fixture(scope="function")
async def client(test_db):
    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    # Keep tests off the network even if RESEND_API_KEY is exported
    app.dependency_overrides[get_mailer] = lambda: Mailer(api_key="")
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

def auth_headers(user_id, email=None, email_verified=True):
    token = create_access_token(user_id, email=email or f"{user_id}@campus.edu", email_verified=email_verified)
    return {"Authorization": f"Bearer {token}"}

def ride_payload(car_id, seats=4, **overrides):
    start = datetime.utcnow() + timedelta(days=1)
    payload = {
        "car_id": car_id,
        "pickup_location": "North Campus, Main Gate",
        "destination_location": "Central Station",
        "pickup_city": "Springfield",
        "destination_city": "Shelbyville",
        "start_datetime": start.isoformat(),
        "end_datetime": (start + timedelta(hours=2)).isoformat(),
        "price_per_seat": 12.5,
        "available_seats": seats,
        "air_conditioning": True,
        "wifi_available": False,
    }
    payload.update(overrides)
    return payload

@pytest.fixture
def publish_ride(client):
    """Creates a car and publishes a ride for `owner`; returns the ride JSON."""
    async def _publish(owner="owner_1", seats=4, capacity=4, **overrides):
        car = await client.post(
            "/cars",
            json={"name": "Family Hatchback", "model": "Civic", "license_plate": "CAMP-001", "max_capacity": capacity},
            headers=auth_headers(owner),
        )
        assert car.status_code == 201
        res = await client.post("/rides", json=ride_payload(car.json()["id"], seats=seats, **overrides), headers=auth_headers(owner))
        assert res.status_code == 201, res.text
        return res.json()
    return _publish
