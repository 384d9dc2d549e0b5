import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from boatcare.core.config import get_settings
from boatcare.models.service_request import Base, Boat, ServiceRequest, User


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    # Some tests mutate env vars and clear the settings cache. Ensure we don't leak
    # a cached Settings instance (e.g. with a different JWT secret) across tests.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _reset_in_memory_trackers():
    from boatcare.utils.alerting import alert_tracker
    from boatcare.utils.request_badges import request_badges

    alert_tracker.reset()
    request_badges.clear()
    yield
    alert_tracker.reset()
    request_badges.clear()


def make_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_engine():
    engine = make_engine()
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    SessionLocal = sessionmaker(bind=db_engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def repo(db_session):
    from boatcare.services.request_repository import SqlAlchemyRequestRepository

    return SqlAlchemyRequestRepository(db_session)


class PartyFactory:
    """Inserts users, boats and requests directly, bypassing the workflow."""

    def __init__(self, db) -> None:
        self.db = db

    def user(self, role: str, *, first_name: str = "Test", last_name: str = "User",
             company_name: Optional[str] = None, phone: Optional[str] = None) -> User:
        user = User(
            id=uuid.uuid4(),
            email=f"{uuid.uuid4()}@example.com",
            phone=phone,
            role=role,
            first_name=first_name,
            last_name=last_name,
            company_name=company_name,
            is_active=True,
            created_at=datetime.now(timezone.utc),
        )
        self.db.add(user)
        self.db.commit()
        return user

    def client(self, first_name: str = "Claire", last_name: str = "Client") -> User:
        return self.user("CLIENT", first_name=first_name, last_name=last_name)

    def boat_manager(self, first_name: str = "Marc", last_name: str = "Manager") -> User:
        return self.user("BOAT_MANAGER", first_name=first_name, last_name=last_name)

    def company(self, company_name: str = "Nautic Services") -> User:
        return self.user("NAUTICAL_COMPANY", first_name="Nina", last_name="Owner", company_name=company_name)

    def corporate(self) -> User:
        return self.user("CORPORATE", first_name="Corp", last_name="Admin")

    def boat(self, owner: User, name: str = "Sea Breeze") -> Boat:
        boat = Boat(id=uuid.uuid4(), owner_id=owner.id, name=name, boat_type="sailboat", home_port="Marseille")
        self.db.add(boat)
        self.db.commit()
        return boat

    def request(
        self,
        client: User,
        *,
        status: str = "submitted",
        category: str = "maintenance",
        title: str = "Hull cleaning",
        urgency: str = "normal",
        boat: Optional[Boat] = None,
        boat_manager: Optional[User] = None,
        company: Optional[User] = None,
        price: Optional[Decimal] = None,
        created_at: Optional[datetime] = None,
        **extra,
    ) -> ServiceRequest:
        request = ServiceRequest(
            id=uuid.uuid4(),
            category=category,
            title=title,
            description="",
            status=status,
            urgency=urgency,
            client_id=client.id,
            boat_id=boat.id if boat is not None else None,
            boat_manager_id=boat_manager.id if boat_manager is not None else None,
            company_id=company.id if company is not None else None,
            price=price,
            created_at=created_at or datetime.now(timezone.utc),
            **extra,
        )
        self.db.add(request)
        self.db.commit()
        return request


@pytest.fixture
def factory(db_session):
    return PartyFactory(db_session)


def actor_for(user: User):
    from boatcare.schemas.service_request import ActorRole
    from boatcare.services.request_records import ActorContext

    return ActorContext(role=ActorRole(user.role), id=str(user.id))


def future_date(days: int = 7) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


SCHEDULE_INPUTS = {"time": "09:30", "location": "Port de la Pointe Rouge", "notes": "Bring antifouling"}


@pytest_asyncio.fixture
async def api_client(db_engine):
    """In-process ASGI client; authenticate per request with X-Test-* headers."""
    from fastapi import Request

    from boatcare.core.auth import CurrentUser, get_current_user
    from boatcare.core.dependencies import get_db
    from boatcare.main import app

    SessionLocal = sessionmaker(bind=db_engine)

    def override_get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def override_get_current_user(request: Request):
        return CurrentUser(
            id=request.headers.get("x-test-sub", "00000000-0000-0000-0000-000000000001"),
            role=request.headers.get("x-test-role", "CORPORATE"),
        )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
