"""Shared fixtures for lifecycle tests.

Provides:
- In-memory repositories (deals, contracts, firm offers, projects)
- A recording email sender wired into a real NotificationDispatcher
- A controllable clock for expiry tests
- Deal factories for the common starting states
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from src.app.config import get_settings
from src.app.deals.schemas import DealCreate, DealRead, DealStatus
from src.app.notifications.dispatcher import NotificationDispatcher
from src.app.projects.materializer import ProjectMaterializer
from tests.fakes import (
    InMemoryContractRepository,
    InMemoryDealRepository,
    InMemoryFirmOfferRepository,
    InMemoryProjectRepository,
    RecordingEmailSender,
)

ADMIN_EMAIL = "ops@agency.test"
PUBLIC_BASE_URL = "https://book.agency.test"


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Settings are cached per process; tests that patch env need a clean cache."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 2, 15, 30, tzinfo=timezone.utc))


@pytest.fixture
def deal_repo() -> InMemoryDealRepository:
    return InMemoryDealRepository()


@pytest.fixture
def contract_repo() -> InMemoryContractRepository:
    return InMemoryContractRepository()


@pytest.fixture
def offer_repo() -> InMemoryFirmOfferRepository:
    return InMemoryFirmOfferRepository()


@pytest.fixture
def project_repo() -> InMemoryProjectRepository:
    return InMemoryProjectRepository()


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def dispatcher(email_sender) -> NotificationDispatcher:
    return NotificationDispatcher(email_sender, ADMIN_EMAIL, PUBLIC_BASE_URL)


@pytest.fixture
def materializer(project_repo, deal_repo) -> ProjectMaterializer:
    return ProjectMaterializer(project_repo, deal_repo)


def make_deal(**overrides) -> DealCreate:
    values = {
        "client_name": "Dana Whitfield",
        "client_email": "dana@northwind.test",
        "client_phone": "+1 415 555 0100",
        "company": "Northwind Events",
        "event_title": "Northwind Leadership Summit",
        "event_date": datetime(2026, 6, 18, 17, 0, tzinfo=timezone.utc),
        "event_location": "San Francisco, CA",
        "event_type": "Conference",
        "attendee_count": 400,
        "speaker_requested": "Dr. Maya Chen",
        "deal_value": 25000.0,
    }
    values.update(overrides)
    return DealCreate(**values)


@pytest_asyncio.fixture
async def won_deal(deal_repo) -> DealRead:
    return await deal_repo.create_deal(make_deal(status=DealStatus.WON))


@pytest_asyncio.fixture
async def lead_deal(deal_repo) -> DealRead:
    return await deal_repo.create_deal(make_deal())
