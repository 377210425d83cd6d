import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from rating_exchange.database import get_session  # noqa: E402
from rating_exchange.main import app  # noqa: E402
from rating_exchange.models.exchange import Exchange, JamType  # noqa: E402
from rating_exchange.models.exchange_round import ExchangeRound, RoundState  # noqa: E402
from rating_exchange.models.played_game import PlayedGame  # noqa: E402
from rating_exchange.models.submission import Submission  # noqa: E402
from rating_exchange.utils.timeutil import utcnow  # noqa: E402

TEST_DATABASE_URL = "sqlite:///:memory:"
JAM_LINK = "https://itch.io/jam/test-jam"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. sqlite:///:memory: with StaticPool so ALL sessions share same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. Tables dropped and re-created per test so round ids and history never leak
# 4. App dependency overridden to use test_engine (see client_fixture)
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on a fresh schema"""
    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session

    Override MUST be set BEFORE TestClient() and stay in place for the
    entire duration so the app never uses its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Data helpers
# ============================================================================


def entry_link(n: int) -> str:
    return f"{JAM_LINK}/rate/{n}"


@pytest.fixture(name="exchange")
def exchange_fixture(session: Session) -> Exchange:
    exchange = Exchange(
        guild="guild-1",
        jam_type=JamType.itch.value,
        jam_link=JAM_LINK,
        slug="TestJam",
        display_name="Test Jam",
        submission_channel="channel-1",
    )
    session.add(exchange)
    session.commit()
    session.refresh(exchange)
    return exchange


@pytest.fixture(name="make_round")
def make_round_fixture(session: Session, exchange: Exchange):
    """Factory: a round of the exchange in a given state with the given submitters."""

    def make_round(submitters=(), state=RoundState.closed, games_per_member=2, exchange_id=None):
        now = utcnow()
        exchange_round = ExchangeRound(
            exchange_id=exchange_id or exchange.id,
            submissions_start_at=now - timedelta(hours=2),
            submissions_end_at=now + timedelta(hours=2),
            games_per_member=games_per_member,
            state=RoundState(state).value,
        )
        session.add(exchange_round)
        session.commit()
        session.refresh(exchange_round)

        base = datetime(2026, 1, 1)
        for i, submitter in enumerate(submitters, start=1):
            session.add(
                Submission(
                    round_id=exchange_round.id,
                    link=entry_link(i),
                    submitter=submitter,
                    submitted_at=base + timedelta(minutes=i),
                )
            )
        session.commit()
        return exchange_round

    return make_round


@pytest.fixture(name="add_played")
def add_played_fixture(session: Session, exchange: Exchange):
    def add_played(member: str, link: str, is_manual: bool = True):
        row = PlayedGame(exchange_id=exchange.id, link=link, member=member, is_manual=is_manual)
        session.add(row)
        session.commit()
        return row

    return add_played
