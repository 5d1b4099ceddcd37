import os

# Keep the app's own engine off disk; tests run against test_engine below
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from arenadraw.database import get_session  # noqa: E402
from arenadraw.main import app  # noqa: E402
from arenadraw.models.entrant import Entrant  # noqa: E402
from arenadraw.models.tournament import PairingFormat, Tournament  # noqa: E402

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. sqlite:///:memory: with StaticPool so ALL sessions share one database
# 2. check_same_thread=False required for TestClient/threaded access
# 3. Tables are dropped and recreated for every test (see session_fixture)
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
    """Provide a test database session on a fresh schema."""
    import arenadraw.models  # noqa: F401

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


@pytest.fixture
def make_tournament(session: Session):
    """Factory: tournament with n registered entrants (E1..En, seeded in order)."""

    def _make(
        n: int = 12,
        pairing_format: PairingFormat = PairingFormat.fixed_pair,
        has_elimination: bool = True,
        rules: dict | None = None,
    ) -> Tournament:
        tournament = Tournament(
            name=f"Open {n}",
            pairing_format=pairing_format.value,
            has_elimination=has_elimination,
            rules_json=rules,
        )
        session.add(tournament)
        session.commit()
        session.refresh(tournament)
        for i in range(1, n + 1):
            session.add(Entrant(tournament_id=tournament.id, name=f"E{i}", seed=i))
        session.commit()
        return tournament

    return _make
