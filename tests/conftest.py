"""Test configuration and fixtures for the School Library loan service.

1. Isolated databases - every test gets its own SQLite file under tmp_path
2. Configuration overrides - a small, predictable loan policy
3. A frozen clock - time-dependent behaviour is driven explicitly
4. Seed data - a handful of people and resources with known limits

SQLite transactions start with BEGIN IMMEDIATE, so a test must never keep
two sessions in a transaction at the same time on the same thread.
"""

import os
from collections.abc import Generator
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from school_library.config import LibraryConfig, reset_config, set_config
from school_library.database.schema import Person, Resource
from school_library.database.session import DatabaseManager, set_db_manager
from school_library.loans.notifications import RecordingNotificationSink
from school_library.loans.service import LoanService
from school_library.models.catalog import PersonType, ResourceState, ResourceType
from school_library.observability import ObservabilityConfig, initialize_observability

# A Monday, so "this week" and "today" start on the same day
FIXED_NOW = datetime(2024, 3, 4, 10, 0, 0)

STUDENT_ID = "person_ana001"
TEACHER_ID = "person_luis001"
INACTIVE_ID = "person_marta001"

SINGLE_ID = "resource_principito"  # 1 volume
TRIPLE_ID = "resource_quijote"  # 3 volumes
MANY_ID = "resource_atlas"  # 10 volumes
DAMAGED_ID = "resource_ajedrez"  # 2 volumes, damaged


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(scope="session", autouse=True)
def observability() -> None:
    """Configure Logfire locally so spans are created but never exported."""
    initialize_observability(
        ObservabilityConfig(
            enabled=True,
            environment="test",
            send_to_logfire=False,
            console_output=False,
        )
    )


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Provide an environment without SCHOOL_LIBRARY_* variables."""
    original_env = os.environ.copy()
    for key in list(os.environ.keys()):
        if key.startswith("SCHOOL_LIBRARY_"):
            del os.environ[key]

    yield

    os.environ.clear()
    os.environ.update(original_env)


# === Database Fixtures ===


@pytest.fixture
def test_db_path(tmp_path: Path) -> Path:
    return tmp_path / "test_library.db"


@pytest.fixture
def test_database_url(test_db_path: Path) -> str:
    return f"sqlite:///{test_db_path}"


@pytest.fixture
def test_config(test_db_path: Path) -> Generator[LibraryConfig, None, None]:
    """Loan policy used by the tests.

    Students may hold five loans so the max-loans scenario can be played
    with the default limit; everything else keeps its default.
    """
    reset_config()
    config = LibraryConfig(
        server_name="test-school-library",
        server_version="0.0.1-test",
        database_path=test_db_path,
        loan_duration_days=14,
        teacher_loan_duration_days=None,
        student_max_loans=5,
        teacher_max_loans=10,
        student_max_quantity=3,
        teacher_max_quantity=10,
        max_renewals=2,
        renewal_extension_days=7,
        due_soon_days=3,
        low_stock_threshold=1,
        debug=True,
        log_level="DEBUG",
    )
    set_config(config)

    yield config

    reset_config()


@pytest.fixture
def db_manager(test_database_url: str, test_config: LibraryConfig) -> Generator[DatabaseManager, None, None]:
    """A fresh file database, installed as the global manager."""
    manager = DatabaseManager(test_database_url)
    manager.init_database()
    set_db_manager(manager)

    yield manager

    set_db_manager(None)
    manager.close()


@pytest.fixture
def seeded(db_manager: DatabaseManager) -> DatabaseManager:
    """Known people and resources."""
    with db_manager.session_scope() as session:
        session.add_all(
            [
                Person(
                    id=STUDENT_ID,
                    first_name="Ana",
                    last_name="García",
                    person_type=PersonType.STUDENT,
                    grade="5°",
                ),
                Person(
                    id=TEACHER_ID,
                    first_name="Luis",
                    last_name="Pérez",
                    person_type=PersonType.TEACHER,
                ),
                Person(
                    id=INACTIVE_ID,
                    first_name="Marta",
                    last_name="Ruiz",
                    person_type=PersonType.STUDENT,
                    active=False,
                ),
                Resource(id=SINGLE_ID, title="El Principito", volumes=1),
                Resource(id=TRIPLE_ID, title="Don Quijote de la Mancha", volumes=3),
                Resource(
                    id=MANY_ID,
                    title="Atlas escolar",
                    resource_type=ResourceType.MAP,
                    volumes=10,
                ),
                Resource(
                    id=DAMAGED_ID,
                    title="Ajedrez",
                    resource_type=ResourceType.GAME,
                    volumes=2,
                    state=ResourceState.DAMAGED,
                ),
            ]
        )
    return db_manager


@pytest.fixture
def session(seeded: DatabaseManager):
    """A session on the seeded database, closed after the test."""
    session = seeded.create_session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# === Service Fixtures ===


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(FIXED_NOW)


@pytest.fixture
def notifier() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def service(session, test_config, notifier, clock) -> LoanService:
    return LoanService(session, config=test_config, notifier=notifier, clock=clock)
