"""Pytest configuration and shared fixtures."""

import pytest
import os
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock, patch
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app modules
os.environ["TESTING"] = "true"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["GRIPP_API_KEY"] = "test-gripp-key"
os.environ["GRIPP_API_URL"] = "https://api.gripp.test/public/api3.php"

from src.models import Base, Hour, Project, ProjectLine
from src.utils import cache_manager as cache_module
from src.utils import database


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared by every connection in the test."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine)


@pytest.fixture
def db_session(session_factory):
    """Create database session for testing."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def app_db(db_engine):
    """Point the global engine used by ``session_scope()`` at the test database."""
    previous_engine, previous_factory = database._engine, database._session_factory
    database._engine = db_engine
    database._session_factory = None
    yield db_engine
    if database._session_factory is not None:
        database._session_factory.remove()
    database._engine, database._session_factory = previous_engine, previous_factory


@pytest.fixture(autouse=True)
def no_redis():
    """Run every test with caching disabled unless it installs its own cache manager."""
    with patch(
        "src.utils.cache_manager.redis.from_url",
        side_effect=ConnectionError("Redis not available in tests"),
    ):
        cache_module._cache_manager = None
        yield
    cache_module._cache_manager = None


@pytest.fixture
def mock_gripp_client():
    """Mock Gripp client returning one fixed-price project with two lines."""
    client = MagicMock()
    client.get_projects.return_value = [
        {
            "id": 1001,
            "name": "Acme - Website relaunch",
            "number": 1001,
            "company": {"id": 55, "searchname": "Acme B.V."},
            "phase": {"id": 2, "searchname": "Uitvoering"},
            "tags": [{"id": 28, "searchname": "Vaste prijs"}],
            "totalexclvat": "12000.00",
            "sellingprice": "115.00",
            "archived": False,
            "discr": "opdracht",
        }
    ]
    client.get_project_lines.return_value = [
        {
            "id": 501,
            "searchname": "Design",
            "amount": "40",
            "sellingprice": "100.00",
            "invoicebasis": {"id": 1, "searchname": "Vaste prijs"},
            "rowtype": {"id": 1, "searchname": "Normaal"},
        },
        {
            "id": 502,
            "searchname": "Development",
            "amount": "80",
            "sellingprice": "100.00",
            "invoicebasis": {"id": 1, "searchname": "Vaste prijs"},
            "rowtype": {"id": 1, "searchname": "Normaal"},
        },
    ]
    client.get_offers.return_value = [
        {
            "id": 2001,
            "name": "Acme - Phase 2",
            "company": {"id": 55, "searchname": "Acme B.V."},
            "discr": "offerte",
            "totalexclvat": "5000",
        }
    ]
    client.get_hours.return_value = []
    return client


@pytest.fixture
def fixed_price_project(db_session):
    """A cached fixed-price project (budget 2000) with one line and a few hours."""
    project = Project(
        id=1001,
        name="Acme - Website relaunch",
        company_name="Acme B.V.",
        tags=[{"id": 28, "searchname": "Vaste prijs"}],
        total_excl_vat=Decimal("2000"),
        archived=False,
        discr="opdracht",
    )
    project.lines.append(
        ProjectLine(
            id=501,
            searchname="Development",
            amount=Decimal("20"),
            selling_price=Decimal("100"),
            invoice_basis_id=1,
            row_type_id=1,
        )
    )
    db_session.add(project)
    db_session.add_all(
        [
            Hour(id=1, employee_id=7, date=date(2024, 1, 10), amount=Decimal("10"),
                 project_id=1001, project_line_id=501, offerprojectbase_discr="opdracht"),
            Hour(id=2, employee_id=7, date=date(2024, 2, 5), amount=Decimal("8"),
                 project_id=1001, project_line_id=501, offerprojectbase_discr="opdracht"),
            Hour(id=3, employee_id=8, date=date(2024, 3, 1), amount=Decimal("6"),
                 project_id=1001, project_line_id=501, offerprojectbase_discr="opdracht"),
        ]
    )
    db_session.commit()
    return project
