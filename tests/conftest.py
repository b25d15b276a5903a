"""
Pytest fixtures for the workwear kernel test suite.

Every test gets its own in-memory SQLite database (one shared connection),
a deterministic clock, a seeded product catalogue, a set of company
policies and one employee with an entitlement record.  Tests that need
several connections (concurrency) build a file-backed database from
``sqlite_file_url`` instead.
"""

import itertools
import json
import logging
from datetime import datetime, timezone
from io import StringIO

import pytest
from sqlalchemy.orm import sessionmaker

from workwear_config.schema import PolicySet
from workwear_kernel.db.engine import build_engine, create_tables
from workwear_kernel.domain.clock import DeterministicClock
from workwear_kernel.domain.orders import CartLine, Product
from workwear_kernel.domain.policy import CompanyPolicy
from workwear_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from workwear_kernel.services.approval_service import OrderApprovalService
from workwear_kernel.services.catalog import InMemoryProductCatalog
from workwear_kernel.services.consumption_service import ConsumptionLedgerService
from workwear_kernel.services.order_service import OrderPlacementService

EMPLOYEE_ID = "EMP-1"
HR_EMAIL = "hr@acme.example"
SITE_ADMIN = "site.admin@acme.example"
COMPANY_ADMIN = "company.admin@acme.example"

DEFAULT_ENTITLEMENT = {"shirt": 2, "pant": 2, "shoe": 1, "jacket": 1, "accessory": 1}


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture workwear_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, placement):
            placement.place_order(...)
            logs = captured_logs()
            assert any(r["message"] == "order_placed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("workwear_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    factory = sessionmaker(bind=engine)
    session = factory()
    yield session
    session.close()


@pytest.fixture
def sqlite_file_url(tmp_path):
    """URL of a fresh file-backed SQLite database with all tables created."""
    url = f"sqlite:///{tmp_path / 'workwear.db'}"
    engine = build_engine(url)
    create_tables(engine)
    engine.dispose()
    return url


# =============================================================================
# Clock, catalogue and policy fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(datetime(2024, 6, 3, 9, 30, tzinfo=timezone.utc))


def make_products() -> list[Product]:
    return [
        Product("SHIRT-1", "Oxford shirt", "Shirt", "500", "V-A", "Alpha Uniforms", ("S", "M", "L")),
        Product("TROUSER-1", "Work trouser", "Trouser", "650", "V-A", "Alpha Uniforms"),
        Product("SHOE-1", "Safety shoe", "Shoes", "400", "V-B", "Bravo Footwear"),
        Product("BELT-1", "Leather belt", "Belt", "250", "V-B", "Bravo Footwear"),
        Product("BLAZER-1", "Wool blazer", "Blazer", "1200", "V-C", "Charlie Tailors"),
        Product("ORPHAN-1", "Discontinued cap", "Cap", "150", ""),
    ]


@pytest.fixture
def catalog():
    return InMemoryProductCatalog(make_products())


def make_policies() -> PolicySet:
    return PolicySet(
        name="test-companies",
        version=1,
        policies={
            "ACME": CompanyPolicy(
                company_id="ACME",
                enable_pr_po_workflow=True,
                enable_site_admin_pr_approval=True,
                require_company_admin_po_approval=True,
                allow_personal_payments=True,
            ),
            "GLOBEX": CompanyPolicy(
                company_id="GLOBEX",
                enable_pr_po_workflow=True,
                enable_site_admin_pr_approval=True,
                allow_multi_pr_po=True,
            ),
            "INITECH": CompanyPolicy(
                company_id="INITECH",
                enable_pr_po_workflow=True,
                require_company_admin_po_approval=True,
            ),
            "UMBRELLA": CompanyPolicy(company_id="UMBRELLA", allow_personal_payments=True),
        },
    )


@pytest.fixture
def policies():
    return make_policies()


# =============================================================================
# Service fixtures
# =============================================================================


def sequential_ids(prefix: str = "O"):
    counter = itertools.count(1)
    return lambda: f"{prefix}{next(counter)}"


@pytest.fixture
def ledger(session, deterministic_clock):
    return ConsumptionLedgerService(session, deterministic_clock)


@pytest.fixture
def employee(session, ledger):
    """EMP-1 with the default entitlement, committed."""
    ledger.set_entitlement(EMPLOYEE_ID, DEFAULT_ENTITLEMENT, HR_EMAIL)
    session.commit()
    return EMPLOYEE_ID


@pytest.fixture
def placement(session, catalog, policies, deterministic_clock):
    return OrderPlacementService(
        session,
        catalog,
        policies,
        clock=deterministic_clock,
        id_factory=sequential_ids(),
    )


@pytest.fixture
def approvals(session, policies, deterministic_clock):
    return OrderApprovalService(session, policies, clock=deterministic_clock)


@pytest.fixture
def split_order(placement, employee):
    """O1: two vendors, V-A (2 shirts, 1000) and V-B (1 shoe, 400)."""
    return placement.place_order(
        employee,
        "ACME",
        [CartLine("SHIRT-1", 2, "M"), CartLine("SHOE-1", 1)],
    )
