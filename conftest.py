"""
Shared pytest fixtures: in-memory database, API client, cooperatives,
users and bearer tokens.
"""
import os

os.environ["ENVIRONMENT"] = "test"

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database.database import Base, get_db
from app.main import app
from app.modules.auth.models import User, UserRole
from app.modules.auth.utils import create_access_token
from app.modules.cooperatives.models import BusinessType, Cooperative
from app.modules.financial.models import (
    BalanceSheetAccount, FinancialReport, IncomeStatementAccount, ReportPeriod, ReportStatus, ReportType
)

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# ===== DATABASE =====

@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ===== COOPERATIVES AND USERS =====

@pytest.fixture
def cooperative(db_session):
    coop = Cooperative(
        name="Koperasi Sejahtera",
        code="KSJ",
        registration_number="REG-001",
        business_type=BusinessType.SIMPAN_PINJAM,
        total_members=150,
        active_members=120,
        total_assets=Decimal("2500000000"),
    )
    db_session.add(coop)
    db_session.commit()
    db_session.refresh(coop)
    return coop


@pytest.fixture
def other_cooperative(db_session):
    coop = Cooperative(
        name="Koperasi Makmur",
        code="KMM",
        registration_number="REG-002",
        business_type=BusinessType.KONSUMEN,
        total_members=60,
        active_members=50,
        total_assets=Decimal("500000000"),
    )
    db_session.add(coop)
    db_session.commit()
    db_session.refresh(coop)
    return coop


@pytest.fixture
def dinas_user(db_session):
    user = User(name="Admin Dinas", email="dinas@example.com", role=UserRole.ADMIN_DINAS)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def koperasi_user(db_session, cooperative):
    user = User(
        name="Admin Koperasi",
        email="admin@sejahtera.example.com",
        role=UserRole.ADMIN_KOPERASI,
        cooperative_id=cooperative.id,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def auth_headers(user, cooperative_id=None):
    headers = {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}
    if cooperative_id:
        headers["X-Cooperative-ID"] = str(cooperative_id)
    return headers


@pytest.fixture
def dinas_headers(dinas_user):
    return auth_headers(dinas_user)


@pytest.fixture
def koperasi_headers(koperasi_user):
    return auth_headers(koperasi_user)


# ===== REPORTS =====

def create_report(
    db,
    cooperative,
    report_type=ReportType.BALANCE_SHEET,
    year=2024,
    status=ReportStatus.APPROVED,
    period=ReportPeriod.ANNUAL,
    lines=None,
    data=None,
):
    """Persist a report with ORM line items for the given type."""
    report = FinancialReport(
        cooperative_id=cooperative.id,
        report_type=report_type,
        reporting_year=year,
        reporting_period=period,
        status=status,
        data=data,
    )
    if status in (ReportStatus.SUBMITTED, ReportStatus.APPROVED):
        report.submitted_at = datetime(year + 1, 1, 10, tzinfo=timezone.utc)
    if status == ReportStatus.APPROVED:
        report.approved_at = datetime(year + 1, 1, 20, tzinfo=timezone.utc)
    for line in lines or []:
        getattr(report, line[0]).append(line[1])
    db.add(report)
    db.commit()
    db.refresh(report)
    return report


def balance_sheet_lines(assets, liabilities, equity, previous=None):
    previous = previous or (0, 0, 0)
    return [
        ("balance_sheet_accounts", BalanceSheetAccount(
            account_code="1100", account_name="Kas dan Bank", account_category="asset",
            account_subcategory="current_asset", current_year_amount=Decimal(str(assets)),
            previous_year_amount=Decimal(str(previous[0])), sort_order=1,
        )),
        ("balance_sheet_accounts", BalanceSheetAccount(
            account_code="2100", account_name="Hutang Jangka Pendek", account_category="liability",
            account_subcategory="current_liability", current_year_amount=Decimal(str(liabilities)),
            previous_year_amount=Decimal(str(previous[1])), sort_order=2,
        )),
        ("balance_sheet_accounts", BalanceSheetAccount(
            account_code="3100", account_name="Simpanan Pokok", account_category="equity",
            account_subcategory="member_equity", current_year_amount=Decimal(str(equity)),
            previous_year_amount=Decimal(str(previous[2])), sort_order=3,
        )),
    ]


def income_statement_lines(revenue, expenses):
    return [
        ("income_statement_accounts", IncomeStatementAccount(
            account_code="4100", account_name="Pendapatan Jasa Pinjaman", account_category="revenue",
            current_year_amount=Decimal(str(revenue)), previous_year_amount=Decimal("0"), sort_order=1,
        )),
        ("income_statement_accounts", IncomeStatementAccount(
            account_code="5100", account_name="Beban Operasional", account_category="expense",
            current_year_amount=Decimal(str(expenses)), previous_year_amount=Decimal("0"), sort_order=2,
        )),
    ]


@pytest.fixture
def report_factory(db_session):
    def factory(cooperative, **kwargs):
        return create_report(db_session, cooperative, **kwargs)
    return factory
