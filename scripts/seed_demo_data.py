"""
Seed script: Populate a demo province with cooperatives and approved reports.

What it creates:
- One admin_dinas user (oversight office).
- N cooperatives (default 5), each with an admin_koperasi user.
- Approved balance sheets and income statements for the last Y years
  (default 3), with previous-year columns filled in.
- Annual KPI snapshots recorded from those reports.

Run inside the API container so the 'postgres' host and PYTHONPATH resolve:
    docker compose exec api python scripts/seed_demo_data.py \
        --cooperatives 5 --years 3

Prints a bearer token per user. Development environments only.
"""

# Add project root (/code) to sys.path so `app.*` imports work even if CWD changes
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
import random
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from app.database.database import SessionLocal
from app.modules.analytics.services import KPIService
from app.modules.auth.models import User, UserRole
from app.modules.auth.utils import create_access_token
from app.modules.cooperatives.models import BusinessType, Cooperative
from app.modules.financial.models import (
    BalanceSheetAccount, FinancialReport, IncomeStatementAccount, ReportPeriod, ReportStatus, ReportType
)

COOPERATIVE_NAMES = [
    "Koperasi Sejahtera Bersama", "Koperasi Tani Makmur", "Koperasi Nelayan Samudra",
    "Koperasi Karyawan Mandiri", "Koperasi Pasar Sentosa", "Koperasi Wanita Harapan",
    "Koperasi Serba Usaha Maju", "Koperasi Peternak Lestari",
]


def money(value) -> Decimal:
    return Decimal(str(round(value, -3)))


def get_or_create_dinas_user(db, email: str):
    user = db.query(User).filter(User.email == email).first()
    if user:
        return user
    user = User(name="Admin Dinas Koperasi", email=email, role=UserRole.ADMIN_DINAS)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_cooperatives(db, count: int):
    cooperatives = []
    for index, name in enumerate(COOPERATIVE_NAMES[:count], start=1):
        code = f"KOP{index:02d}"
        existing = db.query(Cooperative).filter(Cooperative.code == code).first()
        if existing:
            cooperatives.append(existing)
            continue
        members = random.randint(40, 900)
        cooperative = Cooperative(
            name=name,
            code=code,
            registration_number=f"{500 + index}/BH/XVI.{index}/{random.randint(1995, 2015)}",
            business_type=random.choice(list(BusinessType)),
            establishment_date=date(random.randint(1995, 2015), random.randint(1, 12), 1),
            total_members=members,
            active_members=int(members * random.uniform(0.7, 0.95)),
            total_assets=money(random.uniform(3e8, 6e9)),
        )
        db.add(cooperative)
        db.flush()
        db.add(User(
            name=f"Admin {name}",
            email=f"admin.{code.lower()}@koperasi.example.com",
            role=UserRole.ADMIN_KOPERASI,
            cooperative_id=cooperative.id,
        ))
        cooperatives.append(cooperative)
    db.commit()
    return cooperatives


def approved_report(cooperative, dinas_user, report_type, year):
    submitted = datetime(year + 1, 1, random.randint(2, 14), tzinfo=timezone.utc)
    return FinancialReport(
        cooperative_id=cooperative.id,
        report_type=report_type,
        reporting_year=year,
        reporting_period=ReportPeriod.ANNUAL,
        status=ReportStatus.APPROVED,
        submitted_at=submitted,
        approved_at=submitted + timedelta(days=random.randint(1, 10)),
        approved_by=dinas_user.id,
    )


def create_reports(db, cooperative, dinas_user, years):
    """Balance sheet and income statement per year; the equation always holds."""
    assets = float(cooperative.total_assets) * 0.7
    previous = None
    for year in years:
        exists = db.query(FinancialReport).filter(
            FinancialReport.cooperative_id == cooperative.id,
            FinancialReport.reporting_year == year,
            FinancialReport.report_type == ReportType.BALANCE_SHEET,
        ).first()
        if exists:
            continue

        assets *= random.uniform(1.02, 1.18)
        current_assets = money(assets * 0.6)
        fixed_assets = money(assets) - current_assets
        liabilities = money(assets * random.uniform(0.3, 0.6))
        equity = current_assets + fixed_assets - liabilities
        amounts = (current_assets, fixed_assets, liabilities, equity)
        prior = previous or (Decimal("0"),) * 4

        balance = approved_report(cooperative, dinas_user, ReportType.BALANCE_SHEET, year)
        for order, (code, name, category, subcategory) in enumerate([
            ("1100", "Kas dan Piutang", "asset", "current_asset"),
            ("1200", "Aset Tetap", "asset", "fixed_asset"),
            ("2100", "Hutang Jangka Pendek", "liability", "current_liability"),
            ("3100", "Simpanan Anggota", "equity", "member_equity"),
        ]):
            balance.balance_sheet_accounts.append(BalanceSheetAccount(
                account_code=code, account_name=name, account_category=category,
                account_subcategory=subcategory, current_year_amount=amounts[order],
                previous_year_amount=prior[order], sort_order=order + 1,
            ))

        revenue = money(assets * random.uniform(0.12, 0.25))
        expenses = money(float(revenue) * random.uniform(0.6, 0.92))
        income = approved_report(cooperative, dinas_user, ReportType.INCOME_STATEMENT, year)
        income.income_statement_accounts.extend([
            IncomeStatementAccount(
                account_code="4100", account_name="Pendapatan Usaha", account_category="revenue",
                current_year_amount=revenue, sort_order=1,
            ),
            IncomeStatementAccount(
                account_code="5100", account_name="Beban Operasional", account_category="expense",
                current_year_amount=expenses, sort_order=2,
            ),
        ])

        db.add_all([balance, income])
        db.commit()
        previous = amounts


def main():
    parser = argparse.ArgumentParser(description="Seed cooperative reporting demo data")
    parser.add_argument("--dinas-email", default="dinas@koperasi.example.com")
    parser.add_argument("--cooperatives", type=int, default=5, choices=range(1, len(COOPERATIVE_NAMES) + 1))
    parser.add_argument("--years", type=int, default=3)
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible data")
    args = parser.parse_args()

    random.seed(args.seed)
    last_year = date.today().year - 1
    years = list(range(last_year - args.years + 1, last_year + 1))

    db = SessionLocal()
    try:
        dinas_user = get_or_create_dinas_user(db, args.dinas_email)
        cooperatives = create_cooperatives(db, args.cooperatives)
        print(f"Cooperatives: {len(cooperatives)}")

        kpi_service = KPIService(db)
        for cooperative in cooperatives:
            create_reports(db, cooperative, dinas_user, years)
            for year in years:
                kpi_service.record_kpis(cooperative.id, year)
            print(f"  {cooperative.code} {cooperative.name}: reports and KPIs for {years[0]}-{years[-1]}")

        print("\nSeed completed.")
        print("Bearer tokens:")
        print(f"  admin_dinas    {dinas_user.email}: {create_access_token({'sub': str(dinas_user.id)})}")
        for user in db.query(User).filter(User.role == UserRole.ADMIN_KOPERASI).all():
            print(f"  admin_koperasi {user.email}: {create_access_token({'sub': str(user.id)})}")
        print("Oversight users pick a cooperative with the X-Cooperative-ID header.")
    finally:
        db.close()


if __name__ == "__main__":
    main()
