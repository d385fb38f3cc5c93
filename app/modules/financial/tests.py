"""
Tests para el módulo de Reportes Financieros

Cubre:
- Validaciones de los schemas por tipo de reporte
- Creación, edición, duplicado y eliminación de reportes
- Flujo de aprobación (submit / approve / reject) y notificaciones
- Validación de integridad y análisis de estados financieros
- Endpoints con scoping por cooperativa y exportación CSV
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from fastapi import HTTPException
from pydantic import ValidationError

from conftest import auth_headers, balance_sheet_lines, create_report, income_statement_lines
from app.modules.auth.schemas import AuthContext
from app.modules.financial.models import (
    BalanceSheetAccount, MemberSaving, NonPerformingReceivable, ReportPeriod, ReportStatus, ReportType, SHUDistribution
)
from app.modules.financial.schemas import (
    BalanceSheetCreate, CashFlowCreate, IncomeStatementCreate, RejectReportRequest
)
from app.modules.financial.services import (
    BalanceSheetService,
    CashFlowService,
    EquityChangesService,
    FinancialValidationService,
    MemberReportService,
    ReportGenerationService,
    ReportWorkflowService,
    YearOverYearComparisonService
)
from app.modules.financial.services.cash_flow import classify_pattern
from app.modules.financial.services.income_statement import find_unrealistic_changes
from app.modules.financial.utils.calculations import growth_rate, moving_average, percentile_rank
from app.modules.notifications.models import Notification


# ===== FIXTURES =====

@pytest.fixture
def balance_sheet_data():
    """Neraca balanceado: 1.000.000 = 400.000 + 600.000"""
    return {
        "report_type": "balance_sheet",
        "reporting_year": 2024,
        "accounts": {
            "assets": [
                {"account_code": "1100", "account_name": "Kas dan Bank",
                 "account_subcategory": "current_asset", "current_year_amount": "1000000"},
            ],
            "liabilities": [
                {"account_code": "2100", "account_name": "Hutang Jangka Pendek",
                 "account_subcategory": "current_liability", "current_year_amount": "400000"},
            ],
            "equity": [
                {"account_code": "3100", "account_name": "Simpanan Pokok",
                 "account_subcategory": "member_equity", "current_year_amount": "600000"},
            ],
        },
    }


@pytest.fixture
def income_statement_data():
    return {
        "report_type": "income_statement",
        "reporting_year": 2024,
        "accounts": [
            {"account_code": "4100", "account_name": "Pendapatan Jasa", "account_category": "revenue",
             "current_year_amount": "500000", "previous_year_amount": "450000"},
            {"account_code": "5100", "account_name": "Beban Operasional", "account_category": "expense",
             "current_year_amount": "300000", "previous_year_amount": "280000"},
        ],
    }


@pytest.fixture
def koperasi_context(koperasi_user, cooperative):
    return AuthContext(
        user_id=koperasi_user.id,
        user_name=koperasi_user.name,
        user_role="admin_koperasi",
        user_cooperative_id=cooperative.id,
        cooperative_id=cooperative.id,
    )


@pytest.fixture
def dinas_context(dinas_user):
    return AuthContext(user_id=dinas_user.id, user_name=dinas_user.name, user_role="admin_dinas")


def saving_line(beginning=0, deposits=0, withdrawals=0, interest=0, ending=None):
    if ending is None:
        ending = beginning + deposits - withdrawals + interest
    return ("member_savings", MemberSaving(
        member_id="A-001", member_name="Siti Aminah", savings_type="simpanan_wajib",
        beginning_balance=Decimal(str(beginning)), deposits=Decimal(str(deposits)),
        withdrawals=Decimal(str(withdrawals)), interest_earned=Decimal(str(interest)),
        ending_balance=Decimal(str(ending)),
    ))


def npl_line(loan_number="PB-001", original=10000000, outstanding=8000000, days=150,
             classification="diragukan", percentage=50):
    return ("npl_receivables", NonPerformingReceivable(
        member_id="A-001", member_name="Siti Aminah", loan_number=loan_number,
        original_loan_amount=Decimal(str(original)), outstanding_balance=Decimal(str(outstanding)),
        days_past_due=days, npl_classification=classification,
        provision_percentage=Decimal(str(percentage)),
        provision_amount=Decimal(str(outstanding)) * Decimal(str(percentage)) / Decimal("100"),
    ))


def shu_line(member_id="A-001", from_savings=600000, from_transactions=400000, tax=100000):
    total = from_savings + from_transactions
    return ("shu_distributions", SHUDistribution(
        member_id=member_id, member_name="Siti Aminah",
        shu_from_savings=Decimal(str(from_savings)), shu_from_transactions=Decimal(str(from_transactions)),
        total_shu_received=Decimal(str(total)), tax_deduction=Decimal(str(tax)),
        net_shu_received=Decimal(str(total - tax)),
    ))



# ===== SCHEMAS =====

class TestReportSchemas:
    """Validaciones de entrada por tipo de reporte"""

    def test_balanced_balance_sheet_is_accepted(self, balance_sheet_data):
        payload = BalanceSheetCreate(**balance_sheet_data)
        assert payload.accounts.assets[0].current_year_amount == Decimal("1000000")
        assert payload.reporting_period == ReportPeriod.ANNUAL

    def test_unbalanced_balance_sheet_is_rejected(self, balance_sheet_data):
        balance_sheet_data["accounts"]["equity"][0]["current_year_amount"] = "500000"
        with pytest.raises(ValidationError) as exc_info:
            BalanceSheetCreate(**balance_sheet_data)
        assert "Neraca tidak seimbang" in str(exc_info.value)

    def test_balance_sheet_within_tolerance_is_accepted(self, balance_sheet_data):
        balance_sheet_data["accounts"]["equity"][0]["current_year_amount"] = "600000.50"
        BalanceSheetCreate(**balance_sheet_data)

    def test_invalid_subcategory_is_rejected(self, balance_sheet_data):
        balance_sheet_data["accounts"]["assets"][0]["account_subcategory"] = "member_equity"
        with pytest.raises(ValidationError):
            BalanceSheetCreate(**balance_sheet_data)

    def test_duplicate_account_codes_are_rejected(self, balance_sheet_data):
        balance_sheet_data["accounts"]["equity"][0]["account_code"] = "1100"
        with pytest.raises(ValidationError) as exc_info:
            BalanceSheetCreate(**balance_sheet_data)
        assert "Kode akun duplikat" in str(exc_info.value)

    def test_income_statement_requires_revenue(self, income_statement_data):
        income_statement_data["accounts"] = income_statement_data["accounts"][1:]
        with pytest.raises(ValidationError) as exc_info:
            IncomeStatementCreate(**income_statement_data)
        assert "pendapatan" in str(exc_info.value)

    def test_reporting_year_before_minimum_is_rejected(self, income_statement_data):
        income_statement_data["reporting_year"] = 2015
        with pytest.raises(ValidationError):
            IncomeStatementCreate(**income_statement_data)

    def test_cash_flow_ending_balance_must_match(self):
        with pytest.raises(ValidationError):
            CashFlowCreate(
                report_type="cash_flow",
                reporting_year=2024,
                beginning_cash_balance="100000",
                ending_cash_balance="999999",
                activities=[
                    {"activity_category": "operating", "activity_description": "Penerimaan jasa pinjaman",
                     "current_year_amount": "50000"},
                ],
            )

    def test_reject_reason_needs_ten_characters(self):
        with pytest.raises(ValidationError):
            RejectReportRequest(reason="kurang")


# ===== CALCULATIONS =====

class TestCalculations:
    """Funciones numéricas compartidas"""

    def test_growth_rate(self):
        assert growth_rate(120, 100) == 20.0
        assert growth_rate(-50, -100) == 50.0

    def test_growth_rate_from_zero(self):
        assert growth_rate(10, 0) == 100.0
        assert growth_rate(0, 0) == 0.0

    def test_percentile_rank_counts_ties_as_half(self):
        assert percentile_rank([1, 2, 3, 4], 3) == 62.5

    def test_moving_average(self):
        assert moving_average([1, 2, 3, 4], window=3) == [2.0, 3.0]
        assert moving_average([1, 2], window=3) == []

    def test_cash_flow_patterns(self):
        assert classify_pattern(1000, -400, -200)["pattern"] == "mature"
        assert classify_pattern(1000, -400, 300)["pattern"] == "growth"
        assert classify_pattern(-1000, -400, 300)["pattern"] == "startup"
        distressed = classify_pattern(-1000, 400, -300)
        assert (distressed["pattern"], distressed["stage"]) == ("distressed", "decline")

    def test_zero_flows_are_mixed(self):
        for flows in [(1000, 0, 0), (1000, -400, 0), (0, -400, 300), (0, 0, 0)]:
            result = classify_pattern(*flows)
            assert (result["pattern"], result["stage"]) == ("mixed", "transitional")


# ===== REPORT GENERATION =====

class TestReportGenerationService:
    """Creación y mantenimiento de reportes"""

    def test_create_balance_sheet(self, db_session, cooperative, koperasi_user, balance_sheet_data):
        service = ReportGenerationService(db_session)
        report = service.create_report(cooperative.id, BalanceSheetCreate(**balance_sheet_data), koperasi_user.id)

        assert report.status == ReportStatus.DRAFT
        assert report.report_type == ReportType.BALANCE_SHEET
        assert len(report.balance_sheet_accounts) == 3
        assert report.data["total_assets"] == 1000000.0
        assert report.data["generated_by"] == str(koperasi_user.id)

    def test_create_duplicate_period_conflicts(self, db_session, cooperative, balance_sheet_data):
        service = ReportGenerationService(db_session)
        service.create_report(cooperative.id, BalanceSheetCreate(**balance_sheet_data))

        with pytest.raises(HTTPException) as exc_info:
            service.create_report(cooperative.id, BalanceSheetCreate(**balance_sheet_data))
        assert exc_info.value.status_code == 409

    def test_create_for_unknown_cooperative(self, db_session, balance_sheet_data):
        with pytest.raises(HTTPException) as exc_info:
            ReportGenerationService(db_session).create_report(uuid4(), BalanceSheetCreate(**balance_sheet_data))
        assert exc_info.value.status_code == 404

    def test_unrealistic_change_is_flagged(self, db_session, cooperative, income_statement_data):
        income_statement_data["accounts"][0]["previous_year_amount"] = "10000"
        with pytest.raises(HTTPException) as exc_info:
            ReportGenerationService(db_session).create_report(
                cooperative.id, IncomeStatementCreate(**income_statement_data)
            )
        assert exc_info.value.status_code == 422
        assert exc_info.value.detail["code"] == "unrealistic_change"

    def test_tenfold_limit_boundary(self, db_session, cooperative, income_statement_data):
        income_statement_data["accounts"][0].update(previous_year_amount="100", current_year_amount="1050")
        with pytest.raises(HTTPException) as exc_info:
            ReportGenerationService(db_session).create_report(
                cooperative.id, IncomeStatementCreate(**income_statement_data)
            )
        assert exc_info.value.status_code == 422
        assert exc_info.value.detail["code"] == "unrealistic_change"
        assert exc_info.value.detail["accounts"][0]["account_code"] == "4100"

    def test_exactly_tenfold_is_allowed(self):
        rows = [BalanceSheetAccount(
            account_code="1100", account_name="Kas", current_year_amount=Decimal("1000"),
            previous_year_amount=Decimal("100"),
        )]
        assert find_unrealistic_changes(rows) == []

    def test_unrealistic_balance_sheet_account_is_flagged(self, db_session, cooperative, balance_sheet_data):
        balance_sheet_data["accounts"]["assets"][0]["previous_year_amount"] = "90000"
        with pytest.raises(HTTPException) as exc_info:
            ReportGenerationService(db_session).create_report(cooperative.id, BalanceSheetCreate(**balance_sheet_data))
        assert exc_info.value.status_code == 422
        assert exc_info.value.detail["accounts"][0]["account_code"] == "1100"

    def test_update_cannot_change_type(self, db_session, cooperative, balance_sheet_data, income_statement_data):
        service = ReportGenerationService(db_session)
        report = service.create_report(cooperative.id, BalanceSheetCreate(**balance_sheet_data))

        with pytest.raises(HTTPException) as exc_info:
            service.update_report(report, IncomeStatementCreate(**income_statement_data))
        assert exc_info.value.status_code == 422

    def test_updating_rejected_report_returns_to_draft(self, db_session, cooperative, balance_sheet_data):
        service = ReportGenerationService(db_session)
        report = service.create_report(cooperative.id, BalanceSheetCreate(**balance_sheet_data))
        report.status = ReportStatus.REJECTED
        report.rejection_reason = "Akun kas belum direkonsiliasi"
        db_session.commit()

        balance_sheet_data["notes"] = "Sudah direkonsiliasi"
        report = service.update_report(report, BalanceSheetCreate(**balance_sheet_data))
        assert report.status == ReportStatus.DRAFT
        assert report.rejection_reason is None
        assert report.notes == "Sudah direkonsiliasi"

    def test_approved_report_cannot_be_edited_or_deleted(self, db_session, cooperative, balance_sheet_data):
        report = create_report(db_session, cooperative, lines=balance_sheet_lines(1000, 400, 600))
        service = ReportGenerationService(db_session)

        with pytest.raises(HTTPException) as exc_info:
            service.update_report(report, BalanceSheetCreate(**balance_sheet_data))
        assert exc_info.value.status_code == 400

        with pytest.raises(HTTPException) as exc_info:
            service.delete_report(report)
        assert exc_info.value.status_code == 400

    def test_delete_draft(self, db_session, cooperative):
        report = create_report(db_session, cooperative, status=ReportStatus.DRAFT)
        report_id = report.id
        service = ReportGenerationService(db_session)
        service.delete_report(report)

        with pytest.raises(HTTPException) as exc_info:
            service.get_report(report_id)
        assert exc_info.value.status_code == 404

    def test_duplicate_rolls_amounts_forward(self, db_session, cooperative):
        source = create_report(db_session, cooperative, year=2023, lines=balance_sheet_lines(1000, 400, 600))
        copy = ReportGenerationService(db_session).duplicate_report(source, 2024, ReportPeriod.ANNUAL)

        assert copy.status == ReportStatus.DRAFT
        assert copy.reporting_year == 2024
        assert copy.data["duplicated_from"] == str(source.id)
        cash = next(a for a in copy.balance_sheet_accounts if a.account_code == "1100")
        assert cash.previous_year_amount == Decimal("1000")
        assert cash.current_year_amount == Decimal("0")

    def test_consolidated_report_rejects_unsupported_type(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            ReportGenerationService(db_session).generate_consolidated_report(
                None, ReportType.MEMBER_SAVINGS, 2024, ReportPeriod.ANNUAL
            )
        assert exc_info.value.status_code == 400


# ===== WORKFLOW =====

class TestReportWorkflow:
    """Flujo draft -> submitted -> approved / rejected"""

    def test_submit_notifies_admin_dinas(self, db_session, cooperative, dinas_user, koperasi_context):
        report = create_report(
            db_session, cooperative, status=ReportStatus.DRAFT, lines=balance_sheet_lines(1000, 400, 600)
        )
        report = ReportWorkflowService(db_session).submit(report, koperasi_context)

        assert report.status == ReportStatus.SUBMITTED
        assert report.submitted_at is not None
        notifications = db_session.query(Notification).filter(Notification.user_id == dinas_user.id).all()
        assert len(notifications) == 1

    def test_submit_unbalanced_report_is_refused(self, db_session, cooperative, koperasi_context):
        report = create_report(
            db_session, cooperative, status=ReportStatus.DRAFT, lines=balance_sheet_lines(1000, 400, 500)
        )
        with pytest.raises(HTTPException) as exc_info:
            ReportWorkflowService(db_session).submit(report, koperasi_context)
        assert exc_info.value.status_code == 422
        assert exc_info.value.detail["errors"]

    def test_submit_twice_is_refused(self, db_session, cooperative, koperasi_context):
        report = create_report(db_session, cooperative, status=ReportStatus.SUBMITTED)
        with pytest.raises(HTTPException) as exc_info:
            ReportWorkflowService(db_session).submit(report, koperasi_context)
        assert exc_info.value.status_code == 400

    def test_only_admin_dinas_can_approve(self, db_session, cooperative, koperasi_context):
        report = create_report(db_session, cooperative, status=ReportStatus.SUBMITTED)
        with pytest.raises(HTTPException) as exc_info:
            ReportWorkflowService(db_session).approve(report, koperasi_context)
        assert exc_info.value.status_code == 403

    def test_approve(self, db_session, cooperative, dinas_context):
        report = create_report(db_session, cooperative, status=ReportStatus.SUBMITTED)
        report = ReportWorkflowService(db_session).approve(report, dinas_context)
        assert report.status == ReportStatus.APPROVED
        assert report.approved_by == dinas_context.user_id

    def test_reject_requires_reason(self, db_session, cooperative, dinas_context):
        report = create_report(db_session, cooperative, status=ReportStatus.SUBMITTED)
        with pytest.raises(HTTPException) as exc_info:
            ReportWorkflowService(db_session).reject(report, "   singkat  ", dinas_context)
        assert exc_info.value.status_code == 422

    def test_reject(self, db_session, cooperative, dinas_context):
        report = create_report(db_session, cooperative, status=ReportStatus.SUBMITTED)
        report = ReportWorkflowService(db_session).reject(
            report, "Saldo kas tidak sesuai dengan rekening koran", dinas_context
        )
        assert report.status == ReportStatus.REJECTED
        assert report.can_be_edited


# ===== VALIDATION AND ANALYSIS =====

class TestValidationAndAnalysis:
    """Integridad y análisis de reportes almacenados"""

    def test_integrity_of_balanced_report(self, db_session, cooperative):
        report = create_report(db_session, cooperative, lines=balance_sheet_lines(1000, 400, 600))
        result = FinancialValidationService(db_session).validate_report_integrity(report)
        assert result["is_valid"] is True
        assert result["summary"]["validation_status"] == "passed"

    def test_integrity_of_unbalanced_report(self, db_session, cooperative):
        report = create_report(db_session, cooperative, lines=balance_sheet_lines(1000, 400, 500))
        result = FinancialValidationService(db_session).validate_report_integrity(report)
        assert result["is_valid"] is False
        assert result["summary"]["validation_status"] == "failed"
        assert any("Neraca tidak seimbang" in error for error in result["errors"])

    def test_balance_sheet_ratios(self, db_session, cooperative):
        report = create_report(db_session, cooperative, lines=balance_sheet_lines(1000000, 400000, 600000))
        ratios = BalanceSheetService(db_session).calculate_ratios(report)
        assert ratios["current_ratio"] == 2.5
        assert ratios["debt_to_equity"] == 0.67
        assert ratios["equity_ratio"] == 0.6

    def test_balance_equation(self, db_session, cooperative):
        report = create_report(db_session, cooperative, lines=balance_sheet_lines(1000, 400, 600))
        result = BalanceSheetService(db_session).validate_balance_equation(report)
        assert result["is_balanced"] is True

    def test_default_account_structure(self):
        structure = BalanceSheetService.get_default_account_structure()
        assert set(structure) >= {"assets", "liabilities", "equity"}

    def test_cash_flow_forecast_needs_history(self, db_session, cooperative):
        with pytest.raises(HTTPException) as exc_info:
            CashFlowService(db_session).forecast(cooperative.id, 2025)
        assert exc_info.value.status_code == 422

    def test_equity_changes_without_report(self, db_session, cooperative):
        with pytest.raises(HTTPException) as exc_info:
            EquityChangesService(db_session).calculate_equity_changes(cooperative.id, 2024)
        assert exc_info.value.status_code == 404

    def test_compare_across_years(self, db_session, cooperative):
        create_report(db_session, cooperative, year=2023, lines=balance_sheet_lines(800, 300, 500))
        create_report(db_session, cooperative, year=2024, lines=balance_sheet_lines(1000, 400, 600))

        result = YearOverYearComparisonService(db_session).compare_across_years(
            cooperative.id, [2023, 2024], ReportType.BALANCE_SHEET
        )
        assert {"yearly_data", "trends", "growth_rates", "summary"} <= set(result)

    def test_compare_across_years_without_reports(self, db_session, cooperative):
        with pytest.raises(HTTPException) as exc_info:
            YearOverYearComparisonService(db_session).compare_across_years(
                cooperative.id, [2022, 2023], ReportType.BALANCE_SHEET
            )
        assert exc_info.value.status_code == 404

    def test_member_savings_analysis(self, db_session, cooperative):
        lines = [
            ("member_savings", MemberSaving(
                member_id=member_id, member_name=name, savings_type=savings_type,
                beginning_balance=Decimal("0"), deposits=Decimal(str(amount)), withdrawals=Decimal("0"),
                interest_earned=Decimal("0"), ending_balance=Decimal(str(amount)),
            ))
            for member_id, name, savings_type, amount in [
                ("A-001", "Siti Aminah", "simpanan_pokok", 100000),
                ("A-001", "Siti Aminah", "simpanan_wajib", 300000),
                ("A-002", "Budi Hartono", "simpanan_sukarela", 200000),
            ]
        ]
        report = create_report(db_session, cooperative, report_type=ReportType.MEMBER_SAVINGS, lines=lines)

        result = MemberReportService(db_session).analyze(report)
        assert result["total_members"] == 2
        assert result["total_savings"] == 600000.0
        assert result["average_per_member"] == 300000.0
        assert result["by_savings_type"]["simpanan_wajib"] == 300000.0
        assert result["top_savers"][0]["member_id"] == "A-001"

    def test_member_analysis_rejects_statement_types(self, db_session, cooperative):
        report = create_report(db_session, cooperative, lines=balance_sheet_lines(1000, 400, 600))
        with pytest.raises(HTTPException) as exc_info:
            MemberReportService(db_session).analyze(report)
        assert exc_info.value.status_code == 400

    def _integrity(self, db_session, cooperative, report_type, lines):
        report = create_report(db_session, cooperative, report_type=report_type, status=ReportStatus.DRAFT, lines=lines)
        return FinancialValidationService(db_session).validate_report_integrity(report)

    def test_savings_integrity_passes(self, db_session, cooperative):
        result = self._integrity(
            db_session, cooperative, ReportType.MEMBER_SAVINGS,
            [saving_line(beginning=500000, deposits=100000, withdrawals=50000, interest=5000)]
        )
        assert result["is_valid"] is True

    def test_savings_ending_balance_mismatch(self, db_session, cooperative):
        result = self._integrity(
            db_session, cooperative, ReportType.MEMBER_SAVINGS,
            [saving_line(beginning=500000, deposits=100000, ending=700000)]
        )
        assert any("Saldo akhir simpanan anggota A-001" in error for error in result["errors"])

    def test_savings_withdrawal_above_available(self, db_session, cooperative):
        result = self._integrity(
            db_session, cooperative, ReportType.MEMBER_SAVINGS,
            [saving_line(beginning=100000, deposits=50000, withdrawals=200000, interest=1000)]
        )
        assert result["errors"] == ["Penarikan anggota A-001 melebihi saldo yang tersedia"]

    def test_npl_integrity_passes(self, db_session, cooperative):
        result = self._integrity(db_session, cooperative, ReportType.NPL_RECEIVABLES, [npl_line()])
        assert result["is_valid"] is True

    def test_npl_below_91_days(self, db_session, cooperative):
        result = self._integrity(
            db_session, cooperative, ReportType.NPL_RECEIVABLES,
            [npl_line(days=90, classification="kurang_lancar", percentage=10)]
        )
        assert len(result["errors"]) == 1
        assert "minimal 91 hari" in result["errors"][0]

    def test_npl_outstanding_above_original(self, db_session, cooperative):
        result = self._integrity(
            db_session, cooperative, ReportType.NPL_RECEIVABLES, [npl_line(original=5000000, outstanding=8000000)]
        )
        assert result["errors"] == ["Sisa pinjaman PB-001 melebihi pokok pinjaman"]

    def test_npl_duplicate_loan_number(self, db_session, cooperative):
        result = self._integrity(db_session, cooperative, ReportType.NPL_RECEIVABLES, [npl_line(), npl_line()])
        assert result["errors"] == ["Nomor pinjaman duplikat: PB-001"]

    def test_npl_classification_mismatch(self, db_session, cooperative):
        result = self._integrity(
            db_session, cooperative, ReportType.NPL_RECEIVABLES,
            [npl_line(days=200, classification="diragukan", percentage=50)]
        )
        assert "Klasifikasi PB-001 seharusnya macet" in result["errors"]

    def test_shu_integrity_passes(self, db_session, cooperative):
        result = self._integrity(db_session, cooperative, ReportType.SHU_DISTRIBUTION, [shu_line()])
        assert result["is_valid"] is True

    def test_shu_tax_above_total(self, db_session, cooperative):
        result = self._integrity(
            db_session, cooperative, ReportType.SHU_DISTRIBUTION,
            [shu_line(from_savings=60000, from_transactions=40000, tax=150000)]
        )
        assert "Potongan pajak anggota A-001 melebihi total SHU" in result["errors"]
        assert not any("Tarif pajak" in error for error in result["errors"])

    def test_shu_tax_rate_above_25_percent(self, db_session, cooperative):
        result = self._integrity(
            db_session, cooperative, ReportType.SHU_DISTRIBUTION, [shu_line(tax=300000)]
        )
        assert result["errors"] == ["Tarif pajak SHU anggota A-001 melebihi 25%"]

    def test_shu_tax_rate_of_exactly_25_percent_is_allowed(self, db_session, cooperative):
        result = self._integrity(db_session, cooperative, ReportType.SHU_DISTRIBUTION, [shu_line(tax=250000)])
        assert result["is_valid"] is True

    def test_shu_duplicate_member(self, db_session, cooperative):
        result = self._integrity(
            db_session, cooperative, ReportType.SHU_DISTRIBUTION, [shu_line(), shu_line()]
        )
        assert result["errors"] == ["ID anggota duplikat: A-001"]


# ===== API =====

class TestReportsAPI:
    """Endpoints de reportes con scoping por cooperativa"""

    def test_create_report(self, client, koperasi_headers, cooperative, balance_sheet_data):
        response = client.post("/api/v1/financial/reports", json=balance_sheet_data, headers=koperasi_headers)
        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "draft"
        assert body["cooperative_id"] == str(cooperative.id)
        assert len(body["line_items"]) == 3

    def test_create_unbalanced_report(self, client, koperasi_headers, balance_sheet_data):
        balance_sheet_data["accounts"]["assets"][0]["current_year_amount"] = "1"
        response = client.post("/api/v1/financial/reports", json=balance_sheet_data, headers=koperasi_headers)
        assert response.status_code == 422

    def test_koperasi_cannot_target_other_cooperative(
        self, client, koperasi_headers, other_cooperative, balance_sheet_data
    ):
        balance_sheet_data["cooperative_id"] = str(other_cooperative.id)
        response = client.post("/api/v1/financial/reports", json=balance_sheet_data, headers=koperasi_headers)
        assert response.status_code == 403

    def test_dinas_must_select_cooperative(self, client, dinas_headers, balance_sheet_data):
        response = client.post("/api/v1/financial/reports", json=balance_sheet_data, headers=dinas_headers)
        assert response.status_code == 400

    def test_list_is_scoped_to_own_cooperative(
        self, client, db_session, koperasi_headers, cooperative, other_cooperative
    ):
        create_report(db_session, cooperative)
        create_report(db_session, other_cooperative)

        response = client.get("/api/v1/financial/reports", headers=koperasi_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["items"][0]["cooperative_id"] == str(cooperative.id)

    def test_cannot_read_other_cooperative_report(self, client, db_session, koperasi_headers, other_cooperative):
        report = create_report(db_session, other_cooperative)
        response = client.get(f"/api/v1/financial/reports/{report.id}", headers=koperasi_headers)
        assert response.status_code == 403

    def test_export_csv(self, client, db_session, dinas_headers, cooperative):
        report = create_report(db_session, cooperative, lines=balance_sheet_lines(1000, 400, 600))
        response = client.get(f"/api/v1/financial/reports/{report.id}?export=csv", headers=dinas_headers)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "Neraca_Koperasi_Sejahtera_2024.csv" in response.headers["content-disposition"]
        assert "Kas dan Bank" in response.text

    def test_koperasi_cannot_approve(self, client, db_session, koperasi_headers, cooperative):
        report = create_report(db_session, cooperative, status=ReportStatus.SUBMITTED)
        response = client.post(f"/api/v1/financial/reports/{report.id}/approve", headers=koperasi_headers)
        assert response.status_code == 403

    def test_duplicate_into_same_period(self, client, db_session, koperasi_headers, cooperative):
        report = create_report(db_session, cooperative)
        response = client.post(
            f"/api/v1/financial/reports/{report.id}/duplicate",
            json={"reporting_year": 2024, "reporting_period": "annual"},
            headers=koperasi_headers,
        )
        assert response.status_code == 400

    def test_unauthenticated_request(self, client):
        response = client.get("/api/v1/financial/reports")
        assert response.status_code in (401, 403)

    def test_balance_sheet_template(self, client, koperasi_headers):
        response = client.get("/api/v1/financial/templates/balance-sheet", headers=koperasi_headers)
        assert response.status_code == 200
        assert "assets" in response.json()

    def test_income_statement_analysis(self, client, db_session, koperasi_headers, cooperative):
        report = create_report(
            db_session, cooperative, report_type=ReportType.INCOME_STATEMENT,
            lines=income_statement_lines(500000, 300000)
        )
        response = client.get(
            f"/api/v1/financial/analysis/income-statement/{report.id}", headers=koperasi_headers
        )
        assert response.status_code == 200

    def test_dinas_header_selects_cooperative(self, client, dinas_user, cooperative, balance_sheet_data):
        headers = auth_headers(dinas_user, cooperative.id)
        response = client.post("/api/v1/financial/reports", json=balance_sheet_data, headers=headers)
        assert response.status_code == 201
        assert response.json()["cooperative_id"] == str(cooperative.id)
