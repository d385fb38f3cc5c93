"""
Modelos SQLAlchemy para el módulo de reportes financieros

Un FinancialReport es una cabecera (cooperativa, tipo, año, periodo, estado y
resumen JSON) con una tabla hija de partidas por tipo de reporte:

- balance_sheet      -> BalanceSheetAccount
- income_statement   -> IncomeStatementAccount
- cash_flow          -> CashFlowActivity
- equity_changes     -> EquityChange
- member_savings     -> MemberSaving
- member_receivables -> MemberReceivable
- npl_receivables    -> NonPerformingReceivable
- shu_distribution   -> SHUDistribution
- budget_plan        -> BudgetPlan
- notes_to_financial -> (secciones guardadas en data)

Ciclo de vida: draft -> submitted -> approved | rejected; un reporte rechazado
se puede editar y enviar de nuevo.
"""
from decimal import Decimal
from sqlalchemy import (
    Column, String, Boolean, Date, DateTime, Enum, ForeignKey, Integer,
    JSON, Numeric, Text, UniqueConstraint
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, declared_attr
from uuid import uuid4
import enum

from app.database.database import Base
from app.common.mixins import CooperativeMixin, TimestampMixin


# ===== ENUMS =====

class ReportType(enum.Enum):
    """Tipos de reporte financiero"""
    BALANCE_SHEET = "balance_sheet"
    INCOME_STATEMENT = "income_statement"
    EQUITY_CHANGES = "equity_changes"
    CASH_FLOW = "cash_flow"
    MEMBER_SAVINGS = "member_savings"
    MEMBER_RECEIVABLES = "member_receivables"
    NPL_RECEIVABLES = "npl_receivables"
    SHU_DISTRIBUTION = "shu_distribution"
    BUDGET_PLAN = "budget_plan"
    NOTES_TO_FINANCIAL = "notes_to_financial"


class ReportStatus(enum.Enum):
    """Estados del flujo de revisión"""
    DRAFT = "draft"            # Editable by the cooperative
    SUBMITTED = "submitted"    # Waiting for admin_dinas review
    APPROVED = "approved"      # Final
    REJECTED = "rejected"      # Back to the cooperative, editable


class ReportPeriod(enum.Enum):
    Q1 = "Q1"
    Q2 = "Q2"
    Q3 = "Q3"
    Q4 = "Q4"
    ANNUAL = "annual"


REPORT_TYPE_LABELS = {
    "balance_sheet": "Laporan Posisi Keuangan",
    "income_statement": "Laporan Perhitungan Hasil Usaha",
    "equity_changes": "Laporan Perubahan Ekuitas",
    "cash_flow": "Laporan Arus Kas",
    "member_savings": "Daftar Simpanan Anggota",
    "member_receivables": "Daftar Piutang Simpan Pinjam Anggota",
    "npl_receivables": "Daftar Piutang Tidak Lancar",
    "shu_distribution": "Daftar Rencana Pembagian SHU",
    "budget_plan": "Rencana Anggaran Pendapatan & Belanja",
    "notes_to_financial": "Catatan Atas Laporan Keuangan",
}

STATUS_LABELS = {
    "draft": "Draft",
    "submitted": "Diajukan",
    "approved": "Disetujui",
    "rejected": "Ditolak",
}

# Line item categories
BALANCE_SHEET_SUBCATEGORIES = {
    "asset": {"current_asset", "fixed_asset", "other_asset"},
    "liability": {"current_liability", "long_term_liability"},
    "equity": {"member_equity", "retained_earnings", "other_equity"},
}
INCOME_CATEGORIES = ("revenue", "expense", "other_income", "other_expense")
CASH_FLOW_CATEGORIES = ("operating", "investing", "financing")
EQUITY_COMPONENTS = (
    "simpanan_pokok", "simpanan_wajib", "simpanan_sukarela",
    "cadangan", "shu_belum_dibagi", "laba_ditahan",
)
MEMBER_EQUITY_COMPONENTS = ("simpanan_pokok", "simpanan_wajib", "simpanan_sukarela")
RETAINED_EARNINGS_COMPONENTS = ("cadangan", "shu_belum_dibagi", "laba_ditahan")
SAVINGS_TYPES = ("simpanan_pokok", "simpanan_wajib", "simpanan_sukarela")
LOAN_TYPES = ("kredit_konsumsi", "kredit_produktif", "kredit_modal_kerja", "kredit_investasi")
PAYMENT_STATUSES = ("current", "past_due_30", "past_due_60", "past_due_90", "past_due_over_90")
NPL_CLASSIFICATIONS = ("kurang_lancar", "diragukan", "macet")
BUDGET_CATEGORIES = ("revenue", "expense", "investment", "financing")

# Minimum provision (%) per NPL classification
NPL_MIN_PROVISION = {
    "kurang_lancar": Decimal("10"),
    "diragukan": Decimal("50"),
    "macet": Decimal("100"),
}

DAYS_OVERDUE_BY_STATUS = {
    "current": 0,
    "past_due_30": 30,
    "past_due_60": 60,
    "past_due_90": 90,
    "past_due_over_90": 91,
}


def classify_npl(days_past_due: int) -> str:
    """Clase de colectibilidad de un préstamo con más de 90 días de mora."""
    if days_past_due <= 120:
        return "kurang_lancar"
    if days_past_due <= 180:
        return "diragukan"
    return "macet"


# ===== HEADER =====

class FinancialReport(Base, CooperativeMixin, TimestampMixin):
    __tablename__ = "financial_reports"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    report_type = Column(Enum(ReportType), nullable=False, index=True)
    reporting_year = Column(Integer, nullable=False, index=True)
    reporting_period = Column(Enum(ReportPeriod), nullable=False, default=ReportPeriod.ANNUAL)
    status = Column(Enum(ReportStatus), nullable=False, default=ReportStatus.DRAFT, index=True)
    data = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    cooperative = relationship("Cooperative", back_populates="financial_reports")
    creator = relationship("User", foreign_keys=[created_by])
    approver = relationship("User", foreign_keys=[approved_by])

    balance_sheet_accounts = relationship(
        "BalanceSheetAccount", back_populates="report", cascade="all, delete-orphan",
        order_by="BalanceSheetAccount.sort_order"
    )
    income_statement_accounts = relationship(
        "IncomeStatementAccount", back_populates="report", cascade="all, delete-orphan",
        order_by="IncomeStatementAccount.sort_order"
    )
    cash_flow_activities = relationship(
        "CashFlowActivity", back_populates="report", cascade="all, delete-orphan",
        order_by="CashFlowActivity.sort_order"
    )
    equity_changes = relationship(
        "EquityChange", back_populates="report", cascade="all, delete-orphan",
        order_by="EquityChange.sort_order"
    )
    member_savings = relationship("MemberSaving", back_populates="report", cascade="all, delete-orphan")
    member_receivables = relationship("MemberReceivable", back_populates="report", cascade="all, delete-orphan")
    npl_receivables = relationship("NonPerformingReceivable", back_populates="report", cascade="all, delete-orphan")
    shu_distributions = relationship("SHUDistribution", back_populates="report", cascade="all, delete-orphan")
    budget_plans = relationship(
        "BudgetPlan", back_populates="report", cascade="all, delete-orphan",
        order_by="BudgetPlan.sort_order"
    )

    __table_args__ = (
        UniqueConstraint(
            "cooperative_id", "report_type", "reporting_year", "reporting_period",
            name="uq_financial_report_period"
        ),
    )

    @property
    def can_be_edited(self) -> bool:
        return self.status in (ReportStatus.DRAFT, ReportStatus.REJECTED)

    @property
    def can_be_submitted(self) -> bool:
        return self.status in (ReportStatus.DRAFT, ReportStatus.REJECTED)

    @property
    def can_be_approved(self) -> bool:
        return self.status == ReportStatus.SUBMITTED

    @property
    def can_be_rejected(self) -> bool:
        return self.status == ReportStatus.SUBMITTED

    @property
    def report_type_label(self) -> str:
        return REPORT_TYPE_LABELS.get(self.report_type.value, self.report_type.value)

    @property
    def status_label(self) -> str:
        return STATUS_LABELS.get(self.status.value, self.status.value)

    @property
    def cooperative_name(self):
        return self.cooperative.name if self.cooperative else None

    @property
    def line_items(self) -> list:
        attribute = LINE_ITEM_ATTRIBUTES.get(self.report_type)
        return list(getattr(self, attribute)) if attribute else []


# ===== LINE ITEMS =====

class ReportLineMixin(TimestampMixin):
    """Columnas comunes de las partidas de un reporte"""

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    note_reference = Column(String(5), nullable=True)

    @declared_attr
    def financial_report_id(cls):
        return Column(
            UUID(as_uuid=True),
            ForeignKey("financial_reports.id", ondelete="CASCADE"),
            nullable=False,
            index=True
        )


class AmountComparisonMixin:
    """Comparación entre el año actual y el anterior"""

    @property
    def variance(self) -> Decimal:
        return Decimal(self.current_year_amount or 0) - Decimal(self.previous_year_amount or 0)

    @property
    def variance_percentage(self) -> float:
        previous = Decimal(self.previous_year_amount or 0)
        current = Decimal(self.current_year_amount or 0)
        if previous == 0:
            return 100.0 if current > 0 else 0.0
        return round(float((current - previous) / abs(previous) * 100), 2)


class BalanceSheetAccount(Base, ReportLineMixin, AmountComparisonMixin):
    __tablename__ = "balance_sheet_accounts"

    account_code = Column(String(20), nullable=False)
    account_name = Column(String(255), nullable=False)
    account_category = Column(String(20), nullable=False, index=True)  # asset, liability, equity
    account_subcategory = Column(String(50), nullable=True)
    current_year_amount = Column(Numeric(18, 2), nullable=False, default=0)
    previous_year_amount = Column(Numeric(18, 2), nullable=False, default=0)
    parent_account_code = Column(String(20), nullable=True)
    is_subtotal = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=0)

    report = relationship("FinancialReport", back_populates="balance_sheet_accounts")


class IncomeStatementAccount(Base, ReportLineMixin, AmountComparisonMixin):
    __tablename__ = "income_statement_accounts"

    account_code = Column(String(20), nullable=False)
    account_name = Column(String(255), nullable=False)
    account_category = Column(String(20), nullable=False, index=True)  # revenue, expense, other_income, other_expense
    account_subcategory = Column(String(50), nullable=True)
    current_year_amount = Column(Numeric(18, 2), nullable=False, default=0)
    previous_year_amount = Column(Numeric(18, 2), nullable=False, default=0)
    parent_account_code = Column(String(20), nullable=True)
    is_subtotal = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=0)

    report = relationship("FinancialReport", back_populates="income_statement_accounts")


class CashFlowActivity(Base, ReportLineMixin, AmountComparisonMixin):
    __tablename__ = "cash_flow_activities"

    activity_category = Column(String(20), nullable=False, index=True)  # operating, investing, financing
    activity_description = Column(String(255), nullable=False)
    current_year_amount = Column(Numeric(18, 2), nullable=False, default=0)
    previous_year_amount = Column(Numeric(18, 2), nullable=False, default=0)
    is_subtotal = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=0)

    report = relationship("FinancialReport", back_populates="cash_flow_activities")


class EquityChange(Base, ReportLineMixin):
    __tablename__ = "equity_changes"

    equity_component = Column(String(30), nullable=False)
    beginning_balance = Column(Numeric(18, 2), nullable=False, default=0)
    additions = Column(Numeric(18, 2), nullable=False, default=0)
    reductions = Column(Numeric(18, 2), nullable=False, default=0)
    ending_balance = Column(Numeric(18, 2), nullable=False, default=0)
    sort_order = Column(Integer, nullable=False, default=0)

    report = relationship("FinancialReport", back_populates="equity_changes")

    @property
    def expected_ending_balance(self) -> Decimal:
        return Decimal(self.beginning_balance or 0) + Decimal(self.additions or 0) - Decimal(self.reductions or 0)


class MemberSaving(Base, ReportLineMixin):
    __tablename__ = "member_savings"

    member_id = Column(String(50), nullable=False, index=True)
    member_name = Column(String(255), nullable=False)
    savings_type = Column(String(30), nullable=False)
    beginning_balance = Column(Numeric(18, 2), nullable=False, default=0)
    deposits = Column(Numeric(18, 2), nullable=False, default=0)
    withdrawals = Column(Numeric(18, 2), nullable=False, default=0)
    interest_earned = Column(Numeric(18, 2), nullable=False, default=0)
    ending_balance = Column(Numeric(18, 2), nullable=False, default=0)

    report = relationship("FinancialReport", back_populates="member_savings")

    @property
    def expected_ending_balance(self) -> Decimal:
        return (
            Decimal(self.beginning_balance or 0) + Decimal(self.deposits or 0)
            - Decimal(self.withdrawals or 0) + Decimal(self.interest_earned or 0)
        )


class MemberReceivable(Base, ReportLineMixin):
    __tablename__ = "member_receivables"

    member_id = Column(String(50), nullable=False, index=True)
    member_name = Column(String(255), nullable=False)
    loan_type = Column(String(30), nullable=False)
    loan_number = Column(String(50), nullable=False)
    loan_amount = Column(Numeric(18, 2), nullable=False, default=0)
    outstanding_balance = Column(Numeric(18, 2), nullable=False, default=0)
    loan_term_months = Column(Integer, nullable=False, default=12)
    disbursement_date = Column(Date, nullable=False)
    maturity_date = Column(Date, nullable=False)
    payment_status = Column(String(30), nullable=False, default="current", index=True)
    collateral_type = Column(String(100), nullable=True)
    collateral_value = Column(Numeric(18, 2), nullable=True)

    report = relationship("FinancialReport", back_populates="member_receivables")

    @property
    def days_overdue(self) -> int:
        return DAYS_OVERDUE_BY_STATUS.get(self.payment_status, 0)


class NonPerformingReceivable(Base, ReportLineMixin):
    __tablename__ = "non_performing_receivables"

    member_id = Column(String(50), nullable=False, index=True)
    member_name = Column(String(255), nullable=False)
    loan_number = Column(String(50), nullable=False)
    original_loan_amount = Column(Numeric(18, 2), nullable=False, default=0)
    outstanding_balance = Column(Numeric(18, 2), nullable=False, default=0)
    days_past_due = Column(Integer, nullable=False)
    npl_classification = Column(String(20), nullable=False, index=True)
    provision_percentage = Column(Numeric(5, 2), nullable=False, default=0)
    provision_amount = Column(Numeric(18, 2), nullable=False, default=0)
    collateral_type = Column(String(100), nullable=True)
    collateral_value = Column(Numeric(18, 2), nullable=True)
    recovery_efforts = Column(Text, nullable=True)
    last_payment_date = Column(Date, nullable=True)
    restructuring_status = Column(String(20), nullable=False, default="none")
    write_off_status = Column(String(20), nullable=False, default="none")

    report = relationship("FinancialReport", back_populates="npl_receivables")

    @property
    def expected_provision_amount(self) -> Decimal:
        return Decimal(self.outstanding_balance or 0) * Decimal(self.provision_percentage or 0) / Decimal("100")


class SHUDistribution(Base, ReportLineMixin):
    __tablename__ = "shu_distributions"

    member_id = Column(String(50), nullable=False, index=True)
    member_name = Column(String(255), nullable=False)
    member_type = Column(String(20), nullable=False, default="active")
    savings_contribution = Column(Numeric(18, 2), nullable=False, default=0)
    transaction_contribution = Column(Numeric(18, 2), nullable=False, default=0)
    shu_from_savings = Column(Numeric(18, 2), nullable=False, default=0)
    shu_from_transactions = Column(Numeric(18, 2), nullable=False, default=0)
    total_shu_received = Column(Numeric(18, 2), nullable=False, default=0)
    tax_deduction = Column(Numeric(18, 2), nullable=False, default=0)
    net_shu_received = Column(Numeric(18, 2), nullable=False, default=0)
    payment_method = Column(String(20), nullable=False, default="transfer")
    payment_status = Column(String(20), nullable=False, default="pending")

    report = relationship("FinancialReport", back_populates="shu_distributions")


class BudgetPlan(Base, ReportLineMixin):
    __tablename__ = "budget_plans"

    budget_category = Column(String(20), nullable=False, index=True)
    budget_subcategory = Column(String(100), nullable=True)
    budget_item = Column(String(255), nullable=False)
    budget_description = Column(Text, nullable=True)
    planned_amount = Column(Numeric(18, 2), nullable=False, default=0)
    previous_year_actual = Column(Numeric(18, 2), nullable=False, default=0)
    variance_percentage = Column(Numeric(9, 2), nullable=True)
    priority_level = Column(String(10), nullable=False, default="medium")
    responsible_department = Column(String(100), nullable=True)
    approval_required = Column(Boolean, nullable=False, default=False)
    quarter_1_allocation = Column(Numeric(5, 2), nullable=True)
    quarter_2_allocation = Column(Numeric(5, 2), nullable=True)
    quarter_3_allocation = Column(Numeric(5, 2), nullable=True)
    quarter_4_allocation = Column(Numeric(5, 2), nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)

    report = relationship("FinancialReport", back_populates="budget_plans")

    @property
    def calculated_variance(self) -> float:
        previous = Decimal(self.previous_year_actual or 0)
        if previous <= 0:
            return 0.0
        return round(float((Decimal(self.planned_amount or 0) - previous) / previous * 100), 2)

    @property
    def variance_class(self) -> str:
        variance = self.calculated_variance
        if self.budget_category == "expense":
            if variance <= 0:
                return "favorable"
            if variance <= 10:
                return "moderate"
            return "unfavorable"
        if variance >= 0:
            return "favorable"
        if variance >= -10:
            return "moderate"
        return "unfavorable"


LINE_ITEM_ATTRIBUTES = {
    ReportType.BALANCE_SHEET: "balance_sheet_accounts",
    ReportType.INCOME_STATEMENT: "income_statement_accounts",
    ReportType.CASH_FLOW: "cash_flow_activities",
    ReportType.EQUITY_CHANGES: "equity_changes",
    ReportType.MEMBER_SAVINGS: "member_savings",
    ReportType.MEMBER_RECEIVABLES: "member_receivables",
    ReportType.NPL_RECEIVABLES: "npl_receivables",
    ReportType.SHU_DISTRIBUTION: "shu_distributions",
    ReportType.BUDGET_PLAN: "budget_plans",
}

LINE_ITEM_MODELS = {
    ReportType.BALANCE_SHEET: BalanceSheetAccount,
    ReportType.INCOME_STATEMENT: IncomeStatementAccount,
    ReportType.CASH_FLOW: CashFlowActivity,
    ReportType.EQUITY_CHANGES: EquityChange,
    ReportType.MEMBER_SAVINGS: MemberSaving,
    ReportType.MEMBER_RECEIVABLES: MemberReceivable,
    ReportType.NPL_RECEIVABLES: NonPerformingReceivable,
    ReportType.SHU_DISTRIBUTION: SHUDistribution,
    ReportType.BUDGET_PLAN: BudgetPlan,
}
