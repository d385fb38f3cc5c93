"""
Pydantic schemas for the financial reports module

Request schemas carry the per-type validation rules: field constraints,
row arithmetic (field and model validators) and report-level checks such as
the balance equation. Violations raise ValueError and surface as 422.

Messages are in Indonesian, the language of the reporting users.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from app.common.validators import format_rupiah, validate_note_reference
from app.core.config import settings
from app.modules.financial.models import (
    BALANCE_SHEET_SUBCATEGORIES, NPL_MIN_PROVISION, ReportPeriod, ReportStatus, ReportType,
    classify_npl
)

ONE = Decimal("1")
SHU_TOTAL_TOLERANCE = Decimal("10")
MAX_SHU_TAX_RATE = Decimal("0.25")
COLLATERAL_REQUIRED_ABOVE = Decimal("50000000")
COLLATERAL_REQUIRED_LOAN_TYPES = ("kredit_produktif", "kredit_investasi")


def _check_note_reference(v):
    if v is None or v == "":
        return None
    if not validate_note_reference(v):
        raise ValueError("Referensi catatan maksimal 5 karakter alfanumerik")
    return v


def _find_duplicates(values: List[Any]) -> List[Any]:
    seen, duplicates = set(), []
    for value in values:
        if value in seen and value not in duplicates:
            duplicates.append(value)
        seen.add(value)
    return duplicates


# ===== COMMON =====

class ReportRequestBase(BaseModel):
    """Header fields shared by every report type"""
    cooperative_id: Optional[UUID] = Field(None, description="Required for admin_dinas without X-Cooperative-ID")
    reporting_year: int
    reporting_period: ReportPeriod = ReportPeriod.ANNUAL
    notes: Optional[str] = Field(None, max_length=5000)

    @field_validator("reporting_year")
    @classmethod
    def validate_reporting_year(cls, v):
        max_year = date.today().year + 1
        if v < settings.MIN_REPORTING_YEAR or v > max_year:
            raise ValueError(f"Tahun pelaporan harus antara {settings.MIN_REPORTING_YEAR} dan {max_year}")
        return v


class LineItemBase(BaseModel):
    note_reference: Optional[str] = Field(None, max_length=5)

    @field_validator("note_reference")
    @classmethod
    def validate_note_reference(cls, v):
        return _check_note_reference(v)


# ===== BALANCE SHEET =====

class BalanceSheetAccountIn(LineItemBase):
    account_code: str = Field(..., min_length=1, max_length=20)
    account_name: str = Field(..., min_length=1, max_length=255)
    account_subcategory: Optional[str] = Field(None, max_length=50)
    current_year_amount: Decimal
    previous_year_amount: Decimal = Decimal("0")
    parent_account_code: Optional[str] = Field(None, max_length=20)
    is_subtotal: bool = False
    sort_order: int = Field(0, ge=0, le=999)


class BalanceSheetAccountsIn(BaseModel):
    assets: List[BalanceSheetAccountIn] = Field(..., min_length=1)
    liabilities: List[BalanceSheetAccountIn] = Field(..., min_length=1)
    equity: List[BalanceSheetAccountIn] = Field(..., min_length=1)


class BalanceSheetCreate(ReportRequestBase):
    report_type: Literal["balance_sheet"]
    accounts: BalanceSheetAccountsIn

    @model_validator(mode="after")
    def validate_balance_sheet(self):
        groups = {
            "asset": self.accounts.assets,
            "liability": self.accounts.liabilities,
            "equity": self.accounts.equity,
        }

        for category, rows in groups.items():
            allowed = BALANCE_SHEET_SUBCATEGORIES[category]
            for row in rows:
                if row.account_subcategory and row.account_subcategory not in allowed:
                    raise ValueError(
                        f"Subkategori '{row.account_subcategory}' tidak valid untuk akun {row.account_code}"
                    )

        codes = [row.account_code for rows in groups.values() for row in rows]
        duplicates = _find_duplicates(codes)
        if duplicates:
            raise ValueError(f"Kode akun duplikat: {', '.join(duplicates)}")

        def total(rows):
            return sum((row.current_year_amount for row in rows if not row.is_subtotal), Decimal("0"))

        total_assets = total(self.accounts.assets)
        total_liabilities_equity = total(self.accounts.liabilities) + total(self.accounts.equity)
        if abs(total_assets - total_liabilities_equity) > Decimal(str(settings.BALANCE_TOLERANCE)):
            raise ValueError(
                f"Neraca tidak seimbang. Total Aset: {format_rupiah(total_assets)}, "
                f"Total Kewajiban + Ekuitas: {format_rupiah(total_liabilities_equity)}"
            )
        return self


# ===== INCOME STATEMENT =====

class IncomeStatementAccountIn(LineItemBase):
    account_code: str = Field(..., min_length=1, max_length=20)
    account_name: str = Field(..., min_length=1, max_length=255)
    account_category: Literal["revenue", "expense", "other_income", "other_expense"]
    account_subcategory: Optional[str] = Field(None, max_length=50)
    current_year_amount: Decimal
    previous_year_amount: Decimal = Decimal("0")
    parent_account_code: Optional[str] = Field(None, max_length=20)
    is_subtotal: bool = False
    sort_order: int = Field(0, ge=0, le=999)


class IncomeStatementCreate(ReportRequestBase):
    report_type: Literal["income_statement"]
    accounts: List[IncomeStatementAccountIn] = Field(..., min_length=1)

    @model_validator(mode="after")
    def validate_income_statement(self):
        codes = [row.account_code for row in self.accounts]
        duplicates = _find_duplicates(codes)
        if duplicates:
            raise ValueError(f"Kode akun duplikat: {', '.join(duplicates)}")

        for row in self.accounts:
            if row.parent_account_code:
                if row.parent_account_code == row.account_code:
                    raise ValueError(f"Akun {row.account_code} tidak boleh menjadi induk dirinya sendiri")
                if row.parent_account_code not in codes:
                    raise ValueError(
                        f"Kode akun induk {row.parent_account_code} untuk akun {row.account_code} tidak ditemukan"
                    )

        if not any(row.account_category == "revenue" for row in self.accounts):
            raise ValueError("Laporan laba rugi harus memiliki minimal satu akun pendapatan")
        return self


# ===== CASH FLOW =====

class CashFlowActivityIn(LineItemBase):
    activity_category: Literal["operating", "investing", "financing"]
    activity_description: str = Field(..., min_length=1, max_length=255)
    current_year_amount: Decimal
    previous_year_amount: Decimal = Decimal("0")
    is_subtotal: bool = False
    sort_order: int = Field(0, ge=0, le=999)


class CashFlowCreate(ReportRequestBase):
    report_type: Literal["cash_flow"]
    activities: List[CashFlowActivityIn] = Field(..., min_length=1)
    beginning_cash_balance: Decimal
    ending_cash_balance: Decimal

    @model_validator(mode="after")
    def validate_cash_flow(self):
        if not any(row.activity_category == "operating" for row in self.activities):
            raise ValueError("Laporan arus kas harus memiliki minimal satu aktivitas operasi")

        net_cash_flow = sum(
            (row.current_year_amount for row in self.activities if not row.is_subtotal), Decimal("0")
        )
        expected = self.beginning_cash_balance + net_cash_flow
        if abs(self.ending_cash_balance - expected) > ONE:
            raise ValueError(
                f"Saldo kas akhir tidak sesuai. Seharusnya: {format_rupiah(expected)}, "
                f"Tercatat: {format_rupiah(self.ending_cash_balance)}"
            )
        return self


# ===== EQUITY CHANGES =====

class EquityChangeIn(LineItemBase):
    equity_component: Literal[
        "simpanan_pokok", "simpanan_wajib", "simpanan_sukarela",
        "cadangan", "shu_belum_dibagi", "laba_ditahan"
    ]
    beginning_balance: Decimal = Field(..., ge=0)
    additions: Decimal = Field(Decimal("0"), ge=0)
    reductions: Decimal = Field(Decimal("0"), ge=0)
    ending_balance: Decimal = Field(..., ge=0)
    sort_order: int = Field(0, ge=0, le=999)

    @model_validator(mode="after")
    def validate_ending_balance(self):
        expected = self.beginning_balance + self.additions - self.reductions
        if abs(self.ending_balance - expected) > ONE:
            raise ValueError(
                f"Saldo akhir {self.equity_component} tidak sesuai. Seharusnya: {format_rupiah(expected)}"
            )
        return self


class EquityChangesCreate(ReportRequestBase):
    report_type: Literal["equity_changes"]
    equity_changes: List[EquityChangeIn] = Field(..., min_length=1)

    @model_validator(mode="after")
    def validate_components(self):
        duplicates = _find_duplicates([row.equity_component for row in self.equity_changes])
        if duplicates:
            raise ValueError(f"Komponen ekuitas duplikat: {', '.join(duplicates)}")
        return self


# ===== MEMBER SAVINGS =====

class MemberSavingIn(LineItemBase):
    member_id: str = Field(..., min_length=1, max_length=50)
    member_name: str = Field(..., min_length=1, max_length=255)
    savings_type: Literal["simpanan_pokok", "simpanan_wajib", "simpanan_sukarela"]
    beginning_balance: Decimal = Field(..., ge=0)
    deposits: Decimal = Field(Decimal("0"), ge=0)
    withdrawals: Decimal = Field(Decimal("0"), ge=0)
    interest_earned: Decimal = Field(Decimal("0"), ge=0)
    ending_balance: Decimal = Field(..., ge=0)

    @model_validator(mode="after")
    def validate_balances(self):
        available = self.beginning_balance + self.deposits + self.interest_earned
        if self.withdrawals > available:
            raise ValueError(f"Penarikan anggota {self.member_id} melebihi saldo yang tersedia")

        expected = available - self.withdrawals
        if abs(self.ending_balance - expected) > ONE:
            raise ValueError(
                f"Saldo akhir simpanan anggota {self.member_id} tidak sesuai. "
                f"Seharusnya: {format_rupiah(expected)}"
            )
        return self


class MemberSavingsCreate(ReportRequestBase):
    report_type: Literal["member_savings"]
    member_savings: List[MemberSavingIn] = Field(..., min_length=1)

    @model_validator(mode="after")
    def validate_unique_members(self):
        keys = [(row.member_id, row.savings_type) for row in self.member_savings]
        duplicates = _find_duplicates(keys)
        if duplicates:
            labels = [f"{member_id}/{savings_type}" for member_id, savings_type in duplicates]
            raise ValueError(f"Data simpanan duplikat: {', '.join(labels)}")
        return self


# ===== MEMBER RECEIVABLES =====

class MemberReceivableIn(LineItemBase):
    member_id: str = Field(..., min_length=1, max_length=50)
    member_name: str = Field(..., min_length=1, max_length=255)
    loan_type: Literal["kredit_konsumsi", "kredit_produktif", "kredit_modal_kerja", "kredit_investasi"]
    loan_number: str = Field(..., min_length=1, max_length=50)
    loan_amount: Decimal = Field(..., gt=0)
    outstanding_balance: Decimal = Field(..., ge=0)
    loan_term_months: int = Field(..., ge=1, le=360)
    disbursement_date: date
    maturity_date: date
    payment_status: Literal["current", "past_due_30", "past_due_60", "past_due_90", "past_due_over_90"] = "current"
    collateral_type: Optional[str] = Field(None, max_length=100)
    collateral_value: Optional[Decimal] = Field(None, ge=0)

    @model_validator(mode="after")
    def validate_loan(self):
        if self.outstanding_balance > self.loan_amount:
            raise ValueError(f"Sisa pinjaman {self.loan_number} melebihi jumlah pinjaman")
        if self.disbursement_date > date.today():
            raise ValueError(f"Tanggal pencairan {self.loan_number} tidak boleh di masa depan")
        if self.maturity_date <= self.disbursement_date:
            raise ValueError(f"Tanggal jatuh tempo {self.loan_number} harus setelah tanggal pencairan")

        requires_collateral = (
            self.loan_amount > COLLATERAL_REQUIRED_ABOVE
            or self.loan_type in COLLATERAL_REQUIRED_LOAN_TYPES
        )
        if requires_collateral and (not self.collateral_type or not self.collateral_value):
            raise ValueError(f"Pinjaman {self.loan_number} wajib memiliki jaminan")
        return self


class MemberReceivablesCreate(ReportRequestBase):
    report_type: Literal["member_receivables"]
    receivables: List[MemberReceivableIn] = Field(..., min_length=1)

    @model_validator(mode="after")
    def validate_unique_loans(self):
        duplicates = _find_duplicates([row.loan_number for row in self.receivables])
        if duplicates:
            raise ValueError(f"Nomor pinjaman duplikat: {', '.join(duplicates)}")
        return self


# ===== NPL RECEIVABLES =====

class NPLReceivableIn(LineItemBase):
    member_id: str = Field(..., min_length=1, max_length=50)
    member_name: str = Field(..., min_length=1, max_length=255)
    loan_number: str = Field(..., min_length=1, max_length=50)
    original_loan_amount: Decimal = Field(..., gt=0)
    outstanding_balance: Decimal = Field(..., ge=0)
    days_past_due: int = Field(..., ge=91)
    npl_classification: Literal["kurang_lancar", "diragukan", "macet"]
    provision_percentage: Decimal = Field(..., ge=0, le=100)
    provision_amount: Decimal = Field(..., ge=0)
    collateral_type: Optional[str] = Field(None, max_length=100)
    collateral_value: Optional[Decimal] = Field(None, ge=0)
    recovery_efforts: Optional[str] = Field(None, max_length=2000)
    last_payment_date: Optional[date] = None
    restructuring_status: Literal["none", "rescheduling", "reconditioning", "restructuring"] = "none"
    write_off_status: Literal["none", "partial", "full"] = "none"

    @model_validator(mode="after")
    def validate_npl(self):
        if self.outstanding_balance > self.original_loan_amount:
            raise ValueError(f"Sisa pinjaman {self.loan_number} melebihi pokok pinjaman")

        expected_class = classify_npl(self.days_past_due)
        if self.npl_classification != expected_class:
            raise ValueError(
                f"Klasifikasi {self.loan_number} tidak sesuai dengan {self.days_past_due} hari tunggakan "
                f"(seharusnya {expected_class})"
            )

        min_provision = NPL_MIN_PROVISION[self.npl_classification]
        if self.provision_percentage < min_provision:
            raise ValueError(
                f"Persentase penyisihan {self.loan_number} minimal {min_provision}% untuk {self.npl_classification}"
            )

        expected_amount = self.outstanding_balance * self.provision_percentage / Decimal("100")
        if abs(self.provision_amount - expected_amount) > ONE:
            raise ValueError(
                f"Jumlah penyisihan {self.loan_number} tidak sesuai. Seharusnya: {format_rupiah(expected_amount)}"
            )
        return self


class NPLReceivablesCreate(ReportRequestBase):
    report_type: Literal["npl_receivables"]
    npl_receivables: List[NPLReceivableIn] = Field(..., min_length=1)

    @model_validator(mode="after")
    def validate_unique_loans(self):
        duplicates = _find_duplicates([row.loan_number for row in self.npl_receivables])
        if duplicates:
            raise ValueError(f"Nomor pinjaman duplikat: {', '.join(duplicates)}")
        return self


# ===== SHU DISTRIBUTION =====

class SHUDistributionIn(LineItemBase):
    member_id: str = Field(..., min_length=1, max_length=50)
    member_name: str = Field(..., min_length=1, max_length=255)
    member_type: Literal["active", "inactive", "new"] = "active"
    savings_contribution: Decimal = Field(Decimal("0"), ge=0)
    transaction_contribution: Decimal = Field(Decimal("0"), ge=0)
    shu_from_savings: Decimal = Field(Decimal("0"), ge=0)
    shu_from_transactions: Decimal = Field(Decimal("0"), ge=0)
    total_shu_received: Decimal = Field(..., ge=0)
    tax_deduction: Decimal = Field(Decimal("0"), ge=0)
    net_shu_received: Decimal = Field(..., ge=0)
    payment_method: Literal["cash", "transfer", "savings_account"] = "transfer"
    payment_status: Literal["pending", "paid", "cancelled"] = "pending"

    @model_validator(mode="after")
    def validate_shu(self):
        expected_total = self.shu_from_savings + self.shu_from_transactions
        if abs(self.total_shu_received - expected_total) > ONE:
            raise ValueError(
                f"Total SHU anggota {self.member_id} tidak sesuai. Seharusnya: {format_rupiah(expected_total)}"
            )
        if self.tax_deduction > self.total_shu_received:
            raise ValueError(f"Potongan pajak anggota {self.member_id} melebihi total SHU")
        if self.total_shu_received > 0 and self.tax_deduction / self.total_shu_received > MAX_SHU_TAX_RATE:
            raise ValueError(f"Tarif pajak SHU anggota {self.member_id} melebihi 25%")

        expected_net = self.total_shu_received - self.tax_deduction
        if abs(self.net_shu_received - expected_net) > ONE:
            raise ValueError(
                f"SHU bersih anggota {self.member_id} tidak sesuai. Seharusnya: {format_rupiah(expected_net)}"
            )
        return self


class SHUDistributionCreate(ReportRequestBase):
    report_type: Literal["shu_distribution"]
    total_shu: Decimal = Field(..., gt=0)
    distribution_date: Optional[date] = None
    shu_distributions: List[SHUDistributionIn] = Field(..., min_length=1)

    @model_validator(mode="after")
    def validate_distribution(self):
        if self.reporting_period != ReportPeriod.ANNUAL:
            raise ValueError("Pembagian SHU hanya untuk periode tahunan")

        duplicates = _find_duplicates([row.member_id for row in self.shu_distributions])
        if duplicates:
            raise ValueError(f"Anggota duplikat: {', '.join(duplicates)}")

        distributed = sum((row.total_shu_received for row in self.shu_distributions), Decimal("0"))
        if abs(distributed - self.total_shu) > SHU_TOTAL_TOLERANCE:
            raise ValueError(
                f"Total SHU yang dibagikan ({format_rupiah(distributed)}) tidak sama dengan "
                f"total SHU ({format_rupiah(self.total_shu)})"
            )
        return self


# ===== BUDGET PLAN =====

class BudgetPlanIn(LineItemBase):
    budget_category: Literal["revenue", "expense", "investment", "financing"]
    budget_subcategory: Optional[str] = Field(None, max_length=100)
    budget_item: str = Field(..., min_length=1, max_length=255)
    budget_description: Optional[str] = Field(None, max_length=1000)
    planned_amount: Decimal = Field(..., ge=0)
    previous_year_actual: Decimal = Field(Decimal("0"), ge=0)
    variance_percentage: Optional[Decimal] = None
    priority_level: Literal["high", "medium", "low"] = "medium"
    responsible_department: Optional[str] = Field(None, max_length=100)
    approval_required: bool = False
    quarter_1_allocation: Optional[Decimal] = Field(None, ge=0, le=100)
    quarter_2_allocation: Optional[Decimal] = Field(None, ge=0, le=100)
    quarter_3_allocation: Optional[Decimal] = Field(None, ge=0, le=100)
    quarter_4_allocation: Optional[Decimal] = Field(None, ge=0, le=100)
    sort_order: int = Field(0, ge=0, le=999)

    @model_validator(mode="after")
    def validate_budget_line(self):
        quarters = [
            self.quarter_1_allocation, self.quarter_2_allocation,
            self.quarter_3_allocation, self.quarter_4_allocation,
        ]
        if any(q is not None for q in quarters):
            allocated = sum((q or Decimal("0") for q in quarters), Decimal("0"))
            if abs(allocated - Decimal("100")) > Decimal("0.01"):
                raise ValueError(f"Alokasi kuartal untuk '{self.budget_item}' harus berjumlah 100%")

        if self.previous_year_actual > 0 and self.variance_percentage:
            expected = (self.planned_amount - self.previous_year_actual) / self.previous_year_actual * 100
            if abs(self.variance_percentage - expected) > Decimal("0.1"):
                raise ValueError(
                    f"Persentase varians '{self.budget_item}' tidak sesuai. Seharusnya: {expected:.2f}%"
                )
        return self


class BudgetPlanCreate(ReportRequestBase):
    report_type: Literal["budget_plan"]
    budget_type: Literal["operational", "capital", "strategic"] = "operational"
    budget_plans: List[BudgetPlanIn] = Field(..., min_length=1)

    @field_validator("reporting_year")
    @classmethod
    def validate_reporting_year(cls, v):
        current_year = date.today().year
        if v < current_year or v > current_year + 5:
            raise ValueError(f"Tahun anggaran harus antara {current_year} dan {current_year + 5}")
        return v


# ===== NOTES TO FINANCIAL STATEMENTS =====

class NoteSectionIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1, max_length=10000)
    note_reference: Optional[str] = Field(None, max_length=5)


class NotesToFinancialCreate(ReportRequestBase):
    report_type: Literal["notes_to_financial"]
    sections: List[NoteSectionIn] = Field(..., min_length=1)


FinancialReportPayload = Union[
    BalanceSheetCreate,
    IncomeStatementCreate,
    CashFlowCreate,
    EquityChangesCreate,
    MemberSavingsCreate,
    MemberReceivablesCreate,
    NPLReceivablesCreate,
    SHUDistributionCreate,
    BudgetPlanCreate,
    NotesToFinancialCreate,
]

FinancialReportCreate = Annotated[FinancialReportPayload, Field(discriminator="report_type")]


# ===== WORKFLOW REQUESTS =====

class DuplicateReportRequest(BaseModel):
    reporting_year: int = Field(..., ge=2020, le=2100)
    reporting_period: ReportPeriod = ReportPeriod.ANNUAL


class RejectReportRequest(BaseModel):
    reason: str = Field(..., min_length=10, max_length=1000)


# ===== RESPONSES =====

class FinancialReportOut(BaseModel):
    id: UUID
    cooperative_id: UUID
    cooperative_name: Optional[str] = None
    report_type: ReportType
    report_type_label: str
    reporting_year: int
    reporting_period: ReportPeriod
    status: ReportStatus
    status_label: str
    data: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_by: Optional[UUID] = None
    approved_by: Optional[UUID] = None
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class FinancialReportDetail(FinancialReportOut):
    line_items: List[Dict[str, Any]] = []
    warnings: List[str] = []


class FinancialReportList(BaseModel):
    items: List[FinancialReportOut]
    total: int
    page: int
    per_page: int


class ValidationSummary(BaseModel):
    total_errors: int
    total_warnings: int
    validation_status: str
    severity: str


class ValidationResult(BaseModel):
    is_valid: bool
    errors: List[str]
    warnings: List[str]
    summary: ValidationSummary


class ConsolidatedReportResponse(BaseModel):
    report_type: ReportType
    reporting_year: int
    reporting_period: ReportPeriod
    totals: Dict[str, float]
    accounts: List[Dict[str, Any]]
    summary: Dict[str, Any]
