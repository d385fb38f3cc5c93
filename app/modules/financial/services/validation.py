"""
Integrity checks on stored reports

Request schemas already reject malformed payloads; these checks run again on
the persisted rows before submission and add the warnings and cross-report
comparisons that cannot be decided from a single payload.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Tuple

from app.common.validators import format_rupiah
from app.modules.financial.models import FinancialReport, NPL_MIN_PROVISION, ReportType, classify_npl
from app.modules.financial.schemas import MAX_SHU_TAX_RATE
from app.modules.financial.services.base import BaseFinancialService
from app.modules.financial.services.balance_sheet import category_total
from app.modules.financial.services.cash_flow import activity_totals
from app.modules.financial.services.income_statement import income_totals
from app.modules.financial.utils.calculations import sum_amounts

logger = logging.getLogger(__name__)

ONE = Decimal("1")
RETAINED_EARNINGS_TOLERANCE = Decimal("1000000")
HIGH_EXPENSE_RATIO = Decimal("0.9")
BUDGET_EXPENSE_LIMIT = Decimal("1.2")
NPL_MIN_DAYS_PAST_DUE = 91

Issues = Tuple[List[str], List[str]]


def severity_of(errors: List[str], warnings: List[str]) -> str:
    if len(errors) > 5:
        return "critical"
    if errors:
        return "high"
    if len(warnings) > 10:
        return "medium"
    if warnings:
        return "low"
    return "none"


def _duplicates(values) -> List[str]:
    seen, duplicates = set(), []
    for value in values:
        if value in seen and value not in duplicates:
            duplicates.append(value)
        seen.add(value)
    return duplicates


class FinancialValidationService(BaseFinancialService):

    def validate_report_integrity(self, report: FinancialReport) -> Dict[str, Any]:
        checks = {
            ReportType.BALANCE_SHEET: self._check_balance_sheet,
            ReportType.INCOME_STATEMENT: self._check_income_statement,
            ReportType.CASH_FLOW: self._check_cash_flow,
            ReportType.EQUITY_CHANGES: self._check_equity_changes,
            ReportType.MEMBER_SAVINGS: self._check_member_savings,
            ReportType.MEMBER_RECEIVABLES: self._check_member_receivables,
            ReportType.NPL_RECEIVABLES: self._check_npl,
            ReportType.SHU_DISTRIBUTION: self._check_shu,
            ReportType.BUDGET_PLAN: self._check_budget,
            ReportType.NOTES_TO_FINANCIAL: self._check_notes,
        }
        errors, warnings = checks[report.report_type](report)

        cross_errors, cross_warnings = self.cross_report_checks(report)
        errors += cross_errors
        warnings += cross_warnings

        if errors:
            logger.info(f"Report {report.id} failed integrity validation with {len(errors)} errors")

        return {
            "is_valid": not errors,
            "errors": errors,
            "warnings": warnings,
            "summary": {
                "total_errors": len(errors),
                "total_warnings": len(warnings),
                "validation_status": "failed" if errors else "passed",
                "severity": severity_of(errors, warnings),
            },
        }

    # ===== PER TYPE =====

    def _check_balance_sheet(self, report: FinancialReport) -> Issues:
        errors, warnings = [], []
        accounts = list(report.balance_sheet_accounts)

        for category, label, is_error in (
            ("asset", "aset", True), ("liability", "kewajiban", False), ("equity", "ekuitas", True)
        ):
            if not any(a.account_category == category for a in accounts):
                message = f"Laporan posisi keuangan tidak memiliki akun {label}"
                (errors if is_error else warnings).append(message)

        assets = category_total(accounts, "asset")
        liabilities_equity = category_total(accounts, "liability") + category_total(accounts, "equity")
        if abs(assets - liabilities_equity) > ONE:
            errors.append(
                f"Neraca tidak seimbang. Total Aset: {format_rupiah(assets)}, "
                f"Total Kewajiban + Ekuitas: {format_rupiah(liabilities_equity)}"
            )

        for account in accounts:
            if account.account_category == "asset" and Decimal(account.current_year_amount or 0) < 0:
                warnings.append(f"Akun aset {account.account_code} ({account.account_name}) bernilai negatif")

        codes = [a.account_code for a in accounts]
        for code in _duplicates(codes):
            errors.append(f"Kode akun duplikat: {code}")
        for account in accounts:
            if account.parent_account_code and account.parent_account_code not in codes:
                errors.append(
                    f"Kode akun induk {account.parent_account_code} untuk akun {account.account_code} tidak ditemukan"
                )
        return errors, warnings

    def _check_income_statement(self, report: FinancialReport) -> Issues:
        errors, warnings = [], []
        accounts = list(report.income_statement_accounts)
        totals = income_totals(accounts)

        if not any(a.account_category == "revenue" for a in accounts):
            errors.append("Laporan laba rugi tidak memiliki akun pendapatan")
        elif totals["total_revenue"] <= 0:
            warnings.append("Total pendapatan bernilai nol atau negatif")

        if not any(a.account_category == "expense" for a in accounts):
            warnings.append("Laporan laba rugi tidak memiliki akun beban")
        elif totals["total_expenses"] <= 0:
            warnings.append("Total beban bernilai nol atau negatif")

        if totals["net_income"] < 0:
            warnings.append(f"Koperasi mengalami kerugian sebesar {format_rupiah(abs(totals['net_income']))}")

        if totals["total_revenue"] > 0 and totals["total_expenses"] / totals["total_revenue"] > HIGH_EXPENSE_RATIO:
            ratio = totals["total_expenses"] / totals["total_revenue"] * 100
            warnings.append(f"Rasio beban terhadap pendapatan tinggi ({ratio:.2f}%)")

        for code in _duplicates([a.account_code for a in accounts]):
            errors.append(f"Kode akun duplikat: {code}")
        return errors, warnings

    def _check_cash_flow(self, report: FinancialReport) -> Issues:
        errors, warnings = [], []
        activities = list(report.cash_flow_activities)
        totals = activity_totals(activities)
        data = report.data or {}

        if not any(a.activity_category == "operating" for a in activities):
            errors.append("Laporan arus kas tidak memiliki aktivitas operasi")

        beginning = Decimal(str(data.get("beginning_cash_balance", 0)))
        ending = Decimal(str(data.get("ending_cash_balance", 0)))
        expected = beginning + totals["net_cash_flow"]
        if abs(ending - expected) > ONE:
            errors.append(
                f"Saldo kas akhir tidak sesuai. Seharusnya: {format_rupiah(expected)}, "
                f"Tercatat: {format_rupiah(ending)}"
            )

        if totals["operating"] < 0:
            warnings.append("Arus kas dari aktivitas operasi bernilai negatif")
        return errors, warnings

    def _check_equity_changes(self, report: FinancialReport) -> Issues:
        errors = []
        rows = list(report.equity_changes)
        for component in _duplicates([r.equity_component for r in rows]):
            errors.append(f"Komponen ekuitas duplikat: {component}")
        for row in rows:
            if abs(Decimal(row.ending_balance or 0) - row.expected_ending_balance) > ONE:
                errors.append(
                    f"Saldo akhir {row.equity_component} tidak sesuai. "
                    f"Seharusnya: {format_rupiah(row.expected_ending_balance)}"
                )
        return errors, []

    def _check_member_savings(self, report: FinancialReport) -> Issues:
        errors = []
        for row in report.member_savings:
            available = (
                Decimal(row.beginning_balance or 0) + Decimal(row.deposits or 0) + Decimal(row.interest_earned or 0)
            )
            if Decimal(row.withdrawals or 0) > available:
                errors.append(f"Penarikan anggota {row.member_id} melebihi saldo yang tersedia")
            if abs(Decimal(row.ending_balance or 0) - row.expected_ending_balance) > ONE:
                errors.append(
                    f"Saldo akhir simpanan anggota {row.member_id} tidak sesuai. "
                    f"Seharusnya: {format_rupiah(row.expected_ending_balance)}"
                )
        return errors, []

    def _check_member_receivables(self, report: FinancialReport) -> Issues:
        errors, warnings = [], []
        rows = list(report.member_receivables)
        for number in _duplicates([r.loan_number for r in rows]):
            errors.append(f"Nomor pinjaman duplikat: {number}")
        for row in rows:
            if Decimal(row.outstanding_balance or 0) > Decimal(row.loan_amount or 0):
                errors.append(f"Sisa pinjaman {row.loan_number} melebihi jumlah pinjaman")
            if row.payment_status != "current" and Decimal(row.outstanding_balance or 0) > 0:
                warnings.append(f"Pinjaman {row.loan_number} menunggak {row.days_overdue} hari")
        return errors, warnings

    def _check_npl(self, report: FinancialReport) -> Issues:
        errors = []
        rows = list(report.npl_receivables)
        for number in _duplicates([r.loan_number for r in rows]):
            errors.append(f"Nomor pinjaman duplikat: {number}")
        for row in rows:
            if Decimal(row.outstanding_balance or 0) > Decimal(row.original_loan_amount or 0):
                errors.append(f"Sisa pinjaman {row.loan_number} melebihi pokok pinjaman")
            if row.days_past_due < NPL_MIN_DAYS_PAST_DUE:
                errors.append(
                    f"Pinjaman {row.loan_number} baru menunggak {row.days_past_due} hari, "
                    f"bukan piutang bermasalah (minimal {NPL_MIN_DAYS_PAST_DUE} hari)"
                )
                continue
            expected_class = classify_npl(row.days_past_due)
            if row.npl_classification != expected_class:
                errors.append(f"Klasifikasi {row.loan_number} seharusnya {expected_class}")
            minimum = NPL_MIN_PROVISION.get(row.npl_classification, Decimal("0"))
            if Decimal(row.provision_percentage or 0) < minimum:
                errors.append(f"Persentase penyisihan {row.loan_number} minimal {minimum}%")
            if abs(Decimal(row.provision_amount or 0) - row.expected_provision_amount) > ONE:
                errors.append(
                    f"Jumlah penyisihan {row.loan_number} tidak sesuai. "
                    f"Seharusnya: {format_rupiah(row.expected_provision_amount)}"
                )
        return errors, []

    def _check_shu(self, report: FinancialReport) -> Issues:
        errors = []
        rows = list(report.shu_distributions)
        for member_id in _duplicates([r.member_id for r in rows]):
            errors.append(f"ID anggota duplikat: {member_id}")
        for row in rows:
            total = Decimal(row.shu_from_savings or 0) + Decimal(row.shu_from_transactions or 0)
            if abs(Decimal(row.total_shu_received or 0) - total) > ONE:
                errors.append(f"Total SHU anggota {row.member_id} tidak sesuai")
            received = Decimal(row.total_shu_received or 0)
            tax = Decimal(row.tax_deduction or 0)
            if tax > received:
                errors.append(f"Potongan pajak anggota {row.member_id} melebihi total SHU")
            elif received > 0 and tax / received > MAX_SHU_TAX_RATE:
                errors.append(f"Tarif pajak SHU anggota {row.member_id} melebihi 25%")
            if abs(Decimal(row.net_shu_received or 0) - (received - tax)) > ONE:
                errors.append(f"SHU bersih anggota {row.member_id} tidak sesuai")

        total_shu = Decimal(str((report.data or {}).get("total_shu", 0)))
        distributed = sum_amounts(r.total_shu_received for r in rows)
        if total_shu and abs(distributed - total_shu) > Decimal("10"):
            errors.append(
                f"Total SHU yang dibagikan ({format_rupiah(distributed)}) tidak sama dengan "
                f"total SHU ({format_rupiah(total_shu)})"
            )
        return errors, []

    def _check_budget(self, report: FinancialReport) -> Issues:
        warnings = []
        rows = list(report.budget_plans)
        revenue = sum_amounts(r.planned_amount for r in rows if r.budget_category == "revenue")
        expense = sum_amounts(r.planned_amount for r in rows if r.budget_category == "expense")
        if expense > revenue * BUDGET_EXPENSE_LIMIT:
            warnings.append(
                f"Total anggaran beban ({format_rupiah(expense)}) melebihi 120% "
                f"anggaran pendapatan ({format_rupiah(revenue)})"
            )
        return [], warnings

    def _check_notes(self, report: FinancialReport) -> Issues:
        if not (report.data or {}).get("sections"):
            return ["Catatan atas laporan keuangan tidak memiliki isi"], []
        return [], []

    # ===== CROSS REPORT =====

    def cross_report_checks(self, report: FinancialReport) -> Issues:
        """Compare with other approved reports of the same cooperative and year."""
        errors, warnings = [], []
        year = report.reporting_year

        if report.report_type in (ReportType.BALANCE_SHEET, ReportType.INCOME_STATEMENT):
            balance_sheet = report if report.report_type == ReportType.BALANCE_SHEET else \
                self.get_approved_report(report.cooperative_id, ReportType.BALANCE_SHEET, year)
            income = report if report.report_type == ReportType.INCOME_STATEMENT else \
                self.get_approved_report(report.cooperative_id, ReportType.INCOME_STATEMENT, year)
            if balance_sheet and income:
                retained_rows = [
                    a for a in balance_sheet.balance_sheet_accounts
                    if a.account_category == "equity" and not a.is_subtotal
                    and any(k in (a.account_name or "").lower() for k in ("laba ditahan", "sisa hasil usaha"))
                ]
                if retained_rows:
                    retained = sum_amounts(a.current_year_amount for a in retained_rows)
                    net_income = income_totals(income.income_statement_accounts)["net_income"]
                    if abs(retained - net_income) > RETAINED_EARNINGS_TOLERANCE:
                        warnings.append(
                            f"Laba ditahan/SHU di neraca ({format_rupiah(retained)}) berbeda dengan "
                            f"laba bersih ({format_rupiah(net_income)})"
                        )

        if report.report_type in (ReportType.BALANCE_SHEET, ReportType.CASH_FLOW):
            balance_sheet = report if report.report_type == ReportType.BALANCE_SHEET else \
                self.get_approved_report(report.cooperative_id, ReportType.BALANCE_SHEET, year)
            cash_flow = report if report.report_type == ReportType.CASH_FLOW else \
                self.get_approved_report(report.cooperative_id, ReportType.CASH_FLOW, year)
            if balance_sheet and cash_flow and cash_flow.data and "ending_cash_balance" in cash_flow.data:
                cash_rows = [
                    a for a in balance_sheet.balance_sheet_accounts
                    if a.account_category == "asset" and not a.is_subtotal and "kas" in (a.account_name or "").lower()
                ]
                if cash_rows:
                    cash = sum_amounts(a.current_year_amount for a in cash_rows)
                    ending = Decimal(str(cash_flow.data["ending_cash_balance"]))
                    if abs(cash - ending) > ONE:
                        errors.append(
                            f"Saldo kas di neraca ({format_rupiah(cash)}) tidak sama dengan "
                            f"saldo kas akhir arus kas ({format_rupiah(ending)})"
                        )
        return errors, warnings

    # ===== RULES =====

    @staticmethod
    def get_validation_rules(report_type: ReportType) -> Dict[str, Any]:
        common = {
            "reporting_year": "2020 sampai tahun berjalan + 1",
            "reporting_period": ["Q1", "Q2", "Q3", "Q4", "annual"],
            "notes": "maksimal 5000 karakter",
        }
        rules = {
            ReportType.BALANCE_SHEET: {
                "groups": ["assets", "liabilities", "equity"],
                "balance_equation": "Total Aset = Total Kewajiban + Ekuitas (toleransi 0,01)",
                "account_code": "unik dalam satu laporan",
                "note_reference": "maksimal 5 karakter alfanumerik",
                "sort_order": "0 sampai 999",
            },
            ReportType.INCOME_STATEMENT: {
                "account_category": ["revenue", "expense", "other_income", "other_expense"],
                "required": "minimal satu akun pendapatan",
                "parent_account_code": "harus ada dan berbeda dengan kode akun",
                "unrealistic_change": "kenaikan maksimal 1000% dari tahun sebelumnya",
            },
            ReportType.CASH_FLOW: {
                "activity_category": ["operating", "investing", "financing"],
                "required": "minimal satu aktivitas operasi",
                "ending_cash_balance": "saldo awal + arus kas bersih (toleransi 1)",
            },
            ReportType.EQUITY_CHANGES: {
                "equity_component": "unik",
                "ending_balance": "saldo awal + penambahan - pengurangan (toleransi 1)",
                "amounts": "tidak boleh negatif",
            },
            ReportType.MEMBER_SAVINGS: {
                "unique": "member_id + savings_type",
                "ending_balance": "saldo awal + setoran - penarikan + jasa (toleransi 1)",
                "withdrawals": "tidak melebihi saldo tersedia",
            },
            ReportType.MEMBER_RECEIVABLES: {
                "loan_number": "unik",
                "outstanding_balance": "tidak melebihi jumlah pinjaman",
                "dates": "tanggal pencairan <= hari ini dan < jatuh tempo",
                "loan_term_months": "1 sampai 360",
                "collateral": "wajib untuk pinjaman > Rp 50.000.000 atau kredit produktif/investasi",
            },
            ReportType.NPL_RECEIVABLES: {
                "days_past_due": "minimal 91",
                "classification": {"91-120": "kurang_lancar", "121-180": "diragukan", ">180": "macet"},
                "minimum_provision": {k: float(v) for k, v in NPL_MIN_PROVISION.items()},
                "provision_amount": "sisa pinjaman x persentase / 100 (toleransi 1)",
            },
            ReportType.SHU_DISTRIBUTION: {
                "reporting_period": "annual",
                "total_shu_received": "SHU jasa modal + SHU jasa usaha (toleransi 1)",
                "net_shu_received": "total SHU - pajak (toleransi 1)",
                "max_tax_rate": "25%",
                "total": "jumlah SHU dibagikan = total SHU (toleransi 10)",
            },
            ReportType.BUDGET_PLAN: {
                "reporting_year": "tahun berjalan sampai + 5",
                "quarter_allocations": "berjumlah 100% (toleransi 0,01)",
                "variance_percentage": "(rencana - realisasi) / realisasi x 100 (toleransi 0,1)",
                "warning": "beban melebihi 120% pendapatan",
            },
            ReportType.NOTES_TO_FINANCIAL: {
                "sections": "minimal satu bagian berisi judul dan isi",
            },
        }
        return {"report_type": report_type.value, "common": common, "rules": rules[report_type]}
