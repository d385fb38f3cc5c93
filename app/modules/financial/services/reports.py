"""
Report generation service

Creates, replaces, duplicates and consolidates financial reports. Every write
runs in one transaction together with its audit entry.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError

from app.modules.audit.models import AuditAction
from app.modules.audit.service import AuditLogService, model_snapshot, serialize_value
from app.modules.cooperatives.models import Cooperative
from app.modules.financial.models import (
    BUDGET_CATEGORIES, FinancialReport, LINE_ITEM_ATTRIBUTES, LINE_ITEM_MODELS, NPL_CLASSIFICATIONS,
    PAYMENT_STATUSES, ReportPeriod, ReportStatus, ReportType, SAVINGS_TYPES
)
from app.modules.financial.services.base import BaseFinancialService
from app.modules.financial.services.balance_sheet import category_total
from app.modules.financial.services.cash_flow import activity_totals
from app.modules.financial.services.income_statement import find_unrealistic_changes, income_totals
from app.modules.financial.utils import line_item_to_dict
from app.modules.financial.utils.calculations import as_float, sum_amounts

logger = logging.getLogger(__name__)

DATA_VERSION = "1.0"

# Report-level fields kept in data next to the summary
HEADER_KEYS = {
    ReportType.CASH_FLOW: ("beginning_cash_balance", "ending_cash_balance"),
    ReportType.SHU_DISTRIBUTION: ("total_shu", "distribution_date"),
    ReportType.BUDGET_PLAN: ("budget_type",),
    ReportType.NOTES_TO_FINANCIAL: ("sections",),
}

# Types whose rows roll current amounts into the previous year on duplication
ROLLOVER_TYPES = (ReportType.BALANCE_SHEET, ReportType.INCOME_STATEMENT)

CONSOLIDATION_TOTALS = {
    ReportType.BALANCE_SHEET: {"assets": "asset", "liabilities": "liability", "equity": "equity"},
    ReportType.INCOME_STATEMENT: {"revenue": "revenue", "expenses": "expense"},
}


def payload_line_items(payload) -> List[Dict[str, Any]]:
    """Column values for the line items carried by a create/update payload."""
    report_type = ReportType(payload.report_type)

    if report_type == ReportType.BALANCE_SHEET:
        rows = []
        for category, group in (
            ("asset", payload.accounts.assets),
            ("liability", payload.accounts.liabilities),
            ("equity", payload.accounts.equity),
        ):
            rows.extend({**row.model_dump(), "account_category": category} for row in group)
        return rows

    attribute = {
        ReportType.INCOME_STATEMENT: "accounts",
        ReportType.CASH_FLOW: "activities",
        ReportType.EQUITY_CHANGES: "equity_changes",
        ReportType.MEMBER_SAVINGS: "member_savings",
        ReportType.MEMBER_RECEIVABLES: "receivables",
        ReportType.NPL_RECEIVABLES: "npl_receivables",
        ReportType.SHU_DISTRIBUTION: "shu_distributions",
        ReportType.BUDGET_PLAN: "budget_plans",
    }.get(report_type)
    if attribute is None:
        return []
    return [row.model_dump() for row in getattr(payload, attribute)]


def payload_header_data(payload) -> Dict[str, Any]:
    keys = HEADER_KEYS.get(ReportType(payload.report_type), ())
    return {key: serialize_value(_dump(getattr(payload, key))) for key in keys}


def _dump(value):
    if isinstance(value, list):
        return [v.model_dump() if hasattr(v, "model_dump") else v for v in value]
    return value


def build_summary(report: FinancialReport) -> Dict[str, Any]:
    """Type-specific totals stored in report.data."""
    items = report.line_items
    report_type = report.report_type

    if report_type in (ReportType.BALANCE_SHEET, ReportType.INCOME_STATEMENT):
        totals = income_totals(items)
        return {
            "total_assets": as_float(category_total(items, "asset")),
            "total_liabilities": as_float(category_total(items, "liability")),
            "total_equity": as_float(category_total(items, "equity")),
            "total_revenue": as_float(totals["total_revenue"]),
            "total_expenses": as_float(totals["total_expenses"]),
            "net_income": as_float(totals["net_income"]),
            "account_count": len(items),
        }

    if report_type == ReportType.CASH_FLOW:
        totals = activity_totals(items)
        return {
            "operating_cash_flow": as_float(totals["operating"]),
            "investing_cash_flow": as_float(totals["investing"]),
            "financing_cash_flow": as_float(totals["financing"]),
            "net_cash_flow": as_float(totals["net_cash_flow"]),
            "activity_count": len(items),
        }

    if report_type == ReportType.EQUITY_CHANGES:
        return {
            "total_beginning_balance": as_float(sum_amounts(i.beginning_balance for i in items)),
            "total_additions": as_float(sum_amounts(i.additions for i in items)),
            "total_reductions": as_float(sum_amounts(i.reductions for i in items)),
            "total_ending_balance": as_float(sum_amounts(i.ending_balance for i in items)),
            "component_count": len(items),
        }

    if report_type == ReportType.MEMBER_SAVINGS:
        return {
            "total_savings": as_float(sum_amounts(i.ending_balance for i in items)),
            "by_savings_type": {
                t: as_float(sum_amounts(i.ending_balance for i in items if i.savings_type == t))
                for t in SAVINGS_TYPES
            },
            "member_count": len({i.member_id for i in items}),
        }

    if report_type == ReportType.MEMBER_RECEIVABLES:
        return {
            "total_loan_amount": as_float(sum_amounts(i.loan_amount for i in items)),
            "total_outstanding": as_float(sum_amounts(i.outstanding_balance for i in items)),
            "by_payment_status": {
                s: as_float(sum_amounts(i.outstanding_balance for i in items if i.payment_status == s))
                for s in PAYMENT_STATUSES
            },
            "loan_count": len(items),
        }

    if report_type == ReportType.NPL_RECEIVABLES:
        return {
            "total_outstanding": as_float(sum_amounts(i.outstanding_balance for i in items)),
            "total_provision": as_float(sum_amounts(i.provision_amount for i in items)),
            "provision_by_classification": {
                c: as_float(sum_amounts(i.provision_amount for i in items if i.npl_classification == c))
                for c in NPL_CLASSIFICATIONS
            },
            "account_count": len(items),
        }

    if report_type == ReportType.SHU_DISTRIBUTION:
        return {
            "total_distributed": as_float(sum_amounts(i.total_shu_received for i in items)),
            "total_tax": as_float(sum_amounts(i.tax_deduction for i in items)),
            "total_net": as_float(sum_amounts(i.net_shu_received for i in items)),
            "member_count": len(items),
        }

    if report_type == ReportType.BUDGET_PLAN:
        return {
            "total_planned": as_float(sum_amounts(i.planned_amount for i in items)),
            "by_category": {
                c: as_float(sum_amounts(i.planned_amount for i in items if i.budget_category == c))
                for c in BUDGET_CATEGORIES
            },
            "item_count": len(items),
        }

    return {"section_count": len((report.data or {}).get("sections", []))}


class ReportGenerationService(BaseFinancialService):
    """Create and maintain financial reports"""

    def __init__(self, db):
        super().__init__(db)
        self.audit = AuditLogService(db)

    # ===== HELPERS =====

    def _ensure_period_available(
        self,
        cooperative_id: UUID,
        report_type: ReportType,
        year: int,
        period: ReportPeriod,
        exclude_id: Optional[UUID] = None
    ):
        query = self._get_base_report_query(cooperative_id).filter(
            FinancialReport.report_type == report_type,
            FinancialReport.reporting_year == year,
            FinancialReport.reporting_period == period
        )
        if exclude_id:
            query = query.filter(FinancialReport.id != exclude_id)
        if query.first():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"A {report_type.value} report for {year} {period.value} already exists"
            )

    def _check_unrealistic_changes(self, payload):
        if payload.report_type == ReportType.INCOME_STATEMENT.value:
            accounts = payload.accounts
        elif payload.report_type == ReportType.BALANCE_SHEET.value:
            accounts = payload.accounts.assets + payload.accounts.liabilities + payload.accounts.equity
        else:
            return
        flagged = find_unrealistic_changes(accounts)
        if flagged:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={
                    "code": "unrealistic_change",
                    "message": "Perubahan nilai akun tidak wajar dibandingkan tahun sebelumnya",
                    "accounts": flagged,
                }
            )

    def _add_line_items(self, report: FinancialReport, rows: List[Dict[str, Any]]):
        model = LINE_ITEM_MODELS.get(report.report_type)
        if not model:
            return
        collection = getattr(report, LINE_ITEM_ATTRIBUTES[report.report_type])
        for row in rows:
            collection.append(model(**row))

    def _build_data(self, report: FinancialReport, header: Dict[str, Any], user_id: Optional[UUID]) -> Dict[str, Any]:
        data = dict(header)
        report.data = data
        data.update(build_summary(report))
        data.update({
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "generated_by": str(user_id) if user_id else None,
            "version": DATA_VERSION,
        })
        return data

    def _snapshot(self, report: FinancialReport) -> Dict[str, Any]:
        return model_snapshot(report, exclude=["data"])

    # ===== OPERATIONS =====

    def create_report(self, cooperative_id: UUID, payload, user_id: Optional[UUID] = None) -> FinancialReport:
        report_type = ReportType(payload.report_type)
        cooperative = self.db.query(Cooperative).filter(Cooperative.id == cooperative_id).first()
        if not cooperative or not cooperative.is_active:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Cooperative not found or inactive"
            )
        self._ensure_period_available(
            cooperative_id, report_type, payload.reporting_year, payload.reporting_period
        )
        self._check_unrealistic_changes(payload)

        try:
            report = FinancialReport(
                cooperative_id=cooperative_id,
                report_type=report_type,
                reporting_year=payload.reporting_year,
                reporting_period=payload.reporting_period,
                status=ReportStatus.DRAFT,
                notes=payload.notes,
                created_by=user_id,
                updated_by=user_id,
            )
            self.db.add(report)
            self._add_line_items(report, payload_line_items(payload))
            self._build_data(report, payload_header_data(payload), user_id)
            self.db.flush()

            self.audit.log(
                "financial_reports", report.id, AuditAction.CREATE,
                new_values=self._snapshot(report),
                user_id=user_id, cooperative_id=cooperative_id
            )
            self.db.commit()
            self.db.refresh(report)
        except IntegrityError:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"A {report_type.value} report for this period already exists"
            )
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create {report_type.value} report for cooperative {cooperative_id}: {e}")
            raise

        logger.info(f"Report {report.id} ({report_type.value} {report.reporting_year}) created by {user_id}")
        return report

    def update_report(self, report: FinancialReport, payload, user_id: Optional[UUID] = None) -> FinancialReport:
        if not report.can_be_edited:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Report in status {report.status.value} cannot be edited"
            )
        if ReportType(payload.report_type) != report.report_type:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="Report type cannot be changed"
            )
        self._ensure_period_available(
            report.cooperative_id, report.report_type, payload.reporting_year,
            payload.reporting_period, exclude_id=report.id
        )
        self._check_unrealistic_changes(payload)

        old_values = self._snapshot(report)
        try:
            attribute = LINE_ITEM_ATTRIBUTES.get(report.report_type)
            if attribute:
                getattr(report, attribute).clear()
                self.db.flush()

            report.reporting_year = payload.reporting_year
            report.reporting_period = payload.reporting_period
            report.notes = payload.notes
            report.updated_by = user_id
            if report.status == ReportStatus.REJECTED:
                report.status = ReportStatus.DRAFT
                report.rejection_reason = None

            self._add_line_items(report, payload_line_items(payload))
            self._build_data(report, payload_header_data(payload), user_id)
            self.db.flush()

            self.audit.log(
                "financial_reports", report.id, AuditAction.UPDATE,
                old_values=old_values, new_values=self._snapshot(report),
                user_id=user_id, cooperative_id=report.cooperative_id
            )
            self.db.commit()
            self.db.refresh(report)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update report {report.id}: {e}")
            raise
        return report

    def delete_report(self, report: FinancialReport, user_id: Optional[UUID] = None) -> None:
        if report.status not in (ReportStatus.DRAFT, ReportStatus.REJECTED):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Report in status {report.status.value} cannot be deleted"
            )

        self.audit.log(
            "financial_reports", report.id, AuditAction.DELETE,
            old_values=self._snapshot(report),
            user_id=user_id, cooperative_id=report.cooperative_id
        )
        self.db.delete(report)
        self.db.commit()
        logger.info(f"Report {report.id} deleted by {user_id}")

    def duplicate_report(
        self,
        report: FinancialReport,
        new_year: int,
        new_period: ReportPeriod,
        user_id: Optional[UUID] = None
    ) -> FinancialReport:
        """Copy a report into a new draft; statements roll current amounts into previous."""
        self._ensure_period_available(report.cooperative_id, report.report_type, new_year, new_period)

        rows = []
        for item in report.line_items:
            row = line_item_to_dict(item)
            if report.report_type in ROLLOVER_TYPES:
                row["previous_year_amount"] = row["current_year_amount"]
                row["current_year_amount"] = Decimal("0")
            rows.append(row)

        header = {
            key: value for key, value in (report.data or {}).items()
            if key in HEADER_KEYS.get(report.report_type, ())
        }

        try:
            copy = FinancialReport(
                cooperative_id=report.cooperative_id,
                report_type=report.report_type,
                reporting_year=new_year,
                reporting_period=new_period,
                status=ReportStatus.DRAFT,
                notes=report.notes,
                created_by=user_id,
                updated_by=user_id,
            )
            self.db.add(copy)
            self._add_line_items(copy, rows)
            data = self._build_data(copy, header, user_id)
            data["duplicated_from"] = str(report.id)
            self.db.flush()

            self.audit.log(
                "financial_reports", copy.id, AuditAction.CREATE,
                new_values={**self._snapshot(copy), "duplicated_from": str(report.id)},
                user_id=user_id, cooperative_id=copy.cooperative_id
            )
            self.db.commit()
            self.db.refresh(copy)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to duplicate report {report.id}: {e}")
            raise

        logger.info(f"Report {report.id} duplicated into {copy.id} ({new_year} {new_period.value})")
        return copy

    def generate_consolidated_report(
        self,
        cooperative_ids: Optional[List[UUID]],
        report_type: ReportType,
        year: int,
        period: ReportPeriod = ReportPeriod.ANNUAL
    ) -> Dict[str, Any]:
        if report_type not in CONSOLIDATION_TOTALS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Consolidation is available for balance_sheet and income_statement only"
            )

        query = self.db.query(FinancialReport).filter(
            FinancialReport.report_type == report_type,
            FinancialReport.reporting_year == year,
            FinancialReport.reporting_period == period,
            FinancialReport.status == ReportStatus.APPROVED
        )
        if cooperative_ids:
            query = query.filter(FinancialReport.cooperative_id.in_(cooperative_ids))
        reports = query.all()
        if not reports:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No approved reports found for consolidation"
            )

        accounts: Dict[str, Dict[str, Any]] = {}
        for report in reports:
            for item in report.line_items:
                if item.is_subtotal:
                    continue
                entry = accounts.setdefault(item.account_code, {
                    "account_code": item.account_code,
                    "account_name": item.account_name,
                    "account_category": item.account_category,
                    "total_amount": Decimal("0"),
                    "cooperatives": [],
                })
                entry["total_amount"] += Decimal(item.current_year_amount or 0)
                entry["cooperatives"].append({
                    "cooperative_id": str(report.cooperative_id),
                    "cooperative_name": report.cooperative_name,
                    "amount": as_float(item.current_year_amount),
                })

        all_items = [item for report in reports for item in report.line_items]
        totals = {
            label: as_float(category_total(all_items, category))
            for label, category in CONSOLIDATION_TOTALS[report_type].items()
        }
        if report_type == ReportType.INCOME_STATEMENT:
            totals["net_income"] = as_float(income_totals(all_items)["net_income"])

        return {
            "report_type": report_type,
            "reporting_year": year,
            "reporting_period": period,
            "totals": totals,
            "accounts": [
                {**entry, "total_amount": as_float(entry["total_amount"])}
                for entry in sorted(accounts.values(), key=lambda e: e["account_code"])
            ],
            "summary": {
                "report_count": len(reports),
                "cooperatives": sorted({r.cooperative_name or "" for r in reports}),
                "total_cooperatives": len({r.cooperative_id for r in reports}),
                "report_type": report_type.value,
                "generated_at": datetime.now(timezone.utc).isoformat(),
            },
        }

    def list_reports(
        self,
        cooperative_id: Optional[UUID] = None,
        report_type: Optional[ReportType] = None,
        reporting_year: Optional[int] = None,
        reporting_period: Optional[ReportPeriod] = None,
        report_status: Optional[ReportStatus] = None,
        page: int = 1,
        per_page: int = 15,
    ) -> Dict[str, Any]:
        query = self._get_base_report_query(cooperative_id)
        if report_type:
            query = query.filter(FinancialReport.report_type == report_type)
        if reporting_year:
            query = query.filter(FinancialReport.reporting_year == reporting_year)
        if reporting_period:
            query = query.filter(FinancialReport.reporting_period == reporting_period)
        if report_status:
            query = query.filter(FinancialReport.status == report_status)

        total = query.count()
        items = query.order_by(
            FinancialReport.reporting_year.desc(), FinancialReport.created_at.desc()
        ).offset((page - 1) * per_page).limit(per_page).all()
        return {"items": items, "total": total, "page": page, "per_page": per_page}

    def get_report(self, report_id: UUID, auth_context=None) -> FinancialReport:
        return self.get_report_or_404(report_id, auth_context)
