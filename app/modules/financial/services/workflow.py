"""
Submission and review workflow: draft/rejected -> submitted -> approved | rejected
"""

import logging
from datetime import datetime, timezone

from fastapi import HTTPException, status

from app.modules.audit.models import AuditAction
from app.modules.audit.service import AuditLogService
from app.modules.auth.schemas import AuthContext
from app.modules.financial.models import FinancialReport, ReportStatus
from app.modules.financial.services.base import BaseFinancialService
from app.modules.financial.services.validation import FinancialValidationService
from app.modules.notifications.service import NotificationService

logger = logging.getLogger(__name__)


class ReportWorkflowService(BaseFinancialService):

    def __init__(self, db):
        super().__init__(db)
        self.audit = AuditLogService(db)
        self.notifications = NotificationService(db)
        self.validation = FinancialValidationService(db)

    def _require_admin_dinas(self, auth_context: AuthContext):
        if not auth_context.is_admin_dinas:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only admin_dinas can review reports"
            )

    def _transition(self, report: FinancialReport, action: AuditAction, auth_context: AuthContext, old_status: ReportStatus):
        self.audit.log(
            "financial_reports", report.id, action,
            old_values={"status": old_status.value},
            new_values={
                "status": report.status.value,
                "rejection_reason": report.rejection_reason,
            },
            user_id=auth_context.user_id, cooperative_id=report.cooperative_id
        )

    def submit(self, report: FinancialReport, auth_context: AuthContext) -> FinancialReport:
        if not report.can_be_submitted:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Report in status {report.status.value} cannot be submitted"
            )

        result = self.validation.validate_report_integrity(report)
        if not result["is_valid"]:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={
                    "message": "Laporan belum dapat diajukan karena masih terdapat kesalahan",
                    "errors": result["errors"],
                    "warnings": result["warnings"],
                }
            )

        old_status = report.status
        try:
            report.status = ReportStatus.SUBMITTED
            report.submitted_at = datetime.now(timezone.utc)
            report.updated_by = auth_context.user_id
            self.db.flush()

            self.notifications.report_submitted(report.cooperative_id, report.report_type.value, report.reporting_year)
            self._transition(report, AuditAction.SUBMIT, auth_context, old_status)
            self.db.commit()
            self.db.refresh(report)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to submit report {report.id}: {e}")
            raise

        logger.info(f"Report {report.id} submitted by {auth_context.user_id}")
        return report

    def approve(self, report: FinancialReport, auth_context: AuthContext) -> FinancialReport:
        self._require_admin_dinas(auth_context)
        if not report.can_be_approved:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Report in status {report.status.value} cannot be approved"
            )

        old_status = report.status
        try:
            report.status = ReportStatus.APPROVED
            report.approved_by = auth_context.user_id
            report.approved_at = datetime.now(timezone.utc)
            report.rejection_reason = None
            self.db.flush()

            self.notifications.report_approved(report.cooperative_id, report.report_type.value, report.reporting_year)
            self._transition(report, AuditAction.APPROVE, auth_context, old_status)
            self.db.commit()
            self.db.refresh(report)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to approve report {report.id}: {e}")
            raise

        logger.info(f"Report {report.id} approved by {auth_context.user_id}")
        return report

    def reject(self, report: FinancialReport, reason: str, auth_context: AuthContext) -> FinancialReport:
        self._require_admin_dinas(auth_context)
        if not report.can_be_rejected:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Report in status {report.status.value} cannot be rejected"
            )
        reason = (reason or "").strip()
        if not 10 <= len(reason) <= 1000:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="Alasan penolakan harus 10 sampai 1000 karakter"
            )

        old_status = report.status
        try:
            report.status = ReportStatus.REJECTED
            report.rejection_reason = reason
            self.db.flush()

            self.notifications.report_rejected(
                report.cooperative_id, report.report_type.value, report.reporting_year, reason
            )
            self._transition(report, AuditAction.REJECT, auth_context, old_status)
            self.db.commit()
            self.db.refresh(report)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to reject report {report.id}: {e}")
            raise

        logger.info(f"Report {report.id} rejected by {auth_context.user_id}")
        return report
