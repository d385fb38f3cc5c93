"""
Services package for the financial module
"""

from .reports import ReportGenerationService
from .workflow import ReportWorkflowService
from .validation import FinancialValidationService
from .balance_sheet import BalanceSheetService
from .income_statement import IncomeStatementService
from .cash_flow import CashFlowService
from .equity_changes import EquityChangesService
from .members import MemberReportService
from .comparison import YearOverYearComparisonService

__all__ = [
    "ReportGenerationService",
    "ReportWorkflowService",
    "FinancialValidationService",
    "BalanceSheetService",
    "IncomeStatementService",
    "CashFlowService",
    "EquityChangesService",
    "MemberReportService",
    "YearOverYearComparisonService",
]
