"""
Utilities for the financial module

CSV export of single reports plus helpers to turn line items into plain dicts.
"""

import csv
import io
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import Response

from app.modules.audit.service import serialize_value
from app.modules.financial.models import FinancialReport, ReportPeriod, ReportType


LINE_ITEM_SKIP_COLUMNS = ("id", "financial_report_id", "created_at", "updated_at")


def render_csv(data: List[Dict[str, Any]], headers: Optional[Dict[str, str]] = None) -> str:
    """CSV text for a list of dicts, header row taken from the mapping."""
    if not data and not headers:
        return ""

    output = io.StringIO()
    fieldnames = list(headers.keys()) if headers else list(data[0].keys())
    writer = csv.DictWriter(output, fieldnames=fieldnames, extrasaction="ignore")
    writer.writerow(dict(zip(fieldnames, headers.values())) if headers else dict(zip(fieldnames, fieldnames)))

    for row in data:
        writer.writerow({key: format_csv_value(row.get(key)) for key in fieldnames})

    content = output.getvalue()
    output.close()
    return content


def create_csv_response(
    data: List[Dict[str, Any]],
    filename: str,
    headers: Dict[str, str] = None
) -> Response:
    """
    Create a CSV response from a list of dictionaries.

    Args:
        data: Rows to export
        filename: Name for the CSV file
        headers: Optional mapping of field names to CSV headers
    """
    return Response(
        content=render_csv(data, headers),
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename={filename}",
            "Content-Type": "text/csv; charset=utf-8"
        }
    )


def format_csv_value(value: Any) -> str:
    if value is None:
        return ""
    elif isinstance(value, bool):
        return "Ya" if value else "Tidak"
    elif isinstance(value, Decimal):
        return str(value)
    elif isinstance(value, (date, datetime)):
        return value.isoformat()
    else:
        return str(value)


def line_item_to_dict(item) -> Dict[str, Any]:
    """Line item columns without keys and timestamps."""
    return {
        column.name: getattr(item, column.name)
        for column in item.__table__.columns
        if column.name not in LINE_ITEM_SKIP_COLUMNS
    }


def line_items_as_json(report: FinancialReport) -> List[Dict[str, Any]]:
    if report.report_type == ReportType.NOTES_TO_FINANCIAL:
        return list((report.data or {}).get("sections", []))
    return [serialize_value(line_item_to_dict(item)) for item in report.line_items]


REPORT_FILE_NAMES = {
    "balance_sheet": "Neraca",
    "income_statement": "Laba_Rugi",
    "equity_changes": "Perubahan_Ekuitas",
    "cash_flow": "Arus_Kas",
    "member_savings": "Simpanan_Anggota",
    "member_receivables": "Piutang_Anggota",
    "npl_receivables": "Piutang_NPL",
    "shu_distribution": "Distribusi_SHU",
    "budget_plan": "Rencana_Anggaran",
    "notes_to_financial": "Catatan_Laporan",
}


def report_filename(report: FinancialReport) -> str:
    """e.g. Neraca_Koperasi_Sejahtera_2024.csv"""
    prefix = REPORT_FILE_NAMES.get(report.report_type.value, report.report_type.value)
    name = re.sub(r"[^A-Za-z0-9]+", "_", report.cooperative_name or "Koperasi").strip("_")
    filename = f"{prefix}_{name}_{report.reporting_year}"
    if report.reporting_period != ReportPeriod.ANNUAL:
        filename += f"_{report.reporting_period.value}"
    return f"{filename}.csv"


def prepare_report_csv(report: FinancialReport) -> List[Dict[str, Any]]:
    """Rows for the report's CSV, one per line item (or note section)."""
    if report.report_type == ReportType.NOTES_TO_FINANCIAL:
        return [
            {"note_reference": section.get("note_reference"), "title": section.get("title"),
             "content": section.get("content")}
            for section in (report.data or {}).get("sections", [])
        ]
    return [line_item_to_dict(item) for item in report.line_items]


def report_csv_content(report: FinancialReport) -> str:
    return render_csv(prepare_report_csv(report), CSV_HEADERS[report.report_type.value])


# CSV Headers mapping for different report types
CSV_HEADERS = {
    "balance_sheet": {
        "account_code": "Kode Akun",
        "account_name": "Nama Akun",
        "account_category": "Kategori",
        "account_subcategory": "Subkategori",
        "current_year_amount": "Tahun Berjalan",
        "previous_year_amount": "Tahun Sebelumnya",
        "parent_account_code": "Akun Induk",
        "is_subtotal": "Subtotal",
        "note_reference": "Catatan"
    },
    "income_statement": {
        "account_code": "Kode Akun",
        "account_name": "Nama Akun",
        "account_category": "Kategori",
        "account_subcategory": "Subkategori",
        "current_year_amount": "Tahun Berjalan",
        "previous_year_amount": "Tahun Sebelumnya",
        "parent_account_code": "Akun Induk",
        "is_subtotal": "Subtotal",
        "note_reference": "Catatan"
    },
    "cash_flow": {
        "activity_category": "Kategori Aktivitas",
        "activity_description": "Uraian",
        "current_year_amount": "Tahun Berjalan",
        "previous_year_amount": "Tahun Sebelumnya",
        "is_subtotal": "Subtotal",
        "note_reference": "Catatan"
    },
    "equity_changes": {
        "equity_component": "Komponen Ekuitas",
        "beginning_balance": "Saldo Awal",
        "additions": "Penambahan",
        "reductions": "Pengurangan",
        "ending_balance": "Saldo Akhir",
        "note_reference": "Catatan"
    },
    "member_savings": {
        "member_id": "ID Anggota",
        "member_name": "Nama Anggota",
        "savings_type": "Jenis Simpanan",
        "beginning_balance": "Saldo Awal",
        "deposits": "Setoran",
        "withdrawals": "Penarikan",
        "interest_earned": "Jasa",
        "ending_balance": "Saldo Akhir"
    },
    "member_receivables": {
        "member_id": "ID Anggota",
        "member_name": "Nama Anggota",
        "loan_type": "Jenis Pinjaman",
        "loan_number": "Nomor Pinjaman",
        "loan_amount": "Jumlah Pinjaman",
        "outstanding_balance": "Sisa Pinjaman",
        "loan_term_months": "Jangka Waktu (Bulan)",
        "disbursement_date": "Tanggal Pencairan",
        "maturity_date": "Tanggal Jatuh Tempo",
        "payment_status": "Status Pembayaran",
        "collateral_type": "Jenis Jaminan",
        "collateral_value": "Nilai Jaminan"
    },
    "npl_receivables": {
        "member_id": "ID Anggota",
        "member_name": "Nama Anggota",
        "loan_number": "Nomor Pinjaman",
        "original_loan_amount": "Pokok Pinjaman",
        "outstanding_balance": "Sisa Pinjaman",
        "days_past_due": "Hari Tunggakan",
        "npl_classification": "Klasifikasi",
        "provision_percentage": "Persentase Penyisihan",
        "provision_amount": "Jumlah Penyisihan",
        "restructuring_status": "Restrukturisasi",
        "write_off_status": "Hapus Buku"
    },
    "shu_distribution": {
        "member_id": "ID Anggota",
        "member_name": "Nama Anggota",
        "member_type": "Jenis Anggota",
        "shu_from_savings": "SHU Jasa Modal",
        "shu_from_transactions": "SHU Jasa Usaha",
        "total_shu_received": "Total SHU",
        "tax_deduction": "Pajak",
        "net_shu_received": "SHU Bersih",
        "payment_status": "Status Pembayaran"
    },
    "budget_plan": {
        "budget_category": "Kategori",
        "budget_subcategory": "Subkategori",
        "budget_item": "Mata Anggaran",
        "planned_amount": "Rencana",
        "previous_year_actual": "Realisasi Tahun Lalu",
        "variance_percentage": "Varians (%)",
        "priority_level": "Prioritas",
        "quarter_1_allocation": "Q1 (%)",
        "quarter_2_allocation": "Q2 (%)",
        "quarter_3_allocation": "Q3 (%)",
        "quarter_4_allocation": "Q4 (%)"
    },
    "notes_to_financial": {
        "note_reference": "Catatan",
        "title": "Judul",
        "content": "Isi"
    },
}
