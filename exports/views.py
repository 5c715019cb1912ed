# exports/views.py
from flask import Blueprint, Response, current_app, request
from flask_login import login_required, current_user
from io import BytesIO, StringIO
import csv
from typing import Any, Callable, Dict, List, Tuple
from xml.sax.saxutils import escape

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from utilities.campus_helpers import campus_query, parse_campus_filter
from utilities.database import (
    AuditLogEntry,
    InventoryItem,
    Loan,
    ITEM_STATUS_LABELS,
    utc_now,
)
from utilities.errors import InventoryError, NotFoundError
from middleware.campus_middleware import campus_required

exports_bp = Blueprint("exports", __name__)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
AUDIT_EXPORT_LIMIT = 5000


def _fmt_date(value, with_time: bool = True) -> str:
    if not value:
        return ""
    return value.strftime("%d/%m/%Y %H:%M" if with_time else "%d/%m/%Y")


def _attachment(body, mimetype: str, filename: str) -> Response:
    response = Response(body, mimetype=mimetype)
    response.headers["Content-Disposition"] = f"attachment; filename={filename}"
    return response


def generate_csv(data: List[Dict[str, Any]], filename: str) -> Response:
    """Generate CSV file from data"""
    output = StringIO()
    writer = csv.DictWriter(output, fieldnames=list(data[0].keys()))
    writer.writeheader()
    writer.writerows(data)
    # BOM so spreadsheet apps read the accents right
    return _attachment("\ufeff" + output.getvalue(), "text/csv; charset=utf-8", filename)


def generate_excel(data: List[Dict[str, Any]], filename: str, sheet_title: str = "Export") -> Response:
    """Generate Excel file from data"""
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_title[:31]

    headers = list(data[0].keys())
    for col_num, header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col_num, value=header)
        cell.font = Font(bold=True)
        cell.fill = PatternFill(start_color="CCCCCC", end_color="CCCCCC", fill_type="solid")

    for row_num, row_data in enumerate(data, 2):
        for col_num, header in enumerate(headers, 1):
            ws.cell(row=row_num, column=col_num, value=row_data.get(header, ""))

    # Auto-size columns
    for column in ws.columns:
        max_length = max(len(str(cell.value)) if cell.value is not None else 0 for cell in column)
        ws.column_dimensions[column[0].column_letter].width = min(max_length + 2, 50)
    ws.freeze_panes = "A2"

    output = BytesIO()
    wb.save(output)
    return _attachment(output.getvalue(), XLSX_MIMETYPE, filename)


def generate_pdf(data: List[Dict[str, Any]], filename: str, title: str = "Report") -> Response:
    """Generate a landscape PDF table with wrapped cells"""
    output = BytesIO()
    doc = SimpleDocTemplate(
        output,
        pagesize=landscape(A4),
        topMargin=0.5 * inch,
        bottomMargin=0.5 * inch,
        leftMargin=0.5 * inch,
        rightMargin=0.5 * inch,
        title=title,
    )
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "ExportTitle",
        parent=styles["Normal"],
        fontSize=14,
        textColor=colors.HexColor("#1f2937"),
        fontName="Helvetica-Bold",
        alignment=TA_CENTER,
        spaceAfter=8,
    )
    meta_style = ParagraphStyle(
        "ExportMeta",
        parent=styles["Normal"],
        fontSize=8,
        textColor=colors.HexColor("#6b7280"),
        alignment=TA_CENTER,
        spaceAfter=12,
    )

    elements = [
        Paragraph(title, title_style),
        Paragraph(
            f"Exported on {_fmt_date(utc_now())} UTC by {escape(current_user.name)} | Total records: {len(data)}",
            meta_style,
        ),
        Spacer(1, 0.15 * inch),
    ]

    headers = list(data[0].keys())
    num_columns = len(headers)
    # Smaller type for wide tables
    data_font_size = 9 if num_columns <= 6 else 8 if num_columns <= 9 else 7
    cell_style = ParagraphStyle(
        "CellText",
        parent=styles["Normal"],
        fontSize=data_font_size,
        leading=data_font_size + 2,
        fontName="Helvetica",
    )
    header_style = ParagraphStyle(
        "HeaderCellText",
        parent=cell_style,
        textColor=colors.white,
        fontName="Helvetica-Bold",
    )

    table_data = [[Paragraph(escape(str(h)), header_style) for h in headers]]
    for row in data:
        table_data.append([
            Paragraph("-" if row.get(h) in (None, "") else escape(str(row.get(h))), cell_style)
            for h in headers
        ])

    available_width = landscape(A4)[0] - (doc.leftMargin + doc.rightMargin)
    table = Table(table_data, colWidths=[available_width / num_columns] * num_columns, repeatRows=1)
    accent = colors.HexColor("#1d4ed8")
    light_gray = colors.HexColor("#f5f7fb")
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), accent),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("TOPPADDING", (0, 0), (-1, -1), 5),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 5),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#e0e0e0")),
        ("BOX", (0, 0), (-1, -1), 1.5, accent),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [light_gray, colors.white]),
    ]))
    elements.append(table)

    doc.build(elements)
    return _attachment(output.getvalue(), "application/pdf", filename)


# --- Datasets ---
def _item_row(item: InventoryItem) -> Dict[str, Any]:
    return {
        "ID": item.id,
        "Campus": item.campus.name if item.campus else "",
        "Setor": item.sector.name if item.sector else "",
        "Sala": item.sala or "",
        "Categoria": item.category.name if item.category else "",
        "Marca": item.brand or "",
        "Serial": item.serial,
        "Patrimônio": item.patrimony or "",
        "Status": ITEM_STATUS_LABELS.get(item.status, item.status),
        "Responsável": item.responsible_display or "",
        "Fixo": "Sim" if item.is_fixed else "Não",
        "Observações": item.obs or "",
    }


def _inventory_rows(campus_filter) -> Tuple[str, List[Dict[str, Any]]]:
    items = (
        campus_query(InventoryItem, campus_filter)
        .filter(InventoryItem.status != "descarte")
        .order_by(InventoryItem.id.asc())
        .all()
    )
    return "Inventory Report", [_item_row(item) for item in items]


def _disposal_rows(campus_filter) -> Tuple[str, List[Dict[str, Any]]]:
    items = (
        campus_query(InventoryItem, campus_filter)
        .filter(InventoryItem.status == "descarte")
        .order_by(InventoryItem.updated_at.desc())
        .all()
    )
    rows = []
    for item in items:
        row = _item_row(item)
        row["Status anterior"] = ITEM_STATUS_LABELS.get(item.previous_status, item.previous_status or "")
        row["Descartado em"] = _fmt_date(item.updated_at)
        rows.append(row)
    return "Disposal Report", rows


def _loan_rows(campus_filter) -> Tuple[str, List[Dict[str, Any]]]:
    query = campus_query(Loan, campus_filter)
    status = (request.args.get("status") or "").strip().lower()
    if status:
        query = query.filter(Loan.status == status)
    loans = query.order_by(Loan.loan_date.desc()).all()
    now = utc_now()
    rows = [
        {
            "ID": loan.id,
            "Campus": loan.campus.name if loan.campus else "",
            "Serial": loan.item_serial,
            "Categoria": loan.item_category or "",
            "Mutuário": loan.borrower_name,
            "Contato": loan.borrower_contact or "",
            "Emprestado em": _fmt_date(loan.loan_date),
            "Devolução prevista": _fmt_date(loan.expected_return_date, with_time=False),
            "Devolvido em": _fmt_date(loan.actual_return_date),
            "Status": "Atrasado" if loan.is_overdue(now) else ("Devolvido" if loan.status == "returned" else "Emprestado"),
            "Emprestado por": loan.loaner_name or "",
        }
        for loan in loans
    ]
    return "Loans Report", rows


def _audit_rows(campus_filter) -> Tuple[str, List[Dict[str, Any]]]:
    entries = (
        campus_query(AuditLogEntry, campus_filter)
        .order_by(AuditLogEntry.timestamp.desc(), AuditLogEntry.id.desc())
        .limit(AUDIT_EXPORT_LIMIT)
        .all()
    )
    rows = [
        {
            "Data": _fmt_date(entry.timestamp),
            "Ação": entry.action,
            "Usuário": entry.user_name or "",
            "Campus": entry.campus_name or "",
            "Item": (entry.item_snapshot or {}).get("serial", ""),
            "Detalhes": entry.details or "",
        }
        for entry in entries
    ]
    return "Audit Log", rows


DATASETS: Dict[str, Callable] = {
    "inventory": _inventory_rows,
    "disposal": _disposal_rows,
    "loans": _loan_rows,
    "audit-log": _audit_rows,
}


@exports_bp.get("/<dataset>.<any(csv, xlsx, pdf):fmt>")
@login_required
@campus_required
def export_dataset(dataset: str, fmt: str):
    """Export a dataset of the caller's scope as CSV, Excel or PDF"""
    builder = DATASETS.get(dataset)
    if builder is None:
        raise NotFoundError(f"Unknown export: {dataset}", code="unknown_export")

    title, data = builder(parse_campus_filter(request.args.get("campus_id")))
    if not data:
        raise InventoryError("No data to export", code="empty_export")

    filename = f"{dataset}_{utc_now().strftime('%Y%m%d_%H%M%S')}.{fmt}"
    current_app.logger.info("%s exported %d %s row(s) as %s", current_user.username, len(data), dataset, fmt)
    if fmt == "xlsx":
        return generate_excel(data, filename, sheet_title=title)
    if fmt == "pdf":
        return generate_pdf(data, filename, title)
    return generate_csv(data, filename)
