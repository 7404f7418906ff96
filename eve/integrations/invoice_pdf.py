"""
Eve Assistant — Invoice PDF rendering (fpdf2).

Absent optional fields are never silently dropped: they are listed in a
"Missing data" notice at the bottom of the document.
"""

from __future__ import annotations

import logging

from fpdf import FPDF

from eve.data.models import Invoice

logger = logging.getLogger(__name__)


def _pdf_text(value: object) -> str:
    # Core fonts are latin-1 only.
    return str(value or "").strip().encode("latin-1", "replace").decode("latin-1")


def _pdf_money(value: float | None) -> str:
    return f"${float(value or 0):,.2f}"


def missing_fields(invoice: Invoice) -> list[str]:
    """Names of optional invoice fields that have no value."""
    checks = {
        "Invoice number": invoice.invoice_number,
        "Description": invoice.description,
        "Line items": invoice.items,
    }
    return [name for name, value in checks.items() if not value]


def _row(pdf: FPDF, label: str, value: str) -> None:
    pdf.set_font("Helvetica", "B", 10)
    pdf.cell(40, 7, _pdf_text(label))
    pdf.set_font("Helvetica", "", 10)
    pdf.cell(0, 7, _pdf_text(value), new_x="LMARGIN", new_y="NEXT")


def render_invoice_pdf(invoice: Invoice) -> bytes:
    """Render an invoice to PDF bytes."""
    pdf = FPDF(format="Letter", unit="mm")
    pdf.set_auto_page_break(auto=True, margin=15)
    pdf.add_page()

    pdf.set_font("Helvetica", "B", 18)
    pdf.cell(0, 10, "INVOICE", new_x="LMARGIN", new_y="NEXT")
    pdf.ln(2)

    _row(pdf, "Invoice:", invoice.identifier)
    _row(pdf, "Client:", invoice.client_name)
    _row(pdf, "Invoice Date:", invoice.issue_date.strftime("%m/%d/%Y"))
    _row(pdf, "Due Date:", invoice.due_date.strftime("%m/%d/%Y"))
    _row(pdf, "Status:", invoice.status.value)
    if invoice.paid_date:
        _row(pdf, "Paid On:", invoice.paid_date.strftime("%m/%d/%Y"))
    pdf.ln(4)

    if invoice.description:
        pdf.set_font("Helvetica", "", 10)
        pdf.multi_cell(0, 5, _pdf_text(invoice.description), new_x="LMARGIN", new_y="NEXT")
        pdf.ln(3)

    if invoice.items:
        pdf.set_font("Helvetica", "B", 10)
        pdf.cell(100, 7, "Description", border=1)
        pdf.cell(25, 7, "Qty", border=1, align="R")
        pdf.cell(30, 7, "Unit", border=1, align="R")
        pdf.cell(0, 7, "Total", border=1, align="R", new_x="LMARGIN", new_y="NEXT")
        pdf.set_font("Helvetica", "", 10)
        for item in invoice.items:
            pdf.cell(100, 7, _pdf_text(item.description)[:60], border=1)
            pdf.cell(25, 7, f"{item.quantity:g}", border=1, align="R")
            pdf.cell(30, 7, _pdf_money(item.unit_amount), border=1, align="R")
            pdf.cell(0, 7, _pdf_money(item.line_total), border=1, align="R",
                     new_x="LMARGIN", new_y="NEXT")
        pdf.ln(3)

    pdf.set_font("Helvetica", "B", 14)
    pdf.cell(0, 10, f"Amount Due: {_pdf_money(invoice.amount)}", align="R",
             new_x="LMARGIN", new_y="NEXT")

    missing = missing_fields(invoice)
    if missing:
        pdf.ln(6)
        pdf.set_font("Helvetica", "I", 9)
        pdf.set_text_color(150, 0, 0)
        pdf.multi_cell(0, 5, _pdf_text(f"Missing data: {', '.join(missing)}"),
                       new_x="LMARGIN", new_y="NEXT")
        pdf.set_text_color(0, 0, 0)

    pdf.ln(8)
    pdf.set_font("Helvetica", "", 10)
    pdf.cell(0, 6, "Thank you for your business!", new_x="LMARGIN", new_y="NEXT")

    logger.info("Rendered PDF for invoice %s (%d missing fields)", invoice.id, len(missing))
    return bytes(pdf.output())


def invoice_filename(invoice: Invoice) -> str:
    ref = invoice.invoice_number or invoice.id[:8]
    return f"invoice-{ref}.pdf"
