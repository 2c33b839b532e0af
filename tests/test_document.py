"""
Tests for contract text extraction.

Tests:
- Plain text decoding with a latin-1 fallback
- DOCX paragraphs and fee-schedule tables
- PDF pages carry page markers
- Unsupported types are rejected
"""

import io

import pytest
from docx import Document
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from pbm_intel.document import extract_text, page_marker


def test_txt_utf8():
    assert extract_text("Dispensing fee: $2.50".encode("utf-8"), "contract.txt") == "Dispensing fee: $2.50"


def test_txt_latin1_fallback():
    raw = "Cl\xe9ment Health Plan".encode("latin-1")
    assert extract_text(raw, "contract.TXT") == "Cl\xe9ment Health Plan"


def test_docx_paragraphs_and_tables():
    doc = Document()
    doc.add_paragraph("Section 1: Administrative Fees")
    table = doc.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "PEPM Fee"
    table.rows[0].cells[1].text = "$8.50"
    buffer = io.BytesIO()
    doc.save(buffer)

    text = extract_text(buffer.getvalue(), "contract.docx")
    assert "Section 1: Administrative Fees" in text
    assert "PEPM Fee | $8.50" in text


def test_pdf_page_markers():
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=letter)
    c.drawString(72, 700, "Section 1: Audit Rights")
    c.showPage()
    c.drawString(72, 700, "Section 2: Termination")
    c.showPage()
    c.save()

    text = extract_text(buffer.getvalue(), "contract.pdf")
    assert text.index(page_marker(1)) < text.index("Audit Rights")
    assert text.index(page_marker(2)) < text.index("Termination")


def test_unsupported_type():
    with pytest.raises(ValueError, match="Unsupported file type"):
        extract_text(b"binary", "contract.xlsx")
