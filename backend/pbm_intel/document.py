"""
Text extraction for uploaded contracts.

Only digital documents are supported: PDFs with a text layer, DOCX files and
plain text. PDF pages are separated by "--- Page N ---" markers so clause
extraction can report page references.
"""

import io
import logging

import pdfplumber
from docx import Document as DocxDocument

logger = logging.getLogger(__name__)


def page_marker(number: int) -> str:
    return f"--- Page {number} ---"


def extract_text_from_pdf(file_bytes: bytes) -> str:
    pages = []
    with pdfplumber.open(io.BytesIO(file_bytes)) as pdf:
        for i, page in enumerate(pdf.pages, start=1):
            text = page.extract_text()
            if text and text.strip():
                pages.append(f"{page_marker(i)}\n{text.strip()}")
        total = len(pdf.pages)
    if total and not pages:
        logger.warning("PDF has %d pages but no text layer (scanned documents are not supported)", total)
    return "\n\n".join(pages)


def extract_text_from_docx(file_bytes: bytes) -> str:
    doc = DocxDocument(io.BytesIO(file_bytes))
    lines = [p.text.strip() for p in doc.paragraphs if p.text.strip()]

    # Fee schedules are often laid out as tables
    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells]
            row_text = " | ".join(c for c in cells if c)
            if row_text:
                lines.append(row_text)

    return "\n".join(lines)


def extract_text_from_txt(file_bytes: bytes) -> str:
    try:
        return file_bytes.decode("utf-8")
    except UnicodeDecodeError:
        return file_bytes.decode("latin-1")


def extract_text(file_bytes: bytes, filename: str) -> str:
    ext = filename.lower().rsplit(".", 1)[-1] if "." in filename else ""
    if ext == "pdf":
        text = extract_text_from_pdf(file_bytes)
    elif ext == "docx":
        text = extract_text_from_docx(file_bytes)
    elif ext == "txt":
        text = extract_text_from_txt(file_bytes)
    else:
        raise ValueError(f"Unsupported file type: .{ext}. Please upload a PDF, DOCX or TXT file.")
    logger.debug("Extracted %d characters from %s", len(text), filename)
    return text
