import io

import pytest
from PIL import Image
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

LAB_REPORT_LINES = (
    "Metro Diagnostics - Patient Results",
    "Glucose: 105 mg/dL 70-99",
    "Hemoglobin: 14.2 g/dL 13.5-17.5",
    "TSH: 2.1 mIU/L 0.4-4.0",
)


@pytest.fixture()
def lab_report_text() -> str:
    return "\n".join(LAB_REPORT_LINES)


@pytest.fixture()
def sample_pdf_bytes() -> bytes:
    """Generate a single-page PDF carrying a short lab report."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    for i, line in enumerate(LAB_REPORT_LINES):
        c.drawString(72, 720 - i * 20, line)
    c.save()
    return buf.getvalue()


@pytest.fixture()
def multi_page_pdf_bytes() -> bytes:
    """Generate a two-page PDF with text on the first page only."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 720, "Glucose: 92 mg/dL 70-99")
    c.showPage()
    c.showPage()
    c.save()
    return buf.getvalue()


@pytest.fixture()
def empty_pdf_bytes() -> bytes:
    """Generate a valid PDF with no text content (blank page)."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.showPage()
    c.save()
    return buf.getvalue()


@pytest.fixture()
def png_bytes() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (120, 40), "white").save(buf, format="PNG")
    return buf.getvalue()
