"""
reportlab rendering of invoices and quotations.

A template is a fixed sequence of draw calls on a canvas: header, parties,
items table (continued on new pages when it overflows), totals, payment
information, terms and footer. Templates only differ in how they draw the
header and the bill-to block.
"""
import io
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

logger = logging.getLogger(__name__)

PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN = 20 * mm
ROW_HEIGHT = 8 * mm
FOOTER_SPACE = 30 * mm


@dataclass
class PdfStyle:
    template: str = "invoma_classic"
    primary_color: str = "#3B82F6"
    secondary_color: str = "#64748B"
    text_color: str = "#1F2937"
    border_color: str = "#E5E7EB"
    show_logo: bool = True
    show_signature: bool = False
    signature_url: Optional[str] = None
    footer_text: Optional[str] = "Thank you for your business!"
    payment_terms: Optional[str] = "Payment is due within 30 days"


@dataclass
class PdfLine:
    description: str
    quantity: Decimal
    rate: Decimal
    amount: Decimal


@dataclass
class PdfDocument:
    """Everything a template draws, independent of the ORM."""
    title: str
    number: str
    issue_date: date
    second_date_label: str
    second_date: Optional[date]
    status: str
    currency: str
    company_name: str
    company_lines: List[str] = field(default_factory=list)
    company_logo_url: Optional[str] = None
    client_name: str = ""
    client_lines: List[str] = field(default_factory=list)
    lines: List[PdfLine] = field(default_factory=list)
    subtotal: Decimal = Decimal("0")
    tax_rate: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    amount_paid: Optional[Decimal] = None
    amount_due: Optional[Decimal] = None
    notes: Optional[str] = None
    terms: Optional[str] = None


def format_money(value: Decimal, currency: str) -> str:
    return f"{currency} {Decimal(value):,.2f}"


def format_quantity(value: Decimal) -> str:
    text = f"{Decimal(value):f}"
    return text.rstrip("0").rstrip(".") if "." in text else text


def format_date(value: Optional[date]) -> str:
    return value.strftime("%b %d, %Y") if value else "-"


class ClassicTemplate:
    """Company block left, document title right, colored table header."""

    def __init__(self, style: PdfStyle):
        self.style = style
        self.primary = colors.HexColor(style.primary_color)
        self.secondary = colors.HexColor(style.secondary_color)
        self.text = colors.HexColor(style.text_color)
        self.border = colors.HexColor(style.border_color)

    # Columns: right edges of the numeric columns
    @property
    def qty_x(self):
        return PAGE_WIDTH - MARGIN - 60 * mm

    @property
    def rate_x(self):
        return PAGE_WIDTH - MARGIN - 30 * mm

    @property
    def amount_x(self):
        return PAGE_WIDTH - MARGIN - 3 * mm

    def render(self, doc: PdfDocument) -> bytes:
        buffer = io.BytesIO()
        c = canvas.Canvas(buffer, pagesize=A4)
        c.setTitle(f"{doc.title.title()} {doc.number}")

        y = self.draw_header(c, doc)
        y = self.draw_parties(c, doc, y)
        y = self.draw_items(c, doc, y)
        y = self.draw_totals(c, doc, y)
        self.draw_payment_terms(c, doc, y)
        self.draw_notes_and_terms(c, doc)
        self.draw_footer(c)

        c.showPage()
        c.save()
        return buffer.getvalue()

    def draw_logo(self, c, doc: PdfDocument, x: float, y: float, height: float = 15 * mm) -> bool:
        if not (self.style.show_logo and doc.company_logo_url):
            return False
        try:
            image = ImageReader(doc.company_logo_url)
            width, img_height = image.getSize()
            ratio = height / float(img_height or 1)
            c.drawImage(image, x, y - height, width=width * ratio, height=height, mask="auto")
            return True
        except Exception as e:
            logger.warning(f"Logo {doc.company_logo_url} could not be drawn: {str(e)}")
            return False

    def draw_header(self, c, doc: PdfDocument) -> float:
        y = PAGE_HEIGHT - MARGIN
        if self.draw_logo(c, doc, MARGIN, y):
            y -= 18 * mm

        c.setFillColor(self.text)
        c.setFont("Helvetica-Bold", 18)
        c.drawString(MARGIN, y - 6 * mm, doc.company_name or "")

        c.setFillColor(self.primary)
        c.setFont("Helvetica-Bold", 24)
        c.drawRightString(PAGE_WIDTH - MARGIN, y - 6 * mm, doc.title)

        c.setFillColor(self.secondary)
        c.setFont("Helvetica", 9)
        line_y = y - 12 * mm
        for line in doc.company_lines:
            c.drawString(MARGIN, line_y, line)
            line_y -= 4.5 * mm

        details = [
            (f"{doc.title.title()} Number:", doc.number),
            ("Date:", format_date(doc.issue_date)),
            (f"{doc.second_date_label}:", format_date(doc.second_date)),
            ("Status:", doc.status.replace("_", " ").title()),
        ]
        detail_y = y - 12 * mm
        for label, value in details:
            c.setFont("Helvetica-Bold", 9)
            c.setFillColor(self.secondary)
            c.drawRightString(PAGE_WIDTH - MARGIN - 35 * mm, detail_y, label)
            c.setFont("Helvetica", 9)
            c.setFillColor(self.text)
            c.drawRightString(PAGE_WIDTH - MARGIN, detail_y, value)
            detail_y -= 4.5 * mm

        return min(line_y, detail_y) - 8 * mm

    def draw_parties(self, c, doc: PdfDocument, y: float) -> float:
        col1, col2 = MARGIN, PAGE_WIDTH / 2 + 5 * mm
        label = "QUOTATION FOR" if doc.title == "QUOTATION" else "INVOICE TO"

        c.setFont("Helvetica-Bold", 10)
        c.setFillColor(self.primary)
        c.drawString(col1, y, label)
        c.drawString(col2, y, "PAY TO")

        c.setFillColor(self.text)
        c.setFont("Helvetica-Bold", 10)
        c.drawString(col1, y - 6 * mm, doc.client_name or "")
        c.drawString(col2, y - 6 * mm, doc.company_name or "")

        c.setFont("Helvetica", 9)
        c.setFillColor(self.secondary)
        left_y = right_y = y - 11 * mm
        for line in doc.client_lines:
            c.drawString(col1, left_y, line)
            left_y -= 4.5 * mm
        for line in doc.company_lines[:2]:
            c.drawString(col2, right_y, line)
            right_y -= 4.5 * mm

        return min(left_y, right_y) - 8 * mm

    def draw_table_header(self, c, y: float) -> float:
        c.setFillColor(self.primary)
        c.rect(MARGIN, y - 3 * mm, PAGE_WIDTH - 2 * MARGIN, ROW_HEIGHT, fill=1, stroke=0)
        c.setFillColor(colors.white)
        c.setFont("Helvetica-Bold", 9)
        c.drawString(MARGIN + 3 * mm, y, "DESCRIPTION")
        c.drawRightString(self.qty_x, y, "QTY")
        c.drawRightString(self.rate_x, y, "RATE")
        c.drawRightString(self.amount_x, y, "AMOUNT")
        return y - ROW_HEIGHT

    def new_page(self, c) -> float:
        self.draw_footer(c)
        c.showPage()
        return self.draw_table_header(c, PAGE_HEIGHT - MARGIN)

    def draw_items(self, c, doc: PdfDocument, y: float) -> float:
        y = self.draw_table_header(c, y)
        description_width = self.qty_x - MARGIN - 20 * mm

        for index, line in enumerate(doc.lines):
            wrapped = simpleSplit(line.description or "", "Helvetica", 9, description_width) or [""]
            row_height = max(ROW_HEIGHT, len(wrapped) * 4.5 * mm + 3.5 * mm)
            if y - row_height < FOOTER_SPACE:
                y = self.new_page(c)

            if index % 2 == 1:
                c.setFillColor(colors.HexColor("#F9FAFB"))
                c.rect(MARGIN, y - row_height + 5 * mm, PAGE_WIDTH - 2 * MARGIN, row_height, fill=1, stroke=0)

            c.setFillColor(self.text)
            c.setFont("Helvetica", 9)
            text_y = y
            for part in wrapped:
                c.drawString(MARGIN + 3 * mm, text_y, part)
                text_y -= 4.5 * mm
            c.drawRightString(self.qty_x, y, format_quantity(line.quantity))
            c.drawRightString(self.rate_x, y, format_money(line.rate, doc.currency))
            c.drawRightString(self.amount_x, y, format_money(line.amount, doc.currency))

            c.setStrokeColor(self.border)
            c.line(MARGIN, y - row_height + 5 * mm, PAGE_WIDTH - MARGIN, y - row_height + 5 * mm)
            y -= row_height

        return y - 4 * mm

    def draw_totals(self, c, doc: PdfDocument, y: float) -> float:
        rows = [("Subtotal:", format_money(doc.subtotal, doc.currency))]
        if doc.tax_amount:
            rows.append((f"Tax ({format_quantity(doc.tax_rate)}%):", format_money(doc.tax_amount, doc.currency)))
        if doc.discount_amount:
            rows.append(("Discount:", f"-{format_money(doc.discount_amount, doc.currency)}"))

        needed = (len(rows) + 4) * 6 * mm
        if y - needed < FOOTER_SPACE:
            self.draw_footer(c)
            c.showPage()
            y = PAGE_HEIGHT - MARGIN

        label_x = PAGE_WIDTH - MARGIN - 70 * mm
        value_x = PAGE_WIDTH - MARGIN - 3 * mm
        c.setFont("Helvetica", 10)
        for label, value in rows:
            c.setFillColor(self.secondary)
            c.drawString(label_x, y, label)
            c.setFillColor(self.text)
            c.drawRightString(value_x, y, value)
            y -= 6 * mm

        c.setFillColor(self.primary)
        c.rect(label_x - 3 * mm, y - 3.5 * mm, PAGE_WIDTH - MARGIN - label_x + 3 * mm, 10 * mm, fill=1, stroke=0)
        c.setFillColor(colors.white)
        c.setFont("Helvetica-Bold", 11)
        c.drawString(label_x, y, "TOTAL:")
        c.drawRightString(value_x, y, format_money(doc.total, doc.currency))
        y -= 10 * mm

        if doc.amount_paid is not None and doc.amount_paid > 0:
            c.setFont("Helvetica", 10)
            c.setFillColor(self.secondary)
            c.drawString(label_x, y, "Paid:")
            c.drawRightString(value_x, y, format_money(doc.amount_paid, doc.currency))
            y -= 6 * mm
            c.setFont("Helvetica-Bold", 10)
            c.setFillColor(self.text)
            c.drawString(label_x, y, "Amount Due:")
            c.drawRightString(value_x, y, format_money(doc.amount_due or 0, doc.currency))
            y -= 6 * mm
        return y

    def draw_payment_terms(self, c, doc: PdfDocument, y: float):
        if doc.title != "INVOICE" or not self.style.payment_terms:
            return
        c.setFont("Helvetica-Bold", 10)
        c.setFillColor(self.primary)
        c.drawString(MARGIN, y + 10 * mm, "PAYMENT INFORMATION")
        c.setFont("Helvetica", 9)
        c.setFillColor(self.secondary)
        for index, line in enumerate(simpleSplit(self.style.payment_terms, "Helvetica", 9, 80 * mm)[:3]):
            c.drawString(MARGIN, y + 4 * mm - index * 4.5 * mm, line)

    def draw_notes_and_terms(self, c, doc: PdfDocument):
        y = FOOTER_SPACE + 20 * mm
        width = PAGE_WIDTH - 2 * MARGIN
        for heading, body in (("NOTES", doc.notes), ("TERMS & CONDITIONS", doc.terms)):
            if not body:
                continue
            c.setFont("Helvetica-Bold", 9)
            c.setFillColor(self.primary)
            c.drawString(MARGIN, y, heading)
            c.setFont("Helvetica", 8)
            c.setFillColor(self.secondary)
            lines = simpleSplit(body, "Helvetica", 8, width)[:3]
            for index, line in enumerate(lines):
                c.drawString(MARGIN, y - (index + 1) * 4 * mm, line)
            y -= (len(lines) + 2) * 4 * mm

    def draw_footer(self, c):
        c.setStrokeColor(self.border)
        c.line(MARGIN, 22 * mm, PAGE_WIDTH - MARGIN, 22 * mm)
        if self.style.footer_text:
            c.setFont("Helvetica-Oblique", 9)
            c.setFillColor(self.secondary)
            c.drawCentredString(PAGE_WIDTH / 2, 15 * mm, self.style.footer_text)
        c.setFont("Helvetica", 7)
        c.drawRightString(PAGE_WIDTH - MARGIN, 10 * mm, f"Page {c.getPageNumber()}")


class ModernTemplate(ClassicTemplate):
    """Company block left, boxed title with number and dates on the right."""

    def draw_header(self, c, doc: PdfDocument) -> float:
        top = PAGE_HEIGHT - MARGIN
        y = top
        if self.draw_logo(c, doc, MARGIN, y):
            y -= 18 * mm

        c.setFillColor(self.primary)
        c.setFont("Helvetica-Bold", 20)
        c.drawString(MARGIN, y - 6 * mm, doc.company_name or "")
        c.setFont("Helvetica", 9)
        c.setFillColor(self.secondary)
        line_y = y - 12 * mm
        for line in doc.company_lines:
            c.drawString(MARGIN, line_y, line)
            line_y -= 4.5 * mm

        box_width, box_height = 60 * mm, 44 * mm
        box_x = PAGE_WIDTH - MARGIN - box_width
        box_y = top - box_height
        c.setStrokeColor(self.primary)
        c.rect(box_x, box_y, box_width, box_height, fill=0, stroke=1)
        c.setFillColor(self.primary)
        c.rect(box_x, top - 10 * mm, box_width, 10 * mm, fill=1, stroke=0)
        c.setFillColor(colors.white)
        c.setFont("Helvetica-Bold", 13)
        c.drawCentredString(box_x + box_width / 2, top - 7 * mm, doc.title)

        rows = [
            ("Number:", doc.number),
            ("Date:", format_date(doc.issue_date)),
            (f"{doc.second_date_label}:", format_date(doc.second_date)),
        ]
        row_y = top - 16 * mm
        for label, value in rows:
            c.setFont("Helvetica-Bold", 8)
            c.setFillColor(self.secondary)
            c.drawString(box_x + 3 * mm, row_y, label)
            c.setFont("Helvetica", 9)
            c.setFillColor(self.text)
            c.drawString(box_x + 3 * mm, row_y - 4.5 * mm, value)
            row_y -= 9.5 * mm

        return min(line_y, box_y) - 8 * mm

    def draw_parties(self, c, doc: PdfDocument, y: float) -> float:
        label = "QUOTATION FOR" if doc.title == "QUOTATION" else "INVOICE TO"
        c.setStrokeColor(self.primary)
        c.setLineWidth(2)
        c.line(MARGIN, y + 4 * mm, MARGIN + 25 * mm, y + 4 * mm)
        c.setLineWidth(1)

        c.setFont("Helvetica-Bold", 10)
        c.setFillColor(self.primary)
        c.drawString(MARGIN, y, label)
        c.setFillColor(self.text)
        c.drawString(MARGIN, y - 6 * mm, doc.client_name or "")
        c.setFont("Helvetica", 9)
        c.setFillColor(self.secondary)
        line_y = y - 11 * mm
        for line in doc.client_lines:
            c.drawString(MARGIN, line_y, line)
            line_y -= 4.5 * mm
        return line_y - 8 * mm


TEMPLATES = {
    "invoma_classic": ClassicTemplate,
    "invoma_modern": ModernTemplate,
}


def render_pdf(doc: PdfDocument, style: Optional[PdfStyle] = None) -> bytes:
    style = style or PdfStyle()
    template_class = TEMPLATES.get(style.template, ClassicTemplate)
    return template_class(style).render(doc)
