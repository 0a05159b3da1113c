"""
Tests for PDF rendering and PDF settings.
"""
import pytest
from datetime import date
from decimal import Decimal
from fastapi import HTTPException

from app.modules.pdf.models import PdfTemplate
from app.modules.pdf.renderer import PdfDocument, PdfLine, PdfStyle, render_pdf, format_money, format_quantity
from app.modules.pdf.schemas import PdfSettingsUpdate
from app.modules.pdf.service import PdfService, client_lines


def document(lines=1):
    return PdfDocument(
        title="INVOICE",
        number="INV-0042",
        issue_date=date(2026, 3, 1),
        second_date_label="Due Date",
        second_date=date(2026, 3, 31),
        status="draft",
        currency="EUR",
        company_name="Studio Owner",
        client_name="Acme Corp",
        lines=[
            PdfLine(description=f"Line {n}", quantity=Decimal("1.5"), rate=Decimal("80"), amount=Decimal("120"))
            for n in range(lines)
        ],
        subtotal=Decimal("120") * lines,
        total=Decimal("120") * lines,
        notes="Thanks!"
    )


class TestRenderer:

    def test_formatting(self):
        assert format_money(Decimal("1234.5"), "USD") == "USD 1,234.50"
        assert format_quantity(Decimal("2.00")) == "2"
        assert format_quantity(Decimal("1.50")) == "1.5"

    @pytest.mark.parametrize("template", ["invoma_classic", "invoma_modern"])
    def test_templates_render(self, template):
        content = render_pdf(document(), PdfStyle(template=template, primary_color="#112233"))
        assert content.startswith(b"%PDF")

    def test_long_documents_render(self):
        short = render_pdf(document(lines=2))
        long = render_pdf(document(lines=80))
        assert long.startswith(b"%PDF")
        assert len(long) > len(short)


class TestPdfService:

    def test_render_invoice(self, db_session, make_invoice):
        invoice = make_invoice("100.00", "250.00")
        content = PdfService(db_session).render_invoice(invoice)
        assert content.startswith(b"%PDF")

    def test_client_lines(self, sample_client):
        lines = client_lines(sample_client)
        assert "Acme Corporation" in lines
        assert "ap@acme.example.com" in lines
        assert client_lines(None) == []

    def test_update_settings(self, db_session, sample_company):
        service = PdfService(db_session)
        updated = service.update_settings(
            sample_company.id, PdfSettingsUpdate(template=PdfTemplate.INVOMA_MODERN, footer_text=None)
        )
        assert updated.template == PdfTemplate.INVOMA_MODERN
        assert updated.footer_text is None

    def test_signature_needs_url(self, db_session, sample_company):
        with pytest.raises(HTTPException) as exc_info:
            PdfService(db_session).update_settings(sample_company.id, PdfSettingsUpdate(show_signature=True))
        assert exc_info.value.status_code == 400
        assert PdfService(db_session).get_settings(sample_company.id).show_signature is False
