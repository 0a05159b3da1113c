import logging
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.modules.company.models import Company
from app.modules.pdf.models import PdfSettings
from app.modules.pdf.renderer import PdfDocument, PdfLine, PdfStyle, render_pdf
from app.modules.pdf.schemas import PdfSettingsUpdate

logger = logging.getLogger(__name__)


def client_lines(client) -> List[str]:
    if not client:
        return []
    lines = []
    if client.company_name:
        lines.append(client.company_name)
    if client.email:
        lines.append(client.email)
    if client.phone:
        lines.append(client.phone)
    address = client.address or {}
    if isinstance(address, dict):
        lines.extend(
            part for part in (
                address.get("street"),
                " ".join(p for p in (address.get("city"), address.get("state"), address.get("postal_code")) if p),
                address.get("country")
            ) if part
        )
    return lines


def company_lines(company: Optional[Company]) -> List[str]:
    if not company:
        return []
    lines = [line for line in (company.email, company.phone) if line]
    lines.extend(company.address_lines)
    if company.vat_tin:
        lines.append(f"Tax ID: {company.vat_tin}")
    return lines


class PdfService:

    def __init__(self, db: Session):
        self.db = db

    def get_settings(self, tenant_id: UUID) -> PdfSettings:
        """PDF settings of the company, created with defaults on first use."""
        pdf_settings = self.db.query(PdfSettings).filter(PdfSettings.tenant_id == tenant_id).first()
        if not pdf_settings:
            pdf_settings = PdfSettings(tenant_id=tenant_id)
            self.db.add(pdf_settings)
            self.db.commit()
            self.db.refresh(pdf_settings)
        return pdf_settings

    def update_settings(self, tenant_id: UUID, data: PdfSettingsUpdate) -> PdfSettings:
        pdf_settings = self.get_settings(tenant_id)
        update_data = data.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            if value is None and field not in ("signature_url", "footer_text", "payment_terms"):
                continue
            setattr(pdf_settings, field, value)

        if pdf_settings.show_signature and not pdf_settings.signature_url:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A signature URL is required to show the signature"
            )

        self.db.commit()
        self.db.refresh(pdf_settings)
        return pdf_settings

    def _style(self, tenant_id: UUID) -> PdfStyle:
        s = self.db.query(PdfSettings).filter(PdfSettings.tenant_id == tenant_id).first()
        if not s:
            return PdfStyle()
        return PdfStyle(
            template=s.template.value,
            primary_color=s.primary_color,
            secondary_color=s.secondary_color,
            text_color=s.text_color,
            border_color=s.border_color,
            show_logo=s.show_logo,
            show_signature=s.show_signature,
            signature_url=s.signature_url,
            footer_text=s.footer_text,
            payment_terms=s.payment_terms
        )

    def _base_document(self, record, title: str, number: str, second_label: str, second_date) -> PdfDocument:
        company = self.db.get(Company, record.tenant_id)
        return PdfDocument(
            title=title,
            number=number,
            issue_date=record.issue_date,
            second_date_label=second_label,
            second_date=second_date,
            status=record.status.value,
            currency=record.currency,
            company_name=company.name if company else "",
            company_lines=company_lines(company),
            company_logo_url=company.logo_url if company else None,
            client_name=record.client.name if record.client else "",
            client_lines=client_lines(record.client),
            lines=[
                PdfLine(
                    description=item.description,
                    quantity=Decimal(item.quantity),
                    rate=Decimal(item.rate),
                    amount=Decimal(item.amount)
                )
                for item in record.items
            ],
            subtotal=Decimal(record.subtotal),
            tax_rate=Decimal(record.tax_rate),
            tax_amount=Decimal(record.tax_amount),
            discount_amount=Decimal(record.discount_amount),
            total=Decimal(record.total),
            notes=record.notes,
            terms=record.terms
        )

    def render_invoice(self, invoice) -> bytes:
        doc = self._base_document(invoice, "INVOICE", invoice.invoice_number, "Due Date", invoice.due_date)
        doc.amount_paid = Decimal(invoice.amount_paid)
        doc.amount_due = Decimal(invoice.amount_due)
        content = render_pdf(doc, self._style(invoice.tenant_id))
        logger.debug(f"Rendered PDF for invoice {invoice.invoice_number} ({len(content)} bytes)")
        return content

    def render_quotation(self, quotation) -> bytes:
        doc = self._base_document(quotation, "QUOTATION", quotation.quote_number, "Valid Until", quotation.expiry_date)
        content = render_pdf(doc, self._style(quotation.tenant_id))
        logger.debug(f"Rendered PDF for quotation {quotation.quote_number} ({len(content)} bytes)")
        return content
