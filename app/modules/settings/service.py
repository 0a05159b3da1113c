import logging
from typing import Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.modules.invoices.models import DocumentType
from app.modules.invoices.numbering import DocumentNumberGenerator
from app.modules.settings.models import (
    CompanySettings, DEFAULT_NOTIFICATION_PREFERENCES, DEFAULT_EMAIL_SETTINGS
)
from app.modules.settings.schemas import SettingsUpdate, SettingsOut, EmailProvider

logger = logging.getLogger(__name__)


def mask_api_key(value: Optional[str]) -> Optional[str]:
    if not value:
        return value
    return "****" + value[-4:]


class SettingsService:

    def __init__(self, db: Session):
        self.db = db

    def get_settings(self, tenant_id: UUID) -> CompanySettings:
        """Company settings, created with defaults on first access."""
        company_settings = self.db.query(CompanySettings).filter(
            CompanySettings.tenant_id == tenant_id
        ).first()
        if not company_settings:
            company_settings = CompanySettings(
                tenant_id=tenant_id,
                notification_preferences=dict(DEFAULT_NOTIFICATION_PREFERENCES),
                email_settings=dict(DEFAULT_EMAIL_SETTINGS)
            )
            self.db.add(company_settings)
            self.db.commit()
            self.db.refresh(company_settings)
        return company_settings

    def to_out(self, company_settings: CompanySettings) -> SettingsOut:
        numbering = DocumentNumberGenerator(self.db)
        invoice_seq = numbering.get_sequence(company_settings.tenant_id, DocumentType.INVOICE)
        quote_seq = numbering.get_sequence(company_settings.tenant_id, DocumentType.QUOTATION)

        email_settings = {**DEFAULT_EMAIL_SETTINGS, **(company_settings.email_settings or {})}
        email_settings["api_key"] = mask_api_key(email_settings.get("api_key"))

        return SettingsOut(
            id=company_settings.id,
            invoice_terms=company_settings.invoice_terms,
            invoice_footer=company_settings.invoice_footer,
            email_signature=company_settings.email_signature,
            currency=company_settings.currency,
            timezone=company_settings.timezone,
            date_format=company_settings.date_format,
            default_tax_rate=company_settings.default_tax_rate,
            default_due_days=company_settings.default_due_days,
            notification_preferences={
                **DEFAULT_NOTIFICATION_PREFERENCES,
                **(company_settings.notification_preferences or {})
            },
            email_settings=email_settings,
            invoice_prefix=invoice_seq.prefix,
            invoice_next_number=invoice_seq.current_number + 1,
            quote_prefix=quote_seq.prefix,
            quote_next_number=quote_seq.current_number + 1,
            updated_at=company_settings.updated_at
        )

    def get(self, tenant_id: UUID) -> SettingsOut:
        return self.to_out(self.get_settings(tenant_id))

    def update(self, tenant_id: UUID, data: SettingsUpdate) -> SettingsOut:
        """
        Update company settings.

        Numbering fields change the invoice and quotation sequences. The next
        number can only move forward. An email api key sent back masked keeps
        the stored key.
        """
        company_settings = self.get_settings(tenant_id)
        update_data = data.model_dump(exclude_unset=True)

        try:
            numbering = DocumentNumberGenerator(self.db)
            invoice_prefix = update_data.pop("invoice_prefix", None)
            invoice_next = update_data.pop("invoice_next_number", None)
            quote_prefix = update_data.pop("quote_prefix", None)
            quote_next = update_data.pop("quote_next_number", None)
            if invoice_prefix is not None or invoice_next is not None:
                numbering.configure(tenant_id, DocumentType.INVOICE, invoice_prefix, invoice_next)
            if quote_prefix is not None or quote_next is not None:
                numbering.configure(tenant_id, DocumentType.QUOTATION, quote_prefix, quote_next)

            if "notification_preferences" in update_data:
                preferences = update_data.pop("notification_preferences") or {}
                company_settings.notification_preferences = {
                    **(company_settings.notification_preferences or {}),
                    **preferences
                }

            if "email_settings" in update_data:
                company_settings.email_settings = self._merge_email_settings(
                    company_settings.email_settings or {},
                    data.email_settings
                )
                update_data.pop("email_settings")

            for field, value in update_data.items():
                if value is not None:
                    setattr(company_settings, field, value)

            self.db.commit()
            self.db.refresh(company_settings)
            logger.info(f"Settings updated for tenant {tenant_id}")
            return self.to_out(company_settings)

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error updating settings for tenant {tenant_id}: {str(e)}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error updating settings"
            )

    def _merge_email_settings(self, current: dict, incoming) -> dict:
        if incoming is None:
            return dict(DEFAULT_EMAIL_SETTINGS)

        merged = incoming.model_dump()
        merged["provider"] = incoming.provider.value
        api_key = merged.get("api_key")
        if api_key and api_key.startswith("****"):
            merged["api_key"] = current.get("api_key")

        if incoming.provider != EmailProvider.SYSTEM:
            if not merged.get("api_key"):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"An API key is required for {incoming.provider.value}"
                )
            if not merged.get("from_email"):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"A sender address is required for {incoming.provider.value}"
                )
        return merged

    def notifications_enabled(self, tenant_id: UUID, notification_type: str) -> bool:
        company_settings = self.db.query(CompanySettings).filter(
            CompanySettings.tenant_id == tenant_id
        ).first()
        preferences = {
            **DEFAULT_NOTIFICATION_PREFERENCES,
            **((company_settings.notification_preferences or {}) if company_settings else {})
        }
        return preferences.get(notification_type, True)
