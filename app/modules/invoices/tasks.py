"""
Periodic maintenance of invoice and quotation statuses.
"""
import logging

from app.core.celery import celery_app
from app.database.database import SessionLocal
from app.modules.invoices.service import InvoiceService

logger = logging.getLogger(__name__)


@celery_app.task
def mark_overdue_invoices():
    """
    Flag unpaid invoices past their due date and expire old quotations.
    """
    from app.modules.quotations.service import QuotationService

    db = SessionLocal()
    try:
        overdue = InvoiceService(db).mark_overdue()
        expired = QuotationService(db).mark_expired()
        logger.info(f"Status maintenance: {overdue} invoice(s) overdue, {expired} quotation(s) expired")
        return {"status": "completed", "overdue": overdue, "expired": expired}
    except Exception as e:
        logger.error(f"Overdue invoice task failed: {str(e)}")
        raise
    finally:
        db.close()
