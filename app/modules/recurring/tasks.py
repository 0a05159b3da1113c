"""
Periodic task creating invoices from recurring schedules.
"""
import logging

from app.core.celery import celery_app
from app.database.database import SessionLocal
from app.modules.recurring.service import RecurringInvoiceService

logger = logging.getLogger(__name__)


@celery_app.task
def generate_recurring_invoices():
    db = SessionLocal()
    try:
        logger.info("Generating due recurring invoices")
        result = RecurringInvoiceService(db).generate_due_invoices()
        logger.info(
            f"Recurring invoices: {result.generated} generated, "
            f"{result.deactivated} schedule(s) ended, {result.failed} failed"
        )
        return {
            "status": "completed",
            "generated": result.generated,
            "deactivated": result.deactivated,
            "failed": result.failed
        }
    except Exception as e:
        logger.error(f"Recurring invoice generation failed: {str(e)}")
        raise
    finally:
        db.close()
