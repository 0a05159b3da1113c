from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
import logging

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, MANAGER_ROLES
from app.modules.email.schemas import TestEmailRequest
from app.modules.email.tasks import send_email_task

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/email", tags=["Email"])


@router.post("/test", status_code=status.HTTP_202_ACCEPTED)
def test_email(
    request: TestEmailRequest,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(MANAGER_ROLES))
):
    """
    Queue a test email through the company's configured provider.
    """
    logger.info(f"Queueing test email to {request.to_email}")

    html_content = f"""
    <html>
    <body>
        <h2>{request.subject}</h2>
        <p>{request.message}</p>
        <p>If you received this email, your email configuration is working correctly.</p>
        <hr>
        <p><small>Sent from BillSense</small></p>
    </body>
    </html>
    """

    task = send_email_task.delay(
        to_email=request.to_email,
        subject=request.subject,
        html_content=html_content,
        tenant_id=str(auth_context.tenant_id)
    )
    return {"message": "Test email queued", "task_id": str(task.id)}
