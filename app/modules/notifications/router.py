from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from uuid import UUID

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, STAFF_ROLES
from app.modules.notifications.service import NotificationService
from app.modules.notifications.schemas import NotificationOut, NotificationList, UnreadCount

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("/", response_model=NotificationList)
def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    unread_only: bool = Query(False),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return NotificationService(db).get_notifications(
        auth_context.tenant_id, auth_context.user_id, limit, offset, unread_only
    )


@router.get("/unread-count", response_model=UnreadCount)
def get_unread_count(
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    count = NotificationService(db).unread_count(auth_context.tenant_id, auth_context.user_id)
    return UnreadCount(unread_count=count)


@router.post("/read-all")
def mark_all_notifications_read(
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return NotificationService(db).mark_all_read(auth_context.tenant_id, auth_context.user_id)


@router.post("/{notification_id}/read", response_model=NotificationOut)
def mark_notification_read(
    notification_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return NotificationService(db).mark_read(notification_id, auth_context.tenant_id, auth_context.user_id)


@router.delete("/{notification_id}")
def delete_notification(
    notification_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return NotificationService(db).delete_notification(
        notification_id, auth_context.tenant_id, auth_context.user_id
    )
