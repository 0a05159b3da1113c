import logging
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.modules.notifications.models import Notification, NotificationType
from app.modules.notifications.schemas import NotificationList

logger = logging.getLogger(__name__)


class NotificationService:

    def __init__(self, db: Session):
        self.db = db

    def notify(
        self,
        tenant_id: UUID,
        type: NotificationType,
        title: str,
        message: Optional[str] = None,
        user_id: Optional[UUID] = None,
        meta: Optional[Dict[str, Any]] = None,
        commit: bool = False
    ) -> Optional[Notification]:
        """
        Add a notification to the session.

        Callers usually create it as part of a larger change and commit
        themselves; pass commit=True for a standalone notification.
        Returns None when the company turned this type off in its settings.
        """
        from app.modules.settings.service import SettingsService

        if not SettingsService(self.db).notifications_enabled(tenant_id, type.value):
            return None

        notification = Notification(
            tenant_id=tenant_id,
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            meta=meta
        )
        self.db.add(notification)
        if commit:
            self.db.commit()
            self.db.refresh(notification)
        logger.debug(f"Notification '{title}' queued for tenant {tenant_id}")
        return notification

    def _visible_to(self, tenant_id: UUID, user_id: UUID):
        return self.db.query(Notification).filter(
            Notification.tenant_id == tenant_id,
            or_(Notification.user_id == user_id, Notification.user_id.is_(None))
        )

    def get_notifications(
        self,
        tenant_id: UUID,
        user_id: UUID,
        limit: int = 50,
        offset: int = 0,
        unread_only: bool = False
    ) -> NotificationList:
        query = self._visible_to(tenant_id, user_id)
        unread_count = query.filter(Notification.is_read == False).count()
        if unread_only:
            query = query.filter(Notification.is_read == False)

        total = query.count()
        items = query.order_by(Notification.created_at.desc()).offset(offset).limit(limit).all()
        return NotificationList(
            items=items,
            total=total,
            unread_count=unread_count,
            limit=limit,
            offset=offset
        )

    def unread_count(self, tenant_id: UUID, user_id: UUID) -> int:
        return self._visible_to(tenant_id, user_id).filter(Notification.is_read == False).count()

    def _get_notification(self, notification_id: UUID, tenant_id: UUID, user_id: UUID) -> Notification:
        notification = self._visible_to(tenant_id, user_id).filter(
            Notification.id == notification_id
        ).first()
        if not notification:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Notification not found"
            )
        return notification

    def mark_read(self, notification_id: UUID, tenant_id: UUID, user_id: UUID) -> Notification:
        notification = self._get_notification(notification_id, tenant_id, user_id)
        notification.is_read = True
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def mark_all_read(self, tenant_id: UUID, user_id: UUID) -> Dict[str, int]:
        updated = self._visible_to(tenant_id, user_id).filter(
            Notification.is_read == False
        ).update({"is_read": True}, synchronize_session=False)
        self.db.commit()
        return {"updated": updated}

    def delete_notification(self, notification_id: UUID, tenant_id: UUID, user_id: UUID) -> Dict[str, str]:
        notification = self._get_notification(notification_id, tenant_id, user_id)
        self.db.delete(notification)
        self.db.commit()
        return {"message": "Notification deleted successfully"}
