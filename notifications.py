"""
Notification dispatch for the editorial service.

The workflow engine talks to a ``NotificationDispatcher``, which turns
editorial events into titled messages and hands them to a
``NotificationSink``. The bundled ``DatabaseNotificationSink`` persists each
notification and performs the channel delivery as a logged side effect; real
email/push/RSS transports plug in behind the same interface.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from metrics_stats import percentage
from models import (
    db, Notification, NotificationCategory, NotificationType, WorkflowPriority, utcnow
)

logger = logging.getLogger(__name__)


class NotificationSink(ABC):
    """Fire-and-forget delivery endpoint"""

    @abstractmethod
    def send(self, user_id: Optional[int], type: str, category: str,
             title: str, message: str, priority: str) -> Any:
        """Deliver a notification; ``user_id=None`` means broadcast"""


class DatabaseNotificationSink(NotificationSink):
    """Persists notifications and delivers them over the requested channel"""

    def send(self, user_id, type, category, title, message, priority):
        notification = Notification(
            user_id=user_id,
            type=type,
            category=category,
            title=title,
            message=message,
            priority=priority,
            created_at=utcnow()
        )

        self._deliver(notification)

        try:
            db.session.add(notification)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

        return notification

    def _deliver(self, notification: Notification):
        channel = notification.type
        if channel == NotificationType.EMAIL.value:
            logger.info("Sending email notification: %s", notification.title)
        elif channel == NotificationType.PUSH.value:
            logger.info("Sending push notification: %s", notification.title)
        elif channel == NotificationType.IN_APP.value:
            logger.info("Delivering in-app notification: %s", notification.title)
        elif channel == NotificationType.RSS.value:
            logger.info("Updating RSS feed: %s", notification.title)
        else:
            logger.info("Broadcasting platform notification: %s", notification.title)

        notification.delivery_channel = channel
        notification.is_delivered = True
        notification.delivered_at = utcnow()


# Title and message templates per editorial event
CONTENT_EVENTS = {
    "NEW_BLOG": ("New Blog Published", "A new blog '{title}' has been published"),
    "NEW_COMMENT": ("New Comment", "Someone commented on '{title}'"),
    "BLOG_LIKED": ("Blog Liked", "Your blog '{title}' received a new like"),
    "CONTENT_APPROVED": ("Content Approved", "Your content '{title}' has been approved"),
    "CONTENT_REJECTED": ("Content Rejected", "Your content '{title}' was rejected"),
    "CHANGES_REQUESTED": ("Changes Requested", "Changes were requested for '{title}'"),
}

COMMUNITY_EVENTS = {
    "CONTENT_REPORTED": ("Content Reported", "Content has been reported", WorkflowPriority.HIGH),
    "POLICY_VIOLATION": ("Policy Violation", "Policy violation detected", WorkflowPriority.HIGH),
    "MODERATION_REQUIRED": ("Moderation Required", "Content requires moderation", WorkflowPriority.HIGH),
    "WORKFLOW_ASSIGNED": ("Workflow Assigned", "Workflow assigned", WorkflowPriority.MEDIUM),
    "WORKFLOW_ESCALATED": ("Workflow Escalated", "Workflow escalated", WorkflowPriority.HIGH),
}


class NotificationDispatcher:
    """
    Builds notifications for editorial events and sends them through a sink.

    Content events go in-app; community events go by email, mirroring how
    authors and moderators are reached.
    """

    def __init__(self, sink: NotificationSink = None):
        self.sink = sink or DatabaseNotificationSink()

    def send_notification(self, user_id, type, category, title, message, priority):
        return self.sink.send(user_id, type, category, title, message, priority)

    def send_content_notification(self, user_id: Optional[int], event_type: str,
                                  content_title: str, detail: str = None):
        """Notify an author about something that happened to their content"""
        title, template = CONTENT_EVENTS.get(
            event_type, (event_type.replace("_", " ").title(), "Update on '{title}'")
        )
        message = template.format(title=content_title or "")
        if detail:
            message = f"{message} - {detail}"

        return self.send_notification(
            user_id,
            NotificationType.IN_APP.value,
            NotificationCategory.CONTENT.value,
            title,
            message,
            WorkflowPriority.MEDIUM.value
        )

    def send_community_notification(self, user_id: Optional[int], event_type: str, details: str):
        title, prefix, priority = COMMUNITY_EVENTS.get(
            event_type, (event_type.replace("_", " ").title(), "Notice", WorkflowPriority.MEDIUM)
        )
        return self.send_notification(
            user_id,
            NotificationType.EMAIL.value,
            NotificationCategory.COMMUNITY.value,
            title,
            f"{prefix}: {details}",
            priority.value
        )

    def send_platform_announcement(self, title: str, message: str,
                                   priority: str = WorkflowPriority.MEDIUM.value):
        """Broadcast to every user"""
        return self.send_notification(
            None,
            NotificationType.PLATFORM.value,
            NotificationCategory.PLATFORM.value,
            title,
            message,
            priority
        )

    def send_emergency_notification(self, title: str, message: str):
        logger.warning("EMERGENCY: %s - %s", title, message)
        return self.send_notification(
            None,
            NotificationType.PLATFORM.value,
            NotificationCategory.EMERGENCY.value,
            title,
            message,
            WorkflowPriority.URGENT.value
        )


class NotificationService:
    """Read-side queries and read-state updates for stored notifications"""

    def get_user_notifications(self, user_id: int) -> List[Notification]:
        return (
            Notification.query
            .filter_by(user_id=user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .all()
        )

    def get_unread_notifications(self, user_id: int) -> List[Notification]:
        return (
            Notification.query
            .filter_by(user_id=user_id, is_read=False)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .all()
        )

    def mark_as_read(self, notification_id: int) -> Optional[Notification]:
        notification = db.session.get(Notification, notification_id)
        if not notification:
            return None

        notification.is_read = True
        notification.read_at = utcnow()
        db.session.commit()
        return notification

    def get_notification_analytics(self) -> Dict[str, Any]:
        notifications = Notification.query.all()
        total = len(notifications)

        delivered = sum(1 for n in notifications if n.is_delivered)
        read = sum(1 for n in notifications if n.is_read)

        by_type: Dict[str, int] = {}
        by_priority: Dict[str, int] = {}
        for n in notifications:
            by_type[n.type] = by_type.get(n.type, 0) + 1
            by_priority[n.priority] = by_priority.get(n.priority, 0) + 1

        return {
            "total": total,
            "delivery_rate": percentage(delivered, total),
            "read_rate": percentage(read, total),
            "notifications_by_type": by_type,
            "notifications_by_priority": by_priority
        }


notification_dispatcher = NotificationDispatcher()
notification_service = NotificationService()
