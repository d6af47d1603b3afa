"""
Tests for notification dispatch and the notification read side.
"""

from models import Notification
from notifications import DatabaseNotificationSink, NotificationDispatcher, NotificationService

from tests.helpers import BlogPlatformTestCase, recording_dispatcher


class TestDispatcherTemplates(BlogPlatformTestCase):
    """Test how editorial events become notifications"""

    def setUp(self):
        super().setUp()
        self.dispatcher, self.sink = recording_dispatcher()

    def test_content_notification(self):
        """Test content events go in-app with the content title"""
        self.dispatcher.send_content_notification(self.author.id, "CONTENT_REJECTED", "My post", "Reason: tone")

        sent = self.sink.sent[0]
        self.assertEqual(sent["type"], "IN_APP")
        self.assertEqual(sent["category"], "CONTENT")
        self.assertEqual(sent["title"], "Content Rejected")
        self.assertEqual(sent["message"], "Your content 'My post' was rejected - Reason: tone")
        self.assertEqual(sent["priority"], "MEDIUM")

    def test_unknown_content_event(self):
        """Test unknown events get a generic title"""
        self.dispatcher.send_content_notification(self.author.id, "POST_FEATURED", "My post")
        self.assertEqual(self.sink.sent[0]["title"], "Post Featured")
        self.assertEqual(self.sink.sent[0]["message"], "Update on 'My post'")

    def test_community_notification(self):
        """Test community events go by email with their priority"""
        self.dispatcher.send_community_notification(self.author.id, "CONTENT_REPORTED", "spam report")

        sent = self.sink.sent[0]
        self.assertEqual(sent["type"], "EMAIL")
        self.assertEqual(sent["category"], "COMMUNITY")
        self.assertEqual(sent["message"], "Content has been reported: spam report")
        self.assertEqual(sent["priority"], "HIGH")

    def test_platform_announcement_is_broadcast(self):
        """Test announcements have no recipient"""
        self.dispatcher.send_platform_announcement("Maintenance", "Tonight at 2am")

        sent = self.sink.sent[0]
        self.assertIsNone(sent["user_id"])
        self.assertEqual(sent["category"], "PLATFORM")
        self.assertEqual(sent["priority"], "MEDIUM")

    def test_emergency_notification(self):
        """Test emergencies are urgent broadcasts"""
        self.dispatcher.send_emergency_notification("Outage", "Database unavailable")

        sent = self.sink.sent[0]
        self.assertIsNone(sent["user_id"])
        self.assertEqual(sent["category"], "EMERGENCY")
        self.assertEqual(sent["priority"], "URGENT")


class TestDatabaseSink(BlogPlatformTestCase):
    """Test persisted notifications"""

    def setUp(self):
        super().setUp()
        self.dispatcher = NotificationDispatcher(DatabaseNotificationSink())
        self.service = NotificationService()

    def test_notification_is_stored_and_delivered(self):
        """Test the sink persists and marks delivery"""
        notification = self.dispatcher.send_community_notification(
            self.author.id, "WORKFLOW_ASSIGNED", "review your post")

        stored = Notification.query.one()
        self.assertEqual(stored.id, notification.id)
        self.assertTrue(stored.is_delivered)
        self.assertEqual(stored.delivery_channel, "EMAIL")
        self.assertIsNotNone(stored.delivered_at)
        self.assertFalse(stored.is_read)

    def test_user_notifications_and_read_state(self):
        """Test unread listing and marking as read"""
        first = self.dispatcher.send_content_notification(self.author.id, "NEW_COMMENT", "Post")
        self.dispatcher.send_content_notification(self.author.id, "BLOG_LIKED", "Post")
        self.dispatcher.send_content_notification(self.admin.id, "BLOG_LIKED", "Other")

        self.assertEqual(len(self.service.get_user_notifications(self.author.id)), 2)

        read = self.service.mark_as_read(first.id)
        self.assertTrue(read.is_read)
        self.assertIsNotNone(read.read_at)

        unread = self.service.get_unread_notifications(self.author.id)
        self.assertEqual([n.title for n in unread], ["Blog Liked"])

    def test_mark_missing_notification(self):
        """Test marking an unknown notification returns None"""
        self.assertIsNone(self.service.mark_as_read(9999))

    def test_analytics(self):
        """Test delivery and read rates with breakdowns"""
        first = self.dispatcher.send_content_notification(self.author.id, "NEW_COMMENT", "Post")
        self.dispatcher.send_community_notification(self.author.id, "CONTENT_REPORTED", "spam")
        self.service.mark_as_read(first.id)

        analytics = self.service.get_notification_analytics()

        self.assertEqual(analytics["total"], 2)
        self.assertEqual(analytics["delivery_rate"], 100.0)
        self.assertEqual(analytics["read_rate"], 50.0)
        self.assertEqual(analytics["notifications_by_type"], {"IN_APP": 1, "EMAIL": 1})
        self.assertEqual(analytics["notifications_by_priority"], {"MEDIUM": 1, "HIGH": 1})

    def test_analytics_without_notifications(self):
        """Test rates are zero when nothing was sent"""
        analytics = self.service.get_notification_analytics()

        self.assertEqual(analytics["total"], 0)
        self.assertEqual(analytics["delivery_rate"], 0.0)
        self.assertEqual(analytics["read_rate"], 0.0)
