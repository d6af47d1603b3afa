"""
Tests for the editorial workflow engine.
"""

import os
import shutil
import tempfile
import threading
from datetime import timedelta, timezone
from types import SimpleNamespace

from exceptions import InvalidReference
from models import db, Notification, Workflow, WorkflowType
from notifications import DatabaseNotificationSink, NotificationDispatcher
from stores import SqlContentStore, SqlUserStore, SqlWorkflowStore
from workflow_engine import LOCK_STRIPES, WorkflowEngine

from tests.helpers import BlogPlatformTestCase, FailingSink, FixedClock, recording_dispatcher


class WorkflowEngineTestCase(BlogPlatformTestCase):
    """Engine wired to the SQL stores, a fixed clock and a recording notifier"""

    def setUp(self):
        super().setUp()
        self.clock = FixedClock()
        self.dispatcher, self.sink = recording_dispatcher()
        self.engine = self.build_engine()

    def build_engine(self, dispatcher=None, **kwargs):
        return WorkflowEngine(
            SqlWorkflowStore(),
            SqlContentStore(),
            SqlUserStore(),
            dispatcher or self.dispatcher,
            clock=self.clock,
            **kwargs
        )

    def create(self, workflow_type="CONTENT_REVIEW", blog=None):
        return self.engine.create_workflow(blog or self.blog, self.author, workflow_type)

    def sent_titles(self):
        return [entry["title"] for entry in self.sink.sent]


class TestWorkflowCreation(WorkflowEngineTestCase):
    """Test workflow creation"""

    def test_due_date_matches_sla(self):
        """Test the due date of every type is exactly its SLA after creation"""
        expected = {
            "URGENT_REVIEW": timedelta(hours=2),
            "MODERATION": timedelta(hours=24),
            "CONTENT_REVIEW": timedelta(days=3),
            "PUBLICATION": timedelta(days=7),
            "LEGAL_REVIEW": timedelta(days=7),
        }
        for workflow_type, sla in expected.items():
            workflow = self.create(workflow_type)
            self.assertEqual(workflow.due_date - workflow.created_at, sla, workflow_type)
            self.assertEqual(workflow.created_at, workflow.updated_at)

    def test_moderation_of_long_post_is_high_priority(self):
        """Test the type rule wins over the content length rule"""
        blog = self.make_blog("A very long post about moderation", "y" * 6000)
        workflow = self.create("MODERATION", blog)

        self.assertEqual(workflow.priority, "HIGH")
        self.assertEqual(workflow.due_date, workflow.created_at + timedelta(hours=24))

    def test_priority_from_content_length(self):
        """Test long content gets MEDIUM priority and short content LOW"""
        long_blog = self.make_blog("A very long post about reviews", "y" * 5001)

        self.assertEqual(self.create("CONTENT_REVIEW", long_blog).priority, "MEDIUM")
        self.assertEqual(self.create("CONTENT_REVIEW").priority, "LOW")

    def test_initial_state_and_name(self):
        """Test initial status, step and generated name"""
        workflow = self.create(WorkflowType.CONTENT_REVIEW)
        millis = int(self.clock.now.replace(tzinfo=timezone.utc).timestamp() * 1000)

        self.assertEqual(workflow.status, "PENDING")
        self.assertEqual(workflow.current_step, "INITIAL_REVIEW")
        self.assertEqual(workflow.name, f"CONTENT_REVIEW_Getting_started_with_workflow__{millis}")
        self.assertEqual(workflow.blog_id, self.blog.id)
        self.assertEqual(workflow.initiator_id, self.author.id)
        self.assertEqual(workflow.workflow_data, {})

    def test_round_robin_assignment(self):
        """Test assignees rotate through the pool for the type"""
        assignees = [self.create("MODERATION").assigned_to for _ in range(4)]
        self.assertEqual(assignees, ["moderator1", "moderator2", "moderator3", "moderator1"])

        editors = [self.create("CONTENT_REVIEW").assigned_to for _ in range(2)]
        self.assertEqual(editors, ["editor1", "editor2"])

        admins = [self.create("PUBLICATION").assigned_to for _ in range(3)]
        self.assertEqual(admins, ["admin1", "admin2", "admin1"])

    def test_empty_pool_uses_default_assignee(self):
        """Test an empty pool falls back to the default assignee"""
        engine = self.build_engine(assignee_pools={"default": []})
        workflow = engine.create_workflow(self.blog, self.author, "PUBLICATION")
        self.assertEqual(workflow.assigned_to, "default_assignee")

    def test_accepts_ids(self):
        """Test blog and initiator may be passed as ids"""
        workflow = self.engine.create_workflow(self.blog.id, self.author.id, "CONTENT_REVIEW")
        self.assertEqual(workflow.blog_id, self.blog.id)

    def test_missing_blog_raises(self):
        """Test a missing blog is an invalid reference"""
        with self.assertRaises(InvalidReference) as raised:
            self.engine.create_workflow(9999, self.author, "CONTENT_REVIEW")
        self.assertEqual(raised.exception.kind, "Blog")
        self.assertEqual(Workflow.query.count(), 0)

    def test_missing_initiator_raises(self):
        """Test a missing initiator is an invalid reference"""
        with self.assertRaises(InvalidReference) as raised:
            self.engine.create_workflow(self.blog, 9999, "CONTENT_REVIEW")
        self.assertEqual(raised.exception.kind, "User")

    def test_initiator_is_notified(self):
        """Test the initiator gets a community email"""
        self.create("CONTENT_REVIEW")

        self.assertEqual(len(self.sink.sent), 1)
        notification = self.sink.sent[0]
        self.assertEqual(notification["user_id"], self.author.id)
        self.assertEqual(notification["title"], "Workflow Assigned")
        self.assertEqual(notification["type"], "EMAIL")
        self.assertEqual(notification["category"], "COMMUNITY")
        self.assertIn(self.blog.title, notification["message"])

    def test_notification_failure_does_not_fail_creation(self):
        """Test a broken notifier is logged and ignored"""
        engine = self.build_engine(dispatcher=NotificationDispatcher(FailingSink()))
        workflow = engine.create_workflow(self.blog, self.author, "CONTENT_REVIEW")

        self.assertIsNotNone(workflow.id)
        self.assertEqual(Workflow.query.count(), 1)

    def test_custom_workflow(self):
        """Test a configured custom workflow"""
        workflow = self.engine.create_custom_workflow("Legal sign-off", "LEGAL_REVIEW", {"steps": 3})

        self.assertEqual(workflow.status, "CONFIGURED")
        self.assertEqual(workflow.workflow_data, {"steps": 3})
        self.assertIsNone(workflow.blog_id)
        self.assertEqual(workflow.due_date - workflow.created_at, timedelta(days=7))


class TestWorkflowActions(WorkflowEngineTestCase):
    """Test editorial actions"""

    def test_approve(self):
        """Test approval completes the workflow and notifies the initiator"""
        workflow = self.create()
        self.clock.advance(hours=1)

        result = self.engine.process_action(workflow.id, "APPROVE", "Looks good")

        self.assertEqual(result.status, "COMPLETED")
        self.assertEqual(result.current_step, "APPROVED")
        self.assertEqual(result.comments, "Looks good")
        self.assertEqual(result.updated_at, self.clock.now)
        self.assertEqual(self.sent_titles()[-1], "Content Approved")
        self.assertEqual(self.sink.sent[-1]["user_id"], self.author.id)

    def test_reapprove_only_restamps(self):
        """Test approving a completed workflow again only updates stamps"""
        workflow = self.create()
        self.engine.process_action(workflow.id, "APPROVE", "first")
        notifications = len(self.sink.sent)

        self.clock.advance(minutes=30)
        result = self.engine.process_action(workflow.id, "APPROVE", "second")

        self.assertEqual(result.status, "COMPLETED")
        self.assertEqual(result.current_step, "APPROVED")
        self.assertEqual(result.comments, "second")
        self.assertEqual(result.updated_at, self.clock.now)
        self.assertEqual(len(self.sink.sent), notifications)

    def test_terminal_workflow_is_not_reopened(self):
        """Test REJECT after APPROVE leaves the workflow completed"""
        workflow = self.create()
        self.engine.process_action(workflow.id, "APPROVE", "approved")
        approved_at = workflow.updated_at

        self.clock.advance(minutes=5)
        result = self.engine.process_action(workflow.id, "REJECT", "too late")

        self.assertEqual(result.status, "COMPLETED")
        self.assertEqual(result.comments, "approved")
        self.assertEqual(result.updated_at, approved_at)

    def test_reject(self):
        """Test rejection records the reason in the notification"""
        workflow = self.create()
        result = self.engine.process_action(workflow.id, "REJECT", "Off topic")

        self.assertEqual(result.status, "REJECTED")
        self.assertEqual(result.current_step, "REJECTED")
        self.assertIn("Reason: Off topic", self.sink.sent[-1]["message"])

    def test_request_changes_and_resubmit(self):
        """Test the changes loop back into review"""
        workflow = self.create()
        result = self.engine.process_action(workflow.id, "REQUEST_CHANGES", "Add sources")

        self.assertEqual(result.status, "CHANGES_REQUESTED")
        self.assertEqual(result.current_step, "AWAITING_CHANGES")
        self.assertIn("Changes: Add sources", self.sink.sent[-1]["message"])

        result = self.engine.resubmit(workflow.id, "Sources added")

        self.assertEqual(result.status, "IN_PROGRESS")
        self.assertEqual(result.current_step, "RESUBMITTED")
        self.assertEqual(result.comments, "Sources added")

    def test_escalate(self):
        """Test escalation raises priority and reassigns without changing status"""
        workflow = self.create()
        result = self.engine.process_action(workflow.id, "ESCALATE", "Legal concern")

        self.assertEqual(result.status, "PENDING")
        self.assertEqual(result.priority, "URGENT")
        self.assertEqual(result.assigned_to, "senior_moderator")
        self.assertEqual(result.current_step, "ESCALATED")
        self.assertEqual(self.sent_titles()[-1], "Workflow Escalated")

    def test_unknown_action_only_stamps(self):
        """Test an unknown action only updates the stamps"""
        workflow = self.create()
        self.clock.advance(minutes=1)

        result = self.engine.process_action(workflow.id, "ARCHIVE", "noted")

        self.assertEqual(result.status, "PENDING")
        self.assertEqual(result.current_step, "INITIAL_REVIEW")
        self.assertEqual(result.comments, "noted")
        self.assertEqual(result.updated_at, self.clock.now)

    def test_missing_workflow_is_ignored(self):
        """Test actions on unknown ids are a silent no-op"""
        self.assertIsNone(self.engine.process_action(424242, "APPROVE", "x"))

    def test_start_review(self):
        """Test review start and reassignment"""
        workflow = self.create()
        result = self.engine.start_review(workflow.id, reviewer="editor9")

        self.assertEqual(result.status, "IN_PROGRESS")
        self.assertEqual(result.current_step, "IN_REVIEW")
        self.assertEqual(result.assigned_to, "editor9")

    def test_start_review_requires_pending(self):
        """Test a completed workflow cannot be put back in review"""
        workflow = self.create()
        self.engine.process_action(workflow.id, "APPROVE", None)

        result = self.engine.start_review(workflow.id)
        self.assertEqual(result.status, "COMPLETED")


class TestModerationAndCompliance(WorkflowEngineTestCase):
    """Test moderator assignment and policy compliance"""

    def test_auto_assign_picks_lowest_workload(self):
        """Test the least loaded moderator is chosen"""
        for reviewer in ["moderator1", "moderator1", "moderator2"]:
            workflow = self.create("MODERATION")
            self.engine.start_review(workflow.id, reviewer=reviewer)

        self.assertEqual(self.engine.auto_assign_moderator("blog", "spam"), "moderator3")

    def test_auto_assign_tie_goes_to_first(self):
        """Test ties are broken by pool order"""
        self.assertEqual(self.engine.auto_assign_moderator("comment", "abuse"), "moderator1")

    def test_auto_assign_ignores_pending_workflows(self):
        """Test only IN_PROGRESS workflows count towards workload"""
        workflow = self.create("MODERATION")
        self.assertEqual(workflow.assigned_to, "moderator1")
        self.assertEqual(self.engine.auto_assign_moderator("blog", "spam"), "moderator1")

    def test_compliant_post(self):
        """Test a compliant post creates no workflow"""
        self.assertTrue(self.engine.check_policy_compliance(self.blog))
        self.assertEqual(Workflow.query.count(), 0)

    def test_short_content_fails_compliance(self):
        """Test short content creates exactly one compliance workflow"""
        blog = self.make_blog("A title that is long enough", "too short")

        self.assertFalse(self.engine.check_policy_compliance(blog))

        workflows = Workflow.query.all()
        self.assertEqual(len(workflows), 1)
        workflow = workflows[0]
        self.assertEqual(workflow.type, "COMPLIANCE_CHECK")
        self.assertEqual(workflow.status, "COMPLIANCE_REVIEW")
        self.assertEqual(workflow.blog_id, blog.id)
        self.assertEqual(workflow.workflow_data["failed_checks"], ["content_length"])
        self.assertFalse(workflow.workflow_data["checks"]["content_length"])
        self.assertTrue(workflow.workflow_data["checks"]["title_requirements"])

    def test_inappropriate_and_copyright_checks(self):
        """Test word and copyright checks are recorded"""
        content = "This post is a copyright violation and contains spam. " * 3
        blog = self.make_blog("Short", content)

        self.assertFalse(self.engine.check_policy_compliance(blog))

        failed = Workflow.query.one().workflow_data["failed_checks"]
        self.assertEqual(failed, ["appropriate_content", "title_requirements", "copyright_compliance"])

    def test_missing_fields_count_as_empty(self):
        """Test None title and content fail without raising"""
        blog = SimpleNamespace(id=self.blog.id, author_id=self.author.id, title=None, content=None)

        self.assertFalse(self.engine.check_policy_compliance(blog))
        self.assertEqual(Workflow.query.one().name, "Compliance_None")


class TestExceptionsAndEscalation(WorkflowEngineTestCase):
    """Test exception routing and overdue escalation"""

    def test_timeout_escalates(self):
        """Test a timeout escalates to a senior moderator"""
        workflow = self.create()
        result = self.engine.handle_exception(workflow.id, "TIMEOUT", "no response")

        self.assertEqual(result.priority, "URGENT")
        self.assertEqual(result.assigned_to, "senior_moderator")
        self.assertEqual(result.current_step, "ESCALATED")
        self.assertEqual(result.workflow_data["exceptions"][0]["type"], "TIMEOUT")
        self.assertEqual(self.sent_titles()[-1], "Workflow Escalated")

    def test_policy_exception(self):
        """Test a policy exception goes to the policy reviewer"""
        workflow = self.create()
        result = self.engine.handle_exception(workflow.id, "POLICY_EXCEPTION", "grey area")

        self.assertEqual(result.current_step, "POLICY_REVIEW")
        self.assertEqual(result.assigned_to, "policy_reviewer")
        self.assertEqual(result.priority, "LOW")
        self.assertEqual(result.workflow_data["exceptions"][0]["details"], "grey area")

    def test_technical_issue(self):
        """Test a technical issue goes to technical support"""
        workflow = self.create()
        result = self.engine.handle_exception(workflow.id, "TECHNICAL_ISSUE", "render failure")

        self.assertEqual(result.current_step, "TECHNICAL_REVIEW")
        self.assertEqual(result.assigned_to, "technical_support")

    def test_escalation_required(self):
        """Test explicit escalation"""
        workflow = self.create()
        result = self.engine.handle_exception(workflow.id, "ESCALATION_REQUIRED", "VIP author")

        self.assertEqual(result.priority, "URGENT")
        self.assertEqual(result.current_step, "ESCALATED")

    def test_exceptions_accumulate(self):
        """Test each exception is appended to the workflow data"""
        workflow = self.create()
        self.engine.handle_exception(workflow.id, "TECHNICAL_ISSUE", "first")
        result = self.engine.handle_exception(workflow.id, "POLICY_EXCEPTION", "second")

        details = [entry["details"] for entry in result.workflow_data["exceptions"]]
        self.assertEqual(details, ["first", "second"])

    def test_priority_is_never_lowered(self):
        """Test a timeout after escalation keeps URGENT priority"""
        workflow = self.create()
        self.engine.process_action(workflow.id, "ESCALATE", "now")
        result = self.engine.handle_exception(workflow.id, "TIMEOUT", None)

        self.assertEqual(result.priority, "URGENT")

    def test_unknown_exception_type_is_ignored(self):
        """Test unknown exception types change nothing"""
        workflow = self.create()
        result = self.engine.handle_exception(workflow.id, "SOLAR_FLARE", None)

        self.assertEqual(result.current_step, "INITIAL_REVIEW")
        self.assertNotIn("exceptions", result.workflow_data)

    def test_missing_workflow_is_ignored(self):
        """Test exceptions on unknown ids are a silent no-op"""
        self.assertIsNone(self.engine.handle_exception(424242, "TIMEOUT", None))

    def test_escalate_overdue(self):
        """Test overdue workflows are escalated once"""
        urgent = self.create("URGENT_REVIEW")
        relaxed = self.create("CONTENT_REVIEW")

        self.clock.advance(hours=3)
        escalated = self.engine.escalate_overdue()

        self.assertEqual([w.id for w in escalated], [urgent.id])
        self.assertEqual(self.engine.get_workflow(relaxed.id).current_step, "INITIAL_REVIEW")
        self.assertEqual(self.engine.escalate_overdue(), [])

    def test_completed_workflows_are_not_escalated(self):
        """Test terminal workflows are never overdue"""
        workflow = self.create("URGENT_REVIEW")
        self.engine.process_action(workflow.id, "APPROVE", None)

        self.assertEqual(self.engine.escalate_overdue(self.clock.now + timedelta(days=1)), [])


class TestLifecycleAndAnalytics(WorkflowEngineTestCase):
    """Test lifecycle hooks, queries and analytics"""

    def test_published_opens_monitoring(self):
        """Test publishing opens a monitoring workflow by the author"""
        workflow = self.engine.manage_content_lifecycle(self.blog, "PUBLISHED")

        self.assertEqual(workflow.type, "POST_PUBLICATION_MONITORING")
        self.assertEqual(workflow.initiator_id, self.blog.author_id)

    def test_updated_opens_review(self):
        """Test updating opens an update review"""
        workflow = self.engine.manage_content_lifecycle(self.blog.id, "UPDATED")
        self.assertEqual(workflow.type, "UPDATE_REVIEW")

    def test_archived_and_deleted_only_log(self):
        """Test archive and delete events create nothing"""
        self.assertIsNone(self.engine.manage_content_lifecycle(self.blog, "ARCHIVED"))
        self.assertIsNone(self.engine.manage_content_lifecycle(self.blog, "DELETED"))
        self.assertEqual(Workflow.query.count(), 0)

    def test_lifecycle_for_missing_blog_raises(self):
        """Test lifecycle events need an existing blog"""
        with self.assertRaises(InvalidReference):
            self.engine.manage_content_lifecycle(9999, "PUBLISHED")

    def test_list_workflows(self):
        """Test filtering workflows"""
        first = self.create("MODERATION")
        second = self.create("CONTENT_REVIEW")
        self.engine.start_review(second.id)

        self.assertEqual([w.id for w in self.engine.list_workflows()], [first.id, second.id])
        self.assertEqual([w.id for w in self.engine.list_workflows(status="IN_PROGRESS")], [second.id])
        self.assertEqual([w.id for w in self.engine.list_workflows(assignee="moderator1")], [first.id])
        self.assertEqual(
            [w.id for w in self.engine.list_workflows(status="PENDING", blog_id=self.blog.id)],
            [first.id]
        )

    def test_analytics(self):
        """Test completion rates, processing time, bottlenecks and distribution"""
        done = self.create("CONTENT_REVIEW")
        self.create("CONTENT_REVIEW")
        self.create("MODERATION")

        self.clock.advance(hours=2)
        self.engine.process_action(done.id, "APPROVE", None)

        analytics = self.engine.get_analytics()

        self.assertEqual(analytics["completion_rates"], {"CONTENT_REVIEW": 0.5, "MODERATION": 0.0})
        self.assertEqual(analytics["average_processing_time"], {"CONTENT_REVIEW": 2.0})
        self.assertEqual(analytics["bottlenecks"], {"INITIAL_REVIEW": 2})
        self.assertEqual(analytics["status_distribution"], {"COMPLETED": 1, "PENDING": 2})

    def test_analytics_without_workflows(self):
        """Test analytics over an empty store"""
        analytics = self.engine.get_analytics()

        self.assertEqual(analytics["completion_rates"], {})
        self.assertEqual(analytics["average_processing_time"], {})
        self.assertEqual(analytics["bottlenecks"], {})
        self.assertEqual(analytics["status_distribution"], {})


class TestCustomWorkflowNotifications(WorkflowEngineTestCase):
    """Test notifications for workflows without an initiator"""

    def setUp(self):
        super().setUp()
        self.engine = self.build_engine(NotificationDispatcher(DatabaseNotificationSink()))

    def test_approving_custom_workflow_does_not_broadcast(self):
        """Test approving a custom workflow stores no user-less notification"""
        workflow = self.engine.create_custom_workflow("Legal sign-off", "LEGAL_REVIEW")
        result = self.engine.process_action(workflow.id, "APPROVE", "fine")

        self.assertEqual(result.status, "COMPLETED")
        self.assertEqual(Notification.query.filter_by(user_id=None).count(), 0)

    def test_escalating_custom_workflow_does_not_broadcast(self):
        """Test escalations of a custom workflow store no user-less notification"""
        workflow = self.engine.create_custom_workflow("Legal sign-off", "LEGAL_REVIEW")
        self.engine.process_action(workflow.id, "ESCALATE", "stuck")
        self.engine.handle_exception(workflow.id, "ESCALATION_REQUIRED", "still stuck")

        self.assertEqual(Notification.query.filter_by(user_id=None).count(), 0)

    def test_initiator_still_notified(self):
        """Test blog workflows keep notifying their initiator"""
        workflow = self.create()
        self.engine.process_action(workflow.id, "APPROVE", None)

        approved = Notification.query.filter_by(title="Content Approved").all()
        self.assertEqual([n.user_id for n in approved], [self.author.id])


class TestWorkflowLocks(WorkflowEngineTestCase):
    """Test the engine's lock pool"""

    def test_lock_pool_does_not_grow(self):
        """Test operations on many distinct ids reuse the same locks"""
        for offset in range(500):
            self.assertIsNone(self.engine.process_action(10000 + offset, "APPROVE", None))
        for offset in range(500):
            self.assertIsNone(self.engine.handle_exception(20000 + offset, "TIMEOUT", None))

        self.assertEqual(len(self.engine._locks), LOCK_STRIPES)


class TestConcurrentExceptions(WorkflowEngineTestCase):
    """Test concurrent exception handling against a file-backed database"""

    THREADS = 8

    def app_config(self):
        config = super().app_config()
        config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{os.path.join(self.db_dir, 'editorial.db')}"
        config["SQLALCHEMY_ENGINE_OPTIONS"] = {
            "connect_args": {"check_same_thread": False, "timeout": 30}
        }
        return config

    def setUp(self):
        self.db_dir = tempfile.mkdtemp()
        super().setUp()

    def tearDown(self):
        super().tearDown()
        with self.app.app_context():
            db.engine.dispose()
        shutil.rmtree(self.db_dir, ignore_errors=True)

    def test_concurrent_policy_exceptions_are_all_recorded(self):
        """Test no exception entry is lost when threads race on one workflow"""
        workflow_id = self.create().id
        barrier = threading.Barrier(self.THREADS)
        errors = []

        def report(number):
            with self.app.app_context():
                try:
                    barrier.wait()
                    self.engine.handle_exception(workflow_id, "POLICY_EXCEPTION", f"report {number}")
                except Exception as e:
                    errors.append(e)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=report, args=(n,)) for n in range(self.THREADS)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])

        db.session.expire_all()
        workflow = db.session.get(Workflow, workflow_id)
        exceptions = workflow.workflow_data["exceptions"]

        self.assertEqual(len(exceptions), self.THREADS)
        self.assertEqual(
            sorted(entry["details"] for entry in exceptions),
            sorted(f"report {n}" for n in range(self.THREADS))
        )
        self.assertEqual(workflow.current_step, "POLICY_REVIEW")
