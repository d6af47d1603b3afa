"""
Editorial Workflow Engine for the Blog Platform

This module drives the review and moderation workflows attached to blog
posts: creation with SLA deadlines, priorities and round-robin assignment,
editorial actions, moderator auto-assignment, policy compliance checks,
exception handling and escalation, content lifecycle hooks and workflow
analytics.

State machine::

    PENDING -> IN_PROGRESS -> COMPLETED | REJECTED | CHANGES_REQUESTED
    CHANGES_REQUESTED -> IN_PROGRESS            (resubmit)
    any active state  -> step ESCALATED, priority URGENT

COMPLETED and REJECTED are terminal.
"""

import logging
import re
import threading
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from exceptions import InvalidReference
from metrics_stats import average, safe_ratio
from models import (
    Blog, LifecycleEvent, PRIORITY_RANK, TERMINAL_STATUSES, Workflow, WorkflowAction,
    WorkflowExceptionType, WorkflowPriority, WorkflowStatus, WorkflowType, utcnow
)
from notifications import NotificationDispatcher, notification_dispatcher
from stores import (
    ContentStore, SqlContentStore, SqlUserStore, SqlWorkflowStore, UserStore, WorkflowStore
)

logger = logging.getLogger(__name__)


SLA_BY_TYPE = {
    WorkflowType.URGENT_REVIEW.value: timedelta(hours=2),
    WorkflowType.MODERATION.value: timedelta(hours=24),
    WorkflowType.CONTENT_REVIEW.value: timedelta(days=3),
}
DEFAULT_SLA = timedelta(days=7)

ASSIGNEE_POOLS = {
    WorkflowType.MODERATION.value: ["moderator1", "moderator2", "moderator3"],
    WorkflowType.CONTENT_REVIEW.value: ["editor1", "editor2", "editor3"],
}
DEFAULT_ASSIGNEE_POOL = ["admin1", "admin2"]
DEFAULT_ASSIGNEE = "default_assignee"

MODERATOR_POOLS: Dict[str, List[str]] = {}
DEFAULT_MODERATOR_POOL = ["moderator1", "moderator2", "moderator3"]
DEFAULT_MODERATOR = "default_moderator"

SENIOR_MODERATOR = "senior_moderator"
POLICY_REVIEWER = "policy_reviewer"
TECHNICAL_SUPPORT = "technical_support"

LARGE_CONTENT_LENGTH = 5000

# Workflow ids map onto a fixed pool of locks
LOCK_STRIPES = 64

# Compliance thresholds
MIN_CONTENT_LENGTH = 100
MIN_TITLE_LENGTH = 10
MAX_TITLE_LENGTH = 200
INAPPROPRIATE_WORDS = ["spam", "inappropriate", "violation"]
COPYRIGHT_PHRASE = "copyright violation"

ACTION_TRANSITIONS = {
    WorkflowAction.APPROVE.value: (WorkflowStatus.COMPLETED.value, "APPROVED"),
    WorkflowAction.REJECT.value: (WorkflowStatus.REJECTED.value, "REJECTED"),
    WorkflowAction.REQUEST_CHANGES.value: (WorkflowStatus.CHANGES_REQUESTED.value, "AWAITING_CHANGES"),
}


def _value(member):
    """Accept either an Enum member or its raw string value"""
    return getattr(member, "value", member)


def _epoch_millis(moment: datetime) -> int:
    return int(moment.replace(tzinfo=timezone.utc).timestamp() * 1000)


class WorkflowEngine:
    """
    Editorial workflow state machine.

    Every read-modify-write of a single workflow runs under the lock its id
    hashes to, and the row is loaded with ``get_for_update`` so databases that
    support row locks serialize concurrent writers as well.

    Notification dispatch is fire-and-forget: a failing notifier is logged and
    never fails the workflow operation that triggered it.
    """

    def __init__(self, workflow_store: WorkflowStore, content_store: ContentStore,
                 user_store: UserStore, notifier: NotificationDispatcher,
                 clock: Callable[[], datetime] = utcnow,
                 assignee_pools: Dict[str, List[str]] = None,
                 moderator_pools: Dict[str, List[str]] = None):
        self.workflow_store = workflow_store
        self.content_store = content_store
        self.user_store = user_store
        self.notifier = notifier
        self.clock = clock

        self.assignee_pools = ASSIGNEE_POOLS if assignee_pools is None else assignee_pools
        self.moderator_pools = MODERATOR_POOLS if moderator_pools is None else moderator_pools

        self._rotation: Dict[str, int] = defaultdict(int)
        self._rotation_lock = threading.Lock()

        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]

    @contextmanager
    def _locked(self, workflow_id):
        with self._locks[hash(workflow_id) % LOCK_STRIPES]:
            yield

    def _notify(self, send, *args):
        try:
            send(*args)
        except Exception:
            logger.exception("Notification dispatch failed for %s", getattr(send, "__name__", send))

    # Creation

    def create_workflow(self, blog, initiator, workflow_type) -> Workflow:
        """
        Create a workflow for a blog post.

        Args:
            blog: Blog instance or id; must exist in the content store.
            initiator: User instance or id; must exist in the user store.
            workflow_type: WorkflowType member or any custom type string.

        Returns:
            Workflow: The persisted workflow, status PENDING.

        Raises:
            InvalidReference: If the blog or initiator does not exist.
        """
        workflow_type = _value(workflow_type)
        blog = self._resolve(self.content_store, blog, "Blog")
        initiator = self._resolve(self.user_store, initiator, "User")

        now = self.clock()
        workflow = Workflow(
            name=self._workflow_name(workflow_type, blog.title, now),
            type=workflow_type,
            status=WorkflowStatus.PENDING.value,
            current_step="INITIAL_REVIEW",
            assigned_to=self._next_assignee(workflow_type),
            priority=self._initial_priority(blog, workflow_type),
            blog_id=blog.id,
            initiator_id=initiator.id,
            created_at=now,
            updated_at=now,
            due_date=now + self.sla_for(workflow_type),
            workflow_data={}
        )
        workflow = self.workflow_store.save(workflow)

        logger.info(f"Created {workflow_type} workflow {workflow.id} for blog {blog.id}, "
                    f"assigned to {workflow.assigned_to}")

        self._notify(
            self.notifier.send_community_notification,
            initiator.id,
            "WORKFLOW_ASSIGNED",
            f"New {workflow_type} workflow assigned: {blog.title}"
        )
        return workflow

    def create_custom_workflow(self, name: str, workflow_type, configuration: Dict[str, Any] = None) -> Workflow:
        """Create a standalone, pre-configured workflow not tied to a blog"""
        workflow_type = _value(workflow_type)
        now = self.clock()
        workflow = Workflow(
            name=name,
            type=workflow_type,
            status=WorkflowStatus.CONFIGURED.value,
            priority=WorkflowPriority.LOW.value,
            created_at=now,
            updated_at=now,
            due_date=now + self.sla_for(workflow_type),
            workflow_data=dict(configuration or {})
        )
        workflow = self.workflow_store.save(workflow)
        logger.info(f"Configured custom workflow {workflow.id} ({workflow_type})")
        return workflow

    def sla_for(self, workflow_type) -> timedelta:
        return SLA_BY_TYPE.get(_value(workflow_type), DEFAULT_SLA)

    def _resolve(self, store, ref, kind):
        ref_id = getattr(ref, "id", ref)
        found = store.get(ref_id) if ref_id is not None else None
        if found is None:
            raise InvalidReference(kind, ref_id)
        return found

    def _workflow_name(self, workflow_type: str, title: Optional[str], now: datetime) -> str:
        sanitized = re.sub(r"[^a-zA-Z0-9]", "_", title or "")[:30]
        return f"{workflow_type}_{sanitized}_{_epoch_millis(now)}"

    def _initial_priority(self, blog: Blog, workflow_type: str) -> str:
        if workflow_type == WorkflowType.MODERATION.value:
            return WorkflowPriority.HIGH.value
        if len(blog.content or "") > LARGE_CONTENT_LENGTH:
            return WorkflowPriority.MEDIUM.value
        return WorkflowPriority.LOW.value

    def _next_assignee(self, workflow_type: str) -> str:
        """Round-robin over the pool for this type"""
        if workflow_type in self.assignee_pools:
            pool_key, pool = workflow_type, self.assignee_pools[workflow_type]
        else:
            pool_key, pool = "default", self.assignee_pools.get("default", DEFAULT_ASSIGNEE_POOL)

        if not pool:
            return DEFAULT_ASSIGNEE

        with self._rotation_lock:
            index = self._rotation[pool_key] % len(pool)
            self._rotation[pool_key] += 1
        return pool[index]

    # Editorial actions

    def process_action(self, workflow_id, action, comments: str = None) -> Optional[Workflow]:
        """
        Apply an editorial action to a workflow.

        APPROVE completes the workflow, REJECT rejects it, REQUEST_CHANGES
        sends it back to the author and ESCALATE hands it to a senior
        moderator at URGENT priority. ``updated_at`` and ``comments`` are
        stamped for every action, including unknown ones.

        A missing workflow id is ignored and returns None. Terminal
        workflows never move to a different status; repeating the action
        that terminated them only re-stamps the workflow.
        """
        action = _value(action)

        with self._locked(workflow_id):
            workflow = self.workflow_store.get_for_update(workflow_id)
            if workflow is None:
                logger.warning(f"Ignoring {action} for unknown workflow {workflow_id}")
                return None

            transition = ACTION_TRANSITIONS.get(action)
            notification = None

            if workflow.is_terminal:
                target_status = transition[0] if transition else None
                if action == WorkflowAction.ESCALATE.value or (
                        target_status and target_status != workflow.status):
                    logger.warning(f"Ignoring {action} on workflow {workflow_id}: "
                                   f"already {workflow.status}")
                    return workflow
            elif transition:
                workflow.status, workflow.current_step = transition
                notification = action
            elif action == WorkflowAction.ESCALATE.value:
                self._escalate(workflow)
                notification = action
            else:
                logger.warning(f"Unknown workflow action {action!r} on workflow {workflow_id}")

            workflow.updated_at = self.clock()
            workflow.comments = comments
            workflow = self.workflow_store.save(workflow)

        logger.info(f"Workflow {workflow.id} processed {action}: "
                    f"status={workflow.status} step={workflow.current_step}")

        if notification:
            self._notify_action(workflow, notification, comments)
        return workflow

    def _notify_action(self, workflow: Workflow, action: str, comments: Optional[str]):
        if workflow.initiator_id is None:
            logger.info(f"Workflow {workflow.id} has no initiator; skipping {action} notification")
            return
        title = workflow.blog.title if workflow.blog else workflow.name

        if action == WorkflowAction.APPROVE.value:
            self._notify(self.notifier.send_content_notification,
                         workflow.initiator_id, "CONTENT_APPROVED", title)
        elif action == WorkflowAction.REJECT.value:
            self._notify(self.notifier.send_content_notification,
                         workflow.initiator_id, "CONTENT_REJECTED", title, f"Reason: {comments}")
        elif action == WorkflowAction.REQUEST_CHANGES.value:
            self._notify(self.notifier.send_content_notification,
                         workflow.initiator_id, "CHANGES_REQUESTED", title, f"Changes: {comments}")
        elif action == WorkflowAction.ESCALATE.value:
            self._notify_escalation(workflow, comments)

    def _notify_escalation(self, workflow: Workflow, reason: Optional[str]):
        if workflow.initiator_id is None:
            logger.info(f"Workflow {workflow.id} has no initiator; skipping escalation notification")
            return
        self._notify(
            self.notifier.send_community_notification,
            workflow.initiator_id,
            "WORKFLOW_ESCALATED",
            f"Workflow escalated: {workflow.name} - {reason}"
        )

    def _raise_priority(self, workflow: Workflow, priority) -> None:
        priority = _value(priority)
        if PRIORITY_RANK[priority] > PRIORITY_RANK.get(workflow.priority, -1):
            workflow.priority = priority

    def _escalate(self, workflow: Workflow) -> None:
        self._raise_priority(workflow, WorkflowPriority.URGENT)
        workflow.assigned_to = SENIOR_MODERATOR
        workflow.current_step = "ESCALATED"

    def start_review(self, workflow_id, reviewer: str = None) -> Optional[Workflow]:
        """Move a PENDING workflow into review, optionally reassigning it"""
        with self._locked(workflow_id):
            workflow = self.workflow_store.get_for_update(workflow_id)
            if workflow is None or workflow.status != WorkflowStatus.PENDING.value:
                logger.warning(f"Cannot start review of workflow {workflow_id}")
                return workflow

            workflow.status = WorkflowStatus.IN_PROGRESS.value
            workflow.current_step = "IN_REVIEW"
            if reviewer:
                workflow.assigned_to = reviewer
            workflow.updated_at = self.clock()
            workflow = self.workflow_store.save(workflow)

        logger.info(f"Workflow {workflow.id} in review by {workflow.assigned_to}")
        return workflow

    def resubmit(self, workflow_id, comments: str = None) -> Optional[Workflow]:
        """Return a workflow awaiting changes to review"""
        with self._locked(workflow_id):
            workflow = self.workflow_store.get_for_update(workflow_id)
            if workflow is None or workflow.status != WorkflowStatus.CHANGES_REQUESTED.value:
                logger.warning(f"Cannot resubmit workflow {workflow_id}")
                return workflow

            workflow.status = WorkflowStatus.IN_PROGRESS.value
            workflow.current_step = "RESUBMITTED"
            if comments is not None:
                workflow.comments = comments
            workflow.updated_at = self.clock()
            workflow = self.workflow_store.save(workflow)

        logger.info(f"Workflow {workflow.id} resubmitted")
        return workflow

    # Moderation

    def auto_assign_moderator(self, content_type: str, report_reason: str = None) -> str:
        """
        Pick the moderator with the fewest IN_PROGRESS workflows.

        Ties go to the moderator listed first in the pool.
        """
        pool = self.moderator_pools.get(content_type, DEFAULT_MODERATOR_POOL)
        if not pool:
            return DEFAULT_MODERATOR

        workload: Dict[str, int] = defaultdict(int)
        for workflow in self.workflow_store.find_by_status(WorkflowStatus.IN_PROGRESS.value):
            workload[workflow.assigned_to] += 1

        chosen = min(pool, key=lambda moderator: workload[moderator])
        logger.info(f"Assigned moderator {chosen} for {content_type} report: {report_reason}")
        return chosen

    def check_policy_compliance(self, blog) -> bool:
        """
        Run the publication policy checks on a blog post.

        Failing posts get a COMPLIANCE_CHECK workflow recording every check
        and which of them failed. The result is returned either way; a
        failed check is not an error.
        """
        content = blog.content or ""
        title = blog.title or ""
        content_lower = content.lower()

        checks = {
            "content_length": len(content) >= MIN_CONTENT_LENGTH,
            "appropriate_content": not any(word in content_lower for word in INAPPROPRIATE_WORDS),
            "title_requirements": MIN_TITLE_LENGTH <= len(title) <= MAX_TITLE_LENGTH,
            "copyright_compliance": COPYRIGHT_PHRASE not in content_lower,
        }

        compliant = all(checks.values())
        if not compliant:
            self._create_compliance_workflow(blog, checks)

        return compliant

    def _create_compliance_workflow(self, blog, checks: Dict[str, bool]) -> Workflow:
        now = self.clock()
        failed = [name for name, passed in checks.items() if not passed]

        workflow = Workflow(
            name=f"Compliance_{blog.title}",
            type=WorkflowType.COMPLIANCE_CHECK.value,
            status=WorkflowStatus.COMPLIANCE_REVIEW.value,
            current_step="COMPLIANCE_REVIEW",
            priority=WorkflowPriority.LOW.value,
            blog_id=blog.id,
            initiator_id=blog.author_id,
            created_at=now,
            updated_at=now,
            due_date=now + self.sla_for(WorkflowType.COMPLIANCE_CHECK),
            workflow_data={"checks": checks, "failed_checks": failed}
        )
        workflow = self.workflow_store.save(workflow)
        logger.warning(f"Blog {blog.id} failed compliance checks {failed}; workflow {workflow.id} opened")
        return workflow

    # Exceptions and escalation

    def handle_exception(self, workflow_id, exception_type, details: str = None) -> Optional[Workflow]:
        """
        Route a workflow exception.

        TIMEOUT raises the priority and escalates, POLICY_EXCEPTION and
        TECHNICAL_ISSUE hand the workflow to the matching specialist, and
        ESCALATION_REQUIRED escalates. Each handled exception is appended
        to ``workflow_data["exceptions"]``. Unknown types, unknown ids and
        terminal workflows are ignored.
        """
        exception_type = _value(exception_type)

        with self._locked(workflow_id):
            workflow = self.workflow_store.get_for_update(workflow_id)
            if workflow is None:
                logger.warning(f"Ignoring {exception_type} for unknown workflow {workflow_id}")
                return None
            if workflow.is_terminal:
                logger.warning(f"Ignoring {exception_type} for {workflow.status} workflow {workflow_id}")
                return workflow

            escalation_reason = None
            if exception_type == WorkflowExceptionType.TIMEOUT.value:
                self._raise_priority(workflow, WorkflowPriority.HIGH)
                self._escalate(workflow)
                escalation_reason = "Workflow timeout exceeded"
            elif exception_type == WorkflowExceptionType.POLICY_EXCEPTION.value:
                workflow.current_step = "POLICY_REVIEW"
                workflow.assigned_to = POLICY_REVIEWER
            elif exception_type == WorkflowExceptionType.TECHNICAL_ISSUE.value:
                workflow.current_step = "TECHNICAL_REVIEW"
                workflow.assigned_to = TECHNICAL_SUPPORT
            elif exception_type == WorkflowExceptionType.ESCALATION_REQUIRED.value:
                self._escalate(workflow)
                escalation_reason = details
            else:
                logger.warning(f"Unknown workflow exception type {exception_type!r}")
                return workflow

            now = self.clock()
            data = dict(workflow.workflow_data or {})
            data["exceptions"] = list(data.get("exceptions", [])) + [{
                "type": exception_type,
                "details": details,
                "recorded_at": now.isoformat()
            }]
            workflow.workflow_data = data
            workflow.updated_at = now
            workflow = self.workflow_store.save(workflow)

        logger.info(f"Workflow {workflow.id} handled {exception_type}: step={workflow.current_step}")

        if escalation_reason is not None:
            self._notify_escalation(workflow, escalation_reason)
        return workflow

    def escalate_overdue(self, now: datetime = None) -> List[Workflow]:
        """Escalate every active workflow past its due date as a TIMEOUT"""
        now = now or self.clock()
        overdue = [
            workflow for workflow in self.workflow_store.find_all()
            if workflow.status not in TERMINAL_STATUSES
            and workflow.due_date is not None
            and workflow.due_date < now
            and workflow.current_step != "ESCALATED"
        ]

        escalated = []
        for workflow in overdue:
            result = self.handle_exception(workflow.id, WorkflowExceptionType.TIMEOUT,
                                           f"Overdue since {workflow.due_date.isoformat()}")
            if result is not None:
                escalated.append(result)

        if escalated:
            logger.warning(f"Escalated {len(escalated)} overdue workflows")
        return escalated

    # Lifecycle

    def manage_content_lifecycle(self, blog, event) -> Optional[Workflow]:
        """
        React to a blog lifecycle event.

        PUBLISHED opens a post-publication monitoring workflow and UPDATED
        an update review, both initiated by the blog's author. ARCHIVED and
        DELETED are only logged.
        """
        event = _value(event)
        blog = self._resolve(self.content_store, blog, "Blog")

        if event == LifecycleEvent.PUBLISHED.value:
            return self.create_workflow(blog, blog.author_id, WorkflowType.POST_PUBLICATION_MONITORING)
        if event == LifecycleEvent.UPDATED.value:
            return self.create_workflow(blog, blog.author_id, WorkflowType.UPDATE_REVIEW)
        if event == LifecycleEvent.ARCHIVED.value:
            logger.info(f"Content archived: {blog.title}")
        elif event == LifecycleEvent.DELETED.value:
            logger.info(f"Content deleted: {blog.title}")
        else:
            logger.warning(f"Unknown lifecycle event {event!r} for blog {blog.id}")
        return None

    # Queries

    def get_workflow(self, workflow_id) -> Optional[Workflow]:
        return self.workflow_store.get(workflow_id)

    def list_workflows(self, status: str = None, assignee: str = None, blog_id=None) -> List[Workflow]:
        if blog_id is not None:
            workflows = self.workflow_store.find_by_content_id(blog_id)
        elif assignee is not None:
            workflows = self.workflow_store.find_by_assignee(assignee)
        elif status is not None:
            workflows = self.workflow_store.find_by_status(status)
        else:
            workflows = self.workflow_store.find_all()

        return [
            w for w in workflows
            if (status is None or w.status == status)
            and (assignee is None or w.assigned_to == assignee)
            and (blog_id is None or w.blog_id == blog_id)
        ]

    def get_analytics(self) -> Dict[str, Any]:
        """
        Workflow analytics.

        Returns:
            Dict with ``completion_rates`` (completed / total per type, as a
            fraction), ``average_processing_time`` (mean hours from creation
            to last update of completed workflows per type), ``bottlenecks``
            (open workflows per current step) and ``status_distribution``.
        """
        workflows = self.workflow_store.find_all()
        completed_status = WorkflowStatus.COMPLETED.value

        totals: Dict[str, int] = defaultdict(int)
        completed: Dict[str, int] = defaultdict(int)
        hours_by_type: Dict[str, List[float]] = defaultdict(list)
        bottlenecks: Dict[str, int] = defaultdict(int)
        status_distribution: Dict[str, int] = defaultdict(int)

        for workflow in workflows:
            totals[workflow.type] += 1
            status_distribution[workflow.status] += 1

            if workflow.status == completed_status:
                completed[workflow.type] += 1
                if workflow.created_at and workflow.updated_at:
                    elapsed = workflow.updated_at - workflow.created_at
                    hours_by_type[workflow.type].append(elapsed.total_seconds() / 3600)
            else:
                bottlenecks[workflow.current_step or "UNSPECIFIED"] += 1

        return {
            "completion_rates": {
                workflow_type: safe_ratio(completed[workflow_type], total)
                for workflow_type, total in totals.items()
            },
            "average_processing_time": {
                workflow_type: average(hours) for workflow_type, hours in hours_by_type.items()
            },
            "bottlenecks": dict(bottlenecks),
            "status_distribution": dict(status_distribution),
            "total_workflows": len(workflows)
        }


workflow_engine = WorkflowEngine(
    SqlWorkflowStore(),
    SqlContentStore(),
    SqlUserStore(),
    notification_dispatcher
)
