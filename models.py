"""
Blog Platform Data Models

This module defines the database models for the blog platform editorial service.
It includes models for users, blogs, comments and reports, the editorial
workflows that govern review and moderation, the append-only content metric
log consumed by analytics, and user notifications.
"""

from datetime import datetime, timezone
from enum import Enum
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import Index, event

db = SQLAlchemy()


def utcnow():
    """Current UTC time as a naive datetime, matching the stored columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


class BlogStatus(Enum):
    """
    Publication state of a blog post.
    """
    DRAFT = "DRAFT"           # Being written/edited
    PUBLISHED = "PUBLISHED"   # Live and visible to readers
    ARCHIVED = "ARCHIVED"     # No longer active but preserved

class WorkflowStatus(Enum):
    """
    Enumeration for editorial workflow status.

    PENDING -> IN_PROGRESS -> COMPLETED | REJECTED | CHANGES_REQUESTED, with
    CHANGES_REQUESTED looping back to IN_PROGRESS on resubmission. CONFIGURED
    and COMPLIANCE_REVIEW are entry states for custom and compliance workflows.
    """
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    CONFIGURED = "CONFIGURED"
    COMPLIANCE_REVIEW = "COMPLIANCE_REVIEW"

TERMINAL_STATUSES = frozenset({WorkflowStatus.COMPLETED.value, WorkflowStatus.REJECTED.value})

class WorkflowType(Enum):
    """Well-known workflow types. Any other string is a custom type."""
    CONTENT_REVIEW = "CONTENT_REVIEW"
    MODERATION = "MODERATION"
    PUBLICATION = "PUBLICATION"
    COMPLIANCE_CHECK = "COMPLIANCE_CHECK"
    URGENT_REVIEW = "URGENT_REVIEW"
    POST_PUBLICATION_MONITORING = "POST_PUBLICATION_MONITORING"
    UPDATE_REVIEW = "UPDATE_REVIEW"

class WorkflowPriority(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"

PRIORITY_RANK = {
    WorkflowPriority.LOW.value: 0,
    WorkflowPriority.MEDIUM.value: 1,
    WorkflowPriority.HIGH.value: 2,
    WorkflowPriority.URGENT.value: 3,
}

class WorkflowAction(Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    REQUEST_CHANGES = "REQUEST_CHANGES"
    ESCALATE = "ESCALATE"

class WorkflowExceptionType(Enum):
    TIMEOUT = "TIMEOUT"
    POLICY_EXCEPTION = "POLICY_EXCEPTION"
    TECHNICAL_ISSUE = "TECHNICAL_ISSUE"
    ESCALATION_REQUIRED = "ESCALATION_REQUIRED"

class LifecycleEvent(Enum):
    PUBLISHED = "PUBLISHED"
    UPDATED = "UPDATED"
    ARCHIVED = "ARCHIVED"
    DELETED = "DELETED"

class NotificationType(Enum):
    """Delivery channel of a notification."""
    EMAIL = "EMAIL"
    IN_APP = "IN_APP"
    PUSH = "PUSH"
    RSS = "RSS"
    PLATFORM = "PLATFORM"

class NotificationCategory(Enum):
    CONTENT = "CONTENT"
    COMMUNITY = "COMMUNITY"
    PLATFORM = "PLATFORM"
    EMERGENCY = "EMERGENCY"


class User(db.Model):
    """
    Represents a platform user.

    Credentials live with the authentication service; this record only holds
    the identity and role the editorial service needs.

    Attributes:
        id (int): Primary key identifier.
        username (str): Unique login name.
        email (str): Unique contact address.
        role (str): One of user, author, moderator, admin.
        bio (str): Optional profile text.
        created_at (datetime): When the user was registered.
        is_active (bool): Whether the account is active.
    """
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    role = db.Column(db.String(20), default='user', nullable=False)
    bio = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)
    is_active = db.Column(db.Boolean, default=True)

    blogs = db.relationship('Blog', back_populates='author')

    def __repr__(self):
        return f'<User {self.username}>'

    def to_dict(self):
        """Convert user to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'role': self.role,
            'bio': self.bio,
            'created_at': _iso(self.created_at),
            'is_active': self.is_active
        }


class Blog(db.Model):
    """
    Represents a blog post, the content item that workflows review.

    Attributes:
        id (int): Primary key identifier.
        title (str): Title of the post.
        slug (str): URL-friendly identifier.
        content (str): Body text, markdown or HTML.
        tags (list): Free-form tag names.
        category (str): Editorial category.
        status (str): DRAFT, PUBLISHED or ARCHIVED.
        author_id (int): Reference to the authoring user.
        seo_title (str): Optional SEO title override.
        seo_description (str): Optional meta description.
        featured_image (str): URL of the featured image.
        views (int): Running view counter.
        created_at (datetime): When the post was created.
        updated_at (datetime): When the post was last modified.
        published_at (datetime): When the post was published.
    """
    __tablename__ = 'blogs'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(220), unique=True, nullable=False)
    content = db.Column(db.Text, nullable=False, default='')
    tags = db.Column(db.JSON, default=list)
    category = db.Column(db.String(100))
    status = db.Column(db.String(20), default=BlogStatus.DRAFT.value, nullable=False)
    author_id = db.Column(db.Integer, db.ForeignKey('users.id'))

    # SEO fields
    seo_title = db.Column(db.String(60))
    seo_description = db.Column(db.Text)
    featured_image = db.Column(db.String(500))

    views = db.Column(db.Integer, default=0)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    published_at = db.Column(db.DateTime)

    author = db.relationship('User', back_populates='blogs')
    comments = db.relationship('Comment', back_populates='blog', cascade='all, delete-orphan')

    __table_args__ = (
        Index('idx_blog_status', 'status'),
        Index('idx_blog_author', 'author_id'),
    )

    def __repr__(self):
        return f'<Blog {self.title}>'

    def to_dict(self, include_content=True):
        """Convert the Blog object to a dictionary for JSON serialization."""
        result = {
            'id': self.id,
            'title': self.title,
            'slug': self.slug,
            'tags': list(self.tags or []),
            'category': self.category,
            'status': self.status,
            'author_id': self.author_id,
            'seo_title': self.seo_title,
            'seo_description': self.seo_description,
            'featured_image': self.featured_image,
            'views': self.views or 0,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
            'published_at': _iso(self.published_at)
        }

        if include_content:
            result['content'] = self.content

        return result

    def publish(self):
        """Publish the blog post."""
        self.status = BlogStatus.PUBLISHED.value
        self.published_at = utcnow()

    def archive(self):
        """Archive the blog post."""
        self.status = BlogStatus.ARCHIVED.value
        self.updated_at = utcnow()


class Comment(db.Model):
    __tablename__ = 'comments'

    id = db.Column(db.Integer, primary_key=True)
    blog_id = db.Column(db.Integer, db.ForeignKey('blogs.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    author = db.Column(db.String(100))
    text = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    blog = db.relationship('Blog', back_populates='comments')

    def to_dict(self):
        return {
            'id': self.id,
            'blog_id': self.blog_id,
            'user_id': self.user_id,
            'author': self.author,
            'text': self.text,
            'created_at': _iso(self.created_at)
        }


class Report(db.Model):
    """
    A reader's report against a piece of content.

    Attributes:
        content_type (str): Kind of reported item (blog, comment, ...).
        content_id (int): Identifier of the reported item.
        reason (str): Reporter's stated reason.
        reporter_id (int): Reporting user, if known.
        assigned_to (str): Moderator picked by auto-assignment.
        workflow_id (int): Moderation workflow opened for the report.
    """
    __tablename__ = 'reports'

    id = db.Column(db.Integer, primary_key=True)
    content_type = db.Column(db.String(50), nullable=False)
    content_id = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.Text, nullable=False)
    reporter_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    assigned_to = db.Column(db.String(100))
    workflow_id = db.Column(db.Integer, db.ForeignKey('workflows.id'))
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'content_type': self.content_type,
            'content_id': self.content_id,
            'reason': self.reason,
            'reporter_id': self.reporter_id,
            'assigned_to': self.assigned_to,
            'workflow_id': self.workflow_id,
            'created_at': _iso(self.created_at)
        }


class Workflow(db.Model):
    """
    An editorial review or moderation task attached to one blog post.

    Attributes:
        id (int): Primary key identifier.
        name (str): Generated display name.
        type (str): Workflow type; well-known values in WorkflowType, others are custom.
        status (str): Current WorkflowStatus value.
        current_step (str): Fine-grained step within the status (APPROVED, ESCALATED, ...).
        assigned_to (str): Actor currently responsible.
        priority (str): LOW, MEDIUM, HIGH or URGENT. Only ever raised.
        blog_id (int): Reviewed blog post.
        initiator_id (int): User who started the workflow.
        created_at (datetime): Creation time.
        updated_at (datetime): Time of the last action.
        due_date (datetime): SLA deadline computed from the type at creation.
        workflow_data (dict): Structured per-workflow payload.
        comments (str): Comments recorded with the last action.
    """
    __tablename__ = 'workflows'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255))
    type = db.Column(db.String(60), nullable=False)
    status = db.Column(db.String(30), default=WorkflowStatus.PENDING.value, nullable=False)
    current_step = db.Column(db.String(60))
    assigned_to = db.Column(db.String(100))
    priority = db.Column(db.String(10), default=WorkflowPriority.LOW.value, nullable=False)

    blog_id = db.Column(db.Integer, db.ForeignKey('blogs.id'))
    initiator_id = db.Column(db.Integer, db.ForeignKey('users.id'))

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow)
    due_date = db.Column(db.DateTime)
    workflow_data = db.Column(db.JSON, default=dict)
    comments = db.Column(db.Text)

    blog = db.relationship('Blog')
    initiator = db.relationship('User')

    __table_args__ = (
        Index('idx_workflow_status', 'status'),
        Index('idx_workflow_assignee', 'assigned_to'),
        Index('idx_workflow_blog', 'blog_id'),
    )

    def __repr__(self):
        return f'<Workflow {self.id} {self.type} {self.status}>'

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    def to_dict(self):
        """Convert the Workflow object to a dictionary for JSON serialization."""
        return {
            'id': self.id,
            'name': self.name,
            'type': self.type,
            'status': self.status,
            'current_step': self.current_step,
            'assigned_to': self.assigned_to,
            'priority': self.priority,
            'blog_id': self.blog_id,
            'initiator_id': self.initiator_id,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
            'due_date': _iso(self.due_date),
            'workflow_data': dict(self.workflow_data or {}),
            'comments': self.comments
        }


class ContentMetric(db.Model):
    """
    One observation window of engagement data for a blog post.

    Records form an append-only event log: once flushed, a row is never
    updated (enforced by the ``before_update`` listener below).
    """
    __tablename__ = 'content_metrics'

    id = db.Column(db.Integer, primary_key=True)
    blog_id = db.Column(db.Integer, db.ForeignKey('blogs.id'), nullable=False)
    views = db.Column(db.Integer, default=0, nullable=False)
    likes = db.Column(db.Integer, default=0, nullable=False)
    shares = db.Column(db.Integer, default=0, nullable=False)
    comments = db.Column(db.Integer, default=0, nullable=False)
    engagement_rate = db.Column(db.Float, default=0.0, nullable=False)
    completion_rate = db.Column(db.Float, default=0.0, nullable=False)
    read_time_seconds = db.Column(db.Integer, default=0, nullable=False)
    geo_location = db.Column(db.String(100))
    timestamp = db.Column(db.DateTime, default=utcnow, nullable=False)

    # SEO metrics
    organic_views = db.Column(db.Integer, default=0, nullable=False)
    seo_score = db.Column(db.Float, default=0.0, nullable=False)

    blog = db.relationship('Blog')

    __table_args__ = (
        Index('idx_metric_blog', 'blog_id'),
        Index('idx_metric_timestamp', 'timestamp'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'blog_id': self.blog_id,
            'views': self.views,
            'likes': self.likes,
            'shares': self.shares,
            'comments': self.comments,
            'engagement_rate': self.engagement_rate,
            'completion_rate': self.completion_rate,
            'read_time_seconds': self.read_time_seconds,
            'geo_location': self.geo_location,
            'timestamp': _iso(self.timestamp),
            'organic_views': self.organic_views,
            'seo_score': self.seo_score
        }


@event.listens_for(ContentMetric, 'before_update')
def _reject_metric_update(mapper, connection, target):
    raise ValueError(f"ContentMetric {target.id} is append-only and cannot be updated")


class Notification(db.Model):
    """
    A notification addressed to one user, or broadcast when user_id is null.

    Lifecycle: created -> delivered (channel side effect) -> optionally read.
    """
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'))
    type = db.Column(db.String(20), nullable=False)
    category = db.Column(db.String(20), nullable=False)
    title = db.Column(db.String(255))
    message = db.Column(db.Text)
    priority = db.Column(db.String(10), default=WorkflowPriority.MEDIUM.value)
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    is_delivered = db.Column(db.Boolean, default=False, nullable=False)
    delivery_channel = db.Column(db.String(20))
    details = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=utcnow)
    delivered_at = db.Column(db.DateTime)
    read_at = db.Column(db.DateTime)

    __table_args__ = (
        Index('idx_notification_user', 'user_id'),
    )

    def __repr__(self):
        return f'<Notification {self.type} {self.title}>'

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'type': self.type,
            'category': self.category,
            'title': self.title,
            'message': self.message,
            'priority': self.priority,
            'is_read': self.is_read,
            'is_delivered': self.is_delivered,
            'delivery_channel': self.delivery_channel,
            'details': dict(self.details or {}),
            'created_at': _iso(self.created_at),
            'delivered_at': _iso(self.delivered_at),
            'read_at': _iso(self.read_at)
        }
