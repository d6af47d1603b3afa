"""
Storage interfaces used by the editorial core, with Flask-SQLAlchemy
implementations.

The core only depends on the abstract stores; the SQL implementations are
thin wrappers over ``db.session`` and must be used inside an application
context.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from models import db, Blog, ContentMetric, User, Workflow

logger = logging.getLogger(__name__)


class ContentStore(ABC):
    """Persistence for blog posts"""

    @abstractmethod
    def get(self, blog_id) -> Optional[Blog]: ...

    @abstractmethod
    def save(self, blog: Blog) -> Blog: ...

    @abstractmethod
    def delete(self, blog_id) -> bool: ...

    @abstractmethod
    def find_all(self) -> List[Blog]: ...

    @abstractmethod
    def find_by_field(self, field: str, value: Any) -> List[Blog]: ...


class UserStore(ABC):

    @abstractmethod
    def get(self, user_id) -> Optional[User]: ...

    @abstractmethod
    def save(self, user: User) -> User: ...

    @abstractmethod
    def find_all(self) -> List[User]: ...


class WorkflowStore(ABC):
    """Persistence for workflows, with the lookups the engine needs"""

    @abstractmethod
    def get(self, workflow_id) -> Optional[Workflow]: ...

    @abstractmethod
    def get_for_update(self, workflow_id) -> Optional[Workflow]:
        """Load a workflow for a read-modify-write cycle"""

    @abstractmethod
    def save(self, workflow: Workflow) -> Workflow: ...

    @abstractmethod
    def delete(self, workflow_id) -> bool: ...

    @abstractmethod
    def find_all(self) -> List[Workflow]: ...

    @abstractmethod
    def find_by_status(self, status: str) -> List[Workflow]: ...

    @abstractmethod
    def find_by_type(self, workflow_type: str) -> List[Workflow]: ...

    @abstractmethod
    def find_by_assignee(self, assignee: str) -> List[Workflow]: ...

    @abstractmethod
    def find_by_content_id(self, blog_id) -> List[Workflow]: ...


class MetricStore(ABC):
    """Append-only log of content metric observations"""

    @abstractmethod
    def append(self, record: ContentMetric) -> ContentMetric: ...

    @abstractmethod
    def find_all(self) -> List[ContentMetric]: ...

    @abstractmethod
    def find_by_blog_id(self, blog_id) -> List[ContentMetric]: ...

    @abstractmethod
    def find_by_date_range(self, start: datetime, end: datetime) -> List[ContentMetric]:
        """Records with ``start <= timestamp < end``"""

    @abstractmethod
    def find_by_geo_location(self, geo_location: str) -> List[ContentMetric]: ...


def _commit(instance):
    try:
        db.session.add(instance)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to persist %r", instance)
        raise
    return instance


class SqlContentStore(ContentStore):

    def get(self, blog_id):
        if blog_id is None:
            return None
        return db.session.get(Blog, blog_id)

    def save(self, blog):
        return _commit(blog)

    def delete(self, blog_id):
        blog = self.get(blog_id)
        if not blog:
            return False
        try:
            db.session.delete(blog)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
        return True

    def find_all(self):
        return Blog.query.order_by(Blog.id).all()

    def find_by_field(self, field, value):
        column = getattr(Blog, field, None)
        if column is None:
            raise ValueError(f"Unknown blog field: {field}")
        return Blog.query.filter(column == value).order_by(Blog.id).all()


class SqlUserStore(UserStore):

    def get(self, user_id):
        if user_id is None:
            return None
        return db.session.get(User, user_id)

    def save(self, user):
        return _commit(user)

    def find_all(self):
        return User.query.order_by(User.id).all()


class SqlWorkflowStore(WorkflowStore):

    def get(self, workflow_id):
        if workflow_id is None:
            return None
        return db.session.get(Workflow, workflow_id)

    def get_for_update(self, workflow_id):
        # FOR UPDATE is a no-op on SQLite; the engine's per-id lock covers it there
        return (
            Workflow.query
            .filter_by(id=workflow_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    def save(self, workflow):
        return _commit(workflow)

    def delete(self, workflow_id):
        workflow = self.get(workflow_id)
        if not workflow:
            return False
        try:
            db.session.delete(workflow)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
        return True

    def find_all(self):
        return Workflow.query.order_by(Workflow.id).all()

    def find_by_status(self, status):
        return Workflow.query.filter_by(status=status).order_by(Workflow.id).all()

    def find_by_type(self, workflow_type):
        return Workflow.query.filter_by(type=workflow_type).order_by(Workflow.id).all()

    def find_by_assignee(self, assignee):
        return Workflow.query.filter_by(assigned_to=assignee).order_by(Workflow.id).all()

    def find_by_content_id(self, blog_id):
        return Workflow.query.filter_by(blog_id=blog_id).order_by(Workflow.id).all()


class SqlMetricStore(MetricStore):

    def append(self, record):
        if record.id is not None:
            raise ValueError("ContentMetric records are append-only")
        return _commit(record)

    def find_all(self):
        return ContentMetric.query.order_by(ContentMetric.timestamp, ContentMetric.id).all()

    def find_by_blog_id(self, blog_id):
        return (
            ContentMetric.query
            .filter_by(blog_id=blog_id)
            .order_by(ContentMetric.timestamp, ContentMetric.id)
            .all()
        )

    def find_by_date_range(self, start, end):
        return (
            ContentMetric.query
            .filter(ContentMetric.timestamp >= start, ContentMetric.timestamp < end)
            .order_by(ContentMetric.timestamp, ContentMetric.id)
            .all()
        )

    def find_by_geo_location(self, geo_location):
        return (
            ContentMetric.query
            .filter_by(geo_location=geo_location)
            .order_by(ContentMetric.timestamp, ContentMetric.id)
            .all()
        )
