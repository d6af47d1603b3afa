"""
Shared test fixtures for the editorial service test suite.
"""

import unittest
from datetime import datetime, timedelta

import jwt

from app import create_app
from models import db, Blog, User
from notifications import NotificationDispatcher, NotificationSink

JWT_SECRET = "test-jwt-secret"


class FixedClock:
    """Deterministic clock; call ``advance`` to move time forward"""

    def __init__(self, start=datetime(2024, 3, 1, 9, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingSink(NotificationSink):
    """Collects notifications instead of delivering them"""

    def __init__(self):
        self.sent = []

    def send(self, user_id, type, category, title, message, priority):
        entry = {
            "user_id": user_id,
            "type": type,
            "category": category,
            "title": title,
            "message": message,
            "priority": priority
        }
        self.sent.append(entry)
        return entry


class FailingSink(NotificationSink):

    def send(self, user_id, type, category, title, message, priority):
        raise RuntimeError("notification transport down")


def recording_dispatcher():
    sink = RecordingSink()
    return NotificationDispatcher(sink), sink


class BlogPlatformTestCase(unittest.TestCase):
    """Base test case: fresh app and database per test, in memory unless app_config says otherwise"""

    def app_config(self):
        return {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "JWT_SECRET_KEY": JWT_SECRET
        }

    def setUp(self):
        self.app = create_app(self.app_config())
        self.client = self.app.test_client()
        self.ctx = self.app.app_context()
        self.ctx.push()
        db.create_all()
        self.create_test_data()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.ctx.pop()

    def create_test_data(self):
        self.author = self.make_user("author", role="author")
        self.admin = self.make_user("admin", role="admin")
        self.blog = self.make_blog("Getting started with workflow engines", "x" * 200)

    # Factories

    def make_user(self, username, role="user"):
        user = User(username=username, email=f"{username}@example.com", role=role)
        db.session.add(user)
        db.session.commit()
        return user

    def make_blog(self, title, content, author=None, slug=None):
        author = author or self.author
        blog = Blog(
            title=title,
            slug=slug or f"blog-{Blog.query.count() + 1}",
            content=content,
            author_id=author.id
        )
        db.session.add(blog)
        db.session.commit()
        return blog

    # Auth

    def token_for(self, user, role=None, secret=JWT_SECRET, **claims):
        payload = {"user_id": user.id, "role": role or user.role}
        payload.update(claims)
        return jwt.encode(payload, secret, algorithm="HS256")

    def auth_headers(self, user, role=None):
        return {"Authorization": f"Bearer {self.token_for(user, role)}"}
