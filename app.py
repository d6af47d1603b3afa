"""
Blog Platform Editorial Service - Flask Application

This is the main application file for the blog platform's editorial service.
It exposes a RESTful API over the editorial core:
- Users, blog posts, comments and reader reports
- Editorial workflows (review, moderation, compliance, escalation)
- Content analytics and heuristic content scoring
- Notifications
- Service performance monitoring

Every request's latency is recorded by the performance monitor under a
category derived from its URL.
"""

import logging
import time
from datetime import datetime, timezone
from functools import wraps

import jwt
from flask import Blueprint, Flask, current_app, g, jsonify, request
from flask_cors import CORS

from analytics import analytics_aggregator
from config import get_config
from content_scoring import content_scorer
from exceptions import InvalidReference, ValidationFailure
from models import (
    db, Blog, BlogStatus, Comment, LifecycleEvent, Notification, Report, User, WorkflowStatus,
    WorkflowType
)
from notifications import notification_dispatcher, notification_service
from performance_monitor import performance_monitor
from workflow_engine import workflow_engine

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__)

USER_ROLES = ("user", "author", "moderator", "admin")
ADMIN_ROLES = ("admin", "moderator")


def create_app(config_overrides=None):
    """
    Application factory.

    Args:
        config_overrides (dict, optional): Settings applied on top of the
            configuration class selected by FLASK_ENV.
    """
    app = Flask(__name__)
    app.config.from_object(get_config())
    if config_overrides:
        app.config.update(config_overrides)

    # Setup CORS
    CORS(app, origins=app.config["CORS_ALLOWED_ORIGINS"])

    # Setup database
    db.init_app(app)

    # Setup Logging
    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    app.register_blueprint(api)
    register_error_handlers(app)

    # Create tables when the application starts for the first time
    with app.app_context():
        db.create_all()

    return app


# Authentication decorators
def _decode_token():
    token = request.headers.get('Authorization')
    if not token:
        return None, (jsonify({'error': 'Token is missing'}), 401)

    try:
        if token.startswith('Bearer '):
            token = token[7:]
        data = jwt.decode(token, current_app.config['JWT_SECRET_KEY'], algorithms=['HS256'])
        return (data['user_id'], data.get('role', 'user')), None
    except jwt.ExpiredSignatureError:
        return None, (jsonify({'error': 'Token has expired'}), 401)
    except (jwt.InvalidTokenError, KeyError):
        return None, (jsonify({'error': 'Token is invalid'}), 401)


def token_required(f):
    """
    Decorator to require JWT authentication for protected endpoints.

    The wrapped view receives the caller's user id and role as its first
    two arguments.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        identity, error = _decode_token()
        if error:
            return error

        current_user_id, current_user_role = identity
        return f(current_user_id, current_user_role, *args, **kwargs)

    return decorated


def admin_required(f):
    """
    Decorator to require the admin or moderator role.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        identity, error = _decode_token()
        if error:
            return error

        current_user_id, current_user_role = identity
        if current_user_role not in ADMIN_ROLES:
            return jsonify({'error': 'Admin access required'}), 403

        return f(current_user_id, current_user_role, *args, **kwargs)

    return decorated


# Request latency tracking
def request_category(path, args=None):
    """Performance monitor category for a request path, or None to skip it"""
    if path.startswith("/api/users") or path.startswith("/api/auth"):
        return "authentication"
    if path.startswith("/api/blogs"):
        if "/comments" in path:
            return "comments"
        if args and args.get("search"):
            return "search"
        return "content"
    if path.startswith("/api/analytics"):
        return "analytics"
    if path.startswith("/api/workflows"):
        return "workflows"
    if path.startswith("/api/content"):
        return "scoring"
    if path.startswith("/api/reports"):
        return "moderation"
    if path.startswith("/api/notifications"):
        return "notifications"
    return None


@api.before_app_request
def start_timer():
    g.request_started = time.perf_counter()


@api.after_app_request
def record_latency(response):
    started = g.pop("request_started", None)
    category = request_category(request.path, request.args)
    if started is not None and category:
        performance_monitor.record_response_time(category, (time.perf_counter() - started) * 1000)
    return response


def _parse_datetime(value, name):
    if not value:
        raise ValidationFailure(f"Missing required parameter: {name}")
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise ValidationFailure(f"Invalid datetime for {name}: {value}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _get_or_404(model, object_id):
    instance = db.session.get(model, object_id)
    if instance is None:
        raise InvalidReference(model.__name__, object_id)
    return instance


@api.route("/health", methods=["GET"])
def health_check():
    """
    Health check endpoint for service monitoring.

    Verifies that the service is running and can reach the database.
    """
    try:
        db.session.execute(db.text("SELECT 1"))
        return jsonify({
            "status": "ok",
            "service": "blog-platform-editorial-service",
            "version": "1.0.0",
            "features": ["blogs", "workflows", "analytics", "scoring", "notifications", "performance"]
        }), 200
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return jsonify({
            "status": "error",
            "service": "blog-platform-editorial-service",
            "error": "Database connection failed"
        }), 500


# --- User Endpoints ---
@api.route("/api/users", methods=["POST"])
def create_user():
    """
    Register a user record.

    Request Body:
        username (str): Unique login name.
        email (str): Unique contact address.
        role (str, optional): user, author, moderator or admin (default: user).
        bio (str, optional): Profile text.
    """
    data = request.get_json()
    if not data or not all(key in data for key in ["username", "email"]):
        return jsonify({"error": "Missing required fields: username, email"}), 400

    role = data.get("role", "user")
    if role not in USER_ROLES:
        return jsonify({"error": "Invalid role value"}), 400

    if User.query.filter((User.username == data["username"]) | (User.email == data["email"])).first():
        return jsonify({"error": "User with this username or email already exists"}), 409

    user = User(username=data["username"], email=data["email"], role=role, bio=data.get("bio"))
    db.session.add(user)
    db.session.commit()

    logger.info(f"Created user {user.username}")
    return jsonify({"message": "User created successfully", "user": user.to_dict()}), 201


@api.route("/api/users/<int:user_id>", methods=["GET"])
def get_user(user_id):
    return jsonify(_get_or_404(User, user_id).to_dict()), 200


# --- Blog Endpoints ---
@api.route("/api/blogs", methods=["POST"])
@token_required
def create_blog(current_user_id, current_user_role):
    """
    Create a new blog post as a draft.

    Request Body:
        title (str): Title of the post.
        content (str): Body of the post (HTML or markdown).
        slug (str, optional): Custom URL slug (auto-generated if not provided).
        tags (list, optional): Tag names.
        category (str, optional): Editorial category.
        seo_title (str, optional): SEO title override.
        seo_description (str, optional): Meta description.
        featured_image (str, optional): Featured image URL.
    """
    data = request.get_json()
    if not data or not all(key in data for key in ["title", "content"]):
        return jsonify({"error": "Missing required fields: title, content"}), 400

    slug = data.get('slug') or content_scorer.generate_slug(data['title'])
    if Blog.query.filter_by(slug=slug).first():
        return jsonify({"error": "Blog with this slug already exists"}), 409

    blog = Blog(
        title=data['title'],
        slug=slug,
        content=data['content'],
        tags=list(data.get('tags') or []),
        category=data.get('category'),
        status=BlogStatus.DRAFT.value,
        author_id=current_user_id,
        seo_title=data.get('seo_title'),
        seo_description=data.get('seo_description'),
        featured_image=data.get('featured_image')
    )
    db.session.add(blog)
    db.session.commit()

    logger.info(f"Created new blog: {blog.title} by user {current_user_id}")
    return jsonify({"message": "Blog created successfully", "blog": blog.to_dict()}), 201


@api.route("/api/blogs", methods=["GET"])
def get_blogs():
    """
    List blog posts.

    Query Parameters:
        status (str): Filter by status (default: all).
        author_id (int): Filter by author.
        search (str): Search in title and content.
        limit (int): Maximum number of posts to return.
        offset (int): Number of posts to skip.
        include_content (bool): Include full content in response.
    """
    status = request.args.get('status')
    author_id = request.args.get('author_id', type=int)
    search = request.args.get('search')
    limit = request.args.get('limit', 20, type=int)
    offset = request.args.get('offset', 0, type=int)
    include_content = request.args.get('include_content', 'false').lower() == 'true'

    query = Blog.query
    if status:
        try:
            query = query.filter_by(status=BlogStatus(status).value)
        except ValueError:
            return jsonify({"error": "Invalid status value"}), 400
    if author_id:
        query = query.filter_by(author_id=author_id)
    if search:
        pattern = f"%{search}%"
        query = query.filter(Blog.title.ilike(pattern) | Blog.content.ilike(pattern))

    total = query.count()
    blogs = query.order_by(Blog.created_at.desc(), Blog.id.desc()).offset(offset).limit(limit).all()

    return jsonify({
        "blogs": [blog.to_dict(include_content=include_content) for blog in blogs],
        "pagination": {"total": total, "limit": limit, "offset": offset}
    }), 200


@api.route("/api/blogs/<int:blog_id>", methods=["GET"])
def get_blog(blog_id):
    return jsonify(_get_or_404(Blog, blog_id).to_dict()), 200


def _can_edit(blog, current_user_id, current_user_role):
    return blog.author_id == current_user_id or current_user_role in ADMIN_ROLES


@api.route("/api/blogs/<int:blog_id>", methods=["PUT"])
@token_required
def update_blog(current_user_id, current_user_role, blog_id):
    """
    Update a blog post. Updating a published post opens an update review.
    """
    blog = _get_or_404(Blog, blog_id)
    if not _can_edit(blog, current_user_id, current_user_role):
        return jsonify({"error": "Permission denied"}), 403

    data = request.get_json()
    if not data:
        return jsonify({"error": "No data provided"}), 400

    for field in ("title", "content", "category", "seo_title", "seo_description", "featured_image"):
        if field in data:
            setattr(blog, field, data[field])
    if "tags" in data:
        blog.tags = list(data["tags"] or [])
    db.session.commit()

    workflow = None
    if blog.status == BlogStatus.PUBLISHED.value:
        workflow = workflow_engine.manage_content_lifecycle(blog, LifecycleEvent.UPDATED)

    logger.info(f"Updated blog {blog_id} by user {current_user_id}")
    return jsonify({
        "message": "Blog updated successfully",
        "blog": blog.to_dict(),
        "workflow": workflow.to_dict() if workflow else None
    }), 200


@api.route("/api/blogs/<int:blog_id>/publish", methods=["POST"])
@token_required
def publish_blog(current_user_id, current_user_role, blog_id):
    """Publish a blog post and open its post-publication monitoring workflow"""
    blog = _get_or_404(Blog, blog_id)
    if not _can_edit(blog, current_user_id, current_user_role):
        return jsonify({"error": "Permission denied"}), 403

    blog.publish()
    db.session.commit()
    workflow = workflow_engine.manage_content_lifecycle(blog, LifecycleEvent.PUBLISHED)

    logger.info(f"Published blog {blog_id} by user {current_user_id}")
    return jsonify({
        "message": "Blog published successfully",
        "blog": blog.to_dict(),
        "workflow": workflow.to_dict() if workflow else None
    }), 200


@api.route("/api/blogs/<int:blog_id>/archive", methods=["POST"])
@token_required
def archive_blog(current_user_id, current_user_role, blog_id):
    blog = _get_or_404(Blog, blog_id)
    if not _can_edit(blog, current_user_id, current_user_role):
        return jsonify({"error": "Permission denied"}), 403

    blog.archive()
    db.session.commit()
    workflow_engine.manage_content_lifecycle(blog, LifecycleEvent.ARCHIVED)

    logger.info(f"Archived blog {blog_id} by user {current_user_id}")
    return jsonify({"message": "Blog archived successfully", "blog": blog.to_dict()}), 200


@api.route("/api/blogs/<int:blog_id>", methods=["DELETE"])
@token_required
def delete_blog(current_user_id, current_user_role, blog_id):
    blog = _get_or_404(Blog, blog_id)
    if not _can_edit(blog, current_user_id, current_user_role):
        return jsonify({"error": "Permission denied"}), 403

    workflow_engine.manage_content_lifecycle(blog, LifecycleEvent.DELETED)
    db.session.delete(blog)
    db.session.commit()

    logger.info(f"Deleted blog {blog_id} by user {current_user_id}")
    return jsonify({"message": "Blog deleted successfully"}), 200


@api.route("/api/blogs/<int:blog_id>/comments", methods=["POST"])
@token_required
def create_comment(current_user_id, current_user_role, blog_id):
    blog = _get_or_404(Blog, blog_id)

    data = request.get_json()
    if not data or not data.get("text"):
        return jsonify({"error": "Missing required field: text"}), 400

    user = db.session.get(User, current_user_id)
    comment = Comment(
        blog_id=blog.id,
        user_id=current_user_id,
        author=data.get("author") or (user.username if user else None),
        text=data["text"]
    )
    db.session.add(comment)
    db.session.commit()

    if blog.author_id and blog.author_id != current_user_id:
        try:
            notification_dispatcher.send_content_notification(blog.author_id, "NEW_COMMENT", blog.title)
        except Exception:
            logger.exception(f"Failed to notify author of blog {blog.id} about a new comment")

    logger.info(f"Comment {comment.id} added to blog {blog_id} by user {current_user_id}")
    return jsonify({"message": "Comment created successfully", "comment": comment.to_dict()}), 201


@api.route("/api/blogs/<int:blog_id>/comments", methods=["GET"])
def get_comments(blog_id):
    blog = _get_or_404(Blog, blog_id)
    comments = Comment.query.filter_by(blog_id=blog.id).order_by(Comment.created_at, Comment.id).all()
    return jsonify({"comments": [comment.to_dict() for comment in comments]}), 200


# --- Report Endpoints ---
@api.route("/api/reports", methods=["POST"])
@token_required
def create_report(current_user_id, current_user_role):
    """
    Report a piece of content.

    A moderator is picked by workload; reports against a blog post also open
    a MODERATION workflow that goes straight into that moderator's review.

    Request Body:
        content_type (str): Kind of reported item, e.g. blog or comment.
        content_id (int): Identifier of the reported item.
        reason (str): Why the content is reported.
    """
    data = request.get_json()
    if not data or not all(key in data for key in ["content_type", "content_id", "reason"]):
        return jsonify({"error": "Missing required fields: content_type, content_id, reason"}), 400

    moderator = workflow_engine.auto_assign_moderator(data["content_type"], data["reason"])
    report = Report(
        content_type=data["content_type"],
        content_id=data["content_id"],
        reason=data["reason"],
        reporter_id=current_user_id,
        assigned_to=moderator
    )

    workflow = None
    if data["content_type"] == "blog":
        workflow = workflow_engine.create_workflow(data["content_id"], current_user_id, WorkflowType.MODERATION)
        workflow = workflow_engine.start_review(workflow.id, reviewer=moderator)
        report.workflow_id = workflow.id

    db.session.add(report)
    db.session.commit()

    logger.info(f"Report {report.id} on {report.content_type} {report.content_id} assigned to {moderator}")
    return jsonify({
        "message": "Report submitted successfully",
        "report": report.to_dict(),
        "workflow": workflow.to_dict() if workflow else None
    }), 201


@api.route("/api/reports", methods=["GET"])
@admin_required
def get_reports(current_user_id, current_user_role):
    reports = Report.query.order_by(Report.created_at.desc(), Report.id.desc()).all()
    return jsonify({"reports": [report.to_dict() for report in reports]}), 200


# --- Workflow Endpoints ---
@api.route("/api/workflows/content/<int:blog_id>", methods=["POST"])
@token_required
def create_content_workflow(current_user_id, current_user_role, blog_id):
    """
    Open a workflow for a blog post, initiated by the caller.

    Request Body:
        workflow_type (str): CONTENT_REVIEW, MODERATION, ... or a custom type.
    """
    data = request.get_json()
    if not data or not data.get("workflow_type"):
        return jsonify({"error": "Missing required field: workflow_type"}), 400

    workflow = workflow_engine.create_workflow(blog_id, current_user_id, data["workflow_type"])
    return jsonify({"message": "Workflow created successfully", "workflow": workflow.to_dict()}), 201


@api.route("/api/workflows", methods=["GET"])
def list_workflows():
    workflows = workflow_engine.list_workflows(
        status=request.args.get("status"),
        assignee=request.args.get("assignee"),
        blog_id=request.args.get("blog_id", type=int)
    )
    return jsonify({"workflows": [workflow.to_dict() for workflow in workflows]}), 200


@api.route("/api/workflows/<int:workflow_id>", methods=["GET"])
def get_workflow(workflow_id):
    workflow = workflow_engine.get_workflow(workflow_id)
    if workflow is None:
        raise InvalidReference("Workflow", workflow_id)
    return jsonify(workflow.to_dict()), 200


@api.route("/api/workflows/<int:workflow_id>/process", methods=["PUT"])
@admin_required
def process_workflow(current_user_id, current_user_role, workflow_id):
    """
    Apply an editorial action.

    Request Body:
        action (str): APPROVE, REJECT, REQUEST_CHANGES or ESCALATE.
        comments (str, optional): Reviewer comments.
    """
    data = request.get_json()
    if not data or not data.get("action"):
        return jsonify({"error": "Missing required field: action"}), 400

    workflow = workflow_engine.process_action(workflow_id, data["action"], data.get("comments"))
    if workflow is None:
        raise InvalidReference("Workflow", workflow_id)

    logger.info(f"Workflow {workflow_id} processed {data['action']} by user {current_user_id}")
    return jsonify({"message": "Workflow processed", "workflow": workflow.to_dict()}), 200


@api.route("/api/workflows/<int:workflow_id>/start", methods=["POST"])
@admin_required
def start_workflow_review(current_user_id, current_user_role, workflow_id):
    data = request.get_json(silent=True) or {}
    workflow = workflow_engine.start_review(workflow_id, reviewer=data.get("reviewer"))
    if workflow is None:
        raise InvalidReference("Workflow", workflow_id)
    if workflow.status != WorkflowStatus.IN_PROGRESS.value:
        return jsonify({"error": f"Workflow is {workflow.status}"}), 409
    return jsonify({"message": "Review started", "workflow": workflow.to_dict()}), 200


@api.route("/api/workflows/<int:workflow_id>/resubmit", methods=["POST"])
@token_required
def resubmit_workflow(current_user_id, current_user_role, workflow_id):
    data = request.get_json(silent=True) or {}
    workflow = workflow_engine.resubmit(workflow_id, comments=data.get("comments"))
    if workflow is None:
        raise InvalidReference("Workflow", workflow_id)
    if workflow.status != WorkflowStatus.IN_PROGRESS.value:
        return jsonify({"error": f"Workflow is {workflow.status}"}), 409
    return jsonify({"message": "Workflow resubmitted", "workflow": workflow.to_dict()}), 200


@api.route("/api/workflows/assign-moderator", methods=["POST"])
@admin_required
def assign_moderator(current_user_id, current_user_role):
    data = request.get_json()
    if not data or not data.get("content_type"):
        return jsonify({"error": "Missing required field: content_type"}), 400

    moderator = workflow_engine.auto_assign_moderator(data["content_type"], data.get("report_reason"))
    return jsonify({"assigned_moderator": moderator}), 200


@api.route("/api/workflows/compliance-check/<int:blog_id>", methods=["POST"])
@token_required
def compliance_check(current_user_id, current_user_role, blog_id):
    blog = _get_or_404(Blog, blog_id)
    compliant = workflow_engine.check_policy_compliance(blog)
    return jsonify({"blog_id": blog_id, "compliant": compliant}), 200


@api.route("/api/workflows/analytics", methods=["GET"])
def workflow_analytics():
    return jsonify(workflow_engine.get_analytics()), 200


@api.route("/api/workflows/<int:workflow_id>/exception", methods=["POST"])
@admin_required
def workflow_exception(current_user_id, current_user_role, workflow_id):
    """
    Report a workflow exception.

    Request Body:
        exception_type (str): TIMEOUT, POLICY_EXCEPTION, TECHNICAL_ISSUE or ESCALATION_REQUIRED.
        details (str, optional): Free-form details.
    """
    data = request.get_json()
    if not data or not data.get("exception_type"):
        return jsonify({"error": "Missing required field: exception_type"}), 400

    workflow = workflow_engine.handle_exception(workflow_id, data["exception_type"], data.get("details"))
    if workflow is None:
        raise InvalidReference("Workflow", workflow_id)
    return jsonify({"message": "Exception handled", "workflow": workflow.to_dict()}), 200


@api.route("/api/workflows/lifecycle/<int:blog_id>", methods=["POST"])
@admin_required
def content_lifecycle(current_user_id, current_user_role, blog_id):
    data = request.get_json()
    if not data or not data.get("event"):
        return jsonify({"error": "Missing required field: event"}), 400

    try:
        event = LifecycleEvent(data["event"])
    except ValueError:
        return jsonify({"error": "Invalid lifecycle event"}), 400

    workflow = workflow_engine.manage_content_lifecycle(blog_id, event)
    return jsonify({
        "message": f"Lifecycle event {event.value} handled",
        "workflow": workflow.to_dict() if workflow else None
    }), 200


@api.route("/api/workflows/custom", methods=["POST"])
@admin_required
def create_custom_workflow(current_user_id, current_user_role):
    data = request.get_json()
    if not data or not all(key in data for key in ["name", "workflow_type"]):
        return jsonify({"error": "Missing required fields: name, workflow_type"}), 400

    configuration = data.get("configuration") or {}
    if not isinstance(configuration, dict):
        return jsonify({"error": "configuration must be an object"}), 400

    workflow = workflow_engine.create_custom_workflow(data["name"], data["workflow_type"], configuration)
    return jsonify({"message": "Workflow configured", "workflow": workflow.to_dict()}), 201


@api.route("/api/workflows/escalate-overdue", methods=["POST"])
@admin_required
def escalate_overdue(current_user_id, current_user_role):
    escalated = workflow_engine.escalate_overdue()
    return jsonify({"escalated": [workflow.to_dict() for workflow in escalated]}), 200


# --- Analytics Endpoints ---
@api.route("/api/analytics/metrics", methods=["POST"])
@token_required
def record_metrics(current_user_id, current_user_role):
    """
    Append an engagement observation for a blog post.

    Request Body:
        blog_id (int): Observed blog post.
        views, likes, shares, comments, read_time_seconds, organic_views (int, optional)
        engagement_rate, completion_rate, seo_score (float, optional)
        geo_location (str, optional)
        timestamp (str, optional): ISO datetime, defaults to now.
    """
    data = request.get_json()
    if not data or "blog_id" not in data:
        return jsonify({"error": "Missing required field: blog_id"}), 400

    fields = {key: value for key, value in data.items() if key != "blog_id"}
    if "timestamp" in fields:
        fields["timestamp"] = _parse_datetime(fields["timestamp"], "timestamp")

    record = analytics_aggregator.record_metric(data["blog_id"], **fields)
    return jsonify({"message": "Metrics recorded", "metric": record.to_dict()}), 201


@api.route("/api/analytics/content/<int:blog_id>", methods=["GET"])
def content_performance(blog_id):
    return jsonify(analytics_aggregator.content_performance(blog_id)), 200


@api.route("/api/analytics/geographic", methods=["GET"])
def geographic_analytics():
    return jsonify(analytics_aggregator.geographic()), 200


@api.route("/api/analytics/trends", methods=["GET"])
def trend_analytics():
    start = _parse_datetime(request.args.get("start"), "start")
    end = _parse_datetime(request.args.get("end"), "end")
    return jsonify(analytics_aggregator.trends(start, end)), 200


@api.route("/api/analytics/seo", methods=["GET"])
def seo_analytics():
    return jsonify(analytics_aggregator.seo_analytics()), 200


@api.route("/api/analytics/predictive/<int:blog_id>", methods=["GET"])
def predictive_analytics(blog_id):
    return jsonify(analytics_aggregator.predictive(blog_id)), 200


@api.route("/api/analytics/executive-dashboard", methods=["GET"])
def executive_dashboard():
    return jsonify(analytics_aggregator.executive_dashboard()), 200


@api.route("/api/analytics/benchmarks/<int:blog_id>", methods=["GET"])
def benchmarks(blog_id):
    return jsonify(analytics_aggregator.benchmarks(blog_id)), 200


@api.route("/api/analytics/insights/<int:blog_id>", methods=["GET"])
def content_insights(blog_id):
    insights = analytics_aggregator.content_insights(blog_id)
    if insights is None:
        raise InvalidReference("Blog", blog_id)
    return jsonify(insights), 200


# --- Content Scoring Endpoints ---
def _scoring_payload():
    data = request.get_json()
    if not data or "content" not in data:
        raise ValidationFailure("Missing required field: content")
    return data


@api.route("/api/content/analyze", methods=["POST"])
def analyze_content():
    data = _scoring_payload()
    analysis = content_scorer.analyze_content_quality(data.get("title"), data["content"])
    analysis["sentiment"] = content_scorer.sentiment(data["content"])
    return jsonify(analysis), 200


@api.route("/api/content/moderate", methods=["POST"])
def moderate_content():
    data = _scoring_payload()
    return jsonify(content_scorer.moderate_content(data["content"])), 200


@api.route("/api/content/categorize", methods=["POST"])
def categorize_content():
    data = _scoring_payload()
    return jsonify(content_scorer.categorize_content(data["content"])), 200


@api.route("/api/content/seo", methods=["POST"])
def analyze_seo():
    data = _scoring_payload()
    analysis = content_scorer.analyze_seo(data.get("title"), data["content"], data.get("meta_description"))
    analysis["slug"] = content_scorer.generate_slug(data.get("title"))
    return jsonify(analysis), 200


@api.route("/api/content/recommendations", methods=["POST"])
def recommend_topics():
    data = request.get_json(silent=True) or {}
    interests = data.get("interests", [])
    if not isinstance(interests, (str, list)):
        raise ValidationFailure("interests must be a string or a list")

    blog_ids = data.get("history_blog_ids", [])
    if not isinstance(blog_ids, list) or not all(isinstance(blog_id, int) for blog_id in blog_ids):
        raise ValidationFailure("history_blog_ids must be a list of blog ids")

    history = Blog.query.filter(Blog.id.in_(blog_ids)).order_by(Blog.id).all() if blog_ids else []
    recommendations = content_scorer.topic_recommendations(interests, history)
    return jsonify({"recommendations": recommendations, "count": len(recommendations)}), 200


# --- Notification Endpoints ---
def _can_read_notifications(user_id, current_user_id, current_user_role):
    return user_id == current_user_id or current_user_role in ADMIN_ROLES


@api.route("/api/notifications/user/<int:user_id>", methods=["GET"])
@token_required
def user_notifications(current_user_id, current_user_role, user_id):
    if not _can_read_notifications(user_id, current_user_id, current_user_role):
        return jsonify({"error": "Permission denied"}), 403
    notifications = notification_service.get_user_notifications(user_id)
    return jsonify({"notifications": [n.to_dict() for n in notifications]}), 200


@api.route("/api/notifications/user/<int:user_id>/unread", methods=["GET"])
@token_required
def unread_notifications(current_user_id, current_user_role, user_id):
    if not _can_read_notifications(user_id, current_user_id, current_user_role):
        return jsonify({"error": "Permission denied"}), 403
    notifications = notification_service.get_unread_notifications(user_id)
    return jsonify({"notifications": [n.to_dict() for n in notifications], "count": len(notifications)}), 200


@api.route("/api/notifications/<int:notification_id>/read", methods=["PUT"])
@token_required
def mark_notification_read(current_user_id, current_user_role, notification_id):
    notification = _get_or_404(Notification, notification_id)
    if notification.user_id is not None and not _can_read_notifications(
            notification.user_id, current_user_id, current_user_role):
        return jsonify({"error": "Permission denied"}), 403

    notification = notification_service.mark_as_read(notification_id)
    return jsonify({"message": "Notification marked as read", "notification": notification.to_dict()}), 200


@api.route("/api/notifications/announcement", methods=["POST"])
@admin_required
def platform_announcement(current_user_id, current_user_role):
    """
    Broadcast a platform announcement.

    Request Body:
        title (str): Announcement title.
        message (str): Announcement body.
        priority (str, optional): LOW, MEDIUM, HIGH or URGENT (default: MEDIUM).
        emergency (bool, optional): Send as an emergency notification.
    """
    data = request.get_json()
    if not data or not all(key in data for key in ["title", "message"]):
        return jsonify({"error": "Missing required fields: title, message"}), 400

    if data.get("emergency"):
        notification = notification_dispatcher.send_emergency_notification(data["title"], data["message"])
    else:
        notification = notification_dispatcher.send_platform_announcement(
            data["title"], data["message"], data.get("priority", "MEDIUM")
        )

    logger.info(f"Announcement '{data['title']}' sent by user {current_user_id}")
    return jsonify({"message": "Announcement sent", "notification": notification.to_dict()}), 201


@api.route("/api/notifications/analytics", methods=["GET"])
@admin_required
def notification_analytics(current_user_id, current_user_role):
    return jsonify(notification_service.get_notification_analytics()), 200


# --- Performance Endpoints ---
@api.route("/api/performance/metrics", methods=["GET"])
def performance_metrics():
    return jsonify(performance_monitor.performance_metrics()), 200


@api.route("/api/performance/health", methods=["GET"])
def performance_health():
    return jsonify(performance_monitor.system_health_check()), 200


@api.route("/api/performance/recommendations", methods=["GET"])
def performance_recommendations():
    return jsonify({"recommendations": performance_monitor.recommendations()}), 200


@api.route("/api/performance/alerts", methods=["GET"])
def performance_alerts():
    limit = request.args.get("limit", 100, type=int)
    return jsonify({"alerts": performance_monitor.get_alerts(limit)}), 200


@api.route("/api/performance/trends", methods=["GET"])
def performance_trends():
    return jsonify(performance_monitor.performance_trends()), 200


@api.route("/api/performance/sessions", methods=["POST"])
@token_required
def update_session(current_user_id, current_user_role):
    data = request.get_json()
    if not data or not data.get("session_id"):
        return jsonify({"error": "Missing required field: session_id"}), 400

    current = performance_monitor.update_concurrent_users(data["session_id"], bool(data.get("active", True)))
    return jsonify({"concurrent_users": current}), 200


# Error handlers
def register_error_handlers(app):

    @app.errorhandler(InvalidReference)
    def invalid_reference(error):
        return jsonify({"error": str(error)}), 404

    @app.errorhandler(ValidationFailure)
    def validation_failure(error):
        return jsonify({"error": str(error)}), 400

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Resource not found"}), 404

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({"error": "Bad request"}), 400

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        logger.error(f"Internal server error: {error}")
        return jsonify({"error": "Internal server error"}), 500


if __name__ == "__main__":
    application = create_app()
    application.run(host="0.0.0.0", port=application.config["PORT"], debug=application.config["DEBUG"])
