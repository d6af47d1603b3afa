"""
Content analytics for the blog platform.

Builds performance, geographic, trend, SEO, predictive, executive and
benchmark reports from the append-only content metric log. Aggregation
happens in-process over what the metric store returns; every average or
ratio over an empty set is 0.0.
"""

import logging
from collections import OrderedDict, defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from content_scoring import ContentScorer, content_scorer
from exceptions import InvalidReference, ValidationFailure
from metrics_stats import average, average_step_growth, growth_rate, percentage, percentile_rank, safe_ratio
from models import ContentMetric, utcnow
from stores import ContentStore, MetricStore, SqlContentStore, SqlMetricStore

logger = logging.getLogger(__name__)


MIN_PREDICTION_POINTS = 3
TOP_CONTENT_LIMIT = 5
UNKNOWN_LOCATION = "unknown"

METRIC_FIELDS = (
    "views", "likes", "shares", "comments", "engagement_rate", "completion_rate",
    "read_time_seconds", "geo_location", "timestamp", "organic_views", "seo_score"
)
COUNTER_FIELDS = ("views", "likes", "shares", "comments", "read_time_seconds", "organic_views")


class AnalyticsAggregator:
    """
    Report builder over the content metric log.

    Args:
        metric_store: Source of ContentMetric records.
        content_store: Source of blog posts, for titles and blog counts.
        scorer: ContentScorer used by the content insight report.
        clock: Returns the current naive UTC time.
    """

    def __init__(self, metric_store: MetricStore, content_store: ContentStore,
                 scorer: ContentScorer = content_scorer, clock: Callable[[], datetime] = utcnow):
        self.metric_store = metric_store
        self.content_store = content_store
        self.scorer = scorer
        self.clock = clock

    def record_metric(self, blog_id, **fields) -> ContentMetric:
        """
        Append one observation window for a blog.

        Raises:
            InvalidReference: If the blog does not exist.
            ValidationFailure: On unknown fields or negative counters.
        """
        if self.content_store.get(blog_id) is None:
            raise InvalidReference("Blog", blog_id)

        unknown = set(fields) - set(METRIC_FIELDS)
        if unknown:
            raise ValidationFailure(f"Unknown metric fields: {', '.join(sorted(unknown))}")

        for name in COUNTER_FIELDS:
            if fields.get(name) is not None and fields[name] < 0:
                raise ValidationFailure(f"{name} must not be negative")

        values = {name: value for name, value in fields.items() if value is not None}
        values.setdefault("timestamp", self.clock())

        record = self.metric_store.append(ContentMetric(blog_id=blog_id, **values))
        logger.info(f"Recorded metrics for blog {blog_id}: {record.views} views")
        return record

    def content_performance(self, blog_id) -> Dict[str, Any]:
        metrics = self.metric_store.find_by_blog_id(blog_id)
        return {
            "blog_id": blog_id,
            "total_views": sum(m.views for m in metrics),
            "total_likes": sum(m.likes for m in metrics),
            "total_shares": sum(m.shares for m in metrics),
            "avg_engagement_rate": average(m.engagement_rate for m in metrics),
            "avg_completion_rate": average(m.completion_rate for m in metrics),
            "data_points": len(metrics)
        }

    def geographic(self) -> Dict[str, Any]:
        views: Dict[str, int] = defaultdict(int)
        engagement: Dict[str, List[float]] = defaultdict(list)

        for metric in self.metric_store.find_all():
            location = metric.geo_location or UNKNOWN_LOCATION
            views[location] += metric.views
            engagement[location].append(metric.engagement_rate)

        return {
            "views_by_location": dict(views),
            "engagement_by_location": {
                location: average(rates) for location, rates in engagement.items()
            }
        }

    def trends(self, start: datetime, end: datetime) -> Dict[str, Any]:
        """
        Daily views and engagement for ``start <= timestamp < end``.

        Buckets are ordered chronologically, and ``growth_rate`` compares the
        first and last day's views. An inverted range matches nothing and
        yields an empty report.
        """
        if start > end:
            logger.warning(f"Trend range starts after it ends: {start.isoformat()} > {end.isoformat()}")
            return self._trend_report(start, end, OrderedDict(), OrderedDict())

        views: Dict[str, int] = OrderedDict()
        engagement: Dict[str, List[float]] = OrderedDict()

        metrics = sorted(self.metric_store.find_by_date_range(start, end), key=lambda m: m.timestamp)
        for metric in metrics:
            day = metric.timestamp.date().isoformat()
            views[day] = views.get(day, 0) + metric.views
            engagement.setdefault(day, []).append(metric.engagement_rate)

        return self._trend_report(start, end, views, engagement)

    def _trend_report(self, start, end, views, engagement) -> Dict[str, Any]:
        return {
            "start": start.isoformat(),
            "end": end.isoformat(),
            "daily_views": dict(views),
            "daily_engagement": {day: average(rates) for day, rates in engagement.items()},
            "growth_rate": growth_rate(list(views.values()))
        }

    def seo_analytics(self) -> Dict[str, Any]:
        metrics = self.metric_store.find_all()
        total_views = sum(m.views for m in metrics)
        organic_views = sum(m.organic_views for m in metrics)

        return {
            "avg_seo_score": average(m.seo_score for m in metrics),
            "total_organic_views": organic_views,
            "organic_traffic_percentage": percentage(organic_views, total_views)
        }

    def predictive(self, blog_id) -> Dict[str, Any]:
        """
        Project views 7 and 30 days ahead from the blog's history.

        Projection is ``current * (1 + g * days)`` where ``g`` is the mean
        step-to-step growth of views. Needs at least three records; with
        fewer, only ``data_points`` is reported.
        """
        history = sorted(self.metric_store.find_by_blog_id(blog_id), key=lambda m: m.timestamp)
        predictions: Dict[str, Any] = {"blog_id": blog_id, "data_points": len(history)}

        if len(history) < MIN_PREDICTION_POINTS:
            return predictions

        series = [m.views for m in history]
        growth = average_step_growth(series)
        current = series[-1]

        predictions.update({
            "average_growth": growth,
            "predicted_views_7_days": int(current * (1 + growth * 7)),
            "predicted_views_30_days": int(current * (1 + growth * 30)),
            "viral_potential": average(m.shares for m in history)
                               * average(m.engagement_rate for m in history) / 100.0
        })
        return predictions

    def executive_dashboard(self) -> Dict[str, Any]:
        metrics = self.metric_store.find_all()
        blogs = self.content_store.find_all()
        total_views = sum(m.views for m in metrics)

        now = self.clock()
        recent = self.metric_store.find_by_date_range(now - timedelta(days=7), now)

        return {
            "total_blogs": len(blogs),
            "total_views": total_views,
            "avg_engagement_rate": average(m.engagement_rate for m in metrics),
            "weekly_growth": percentage(sum(m.views for m in recent), total_views),
            "top_content": self._top_content(metrics, TOP_CONTENT_LIMIT)
        }

    def _top_content(self, metrics: List[ContentMetric], limit: int) -> List[Dict[str, Any]]:
        by_blog: Dict[Any, List[ContentMetric]] = defaultdict(list)
        for metric in metrics:
            by_blog[metric.blog_id].append(metric)

        ranked = []
        for blog_id, records in by_blog.items():
            blog = self.content_store.get(blog_id)
            ranked.append({
                "blog_id": blog_id,
                "title": blog.title if blog else None,
                "engagement_rate": average(r.engagement_rate for r in records),
                "views": sum(r.views for r in records)
            })

        ranked.sort(key=lambda item: (-item["engagement_rate"], -item["views"], item["blog_id"]))
        return ranked[:limit]

    def benchmarks(self, blog_id) -> Dict[str, Any]:
        """
        Compare one blog against the platform.

        ``engagement_vs_platform`` is the blog's mean engagement over the
        platform mean; ``views_percentile`` ranks the blog's total views
        among every blog's total views.
        """
        metrics = self.metric_store.find_all()
        blog_metrics = [m for m in metrics if m.blog_id == blog_id]

        views_by_blog: Dict[Any, int] = defaultdict(int)
        for metric in metrics:
            views_by_blog[metric.blog_id] += metric.views

        blog_engagement = average(m.engagement_rate for m in blog_metrics)
        platform_engagement = average(m.engagement_rate for m in metrics)

        return {
            "blog_id": blog_id,
            "engagement_vs_platform": safe_ratio(blog_engagement, platform_engagement),
            "views_percentile": percentile_rank(views_by_blog.get(blog_id, 0), views_by_blog.values())
                                if blog_metrics else 0.0,
            "platform_avg_engagement": platform_engagement
        }

    def content_insights(self, blog_id) -> Optional[Dict[str, Any]]:
        """
        Scored quality and SEO analysis of a blog alongside how it performs.

        Returns None for an unknown blog.
        """
        blog = self.content_store.get(blog_id)
        if blog is None:
            logger.info(f"No insights for unknown blog {blog_id}")
            return None

        history = self.metric_store.find_by_blog_id(blog_id)
        return {
            "blog_id": blog_id,
            "title": blog.title,
            "quality": self.scorer.analyze_content_quality(blog.title, blog.content),
            "seo": self.scorer.analyze_seo(blog.title, blog.content, blog.seo_description),
            "moderation": self.scorer.moderate_content(blog.content),
            "predicted_success": self.scorer.predict_content_success(blog.title, blog.content, history),
            "performance": self.content_performance(blog_id),
            "benchmarks": self.benchmarks(blog_id)
        }


analytics_aggregator = AnalyticsAggregator(SqlMetricStore(), SqlContentStore())
