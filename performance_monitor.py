"""
Performance monitoring for the blog platform service.

Keeps the most recent latency samples per operation category, derives SLA
statistics from them and raises threshold alerts. All state lives in one
``PerformanceMonitor`` instance behind a single lock.
"""

import logging
import threading
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Set

from metrics_stats import average, summarize_latencies
from models import utcnow

logger = logging.getLogger(__name__)


MAX_SAMPLES = 1000
MAX_ALERTS = 1000

# Response time thresholds in milliseconds
THRESHOLDS_MS = {
    "authentication": 1000,
    "content": 3000,
    "search": 2000,
    "comments": 1500,
    "analytics": 2000,
}

HIGH_CONCURRENT_USERS = 800
CRITICAL_CONCURRENT_USERS = 900
WARNING_CONCURRENT_USERS = 700

TREND_MIN_SAMPLES = 10
TREND_WINDOW = 5
TREND_CHANGE_PERCENT = 10


@dataclass
class PerformanceAlert:
    """One entry of the bounded alert log"""
    alert_type: str
    message: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


class PerformanceMonitor:
    """
    Latency samples, alert log and concurrent-session gauge.

    Each category retains its newest 1000 samples and the alert log its
    newest 1000 alerts; older entries are evicted first. The session count
    is an eventually-consistent gauge, not an exact figure.
    """

    def __init__(self, thresholds: Dict[str, float] = None, clock: Callable[[], datetime] = utcnow):
        self.thresholds = dict(THRESHOLDS_MS if thresholds is None else thresholds)
        self.clock = clock

        self._lock = threading.Lock()
        self._samples: Dict[str, Deque[float]] = {}
        self._alerts: Deque[PerformanceAlert] = deque(maxlen=MAX_ALERTS)
        self._sessions: Set[str] = set()

    # Recording

    def record_response_time(self, category: str, elapsed_ms: float) -> None:
        with self._lock:
            samples = self._samples.get(category)
            if samples is None:
                samples = self._samples[category] = deque(maxlen=MAX_SAMPLES)
            samples.append(elapsed_ms)

        threshold = self.thresholds.get(category)
        if threshold is not None and elapsed_ms > threshold:
            self._alert(
                "SLOW_RESPONSE",
                f"{category} operation took {elapsed_ms:.0f}ms (threshold: {threshold}ms)"
            )

    @contextmanager
    def track(self, category: str):
        """Time the enclosed block and record it under ``category``"""
        started = time.perf_counter()
        try:
            yield
        finally:
            self.record_response_time(category, (time.perf_counter() - started) * 1000)

    def update_concurrent_users(self, session_id: str, active: bool) -> int:
        with self._lock:
            if active:
                self._sessions.add(session_id)
            else:
                self._sessions.discard(session_id)
            current = len(self._sessions)

        if current > HIGH_CONCURRENT_USERS:
            self._alert("HIGH_CONCURRENT_USERS", f"Approaching concurrent user limit: {current}")
        return current

    def _alert(self, alert_type: str, message: str) -> PerformanceAlert:
        alert = PerformanceAlert(alert_type, message, self.clock())
        with self._lock:
            self._alerts.append(alert)
        logger.warning(f"PERFORMANCE ALERT: {alert_type}: {message}")
        return alert

    # Reading

    def samples(self, category: str) -> List[float]:
        with self._lock:
            return list(self._samples.get(category, ()))

    def concurrent_users(self) -> int:
        with self._lock:
            return len(self._sessions)

    def performance_stats(self, category: str) -> Dict[str, float]:
        return summarize_latencies(self.samples(category))

    def performance_metrics(self) -> Dict[str, Any]:
        with self._lock:
            categories = sorted(set(self.thresholds) | set(self._samples))

        return {
            "categories": {category: self.performance_stats(category) for category in categories},
            "concurrent_users": self.concurrent_users(),
            "alert_count": len(self.get_alerts())
        }

    def get_alerts(self, limit: int = None) -> List[Dict[str, Any]]:
        """Alerts oldest first; ``limit`` keeps only the newest ones"""
        with self._lock:
            alerts = list(self._alerts)
        if limit is not None:
            alerts = alerts[-limit:] if limit > 0 else []
        return [alert.to_dict() for alert in alerts]

    # Health

    def response_time_health(self) -> str:
        auth_p95 = self.performance_stats("authentication")["percentile95"]
        if auth_p95 > 1000:
            return "DEGRADED"
        if auth_p95 > 500:
            return "WARNING"
        return "HEALTHY"

    def concurrent_user_health(self) -> str:
        users = self.concurrent_users()
        if users > CRITICAL_CONCURRENT_USERS:
            return "CRITICAL"
        if users > WARNING_CONCURRENT_USERS:
            return "WARNING"
        return "HEALTHY"

    def system_health_check(self) -> Dict[str, Any]:
        response_health = self.response_time_health()
        user_health = self.concurrent_user_health()

        if user_health == "CRITICAL" or response_health == "DEGRADED":
            overall = "CRITICAL"
        elif "WARNING" in (response_health, user_health):
            overall = "WARNING"
        else:
            overall = "HEALTHY"

        return {
            "response_time_health": response_health,
            "concurrent_user_health": user_health,
            "concurrent_users": self.concurrent_users(),
            "overall_status": overall,
            "timestamp": self.clock().isoformat()
        }

    def recommendations(self) -> List[str]:
        recommendations = []

        if self.performance_stats("authentication")["percentile95"] > 1000:
            recommendations.append(
                "Authentication response time exceeds 1 second. "
                "Consider optimizing JWT processing or database queries."
            )
        if self.performance_stats("content")["percentile90"] > 3000:
            recommendations.append(
                "Content management operations are slow. "
                "Consider implementing caching or optimizing database queries."
            )
        if self.performance_stats("search")["average"] > 2000:
            recommendations.append(
                "Search operations are slow. Consider adding a search index."
            )
        if self.concurrent_users() > HIGH_CONCURRENT_USERS:
            recommendations.append(
                "High concurrent user load detected. "
                "Consider implementing load balancing or scaling horizontally."
            )

        return recommendations

    def check_performance_alerts(self) -> List[Dict[str, Any]]:
        """Raise alerts for degraded authentication latency and high load"""
        raised = []

        if self.performance_stats("authentication")["percentile95"] > 1000:
            raised.append(self._alert("AUTHENTICATION_SLOW", "Authentication performance degraded"))

        users = self.concurrent_users()
        if users > CRITICAL_CONCURRENT_USERS:
            raised.append(self._alert("HIGH_LOAD", f"Concurrent users approaching limit: {users}"))

        return [alert.to_dict() for alert in raised]

    def performance_trends(self) -> Dict[str, str]:
        """
        Per-category latency trend from the first and last five samples.

        A rise of more than 10% is DEGRADING, a fall of more than 10% is
        IMPROVING. Categories with fewer than ten samples are left out.
        """
        with self._lock:
            snapshot = {category: list(samples) for category, samples in self._samples.items()}

        trends = {}
        for category, samples in sorted(snapshot.items()):
            if len(samples) < TREND_MIN_SAMPLES:
                continue

            older = average(samples[:TREND_WINDOW])
            recent = average(samples[-TREND_WINDOW:])
            if older == 0:
                trends[category] = "DEGRADING" if recent > 0 else "STABLE"
                continue

            change = (recent - older) / older * 100
            if change > TREND_CHANGE_PERCENT:
                trends[category] = "DEGRADING"
            elif change < -TREND_CHANGE_PERCENT:
                trends[category] = "IMPROVING"
            else:
                trends[category] = "STABLE"

        trends["concurrent_users"] = self._concurrent_user_trend()
        return trends

    def _concurrent_user_trend(self) -> str:
        users = self.concurrent_users()
        if users > HIGH_CONCURRENT_USERS:
            return "INCREASING_HIGH"
        if users > 500:
            return "INCREASING_MODERATE"
        if users < 100:
            return "LOW"
        return "STABLE"


performance_monitor = PerformanceMonitor()
