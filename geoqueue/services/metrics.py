# geoqueue/services/metrics.py
"""
Read-only rollups over the processing queue for the operator dashboard.

Nothing here writes. Every aggregate has a defined value for an empty
queue (0, [] or None), never an exception.
"""
import math
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import func

from geoqueue.extensions import db
from geoqueue.models.design import Design
from geoqueue.models.processing_job import ProcessingJob
from geoqueue.utils.timeutil import iso

SAMPLE_LIMIT = 10
TREND_STABLE_PERCENT = 5

# En orden, gana la primera que coincide. Las subcadenas distinguen mayúsculas.
# El orden es el desempate: agregar reglas según su prioridad, no ordenar la lista.
ERROR_RULES = [
    ("Mesh Export Failed", ("mesh export failed",)),
    ("Timeout", ("timeout",)),
    ("Network Error", ("ECONNREFUSED", "ETIMEDOUT")),
    ("Processing Error", ("Exception", "Error")),
]
OTHER = "Other"
UNKNOWN = "Unknown"


def _round(value: float) -> int:
    # half up, como Math.round
    return int(math.floor(value + 0.5))


def success_rate(successes: int, failures: int) -> Optional[int]:
    total = successes + failures
    if total == 0:
        return None
    return _round(successes / total * 100)


def average_duration_ms(spans: Iterable[tuple[datetime, datetime]]) -> Optional[float]:
    durations = [
        (completed - started).total_seconds() * 1000
        for started, completed in spans
        if started and completed
    ]
    if not durations:
        return None
    return sum(durations) / len(durations)


def duration_trend(current: Optional[float], previous: Optional[float]) -> tuple[Optional[str], Optional[int]]:
    """('faster' | 'slower' | 'stable', percent delta). Anything under 5% either way is stable."""
    if not current or not previous:
        return None, None

    delta = (current - previous) / previous * 100
    if abs(delta) < TREND_STABLE_PERCENT:
        label = "stable"
    elif delta < 0:
        label = "faster"
    else:
        label = "slower"
    return label, _round(delta)


def hourly_throughput(completed_times: Iterable[datetime], now: datetime) -> list[dict]:
    """24 buckets by hours-ago (0 = most recent hour), oldest first, zeros included."""
    counts = [0] * 24
    for completed in completed_times:
        if not completed:
            continue
        hours_ago = max(0, int((now - completed).total_seconds() // 3600))
        if hours_ago < 24:
            counts[hours_ago] += 1
    return [{"hours_ago": h, "count": counts[h]} for h in range(23, -1, -1)]


def classify_failure(log: Optional[str]) -> str:
    """Best-effort triage label for a failed job's processing log."""
    if not log:
        return UNKNOWN
    for label, needles in ERROR_RULES:
        if any(needle in log for needle in needles):
            return label
    return OTHER


def error_breakdown(logs: Iterable[Optional[str]]) -> list[dict]:
    order = [label for label, _ in ERROR_RULES] + [OTHER, UNKNOWN]
    counts = dict.fromkeys(order, 0)
    for log in logs:
        counts[classify_failure(log)] += 1
    return [{"type": label, "count": counts[label]} for label in order if counts[label]]


def _sample(job: ProcessingJob) -> dict:
    return {
        "id": job.id,
        "short_id": job.short_id,
        "design_name": job.design.name if job.design else None,
        "created_at": iso(job.created_at),
        "started_at": iso(job.started_at),
        "completed_at": iso(job.completed_at),
        "succeeded": job.succeeded if job.completed_at else None,
    }


def _bucket(query, order_by) -> dict:
    return {
        "count": query.count(),
        "jobs": [_sample(j) for j in query.order_by(order_by).limit(SAMPLE_LIMIT).all()],
    }


def queue_snapshot(now: datetime, stale_minutes: int = 10) -> dict:
    stale_cutoff = now - timedelta(minutes=stale_minutes)
    hour_ago = now - timedelta(hours=1)
    day_ago = now - timedelta(days=1)
    two_days_ago = now - timedelta(days=2)
    week_ago = now - timedelta(days=7)

    enabled = ProcessingJob.query.filter(ProcessingJob.is_enabled.is_(True))
    open_jobs = enabled.filter(ProcessingJob.completed_at.is_(None))

    never_started = _bucket(
        open_jobs.filter(ProcessingJob.started_at.is_(None)),
        ProcessingJob.created_at.asc(),
    )
    stuck = _bucket(
        open_jobs.filter(ProcessingJob.started_at < stale_cutoff),
        ProcessingJob.created_at.asc(),
    )
    processing = _bucket(
        open_jobs.filter(ProcessingJob.started_at >= stale_cutoff),
        ProcessingJob.started_at.desc(),
    )
    recently_completed = _bucket(
        enabled.filter(ProcessingJob.completed_at >= hour_ago),
        ProcessingJob.completed_at.desc(),
    )

    last_day = enabled.filter(ProcessingJob.completed_at >= day_ago)
    failed_24h = last_day.filter(ProcessingJob.succeeded.is_(False)).count()
    success_24h = last_day.filter(ProcessingJob.succeeded.is_(True)).count()

    spans_24h = (
        last_day.filter(ProcessingJob.started_at.is_not(None))
        .with_entities(ProcessingJob.started_at, ProcessingJob.completed_at)
        .all()
    )
    spans_prev = (
        enabled.filter(
            ProcessingJob.completed_at >= two_days_ago,
            ProcessingJob.completed_at < day_ago,
            ProcessingJob.started_at.is_not(None),
        )
        .with_entities(ProcessingJob.started_at, ProcessingJob.completed_at)
        .all()
    )

    avg_ms = average_duration_ms(spans_24h)
    avg_prev_ms = average_duration_ms(spans_prev)
    trend, trend_percent = duration_trend(avg_ms, avg_prev_ms)

    throughput = hourly_throughput((completed for _, completed in spans_24h), now)

    failure_logs = [
        log for (log,) in last_day.filter(ProcessingJob.succeeded.is_(False))
        .with_entities(ProcessingJob.processing_log)
        .all()
    ]

    by_design = (
        db.session.query(Design.id, Design.name, Design.algorithm_name, func.count(ProcessingJob.id))
        .join(ProcessingJob, ProcessingJob.design_id == Design.id)
        .filter(ProcessingJob.is_enabled.is_(True), ProcessingJob.completed_at >= week_ago)
        .group_by(Design.id, Design.name, Design.algorithm_name)
        .all()
    )
    algorithm_stats = sorted(
        ({"design_id": d_id, "name": name, "algorithm": algorithm, "count": count}
         for d_id, name, algorithm, count in by_design),
        key=lambda row: (-row["count"], row["name"]),
    )

    return {
        "summary": {
            "never_started_count": never_started["count"],
            "stuck_jobs_count": stuck["count"],
            "processing_count": processing["count"],
            "recently_completed_count": recently_completed["count"],
            "failed_last_24h": failed_24h,
            "success_last_24h": success_24h,
            "success_rate_24h": success_rate(success_24h, failed_24h),
        },
        "metrics": {
            "avg_processing_time_ms": _round(avg_ms) if avg_ms is not None else None,
            "avg_processing_time_sec": _round(avg_ms / 1000) if avg_ms is not None else None,
            "processing_time_trend": trend,
            "processing_time_trend_percent": trend_percent,
            "throughput_per_hour": throughput,
            "avg_throughput_per_hour": _round(sum(b["count"] for b in throughput) / len(throughput)),
            "error_breakdown": error_breakdown(failure_logs),
            "algorithm_stats": algorithm_stats,
            "queue_depth": never_started["count"] + stuck["count"] + processing["count"],
        },
        "queues": {
            "never_started": never_started["jobs"],
            "stuck_jobs": stuck["jobs"],
            "processing": processing["jobs"],
            "recently_completed": recently_completed["jobs"],
        },
    }
