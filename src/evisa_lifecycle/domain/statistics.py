"""
Statistics fold — per-visa-type counters derived from applications.

A pure reduction: counts plus the mean of (processed_at − submitted_at) in
days over applications carrying both timestamps. Durations are summed with
math.fsum, which is exactly rounded, so the result does not depend on the
order the applications are scanned in.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import datetime, timedelta

from evisa_lifecycle.domain.models import Application, ApplicationStatus, VisaStatistics


def compute_statistics(applications: Iterable[Application], now: datetime) -> VisaStatistics:
    total = approved = rejected = 0
    durations: list[float] = []
    for app in applications:
        total += 1
        if app.status is ApplicationStatus.APPROVED:
            approved += 1
        elif app.status is ApplicationStatus.REJECTED:
            rejected += 1
        if app.submitted_at is not None and app.processed_at is not None:
            durations.append((app.processed_at - app.submitted_at) / timedelta(days=1))

    average = round(math.fsum(durations) / len(durations), 2) if durations else 0.0
    return VisaStatistics(
        total_applications=total,
        approved_applications=approved,
        rejected_applications=rejected,
        average_processing_days=average,
        last_updated=now,
    )


def count_by_status(applications: Iterable[Application]) -> dict[ApplicationStatus, int]:
    counts = dict.fromkeys(ApplicationStatus, 0)
    for app in applications:
        counts[app.status] += 1
    return counts
