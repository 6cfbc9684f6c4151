"""
Statistics aggregator — folds applications back into visa-type counters.

Reads a snapshot of the applications referencing a visa type, computes the
counters with the pure fold in `domain.statistics` and writes them with a
single statement. It takes no locks, so concurrent transitions are never
blocked; a transition landing mid-recompute is picked up by the next run.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

import structlog

from evisa_lifecycle.domain.models import VisaStatistics, utc_now
from evisa_lifecycle.domain.ports import ApplicationRepository, VisaTypeRepository
from evisa_lifecycle.domain.statistics import compute_statistics, count_by_status
from evisa_lifecycle.railway import Result

log = structlog.get_logger()


class StatisticsAggregator:
    def __init__(
        self,
        visa_types: VisaTypeRepository,
        applications: ApplicationRepository,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._visa_types = visa_types
        self._applications = applications
        self._clock = clock

    def recompute_statistics(self, code: str) -> Result[VisaStatistics]:
        return (
            self._visa_types.get(code)
            .flat_map(
                lambda definition: self._applications.list_by_visa_type(definition.code).map(
                    lambda apps: (definition.code, compute_statistics(apps, self._clock()))
                )
            )
            .flat_map(lambda pair: self._visa_types.save_statistics(*pair))
            .peek(
                lambda stats: log.info(
                    "statistics.recomputed",
                    code=code,
                    total=stats.total_applications,
                    approved=stats.approved_applications,
                    rejected=stats.rejected_applications,
                    average_processing_days=stats.average_processing_days,
                )
            )
        )

    def recompute_all(self) -> Result[int]:
        """Recompute every visa type; the first failure stops the run."""
        return (
            self._visa_types.list_all()
            .flat_map(
                lambda definitions: Result.all_of(
                    self.recompute_statistics(d.code) for d in definitions
                )
            )
            .map(len)
        )

    def status_counts(self) -> Result[dict[str, int]]:
        return self._applications.list_all().map(
            lambda apps: {status.value: n for status, n in count_by_status(apps).items()}
        )
