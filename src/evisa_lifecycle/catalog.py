"""
Visa-type catalog — registration, lookup and controlled updates.

Service layer over the VisaTypeRepository port. Three rules are enforced
here rather than in storage:

  * only staff register or update visa types;
  * `statistics` is never taken from input: new entries start empty and
    updates keep the stored counters (the aggregator is the only writer);
  * `code` and `name` cannot change once any application references the
    visa type (CONFLICT).
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

import structlog

from evisa_lifecycle.domain.applicant import parse_model
from evisa_lifecycle.domain.catalog_rules import resolve_fee, resolve_processing_days
from evisa_lifecycle.domain.eligibility import is_nationality_eligible
from evisa_lifecycle.domain.lifecycle import ensure_admin
from evisa_lifecycle.domain.models import (
    Actor,
    Money,
    ProcessingTier,
    VisaCategory,
    VisaStatistics,
    VisaTypeDefinition,
    utc_now,
)
from evisa_lifecycle.domain.ports import ApplicationRepository, VisaTypeRepository
from evisa_lifecycle.railway import Result, ResultFailures

log = structlog.get_logger()


class VisaTypeCatalog:
    def __init__(
        self,
        visa_types: VisaTypeRepository,
        applications: ApplicationRepository,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._visa_types = visa_types
        self._applications = applications
        self._clock = clock

    def register(
        self, actor: Actor, payload: VisaTypeDefinition | Mapping[str, Any]
    ) -> Result[VisaTypeDefinition]:
        return (
            ensure_admin(actor, "register visa types")
            .flat_map(lambda _: parse_model(VisaTypeDefinition, payload))
            .map(
                lambda definition: definition.model_copy(
                    update={"statistics": VisaStatistics(), "created_by": actor.id}
                )
            )
            .flat_map(self._visa_types.add)
            .peek(
                lambda definition: log.info(
                    "catalog.registered", code=definition.code, actor_id=actor.id
                )
            )
        )

    def get(self, code: str) -> Result[VisaTypeDefinition]:
        return self._visa_types.get(code)

    def list_available(
        self,
        category: VisaCategory | None = None,
        nationality: str | None = None,
    ) -> Result[list[VisaTypeDefinition]]:
        """Active and public visa types, optionally narrowed by category and nationality."""
        return self._visa_types.list_all().map(
            lambda definitions: [
                d
                for d in definitions
                if d.is_visible
                and (category is None or d.category is category)
                and (nationality is None or is_nationality_eligible(nationality, d))
            ]
        )

    def update(
        self, actor: Actor, code: str, changes: Mapping[str, Any]
    ) -> Result[VisaTypeDefinition]:
        """
        Apply top-level section changes to a visa type.

        Each key in `changes` replaces that section wholesale. A `statistics`
        key is ignored.
        """
        if "statistics" in changes:
            log.warning("catalog.statistics_edit_ignored", code=code, actor_id=actor.id)
        edits = {k: v for k, v in changes.items() if k != "statistics"}

        return (
            ensure_admin(actor, "update visa types")
            .flat_map(lambda _: self._visa_types.get(code))
            .flat_map(lambda current: self._merge(current, edits))
            .flat_map(lambda pair: self._ensure_identity_mutable(*pair))
            .flat_map(lambda pair: self._visa_types.replace(pair[0].code, pair[1]))
            .peek(lambda definition: log.info("catalog.updated", code=definition.code))
        )

    def resolve_fee(self, code: str, tier: ProcessingTier) -> Result[Money]:
        return self.get(code).map(lambda definition: resolve_fee(definition, tier))

    def resolve_processing_days(self, code: str, tier: ProcessingTier) -> Result[int]:
        return self.get(code).map(lambda definition: resolve_processing_days(definition, tier))

    # ─────────────────────── internals ───────────────────────

    def _merge(
        self, current: VisaTypeDefinition, edits: Mapping[str, Any]
    ) -> Result[tuple[VisaTypeDefinition, VisaTypeDefinition]]:
        merged = {**current.model_dump(), **edits}
        return parse_model(VisaTypeDefinition, merged).map(
            lambda updated: (
                current,
                updated.model_copy(
                    update={"statistics": current.statistics, "created_by": current.created_by}
                ),
            )
        )

    def _ensure_identity_mutable(
        self, current: VisaTypeDefinition, updated: VisaTypeDefinition
    ) -> Result[tuple[VisaTypeDefinition, VisaTypeDefinition]]:
        if updated.code == current.code and updated.name == current.name:
            return Result.success((current, updated))

        def _check(referencing: list[Any]) -> Result[tuple[VisaTypeDefinition, VisaTypeDefinition]]:
            if referencing:
                return ResultFailures.conflict(
                    f"Visa type {current.code} is referenced by applications; "
                    "code and name cannot change",
                    code=current.code,
                    references=len(referencing),
                )
            return Result.success((current, updated))

        return self._applications.list_by_visa_type(current.code).flat_map(_check)
