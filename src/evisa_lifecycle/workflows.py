"""
Account purge — explicit cascade when a user account is removed.

    applications owned by the user  → deleted (any status)
    registry documents of the user  → deleted, stored objects best effort

The draft-only rule guards applicant-initiated deletion; an account purge
is an administrative removal of everything the account owns.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from evisa_lifecycle.domain.models import Actor
from evisa_lifecycle.domain.ports import ApplicationRepository
from evisa_lifecycle.railway import Result, ResultFailures
from evisa_lifecycle.registry import DocumentRegistry

log = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class PurgeReport:
    owner_id: str
    applications_deleted: tuple[str, ...]
    documents_deleted: tuple[str, ...]


class AccountPurgeWorkflow:
    def __init__(self, applications: ApplicationRepository, registry: DocumentRegistry) -> None:
        self._applications = applications
        self._registry = registry

    def purge(self, actor: Actor, owner_id: str) -> Result[PurgeReport]:
        if actor.id != owner_id and not actor.is_admin:
            return ResultFailures.forbidden(
                f"Actor {actor.id} may not remove account {owner_id}", actor_id=actor.id
            )
        return (
            self._applications.list_by_owner(owner_id)
            .flat_map(
                lambda apps: Result.all_of(
                    self._applications.delete(app.application_number) for app in apps
                )
            )
            .flat_map(
                lambda numbers: self._registry.list_for_owner(actor, owner_id).flat_map(
                    lambda records: Result.all_of(
                        self._registry.delete(actor, record.handle) for record in records
                    )
                )
                .map(
                    lambda handles: PurgeReport(
                        owner_id=owner_id,
                        applications_deleted=tuple(numbers),
                        documents_deleted=tuple(handles),
                    )
                )
            )
            .peek(
                lambda report: log.info(
                    "workflows.account_purged",
                    owner_id=owner_id,
                    applications=len(report.applications_deleted),
                    documents=len(report.documents_deleted),
                )
            )
        )
