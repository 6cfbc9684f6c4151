"""
Application entry point — wires dependencies and starts the scheduler.

Composition root: creates concrete adapters, injects them into the
services, and hands the statistics refresh to the scheduler.

This is the ONLY place where concrete adapter classes are instantiated.
Everything else depends on Protocol interfaces.

Responsibilities:
  1. Configure structlog
  2. Load and validate configuration from environment
  3. Create concrete adapters for the selected storage backend
  4. Build the services (catalog, registry, applications, engine, statistics)
  5. Create and start the scheduler
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TypeAlias

import structlog

from evisa_lifecycle import __version__
from evisa_lifecycle.adapters.http_client import HttpDocumentStorage, HttpEventPublisher
from evisa_lifecycle.adapters.memory import (
    InMemoryApplicationRepository,
    InMemoryDocumentRepository,
    InMemoryDocumentStorage,
    InMemorySequenceCounter,
    InMemoryVisaTypeRepository,
    LoggingEventPublisher,
)
from evisa_lifecycle.adapters.repository import (
    PsycopgApplicationRepository,
    PsycopgDocumentRepository,
    PsycopgSequenceCounter,
    PsycopgVisaTypeRepository,
    ensure_schema,
)
from evisa_lifecycle.applications import ApplicationService
from evisa_lifecycle.catalog import VisaTypeCatalog
from evisa_lifecycle.config import AppSettings
from evisa_lifecycle.domain.models import utc_now
from evisa_lifecycle.domain.ports import (
    ApplicationRepository,
    DocumentRepository,
    DocumentStorage,
    EventPublisher,
    SequenceCounter,
    VisaTypeRepository,
)
from evisa_lifecycle.engine import LifecycleEngine
from evisa_lifecycle.railway import Result
from evisa_lifecycle.registry import DocumentRegistry
from evisa_lifecycle.scheduler import create_scheduler
from evisa_lifecycle.statistics import StatisticsAggregator
from evisa_lifecycle.workflows import AccountPurgeWorkflow


def configure_structlog(log_level: str = "INFO") -> None:
    """Configure structlog processors and the filtering level."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


_Adapters: TypeAlias = tuple[
    ApplicationRepository,
    VisaTypeRepository,
    DocumentRepository,
    SequenceCounter,
    DocumentStorage,
    EventPublisher,
]


@dataclass(frozen=True, slots=True)
class Services:
    catalog: VisaTypeCatalog
    registry: DocumentRegistry
    applications: ApplicationService
    engine: LifecycleEngine
    statistics: StatisticsAggregator
    account_purge: AccountPurgeWorkflow


def _create_adapters(settings: AppSettings) -> _Adapters:
    """Instantiate the storage adapters for the configured backend plus HTTP collaborators."""
    timeout = settings.http_timeout_seconds

    storage: DocumentStorage
    if settings.documents.url:
        storage = HttpDocumentStorage(base_url=settings.documents.url, timeout=timeout)
    else:
        storage = InMemoryDocumentStorage()

    publisher: EventPublisher
    if settings.notifications.url:
        publisher = HttpEventPublisher(webhook_url=settings.notifications.url, timeout=timeout)
    else:
        publisher = LoggingEventPublisher()

    if settings.storage_backend == "postgres":
        assert settings.database is not None  # guaranteed by AppSettings validator
        dsn = settings.database.get_dsn()
        return (
            PsycopgApplicationRepository(dsn),
            PsycopgVisaTypeRepository(dsn),
            PsycopgDocumentRepository(dsn),
            PsycopgSequenceCounter(dsn),
            storage,
            publisher,
        )
    return (
        InMemoryApplicationRepository(),
        InMemoryVisaTypeRepository(),
        InMemoryDocumentRepository(),
        InMemorySequenceCounter(),
        storage,
        publisher,
    )


def build_services(
    settings: AppSettings, clock: Callable[[], datetime] = utc_now
) -> Services:
    applications, visa_types, documents, counter, storage, publisher = _create_adapters(settings)
    registry = DocumentRegistry(documents, storage, clock)
    return Services(
        catalog=VisaTypeCatalog(visa_types, applications, clock),
        registry=registry,
        applications=ApplicationService(
            applications,
            visa_types,
            documents,
            counter,
            clock,
            number_prefix=settings.numbering.prefix,
            number_width=settings.numbering.width,
        ),
        engine=LifecycleEngine(applications, publisher, clock),
        statistics=StatisticsAggregator(visa_types, applications, clock),
        account_purge=AccountPurgeWorkflow(applications, registry),
    )


def prepare_storage(settings: AppSettings) -> Result[str]:
    """Create the Postgres schema when that backend is selected."""
    if settings.storage_backend == "postgres":
        assert settings.database is not None
        return ensure_schema(settings.database.get_dsn())
    return Result.success("memory backend")


def main() -> None:
    """Wire dependencies and launch the scheduled statistics refresh."""
    try:
        settings = AppSettings()
    except Exception as e:
        print(f"FATAL: Configuration error — {e}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    configure_structlog(settings.log_level)
    log = structlog.get_logger()

    log.info(
        "app.starting",
        version=__version__,
        log_level=settings.log_level,
        storage_backend=settings.storage_backend,
        cron=settings.scheduler.cron,
        run_on_startup=settings.run_on_startup,
    )

    prepared = prepare_storage(settings)
    if prepared.is_failure():
        log.error("app.storage_unavailable", failure=str(prepared.error()))
        sys.exit(1)

    services = build_services(settings)
    scheduler = create_scheduler(
        job_fn=services.statistics.recompute_all,
        cron=settings.scheduler.cron,
        run_on_startup=settings.run_on_startup,
        cleanup_fn=services.registry.cleanup_expired,
    )

    log.info("app.scheduler_starting", cron=settings.scheduler.cron)

    try:
        scheduler.start()
    except KeyboardInterrupt:
        log.info("app.shutdown", reason="signal received")
    except SystemExit:
        log.info("app.shutdown", reason="signal received")
        raise
    except Exception as e:
        log.error("app.fatal_error", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
