"""
Server Context

Process-wide collaborators built once at startup and handed to every request:
settings, the Patient store, the audit sink and the $match service. The
context is frozen; nothing replaces its members while the server runs.
"""
from dataclasses import dataclass

import structlog

from priorauth.config import Settings
from priorauth.db.store import PatientStore, create_store
from priorauth.ingestion.loader import PatientLoader
from priorauth.mpi.service import MatchService
from priorauth.security.audit import AuditLogger

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ServerContext:
    settings: Settings
    store: PatientStore
    audit: AuditLogger
    match_service: MatchService

    @property
    def loader(self) -> PatientLoader:
        return PatientLoader(self.store, self.match_service.normalizer)

    def base_url(self, request_base: str) -> str:
        """Configured base URL, or the one the request arrived on."""
        return (self.settings.app.base_url or request_base).rstrip("/")

    async def close(self) -> None:
        await self.store.close()


async def build_context(
    settings: Settings,
    store: PatientStore | None = None,
    audit: AuditLogger | None = None,
) -> ServerContext:
    """Create the server context, seeding the store when a seed bundle is configured."""
    if store is None:
        store = await create_store(settings)

    context = ServerContext(
        settings=settings,
        store=store,
        audit=audit or AuditLogger(),
        match_service=MatchService.from_settings(store, settings),
    )

    if settings.store.seed_bundle is not None:
        report = await context.loader.load_file(settings.store.seed_bundle)
        logger.info(
            "Seeded patient store",
            path=str(settings.store.seed_bundle),
            loaded=len(report.loaded),
            errors=len(report.errors),
        )
    return context
