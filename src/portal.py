"""Composition root for the portal data layer.

``Portal.from_settings`` wires one shared httpx client, the TTL cache, the
resilient transport, the ownership index, every repository and the services
on top of them. Callers use the repositories directly.
"""

from dataclasses import dataclass

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.auth.identity import IdentityProvider
from src.auth.ownership import OwnershipIndex
from src.config.logging import configure_logging
from src.config.settings import Settings, get_settings
from src.db.session import create_engine_from_settings, create_session_factory
from src.repositories.invoices import InvoiceRepository, invoice_config
from src.repositories.milestones import MilestoneRepository, milestone_config
from src.repositories.prospects import ProspectRepository, prospect_config
from src.repositories.spaces import (
    SpaceRepository,
    SubProjectRepository,
    space_config,
    sub_project_config,
)
from src.repositories.tasks import (
    InternalTaskRepository,
    TaskRepository,
    internal_task_config,
    task_config,
)
from src.services.backfill import OwnershipBackfill
from src.services.cascade import SpaceCascadeDeleter
from src.services.space_data import SpaceDataLoader
from src.services.stats import AggregateStatsResolver
from src.store.cache import TTLCache
from src.store.transport import ResilientTransport, RetryPolicy, Sleep

logger: structlog.stdlib.BoundLogger = structlog.get_logger()


def build_http_client(
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Client for the tabular store with the static token on every call."""
    return httpx.AsyncClient(
        base_url=settings.NOCODB_BASE_URL.rstrip("/"),
        headers={
            "xc-token": settings.NOCODB_API_TOKEN,
            "Content-Type": "application/json",
            "Accept": "application/json",
        },
        timeout=settings.REQUEST_TIMEOUT_SECONDS,
        transport=transport,
    )


def retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_retries=settings.MAX_RETRIES,
        rate_limit_base_delay=settings.RATE_LIMIT_BASE_DELAY,
        rate_limit_delay_step=settings.RATE_LIMIT_DELAY_STEP,
        network_base_delay=settings.NETWORK_BASE_DELAY,
        network_delay_step=settings.NETWORK_DELAY_STEP,
    )


@dataclass
class Portal:
    """Every repository and service, sharing one transport and cache."""

    settings: Settings
    client: httpx.AsyncClient
    cache: TTLCache
    transport: ResilientTransport
    ownership: OwnershipIndex
    spaces: SpaceRepository
    sub_projects: SubProjectRepository
    tasks: TaskRepository
    internal_tasks: InternalTaskRepository
    milestones: MilestoneRepository
    invoices: InvoiceRepository
    prospects: ProspectRepository
    stats: AggregateStatsResolver
    space_data: SpaceDataLoader
    cascade: SpaceCascadeDeleter
    backfill: OwnershipBackfill
    engine: AsyncEngine | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        identity: IdentityProvider,
        *,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep | None = None,
        cache: TTLCache | None = None,
    ) -> "Portal":
        engine = None
        if session_factory is None:
            engine = create_engine_from_settings(settings)
            session_factory = create_session_factory(engine)

        client = build_http_client(settings, transport=http_transport)
        if cache is None:
            cache = TTLCache(settings.CACHE_TTL_SECONDS)
        transport_kwargs = {"policy": retry_policy(settings)}
        if sleep is not None:
            transport_kwargs["sleep"] = sleep
        transport = ResilientTransport(client, cache, **transport_kwargs)
        ownership = OwnershipIndex(identity, session_factory)

        def repo(repo_cls, config):
            return repo_cls(config, transport, ownership, page_size=settings.PAGE_SIZE)

        owner_field = settings.OWNER_FIELD
        spaces = repo(SpaceRepository, space_config(settings.TABLE_SPACES))
        sub_projects = repo(SubProjectRepository, sub_project_config(settings.TABLE_SUB_PROJECTS))
        tasks = repo(TaskRepository, task_config(settings.TABLE_TASKS, owner_field))
        internal_tasks = repo(
            InternalTaskRepository,
            internal_task_config(settings.TABLE_INTERNAL_TASKS, owner_field),
        )
        milestones = repo(MilestoneRepository, milestone_config(settings.TABLE_MILESTONES))
        invoices = repo(InvoiceRepository, invoice_config(settings.TABLE_INVOICES))
        prospects = repo(ProspectRepository, prospect_config(settings.TABLE_PROSPECTS, owner_field))

        stats = AggregateStatsResolver(
            transport,
            ownership,
            tasks_table=settings.TABLE_TASKS,
            milestones_table=settings.TABLE_MILESTONES,
            invoices_table=settings.TABLE_INVOICES,
            owner_field=owner_field,
            page_size=settings.PAGE_SIZE,
        )
        backfill_kwargs = {"sleep": sleep} if sleep is not None else {}

        logger.info("portal_wired", store=settings.NOCODB_BASE_URL, cache_ttl=cache.ttl_seconds)
        return cls(
            settings=settings,
            client=client,
            cache=cache,
            transport=transport,
            ownership=ownership,
            spaces=spaces,
            sub_projects=sub_projects,
            tasks=tasks,
            internal_tasks=internal_tasks,
            milestones=milestones,
            invoices=invoices,
            prospects=prospects,
            stats=stats,
            space_data=SpaceDataLoader(tasks, milestones, invoices),
            cascade=SpaceCascadeDeleter(spaces, tasks, milestones, invoices, ownership),
            backfill=OwnershipBackfill(
                tasks, internal_tasks, prospects, ownership, **backfill_kwargs,
            ),
            engine=engine,
        )

    async def aclose(self) -> None:
        await self.client.aclose()
        if self.engine is not None:
            await self.engine.dispose()

    async def __aenter__(self) -> "Portal":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def create_portal(identity: IdentityProvider, settings: Settings | None = None) -> Portal:
    """Configure logging and build a Portal from environment settings."""
    settings = settings or get_settings()
    configure_logging(settings)
    return Portal.from_settings(settings, identity)
