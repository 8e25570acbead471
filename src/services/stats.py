"""AggregateStatsResolver — per-space counts in one concurrent fan-out.

Three bulk list calls (tasks, milestones, invoices) filtered with
``(projet_id,in,...)`` run concurrently rather than one per space, bounding
total latency under the store's rate limiter.
"""

import asyncio
import logging
from collections.abc import Iterable

from src.auth.ownership import OwnershipIndex
from src.models.common import Record
from src.models.records import Collection, SpaceStats
from src.store.query import Where, collection_target
from src.store.transport import ResilientTransport

logger = logging.getLogger(__name__)

SPACE_FIELD = "projet_id"
_DONE_FIELDS = ("terminé", "termine")


def milestone_done(row: Record) -> bool:
    """A milestone is done when ``terminé``/``termine`` is True or "true"."""
    for name in _DONE_FIELDS:
        value = row.get(name)
        if value is not None:
            return value is True or value == "true"
    return False


class AggregateStatsResolver:
    def __init__(
        self,
        transport: ResilientTransport,
        ownership: OwnershipIndex,
        *,
        tasks_table: str,
        milestones_table: str,
        invoices_table: str,
        owner_field: str = "supabase_user_id",
        page_size: int = 1000,
    ) -> None:
        self._transport = transport
        self._ownership = ownership
        self._tasks_table = tasks_table
        self._milestones_table = milestones_table
        self._invoices_table = invoices_table
        self._owner_field = owner_field
        self._page_size = page_size

    async def stats_for(
        self,
        space_ids: Iterable[str],
        *,
        only_current_user: bool = False,
    ) -> dict[str, SpaceStats]:
        """Counts per requested space id; ``{}`` for no ids, with no calls."""
        ids = sorted({str(s) for s in space_ids if s})
        if not ids:
            return {}

        task_where: Where | None = Where.in_(SPACE_FIELD, ids)
        if only_current_user:
            user_id = await self._ownership.current_user_id()
            # Anonymous callers own no tasks.
            task_where = task_where.and_(Where.eq(self._owner_field, user_id)) if user_id else None

        tasks, milestones, invoices = await asyncio.gather(
            self._fetch(self._tasks_table, task_where, (SPACE_FIELD,)),
            self._fetch(self._milestones_table, Where.in_(SPACE_FIELD, ids),
                        (SPACE_FIELD, *_DONE_FIELDS)),
            self._fetch(self._invoices_table, Where.in_(SPACE_FIELD, ids), (SPACE_FIELD,)),
        )

        stats = {space_id: SpaceStats() for space_id in ids}
        for row in tasks.items:
            entry = stats.get(str(row.get(SPACE_FIELD)))
            if entry is not None:
                entry.task_count += 1
        for row in milestones.items:
            entry = stats.get(str(row.get(SPACE_FIELD)))
            if entry is not None:
                entry.milestone_count += 1
                if milestone_done(row):
                    entry.done_milestone_count += 1
        for row in invoices.items:
            entry = stats.get(str(row.get(SPACE_FIELD)))
            if entry is not None:
                entry.invoice_count += 1

        logger.debug("Resolved stats for %d spaces", len(ids))
        return stats

    async def _fetch(self, table_id: str, where: Where | None,
                     fields: tuple[str, ...]) -> Collection:
        if where is None:
            return Collection.empty()
        target = collection_target(table_id, where=where, fields=fields)
        return await self._transport.fetch_all(target, page_size=self._page_size)
