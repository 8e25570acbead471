"""Attribute legacy, un-owned records to the current user.

Records created before owner stamping existed carry no owner. Those marked
as the provider's own work (responsible ``moi`` or ``nous``) are stamped with
the current user id, and the spaces of claimed client tasks are mapped to
that user. Updates go out in small batches with a pause between batches to
stay under the store's rate limit.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from src.auth.ownership import OwnershipIndex
from src.models.common import Record, row_id, row_owner
from src.models.records import BackfillReport
from src.repositories.base import AuthorizingRepository
from src.repositories.prospects import ProspectRepository
from src.repositories.tasks import InternalTaskRepository, TaskRepository

logger = logging.getLogger(__name__)

SELF_MARKERS = frozenset({"moi", "nous"})
TASK_RESPONSIBLE_FIELDS = ("assigne_a", "assigné_a", "responsable", "responsible")
PROSPECT_RESPONSIBLE_FIELDS = ("responsable", "responsible")


def claimable(row: Record, owner_fields: tuple[str, ...],
              responsible_fields: tuple[str, ...]) -> bool:
    """Un-owned and marked as the provider's own work."""
    if row_owner(row, owner_fields + ("userId",)):
        return False
    responsible = next((row[f] for f in responsible_fields if row.get(f)), "")
    return str(responsible).strip().lower() in SELF_MARKERS


class OwnershipBackfill:
    def __init__(
        self,
        tasks: TaskRepository,
        internal_tasks: InternalTaskRepository,
        prospects: ProspectRepository,
        ownership: OwnershipIndex,
        *,
        batch_size: int = 10,
        pause_seconds: float = 0.4,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._tasks = tasks
        self._internal_tasks = internal_tasks
        self._prospects = prospects
        self._ownership = ownership
        self._batch_size = batch_size
        self._pause_seconds = pause_seconds
        self._sleep = sleep

    async def backfill_tasks(self) -> BackfillReport:
        report = BackfillReport()
        user_id = await self._ownership.current_user_id()
        if not user_id:
            return report

        mapped: set[str] = set()

        async def claim_client_task(row: Record) -> None:
            await self._claim(self._tasks, row, user_id)
            space_id = row.get("projet_id")
            if space_id:
                mapped.add(str(space_id))

        async def claim_internal_task(row: Record) -> None:
            await self._claim(self._internal_tasks, row, user_id)

        client_rows = await self._claimable(self._tasks, TASK_RESPONSIBLE_FIELDS)
        report.updated_client_tasks = await self._in_batches(client_rows, claim_client_task)

        internal_rows = await self._claimable(self._internal_tasks, TASK_RESPONSIBLE_FIELDS)
        report.updated_internal_tasks = await self._in_batches(internal_rows, claim_internal_task)

        for space_id in sorted(mapped):
            if await self._ownership.register_ownership(space_id):
                report.mapped_spaces += 1

        logger.info(
            "Backfilled %d client tasks, %d internal tasks, %d spaces for user %s",
            report.updated_client_tasks, report.updated_internal_tasks,
            report.mapped_spaces, user_id,
        )
        return report

    async def backfill_prospects(self) -> BackfillReport:
        report = BackfillReport()
        user_id = await self._ownership.current_user_id()
        if not user_id:
            return report

        async def claim_prospect(row: Record) -> None:
            await self._claim(self._prospects, row, user_id)

        rows = await self._claimable(self._prospects, PROSPECT_RESPONSIBLE_FIELDS)
        report.updated_prospects = await self._in_batches(rows, claim_prospect)
        return report

    # ----- Internals -----

    async def _claimable(
        self,
        repo: AuthorizingRepository,
        responsible_fields: tuple[str, ...],
    ) -> list[Record]:
        rows = (await repo.list_public(force_refresh=True)).items
        owner_fields = repo.config.owner_fields
        return [r for r in rows if claimable(r, owner_fields, responsible_fields) and row_id(r)]

    @staticmethod
    async def _claim(repo: AuthorizingRepository, row: Record, user_id: str) -> None:
        await repo.update_public(row_id(row), {repo.config.owner_field: user_id})

    async def _in_batches(
        self,
        rows: list[Record],
        action: Callable[[Record], Awaitable[None]],
    ) -> int:
        """Run ``action`` over rows in batches; returns how many succeeded."""
        succeeded = 0
        for start in range(0, len(rows), self._batch_size):
            batch = rows[start:start + self._batch_size]
            results = await asyncio.gather(*(action(r) for r in batch), return_exceptions=True)
            for row, result in zip(batch, results):
                if isinstance(result, BaseException):
                    logger.warning("Backfill of record %s failed: %s", row_id(row), result)
                else:
                    succeeded += 1
            if start + self._batch_size < len(rows):
                await self._sleep(self._pause_seconds)
        return succeeded
