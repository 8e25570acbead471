"""Cascading deletion of a space and everything hanging off it.

Plain ``SpaceRepository.delete`` removes only the space row. This service
removes the space's tasks, milestones and invoices, then the space, then its
ownership rows. Ownership is dropped last so a failed space deletion leaves
the space visible to its owner instead of orphaned.
"""

import logging

from src.auth.ownership import OwnershipIndex
from src.models.common import row_id
from src.models.records import CascadeReport
from src.repositories.base import AuthorizingRepository
from src.repositories.invoices import InvoiceRepository
from src.repositories.milestones import MilestoneRepository
from src.repositories.spaces import SpaceRepository
from src.repositories.tasks import TaskRepository
from src.store.errors import StoreClientError

logger = logging.getLogger(__name__)


class SpaceCascadeDeleter:
    def __init__(
        self,
        spaces: SpaceRepository,
        tasks: TaskRepository,
        milestones: MilestoneRepository,
        invoices: InvoiceRepository,
        ownership: OwnershipIndex,
    ) -> None:
        self._spaces = spaces
        self._children: tuple[tuple[str, AuthorizingRepository], ...] = (
            ("tasks", tasks),
            ("milestones", milestones),
            ("invoices", invoices),
        )
        self._ownership = ownership

    async def delete_space(self, space_id: str) -> CascadeReport:
        report = CascadeReport(space_id=space_id)
        if space_id not in await self._ownership.authorization_view():
            logger.warning("Cascade delete refused: space %s is not owned by the caller", space_id)
            report.authorized = False
            return report

        logger.info("Starting cascade deletion for space %s", space_id)
        for name, repo in self._children:
            deleted = await self._delete_children(name, repo, space_id, report)
            setattr(report, f"deleted_{name}", deleted)

        # A client error here propagates with ownership rows untouched.
        report.space_deleted = await self._spaces.delete(space_id)
        if not report.space_deleted:
            logger.error("Space %s could not be deleted; ownership rows kept", space_id)
            report.failures.append(f"space:{space_id}")
            return report

        report.removed_ownerships = await self._ownership.forget_space(space_id)
        logger.info(
            "Cascade deletion of space %s done: %d tasks, %d milestones, %d invoices",
            space_id, report.deleted_tasks, report.deleted_milestones, report.deleted_invoices,
        )
        return report

    @staticmethod
    async def _delete_children(
        name: str,
        repo: AuthorizingRepository,
        space_id: str,
        report: CascadeReport,
    ) -> int:
        rows = (await repo.list_public(space_id, force_refresh=True)).items
        deleted = 0
        for row in rows:
            child_id = row_id(row)
            if child_id is None:
                continue
            try:
                ok = await repo.delete(child_id)
            except StoreClientError as exc:
                logger.error("Error deleting %s %s of space %s: %s", name, child_id, space_id, exc)
                ok = False
            if ok:
                deleted += 1
            else:
                report.failures.append(f"{name}:{child_id}")
        return deleted
