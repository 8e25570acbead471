"""Load everything a space page shows in one concurrent round."""

import asyncio
import logging

from src.models.records import Collection, SpaceData
from src.repositories.invoices import InvoiceRepository
from src.repositories.milestones import MilestoneRepository
from src.repositories.tasks import TaskRepository
from src.store.errors import StoreClientError

logger = logging.getLogger(__name__)


class SpaceDataLoader:
    """Tasks, milestones and invoices of one space.

    A part rejected by the store is replaced with an empty collection and
    named in ``errors``; the other parts are still returned.
    """

    def __init__(
        self,
        tasks: TaskRepository,
        milestones: MilestoneRepository,
        invoices: InvoiceRepository,
    ) -> None:
        self._tasks = tasks
        self._milestones = milestones
        self._invoices = invoices

    async def load(
        self,
        space_id: str,
        *,
        public: bool = False,
        only_current_user: bool = False,
    ) -> SpaceData:
        if public:
            calls = (
                self._tasks.list_public(space_id),
                self._milestones.list_public(space_id),
                self._invoices.list_public(space_id),
            )
        else:
            calls = (
                self._tasks.list(space_id, only_current_user=only_current_user),
                self._milestones.list(space_id),
                self._invoices.list(space_id),
            )

        results = await asyncio.gather(*calls, return_exceptions=True)

        data = SpaceData()
        for name, result in zip(("tasks", "milestones", "invoices"), results):
            if isinstance(result, StoreClientError):
                logger.warning("Loading %s for space %s failed: %s", name, space_id, result)
                data.errors.append(name)
                result = Collection.empty()
            elif isinstance(result, BaseException):
                raise result
            setattr(data, name, result)
        return data
