"""Space (client workspace) and sub-project repositories."""

from __future__ import annotations

import logging

from src.models.common import CreateStatus, Record, ScopeKind, row_id
from src.models.records import Collection, CreateResult
from src.repositories.base import AuthorizingRepository, EntityConfig
from src.store.query import collection_target

logger = logging.getLogger(__name__)


def space_config(table_id: str) -> EntityConfig:
    return EntityConfig(name="space", table_id=table_id, scope=ScopeKind.ROOT)


def sub_project_config(table_id: str) -> EntityConfig:
    return EntityConfig(
        name="sub-project",
        table_id=table_id,
        scope=ScopeKind.CHILD,
        space_field="client_id",
    )


class SpaceRepository(AuthorizingRepository):
    """Root tenant records. Visible only through the ownership table."""

    async def list(self, *, force_refresh: bool = False) -> Collection:  # type: ignore[override]
        return await self._list(None, force_refresh=force_refresh)

    async def create(self, data: Record) -> CreateResult:  # type: ignore[override]
        """Create a space, then map it to the current user.

        The two writes hit different stores and are not transactional. If
        registration fails the space exists but nobody can see it; that is
        reported as CREATED_BUT_UNREGISTERED rather than rolled back.
        """
        response = await self._transport.post(collection_target(self.table_id), dict(data))
        row = response.record()
        space_id = row_id(row) if row else None
        if space_id is None:
            self._transport.invalidate_collection(self.table_id)
            logger.warning("Space creation returned no id (degraded=%s)", response.degraded)
            return CreateResult(record=row, status=CreateStatus.NOT_CREATED)

        registered = await self._ownership.register_ownership(space_id)
        self._transport.invalidate_collection(self.table_id)
        if not registered:
            logger.error(
                "Space %s created but ownership was not registered; "
                "it is unreachable by its creator", space_id,
            )
            return CreateResult(record=row, status=CreateStatus.CREATED_BUT_UNREGISTERED)
        return CreateResult(record=row, status=CreateStatus.CREATED)

    async def update(self, record_id: str, data: Record) -> Record | None:
        if record_id not in await self._ownership.authorization_view():
            logger.debug("Refusing update of unowned space %s", record_id)
            return None
        return await self._patch(record_id, data)

    async def delete(self, record_id: str) -> bool:
        """Delete the space row only. Children and ownership rows remain."""
        if record_id not in await self._ownership.authorization_view():
            logger.debug("Refusing delete of unowned space %s", record_id)
            return False
        return await super().delete(record_id)


class SubProjectRepository(AuthorizingRepository):
    """Projects grouped under a space via ``client_id``."""
