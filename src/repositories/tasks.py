"""Client task and internal task repositories."""

from __future__ import annotations

from src.models.common import Record, ScopeKind
from src.models.records import Collection
from src.repositories.base import AuthorizingRepository, EntityConfig
from src.store.query import Where, collection_target


def task_config(table_id: str, owner_field: str = "supabase_user_id") -> EntityConfig:
    return EntityConfig(
        name="task",
        table_id=table_id,
        scope=ScopeKind.CHILD,
        space_field="projet_id",
        owner_stamped=True,
        owner_field=owner_field,
    )


def internal_task_config(table_id: str, owner_field: str = "supabase_user_id") -> EntityConfig:
    return EntityConfig(
        name="internal task",
        table_id=table_id,
        scope=ScopeKind.UNSCOPED,
        owner_stamped=True,
        owner_field=owner_field,
    )


class TaskRepository(AuthorizingRepository):
    """Tasks of a client space, stamped with their creator."""

    async def count(self, space_id: str, *, only_current_user: bool = False) -> int:
        """Number of tasks in a space, read from ``pageInfo.totalRows``."""
        view = await self._ownership.authorization_view()
        if not view.permits_scope(space_id):
            return 0
        where = Where.eq("projet_id", space_id)
        if only_current_user:
            if not view.user_id:
                return 0
            where = where.and_(Where.eq(self.config.owner_field, view.user_id))
        target = collection_target(self.table_id, where=where, fields=("Id",), limit=1)
        response = await self._transport.get(target)
        return response.collection().total


class InternalTaskRepository(AuthorizingRepository):
    """The provider's own tasks; not attached to any space."""

    async def list(  # type: ignore[override]
        self,
        *,
        only_current_user: bool = False,
        force_refresh: bool = False,
    ) -> Collection:
        return await self._list(
            None,
            only_current_user=only_current_user,
            force_refresh=force_refresh,
        )

    def _decorate(self, rows: list[Record]) -> list[Record]:
        return [{**row, "isInternal": True} for row in rows]
