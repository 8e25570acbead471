"""Milestone repository."""

from __future__ import annotations

from collections.abc import Iterable

from src.models.common import ScopeKind
from src.models.records import Collection
from src.repositories.base import AuthorizingRepository, EntityConfig


def milestone_config(table_id: str) -> EntityConfig:
    return EntityConfig(
        name="milestone",
        table_id=table_id,
        scope=ScopeKind.CHILD,
        space_field="projet_id",
    )


class MilestoneRepository(AuthorizingRepository):
    async def list(  # type: ignore[override]
        self,
        scope_id: str | None = None,
        *,
        fields: Iterable[str] = (),
        only_current_user: bool = False,
        force_refresh: bool = False,
    ) -> Collection:
        """List milestones, optionally projecting to ``fields``.

        A projection must keep ``projet_id`` for global listings, otherwise
        every row is filtered out as belonging to no space.
        """
        return await self._list(
            scope_id,
            fields=fields,
            only_current_user=only_current_user,
            force_refresh=force_refresh,
        )
