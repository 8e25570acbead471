"""Prospect repository — the provider's sales pipeline."""

from __future__ import annotations

from src.models.common import ScopeKind
from src.models.records import Collection
from src.repositories.base import AuthorizingRepository, EntityConfig
from src.store.query import collection_target


def prospect_config(table_id: str, owner_field: str = "supabase_user_id") -> EntityConfig:
    return EntityConfig(
        name="prospect",
        table_id=table_id,
        scope=ScopeKind.UNSCOPED,
        owner_stamped=True,
        owner_field=owner_field,
    )


class ProspectRepository(AuthorizingRepository):
    async def list(  # type: ignore[override]
        self,
        *,
        limit: int = 50,
        offset: int = 0,
        only_current_user: bool = False,
        force_refresh: bool = False,
    ) -> Collection:
        """One page of prospects (not drained like the other listings)."""
        target = collection_target(self.table_id, limit=limit, offset=offset)
        response = await self._transport.get(target, use_cache=not force_refresh)
        rows = response.collection().items
        if only_current_user:
            rows = await self._only_current_user(rows)
        return Collection.of(rows)

    async def list_all(self, *, force_refresh: bool = False) -> Collection:
        """Every prospect, paged through the whole table."""
        return await self._list(None, force_refresh=force_refresh)
