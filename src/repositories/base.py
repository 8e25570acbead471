"""Authorizing repository over one tabular-store entity type.

Repositories never raise for authorization: an unauthorized scope yields an
empty collection or None. Only store client errors (4xx other than 429) and
malformed filter operands (ValueError) propagate.

List pipeline:
1. ROOT entities: resolve the AuthorizationView; empty view → empty result,
   no upstream call.
2. CHILD entities with a scope id: the scope must be in a non-empty view.
3. Fetch through ResilientTransport (cached, paged).
4. Global listing (no scope id): keep rows whose space id is in the view.
5. ``only_current_user``: keep rows owned by the principal or un-owned.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from src.auth.ownership import AuthorizationView, OwnershipIndex
from src.models.common import Record, ScopeKind, row_id, row_owner
from src.models.records import Collection
from src.store.errors import MissingPrincipalError, StoreClientError
from src.store.query import Target, Where, collection_target, record_target
from src.store.transport import ResilientTransport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntityConfig:
    """Static description of one entity type in the store."""

    name: str
    table_id: str
    scope: ScopeKind
    space_field: str | None = None
    owner_stamped: bool = False
    owner_field: str = "supabase_user_id"

    @property
    def owner_fields(self) -> tuple[str, ...]:
        candidates = (self.owner_field, "supabase_user_id", "user_id", "owner_id")
        return tuple(dict.fromkeys(candidates))


class AuthorizingRepository:
    """list/get/create/update/delete with ownership-based filtering."""

    def __init__(
        self,
        config: EntityConfig,
        transport: ResilientTransport,
        ownership: OwnershipIndex,
        *,
        page_size: int = 1000,
    ) -> None:
        if config.scope == ScopeKind.CHILD and not config.space_field:
            raise ValueError(f"{config.name}: child-scoped entities need a space_field")
        self.config = config
        self._transport = transport
        self._ownership = ownership
        self._page_size = page_size

    @property
    def table_id(self) -> str:
        return self.config.table_id

    def space_of(self, row: Record) -> str | None:
        """The space id a row belongs to (its own id for spaces)."""
        if self.config.scope == ScopeKind.ROOT:
            return row_id(row)
        if self.config.scope == ScopeKind.CHILD:
            value = row.get(self.config.space_field)
            return None if value is None or value == "" else str(value)
        return None

    # ----- Reads -----

    async def list(
        self,
        scope_id: str | None = None,
        *,
        only_current_user: bool = False,
        force_refresh: bool = False,
    ) -> Collection:
        return await self._list(
            scope_id,
            only_current_user=only_current_user,
            force_refresh=force_refresh,
        )

    async def list_public(
        self,
        scope_id: str | None = None,
        *,
        force_refresh: bool = False,
    ) -> Collection:
        """Unfiltered listing for token-authenticated shared links."""
        rows = await self._fetch_rows(self._list_target(scope_id), force_refresh)
        return Collection.of(self._decorate(rows))

    async def get(self, record_id: str, *, force_refresh: bool = False) -> Record | None:
        view = await self._view()
        scope = self.config.scope
        if scope == ScopeKind.ROOT and record_id not in view:
            logger.debug("%s %s outside the caller's view", self.config.name, record_id)
            return None
        row = await self._fetch_one(record_id, force_refresh)
        if row is not None and scope == ScopeKind.CHILD and not view.permits_scope(self.space_of(row)):
            logger.debug("%s %s belongs to an unauthorized space", self.config.name, record_id)
            return None
        return row

    async def get_public(self, record_id: str, *, force_refresh: bool = False) -> Record | None:
        return await self._fetch_one(record_id, force_refresh)

    # ----- Writes -----

    async def create(self, data: Record) -> Record | None:
        payload = await self._stamp_owner(data)
        response = await self._transport.post(collection_target(self.table_id), payload)
        self._transport.invalidate_collection(self.table_id)
        return response.record()

    async def update(self, record_id: str, data: Record) -> Record | None:
        return await self._patch(record_id, data)

    async def update_public(self, record_id: str, data: Record) -> Record | None:
        """Write path for token-authenticated shared links."""
        return await self._patch(record_id, data)

    async def delete(self, record_id: str) -> bool:
        response = await self._transport.delete(record_target(self.table_id, record_id))
        self._transport.invalidate_entity(self.table_id, record_id)
        return not response.degraded

    # ----- Internals -----

    async def _view(self) -> AuthorizationView:
        if self.config.scope == ScopeKind.UNSCOPED:
            return AuthorizationView(user_id=None)
        return await self._ownership.authorization_view()

    async def _list(
        self,
        scope_id: str | None,
        *,
        only_current_user: bool = False,
        force_refresh: bool = False,
        fields: Iterable[str] = (),
    ) -> Collection:
        scope = self.config.scope
        if scope_id is not None and scope != ScopeKind.CHILD:
            raise ValueError(f"{self.config.name} listings are not scoped by a space")

        view = await self._view()
        if scope == ScopeKind.ROOT and view.is_empty:
            return Collection.empty()
        if scope == ScopeKind.CHILD:
            if scope_id is not None and not view.permits_scope(scope_id):
                logger.debug("%s listing for unauthorized space %s", self.config.name, scope_id)
                return Collection.empty()
            if scope_id is None and view.is_empty:
                return Collection.empty()

        rows = await self._fetch_rows(self._list_target(scope_id, fields), force_refresh)

        if scope_id is None and scope != ScopeKind.UNSCOPED:
            rows = [r for r in rows if self.space_of(r) in view]
        if only_current_user:
            rows = await self._only_current_user(rows)
        return Collection.of(self._decorate(rows))

    def _list_target(self, scope_id: str | None, fields: Iterable[str] = ()) -> Target:
        where = None
        if scope_id is not None and self.config.space_field:
            where = Where.eq(self.config.space_field, scope_id)
        return collection_target(self.table_id, where=where, fields=fields)

    async def _fetch_rows(self, target: Target, force_refresh: bool) -> list[Record]:
        page = await self._transport.fetch_all(
            target,
            page_size=self._page_size,
            use_cache=not force_refresh,
        )
        return page.items

    async def _fetch_one(self, record_id: str, force_refresh: bool) -> Record | None:
        try:
            response = await self._transport.get(
                record_target(self.table_id, record_id),
                use_cache=not force_refresh,
            )
        except StoreClientError as exc:
            if exc.not_found:
                return None
            raise
        return response.record()

    async def _patch(self, record_id: str, data: Record) -> Record | None:
        response = await self._transport.patch(record_target(self.table_id, record_id), dict(data))
        self._transport.invalidate_entity(self.table_id, record_id)
        return response.record()

    async def _stamp_owner(self, data: Record) -> Record:
        payload = dict(data)
        if not self.config.owner_stamped:
            return payload
        user_id = await self._ownership.current_user_id()
        if not user_id:
            logger.warning("User id required to create %s", self.config.name)
            raise MissingPrincipalError(f"Missing user id for {self.config.name} creation")
        payload[self.config.owner_field] = user_id
        return payload

    async def _only_current_user(self, rows: list[Record]) -> list[Record]:
        user_id = await self._ownership.current_user_id()
        if not user_id:
            return []
        fields = self.config.owner_fields
        return [r for r in rows if row_owner(r, fields) in (None, user_id)]

    def _decorate(self, rows: list[Record]) -> list[Record]:
        return rows
