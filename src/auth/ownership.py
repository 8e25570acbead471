"""OwnershipIndex — which spaces the current principal may see.

The tabular store has no users. Authorization is a two-step pipeline:
resolve the AuthorizationView here from the ownership table, then let the
repositories filter or validate store rows against it. The view is
recomputed for every logical operation and never cached, so spaces created
or deleted mid-session are reflected immediately.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.auth.identity import IdentityProvider
from src.db.session import unit_of_work
from src.repositories.ownership import OwnershipRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationView:
    """Space ids visible to one principal for one logical operation."""

    user_id: str | None
    space_ids: frozenset[str] = field(default_factory=frozenset)

    def __contains__(self, space_id: object) -> bool:
        return space_id is not None and str(space_id) in self.space_ids

    def __len__(self) -> int:
        return len(self.space_ids)

    @property
    def is_empty(self) -> bool:
        return not self.space_ids

    def permits_scope(self, space_id: object) -> bool:
        """Child-scope check: an empty view means no restriction configured.

        Records created before ownership tracking existed have no mapping
        rows; an owner with an empty view must still reach them. Root-scoped
        reads do not use this rule: for them an empty view shows nothing.
        """
        return self.is_empty or space_id in self


class OwnershipIndex:
    """Resolves the principal and its owned space ids."""

    def __init__(
        self,
        identity: IdentityProvider,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._identity = identity
        self._session_factory = session_factory

    async def current_user_id(self) -> str | None:
        return await self._identity.current_user_id()

    async def owned_space_ids(self) -> frozenset[str]:
        """Space ids mapped to the current user; empty on anonymity or failure."""
        user_id = await self.current_user_id()
        if not user_id:
            return frozenset()
        return await self._space_ids_for(user_id)

    async def authorization_view(self) -> AuthorizationView:
        user_id = await self.current_user_id()
        if not user_id:
            return AuthorizationView(user_id=None)
        return AuthorizationView(user_id=user_id, space_ids=await self._space_ids_for(user_id))

    async def register_ownership(self, space_id: str) -> bool:
        """Idempotently map ``space_id`` to the current user.

        Never raises: a failure is logged and reported as False, leaving the
        space unreachable by its creator.
        """
        user_id = await self.current_user_id()
        if not user_id:
            logger.error("Cannot register ownership of space %s: no authenticated user", space_id)
            return False
        try:
            async with unit_of_work(self._session_factory) as session:
                await OwnershipRepository(session).upsert(user_id, str(space_id))
        except SQLAlchemyError:
            logger.exception("Failed to register ownership of space %s for user %s",
                             space_id, user_id)
            return False
        logger.info("Registered ownership of space %s for user %s", space_id, user_id)
        return True

    async def forget_space(self, space_id: str) -> int:
        """Remove every ownership row of a space. Returns rows removed."""
        try:
            async with unit_of_work(self._session_factory) as session:
                removed = await OwnershipRepository(session).delete_space(str(space_id))
        except SQLAlchemyError:
            logger.exception("Failed to remove ownership rows for space %s", space_id)
            return 0
        return removed

    async def _space_ids_for(self, user_id: str) -> frozenset[str]:
        try:
            async with self._session_factory() as session:
                space_ids = await OwnershipRepository(session).list_space_ids(user_id)
        except SQLAlchemyError:
            logger.exception("Error fetching spaces owned by user %s", user_id)
            return frozenset()
        return frozenset(s for s in space_ids if s)
