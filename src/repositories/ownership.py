"""Ownership repository — the (user id, space id) mapping table."""

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.tables import SpaceOwnerRow
from src.models.common import utc_now

_CONFLICT_AWARE_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class OwnershipRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_space_ids(self, user_id: str) -> list[str]:
        result = await self._session.execute(
            select(SpaceOwnerRow.space_id).where(SpaceOwnerRow.user_id == user_id)
        )
        return [str(space_id) for space_id in result.scalars().all()]

    async def get(self, user_id: str, space_id: str) -> SpaceOwnerRow | None:
        return await self._session.get(SpaceOwnerRow, (user_id, space_id))

    async def upsert(self, user_id: str, space_id: str) -> bool:
        """Insert the pair unless it already exists. Returns True if inserted.

        A single ``INSERT ... ON CONFLICT DO NOTHING``, so two concurrent
        registrations of the same pair both succeed.
        """
        dialect = self._session.get_bind().dialect.name
        insert = _CONFLICT_AWARE_INSERTS.get(dialect)
        if insert is None:
            if await self.get(user_id, space_id) is not None:
                return False
            self._session.add(SpaceOwnerRow(user_id=user_id, space_id=space_id, created_at=utc_now()))
            await self._session.flush()
            return True
        stmt = (
            insert(SpaceOwnerRow)
            .values(user_id=user_id, space_id=space_id, created_at=utc_now())
            .on_conflict_do_nothing(index_elements=["user_id", "space_id"])
        )
        result = await self._session.execute(stmt)
        return bool(result.rowcount)

    async def delete_space(self, space_id: str) -> int:
        result = await self._session.execute(
            delete(SpaceOwnerRow).where(SpaceOwnerRow.space_id == space_id)
        )
        await self._session.flush()
        return result.rowcount or 0
