"""Invoice repository."""

from src.models.common import ScopeKind
from src.repositories.base import AuthorizingRepository, EntityConfig
from src.store.query import Where, collection_target


def invoice_config(table_id: str) -> EntityConfig:
    return EntityConfig(
        name="invoice",
        table_id=table_id,
        scope=ScopeKind.CHILD,
        space_field="projet_id",
    )


class InvoiceRepository(AuthorizingRepository):
    async def count(self, space_id: str) -> int:
        view = await self._ownership.authorization_view()
        if not view.permits_scope(space_id):
            return 0
        target = collection_target(
            self.table_id,
            where=Where.eq("projet_id", space_id),
            fields=("Id",),
            limit=1,
        )
        response = await self._transport.get(target)
        return response.collection().total
