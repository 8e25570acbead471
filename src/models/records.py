"""Result shapes returned by the repositories and services."""

from dataclasses import dataclass, field

from pydantic import Field

from src.models.common import CreateStatus, PortalBase, Record


class PageInfo(PortalBase):
    """Pagination block of a store collection response."""

    total_rows: int = Field(default=0, alias="totalRows")


class Collection(PortalBase):
    """A store collection: ``{list: [...], pageInfo: {totalRows}}``.

    ``Collection.empty()`` is the shape every degraded list call returns.
    """

    items: list[Record] = Field(default_factory=list, alias="list")
    page_info: PageInfo = Field(default_factory=PageInfo, alias="pageInfo")

    @classmethod
    def empty(cls) -> "Collection":
        return cls(items=[], page_info=PageInfo(total_rows=0))

    @classmethod
    def from_payload(cls, payload: object) -> "Collection":
        """Build from a raw store payload, tolerating missing blocks."""
        if not isinstance(payload, dict):
            return cls.empty()
        items = payload.get("list") or []
        page = payload.get("pageInfo") or {}
        total = page.get("totalRows") if isinstance(page, dict) else None
        return cls(
            items=list(items),
            page_info=PageInfo(total_rows=total if total is not None else len(items)),
        )

    @classmethod
    def of(cls, items: list[Record]) -> "Collection":
        """A collection whose total matches its (filtered) items."""
        return cls(items=list(items), page_info=PageInfo(total_rows=len(items)))

    @property
    def total(self) -> int:
        return self.page_info.total_rows

    def __len__(self) -> int:
        return len(self.items)

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True)


class CreateResult(PortalBase):
    """Result of creating a space: the record plus ownership outcome."""

    record: Record | None = None
    status: CreateStatus

    @property
    def created(self) -> bool:
        return self.status != CreateStatus.NOT_CREATED


@dataclass
class SpaceStats:
    """Per-space aggregate counts."""

    task_count: int = 0
    milestone_count: int = 0
    invoice_count: int = 0
    done_milestone_count: int = 0


@dataclass
class SpaceData:
    """Tasks, milestones and invoices of one space, loaded together."""

    tasks: Collection = field(default_factory=Collection.empty)
    milestones: Collection = field(default_factory=Collection.empty)
    invoices: Collection = field(default_factory=Collection.empty)
    errors: list[str] = field(default_factory=list)


@dataclass
class CascadeReport:
    """Outcome of a cascading space deletion."""

    space_id: str
    authorized: bool = True
    deleted_tasks: int = 0
    deleted_milestones: int = 0
    deleted_invoices: int = 0
    removed_ownerships: int = 0
    failures: list[str] = field(default_factory=list)
    space_deleted: bool = False


@dataclass
class BackfillReport:
    """Counts from attributing legacy un-owned records to the current user."""

    updated_client_tasks: int = 0
    updated_internal_tasks: int = 0
    updated_prospects: int = 0
    mapped_spaces: int = 0
