"""Errors surfaced by the data layer.

Only client errors reach callers; rate limits, outages and unauthorized
scopes are resolved inside the layer.
"""


class PortalDataError(Exception):
    """Base class for data-layer errors."""


class StoreClientError(PortalDataError):
    """The store rejected a request (4xx other than 429) or sent garbage."""

    def __init__(self, status_code: int, detail: str = "") -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Store API error: {status_code} {detail}".rstrip())

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


class MissingPrincipalError(PortalDataError):
    """An owner-stamped record was created without an authenticated user."""
