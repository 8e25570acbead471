"""Identity collaborator — who is the current principal.

The identity service's own protocol is opaque to this layer; anything that
can answer "current user id" plugs in here.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class IdentityProvider(Protocol):
    async def current_user_id(self) -> str | None:
        """Return the authenticated user id, or None when anonymous."""
        ...


class StaticIdentity:
    """A fixed principal (or anonymous when ``user_id`` is None)."""

    def __init__(self, user_id: str | None = None) -> None:
        self.user_id = user_id

    async def current_user_id(self) -> str | None:
        return self.user_id

    def sign_in(self, user_id: str) -> None:
        self.user_id = user_id

    def sign_out(self) -> None:
        self.user_id = None
