"""Port for third-party stream providers."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from streamfinder.domain.entities.resolution import (
    Deadline,
    ResolutionKey,
    ResolutionOutcome,
)


@runtime_checkable
class ProviderPort(Protocol):
    """Turns a ResolutionKey into a stream URL using one third-party site.

    Implementations never raise for ordinary site failures; they return
    ``NotFound`` with a short reason instead.
    """

    @property
    def id(self) -> str:
        """Stable provider id (e.g. 'catalog', 'inline')."""
        ...

    @property
    def priority(self) -> int:
        """Rank in the chain; lower runs first."""
        ...

    @property
    def timeout(self) -> float:
        """Own deadline in seconds."""
        ...

    def embed_url(self, key: ResolutionKey) -> str | None:
        """Embed page URL for *key*, or None if the provider has none."""
        ...

    async def resolve(
        self, key: ResolutionKey, deadline: Deadline
    ) -> ResolutionOutcome:
        """Attempt resolution before *deadline* expires."""
        ...
