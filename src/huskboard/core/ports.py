"""Ports (interfaces) used by the reconciliation core.

Ports define the minimal contracts for storage, transport and rendering so
that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Protocol

from huskboard.core.models import CheckpointRecord, Content, Desired, ReconcileKey, RecentMessage


class CheckpointPort(Protocol):
    """Durable storage of the last known representation per key."""

    def load(self) -> Iterable[CheckpointRecord]:
        ...

    def upsert(self, record: CheckpointRecord) -> None:
        ...

    def clear(self, key: ReconcileKey) -> None:
        ...


class TransportPort(Protocol):
    """Remote operations on posted representations."""

    async def create(self, scope_id: str, content: Content) -> str:
        ...

    async def update(self, scope_id: str, representation_id: str, content: Content) -> None:
        ...

    async def delete(self, scope_id: str, representation_id: str) -> None:
        ...

    async def list_recent(self, scope_id: str, limit: int) -> List[RecentMessage]:
        ...


class RendererPort(Protocol):
    """Caller-supplied mapping from source state to desired content."""

    async def render(self, key: ReconcileKey, state: Any) -> Desired:
        ...
