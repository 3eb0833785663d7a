"""Reconciliation engine.

This module is integration-agnostic. It only relies on ports for the
transport, checkpoints and rendering. One cycle for one key runs like this:

1) Acquire the per-key lock
2) Load the tracked entry, rescuing it by tag scan when a resolver is set
3) Render the desired state
4) Create, update, delete or do nothing
5) Persist the checkpoint, then update the cache

Cache and checkpoint only ever move after the remote mutation succeeded, so
a failed or timed-out cycle leaves the entry exactly as the next event
expects to find it.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from dataclasses import replace
from typing import Awaitable, Callable, Optional

from huskboard.core.cache import RepresentationCache
from huskboard.core.digest import content_digest
from huskboard.core.errors import CheckpointWriteFailure, RepresentationNotFound, TransportFailure
from huskboard.core.identity import encode_tag
from huskboard.core.models import (
    ABSENT,
    Content,
    CountChanged,
    Desired,
    Event,
    NewActivity,
    Outcome,
    OutcomeKind,
    ReconcileKey,
    SourceRemoved,
    TrackedEntry,
    UpdatePolicy,
)
from huskboard.core.ports import CheckpointPort, RendererPort, TransportPort
from huskboard.core.resolver import IdentityResolver
from huskboard.core.serializer import KeySerializer

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_MISS_CAPACITY = 1024


def _activity_precedes(message_id: str, current_id: str) -> bool:
    """Return True when activity is not newer than the current representation."""

    # Telegram message ids only grow within a chat.
    if message_id.isdigit() and current_id.isdigit():
        return int(message_id) <= int(current_id)
    return message_id == current_id


class ReconciliationEngine:
    """Keeps exactly one representation per key in line with rendered state."""

    def __init__(
        self,
        transport: TransportPort,
        checkpoints: CheckpointPort,
        renderer: RendererPort,
        *,
        policy: UpdatePolicy,
        resolver: Optional[IdentityResolver] = None,
        cache: Optional[RepresentationCache] = None,
        serializer: Optional[KeySerializer] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        miss_capacity: int = DEFAULT_MISS_CAPACITY,
        name: str = "engine",
    ) -> None:
        self._transport = transport
        self._checkpoints = checkpoints
        self._renderer = renderer
        self._policy = policy
        self._resolver = resolver
        self._cache = cache if cache is not None else RepresentationCache()
        self._serializer = serializer if serializer is not None else KeySerializer()
        self._timeout = timeout_seconds
        self._name = name
        # Keys whose cold-cache scan found nothing, oldest first. Kept out of
        # the cache so it only ever mirrors the checkpoint store.
        self._misses: OrderedDict[ReconcileKey, None] = OrderedDict()
        self._miss_capacity = miss_capacity

    @property
    def cache(self) -> RepresentationCache:
        return self._cache

    @property
    def serializer(self) -> KeySerializer:
        return self._serializer

    def load(self) -> int:
        """Populate the cache from the checkpoint store."""

        count = self._cache.load(self._checkpoints.load())
        LOGGER.info("Loaded %s %s entries", count, self._name)
        return count

    async def reconcile(self, event: Event) -> Outcome:
        """Run one full reconciliation cycle for the event's key."""

        return await self._guarded(event.key, lambda: self._reconcile(event))

    async def configure(
        self,
        key: ReconcileKey,
        content: Optional[str],
        owner_scope_id: Optional[str] = None,
    ) -> TrackedEntry:
        """Store the pinned content for a key, keeping its representation.

        Raises CheckpointWriteFailure when the row cannot be written; the
        cache is untouched in that case.
        """

        async with self._serializer.hold(key):
            current = self._cache.get(key)
            if current is None:
                entry = TrackedEntry(key=key, policy=self._policy, owner_scope_id=owner_scope_id, content=content)
            else:
                entry = replace(current, owner_scope_id=owner_scope_id or current.owner_scope_id, content=content)
            self._commit(entry)
            return entry

    async def forget(self, key: ReconcileKey) -> Outcome:
        """Stop tracking a key and delete its representation if any."""

        return await self._guarded(key, lambda: self._forget(key))

    async def _guarded(self, key: ReconcileKey, fn: Callable[[], Awaitable[Outcome]]) -> Outcome:
        async with self._serializer.hold(key):
            try:
                return await asyncio.wait_for(fn(), timeout=self._timeout)
            except asyncio.TimeoutError:
                LOGGER.warning("%s cycle for %s timed out after %ss", self._name, key, self._timeout)
                return Outcome.failed(key, "timeout")
            except TransportFailure as exc:
                LOGGER.warning("%s transport failure for %s: %s", self._name, key, exc)
                return Outcome.failed(key, f"transport failure: {exc}")
            except CheckpointWriteFailure as exc:
                LOGGER.error("%s checkpoint write failed for %s: %s", self._name, key, exc)
                return Outcome.failed(key, f"checkpoint write failure: {exc}")

    async def _reconcile(self, event: Event) -> Outcome:
        key = event.key
        entry = self._cache.get(key)
        resolver = self._resolver
        scanned = False
        if entry is None and resolver is not None and key not in self._misses:
            entry = await self._rescue(resolver, key, entry)
            scanned = True

        current_id = entry.representation_id if entry else None
        kind = event.kind
        # Activity older than the current representation (our own repost
        # echoing back, possibly late) cannot push it down.
        if (
            isinstance(kind, NewActivity)
            and kind.message_id is not None
            and current_id is not None
            and _activity_precedes(kind.message_id, current_id)
        ):
            return Outcome.noop(key, current_id)

        desired = await self._desired(event, entry)

        if current_id is None and isinstance(desired, Content) and resolver is not None and not scanned:
            # Last line of defence against a create that already happened in
            # a cycle whose checkpoint write failed.
            entry = await self._rescue(resolver, key, entry)
            current_id = entry.representation_id if entry else None

        if entry is None or current_id is None:
            if not isinstance(desired, Content):
                return Outcome.noop(key)
            return await self._create(key, entry, desired)

        if not isinstance(desired, Content):
            await self._delete_quietly(key, current_id)
            self._commit(replace(entry, representation_id=None, digest=None))
            LOGGER.info("Deleted %s for %s", current_id, key)
            return Outcome(OutcomeKind.DELETED, key, previous_id=current_id)

        if entry.policy is UpdatePolicy.REPOST:
            await self._delete_quietly(key, current_id)
            return await self._create(key, entry, desired, previous_id=current_id)

        digest = content_digest(desired)
        if entry.digest == digest:
            return Outcome.noop(key, current_id)
        try:
            await self._transport.update(key.scope_id, current_id, desired)
        except RepresentationNotFound:
            LOGGER.info("Message %s for %s vanished, creating a fresh one", current_id, key)
            return await self._create(key, entry, desired, previous_id=current_id)
        self._commit(replace(entry, digest=digest))
        LOGGER.info("Updated %s for %s", current_id, key)
        return Outcome(OutcomeKind.UPDATED, key, representation_id=current_id)

    async def _forget(self, key: ReconcileKey) -> Outcome:
        entry = self._cache.get(key)
        if entry is None:
            return Outcome.noop(key)
        if entry.representation_id:
            await self._delete_quietly(key, entry.representation_id)
        self._checkpoints.clear(key)
        self._cache.remove(key)
        LOGGER.info("Stopped tracking %s", key)
        return Outcome(OutcomeKind.DELETED, key, previous_id=entry.representation_id)

    async def _desired(self, event: Event, entry: Optional[TrackedEntry]) -> Desired:
        kind = event.kind
        if isinstance(kind, SourceRemoved):
            return ABSENT
        if isinstance(kind, CountChanged):
            state = kind.count
        else:
            state = entry.content if entry else None
        desired = await self._renderer.render(event.key, state)
        if isinstance(desired, Content) and self._resolver is not None:
            desired = replace(desired, tag=encode_tag(event.key.source_id))
        return desired

    async def _rescue(
        self,
        resolver: IdentityResolver,
        key: ReconcileKey,
        entry: Optional[TrackedEntry],
    ) -> Optional[TrackedEntry]:
        found = await resolver.resolve(key.scope_id, key.source_id)
        if found is None:
            if entry is None:
                self._remember_miss(key)
            return entry
        self._misses.pop(key, None)
        if entry is None:
            rescued = TrackedEntry(key=key, policy=self._policy, representation_id=found)
        else:
            rescued = replace(entry, representation_id=found, digest=None)
        self._cache.put(rescued)
        return rescued

    def _remember_miss(self, key: ReconcileKey) -> None:
        # Sub-threshold events on a key that scanned empty skip the rescan.
        self._misses[key] = None
        self._misses.move_to_end(key)
        while len(self._misses) > self._miss_capacity:
            self._misses.popitem(last=False)

    async def _create(
        self,
        key: ReconcileKey,
        entry: Optional[TrackedEntry],
        content: Content,
        previous_id: Optional[str] = None,
    ) -> Outcome:
        new_id = await self._transport.create(key.scope_id, content)
        base = entry if entry is not None else TrackedEntry(key=key, policy=self._policy)
        self._commit(replace(base, representation_id=new_id, digest=content_digest(content)))
        self._misses.pop(key, None)
        LOGGER.info("Created %s for %s", new_id, key)
        return Outcome(OutcomeKind.CREATED, key, representation_id=new_id, previous_id=previous_id)

    async def _delete_quietly(self, key: ReconcileKey, representation_id: str) -> None:
        # Deletes never fail a cycle: the target may already be gone.
        try:
            await self._transport.delete(key.scope_id, representation_id)
        except RepresentationNotFound:
            LOGGER.debug("Message %s for %s was already gone", representation_id, key)
        except TransportFailure as exc:
            LOGGER.warning("Failed to delete %s for %s: %s", representation_id, key, exc)

    def _commit(self, entry: TrackedEntry) -> None:
        # Checkpoint first: the cache never holds state the store does not.
        self._checkpoints.upsert(entry.to_record())
        self._cache.put(entry)
