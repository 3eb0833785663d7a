"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class ReconcileKey:
    """Identity of one tracked artifact: where it lives and what it mirrors."""

    scope_id: str
    source_id: str

    def __str__(self) -> str:
        return f"{self.scope_id}|{self.source_id}"


class UpdatePolicy(str, Enum):
    """How an existing representation converges to new content."""

    # Board entries keep their place in the chat and are edited.
    EDIT_IN_PLACE = "edit_in_place"
    # Stickies must stay the newest message, so they are deleted and resent.
    REPOST = "repost"


@dataclass(frozen=True)
class LinkButton:
    """A labelled link attached to a representation."""

    label: str
    url: str


@dataclass(frozen=True)
class Content:
    """Opaque bundle the transport turns into a posted message."""

    text: str
    links: Tuple[LinkButton, ...] = ()
    tag: Optional[str] = None


class _Absent:
    _instance: Optional["_Absent"] = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


# Renderer result meaning "no representation should exist".
ABSENT = _Absent()

Desired = Union[Content, _Absent]


@dataclass(frozen=True)
class CheckpointRecord:
    """Durable row mirroring one TrackedEntry."""

    scope_id: str
    source_id: str
    policy: UpdatePolicy
    owner_scope_id: Optional[str] = None
    content: Optional[str] = None
    digest: Optional[str] = None
    representation_id: Optional[str] = None

    @property
    def key(self) -> ReconcileKey:
        return ReconcileKey(self.scope_id, self.source_id)


@dataclass(frozen=True)
class TrackedEntry:
    """In-memory state of one key, replaced wholesale by the engine."""

    key: ReconcileKey
    policy: UpdatePolicy
    owner_scope_id: Optional[str] = None
    content: Optional[str] = None
    digest: Optional[str] = None
    representation_id: Optional[str] = None

    def to_record(self) -> CheckpointRecord:
        return CheckpointRecord(
            scope_id=self.key.scope_id,
            source_id=self.key.source_id,
            policy=self.policy,
            owner_scope_id=self.owner_scope_id,
            content=self.content,
            digest=self.digest,
            representation_id=self.representation_id,
        )

    @classmethod
    def from_record(cls, record: CheckpointRecord) -> "TrackedEntry":
        return cls(
            key=record.key,
            policy=record.policy,
            owner_scope_id=record.owner_scope_id,
            content=record.content,
            digest=record.digest,
            representation_id=record.representation_id,
        )


@dataclass(frozen=True)
class CountChanged:
    count: int


@dataclass(frozen=True)
class SourceRemoved:
    pass


@dataclass(frozen=True)
class NewActivity:
    # Id of the message that triggered the activity, when known.
    message_id: Optional[str] = None


EventKind = Union[CountChanged, SourceRemoved, NewActivity]


@dataclass(frozen=True)
class Event:
    """A single external trigger for one key."""

    key: ReconcileKey
    kind: EventKind


@dataclass(frozen=True)
class RecentMessage:
    """One entry of a scope's recent history, as seen by the resolver."""

    representation_id: str
    tag: Optional[str] = None


class OutcomeKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    NOOP = "noop"
    FAILED = "failed"


@dataclass(frozen=True)
class Outcome:
    """Result of one reconciliation cycle."""

    kind: OutcomeKind
    key: ReconcileKey
    representation_id: Optional[str] = None
    previous_id: Optional[str] = None
    reason: str = field(default="")

    @property
    def ok(self) -> bool:
        return self.kind is not OutcomeKind.FAILED

    @classmethod
    def noop(cls, key: ReconcileKey, representation_id: Optional[str] = None) -> "Outcome":
        return cls(OutcomeKind.NOOP, key, representation_id=representation_id)

    @classmethod
    def failed(cls, key: ReconcileKey, reason: str) -> "Outcome":
        return cls(OutcomeKind.FAILED, key, reason=reason)
