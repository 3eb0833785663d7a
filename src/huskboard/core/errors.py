"""Error taxonomy for the reconciliation core."""

from __future__ import annotations


class ReconcileError(Exception):
    """Base class for failures the engine knows how to absorb."""


class TransportFailure(ReconcileError):
    """A remote create/update/delete/list call failed.

    There is no internal retry loop: the next event for the same key
    re-attempts from the unchanged tracked entry.
    """


class RepresentationNotFound(TransportFailure):
    """The remote representation no longer exists.

    Deletes treat this as success. In-place updates treat it as a signal to
    create a fresh representation.
    """


class CheckpointWriteFailure(ReconcileError):
    """The durable checkpoint could not be written."""
