from __future__ import annotations

import asyncio
from typing import Optional

from fakes import FakeCheckpoints, FakeTransport, label_composer

from huskboard.core.board import ReactionBoard, ThresholdRenderer
from huskboard.core.engine import ReconciliationEngine
from huskboard.core.identity import decode_tag, encode_tag
from huskboard.core.models import CheckpointRecord, Content, OutcomeKind, UpdatePolicy
from huskboard.core.resolver import IdentityResolver
from huskboard.core.tiers import build_tiers

BOARD = "@board"
SOURCE = "@group"
TIERS = build_tiers([{"min": 1, "label": "low"}, {"min": 6, "label": "mid"}, {"min": 10, "label": "high"}])


def _board(
    transport: FakeTransport,
    checkpoints: Optional[FakeCheckpoints] = None,
    *,
    timeout_seconds: float = 5.0,
    miss_capacity: int = 1024,
) -> tuple[ReactionBoard, ReconciliationEngine]:
    engine = ReconciliationEngine(
        transport,
        checkpoints if checkpoints is not None else FakeCheckpoints(),
        ThresholdRenderer(4, TIERS, label_composer),
        policy=UpdatePolicy.EDIT_IN_PLACE,
        resolver=IdentityResolver(transport, lookback=50),
        timeout_seconds=timeout_seconds,
        miss_capacity=miss_capacity,
        name="board",
    )
    return ReactionBoard(engine, BOARD), engine


def test_same_count_twice_creates_once() -> None:
    transport = FakeTransport()
    board, _ = _board(transport)

    first = asyncio.run(board.handle_count(SOURCE, 10, 5))
    second = asyncio.run(board.handle_count(SOURCE, 10, 5))

    assert first.kind is OutcomeKind.CREATED
    assert second.kind is OutcomeKind.NOOP
    assert second.representation_id == first.representation_id
    assert len(transport.live(BOARD)) == 1


def test_threshold_gating() -> None:
    transport = FakeTransport()
    checkpoints = FakeCheckpoints()
    board, engine = _board(transport, checkpoints)
    key = board.key_for(SOURCE, 10)

    assert asyncio.run(board.handle_count(SOURCE, 10, 3)).kind is OutcomeKind.NOOP
    assert transport.live(BOARD) == []

    created = asyncio.run(board.handle_count(SOURCE, 10, 4))
    assert created.kind is OutcomeKind.CREATED

    deleted = asyncio.run(board.handle_count(SOURCE, 10, 2))
    assert deleted.kind is OutcomeKind.DELETED
    assert deleted.previous_id == created.representation_id
    assert transport.live(BOARD) == []

    # Board history is kept, only the representation is nulled.
    entry = engine.cache.get(key)
    assert entry is not None
    assert entry.representation_id is None
    assert checkpoints.rows[key].representation_id is None


def test_tiers_follow_count() -> None:
    transport = FakeTransport()
    board, _ = _board(transport)

    created = asyncio.run(board.handle_count(SOURCE, 10, 5))
    assert transport.messages[BOARD][created.representation_id].text == "low 5"

    updated = asyncio.run(board.handle_count(SOURCE, 10, 6))
    assert updated.kind is OutcomeKind.UPDATED
    assert transport.messages[BOARD][created.representation_id].text == "mid 6"

    asyncio.run(board.handle_count(SOURCE, 10, 15))
    assert transport.messages[BOARD][created.representation_id].text == "high 15"


def test_created_entries_carry_identity_tag() -> None:
    transport = FakeTransport()
    board, _ = _board(transport)

    created = asyncio.run(board.handle_count(SOURCE, 10, 5))

    content = transport.messages[BOARD][created.representation_id]
    assert decode_tag(content.tag) == board.key_for(SOURCE, 10).source_id


def test_concurrent_same_key_creates_once() -> None:
    transport = FakeTransport()
    transport.create_delay = 0.01
    board, _ = _board(transport)

    async def _fire():
        return await asyncio.gather(
            board.handle_count(SOURCE, 10, 5),
            board.handle_count(SOURCE, 10, 6),
        )

    outcomes = asyncio.run(_fire())

    kinds = [outcome.kind for outcome in outcomes]
    assert kinds.count(OutcomeKind.CREATED) == 1
    assert kinds.count(OutcomeKind.UPDATED) == 1
    assert len(transport.live(BOARD)) == 1


def test_cold_cache_resolves_existing_entry() -> None:
    transport = FakeTransport()
    board, _ = _board(transport)
    source_id = board.key_for(SOURCE, 10).source_id
    transport.seed(BOARD, "55", Content(text="low 4", tag=encode_tag(source_id)))
    transport.seed(BOARD, "56", Content(text="other", tag=encode_tag(f"{SOURCE}/11")))

    outcome = asyncio.run(board.handle_count(SOURCE, 10, 7))

    assert outcome.kind is OutcomeKind.UPDATED
    assert outcome.representation_id == "55"
    assert transport.messages[BOARD]["55"].text == "mid 7"
    assert sorted(transport.live(BOARD)) == ["55", "56"]


def test_cold_cache_deletes_existing_entry_below_threshold() -> None:
    transport = FakeTransport()
    board, _ = _board(transport)
    source_id = board.key_for(SOURCE, 10).source_id
    transport.seed(BOARD, "55", Content(text="low 4", tag=encode_tag(source_id)))

    outcome = asyncio.run(board.handle_count(SOURCE, 10, 1))

    assert outcome.kind is OutcomeKind.DELETED
    assert transport.live(BOARD) == []


def test_sub_threshold_events_scan_once() -> None:
    transport = FakeTransport()
    board, _ = _board(transport)

    for count in (1, 2, 3):
        assert asyncio.run(board.handle_count(SOURCE, 10, count)).kind is OutcomeKind.NOOP

    assert transport.calls.count(("list_recent", BOARD)) == 1


def test_sub_threshold_traffic_does_not_grow_cache() -> None:
    transport = FakeTransport()
    checkpoints = FakeCheckpoints()
    board, engine = _board(transport, checkpoints)

    for message_id in range(200):
        assert asyncio.run(board.handle_count(SOURCE, message_id, 1)).kind is OutcomeKind.NOOP

    assert len(engine.cache) == len(checkpoints.rows) == 0


def test_remembered_misses_are_bounded() -> None:
    transport = FakeTransport()
    board, _ = _board(transport, miss_capacity=2)

    for message_id in (1, 2, 3):
        asyncio.run(board.handle_count(SOURCE, message_id, 1))
    assert transport.calls.count(("list_recent", BOARD)) == 3

    # 3 is still remembered, 1 was evicted.
    asyncio.run(board.handle_count(SOURCE, 3, 1))
    assert transport.calls.count(("list_recent", BOARD)) == 3
    asyncio.run(board.handle_count(SOURCE, 1, 1))
    assert transport.calls.count(("list_recent", BOARD)) == 4


def test_checkpoint_failure_does_not_duplicate_on_next_event() -> None:
    transport = FakeTransport()
    checkpoints = FakeCheckpoints()
    board, engine = _board(transport, checkpoints)
    key = board.key_for(SOURCE, 10)

    checkpoints.fail_writes = True
    failed = asyncio.run(board.handle_count(SOURCE, 10, 5))
    assert failed.kind is OutcomeKind.FAILED
    assert engine.cache.get(key) is None
    assert len(transport.live(BOARD)) == 1

    checkpoints.fail_writes = False
    recovered = asyncio.run(board.handle_count(SOURCE, 10, 5))
    assert recovered.kind is OutcomeKind.UPDATED
    assert transport.live(BOARD) == [recovered.representation_id]
    assert checkpoints.rows[key].representation_id == recovered.representation_id


def test_source_removed_deletes_entry() -> None:
    transport = FakeTransport()
    board, _ = _board(transport)
    asyncio.run(board.handle_count(SOURCE, 10, 5))

    outcome = asyncio.run(board.handle_removed(SOURCE, 10))

    assert outcome.kind is OutcomeKind.DELETED
    assert transport.live(BOARD) == []


def test_delete_of_vanished_entry_is_success() -> None:
    transport = FakeTransport()
    board, _ = _board(transport)
    asyncio.run(board.handle_count(SOURCE, 10, 5))
    transport.messages[BOARD].clear()

    outcome = asyncio.run(board.handle_count(SOURCE, 10, 0))

    assert outcome.kind is OutcomeKind.DELETED


def test_update_of_vanished_entry_creates_fresh_one() -> None:
    transport = FakeTransport()
    board, _ = _board(transport)
    created = asyncio.run(board.handle_count(SOURCE, 10, 5))
    transport.messages[BOARD].clear()

    outcome = asyncio.run(board.handle_count(SOURCE, 10, 7))

    assert outcome.kind is OutcomeKind.CREATED
    assert outcome.previous_id == created.representation_id
    assert transport.live(BOARD) == [outcome.representation_id]


def test_transport_failure_leaves_entry_unchanged() -> None:
    transport = FakeTransport()
    board, engine = _board(transport)
    created = asyncio.run(board.handle_count(SOURCE, 10, 5))
    before = engine.cache.get(board.key_for(SOURCE, 10))

    transport.fail_update = True
    failed = asyncio.run(board.handle_count(SOURCE, 10, 7))
    assert failed.kind is OutcomeKind.FAILED
    assert engine.cache.get(board.key_for(SOURCE, 10)) == before

    transport.fail_update = False
    retried = asyncio.run(board.handle_count(SOURCE, 10, 7))
    assert retried.kind is OutcomeKind.UPDATED
    assert retried.representation_id == created.representation_id


def test_restart_uses_checkpoint_without_scanning() -> None:
    transport = FakeTransport()
    transport.seed(BOARD, "77", Content(text="low 4"))
    source_id = f"{SOURCE}/10"
    checkpoints = FakeCheckpoints(
        [
            CheckpointRecord(
                scope_id=BOARD,
                source_id=source_id,
                policy=UpdatePolicy.EDIT_IN_PLACE,
                representation_id="77",
            )
        ]
    )
    board, _ = _board(transport, checkpoints)

    assert board.initialize() == 1
    outcome = asyncio.run(board.handle_count(SOURCE, 10, 8))

    assert outcome.kind is OutcomeKind.UPDATED
    assert outcome.representation_id == "77"
    assert ("list_recent", BOARD) not in transport.calls


def test_timeout_releases_lock_and_keeps_entry() -> None:
    transport = FakeTransport()
    transport.create_delay = 1.0
    board, engine = _board(transport, timeout_seconds=0.05)

    outcome = asyncio.run(board.handle_count(SOURCE, 10, 5))

    assert outcome.kind is OutcomeKind.FAILED
    assert outcome.reason == "timeout"
    assert engine.cache.get(board.key_for(SOURCE, 10)) is None
    assert engine.serializer.active_keys() == 0
