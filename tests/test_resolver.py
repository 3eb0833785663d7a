from __future__ import annotations

import asyncio

import pytest
from fakes import FakeTransport

from huskboard.core.identity import encode_tag
from huskboard.core.models import Content
from huskboard.core.resolver import IdentityResolver

BOARD = "@board"


def test_resolve_finds_tagged_message() -> None:
    transport = FakeTransport()
    transport.seed(BOARD, "1", Content(text="plain"))
    transport.seed(BOARD, "2", Content(text="entry", tag=encode_tag("@group/10")))
    transport.seed(BOARD, "3", Content(text="entry", tag=encode_tag("@group/11")))

    resolver = IdentityResolver(transport, lookback=10)

    assert asyncio.run(resolver.resolve(BOARD, "@group/10")) == "2"
    assert asyncio.run(resolver.resolve(BOARD, "@group/11")) == "3"


def test_resolve_miss_returns_none() -> None:
    transport = FakeTransport()
    transport.seed(BOARD, "1", Content(text="entry", tag=encode_tag("@group/1")))

    resolver = IdentityResolver(transport, lookback=10)

    assert asyncio.run(resolver.resolve(BOARD, "@group/10")) is None


def test_resolve_does_not_match_by_substring() -> None:
    transport = FakeTransport()
    transport.seed(BOARD, "1", Content(text="entry", tag=encode_tag("@group/100")))
    transport.seed(BOARD, "2", Content(text="entry", tag="ID: @group/10"))

    resolver = IdentityResolver(transport, lookback=10)

    assert asyncio.run(resolver.resolve(BOARD, "@group/10")) is None


def test_resolve_respects_lookback_window() -> None:
    transport = FakeTransport()
    transport.seed(BOARD, "1", Content(text="old", tag=encode_tag("@group/10")))
    for index in range(2, 6):
        transport.seed(BOARD, str(index), Content(text="newer"))

    resolver = IdentityResolver(transport, lookback=3)

    assert asyncio.run(resolver.resolve(BOARD, "@group/10")) is None


def test_lookback_must_be_positive() -> None:
    with pytest.raises(ValueError):
        IdentityResolver(FakeTransport(), lookback=0)
