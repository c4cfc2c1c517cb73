"""Tests for per-destination sync locks."""

import asyncio

import pytest

from statesync.core.sync.lock import destination_lock


@pytest.mark.asyncio
async def test_same_path_same_lock():
    assert destination_lock("/data/statesync") is destination_lock("/data/statesync/")


@pytest.mark.asyncio
async def test_different_paths_independent():
    first = destination_lock("/data/a")
    second = destination_lock("/data/b")

    async with first:
        assert not second.locked()


def test_locks_scoped_to_event_loop():
    async def get_lock() -> asyncio.Lock:
        return destination_lock("/data/statesync")

    first = asyncio.run(get_lock())
    second = asyncio.run(get_lock())

    assert first is not second


def test_requires_running_loop():
    with pytest.raises(RuntimeError):
        destination_lock("/data/statesync")
