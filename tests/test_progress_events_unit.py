from __future__ import annotations

import pytest

from src.application.services.content_generation.events import ProgressReporter


@pytest.mark.asyncio
async def test_sync_and_async_listeners_receive_events():
    received: list[tuple[str, int]] = []

    async def async_listener(event):
        received.append(("async", event.percent))

    reporter = ProgressReporter([lambda e: received.append(("sync", e.percent))])
    reporter.subscribe(async_listener)

    await reporter.emit("outline", 10, "Generating content outline...")

    assert received == [("sync", 10), ("async", 10)]
    assert reporter.history[0].message == "Generating content outline..."


@pytest.mark.asyncio
async def test_percent_is_clamped_and_optional_counts_are_serialized():
    reporter = ProgressReporter()
    e1 = await reporter.emit("sections", 150, "x", sections_completed=2, total_sections=8)
    e2 = await reporter.emit("outline", -5, "y")

    assert e1.percent == 100
    assert e2.percent == 0
    assert e1.to_dict() == {"phase": "sections", "percent": 100, "message": "x", "sections_completed": 2, "total_sections": 8}
    assert "sections_completed" not in e2.to_dict()


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_emission():
    seen = []

    def broken(event):
        raise RuntimeError("listener crashed")

    reporter = ProgressReporter([broken, seen.append])
    await reporter.emit("merge", 75, "Merging content...")

    assert len(seen) == 1


@pytest.mark.asyncio
async def test_unsubscribe():
    seen = []
    reporter = ProgressReporter()
    unsubscribe = reporter.subscribe(seen.append)
    await reporter.emit("outline", 10, "a")
    unsubscribe()
    await reporter.emit("outline", 15, "b")

    assert [e.percent for e in seen] == [10]
    assert [e.percent for e in reporter.history] == [10, 15]
