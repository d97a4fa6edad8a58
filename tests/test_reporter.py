"""
tests/test_reporter.py — Batched Output, Throttle & Status Line
================================================================
"""

from __future__ import annotations

import time
from unittest.mock import AsyncMock, MagicMock

import discord

from conftest import make_channel, run_async, sent_texts
from tally.services.reporter import BatchReporter, ChannelThrottle, chunk_lines


def _reporter() -> BatchReporter:
    return BatchReporter(throttle=ChannelThrottle(max_per_window=10_000, window=1.0))


class TestChunkLines:
    def test_groups_by_line_count(self):
        lines = [f"- line {i}" for i in range(25)]
        chunks = chunk_lines(lines, max_lines=10)

        assert len(chunks) == 3
        assert chunks[0].split("\n") == lines[:10]
        assert chunks[2].split("\n") == lines[20:]

    def test_respects_char_limit(self):
        lines = ["x" * 40] * 5
        chunks = chunk_lines(lines, max_lines=10, max_chars=100)
        assert all(len(c) <= 100 for c in chunks)
        assert sum(len(c.split("\n")) for c in chunks) == 5

    def test_overlong_line_is_split(self):
        chunks = chunk_lines(["a" * 250], max_chars=100)
        assert [len(c) for c in chunks] == [100, 100, 50]

    def test_exact_multiple_has_no_empty_chunk(self):
        chunks = chunk_lines(["a" * 200, "b"], max_chars=100)
        assert "" not in chunks
        assert "".join(chunks).replace("\n", "") == "a" * 200 + "b"

    def test_empty(self):
        assert chunk_lines([]) == []


class TestChannelThrottle:
    def test_allows_up_to_limit(self):
        throttle = ChannelThrottle(max_per_window=2, window=60)
        assert throttle.is_allowed(1)
        assert throttle.is_allowed(1)
        assert not throttle.is_allowed(1)
        assert throttle.is_allowed(2)

    def test_window_expiry(self):
        throttle = ChannelThrottle(max_per_window=1, window=60)
        throttle.is_allowed(1)
        throttle._timestamps[1] = [time.monotonic() - 61]
        assert throttle.is_allowed(1)

    def test_retry_after(self):
        throttle = ChannelThrottle(max_per_window=1, window=60)
        assert throttle.retry_after(1) == 0.0
        throttle.is_allowed(1)
        assert 0 < throttle.retry_after(1) <= 60


class TestBatchReporter:
    def test_send_batches_in_order(self):
        channel = make_channel()
        lines = [f"- Removed User{i} ({i})" for i in range(12)]

        sent = run_async(_reporter().send(lines, channel))

        assert sent == 2
        texts = sent_texts(channel)
        assert texts[0].split("\n") == lines[:10]
        assert texts[1].split("\n") == lines[10:]

    def test_send_nothing(self):
        channel = make_channel()
        assert run_async(_reporter().send([], channel)) == 0
        channel.send.assert_not_called()

    def test_post_keeps_multiline_report_together(self):
        channel = make_channel()
        report = "\n".join(f"line {i}" for i in range(15))

        run_async(_reporter().post(report, channel))

        assert sent_texts(channel) == [report]

    def test_status_edit_skips_unchanged_text(self):
        channel = make_channel()
        reporter = _reporter()

        async def go():
            status = await reporter.open_status(channel, "Working...")
            await reporter.edit_status(status, "Working...")
            await reporter.edit_status(status, "Step 2")
            return status

        status = run_async(go())
        status.message.edit.assert_awaited_once_with(content="Step 2")
        assert status.text == "Step 2"

    def test_status_edit_failure_is_logged_not_raised(self):
        channel = make_channel()
        reporter = _reporter()
        response = MagicMock(status=500, reason="boom")

        async def go():
            status = await reporter.open_status(channel, "Working...")
            status.message.edit = AsyncMock(side_effect=discord.HTTPException(response, "boom"))
            await reporter.edit_status(status, "Step 2")
            return status

        status = run_async(go())
        assert status.text == "Working..."

    def test_delete_status_once(self):
        channel = make_channel()
        reporter = _reporter()

        async def go():
            status = await reporter.open_status(channel, "Working...")
            await reporter.delete_status(status)
            await reporter.delete_status(status)
            await reporter.edit_status(status, "too late")
            return status

        status = run_async(go())
        status.message.delete.assert_awaited_once()
        status.message.edit.assert_not_called()
        assert status.deleted
