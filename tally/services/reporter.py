"""
tally.services.reporter — Chunked, Throttled Channel Output
============================================================

Scan and report jobs can produce hundreds of lines.  :class:`BatchReporter`
packs them into messages that respect Discord's size limit (at most
``LINES_PER_MESSAGE`` lines and ``DISCORD_MESSAGE_LIMIT`` characters each),
sends them in order, and paces every send/edit through a per-channel
sliding-window throttle so long runs don't trip the API rate limit.

Progress is shown on a single *status* message that is edited in place
and deleted when the job finishes.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

import discord
from discord.abc import Messageable

from tally.constants import DISCORD_MESSAGE_LIMIT, LINES_PER_MESSAGE

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Chunking
# ---------------------------------------------------------------------------
def chunk_lines(
    lines: Iterable[str],
    max_lines: int = LINES_PER_MESSAGE,
    max_chars: int = DISCORD_MESSAGE_LIMIT,
) -> list[str]:
    """Pack *lines* into newline-joined messages, preserving order.

    A single line longer than *max_chars* is split across messages.
    """
    chunks: list[str] = []
    current: list[str] = []
    size = 0

    def flush() -> None:
        nonlocal current, size
        if current:
            chunks.append("\n".join(current))
        current = []
        size = 0

    for line in lines:
        if len(line) > max_chars:
            flush()
            pieces = [line[i:i + max_chars] for i in range(0, len(line), max_chars)]
            chunks.extend(pieces[:-1])
            line = pieces[-1]

        # +1 for the joining newline
        extra = len(line) + (1 if current else 0)
        if len(current) >= max_lines or size + extra > max_chars:
            flush()
            extra = len(line)
        current.append(line)
        size += extra

    flush()
    return chunks


# ---------------------------------------------------------------------------
# Throttle
# ---------------------------------------------------------------------------
class ChannelThrottle:
    """Sliding-window limiter: ``max_per_window`` operations per channel per
    ``window`` seconds.  Callers wait for a free slot instead of dropping.
    """

    def __init__(self, max_per_window: int = 5, window: float = 5.0) -> None:
        self.max_per_window = max_per_window
        self.window = window
        self._timestamps: dict[int, list[float]] = defaultdict(list)

    def is_allowed(self, channel_id: int) -> bool:
        """Return True and claim a slot if one is free right now."""
        now = time.monotonic()
        cutoff = now - self.window
        stamps = [t for t in self._timestamps[channel_id] if t > cutoff]
        self._timestamps[channel_id] = stamps
        if len(stamps) >= self.max_per_window:
            return False
        stamps.append(now)
        return True

    def retry_after(self, channel_id: int) -> float:
        """Seconds until the oldest stamp in the window expires."""
        stamps = self._timestamps.get(channel_id)
        if not stamps:
            return 0.0
        return max(0.0, stamps[0] + self.window - time.monotonic())

    async def wait_turn(self, channel_id: int) -> None:
        while not self.is_allowed(channel_id):
            await asyncio.sleep(self.retry_after(channel_id) or 0.05)


# ---------------------------------------------------------------------------
# Status line
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class StatusMessage:
    """Handle to an edit-in-place progress message."""

    message: Any
    channel_id: int
    text: str
    deleted: bool = False


def _channel_id(destination: Any) -> int:
    return getattr(destination, "id", 0) or 0


# ---------------------------------------------------------------------------
# Reporter
# ---------------------------------------------------------------------------
class BatchReporter:
    """Ordered, throttled output to a Discord channel."""

    def __init__(self, throttle: ChannelThrottle | None = None) -> None:
        self.throttle = throttle or ChannelThrottle()

    async def post(self, text: str, destination: Messageable) -> Any:
        """Send one message (split if it exceeds the size limit)."""
        message = None
        for chunk in chunk_lines(text.split("\n"), max_lines=text.count("\n") + 1):
            await self.throttle.wait_turn(_channel_id(destination))
            message = await destination.send(chunk)
        return message

    async def send(self, lines: Iterable[str], destination: Messageable) -> int:
        """Send *lines* batched into as few messages as the limits allow.

        Returns the number of messages sent.
        """
        chunks = chunk_lines(lines)
        for chunk in chunks:
            await self.throttle.wait_turn(_channel_id(destination))
            await destination.send(chunk)
        if chunks:
            logger.debug(
                "Sent %d batched message(s) to channel %s",
                len(chunks), _channel_id(destination),
            )
        return len(chunks)

    async def open_status(self, destination: Messageable, text: str) -> StatusMessage:
        channel_id = _channel_id(destination)
        await self.throttle.wait_turn(channel_id)
        message = await destination.send(text)
        return StatusMessage(message=message, channel_id=channel_id, text=text)

    async def edit_status(self, status: StatusMessage, text: str) -> None:
        """Replace the status text.  Failures are logged, not raised."""
        if status.deleted or text == status.text:
            return
        await self.throttle.wait_turn(status.channel_id)
        try:
            await status.message.edit(content=text)
            status.text = text
        except discord.HTTPException:
            logger.exception("Failed to edit status message in channel %s", status.channel_id)

    async def delete_status(self, status: StatusMessage) -> None:
        if status.deleted:
            return
        try:
            await status.message.delete()
        except discord.HTTPException:
            logger.exception("Failed to delete status message in channel %s", status.channel_id)
        status.deleted = True
