"""Server-sent event streaming of a ProgressChannel.

Each event goes out as `data: <compact json>` followed by a blank line.
The stream ends after the first terminal event. If the client goes away
first, the channel is disconnected, which cancels whatever feeds it.
"""

import logging
from typing import AsyncIterator, Optional

from sse_starlette.sse import EventSourceResponse
from starlette.concurrency import run_in_threadpool

from skill_agency.executor.channel import ChannelClosed, ProgressChannel

logger = logging.getLogger(__name__)

# How long one blocking read waits before handing control back to the loop
POLL_INTERVAL = 0.5


async def channel_events(channel: ProgressChannel) -> AsyncIterator[dict]:
    terminal_seen = False
    try:
        while True:
            try:
                event = await run_in_threadpool(channel.next_event, POLL_INTERVAL)
            except ChannelClosed:
                break
            if event is None:
                continue
            yield {"data": event.to_json()}
            if event.terminal:
                terminal_seen = True
                break
    finally:
        if not terminal_seen:
            logger.info(f"Stream {channel.name} closed before a terminal event")
            channel.disconnect()


def event_stream(
    channel: ProgressChannel,
    headers: Optional[dict[str, str]] = None,
) -> EventSourceResponse:
    return EventSourceResponse(
        channel_events(channel),
        headers=headers,
        sep="\n",
    )
