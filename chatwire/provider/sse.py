"""Server-sent event framing over an httpx streaming response"""

import json
import logging
from typing import AsyncIterator

import httpx

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


async def iter_sse_data(response: httpx.Response) -> AsyncIterator[str]:
    """Yield the data payload of each event in a text/event-stream body.

    Multiple ``data:`` lines in one event are joined with newlines, a blank
    line ends the event. Comments and the event/id/retry fields are ignored.
    """
    data_lines: list[str] = []

    async for line in response.aiter_lines():
        line = line.rstrip("\r\n")
        if not line:
            if data_lines:
                yield "\n".join(data_lines)
                data_lines = []
            continue
        if line.startswith(":"):
            continue

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            data_lines.append(value)

    # Some servers close the connection without the trailing blank line
    if data_lines:
        yield "\n".join(data_lines)


async def iter_json_events(response: httpx.Response) -> AsyncIterator[dict]:
    """Decode each event payload as a JSON object, skipping anything malformed"""
    async for data in iter_sse_data(response):
        try:
            event = json.loads(data)
        except json.JSONDecodeError:
            logger.debug(f"Skipping malformed event: {data[:200]}")
            continue
        if isinstance(event, dict):
            yield event
