"""Server-sent events decoder for the OpenCode global event stream.

Turns the raw byte chunks of a text/event-stream response into GlobalEvent
envelopes. Only `data:` fields are used; a blank line ends a frame and the
accumulated data is parsed as one JSON envelope.

A decoder instance holds the state of a single connection. A new connection
must use a new decoder so a frame cut off by a dropped connection is never
glued onto the next stream.
"""

import codecs
import json
import logging
from typing import AsyncIterable, AsyncIterator, Optional

from pydantic import ValidationError

from .models import GlobalEvent

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"


class StreamDecoder:
    """Incremental line-oriented SSE frame decoder."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._line_buffer = ""
        self._event_data = ""

    def feed(self, chunk: bytes) -> list[GlobalEvent]:
        """Consume one chunk and return the events completed by it.

        Args:
            chunk: Raw bytes read from the response body

        Returns:
            Envelopes for every frame terminated inside this chunk
        """
        self._line_buffer += self._decoder.decode(chunk)
        lines = self._line_buffer.split("\n")

        # Keep the last incomplete line in the buffer
        self._line_buffer = lines.pop()

        events = []
        for line in lines:
            event = self._process_line(line.rstrip("\r"))
            if event is not None:
                events.append(event)
        return events

    def _process_line(self, line: str) -> Optional[GlobalEvent]:
        if line.startswith(DATA_PREFIX):
            self._event_data += line[len(DATA_PREFIX):].strip()
            return None

        if line == "" and self._event_data:
            # Empty line means end of event
            data, self._event_data = self._event_data, ""
            return self._parse_event(data)

        # event:, id:, retry: and comment lines carry nothing we use
        return None

    def _parse_event(self, data: str) -> Optional[GlobalEvent]:
        try:
            return GlobalEvent.model_validate(json.loads(data))
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse SSE event: {e}: {data[:200]}")
        except ValidationError as e:
            logger.warning(
                f"Discarding SSE event with unexpected shape: "
                f"{e.error_count()} error(s): {data[:200]}"
            )
        return None


async def decode_stream(chunks: AsyncIterable[bytes]) -> AsyncIterator[GlobalEvent]:
    """Lazily decode an async stream of byte chunks into events.

    Args:
        chunks: Response body chunks for one connection

    Yields:
        GlobalEvent envelopes in stream order
    """
    decoder = StreamDecoder()
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
