"""Server-Sent Events framing for upstream provider streams."""
from typing import AsyncIterator, List, Optional, Tuple


async def iter_sse_events(lines: AsyncIterator[str]) -> AsyncIterator[Tuple[Optional[str], str]]:
    """Group SSE lines into (event_type, data) units.

    A unit ends at a blank line. Multiple ``data:`` lines are joined with
    newlines, comment lines (starting with ``:``) are skipped. Nothing is
    buffered beyond the current unit.
    """
    event_type: Optional[str] = None
    data_lines: List[str] = []

    async for raw_line in lines:
        line = raw_line.rstrip("\r")
        if not line:
            if data_lines:
                yield event_type, "\n".join(data_lines)
            event_type = None
            data_lines = []
            continue

        if line.startswith(":"):
            continue

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "event":
            event_type = value.strip()
        elif field == "data":
            data_lines.append(value)

    if data_lines:
        yield event_type, "\n".join(data_lines)
