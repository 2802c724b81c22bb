"""
Fenced output block extraction from Travis job logs.

A job publishes structured check output by printing a JSON object between
two fence lines::

    ---output
    {"title": "Lint", "summary": "3 warnings"}
    ---

The scanner is a plain state machine fed one line at a time, so it can be
driven from a finite list in tests or from a live HTTP stream.
"""

import asyncio
import json
from enum import Enum
from typing import Any, AsyncIterator, Iterable

from checkrelay.core.exceptions import OutputParseError, ProviderFetchError, StreamIncompleteError
from checkrelay.core.logging import get_logger

logger = get_logger(__name__)

OPEN_FENCE = "---output"
CLOSE_FENCE = "---"
COMPLETION_MARKER = "Your build exited"
DEFAULT_READ_TIMEOUT = 30.0


class ParserState(str, Enum):
    """Scanner states for a single extraction call."""

    INITIAL = "initial"
    INSIDE_BLOCK = "inside-block"
    BLOCK_COMPLETE = "block-complete"
    STREAM_FINISHED = "stream-finished"
    ERROR = "error"
    CLOSED = "closed"


TERMINAL_STATES = frozenset({
    ParserState.BLOCK_COMPLETE,
    ParserState.STREAM_FINISHED,
    ParserState.ERROR,
    ParserState.CLOSED,
})


class OutputBlockScanner:
    """Line-by-line scanner for one fenced output block."""

    def __init__(self, job_id: str = "?", completion_marker: str = COMPLETION_MARKER):
        self.job_id = job_id
        self.state = ParserState.INITIAL
        self._completion_marker = completion_marker
        self._chunks: list[str] = []

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    def feed(self, line: str) -> ParserState:
        """Advance the state machine by one line. Input after a terminal state is ignored."""
        if self.done:
            return self.state

        trimmed = line.strip()
        if self.state is ParserState.INITIAL:
            if trimmed == OPEN_FENCE:
                logger.debug(f"Fenced output block detected for job {self.job_id}")
                self.state = ParserState.INSIDE_BLOCK
            elif self._completion_marker in trimmed:
                logger.debug(f"Log for job {self.job_id} finished, no output block detected")
                self.state = ParserState.STREAM_FINISHED
        elif trimmed == CLOSE_FENCE:
            logger.debug(f"Detected end of fenced output block for job {self.job_id}")
            self.state = ParserState.BLOCK_COMPLETE
        else:
            self._chunks.append(trimmed)

        return self.state

    def close(self) -> None:
        """Mark the end of the line stream."""
        if not self.done:
            logger.debug(f"Log stream for job {self.job_id} closed in state {self.state.value}")
            self.state = ParserState.CLOSED

    def fail(self) -> None:
        """Mark the line stream as errored or timed out."""
        if not self.done:
            self.state = ParserState.ERROR

    def result(self) -> dict[str, Any] | None:
        """
        Resolve the scan.

        Returns:
            The parsed output object, or None when the log finished without a block

        Raises:
            OutputParseError: If the block is not a JSON object
            StreamIncompleteError: If the stream stopped before a result was reached
        """
        if self.state is ParserState.BLOCK_COMPLETE:
            return _parse_block("".join(self._chunks), self.job_id)
        if self.state is ParserState.STREAM_FINISHED:
            return None
        raise StreamIncompleteError(f"Log stream for job {self.job_id} was incomplete")


def _parse_block(text: str, job_id: str) -> dict[str, Any]:
    try:
        value = json.loads(text)
    except ValueError as e:
        logger.error(f"Failed to parse output block for job {job_id}: {e}")
        logger.debug(text)
        raise OutputParseError(f"Output block for job {job_id} is not valid JSON") from e

    if not isinstance(value, dict):
        raise OutputParseError(f"Output block for job {job_id} is not a JSON object")
    return value


def scan_lines(
    lines: Iterable[str],
    job_id: str = "?",
    completion_marker: str = COMPLETION_MARKER,
) -> dict[str, Any] | None:
    """Run the scanner over a finite sequence of lines."""
    scanner = OutputBlockScanner(job_id, completion_marker)
    for line in lines:
        if scanner.feed(line) in TERMINAL_STATES:
            break
    scanner.close()
    return scanner.result()


async def read_output_block(
    lines: AsyncIterator[str],
    job_id: str = "?",
    timeout: float = DEFAULT_READ_TIMEOUT,
    completion_marker: str = COMPLETION_MARKER,
) -> dict[str, Any] | None:
    """
    Scan a live line stream for the output block within a deadline.

    The stream is released as soon as a terminal state is reached.

    Args:
        lines: Async line iterator, typically backed by an HTTP response
        job_id: Job id used in log messages
        timeout: Seconds allowed for the whole read

    Returns:
        The parsed output object, or None when the log has no block

    Raises:
        StreamIncompleteError: If the stream ends, errors or times out mid-scan
        OutputParseError: If the block is not a JSON object
    """
    scanner = OutputBlockScanner(job_id, completion_marker)

    async def consume() -> None:
        try:
            async for line in lines:
                if scanner.feed(line) in TERMINAL_STATES:
                    break
        finally:
            aclose = getattr(lines, "aclose", None)
            if aclose is not None:
                await aclose()

    try:
        await asyncio.wait_for(consume(), timeout)
    except asyncio.TimeoutError:
        logger.debug(f"Reading log for job {job_id} timed out after {timeout}s")
        scanner.fail()
    except ProviderFetchError as e:
        logger.debug(f"Reading log for job {job_id} failed: {e}")
        scanner.fail()

    scanner.close()
    return scanner.result()
