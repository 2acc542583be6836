"""Ingestion loop: reads lines, builds events and feeds the publisher."""

import logging
import threading
from typing import Generator, TextIO

from egpipe.builder import EventBuilder
from egpipe.errors import InputError
from egpipe.publisher import EventPublisher

logger = logging.getLogger(__name__)

DEFAULT_MAX_LINE_LENGTH = 65536


def read_lines(
    stream: TextIO, max_line_length: int = DEFAULT_MAX_LINE_LENGTH
) -> Generator[tuple[int, str], None, None]:
    """Yield (line_number, line) with the line terminator removed.

    Raises InputError when the stream cannot be read or a line is longer
    than *max_line_length* bytes.
    """
    lines = iter(stream)
    line_number = 0
    while True:
        try:
            raw = next(lines)
        except StopIteration:
            return
        except (OSError, UnicodeDecodeError) as exc:
            raise InputError(f"reading input after line {line_number}: {exc}") from exc
        line_number += 1

        if raw.endswith("\n"):
            raw = raw[:-1]
            if raw.endswith("\r"):
                raw = raw[:-1]
        if len(raw.encode("utf-8")) > max_line_length:
            raise InputError(
                f"line {line_number} is longer than {max_line_length} bytes"
            )
        yield line_number, raw


def run(
    stream: TextIO,
    builder: EventBuilder,
    publisher: EventPublisher,
    shutdown_event: threading.Event,
    max_line_length: int = DEFAULT_MAX_LINE_LENGTH,
) -> int:
    """Publish every non-blank line of *stream*, then flush the remainder.

    A set shutdown_event stops reading after the line in progress. Returns
    the number of events handed to the publisher. An error from building or
    publishing propagates at once and skips the final flush. A read error
    ends the input like end of stream: the events already read are flushed
    and the InputError is raised afterwards.
    """
    published = 0
    read_error = None
    try:
        for line_number, line in read_lines(stream, max_line_length):
            if line.strip():
                event = builder.build(line)
                publisher.add_event(event)
                published += 1
            else:
                logger.debug("Skipping blank line %d", line_number)

            publisher.check()
            if shutdown_event.is_set():
                logger.info("Shutdown requested, stopped reading after line %d", line_number)
                break
    except InputError as exc:
        read_error = exc

    publisher.check()
    publisher.flush_if_needed(0, trigger="final")
    if read_error is not None:
        raise read_error
    logger.info("Published %d events", published)
    return published
