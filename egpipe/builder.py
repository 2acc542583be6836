"""Event builder: turns one raw input line into an Event."""

import re
import time
import uuid
from datetime import datetime, timedelta, timezone

from egpipe.errors import InvalidTimestamp
from egpipe.models import Event
from egpipe.resolver import FieldResolver, LineData

NOW = "now"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_INTEGER_RE = re.compile(r"[+-]?[0-9]+")


def format_rfc3339_nano(seconds: int, nanos: int = 0) -> str:
    """Format a UTC instant as RFC3339 with nanoseconds, trailing zeros trimmed.

    >>> format_rfc3339_nano(1608309835, 0)
    '2020-12-18T16:43:55Z'
    >>> format_rfc3339_nano(1608309835, 123000000)
    '2020-12-18T16:43:55.123Z'
    """
    try:
        moment = _EPOCH + timedelta(seconds=seconds)
    except OverflowError as exc:
        raise InvalidTimestamp(f"timestamp {seconds}s is out of range") from exc
    # isoformat pads the year to four digits; strftime("%Y") does not on glibc.
    text = moment.replace(tzinfo=None).isoformat(timespec="seconds")
    if nanos:
        text += "." + f"{nanos:09d}".rstrip("0")
    return text + "Z"


def now_rfc3339_nano() -> str:
    seconds, nanos = divmod(time.time_ns(), 1_000_000_000)
    return format_rfc3339_nano(seconds, nanos)


def parse_event_time(value: str) -> str:
    """Convert ``now`` or epoch milliseconds to an RFC3339Nano UTC string."""
    if value == NOW:
        return now_rfc3339_nano()
    if not _INTEGER_RE.fullmatch(value):
        raise InvalidTimestamp(
            f"timestamp {value!r} is neither {NOW!r} nor epoch milliseconds"
        )
    seconds, millis = divmod(int(value), 1000)
    return format_rfc3339_nano(seconds, millis * 1_000_000)


class EventBuilder:
    """Builds events from raw lines using the configured field specs."""

    def __init__(self, resolver: FieldResolver, topic: str = ""):
        self._resolver = resolver
        self._topic = topic

    @property
    def resolver(self) -> FieldResolver:
        return self._resolver

    def build(self, raw: str) -> Event:
        """Resolve every field of *raw*; the first failure propagates.

        Fields resolve in the order id, subject, dataVersion, eventTime,
        eventType.
        """
        line = LineData(raw)
        resolve = self._resolver.resolve

        event_id = resolve("id", line) or str(uuid.uuid4())
        subject = resolve("subject", line)
        data_version = resolve("dataVersion", line)
        event_time = parse_event_time(resolve("eventTime", line))
        event_type = resolve("eventType", line)

        return Event(
            id=event_id,
            topic=self._topic,
            subject=subject,
            data=raw,
            event_type=event_type,
            event_time=event_time,
            data_version=data_version,
        )
