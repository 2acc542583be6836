"""Event model and the JSON wire encoding of a batch."""

import json
from dataclasses import dataclass

from egpipe.errors import ParseError

# Wire names in the order they are written.
WIRE_FIELDS = (
    ("id", "id"),
    ("topic", "topic"),
    ("subject", "subject"),
    ("data", "data"),
    ("eventType", "event_type"),
    ("eventTime", "event_time"),
    ("dataVersion", "data_version"),
)


def _reject_constant(name: str):
    raise ValueError(f"{name} is not valid JSON")


def loads_strict(text: str):
    """json.loads without the NaN and Infinity extensions."""
    return json.loads(text, parse_constant=_reject_constant)


@dataclass(frozen=True)
class Event:
    """An event in the Event Grid schema.

    ``data`` holds the input line exactly as read; it is embedded in the
    request body verbatim rather than re-serialized.
    """

    id: str
    subject: str
    data: str
    event_type: str
    event_time: str
    data_version: str
    topic: str = ""


def event_to_json(event: Event) -> str:
    """Encode one event as a JSON object, omitting empty fields."""
    members = []
    for wire_name, attr in WIRE_FIELDS:
        value = getattr(event, attr)
        if not value:
            continue
        if attr == "data":
            encoded = value
        else:
            encoded = json.dumps(value)
        members.append(f"{json.dumps(wire_name)}:{encoded}")
    return "{" + ",".join(members) + "}"


def serialize_batch(events: list[Event]) -> bytes:
    """Encode a batch as a UTF-8 JSON array in the given order.

    Raises ParseError if an event's data is not a valid JSON document, since
    it would corrupt the whole request body.
    """
    for event in events:
        try:
            loads_strict(event.data)
        except ValueError as exc:
            raise ParseError(f"event {event.id} data is not valid JSON: {exc}") from exc
    return ("[" + ",".join(event_to_json(e) for e in events) + "]\n").encode("utf-8")
